"""Room Type Inventory - unit derivation and in-use checks"""
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from domain.availability import AvailabilityCalculator
from domain.entities import RoomType, ReservationClaim
from domain.exceptions import ValidationError, InventoryInUse
from domain.value_objects import Interval, UnitRef


class RoomTypeInventory:
    """A room type together with its current claim set

    Units are index-derived: ``unit_ref(i)`` for ``0 <= i < qty``. Nothing
    about a unit is stored except the claims that name it.
    """

    def __init__(self, room_type: RoomType, claims: Iterable[ReservationClaim]):
        self.room_type = room_type
        self.claims: List[ReservationClaim] = [
            c for c in claims
            if c.room_type_id == room_type.room_type_id and c.is_active()
        ]

    @property
    def room_type_id(self) -> str:
        return self.room_type.room_type_id

    def unit_count(self) -> int:
        return self.room_type.qty

    def unit_ref(self, index: int) -> UnitRef:
        return self.room_type.unit_ref(index)

    def units(self) -> List[UnitRef]:
        return self.room_type.unit_refs()

    def claims_for(self, exclude_reservation_id: Optional[UUID] = None) -> List[ReservationClaim]:
        if exclude_reservation_id is None:
            return list(self.claims)
        return [c for c in self.claims if c.reservation_id != exclude_reservation_id]

    def bound_claims(
        self,
        unit: UnitRef,
        stay: Interval,
        exclude_reservation_id: Optional[UUID] = None
    ) -> List[ReservationClaim]:
        """Claims bound to unit that share a night with stay"""
        return [
            c for c in self.claims_for(exclude_reservation_id)
            if c.is_bound_to(unit) and c.stay.overlaps(stay)
        ]

    def first_free_unit(
        self,
        stay: Interval,
        exclude_reservation_id: Optional[UUID] = None
    ) -> Optional[UnitRef]:
        """First-fit: lowest index with no bound claim overlapping stay"""
        busy: Dict[int, bool] = defaultdict(bool)
        for claim in self.claims_for(exclude_reservation_id):
            if claim.assigned_unit is not None and claim.stay.overlaps(stay):
                busy[claim.assigned_unit.index] = True

        for index in range(self.unit_count()):
            if not busy[index]:
                return self.unit_ref(index)
        return None

    def highest_bound_index(self) -> Optional[int]:
        indices = [c.assigned_unit.index for c in self.outstanding_claims() if c.assigned_unit is not None]
        return max(indices) if indices else None

    def outstanding_claims(self) -> List[ReservationClaim]:
        """Claims still holding inventory: confirmed or in house"""
        return [c for c in self.claims if c.is_outstanding()]

    def peak_load_from(self, today: date) -> int:
        """Peak units in use on any night from today onward"""
        upcoming = [c for c in self.claims if c.stay.check_out > today]
        if not upcoming:
            return 0
        horizon = Interval(check_in=today, check_out=max(c.stay.check_out for c in upcoming))
        return AvailabilityCalculator().peak_load(upcoming, horizon)

    def ensure_can_resize(self, new_qty: int, today: Optional[date] = None) -> None:
        """Refuse a shrink that would orphan bound claims or drop qty below booked load"""
        if new_qty < 1:
            raise ValidationError("qty must be a positive integer", {"qty": new_qty})

        orphaned = [
            c for c in self.outstanding_claims()
            if c.assigned_unit is not None and c.assigned_unit.index >= new_qty
        ]
        if orphaned:
            raise InventoryInUse(
                f"Cannot shrink room type {self.room_type_id} to qty={new_qty}: "
                f"{len(orphaned)} active reservation(s) are bound to removed units",
                {
                    "room_type_id": self.room_type_id,
                    "qty": new_qty,
                    "highest_bound_index": self.highest_bound_index(),
                    "reservation_ids": [str(c.reservation_id) for c in orphaned],
                }
            )

        today = today or date.today()
        peak = self.peak_load_from(today)
        if peak > new_qty:
            raise InventoryInUse(
                f"Cannot shrink room type {self.room_type_id} to qty={new_qty}: "
                f"up to {peak} units are booked from {today.isoformat()} onward",
                {
                    "room_type_id": self.room_type_id,
                    "qty": new_qty,
                    "peak_load": peak,
                    "reservation_ids": [
                        str(c.reservation_id) for c in self.claims if c.stay.check_out > today
                    ],
                }
            )

    def ensure_can_delete(self) -> None:
        outstanding = self.outstanding_claims()
        if outstanding:
            raise InventoryInUse(
                f"Cannot delete room type {self.room_type_id} with active reservations",
                {
                    "room_type_id": self.room_type_id,
                    "reservation_ids": [str(c.reservation_id) for c in outstanding],
                }
            )
