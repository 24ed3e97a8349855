"""Domain Entities - Aggregates"""
from pydantic import BaseModel, Field, validator
from uuid import UUID, uuid4
from datetime import datetime, timezone
from typing import Optional, List
from decimal import Decimal

from domain.enums import (
    ReservationStatus, ReservationSource, RoomStatus, AssignmentType, BindingCloseReason
)
from domain.exceptions import ValidationError, NotFound
from domain.value_objects import Interval, UnitRef, Money


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RoomType(BaseModel):
    """Room Type Aggregate Root - a pool of qty interchangeable units"""

    # Identity
    room_type_id: str = Field(default_factory=lambda: str(uuid4()))

    # Descriptive
    name: str
    max_people: Optional[int] = None

    # Capacity & rate
    qty: int
    price_per_night: Decimal

    # Metadata
    created_at: datetime = Field(default_factory=_now)
    modified_at: datetime = Field(default_factory=_now)
    deleted_at: Optional[datetime] = None
    version: int = 1

    @validator('qty')
    def qty_positive(cls, v):
        if v < 1:
            raise ValidationError("qty must be a positive integer", {"qty": v})
        return v

    @validator('price_per_night')
    def price_positive(cls, v):
        if v <= 0:
            raise ValidationError("price_per_night must be greater than 0", {"price_per_night": str(v)})
        return v

    class Config:
        from_attributes = True

    # ==================== UNIT DERIVATION ====================
    def unit_ref(self, index: int) -> UnitRef:
        """Derive the unit at index, 0 <= index < qty"""
        if not 0 <= index < self.qty:
            raise NotFound(
                f"Unit {index} does not exist in room type {self.room_type_id} (qty={self.qty})",
                {"room_type_id": self.room_type_id, "index": index, "qty": self.qty}
            )
        return UnitRef(room_type_id=self.room_type_id, index=index)

    def unit_refs(self) -> List[UnitRef]:
        return [UnitRef(room_type_id=self.room_type_id, index=i) for i in range(self.qty)]

    # ==================== MODIFICATION METHODS ====================
    def update(
        self,
        name: Optional[str] = None,
        qty: Optional[int] = None,
        price_per_night: Optional[Decimal] = None,
        max_people: Optional[int] = None
    ) -> None:
        """Apply descriptive/capacity changes; in-use checks happen in RoomTypeInventory"""
        if qty is not None:
            if qty < 1:
                raise ValidationError("qty must be a positive integer", {"qty": qty})
            self.qty = qty
        if price_per_night is not None:
            if price_per_night <= 0:
                raise ValidationError(
                    "price_per_night must be greater than 0",
                    {"price_per_night": str(price_per_night)}
                )
            self.price_per_night = price_per_night
        if name is not None:
            self.name = name
        if max_people is not None:
            self.max_people = max_people

        self.modified_at = _now()
        self.version += 1

    def mark_deleted(self) -> None:
        self.deleted_at = _now()
        self.version += 1

    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class ReservationClaim(BaseModel):
    """Reservation Aggregate Root - a hold on type-level capacity or one unit

    A claim without ``assigned_unit`` occupies ``units_requested`` type-level
    slots and gets its physical room only at check-in.
    """

    # Identity
    reservation_id: UUID = Field(default_factory=uuid4)

    # Claim
    room_type_id: str
    assigned_unit: Optional[UnitRef] = None
    units_requested: int = 1
    stay: Interval

    # Status & override audit
    status: ReservationStatus = ReservationStatus.CONFIRMED
    forced: bool = False
    overridden_reservation_ids: List[UUID] = []

    # Billing
    total_amount: Money
    reservation_source: ReservationSource = ReservationSource.DIRECT

    cancel_reason: Optional[str] = None

    # Metadata
    created_at: datetime = Field(default_factory=_now)
    modified_at: datetime = Field(default_factory=_now)
    created_by: str = "SYSTEM"
    version: int = 1

    class Config:
        from_attributes = True

    # ==================== FACTORY METHOD ====================
    @staticmethod
    def create(
        room_type: RoomType,
        stay: Interval,
        assigned_unit: Optional[UnitRef],
        units_requested: int,
        forced: bool = False,
        overridden_reservation_ids: Optional[List[UUID]] = None,
        reservation_source: ReservationSource = ReservationSource.DIRECT,
        created_by: str = "SYSTEM",
        currency: str = "IDR"
    ) -> "ReservationClaim":
        """Create new claim with validation"""
        ReservationClaim._validate_units(room_type.room_type_id, assigned_unit, units_requested)

        return ReservationClaim(
            room_type_id=room_type.room_type_id,
            assigned_unit=assigned_unit,
            units_requested=units_requested,
            stay=stay,
            forced=forced,
            overridden_reservation_ids=overridden_reservation_ids or [],
            total_amount=ReservationClaim._price(room_type, stay, units_requested, currency),
            reservation_source=reservation_source,
            created_by=created_by
        )

    # ==================== MODIFICATION METHODS ====================
    def rebook(
        self,
        room_type: RoomType,
        stay: Interval,
        assigned_unit: Optional[UnitRef],
        units_requested: int,
        forced: bool = False,
        overridden_reservation_ids: Optional[List[UUID]] = None
    ) -> None:
        """Replace dates/unit of a confirmed claim after re-validation"""
        self.ensure_modifiable()
        ReservationClaim._validate_units(room_type.room_type_id, assigned_unit, units_requested)

        self.stay = stay
        self.assigned_unit = assigned_unit
        self.units_requested = units_requested
        if forced:
            self.forced = True
            self.overridden_reservation_ids = list(
                dict.fromkeys(self.overridden_reservation_ids + (overridden_reservation_ids or []))
            )
        self.total_amount = ReservationClaim._price(
            room_type, stay, units_requested, self.total_amount.currency
        )
        self._touch()

    # ==================== STATE TRANSITION METHODS ====================
    def check_in(self) -> None:
        if self.status != ReservationStatus.CONFIRMED:
            raise ValidationError(
                f"Cannot check in reservation with status {self.status.value}. Must be CONFIRMED.",
                {"reservation_id": str(self.reservation_id), "status": self.status.value}
            )
        self.status = ReservationStatus.CHECKED_IN
        self._touch()

    def check_out(self) -> None:
        if self.status != ReservationStatus.CHECKED_IN:
            raise ValidationError(
                f"Cannot check out with status {self.status.value}",
                {"reservation_id": str(self.reservation_id), "status": self.status.value}
            )
        self.status = ReservationStatus.CHECKED_OUT
        self._touch()

    def cancel(self, reason: str) -> None:
        """Cancel for good; cancelled claims never count again"""
        if self.status != ReservationStatus.CONFIRMED:
            raise ValidationError(
                f"Cannot cancel reservation with status {self.status.value}",
                {"reservation_id": str(self.reservation_id), "status": self.status.value}
            )
        self.status = ReservationStatus.CANCELLED
        self.cancel_reason = reason
        self._touch()

    # ==================== QUERY METHODS ====================
    def ensure_modifiable(self) -> None:
        if self.status != ReservationStatus.CONFIRMED:
            raise ValidationError(
                f"Cannot modify reservation with status {self.status.value}",
                {"reservation_id": str(self.reservation_id), "status": self.status.value}
            )

    @property
    def load(self) -> int:
        """Units this claim occupies on each of its nights"""
        return 1 if self.assigned_unit is not None else self.units_requested

    def is_active(self) -> bool:
        return self.status != ReservationStatus.CANCELLED

    def is_outstanding(self) -> bool:
        return self.status in (ReservationStatus.CONFIRMED, ReservationStatus.CHECKED_IN)

    def is_unassigned(self) -> bool:
        return self.assigned_unit is None

    def is_bound_to(self, unit: UnitRef) -> bool:
        return self.assigned_unit is not None and self.assigned_unit == unit

    def occupies(self, stay: Interval) -> bool:
        return self.is_active() and self.stay.overlaps(stay)

    # ==================== PRIVATE METHODS ====================
    @staticmethod
    def _validate_units(room_type_id: str, assigned_unit: Optional[UnitRef], units_requested: int) -> None:
        if units_requested < 1:
            raise ValidationError(
                "units_requested must be at least 1", {"units_requested": units_requested}
            )
        if assigned_unit is not None:
            if units_requested != 1:
                raise ValidationError(
                    "A claim bound to a specific unit must request exactly 1 unit",
                    {"units_requested": units_requested, "unit": assigned_unit.key}
                )
            if assigned_unit.room_type_id != room_type_id:
                raise ValidationError(
                    f"Unit {assigned_unit.key} does not belong to room type {room_type_id}",
                    {"unit": assigned_unit.key, "room_type_id": room_type_id}
                )

    @staticmethod
    def _price(room_type: RoomType, stay: Interval, units_requested: int, currency: str) -> Money:
        """Nightly rate x nights x units"""
        return Money(
            amount=room_type.price_per_night * stay.nights() * units_requested,
            currency=currency
        )

    def _touch(self) -> None:
        self.modified_at = _now()
        self.version += 1


class PhysicalRoom(BaseModel):
    """Room as listed by the physical-room directory"""
    room_id: str = Field(default_factory=lambda: str(uuid4()))
    room_number: str
    room_type_id: Optional[str] = None
    unit_index: Optional[int] = None
    status: RoomStatus = RoomStatus.AVAILABLE
    floor: Optional[int] = None
    features: List[str] = []

    class Config:
        from_attributes = True

    def realises(self, unit: UnitRef) -> bool:
        """Check if this room is the physical form of the derived unit"""
        return self.room_type_id == unit.room_type_id and self.unit_index == unit.index

    def is_in_service(self) -> bool:
        return self.status != RoomStatus.OUT_OF_SERVICE


class CheckInBinding(BaseModel):
    """Check-in binding of a reservation to one physical room

    The room, time and author of a binding never change. A room change
    closes the current binding (closed_at, close_reason) and opens a new one.
    """
    binding_id: UUID = Field(default_factory=uuid4)
    reservation_id: UUID
    physical_room_id: str
    stay: Interval
    bound_at: datetime = Field(default_factory=_now)
    bound_by: str = "SYSTEM"
    assignment_type: AssignmentType = AssignmentType.INITIAL
    previous_room_id: Optional[str] = None
    notes: Optional[str] = None

    closed_at: Optional[datetime] = None
    close_reason: Optional[BindingCloseReason] = None

    class Config:
        from_attributes = True

    def is_open(self) -> bool:
        return self.closed_at is None

    def close(self, reason: BindingCloseReason, at: Optional[datetime] = None) -> None:
        if not self.is_open():
            raise ValidationError(
                f"Binding {self.binding_id} is already closed",
                {"binding_id": str(self.binding_id)}
            )
        self.closed_at = at or _now()
        self.close_reason = reason

    def occupies(self, room_id: str, stay: Interval) -> bool:
        return self.is_open() and self.physical_room_id == room_id and self.stay.overlaps(stay)
