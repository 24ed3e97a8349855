"""Availability Calculator - sweep-line capacity over a date range"""
from collections import defaultdict
from datetime import date
from decimal import Decimal
from pydantic import BaseModel
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from domain.entities import RoomType, ReservationClaim
from domain.value_objects import Interval


class AvailabilityResult(BaseModel):
    """Free capacity of one room type over one stay"""
    room_type_id: str
    room_type_name: Optional[str] = None
    price_per_night: Optional[Decimal] = None
    check_in: date
    check_out: date
    units_requested: int = 1
    free_units: int
    total_units: int

    @property
    def available(self) -> bool:
        return self.free_units >= self.units_requested


class AvailabilityCalculator:
    """Computes free units of a room type from its claim set

    Bound claims weigh one unit, unassigned claims weigh ``units_requested``.
    Load is clipped to the queried range and the peak is found with a single
    sorted sweep over start/end events, O(n log n) in overlapping claims.
    """

    def overlapping(
        self,
        claims: Iterable[ReservationClaim],
        stay: Interval,
        exclude_reservation_id: Optional[UUID] = None
    ) -> List[ReservationClaim]:
        return [
            c for c in claims
            if c.occupies(stay) and c.reservation_id != exclude_reservation_id
        ]

    def peak_load(
        self,
        claims: Iterable[ReservationClaim],
        stay: Interval,
        exclude_reservation_id: Optional[UUID] = None
    ) -> int:
        """Maximum number of units in use on any single night of stay"""
        events: List[Tuple[date, int]] = []
        for claim in self.overlapping(claims, stay, exclude_reservation_id):
            events.append((max(claim.stay.check_in, stay.check_in), claim.load))
            events.append((min(claim.stay.check_out, stay.check_out), -claim.load))

        # Ends sort before starts on the same day: a checkout frees the unit
        # for that night's arrival.
        events.sort()
        current = peak = 0
        for _, delta in events:
            current += delta
            peak = max(peak, current)
        return peak

    def free_units(
        self,
        room_type: RoomType,
        claims: Iterable[ReservationClaim],
        stay: Interval,
        exclude_reservation_id: Optional[UUID] = None
    ) -> int:
        """qty minus peak load; clamps to 0 when forced overrides overfill"""
        return max(0, room_type.qty - self.peak_load(claims, stay, exclude_reservation_id))

    def daily_free_units(
        self,
        room_type: RoomType,
        claims: Iterable[ReservationClaim],
        stay: Interval,
        exclude_reservation_id: Optional[UUID] = None
    ) -> Dict[date, int]:
        """Free units for every night of stay"""
        deltas: Dict[date, int] = defaultdict(int)
        for claim in self.overlapping(claims, stay, exclude_reservation_id):
            deltas[max(claim.stay.check_in, stay.check_in)] += claim.load
            deltas[min(claim.stay.check_out, stay.check_out)] -= claim.load

        result: Dict[date, int] = {}
        load = 0
        for night in stay.each_night():
            load += deltas.get(night, 0)
            result[night] = max(0, room_type.qty - load)
        return result
