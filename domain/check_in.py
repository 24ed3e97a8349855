"""Check-in Assigner - binds a confirmed reservation to one physical room"""
from pydantic import BaseModel
from datetime import datetime
from typing import Iterable, List, Optional, Set

from domain.entities import ReservationClaim, PhysicalRoom, CheckInBinding
from domain.enums import ReservationStatus, AssignmentType, RoomChangeReason, BindingCloseReason
from domain.exceptions import ValidationError, NotEligible, AlreadyBound


class EligibleRoom(BaseModel):
    """A room the guest may be checked into, with its ranking flags"""
    room: PhysicalRoom
    is_preferred: bool = False
    is_reserved_unit: bool = False


_ASSIGNMENT_TYPE_BY_REASON = {
    RoomChangeReason.UPGRADE: AssignmentType.UPGRADE,
    RoomChangeReason.DOWNGRADE: AssignmentType.DOWNGRADE,
}


class CheckInAssigner:
    """Filters and ranks rooms for arrival, and builds binding records

    Any in-service room free during the stay is eligible. The room that
    realises the reserved unit comes first, then rooms of the reserved type,
    then everything else, each tier ordered by room number.
    """

    def eligible_rooms(
        self,
        claim: ReservationClaim,
        rooms: Iterable[PhysicalRoom],
        occupied_room_ids: Set[str]
    ) -> List[EligibleRoom]:
        eligible = [
            EligibleRoom(
                room=room,
                is_preferred=room.room_type_id == claim.room_type_id,
                is_reserved_unit=claim.assigned_unit is not None and room.realises(claim.assigned_unit),
            )
            for room in rooms
            if room.is_in_service() and room.room_id not in occupied_room_ids
        ]
        eligible.sort(key=lambda e: (not e.is_reserved_unit, not e.is_preferred, e.room.room_number))
        return eligible

    def ensure_eligible(self, room: PhysicalRoom, eligible: Iterable[EligibleRoom]) -> EligibleRoom:
        for candidate in eligible:
            if candidate.room.room_id == room.room_id:
                return candidate
        raise NotEligible(
            f"Room {room.room_number} is not eligible for this stay",
            {"room_id": room.room_id, "room_number": room.room_number, "status": room.status.value}
        )

    def bind(
        self,
        claim: ReservationClaim,
        room: PhysicalRoom,
        eligible: Iterable[EligibleRoom],
        existing: Optional[CheckInBinding],
        at: datetime,
        bound_by: str,
        notes: Optional[str] = None
    ) -> CheckInBinding:
        """Initial binding at arrival"""
        if existing is not None and existing.is_open():
            raise AlreadyBound(
                f"Reservation {claim.reservation_id} is already checked in to room {existing.physical_room_id}",
                {"reservation_id": str(claim.reservation_id), "room_id": existing.physical_room_id}
            )
        if claim.status != ReservationStatus.CONFIRMED:
            raise ValidationError(
                f"Cannot check in reservation with status {claim.status.value}. Must be CONFIRMED.",
                {"reservation_id": str(claim.reservation_id), "status": claim.status.value}
            )
        self.ensure_eligible(room, eligible)

        return CheckInBinding(
            reservation_id=claim.reservation_id,
            physical_room_id=room.room_id,
            stay=claim.stay,
            bound_at=at,
            bound_by=bound_by,
            assignment_type=AssignmentType.INITIAL,
            notes=notes,
        )

    def rebind(
        self,
        claim: ReservationClaim,
        current: Optional[CheckInBinding],
        new_room: PhysicalRoom,
        eligible: Iterable[EligibleRoom],
        reason: RoomChangeReason,
        at: datetime,
        bound_by: str,
        notes: Optional[str] = None
    ) -> CheckInBinding:
        """Room change: closes current binding in place, returns the new one"""
        if claim.status != ReservationStatus.CHECKED_IN or current is None or not current.is_open():
            raise ValidationError(
                f"Cannot change room. Reservation {claim.reservation_id} is not checked in",
                {"reservation_id": str(claim.reservation_id), "status": claim.status.value}
            )
        if new_room.room_id == current.physical_room_id:
            raise NotEligible(
                f"Guest is already in room {new_room.room_number}",
                {"room_id": new_room.room_id}
            )
        self.ensure_eligible(new_room, eligible)

        current.close(BindingCloseReason(reason.value), at)
        return CheckInBinding(
            reservation_id=claim.reservation_id,
            physical_room_id=new_room.room_id,
            stay=claim.stay,
            bound_at=at,
            bound_by=bound_by,
            assignment_type=_ASSIGNMENT_TYPE_BY_REASON.get(reason, AssignmentType.CHANGE),
            previous_room_id=current.physical_room_id,
            notes=notes,
        )
