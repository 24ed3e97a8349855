"""In-Memory Repository Implementations"""
import logging
from collections import defaultdict
from typing import Optional, List, Dict
from uuid import UUID

from domain.repositories import ClaimRepository, RoomTypeRepository, BindingRepository, RoomDirectory
from domain.entities import RoomType, ReservationClaim, PhysicalRoom, CheckInBinding
from domain.enums import RoomStatus
from domain.exceptions import ConcurrentModification, NotFound
from domain.value_objects import Interval

logger = logging.getLogger(__name__)


class InMemoryRoomTypeRepository(RoomTypeRepository):
    """In-memory implementation of RoomTypeRepository"""

    def __init__(self):
        self._storage: Dict[str, RoomType] = {}

    async def save(self, room_type: RoomType) -> RoomType:
        """Save room type to memory"""
        self._storage[room_type.room_type_id] = room_type
        return room_type

    async def find_by_id(self, room_type_id: str) -> Optional[RoomType]:
        room_type = self._storage.get(room_type_id)
        if room_type is None or room_type.is_deleted():
            return None
        return room_type

    async def find_all(self) -> List[RoomType]:
        return [rt for rt in self._storage.values() if not rt.is_deleted()]

    async def update(self, room_type: RoomType) -> RoomType:
        if room_type.room_type_id in self._storage:
            self._storage[room_type.room_type_id] = room_type
            return room_type
        raise NotFound(f"Room type {room_type.room_type_id} not found", {"room_type_id": room_type.room_type_id})


class InMemoryClaimRepository(ClaimRepository):
    """In-memory reservation ledger with a revision counter per room type"""

    def __init__(self):
        self._storage: Dict[UUID, ReservationClaim] = {}
        self._revisions: Dict[str, int] = defaultdict(int)

    async def load_active_claims(self, room_type_id: str) -> List[ReservationClaim]:
        return [
            c for c in self._storage.values()
            if c.room_type_id == room_type_id and c.is_active()
        ]

    async def revision(self, room_type_id: str) -> int:
        return self._revisions[room_type_id]

    async def commit_claim(self, claim: ReservationClaim, expected_revision: int) -> ReservationClaim:
        current = self._revisions[claim.room_type_id]
        if current != expected_revision:
            raise ConcurrentModification(
                f"Claim set of room type {claim.room_type_id} changed during validation",
                {"room_type_id": claim.room_type_id, "expected": expected_revision, "actual": current}
            )
        self._storage[claim.reservation_id] = claim
        self._revisions[claim.room_type_id] = current + 1
        logger.debug("Committed claim %s at revision %d", claim.reservation_id, current + 1)
        return claim

    async def find_by_id(self, reservation_id: UUID) -> Optional[ReservationClaim]:
        return self._storage.get(reservation_id)

    async def find_by_room_type(self, room_type_id: str) -> List[ReservationClaim]:
        return [c for c in self._storage.values() if c.room_type_id == room_type_id]

    async def find_all(self) -> List[ReservationClaim]:
        return list(self._storage.values())


class InMemoryBindingRepository(BindingRepository):
    """In-memory implementation of BindingRepository"""

    def __init__(self):
        self._storage: Dict[UUID, CheckInBinding] = {}

    async def load_binding(self, reservation_id: UUID) -> Optional[CheckInBinding]:
        for binding in self._storage.values():
            if binding.reservation_id == reservation_id and binding.is_open():
                return binding
        return None

    async def commit_binding(self, binding: CheckInBinding) -> CheckInBinding:
        self._storage[binding.binding_id] = binding
        return binding

    async def history(self, reservation_id: UUID) -> List[CheckInBinding]:
        bindings = [b for b in self._storage.values() if b.reservation_id == reservation_id]
        return sorted(bindings, key=lambda b: b.bound_at)

    async def find_open(self) -> List[CheckInBinding]:
        return [b for b in self._storage.values() if b.is_open()]


class InMemoryRoomDirectory(RoomDirectory):
    """In-memory physical-room directory

    Out-of-service rooms are reported occupied for any stay.
    """

    def __init__(self):
        self._storage: Dict[str, PhysicalRoom] = {}

    async def rooms_of_type(self, room_type_id: str) -> List[PhysicalRoom]:
        return [r for r in self._storage.values() if r.room_type_id == room_type_id]

    async def all_rooms(self) -> List[PhysicalRoom]:
        return sorted(self._storage.values(), key=lambda r: r.room_number)

    async def find_by_id(self, room_id: str) -> Optional[PhysicalRoom]:
        return self._storage.get(room_id)

    async def occupancy_during(self, room_id: str, stay: Interval) -> bool:
        room = self._storage.get(room_id)
        if room is None:
            return False
        return room.status == RoomStatus.OUT_OF_SERVICE

    async def save(self, room: PhysicalRoom) -> PhysicalRoom:
        self._storage[room.room_id] = room
        return room
