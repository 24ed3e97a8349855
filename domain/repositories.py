"""Domain Repository Interfaces

The engine never talks to storage or the room directory directly; these
contracts are injected into the application services.
"""
from abc import ABC, abstractmethod
from typing import Optional, List
from uuid import UUID

from domain.entities import RoomType, ReservationClaim, PhysicalRoom, CheckInBinding
from domain.value_objects import Interval


class RoomTypeRepository(ABC):
    """Repository interface for RoomType Aggregate"""

    @abstractmethod
    async def save(self, room_type: RoomType) -> RoomType:
        """Save room type"""
        pass

    @abstractmethod
    async def find_by_id(self, room_type_id: str) -> Optional[RoomType]:
        """Find a room type that has not been deleted"""
        pass

    @abstractmethod
    async def find_all(self) -> List[RoomType]:
        """Find all room types that have not been deleted"""
        pass

    @abstractmethod
    async def update(self, room_type: RoomType) -> RoomType:
        """Update room type"""
        pass


class ClaimRepository(ABC):
    """Reservation ledger

    Each room type's claim set carries a revision that moves on every write.
    ``commit_claim`` raises ConcurrentModification when the revision no
    longer matches the one the caller validated against.
    """

    @abstractmethod
    async def load_active_claims(self, room_type_id: str) -> List[ReservationClaim]:
        """All non-cancelled claims of a room type"""
        pass

    @abstractmethod
    async def revision(self, room_type_id: str) -> int:
        """Current revision of the room type's claim set"""
        pass

    @abstractmethod
    async def commit_claim(self, claim: ReservationClaim, expected_revision: int) -> ReservationClaim:
        """Insert or replace a claim if the claim set is still at expected_revision"""
        pass

    @abstractmethod
    async def find_by_id(self, reservation_id: UUID) -> Optional[ReservationClaim]:
        """Find claim by reservation ID"""
        pass

    @abstractmethod
    async def find_by_room_type(self, room_type_id: str) -> List[ReservationClaim]:
        """All claims of a room type, cancelled ones included"""
        pass

    @abstractmethod
    async def find_all(self) -> List[ReservationClaim]:
        """Find all claims"""
        pass


class BindingRepository(ABC):
    """Check-in bindings, kept forever as room assignment history"""

    @abstractmethod
    async def load_binding(self, reservation_id: UUID) -> Optional[CheckInBinding]:
        """The open binding of a reservation, if any"""
        pass

    @abstractmethod
    async def commit_binding(self, binding: CheckInBinding) -> CheckInBinding:
        """Insert or replace a binding"""
        pass

    @abstractmethod
    async def history(self, reservation_id: UUID) -> List[CheckInBinding]:
        """Every binding of a reservation, oldest first"""
        pass

    @abstractmethod
    async def find_open(self) -> List[CheckInBinding]:
        """All open bindings"""
        pass


class RoomDirectory(ABC):
    """Physical-room directory"""

    @abstractmethod
    async def rooms_of_type(self, room_type_id: str) -> List[PhysicalRoom]:
        pass

    @abstractmethod
    async def all_rooms(self) -> List[PhysicalRoom]:
        pass

    @abstractmethod
    async def find_by_id(self, room_id: str) -> Optional[PhysicalRoom]:
        pass

    @abstractmethod
    async def occupancy_during(self, room_id: str, stay: Interval) -> bool:
        """Check if the directory reports the room unusable during stay"""
        pass

    @abstractmethod
    async def save(self, room: PhysicalRoom) -> PhysicalRoom:
        pass
