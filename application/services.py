"""Application Services - Business use cases

Every write that touches a room type's claim set runs under that room
type's lock and re-validates against a fresh read of the ledger before
committing. Reads never take a lock.
"""
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Awaitable, Callable, Dict, List, Optional, Tuple
from uuid import UUID

from application.locks import KeyedLocks, room_type_key, room_key
from domain.assignment import AssignmentRequest, Assignment, ConflictGuard
from domain.auth import RequestContext
from domain.availability import AvailabilityCalculator, AvailabilityResult
from domain.check_in import CheckInAssigner, EligibleRoom
from domain.entities import RoomType, ReservationClaim, PhysicalRoom, CheckInBinding
from domain.enums import (
    ReservationSource, ReservationStatus, RoomChangeReason, BindingCloseReason, RoomStatus
)
from domain.exceptions import ValidationError, NotFound, ConcurrentModification
from domain.inventory import RoomTypeInventory
from domain.repositories import RoomTypeRepository, ClaimRepository, BindingRepository, RoomDirectory
from domain.value_objects import Interval, UnitRef

logger = logging.getLogger(__name__)

ClaimBuilder = Callable[[RoomType, List[ReservationClaim]], Awaitable[ReservationClaim]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def _require_room_type(repository: RoomTypeRepository, room_type_id: str) -> RoomType:
    room_type = await repository.find_by_id(room_type_id)
    if not room_type:
        raise NotFound(f"Room type {room_type_id} not found", {"room_type_id": room_type_id})
    return room_type


async def _require_claim(repository: ClaimRepository, reservation_id: UUID) -> ReservationClaim:
    claim = await repository.find_by_id(reservation_id)
    if not claim:
        raise NotFound(f"Reservation {reservation_id} not found", {"reservation_id": str(reservation_id)})
    return claim


async def _commit_with_retry(
    room_types: RoomTypeRepository,
    claims: ClaimRepository,
    room_type_id: str,
    build: ClaimBuilder,
    attempts: int
) -> ReservationClaim:
    """Validate against a fresh snapshot and commit it at that snapshot's revision

    A revision mismatch means another writer got in between; the whole
    validation is redone, never just the insert.
    """
    for attempt in range(1, attempts + 1):
        revision = await claims.revision(room_type_id)
        room_type = await _require_room_type(room_types, room_type_id)
        active = await claims.load_active_claims(room_type_id)
        claim = await build(room_type, active)
        try:
            return await claims.commit_claim(claim, revision)
        except ConcurrentModification:
            if attempt >= attempts:
                raise
            logger.warning(
                "Claim set of room type %s moved during commit, retrying (%d/%d)",
                room_type_id, attempt, attempts
            )
    raise ValidationError("attempts must be at least 1", {"attempts": attempts})


class InventoryService:
    """Service for room type inventory management"""

    def __init__(
        self,
        room_type_repo: RoomTypeRepository,
        claim_repo: ClaimRepository,
        locks: Optional[KeyedLocks] = None,
        max_units: int = 99
    ):
        self.room_type_repo = room_type_repo
        self.claim_repo = claim_repo
        self.locks = locks or KeyedLocks()
        self.max_units = max_units

    def _validate_qty(self, qty: int) -> None:
        if qty < 1 or qty > self.max_units:
            raise ValidationError(f"qty must be between 1 and {self.max_units}", {"qty": qty})

    async def create_room_type(
        self,
        name: str,
        qty: int,
        price_per_night: Decimal,
        max_people: Optional[int] = None,
        room_type_id: Optional[str] = None,
        context: Optional[RequestContext] = None
    ) -> RoomType:
        """Create a room type with qty derived units"""
        context = context or RequestContext()
        self._validate_qty(qty)

        if room_type_id is not None:
            if "#" in room_type_id:
                raise ValidationError("room_type_id must not contain '#'", {"room_type_id": room_type_id})
            if await self.room_type_repo.find_by_id(room_type_id):
                raise ValidationError(f"Room type {room_type_id} already exists", {"room_type_id": room_type_id})

        fields = {"room_type_id": room_type_id} if room_type_id else {}
        room_type = RoomType(
            name=name,
            qty=qty,
            price_per_night=price_per_night,
            max_people=max_people,
            **fields
        )
        room_type = await self.room_type_repo.save(room_type)
        logger.info(
            "Room type %s created with qty=%d by %s", room_type.room_type_id, qty, context.acting_user
        )
        return room_type

    async def get_room_type(self, room_type_id: str) -> RoomType:
        return await _require_room_type(self.room_type_repo, room_type_id)

    async def list_room_types(self) -> List[RoomType]:
        return await self.room_type_repo.find_all()

    async def update_room_type(
        self,
        room_type_id: str,
        name: Optional[str] = None,
        qty: Optional[int] = None,
        price_per_night: Optional[Decimal] = None,
        max_people: Optional[int] = None,
        context: Optional[RequestContext] = None
    ) -> RoomType:
        """Update a room type; a shrink must keep every bound unit and the booked peak load"""
        context = context or RequestContext()
        if qty is not None:
            self._validate_qty(qty)

        async with self.locks.hold(room_type_key(room_type_id)):
            room_type = await _require_room_type(self.room_type_repo, room_type_id)
            if qty is not None and qty < room_type.qty:
                inventory = RoomTypeInventory(room_type, await self.claim_repo.load_active_claims(room_type_id))
                inventory.ensure_can_resize(qty)

            room_type.update(name=name, qty=qty, price_per_night=price_per_night, max_people=max_people)
            room_type = await self.room_type_repo.update(room_type)

        logger.info(
            "Room type %s updated (qty=%d, version=%d) by %s",
            room_type_id, room_type.qty, room_type.version, context.acting_user
        )
        return room_type

    async def delete_room_type(self, room_type_id: str, context: Optional[RequestContext] = None) -> None:
        """Soft-delete a room type once no confirmed or in-house claim refers to it"""
        context = context or RequestContext()
        async with self.locks.hold(room_type_key(room_type_id)):
            room_type = await _require_room_type(self.room_type_repo, room_type_id)
            inventory = RoomTypeInventory(room_type, await self.claim_repo.load_active_claims(room_type_id))
            inventory.ensure_can_delete()
            room_type.mark_deleted()
            await self.room_type_repo.update(room_type)
        logger.info("Room type %s deleted by %s", room_type_id, context.acting_user)

    async def unit_count(self, room_type_id: str) -> int:
        return (await _require_room_type(self.room_type_repo, room_type_id)).qty

    async def unit_ref(self, room_type_id: str, index: int) -> UnitRef:
        return (await _require_room_type(self.room_type_repo, room_type_id)).unit_ref(index)

    async def list_units(self, room_type_id: str) -> List[UnitRef]:
        return (await _require_room_type(self.room_type_repo, room_type_id)).unit_refs()


class AvailabilityService:
    """Service for availability queries (lock-free reads)"""

    def __init__(
        self,
        room_type_repo: RoomTypeRepository,
        claim_repo: ClaimRepository,
        calculator: Optional[AvailabilityCalculator] = None
    ):
        self.room_type_repo = room_type_repo
        self.claim_repo = claim_repo
        self.calculator = calculator or AvailabilityCalculator()

    async def check_availability(
        self,
        room_type_id: str,
        check_in: date,
        check_out: date,
        units_requested: int = 1,
        exclude_reservation_id: Optional[UUID] = None
    ) -> AvailabilityResult:
        """Free and total units of a room type for a stay"""
        if units_requested < 1:
            raise ValidationError("units_requested must be at least 1", {"units_requested": units_requested})
        stay = Interval(check_in=check_in, check_out=check_out)
        room_type = await _require_room_type(self.room_type_repo, room_type_id)
        return await self._availability(room_type, stay, units_requested, exclude_reservation_id)

    async def daily_availability(self, room_type_id: str, check_in: date, check_out: date) -> Dict[date, int]:
        """Free units for each night of the range"""
        stay = Interval(check_in=check_in, check_out=check_out)
        room_type = await _require_room_type(self.room_type_repo, room_type_id)
        claims = await self.claim_repo.load_active_claims(room_type_id)
        return self.calculator.daily_free_units(room_type, claims, stay)

    async def search_available_room_types(
        self,
        check_in: date,
        check_out: date,
        units_requested: int = 1,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        max_people: Optional[int] = None
    ) -> List[AvailabilityResult]:
        """Room types with at least units_requested free units for the whole stay"""
        if units_requested < 1:
            raise ValidationError("units_requested must be at least 1", {"units_requested": units_requested})
        stay = Interval(check_in=check_in, check_out=check_out)

        results = []
        for room_type in sorted(await self.room_type_repo.find_all(), key=lambda rt: rt.name):
            if min_price is not None and room_type.price_per_night < min_price:
                continue
            if max_price is not None and room_type.price_per_night > max_price:
                continue
            if max_people is not None and room_type.max_people is not None and room_type.max_people < max_people:
                continue

            result = await self._availability(room_type, stay, units_requested)
            if result.available:
                results.append(result)
        return results

    async def _availability(
        self,
        room_type: RoomType,
        stay: Interval,
        units_requested: int,
        exclude_reservation_id: Optional[UUID] = None
    ) -> AvailabilityResult:
        claims = await self.claim_repo.load_active_claims(room_type.room_type_id)
        return AvailabilityResult(
            room_type_id=room_type.room_type_id,
            room_type_name=room_type.name,
            price_per_night=room_type.price_per_night,
            check_in=stay.check_in,
            check_out=stay.check_out,
            units_requested=units_requested,
            free_units=self.calculator.free_units(room_type, claims, stay, exclude_reservation_id),
            total_units=room_type.qty,
        )


class ReservationService:
    """Service for reservation claims: booking, modification, cancellation"""

    def __init__(
        self,
        room_type_repo: RoomTypeRepository,
        claim_repo: ClaimRepository,
        locks: Optional[KeyedLocks] = None,
        guard: Optional[ConflictGuard] = None,
        retry_attempts: int = 3,
        currency: str = "IDR"
    ):
        self.room_type_repo = room_type_repo
        self.claim_repo = claim_repo
        self.locks = locks or KeyedLocks()
        self.guard = guard or ConflictGuard()
        self.retry_attempts = retry_attempts
        self.currency = currency

    async def create_reservation(
        self,
        room_type_id: str,
        check_in: date,
        check_out: date,
        units_requested: int = 1,
        explicit_unit_index: Optional[int] = None,
        force: bool = False,
        reservation_source: ReservationSource = ReservationSource.DIRECT,
        context: Optional[RequestContext] = None
    ) -> ReservationClaim:
        """Book capacity: validate, pick a unit, gate conflicts, commit"""
        context = context or RequestContext()
        stay = Interval(check_in=check_in, check_out=check_out)
        request = AssignmentRequest(
            explicit_unit_index=explicit_unit_index,
            units_requested=units_requested,
            force=force
        )

        async def build(room_type: RoomType, active: List[ReservationClaim]) -> ReservationClaim:
            assignment = self.guard.resolve(RoomTypeInventory(room_type, active), stay, request)
            return ReservationClaim.create(
                room_type=room_type,
                stay=stay,
                assigned_unit=assignment.unit,
                units_requested=assignment.units_requested,
                forced=assignment.forced,
                overridden_reservation_ids=assignment.overridden_reservation_ids,
                reservation_source=reservation_source,
                created_by=context.acting_user,
                currency=self.currency
            )

        async with self.locks.hold(room_type_key(room_type_id)):
            claim = await _commit_with_retry(
                self.room_type_repo, self.claim_repo, room_type_id, build, self.retry_attempts
            )

        logger.info(
            "Reservation %s committed on %s [%s..%s) unit=%s units=%d forced=%s by %s (request %s)",
            claim.reservation_id, room_type_id, stay.check_in, stay.check_out,
            claim.assigned_unit.key if claim.assigned_unit else None,
            claim.units_requested, claim.forced, context.acting_user, context.request_id
        )
        return claim

    async def modify_reservation(
        self,
        reservation_id: UUID,
        check_in: Optional[date] = None,
        check_out: Optional[date] = None,
        explicit_unit_index: Optional[int] = None,
        units_requested: Optional[int] = None,
        force: bool = False,
        context: Optional[RequestContext] = None
    ) -> ReservationClaim:
        """Move a confirmed reservation, re-validated with its own claim excluded

        Without an explicit unit the reservation keeps its current unit when
        that unit is still free, otherwise it is re-assigned first-fit.
        """
        context = context or RequestContext()
        existing = await _require_claim(self.claim_repo, reservation_id)
        existing.ensure_modifiable()

        async def build(room_type: RoomType, active: List[ReservationClaim]) -> ReservationClaim:
            claim = (await _require_claim(self.claim_repo, reservation_id)).model_copy(deep=True)
            claim.ensure_modifiable()
            stay = Interval(
                check_in=check_in or claim.stay.check_in,
                check_out=check_out or claim.stay.check_out
            )
            if units_requested is not None:
                units = units_requested
            elif explicit_unit_index is not None:
                units = 1
            else:
                units = claim.units_requested

            assignment = self._reassign(
                RoomTypeInventory(room_type, active), stay, claim, explicit_unit_index, units, force
            )
            claim.rebook(
                room_type,
                stay,
                assignment.unit,
                assignment.units_requested,
                assignment.forced,
                assignment.overridden_reservation_ids
            )
            return claim

        async with self.locks.hold(room_type_key(existing.room_type_id)):
            claim = await _commit_with_retry(
                self.room_type_repo, self.claim_repo, existing.room_type_id, build, self.retry_attempts
            )

        logger.info(
            "Reservation %s modified to [%s..%s) unit=%s by %s",
            reservation_id, claim.stay.check_in, claim.stay.check_out,
            claim.assigned_unit.key if claim.assigned_unit else None, context.acting_user
        )
        return claim

    def _reassign(
        self,
        inventory: RoomTypeInventory,
        stay: Interval,
        claim: ReservationClaim,
        explicit_unit_index: Optional[int],
        units: int,
        force: bool
    ) -> Assignment:
        if explicit_unit_index is None and claim.assigned_unit is not None and units == 1:
            keep = self.guard.assigner.plan(
                inventory,
                stay,
                AssignmentRequest(explicit_unit_index=claim.assigned_unit.index),
                claim.reservation_id
            )
            if not keep.has_conflict:
                return keep.assignment

        return self.guard.resolve(
            inventory,
            stay,
            AssignmentRequest(explicit_unit_index=explicit_unit_index, units_requested=units, force=force),
            claim.reservation_id
        )

    async def cancel_reservation(
        self,
        reservation_id: UUID,
        reason: str = "Guest requested cancellation",
        context: Optional[RequestContext] = None
    ) -> ReservationClaim:
        """Cancel a confirmed reservation; its capacity is released for good"""
        context = context or RequestContext()
        existing = await _require_claim(self.claim_repo, reservation_id)

        async def build(room_type: RoomType, active: List[ReservationClaim]) -> ReservationClaim:
            claim = (await _require_claim(self.claim_repo, reservation_id)).model_copy(deep=True)
            claim.cancel(reason)
            return claim

        async with self.locks.hold(room_type_key(existing.room_type_id)):
            claim = await _commit_with_retry(
                self.room_type_repo, self.claim_repo, existing.room_type_id, build, self.retry_attempts
            )

        logger.info("Reservation %s cancelled by %s", reservation_id, context.acting_user)
        return claim

    async def get_reservation(self, reservation_id: UUID) -> ReservationClaim:
        return await _require_claim(self.claim_repo, reservation_id)

    async def list_reservations(self, room_type_id: Optional[str] = None) -> List[ReservationClaim]:
        if room_type_id is not None:
            claims = await self.claim_repo.find_by_room_type(room_type_id)
        else:
            claims = await self.claim_repo.find_all()
        return sorted(claims, key=lambda c: (c.stay.check_in, c.created_at))


class CheckInService:
    """Service for arrival binding, room changes and departure"""

    def __init__(
        self,
        room_type_repo: RoomTypeRepository,
        claim_repo: ClaimRepository,
        binding_repo: BindingRepository,
        directory: RoomDirectory,
        locks: Optional[KeyedLocks] = None,
        assigner: Optional[CheckInAssigner] = None,
        retry_attempts: int = 3
    ):
        self.room_type_repo = room_type_repo
        self.claim_repo = claim_repo
        self.binding_repo = binding_repo
        self.directory = directory
        self.locks = locks or KeyedLocks()
        self.assigner = assigner or CheckInAssigner()
        self.retry_attempts = retry_attempts

    async def register_room(
        self,
        room_number: str,
        room_type_id: Optional[str] = None,
        unit_index: Optional[int] = None,
        floor: Optional[int] = None,
        features: Optional[List[str]] = None,
        status: RoomStatus = RoomStatus.AVAILABLE
    ) -> PhysicalRoom:
        """Add a room to the directory, optionally as the physical form of a unit"""
        if unit_index is not None:
            if room_type_id is None:
                raise ValidationError("unit_index requires room_type_id", {"unit_index": unit_index})
            unit = (await _require_room_type(self.room_type_repo, room_type_id)).unit_ref(unit_index)
            taken = [r for r in await self.directory.rooms_of_type(room_type_id) if r.realises(unit)]
            if taken:
                raise ValidationError(
                    f"Unit {unit} is already realised by room {taken[0].room_number}",
                    {"unit": unit.key, "room_id": taken[0].room_id}
                )
        elif room_type_id is not None:
            await _require_room_type(self.room_type_repo, room_type_id)

        room = PhysicalRoom(
            room_number=room_number,
            room_type_id=room_type_id,
            unit_index=unit_index,
            floor=floor,
            features=features or [],
            status=status
        )
        return await self.directory.save(room)

    async def list_rooms(self) -> List[PhysicalRoom]:
        return await self.directory.all_rooms()

    async def get_eligible_rooms(self, reservation_id: UUID) -> Tuple[ReservationClaim, List[EligibleRoom]]:
        """Rooms the reservation may be bound to, best match first"""
        claim = await _require_claim(self.claim_repo, reservation_id)
        if claim.status not in (ReservationStatus.CONFIRMED, ReservationStatus.CHECKED_IN):
            raise ValidationError(
                f"Cannot get eligible rooms. Reservation status is: {claim.status.value}",
                {"reservation_id": str(reservation_id), "status": claim.status.value}
            )
        return claim, await self._eligible(claim)

    async def _eligible(self, claim: ReservationClaim) -> List[EligibleRoom]:
        rooms = await self.directory.all_rooms()
        occupied = {
            b.physical_room_id for b in await self.binding_repo.find_open()
            if b.stay.overlaps(claim.stay)
        }
        for room in rooms:
            if room.room_id not in occupied and await self.directory.occupancy_during(room.room_id, claim.stay):
                occupied.add(room.room_id)
        return self.assigner.eligible_rooms(claim, rooms, occupied)

    async def _require_room(self, room_id: str) -> PhysicalRoom:
        room = await self.directory.find_by_id(room_id)
        if not room:
            raise NotFound(f"Room {room_id} not found", {"room_id": room_id})
        return room

    async def _transition(self, claim: ReservationClaim, apply: Callable[[ReservationClaim], None]) -> ReservationClaim:
        async def build(room_type: RoomType, active: List[ReservationClaim]) -> ReservationClaim:
            current = (await _require_claim(self.claim_repo, claim.reservation_id)).model_copy(deep=True)
            apply(current)
            return current

        return await _commit_with_retry(
            self.room_type_repo, self.claim_repo, claim.room_type_id, build, self.retry_attempts
        )

    async def check_in(
        self,
        reservation_id: UUID,
        physical_room_id: str,
        at: Optional[datetime] = None,
        notes: Optional[str] = None,
        context: Optional[RequestContext] = None
    ) -> CheckInBinding:
        """Bind a confirmed reservation to a physical room at arrival"""
        context = context or RequestContext()
        claim = await _require_claim(self.claim_repo, reservation_id)

        async with self.locks.hold(room_type_key(claim.room_type_id), room_key(physical_room_id)):
            room = await self._require_room(physical_room_id)
            claim = await _require_claim(self.claim_repo, reservation_id)
            existing = await self.binding_repo.load_binding(reservation_id)
            binding = self.assigner.bind(
                claim, room, await self._eligible(claim), existing, at or _now(), context.acting_user, notes
            )
            await self._transition(claim, lambda c: c.check_in())
            binding = await self.binding_repo.commit_binding(binding)

        logger.info(
            "Reservation %s checked in to room %s by %s", reservation_id, room.room_number, context.acting_user
        )
        return binding

    async def change_room(
        self,
        reservation_id: UUID,
        new_physical_room_id: str,
        reason: RoomChangeReason = RoomChangeReason.OTHER,
        notes: Optional[str] = None,
        at: Optional[datetime] = None,
        context: Optional[RequestContext] = None
    ) -> CheckInBinding:
        """Move a checked-in guest; the old binding is closed, not deleted"""
        context = context or RequestContext()
        claim = await _require_claim(self.claim_repo, reservation_id)

        async with self.locks.hold(room_type_key(claim.room_type_id), room_key(new_physical_room_id)):
            new_room = await self._require_room(new_physical_room_id)
            claim = await _require_claim(self.claim_repo, reservation_id)
            current = await self.binding_repo.load_binding(reservation_id)
            new_binding = self.assigner.rebind(
                claim, current, new_room, await self._eligible(claim),
                reason, at or _now(), context.acting_user, notes
            )
            await self.binding_repo.commit_binding(current)
            new_binding = await self.binding_repo.commit_binding(new_binding)

        logger.info(
            "Reservation %s moved from room %s to %s (%s) by %s",
            reservation_id, new_binding.previous_room_id, new_room.room_number,
            reason.value, context.acting_user
        )
        return new_binding

    async def check_out(
        self,
        reservation_id: UUID,
        at: Optional[datetime] = None,
        context: Optional[RequestContext] = None
    ) -> CheckInBinding:
        """Close the open binding and mark the reservation checked out"""
        context = context or RequestContext()
        claim = await _require_claim(self.claim_repo, reservation_id)

        async with self.locks.hold(room_type_key(claim.room_type_id)):
            binding = await self.binding_repo.load_binding(reservation_id)
            if binding is None:
                raise ValidationError(
                    f"Reservation {reservation_id} is not checked in",
                    {"reservation_id": str(reservation_id)}
                )
            await self._transition(claim, lambda c: c.check_out())
            binding.close(BindingCloseReason.CHECKOUT, at or _now())
            binding = await self.binding_repo.commit_binding(binding)

        logger.info("Reservation %s checked out by %s", reservation_id, context.acting_user)
        return binding

    async def binding_history(self, reservation_id: UUID) -> List[CheckInBinding]:
        await _require_claim(self.claim_repo, reservation_id)
        return await self.binding_repo.history(reservation_id)
