"""Unit Assigner and Conflict Guard

UnitAssigner decides which unit (or type-level slot) a booking request
gets and reports any conflict it finds without acting on it. ConflictGuard
turns that report into a rejection, or into a forced assignment stamped for
audit when the caller passed ``force``.
"""
import logging
from pydantic import BaseModel
from typing import List, Optional
from uuid import UUID

from domain.availability import AvailabilityCalculator
from domain.exceptions import ValidationError, ConflictError, UnitConflict, CapacityExceeded
from domain.inventory import RoomTypeInventory
from domain.value_objects import Interval, UnitRef

logger = logging.getLogger(__name__)


class AssignmentRequest(BaseModel):
    """What the caller asked for"""
    explicit_unit_index: Optional[int] = None
    units_requested: int = 1
    force: bool = False


class Assignment(BaseModel):
    """Where the claim lands: a specific unit, or type-level slots when unit is None"""
    room_type_id: str
    unit: Optional[UnitRef] = None
    units_requested: int = 1
    forced: bool = False
    overridden_reservation_ids: List[UUID] = []

    def is_unassigned(self) -> bool:
        return self.unit is None


class AssignmentPlan:
    """An assignment together with the conflict that blocks it, if any"""

    def __init__(
        self,
        assignment: Assignment,
        violation: Optional[ConflictError] = None,
        conflicting_ids: Optional[List[UUID]] = None
    ):
        self.assignment = assignment
        self.violation = violation
        self.conflicting_ids = conflicting_ids or []

    @property
    def has_conflict(self) -> bool:
        return self.violation is not None


class UnitAssigner:
    """Resolves a request into an explicit unit, a first-fit unit or an unassigned claim"""

    def __init__(self, calculator: Optional[AvailabilityCalculator] = None):
        self.calculator = calculator or AvailabilityCalculator()

    def plan(
        self,
        inventory: RoomTypeInventory,
        stay: Interval,
        request: AssignmentRequest,
        exclude_reservation_id: Optional[UUID] = None
    ) -> AssignmentPlan:
        units = request.units_requested
        if units < 1:
            raise ValidationError("units_requested must be at least 1", {"units_requested": units})

        claims = inventory.claims_for(exclude_reservation_id)
        free = self.calculator.free_units(inventory.room_type, claims, stay)

        if request.explicit_unit_index is not None:
            return self._plan_explicit(inventory, stay, request.explicit_unit_index, units, free, exclude_reservation_id)

        # Single unit: first-fit on bound claims, but only while the type
        # itself still has a free slot.
        if units == 1 and free >= 1:
            unit = inventory.first_free_unit(stay, exclude_reservation_id)
            if unit is not None:
                return AssignmentPlan(Assignment(room_type_id=inventory.room_type_id, unit=unit))

        # Multi-unit requests and fragmented single-unit requests defer the
        # physical binding to check-in.
        assignment = Assignment(room_type_id=inventory.room_type_id, units_requested=units)
        if free >= units:
            return AssignmentPlan(assignment)

        blocking = [c.reservation_id for c in self.calculator.overlapping(claims, stay)]
        return AssignmentPlan(
            assignment,
            CapacityExceeded(
                f"Not enough units available. Requested: {units}, free: {free}",
                {
                    "room_type_id": inventory.room_type_id,
                    "units_requested": units,
                    "free_units": free,
                    "total_units": inventory.unit_count(),
                    "reservation_ids": [str(i) for i in blocking],
                }
            ),
            blocking
        )

    def _plan_explicit(
        self,
        inventory: RoomTypeInventory,
        stay: Interval,
        index: int,
        units: int,
        free: int,
        exclude_reservation_id: Optional[UUID]
    ) -> AssignmentPlan:
        if units != 1:
            raise ValidationError(
                "Explicit unit binding is only valid for single-unit requests",
                {"units_requested": units, "explicit_unit_index": index}
            )
        unit = inventory.unit_ref(index)
        assignment = Assignment(room_type_id=inventory.room_type_id, unit=unit)

        conflicts = [c.reservation_id for c in inventory.bound_claims(unit, stay, exclude_reservation_id)]
        if conflicts:
            return AssignmentPlan(
                assignment,
                UnitConflict(
                    f"Unit {unit.key} already has a reservation during this period",
                    {
                        "unit": unit.key,
                        "check_in": stay.check_in.isoformat(),
                        "check_out": stay.check_out.isoformat(),
                        "reservation_ids": [str(i) for i in conflicts],
                    }
                ),
                conflicts
            )

        if free < 1:
            blocking = [
                c.reservation_id
                for c in self.calculator.overlapping(inventory.claims_for(exclude_reservation_id), stay)
            ]
            return AssignmentPlan(
                assignment,
                CapacityExceeded(
                    f"Unit {unit.key} is free but room type {inventory.room_type_id} has no capacity left",
                    {
                        "room_type_id": inventory.room_type_id,
                        "unit": unit.key,
                        "units_requested": 1,
                        "free_units": free,
                        "total_units": inventory.unit_count(),
                        "reservation_ids": [str(i) for i in blocking],
                    }
                ),
                blocking
            )

        return AssignmentPlan(assignment)


class ConflictGuard:
    """Gates conflicting assignments behind the force flag

    Never moves other reservations to make room.
    """

    def __init__(self, assigner: Optional[UnitAssigner] = None):
        self.assigner = assigner or UnitAssigner()

    def resolve(
        self,
        inventory: RoomTypeInventory,
        stay: Interval,
        request: AssignmentRequest,
        exclude_reservation_id: Optional[UUID] = None
    ) -> Assignment:
        plan = self.assigner.plan(inventory, stay, request, exclude_reservation_id)
        return self.admit(plan, request.force)

    def admit(self, plan: AssignmentPlan, force: bool) -> Assignment:
        if not plan.has_conflict:
            return plan.assignment

        if not force:
            logger.info(
                "Rejected %s on room type %s: %s",
                plan.violation.code, plan.assignment.room_type_id, plan.violation.message
            )
            raise plan.violation

        logger.warning(
            "Forced %s override on room type %s (unit=%s, units=%d), overriding reservations %s",
            plan.violation.code,
            plan.assignment.room_type_id,
            plan.assignment.unit.key if plan.assignment.unit else None,
            plan.assignment.units_requested,
            [str(i) for i in plan.conflicting_ids],
        )
        return Assignment(
            room_type_id=plan.assignment.room_type_id,
            unit=plan.assignment.unit,
            units_requested=plan.assignment.units_requested,
            forced=True,
            overridden_reservation_ids=plan.conflicting_ids,
        )
