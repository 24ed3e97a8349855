"""Domain Errors

Every rejected write surfaces one of these. Conflict errors are recoverable:
the caller may retry the same request with ``force=True`` after confirmation.
"""
from typing import Any, Dict, Optional


class InventoryError(Exception):
    """Base class for inventory engine errors"""
    code = "inventory_error"
    recoverable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(InventoryError):
    """Malformed range, non-positive qty/units or invalid status transition"""
    code = "validation_error"


class NotFound(InventoryError):
    """Unknown room type, unit, room or reservation"""
    code = "not_found"


class ConflictError(InventoryError):
    """Write blocked by existing claims; retry with force to override"""
    code = "conflict"
    recoverable = True


class UnitConflict(ConflictError):
    code = "unit_conflict"


class CapacityExceeded(ConflictError):
    code = "capacity_exceeded"


class InventoryInUse(InventoryError):
    """Room type shrink or delete would orphan active claims"""
    code = "inventory_in_use"


class NotEligible(InventoryError):
    code = "not_eligible"


class AlreadyBound(InventoryError):
    code = "already_bound"


class ConcurrentModification(InventoryError):
    """Claim set changed between read and commit"""
    code = "concurrent_modification"
