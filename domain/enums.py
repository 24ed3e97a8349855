"""Domain Enums"""
from enum import Enum


class ReservationStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    CANCELLED = "CANCELLED"


class ReservationSource(str, Enum):
    DIRECT = "DIRECT"
    WEBSITE = "WEBSITE"
    PHONE = "PHONE"
    WALK_IN = "WALK_IN"
    OTA = "OTA"


class RoomStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    OCCUPIED = "OCCUPIED"
    CLEANING = "CLEANING"
    OUT_OF_SERVICE = "OUT_OF_SERVICE"


class AssignmentType(str, Enum):
    INITIAL = "INITIAL"
    CHANGE = "CHANGE"
    UPGRADE = "UPGRADE"
    DOWNGRADE = "DOWNGRADE"


class RoomChangeReason(str, Enum):
    UPGRADE = "UPGRADE"
    DOWNGRADE = "DOWNGRADE"
    MAINTENANCE = "MAINTENANCE"
    GUEST_PREFERENCE = "GUEST_PREFERENCE"
    OTHER = "OTHER"


class BindingCloseReason(str, Enum):
    CHECKOUT = "CHECKOUT"
    UPGRADE = "UPGRADE"
    DOWNGRADE = "DOWNGRADE"
    MAINTENANCE = "MAINTENANCE"
    GUEST_PREFERENCE = "GUEST_PREFERENCE"
    OTHER = "OTHER"
