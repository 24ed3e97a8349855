"""API Schemas - Request and Response DTOs"""
from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID
from typing import Any, Dict, List, Optional

from domain.enums import ReservationSource, RoomStatus, RoomChangeReason


# ============================================================================
# ROOM TYPE SCHEMAS
# ============================================================================

class CreateRoomTypeRequest(BaseModel):
    """Create room type request DTO"""
    room_type_id: Optional[str] = Field(None, description="Client-chosen id, generated when omitted")
    name: str = Field(min_length=1)
    qty: int = Field(ge=1, description="Number of interchangeable units")
    price_per_night: Decimal = Field(gt=0)
    max_people: Optional[int] = Field(None, ge=1)


class UpdateRoomTypeRequest(BaseModel):
    """Update room type request DTO"""
    name: Optional[str] = Field(None, min_length=1)
    qty: Optional[int] = Field(None, ge=1)
    price_per_night: Optional[Decimal] = Field(None, gt=0)
    max_people: Optional[int] = Field(None, ge=1)


class RoomTypeResponse(BaseModel):
    """Room type response DTO"""
    room_type_id: str
    name: str
    qty: int
    price_per_night: Decimal
    max_people: Optional[int] = None
    created_at: datetime
    modified_at: datetime
    version: int


class UnitResponse(BaseModel):
    """Derived unit DTO"""
    room_type_id: str
    index: int
    key: str


# ============================================================================
# AVAILABILITY SCHEMAS
# ============================================================================

class CheckAvailabilityRequest(BaseModel):
    """Check availability request DTO"""
    room_type_id: str
    check_in: date
    check_out: date
    units_requested: int = Field(ge=1, default=1)
    exclude_reservation_id: Optional[UUID] = None


class AvailabilityResponse(BaseModel):
    """Availability response DTO"""
    room_type_id: str
    room_type_name: Optional[str] = None
    price_per_night: Optional[Decimal] = None
    check_in: date
    check_out: date
    units_requested: int
    free_units: int
    total_units: int
    available: bool


class DailyAvailabilityResponse(BaseModel):
    """Per-night availability response DTO"""
    room_type_id: str
    check_in: date
    check_out: date
    free_units: Dict[date, int]


# ============================================================================
# RESERVATION SCHEMAS
# ============================================================================

class CreateReservationRequest(BaseModel):
    """Create reservation request DTO"""
    room_type_id: str
    check_in: date
    check_out: date
    units_requested: int = Field(ge=1, default=1)
    explicit_unit_index: Optional[int] = Field(None, ge=0)
    force: bool = Field(default=False, description="Override a unit or capacity conflict")
    reservation_source: ReservationSource = Field(default=ReservationSource.DIRECT, description="Source of reservation")


class ModifyReservationRequest(BaseModel):
    """Modify reservation request DTO"""
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    units_requested: Optional[int] = Field(None, ge=1)
    explicit_unit_index: Optional[int] = Field(None, ge=0)
    force: bool = False


class CancelReservationRequest(BaseModel):
    """Cancel reservation request DTO"""
    reason: str = "Guest requested cancellation"


class ReservationResponse(BaseModel):
    """Reservation response DTO"""
    reservation_id: UUID
    room_type_id: str
    assigned_unit: Optional[str] = None
    units_requested: int
    check_in: date
    check_out: date
    nights: int
    status: str
    forced: bool
    overridden_reservation_ids: List[UUID]
    total_amount: Decimal
    currency: str
    reservation_source: str
    cancel_reason: Optional[str] = None
    created_at: datetime
    modified_at: datetime
    created_by: str
    version: int


# ============================================================================
# ROOM & CHECK-IN SCHEMAS
# ============================================================================

class CreateRoomRequest(BaseModel):
    """Register physical room request DTO"""
    room_number: str = Field(min_length=1)
    room_type_id: Optional[str] = None
    unit_index: Optional[int] = Field(None, ge=0)
    floor: Optional[int] = None
    features: List[str] = []
    status: RoomStatus = RoomStatus.AVAILABLE


class RoomResponse(BaseModel):
    """Physical room response DTO"""
    room_id: str
    room_number: str
    room_type_id: Optional[str] = None
    unit_index: Optional[int] = None
    status: str
    floor: Optional[int] = None
    features: List[str] = []


class EligibleRoomResponse(BaseModel):
    """Eligible room DTO"""
    room: RoomResponse
    is_preferred: bool
    is_reserved_unit: bool


class EligibleRoomsResponse(BaseModel):
    """Eligible rooms for a reservation"""
    reservation_id: UUID
    room_type_id: str
    check_in: date
    check_out: date
    rooms: List[EligibleRoomResponse]


class CheckInRequest(BaseModel):
    """Check-in request DTO"""
    physical_room_id: str
    notes: Optional[str] = None
    checked_in_at: Optional[datetime] = None


class ChangeRoomRequest(BaseModel):
    """Room change request DTO"""
    new_physical_room_id: str
    reason: RoomChangeReason = RoomChangeReason.OTHER
    notes: Optional[str] = None


class BindingResponse(BaseModel):
    """Check-in binding DTO"""
    binding_id: UUID
    reservation_id: UUID
    physical_room_id: str
    check_in: date
    check_out: date
    bound_at: datetime
    bound_by: str
    assignment_type: str
    previous_room_id: Optional[str] = None
    notes: Optional[str] = None
    closed_at: Optional[datetime] = None
    close_reason: Optional[str] = None


# ============================================================================
# ERROR SCHEMAS
# ============================================================================

class ErrorResponse(BaseModel):
    """Error body returned for every rejected request"""
    error: str
    detail: str
    recoverable: bool = False
    details: Dict[str, Any] = {}


# ============================================================================
# AUTH SCHEMAS
# ============================================================================

class Token(BaseModel):
    """Token response DTO"""
    access_token: str
    token_type: str

class TokenData(BaseModel):
    """Token payload DTO"""
    username: Optional[str] = None

class UserResponse(BaseModel):
    """User response DTO"""
    user_id: UUID
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    disabled: bool
