import logging
from fastapi import FastAPI, HTTPException, Depends
from uuid import UUID
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional
from fastapi.security import OAuth2PasswordRequestForm

from api.schemas import (
    # Room types
    CreateRoomTypeRequest, UpdateRoomTypeRequest, RoomTypeResponse, UnitResponse,
    # Availability
    CheckAvailabilityRequest, AvailabilityResponse, DailyAvailabilityResponse,
    # Reservations
    CreateReservationRequest, ModifyReservationRequest, CancelReservationRequest,
    ReservationResponse,
    # Rooms & check-in
    CreateRoomRequest, RoomResponse, EligibleRoomResponse, EligibleRoomsResponse,
    CheckInRequest, ChangeRoomRequest, BindingResponse,
    # Auth
    Token, UserResponse
)

from api.dependencies import get_current_active_user, get_request_context, fake_users_db, get_user
from api.errors import inventory_error_handler
from infrastructure import config
from infrastructure.security import verify_password, create_access_token
from domain.auth import User, RequestContext
from domain.exceptions import InventoryError

from application.locks import KeyedLocks
from application.services import InventoryService, AvailabilityService, ReservationService, CheckInService
from infrastructure.repositories.in_memory_repositories import (
    InMemoryRoomTypeRepository, InMemoryClaimRepository, InMemoryBindingRepository, InMemoryRoomDirectory
)
from domain.enums import ReservationStatus, ReservationSource, RoomStatus, RoomChangeReason

logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)

app = FastAPI(
    title="Room Inventory API",
    description="Room-type inventory, availability and unit conflict engine",
    version="1.0.0"
)
app.add_exception_handler(InventoryError, inventory_error_handler)

# Initialize repositories
room_type_repo = InMemoryRoomTypeRepository()
claim_repo = InMemoryClaimRepository()
binding_repo = InMemoryBindingRepository()
room_directory = InMemoryRoomDirectory()

# One lock table for the whole process: every service serialises on it
locks = KeyedLocks()

# Dependency injection
def get_inventory_service() -> InventoryService:
    return InventoryService(room_type_repo, claim_repo, locks, max_units=config.MAX_UNITS_PER_ROOM_TYPE)

def get_availability_service() -> AvailabilityService:
    return AvailabilityService(room_type_repo, claim_repo)

def get_reservation_service() -> ReservationService:
    return ReservationService(
        room_type_repo, claim_repo, locks,
        retry_attempts=config.COMMIT_RETRY_ATTEMPTS,
        currency=config.DEFAULT_CURRENCY
    )

def get_check_in_service() -> CheckInService:
    return CheckInService(
        room_type_repo, claim_repo, binding_repo, room_directory, locks,
        retry_attempts=config.COMMIT_RETRY_ATTEMPTS
    )

# ============================================================================
# HEALTH & ENUM REFERENCE ENDPOINTS
# ============================================================================

@app.get("/api/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "message": "API is running"}

@app.get("/api/enums/reservation-status", tags=["Enum Reference"])
async def get_reservation_statuses():
    """Get all ReservationStatus enum values"""
    return {
        "values": [item.name for item in ReservationStatus],
        "description": "Reservation status values: CONFIRMED, CHECKED_IN, CHECKED_OUT, CANCELLED"
    }

@app.get("/api/enums/reservation-source", tags=["Enum Reference"])
async def get_reservation_sources():
    """Get all ReservationSource enum values"""
    return {
        "values": [item.name for item in ReservationSource],
        "description": "Reservation source values: DIRECT, WEBSITE, PHONE, WALK_IN, OTA"
    }

@app.get("/api/enums/room-status", tags=["Enum Reference"])
async def get_room_statuses():
    """Get all RoomStatus enum values"""
    return {
        "values": [item.name for item in RoomStatus],
        "description": "Room status values: AVAILABLE, OCCUPIED, CLEANING, OUT_OF_SERVICE"
    }

@app.get("/api/enums/room-change-reason", tags=["Enum Reference"])
async def get_room_change_reasons():
    """Get all RoomChangeReason enum values"""
    return {
        "values": [item.name for item in RoomChangeReason],
        "description": "Room change reasons: UPGRADE, DOWNGRADE, MAINTENANCE, GUEST_PREFERENCE, OTHER"
    }

# ============================================================================
# AUTH ENDPOINTS
# ============================================================================

@app.post("/token", response_model=Token, tags=["Auth"])
async def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends()):
    user = get_user(fake_users_db, form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=401,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    access_token_expires = timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = create_access_token(
        data={"sub": user.username}, expires_delta=access_token_expires
    )
    return {"access_token": access_token, "token_type": "bearer"}

@app.get("/users/me", response_model=UserResponse, tags=["Auth"])
async def read_users_me(current_user: User = Depends(get_current_active_user)):
    return current_user

# ============================================================================
# ROOM TYPE ENDPOINTS
# ============================================================================

@app.post("/api/room-types", response_model=RoomTypeResponse, status_code=201, tags=["Room Types"])
async def create_room_type(
    request: CreateRoomTypeRequest,
    service: InventoryService = Depends(get_inventory_service),
    context: RequestContext = Depends(get_request_context)
):
    """Create room type"""
    room_type = await service.create_room_type(
        name=request.name,
        qty=request.qty,
        price_per_night=request.price_per_night,
        max_people=request.max_people,
        room_type_id=request.room_type_id,
        context=context
    )
    return _room_type_to_response(room_type)

@app.get("/api/room-types", response_model=List[RoomTypeResponse], tags=["Room Types"])
async def list_room_types(
    service: InventoryService = Depends(get_inventory_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get all room types"""
    return [_room_type_to_response(rt) for rt in await service.list_room_types()]

@app.get("/api/room-types/{room_type_id}", response_model=RoomTypeResponse, tags=["Room Types"])
async def get_room_type(
    room_type_id: str,
    service: InventoryService = Depends(get_inventory_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get room type by ID"""
    return _room_type_to_response(await service.get_room_type(room_type_id))

@app.put("/api/room-types/{room_type_id}", response_model=RoomTypeResponse, tags=["Room Types"])
async def update_room_type(
    room_type_id: str,
    request: UpdateRoomTypeRequest,
    service: InventoryService = Depends(get_inventory_service),
    context: RequestContext = Depends(get_request_context)
):
    """Update room type; shrinking qty fails with 409 while removed units are booked"""
    room_type = await service.update_room_type(
        room_type_id,
        name=request.name,
        qty=request.qty,
        price_per_night=request.price_per_night,
        max_people=request.max_people,
        context=context
    )
    return _room_type_to_response(room_type)

@app.delete("/api/room-types/{room_type_id}", status_code=204, tags=["Room Types"])
async def delete_room_type(
    room_type_id: str,
    service: InventoryService = Depends(get_inventory_service),
    context: RequestContext = Depends(get_request_context)
):
    """Soft-delete room type"""
    await service.delete_room_type(room_type_id, context=context)

@app.get("/api/room-types/{room_type_id}/units", response_model=List[UnitResponse], tags=["Room Types"])
async def list_units(
    room_type_id: str,
    service: InventoryService = Depends(get_inventory_service),
    current_user: User = Depends(get_current_active_user)
):
    """List the derived units of a room type"""
    return [
        UnitResponse(room_type_id=unit.room_type_id, index=unit.index, key=unit.key)
        for unit in await service.list_units(room_type_id)
    ]

# ============================================================================
# AVAILABILITY ENDPOINTS
# ============================================================================

@app.post("/api/availability/check", response_model=AvailabilityResponse, tags=["Availability"])
async def check_availability(
    request: CheckAvailabilityRequest,
    service: AvailabilityService = Depends(get_availability_service),
    current_user: User = Depends(get_current_active_user)
):
    """Check free units of a room type for a stay"""
    result = await service.check_availability(
        request.room_type_id,
        request.check_in,
        request.check_out,
        request.units_requested,
        request.exclude_reservation_id
    )
    return _availability_to_response(result)

@app.get("/api/availability/search", response_model=List[AvailabilityResponse], tags=["Availability"])
async def search_availability(
    check_in: date,
    check_out: date,
    units_requested: int = 1,
    min_price: Optional[Decimal] = None,
    max_price: Optional[Decimal] = None,
    max_people: Optional[int] = None,
    service: AvailabilityService = Depends(get_availability_service),
    current_user: User = Depends(get_current_active_user)
):
    """Search room types with enough free units for a stay"""
    results = await service.search_available_room_types(
        check_in, check_out, units_requested,
        min_price=min_price, max_price=max_price, max_people=max_people
    )
    return [_availability_to_response(r) for r in results]

@app.get("/api/availability/{room_type_id}/daily", response_model=DailyAvailabilityResponse, tags=["Availability"])
async def get_daily_availability(
    room_type_id: str,
    check_in: date,
    check_out: date,
    service: AvailabilityService = Depends(get_availability_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get free units for each night of a range"""
    free_units = await service.daily_availability(room_type_id, check_in, check_out)
    return DailyAvailabilityResponse(
        room_type_id=room_type_id,
        check_in=check_in,
        check_out=check_out,
        free_units=free_units
    )

# ============================================================================
# RESERVATION ENDPOINTS
# ============================================================================

@app.post("/api/reservations", response_model=ReservationResponse, status_code=201, tags=["Reservations"])
async def create_reservation(
    request: CreateReservationRequest,
    service: ReservationService = Depends(get_reservation_service),
    context: RequestContext = Depends(get_request_context)
):
    """Create new reservation; a 409 response can be retried with force=true"""
    reservation = await service.create_reservation(
        room_type_id=request.room_type_id,
        check_in=request.check_in,
        check_out=request.check_out,
        units_requested=request.units_requested,
        explicit_unit_index=request.explicit_unit_index,
        force=request.force,
        reservation_source=request.reservation_source,
        context=context
    )
    return _reservation_to_response(reservation)

@app.get("/api/reservations", response_model=List[ReservationResponse], tags=["Reservations"])
async def get_all_reservations(
    room_type_id: Optional[str] = None,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get all reservations, optionally for one room type"""
    reservations = await service.list_reservations(room_type_id)
    return [_reservation_to_response(r) for r in reservations]

@app.get("/api/reservations/{reservation_id}", response_model=ReservationResponse, tags=["Reservations"])
async def get_reservation(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get reservation by ID"""
    return _reservation_to_response(await service.get_reservation(reservation_id))

@app.put("/api/reservations/{reservation_id}", response_model=ReservationResponse, tags=["Reservations"])
async def modify_reservation(
    reservation_id: UUID,
    request: ModifyReservationRequest,
    service: ReservationService = Depends(get_reservation_service),
    context: RequestContext = Depends(get_request_context)
):
    """Modify reservation dates, unit or units"""
    reservation = await service.modify_reservation(
        reservation_id,
        check_in=request.check_in,
        check_out=request.check_out,
        explicit_unit_index=request.explicit_unit_index,
        units_requested=request.units_requested,
        force=request.force,
        context=context
    )
    return _reservation_to_response(reservation)

@app.post("/api/reservations/{reservation_id}/cancel", response_model=ReservationResponse, tags=["Reservations"])
async def cancel_reservation(
    reservation_id: UUID,
    request: CancelReservationRequest,
    service: ReservationService = Depends(get_reservation_service),
    context: RequestContext = Depends(get_request_context)
):
    """Cancel reservation"""
    reservation = await service.cancel_reservation(reservation_id, request.reason, context=context)
    return _reservation_to_response(reservation)

# ============================================================================
# ROOM & CHECK-IN ENDPOINTS
# ============================================================================

@app.post("/api/rooms", response_model=RoomResponse, status_code=201, tags=["Rooms"])
async def register_room(
    request: CreateRoomRequest,
    service: CheckInService = Depends(get_check_in_service),
    current_user: User = Depends(get_current_active_user)
):
    """Register a physical room"""
    room = await service.register_room(
        room_number=request.room_number,
        room_type_id=request.room_type_id,
        unit_index=request.unit_index,
        floor=request.floor,
        features=request.features,
        status=request.status
    )
    return _room_to_response(room)

@app.get("/api/rooms", response_model=List[RoomResponse], tags=["Rooms"])
async def list_rooms(
    service: CheckInService = Depends(get_check_in_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get all physical rooms"""
    return [_room_to_response(r) for r in await service.list_rooms()]

@app.get("/api/reservations/{reservation_id}/eligible-rooms", response_model=EligibleRoomsResponse, tags=["Check-in"])
async def get_eligible_rooms(
    reservation_id: UUID,
    service: CheckInService = Depends(get_check_in_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get rooms the reservation can be checked into, best match first"""
    claim, eligible = await service.get_eligible_rooms(reservation_id)
    return EligibleRoomsResponse(
        reservation_id=claim.reservation_id,
        room_type_id=claim.room_type_id,
        check_in=claim.stay.check_in,
        check_out=claim.stay.check_out,
        rooms=[
            EligibleRoomResponse(
                room=_room_to_response(e.room),
                is_preferred=e.is_preferred,
                is_reserved_unit=e.is_reserved_unit
            )
            for e in eligible
        ]
    )

@app.post("/api/reservations/{reservation_id}/check-in", response_model=BindingResponse, tags=["Check-in"])
async def check_in_guest(
    reservation_id: UUID,
    request: CheckInRequest,
    service: CheckInService = Depends(get_check_in_service),
    context: RequestContext = Depends(get_request_context)
):
    """Check in guest to a physical room"""
    binding = await service.check_in(
        reservation_id, request.physical_room_id,
        at=request.checked_in_at, notes=request.notes, context=context
    )
    return _binding_to_response(binding)

@app.post("/api/reservations/{reservation_id}/change-room", response_model=BindingResponse, tags=["Check-in"])
async def change_room(
    reservation_id: UUID,
    request: ChangeRoomRequest,
    service: CheckInService = Depends(get_check_in_service),
    context: RequestContext = Depends(get_request_context)
):
    """Move a checked-in guest to another room"""
    binding = await service.change_room(
        reservation_id, request.new_physical_room_id,
        reason=request.reason, notes=request.notes, context=context
    )
    return _binding_to_response(binding)

@app.post("/api/reservations/{reservation_id}/check-out", response_model=BindingResponse, tags=["Check-in"])
async def check_out_guest(
    reservation_id: UUID,
    service: CheckInService = Depends(get_check_in_service),
    context: RequestContext = Depends(get_request_context)
):
    """Check out guest"""
    binding = await service.check_out(reservation_id, context=context)
    return _binding_to_response(binding)

@app.get("/api/reservations/{reservation_id}/bindings", response_model=List[BindingResponse], tags=["Check-in"])
async def get_binding_history(
    reservation_id: UUID,
    service: CheckInService = Depends(get_check_in_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get the room assignment history of a reservation"""
    return [_binding_to_response(b) for b in await service.binding_history(reservation_id)]

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def _room_type_to_response(room_type) -> RoomTypeResponse:
    """Convert RoomType entity to RoomTypeResponse"""
    return RoomTypeResponse(
        room_type_id=room_type.room_type_id,
        name=room_type.name,
        qty=room_type.qty,
        price_per_night=room_type.price_per_night,
        max_people=room_type.max_people,
        created_at=room_type.created_at,
        modified_at=room_type.modified_at,
        version=room_type.version
    )

def _availability_to_response(result) -> AvailabilityResponse:
    """Convert AvailabilityResult to AvailabilityResponse"""
    return AvailabilityResponse(
        room_type_id=result.room_type_id,
        room_type_name=result.room_type_name,
        price_per_night=result.price_per_night,
        check_in=result.check_in,
        check_out=result.check_out,
        units_requested=result.units_requested,
        free_units=result.free_units,
        total_units=result.total_units,
        available=result.available
    )

def _reservation_to_response(reservation) -> ReservationResponse:
    """Convert ReservationClaim entity to ReservationResponse"""
    return ReservationResponse(
        reservation_id=reservation.reservation_id,
        room_type_id=reservation.room_type_id,
        assigned_unit=reservation.assigned_unit.key if reservation.assigned_unit else None,
        units_requested=reservation.units_requested,
        check_in=reservation.stay.check_in,
        check_out=reservation.stay.check_out,
        nights=reservation.stay.nights(),
        status=reservation.status.value,
        forced=reservation.forced,
        overridden_reservation_ids=reservation.overridden_reservation_ids,
        total_amount=reservation.total_amount.amount,
        currency=reservation.total_amount.currency,
        reservation_source=reservation.reservation_source.value,
        cancel_reason=reservation.cancel_reason,
        created_at=reservation.created_at,
        modified_at=reservation.modified_at,
        created_by=reservation.created_by,
        version=reservation.version
    )

def _room_to_response(room) -> RoomResponse:
    """Convert PhysicalRoom to RoomResponse"""
    return RoomResponse(
        room_id=room.room_id,
        room_number=room.room_number,
        room_type_id=room.room_type_id,
        unit_index=room.unit_index,
        status=room.status.value,
        floor=room.floor,
        features=room.features
    )

def _binding_to_response(binding) -> BindingResponse:
    """Convert CheckInBinding to BindingResponse"""
    return BindingResponse(
        binding_id=binding.binding_id,
        reservation_id=binding.reservation_id,
        physical_room_id=binding.physical_room_id,
        check_in=binding.stay.check_in,
        check_out=binding.stay.check_out,
        bound_at=binding.bound_at,
        bound_by=binding.bound_by,
        assignment_type=binding.assignment_type.value,
        previous_room_id=binding.previous_room_id,
        notes=binding.notes,
        closed_at=binding.closed_at,
        close_reason=binding.close_reason.value if binding.close_reason else None
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
