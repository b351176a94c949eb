"""
Booking routes - create, look up and cancel bookings.
"""
from fastapi import APIRouter, Depends

from ..errors import BookingNotFoundError
from ..models.booking import BookingCreateRequest, BookingListResponse, BookingResponse
from ..services.booking_store import BookingRepository, cancel_booking, get_booking_repository


router = APIRouter(prefix="/api/bookings", tags=["bookings"])


@router.post("/create", response_model=BookingResponse)
async def create_booking(
    request: BookingCreateRequest,
    repository: BookingRepository = Depends(get_booking_repository)
):
    """Store a booking whose payment the caller has already completed."""
    booking = repository.create(request)
    return BookingResponse(booking=booking, message="Booking created successfully")


@router.get("/user/{user_id}", response_model=BookingListResponse)
async def get_user_bookings(
    user_id: str,
    repository: BookingRepository = Depends(get_booking_repository)
):
    """Bookings with a guest whose email is ``user_id``."""
    return BookingListResponse(bookings=repository.get_by_guest_email(user_id))


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str,
    repository: BookingRepository = Depends(get_booking_repository)
):
    booking = repository.get_by_id(booking_id)
    if booking is None:
        raise BookingNotFoundError(booking_id)
    return BookingResponse(booking=booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel(
    booking_id: str,
    repository: BookingRepository = Depends(get_booking_repository)
):
    booking = cancel_booking(repository, booking_id)
    return BookingResponse(booking=booking, message="Booking cancelled successfully")
