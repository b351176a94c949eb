"""
Booking Store - Server-side booking persistence.
Bookings live in process memory and are lost on restart.
"""
import logging
import time
from typing import Callable, Optional, Protocol

from ..errors import BookingNotFoundError, BookingStateError
from ..models.booking import BookingCreateRequest, BookingRecord, BookingStatus, utcnow

logger = logging.getLogger(__name__)


class BookingIdGenerator:
    """
    Issues ``TRV`` + 8 digit booking ids from the millisecond clock.

    Ids never repeat within a process: when two bookings land in the same
    millisecond the later one takes the next number.
    """

    PREFIX = "TRV"
    MODULUS = 100_000_000

    def __init__(self, clock: Optional[Callable[[], int]] = None):
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._last: Optional[int] = None

    def __call__(self) -> str:
        candidate = self._clock() % self.MODULUS
        if self._last is not None and candidate <= self._last:
            candidate = (self._last + 1) % self.MODULUS
        self._last = candidate
        return f"{self.PREFIX}{candidate:08d}"


class BookingRepository(Protocol):
    """Storage interface used by the booking routes."""

    def create(self, request: BookingCreateRequest) -> BookingRecord: ...

    def get_by_id(self, booking_id: str) -> Optional[BookingRecord]: ...

    def get_by_guest_email(self, email: str) -> list[BookingRecord]: ...

    def update_status(self, booking_id: str, status: BookingStatus) -> BookingRecord: ...

    def list_all(self) -> list[BookingRecord]: ...


class InMemoryBookingRepository:
    """Append-only, insertion-ordered booking store."""

    def __init__(self, id_generator: Optional[Callable[[], str]] = None):
        self._bookings: list[BookingRecord] = []
        self._generate_id = id_generator or BookingIdGenerator()

    def create(self, request: BookingCreateRequest) -> BookingRecord:
        """
        Store a booking. Status is always ``confirmed``: the caller is
        trusted to have completed the payment already.
        """
        now = utcnow()
        record = BookingRecord(
            **request.model_dump(),
            id=self._generate_id(),
            status=BookingStatus.CONFIRMED,
            created_at=now,
            updated_at=now,
        )
        self._bookings.append(record)
        logger.info(f"Booking {record.id} created ({len(record.guests)} guests, total {record.total_price})")
        return record

    def get_by_id(self, booking_id: str) -> Optional[BookingRecord]:
        for booking in self._bookings:
            if booking.id == booking_id:
                return booking
        return None

    def get_by_guest_email(self, email: str) -> list[BookingRecord]:
        return [booking for booking in self._bookings if booking.has_guest(email)]

    def update_status(self, booking_id: str, status: BookingStatus) -> BookingRecord:
        booking = self.get_by_id(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        booking.status = status
        booking.updated_at = utcnow()
        return booking

    def list_all(self) -> list[BookingRecord]:
        return list(self._bookings)

    def __len__(self) -> int:
        return len(self._bookings)


def cancel_booking(repository: BookingRepository, booking_id: str) -> BookingRecord:
    """Move a confirmed booking to ``cancelled``."""
    booking = repository.get_by_id(booking_id)
    if booking is None:
        raise BookingNotFoundError(booking_id)
    if booking.status == BookingStatus.CANCELLED:
        raise BookingStateError(f"Booking {booking_id} is already cancelled")
    booking = repository.update_status(booking_id, BookingStatus.CANCELLED)
    logger.info(f"Booking {booking_id} cancelled")
    return booking


# Global booking store
booking_store = InMemoryBookingRepository()


def get_booking_repository() -> BookingRepository:
    """Dependency returning the process-wide booking store."""
    return booking_store
