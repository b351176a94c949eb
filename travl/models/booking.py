"""
Booking models - the client-side draft and the server-side booking record.
"""
from pydantic import AliasChoices, ConfigDict, Field, field_serializer
from typing import Optional, Union
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
import uuid

from .base import CamelModel
from .payment import Payment


TAX_RATE = Decimal("0.10")
SERVICE_FEE = Decimal("25")
CENTS = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookingStatus(str, Enum):
    """Server-side booking status."""
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class Destination(CamelModel):
    """Destination being booked."""
    id: Optional[str] = None
    name: str
    nightly_price: Decimal = Field(
        Decimal("0"), ge=0,
        validation_alias=AliasChoices("nightlyPrice", "nightly_price", "price"),
        description="Price per night"
    )
    image_url: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("imageUrl", "image_url", "image"),
    )

    @field_serializer("nightly_price")
    def _price_as_number(self, value: Decimal) -> float:
        return float(value)


class Guest(CamelModel):
    """A guest on the booking. The first guest is the primary contact."""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: Optional[str] = None
    special_requests: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class BookingCreateRequest(CamelModel):
    """Body of POST /api/bookings/create."""
    destination: Union[Destination, str, None] = None
    checkin: date
    checkout: date
    travelers: int = Field(1, ge=1)
    guests: list[Guest] = Field(default_factory=list)
    total_price: float = Field(0.0, ge=0)
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None


class BookingRecord(BookingCreateRequest):
    """Confirmed booking as stored by the server."""
    id: str
    status: BookingStatus = BookingStatus.CONFIRMED
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def has_guest(self, email: str) -> bool:
        """Exact, case-sensitive match on any guest email."""
        return any(guest.email == email for guest in self.guests)


class BookingResponse(CamelModel):
    success: bool = True
    booking: BookingRecord
    message: Optional[str] = None


class BookingListResponse(CamelModel):
    success: bool = True
    bookings: list[BookingRecord] = Field(default_factory=list)


class BookingDraft(CamelModel):
    """
    In-progress reservation owned by the booking wizard.

    ``total_price`` is derived on every read so it always reflects the
    current destination and dates.
    """
    model_config = ConfigDict(validate_assignment=True)

    destination: Optional[Destination] = None
    checkin: Optional[date] = None
    checkout: Optional[date] = None
    travelers: int = Field(1, ge=1)
    guests: list[Guest] = Field(default_factory=list)
    payment: Optional[Payment] = None
    booking_id: Optional[str] = None
    payment_reference: str = Field(
        default_factory=lambda: "REF" + uuid.uuid4().hex[:10].upper(),
        description="Client reference sent as the booking id in payment metadata"
    )

    @property
    def nights(self) -> int:
        if self.checkin is None or self.checkout is None:
            return 0
        return max((self.checkout - self.checkin).days, 0)

    @property
    def base_price(self) -> Decimal:
        if self.destination is None:
            return Decimal("0")
        return self.destination.nightly_price * self.nights

    @property
    def taxes(self) -> Decimal:
        return (self.base_price * TAX_RATE).quantize(CENTS, rounding=ROUND_HALF_UP)

    @property
    def total_price(self) -> Decimal:
        """nights x nightly price, plus 10% tax and the flat service fee."""
        if self.nights == 0:
            return Decimal("0.00")
        total = self.base_price * (1 + TAX_RATE) + SERVICE_FEE
        return total.quantize(CENTS, rounding=ROUND_HALF_UP)

    @property
    def amount_cents(self) -> int:
        return int(self.total_price * 100)

    @property
    def primary_guest(self) -> Optional[Guest]:
        return self.guests[0] if self.guests else None

    def to_booking_request(self) -> BookingCreateRequest:
        """Build the booking-creation body from the finished draft."""
        details = self.payment.details if self.payment else None
        return BookingCreateRequest(
            destination=self.destination,
            checkin=self.checkin,
            checkout=self.checkout,
            travelers=self.travelers,
            guests=list(self.guests),
            total_price=float(self.total_price),
            payment_method=self.payment.method if self.payment else None,
            transaction_id=details.transaction_id if details else None,
        )

    def snapshot(self) -> dict:
        """Denormalized copy of the confirmed booking for the user's profile."""
        return {
            "id": self.booking_id,
            "destination": self.destination.to_wire() if self.destination else None,
            "checkin": self.checkin.isoformat() if self.checkin else None,
            "checkout": self.checkout.isoformat() if self.checkout else None,
            "travelers": self.travelers,
            "guests": [guest.to_wire() for guest in self.guests],
            "totalPrice": float(self.total_price),
            # card fields stay out of the profile
            "payment": {
                "method": self.payment.method,
                "details": self.payment.details.to_wire(),
            } if self.payment else None,
            "status": BookingStatus.CONFIRMED.value,
            "bookedAt": utcnow().isoformat(),
        }
