"""Data models for the travl booking service."""
from .booking import (
    BookingCreateRequest,
    BookingDraft,
    BookingRecord,
    BookingStatus,
    Destination,
    Guest,
)
from .payment import CardPayment, ChargeResult, Payment, PaymentDetails, WalletPayment

__all__ = [
    "BookingCreateRequest",
    "BookingDraft",
    "BookingRecord",
    "BookingStatus",
    "Destination",
    "Guest",
    "CardPayment",
    "WalletPayment",
    "Payment",
    "PaymentDetails",
    "ChargeResult",
]
