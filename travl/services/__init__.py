"""Services for the travl booking service and its client."""
from .api_client import BookingAPIClient, BookingCreation, retry_request
from .booking_store import InMemoryBookingRepository, BookingRepository
from .booking_wizard import BookingWizard, WizardStep, WizardEvent
from .payment_gateway import PaymentGateway, validate_card, detect_card_type
from .payment_service import PaymentService
from .profiles import UserProfileStore

__all__ = [
    "BookingAPIClient",
    "BookingCreation",
    "retry_request",
    "InMemoryBookingRepository",
    "BookingRepository",
    "BookingWizard",
    "WizardStep",
    "WizardEvent",
    "PaymentGateway",
    "validate_card",
    "detect_card_type",
    "PaymentService",
    "UserProfileStore",
]
