"""
Exceptions shared by the booking service and the booking client.
"""
from typing import Optional


class TravlError(Exception):
    """Base error. ``status_code`` is the HTTP status the server answers with."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BookingNotFoundError(TravlError):
    status_code = 404

    def __init__(self, booking_id: str):
        super().__init__("Booking not found")
        self.booking_id = booking_id


class BookingStateError(TravlError):
    """Booking is not in a state that allows the requested transition."""


class PaymentProviderError(TravlError):
    """Error reported by the card payment provider, message forwarded as is."""


class WalletOrderError(TravlError):
    """Wallet order could not be created or captured."""


class WizardError(TravlError):
    """Booking wizard used out of order."""


# Human-readable messages for HTTP failures
HTTP_ERROR_MESSAGES = {
    400: "Invalid request. Please check your input.",
    401: "Please log in to continue.",
    403: "You do not have permission to perform this action.",
    404: "The requested resource was not found.",
    408: "Request timeout. Please try again.",
    429: "Too many requests. Please try again later.",
    500: "Server error. Please try again later.",
    502: "Service temporarily unavailable.",
    503: "Service temporarily unavailable.",
    504: "Request timeout. Please try again.",
}


class APIError(TravlError):
    """Non-2xx response from the booking API."""

    def __init__(self, status_code: int, message: Optional[str] = None):
        super().__init__(
            message or HTTP_ERROR_MESSAGES.get(status_code, "An unexpected error occurred.")
        )
        self.status_code = status_code

    def __str__(self) -> str:
        return f"HTTP {self.status_code}: {self.message}"


class BackendUnavailableError(APIError):
    """Neither the booking backend nor its fallback accepted the request."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        status = cause.status_code if isinstance(cause, APIError) else 503
        super().__init__(status, message)
        self.cause = cause
