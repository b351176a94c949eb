"""
Payment models - card and wallet payment methods and provider round-trips.
"""
from pydantic import Field
from typing import Annotated, Literal, Optional, Union

from .base import CamelModel


PAYMENT_SUCCEEDED = "succeeded"


class PaymentDetails(CamelModel):
    """Outcome of a charge, recorded on the draft once the provider answers."""
    transaction_id: Optional[str] = None
    payment_method_id: Optional[str] = None
    status: Optional[str] = None
    amount_cents: Optional[int] = Field(None, description="Amount the charge was made for")

    @property
    def succeeded(self) -> bool:
        return self.status == PAYMENT_SUCCEEDED

    def covers(self, amount_cents: int) -> bool:
        """True when a successful charge was made for exactly ``amount_cents``."""
        return self.succeeded and self.amount_cents == amount_cents


class CardPayment(CamelModel):
    """Card payment. ``card_token`` is the provider token for the card UI input."""
    method: Literal["card"] = "card"
    card_token: Optional[str] = None
    card_number: Optional[str] = None
    expiry: Optional[str] = Field(None, description="MM/YY")
    cvv: Optional[str] = None
    cardholder: Optional[str] = None
    details: PaymentDetails = Field(default_factory=PaymentDetails)

    @property
    def has_card_fields(self) -> bool:
        return any(v is not None for v in (self.card_number, self.expiry, self.cvv))


class WalletPayment(CamelModel):
    """Alternative wallet payment, charged through the hosted wallet button."""
    method: Literal["wallet"] = "wallet"
    order_id: Optional[str] = Field(None, alias="orderID")
    details: PaymentDetails = Field(default_factory=PaymentDetails)


Payment = Annotated[Union[CardPayment, WalletPayment], Field(discriminator="method")]


class ChargeResult(CamelModel):
    """Result of a card or wallet charge."""
    success: bool
    transaction_id: Optional[str] = None
    status: Optional[str] = None
    amount_cents: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str) -> "ChargeResult":
        return cls(success=False, error=error)


# Request/Response bodies for /api/payments

class PaymentIntentRequest(CamelModel):
    amount: int = Field(..., gt=0, description="Amount in the smallest currency unit")
    currency: str = "usd"
    booking_id: Optional[str] = None
    customer_email: Optional[str] = None


class PaymentIntentResponse(CamelModel):
    success: bool = True
    client_secret: str
    payment_intent_id: str


class WalletOrderRequest(CamelModel):
    amount: int = Field(..., gt=0, description="Amount in the smallest currency unit")
    currency: str = "USD"
    booking_id: Optional[str] = None


class WalletOrderResponse(CamelModel):
    success: bool = True
    order_id: str = Field(..., alias="orderID")
    amount: int
    currency: str


class WalletCaptureRequest(CamelModel):
    order_id: str = Field(..., alias="orderID")


class WalletCaptureResponse(CamelModel):
    success: bool = True
    transaction_id: str
    message: str = "Payment captured successfully"


class RefundRequest(CamelModel):
    payment_intent_id: str
    amount: Optional[int] = Field(None, gt=0)


class RefundResponse(CamelModel):
    success: bool = True
    refund_id: str
    status: str
