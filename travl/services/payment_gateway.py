"""
Payment Gateway - Client-side card and wallet charging.

Card charges run in three steps: the card processor turns the card input
into a payment method, the backend creates a payment intent, and the card
processor confirms the intent with its client secret. Wallet charges create
an order on the backend and capture it straight away.
"""
import asyncio
import inspect
import logging
import re
import itertools
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Optional, Protocol

import httpx
import stripe

from ..config import settings
from ..errors import APIError, PaymentProviderError, TravlError
from ..models.payment import PAYMENT_SUCCEEDED, CardPayment, ChargeResult, Payment, WalletPayment
from .api_client import BookingAPIClient

logger = logging.getLogger(__name__)


NETWORK_ERROR_MESSAGE = "Network error. Please check your connection and try again."
BAD_RESPONSE_MESSAGE = "Unexpected response from the payment service. Please try again."

# Checked in order; first match wins
CARD_TYPE_PATTERNS = [
    ("visa", re.compile(r"^4")),
    ("mastercard", re.compile(r"^5[1-5]")),
    ("amex", re.compile(r"^3[47]")),
    ("discover", re.compile(r"^6(?:011|5)")),
    ("diners", re.compile(r"^3(?:0[0-5]|[68])")),
    ("jcb", re.compile(r"^35")),
]

_EXPIRY_RE = re.compile(r"^\s*(\d{1,2})\s*/\s*(\d{2}|\d{4})\s*$")


def _clean_number(card_number: str) -> str:
    return re.sub(r"[\s-]", "", card_number or "")


def luhn_valid(card_number: str) -> bool:
    """Luhn checksum: double every second digit from the right, subtract 9 above 9."""
    digits = _clean_number(card_number)
    if not digits.isdigit():
        return False

    total = 0
    for position, char in enumerate(reversed(digits)):
        digit = int(char)
        if position % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def is_valid_expiry(expiry: str, today: Optional[date] = None) -> bool:
    """``MM/YY`` (or ``MM/YYYY``) not earlier than the current month."""
    match = _EXPIRY_RE.match(expiry or "")
    if not match:
        return False
    month, year = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        return False
    if year < 100:
        year += 2000
    today = today or date.today()
    return (year, month) >= (today.year, today.month)


def is_valid_cvv(cvv: str) -> bool:
    return bool(re.fullmatch(r"\d{3,4}", cvv or ""))


def validate_card(
    card_number: str,
    expiry: str,
    cvv: str,
    today: Optional[date] = None
) -> list[str]:
    """Return the violated card rules; empty when the card looks valid."""
    errors = []
    if not luhn_valid(card_number):
        errors.append("Invalid card number")
    if not is_valid_expiry(expiry, today):
        errors.append("Invalid expiry date")
    if not is_valid_cvv(cvv):
        errors.append("Invalid CVV")
    return errors


def detect_card_type(card_number: str) -> str:
    digits = _clean_number(card_number)
    for card_type, pattern in CARD_TYPE_PATTERNS:
        if pattern.match(digits):
            return card_type
    return "unknown"


def format_card_number(card_number: str) -> str:
    """Group the digits in fours, as typed into the card field."""
    digits = re.sub(r"\D", "", card_number or "")[:19]
    return " ".join(digits[i:i + 4] for i in range(0, len(digits), 4))


def _intent_id(client_secret: str) -> str:
    return client_secret.split("_secret_")[0]


class CardProcessor(Protocol):
    """Client side of the card provider."""

    async def create_payment_method(self, card_token: str) -> str: ...

    async def confirm_payment(self, client_secret: str, payment_method_id: str) -> dict: ...


class SimulatedCardProcessor:
    """
    In-process card processor for demos and tests. Payment method ids
    count up from ``pm_sim_000001`` per instance.

    Declines Stripe's decline test tokens and test card number; anything
    else succeeds.
    """

    DECLINES = {
        "tok_chargeDeclined": "Your card was declined.",
        "tok_chargeDeclinedInsufficientFunds": "Your card has insufficient funds.",
        "4000000000000002": "Your card was declined.",
    }

    def __init__(self):
        self._methods: dict[str, str] = {}
        self._counter = itertools.count(1)

    async def create_payment_method(self, card_token: str) -> str:
        if not card_token:
            raise PaymentProviderError("Card details are required")
        method_id = f"pm_sim_{next(self._counter):06d}"
        self._methods[method_id] = _clean_number(card_token)
        return method_id

    async def confirm_payment(self, client_secret: str, payment_method_id: str) -> dict:
        token = self._methods.get(payment_method_id)
        if token is None:
            raise PaymentProviderError("No such payment method")
        if token in self.DECLINES:
            raise PaymentProviderError(self.DECLINES[token])
        return {"id": _intent_id(client_secret), "status": PAYMENT_SUCCEEDED}


class StripeCardProcessor:
    """Card processor backed by the Stripe API."""

    def __init__(self, api_key: Optional[str] = None, return_url: Optional[str] = None):
        self.api_key = api_key or settings.stripe_secret_key or None
        self.return_url = return_url

    async def create_payment_method(self, card_token: str) -> str:
        try:
            method = await asyncio.to_thread(
                stripe.PaymentMethod.create,
                type="card",
                card={"token": card_token},
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            raise PaymentProviderError(getattr(e, "user_message", None) or str(e)) from e
        return method.id

    async def confirm_payment(self, client_secret: str, payment_method_id: str) -> dict:
        params = {"payment_method": payment_method_id, "api_key": self.api_key}
        if self.return_url:
            params["return_url"] = self.return_url
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.confirm, _intent_id(client_secret), **params
            )
        except stripe.StripeError as e:
            raise PaymentProviderError(getattr(e, "user_message", None) or str(e)) from e
        return {"id": intent.id, "status": intent.status}


@dataclass
class WalletButton:
    """Hosted wallet button. ``click()`` runs the charge and hands the result to ``on_approve``."""
    gateway: "PaymentGateway"
    amount_cents: int
    currency: str
    booking_id: Optional[str]
    on_approve: Callable[[ChargeResult], Any]

    async def click(self) -> ChargeResult:
        result = await self.gateway.charge_wallet(self.amount_cents, self.currency, self.booking_id)
        outcome = self.on_approve(result)
        if inspect.isawaitable(outcome):
            await outcome
        return result


class PaymentGateway:
    """Charges card and wallet payments through the booking backend."""

    def __init__(
        self,
        api_client: BookingAPIClient,
        card_processor: Optional[CardProcessor] = None,
        currency: Optional[str] = None
    ):
        self.api_client = api_client
        self.card_processor = card_processor or SimulatedCardProcessor()
        self.currency = currency or settings.currency

    # Validation helpers
    validate_card = staticmethod(validate_card)
    detect_card_type = staticmethod(detect_card_type)
    luhn_valid = staticmethod(luhn_valid)

    async def charge(
        self,
        payment: Payment,
        amount_cents: int,
        currency: Optional[str] = None,
        booking_id: Optional[str] = None,
        customer_email: Optional[str] = None
    ) -> ChargeResult:
        """Charge ``payment`` according to its method."""
        if isinstance(payment, CardPayment):
            return await self.charge_card(
                payment.card_token or payment.card_number,
                amount_cents, currency, booking_id, customer_email
            )
        if isinstance(payment, WalletPayment):
            return await self.charge_wallet(amount_cents, currency, booking_id)
        raise TypeError(f"Unsupported payment method: {type(payment).__name__}")

    async def charge_card(
        self,
        card_token: Optional[str],
        amount_cents: int,
        currency: Optional[str] = None,
        booking_id: Optional[str] = None,
        customer_email: Optional[str] = None
    ) -> ChargeResult:
        """
        Charge a card for ``amount_cents``.

        Returns:
            ChargeResult with the payment intent id as ``transaction_id``,
            or ``success=False`` and the error message
        """
        if amount_cents <= 0:
            return ChargeResult.failed("Amount must be positive")

        try:
            method_id = await self.card_processor.create_payment_method(card_token)
            intent = await self.api_client.create_payment_intent(
                amount_cents,
                currency=currency or self.currency,
                booking_id=booking_id,
                customer_email=customer_email,
            )
            confirmed = await self.card_processor.confirm_payment(intent.client_secret, method_id)
        except TravlError as e:
            logger.warning(f"Card payment for booking {booking_id} failed: {e.message}")
            return ChargeResult.failed(e.message)
        except httpx.HTTPError as e:
            logger.error(f"Card payment for booking {booking_id} failed: {e!r}")
            return ChargeResult.failed(NETWORK_ERROR_MESSAGE)
        except ValueError as e:
            # malformed 2xx body
            logger.error(f"Card payment for booking {booking_id} got a bad response: {e}")
            return ChargeResult.failed(BAD_RESPONSE_MESSAGE)

        status = confirmed.get("status")
        if status != PAYMENT_SUCCEEDED:
            logger.warning(f"Card payment {confirmed.get('id')} ended as {status}")
            return ChargeResult(
                success=False,
                transaction_id=confirmed.get("id"),
                status=status,
                error=f"Payment was not completed (status: {status})",
            )

        logger.info(f"Card payment {confirmed['id']} succeeded for booking {booking_id}")
        return ChargeResult(
            success=True, transaction_id=confirmed["id"], status=status, amount_cents=amount_cents
        )

    async def charge_wallet(
        self,
        amount_cents: int,
        currency: Optional[str] = None,
        booking_id: Optional[str] = None
    ) -> ChargeResult:
        """
        Create a wallet order and capture it immediately.
        There is no buyer approval redirect in between.
        """
        try:
            order = await self.api_client.create_wallet_order(
                amount_cents, currency=currency or self.currency, booking_id=booking_id
            )
            captured = await self.api_client.capture_wallet_order(order.order_id)
        except APIError as e:
            logger.warning(f"Wallet payment for booking {booking_id} failed: {e.message}")
            return ChargeResult.failed(e.message)
        except httpx.HTTPError as e:
            logger.error(f"Wallet payment for booking {booking_id} failed: {e!r}")
            return ChargeResult.failed(NETWORK_ERROR_MESSAGE)
        except ValueError as e:
            logger.error(f"Wallet payment for booking {booking_id} got a bad response: {e}")
            return ChargeResult.failed(BAD_RESPONSE_MESSAGE)

        logger.info(f"Wallet order {order.order_id} captured as {captured.transaction_id}")
        return ChargeResult(
            success=True,
            transaction_id=captured.transaction_id,
            status=PAYMENT_SUCCEEDED,
            amount_cents=amount_cents,
        )

    def render_wallet_button(
        self,
        amount_cents: int,
        booking_id: Optional[str],
        on_approve: Callable[[ChargeResult], Any],
        currency: Optional[str] = None
    ) -> WalletButton:
        return WalletButton(
            gateway=self,
            amount_cents=amount_cents,
            currency=currency or self.currency,
            booking_id=booking_id,
            on_approve=on_approve,
        )

    async def refund(self, payment_intent_id: str, amount_cents: Optional[int] = None):
        """Refund a card payment. Errors propagate as APIError."""
        return await self.api_client.refund_payment(payment_intent_id, amount_cents)
