"""
Payment Service - Server-side payment provider passthrough.
Card payments go to Stripe; the wallet provider is simulated in process.
"""
import logging
import time
from collections import OrderedDict
from typing import Optional

import stripe

from ..config import settings
from ..errors import PaymentProviderError, WalletOrderError

logger = logging.getLogger(__name__)

_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(number: int) -> str:
    if number == 0:
        return "0"
    out = []
    while number:
        number, rem = divmod(number, 36)
        out.append(_DIGITS[rem])
    return "".join(reversed(out))


class _TimestampIds:
    """``prefix`` + base36 millisecond timestamp, strictly increasing per instance."""

    def __init__(self, prefix: str):
        self.prefix = prefix
        self._last = 0

    def __call__(self) -> str:
        stamp = max(int(time.time() * 1000), self._last + 1)
        self._last = stamp
        return f"{self.prefix}{_base36(stamp)}"


class PaymentService:
    """Creates payment intents and refunds, and runs wallet orders."""

    def __init__(self, api_key: Optional[str] = None, max_orders: int = 1000):
        self.api_key = api_key if api_key is not None else settings.stripe_secret_key
        # Wallet orders awaiting capture, and orderID -> transactionId of captured ones.
        # Both keep at most max_orders entries, oldest dropped first.
        self.max_orders = max_orders
        self._wallet_orders: OrderedDict[str, dict] = OrderedDict()
        self._captured_orders: OrderedDict[str, str] = OrderedDict()
        self._order_ids = _TimestampIds("PAYPAL_")
        self._transaction_ids = _TimestampIds("TXN_")

    def create_payment_intent(
        self,
        amount_cents: int,
        currency: str = "usd",
        booking_id: Optional[str] = None,
        customer_email: Optional[str] = None
    ) -> dict:
        """
        Create a Stripe PaymentIntent for ``amount_cents``.

        Returns:
            Dict with ``client_secret`` and ``payment_intent_id``
        """
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=currency,
                metadata={
                    "bookingId": booking_id or "",
                    "customerEmail": customer_email or "",
                },
                automatic_payment_methods={"enabled": True},
                api_key=self.api_key or None,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe payment intent error: {e}")
            raise PaymentProviderError(getattr(e, "user_message", None) or str(e)) from e

        logger.info(f"Payment intent {intent.id} created for booking {booking_id} ({amount_cents} {currency})")
        return {
            "client_secret": intent.client_secret,
            "payment_intent_id": intent.id,
        }

    def refund(self, payment_intent_id: str, amount_cents: Optional[int] = None) -> dict:
        """Refund a payment intent, fully when ``amount_cents`` is None."""
        params = {"payment_intent": payment_intent_id}
        if amount_cents is not None:
            params["amount"] = amount_cents
        try:
            refund = stripe.Refund.create(api_key=self.api_key or None, **params)
        except stripe.StripeError as e:
            logger.error(f"Stripe refund error for {payment_intent_id}: {e}")
            raise PaymentProviderError(getattr(e, "user_message", None) or str(e)) from e

        logger.info(f"Refund {refund.id} for {payment_intent_id}: {refund.status}")
        return {"refund_id": refund.id, "status": refund.status}

    def create_wallet_order(
        self,
        amount_cents: int,
        currency: str = "USD",
        booking_id: Optional[str] = None
    ) -> dict:
        """Create a (simulated) wallet order awaiting capture."""
        if amount_cents <= 0:
            raise WalletOrderError("Order amount must be positive")
        order_id = self._order_ids()
        order = {
            "order_id": order_id,
            "amount": amount_cents,
            "currency": currency,
            "booking_id": booking_id,
        }
        self._remember(self._wallet_orders, order_id, order)
        logger.info(f"Wallet order {order_id} created for booking {booking_id}")
        return dict(order)

    def capture_wallet_order(self, order_id: str) -> dict:
        """Capture a wallet order. Each order can be captured once."""
        if order_id in self._captured_orders:
            raise WalletOrderError(f"Wallet order {order_id} already captured")
        order = self._wallet_orders.pop(order_id, None)
        if order is None:
            raise WalletOrderError(f"Wallet order {order_id} not found")

        transaction_id = self._transaction_ids()
        self._remember(self._captured_orders, order_id, transaction_id)
        logger.info(f"Wallet order {order_id} captured as {transaction_id}")
        return {"transaction_id": transaction_id}

    def _remember(self, orders: OrderedDict, order_id: str, value):
        orders[order_id] = value
        while len(orders) > self.max_orders:
            dropped, _ = orders.popitem(last=False)
            logger.debug(f"Forgetting wallet order {dropped}")

    def construct_webhook_event(self, payload: bytes, signature: Optional[str], secret: str):
        """Verify a Stripe webhook signature and parse the event."""
        return stripe.Webhook.construct_event(payload, signature, secret)


# Global payment service instance
payment_service: Optional[PaymentService] = None


def get_payment_service() -> PaymentService:
    """Get or create the global payment service."""
    global payment_service
    if payment_service is None:
        payment_service = PaymentService()
    return payment_service
