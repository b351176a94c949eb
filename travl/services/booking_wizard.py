"""
Booking Wizard - Four-step booking flow.
Details -> Guests -> Payment -> Confirmation, one step at a time.
"""
import inspect
import logging
import re
from enum import Enum, IntEnum
from typing import Any, Callable, Optional

import httpx
from pydantic import BaseModel, Field

from ..errors import APIError, TravlError, WizardError
from ..models.booking import BookingDraft, Guest
from ..models.payment import CardPayment, ChargeResult, Payment, PaymentDetails, WalletPayment
from .api_client import BookingAPIClient
from .payment_gateway import PaymentGateway
from .profiles import UserProfileStore

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
STALE_PAYMENT_MESSAGE = "The booking total changed after payment. Please pay again."


class WizardStep(IntEnum):
    """Wizard steps, in order."""
    DETAILS = 1
    GUESTS = 2
    PAYMENT = 3
    CONFIRMATION = 4


STEP_LABELS = {
    WizardStep.DETAILS: "Details",
    WizardStep.GUESTS: "Guests",
    WizardStep.PAYMENT: "Payment",
    WizardStep.CONFIRMATION: "Confirmation",
}


class WizardEvent(str, Enum):
    """What happened on a wizard operation."""
    ADVANCED = "advanced"
    WENT_BACK = "went_back"
    VALIDATION_ERROR = "validation_error"
    PAYMENT_FAILED = "payment_failed"
    BOOKING_FAILED = "booking_failed"
    COMPLETED = "completed"


class StepResult(BaseModel):
    """Outcome of advance/go_back/submit."""
    event: WizardEvent
    step: WizardStep
    message: str = ""
    errors: list[str] = Field(default_factory=list)
    booking_id: Optional[str] = None
    used_fallback: bool = False

    @property
    def ok(self) -> bool:
        return self.event in (WizardEvent.ADVANCED, WizardEvent.WENT_BACK, WizardEvent.COMPLETED)


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email or ""))


def guest_errors(guest: Guest, position: int = 1) -> list[str]:
    errors = []
    if not guest.first_name.strip():
        errors.append(f"Guest {position}: first name is required")
    if not guest.last_name.strip():
        errors.append(f"Guest {position}: last name is required")
    if not is_valid_email(guest.email):
        errors.append(f"Guest {position}: a valid email is required")
    return errors


class BookingWizard:
    """
    Drives a booking draft through the four steps.

    Collaborators are passed in: the payment gateway charges cards and
    wallets, the API client stores the finished booking, and the optional
    profile store receives a copy of it for ``current_user``.
    """

    def __init__(
        self,
        draft: BookingDraft,
        gateway: PaymentGateway,
        api_client: BookingAPIClient,
        profiles: Optional[UserProfileStore] = None,
        current_user: Optional[str] = None,
        on_complete: Optional[Callable[[str], Any]] = None
    ):
        self.draft = draft
        self.gateway = gateway
        self.api_client = api_client
        self.profiles = profiles
        self.current_user = current_user
        self.on_complete = on_complete

        self.step = WizardStep.DETAILS
        self.error: Optional[str] = None

    @property
    def label(self) -> str:
        return STEP_LABELS[self.step]

    @property
    def is_complete(self) -> bool:
        return self.step == WizardStep.CONFIRMATION

    # Input

    def set_guests(self, guests: list[Guest]):
        self.draft.guests = list(guests)

    def select_payment(self, payment: Payment):
        self.draft.payment = payment

    async def pay_with_wallet(self) -> ChargeResult:
        """Run the wallet button flow and record its outcome on the draft."""
        if not isinstance(self.draft.payment, WalletPayment):
            self.draft.payment = WalletPayment()

        button = self.gateway.render_wallet_button(
            self.draft.amount_cents,
            self.draft.payment_reference,
            on_approve=self._record_charge,
        )
        return await button.click()

    def _record_charge(self, result: ChargeResult):
        payment = self.draft.payment
        if result.success:
            payment.details.transaction_id = result.transaction_id
            payment.details.status = result.status
            payment.details.amount_cents = result.amount_cents
            self.error = None
        else:
            payment.details.status = result.status or "failed"
            self.error = result.error

    # Validation

    def validate_step(self, step: Optional[WizardStep] = None) -> list[str]:
        """Return the problems blocking ``step`` (the current step by default)."""
        step = self.step if step is None else step
        draft = self.draft

        if step == WizardStep.DETAILS:
            errors = []
            if draft.destination is None:
                errors.append("Please select a destination")
            if draft.checkin is None:
                errors.append("Please select a check-in date")
            if draft.checkout is None:
                errors.append("Please select a check-out date")
            if draft.checkin and draft.checkout and draft.checkout <= draft.checkin:
                errors.append("Check-out must be after check-in")
            return errors

        if step == WizardStep.GUESTS:
            if not draft.guests:
                return ["Please add at least one guest"]
            errors = []
            for position, guest in enumerate(draft.guests, start=1):
                errors.extend(guest_errors(guest, position))
            return errors

        if step == WizardStep.PAYMENT:
            payment = draft.payment
            if payment is None:
                return ["Please select a payment method"]
            if self._is_paid(payment):
                return []
            if isinstance(payment, CardPayment):
                if payment.has_card_fields:
                    return self.gateway.validate_card(
                        payment.card_number or "", payment.expiry or "", payment.cvv or ""
                    )
                if not payment.card_token:
                    return ["Card details are required"]
            elif payment.details.succeeded:
                return [STALE_PAYMENT_MESSAGE]
            return []

        return []

    # Navigation

    async def advance(self) -> StepResult:
        """
        Validate the current step and move forward. From the payment step
        this submits the booking instead.
        """
        if self.step == WizardStep.CONFIRMATION:
            return self._result(WizardEvent.COMPLETED, booking_id=self.draft.booking_id)

        errors = self.validate_step()
        if errors:
            return self._fail(WizardEvent.VALIDATION_ERROR, "Please complete all required fields before proceeding.", errors)

        if self.step == WizardStep.PAYMENT:
            return await self.submit()

        self.step = WizardStep(self.step + 1)
        self.error = None
        return self._result(WizardEvent.ADVANCED, message=f"Step {int(self.step)}: {self.label}")

    def go_back(self) -> StepResult:
        if self.step > WizardStep.DETAILS:
            self.step = WizardStep(self.step - 1)
        self.error = None
        return self._result(WizardEvent.WENT_BACK, message=f"Step {int(self.step)}: {self.label}")

    # Submission

    async def submit(self) -> StepResult:
        """
        Charge (card only) and create the booking.

        Any failure leaves the wizard on the payment step with ``error`` set.
        A card already charged for the current total is not charged again on
        resubmit. If the total changed since, the earlier charge is refunded
        and the card charged for the new total.
        """
        if self.step != WizardStep.PAYMENT:
            raise WizardError(f"Cannot submit from the {self.label} step")

        errors = []
        for step in (WizardStep.DETAILS, WizardStep.GUESTS, WizardStep.PAYMENT):
            errors.extend(self.validate_step(step))
        if errors:
            return self._fail(WizardEvent.VALIDATION_ERROR, "Please complete all required fields before proceeding.", errors)

        draft = self.draft
        payment = draft.payment

        if isinstance(payment, CardPayment) and not self._is_paid(payment):
            if payment.details.succeeded:
                # charged for an earlier total
                refund_error = await self._refund_stale_charge(payment)
                if refund_error:
                    return self._fail(WizardEvent.PAYMENT_FAILED, refund_error)
            result = await self.gateway.charge(
                payment,
                draft.amount_cents,
                booking_id=draft.payment_reference,
                customer_email=draft.primary_guest.email,
            )
            if not result.success:
                return self._fail(WizardEvent.PAYMENT_FAILED, result.error or "Payment failed")
            payment.details.transaction_id = result.transaction_id
            payment.details.status = result.status
            payment.details.amount_cents = result.amount_cents

        if not self._is_paid(payment):
            return self._fail(WizardEvent.PAYMENT_FAILED, "Please complete the payment before booking.")

        try:
            creation = await self.api_client.create_booking(draft)
        except APIError as e:
            logger.error(f"Booking creation failed: {e}")
            return self._fail(WizardEvent.BOOKING_FAILED, f"Booking failed: {e.message}")
        except httpx.HTTPError as e:
            logger.error(f"Booking creation failed: {e!r}")
            return self._fail(WizardEvent.BOOKING_FAILED, "Booking failed: network error, please try again.")

        draft.booking_id = creation.booking.id
        self.step = WizardStep.CONFIRMATION
        self.error = None
        logger.info(f"Booking {draft.booking_id} confirmed (fallback={creation.used_fallback})")

        self._save_to_profile()
        await self._notify_complete()

        message = "Booking confirmed successfully"
        if creation.used_fallback:
            message += " (saved by the fallback service)"
        return self._result(
            WizardEvent.COMPLETED,
            message=message,
            booking_id=draft.booking_id,
            used_fallback=creation.used_fallback,
        )

    def _is_paid(self, payment: Payment) -> bool:
        return payment.details.covers(self.draft.amount_cents)

    async def _refund_stale_charge(self, payment: CardPayment) -> Optional[str]:
        """Refund a card charge made for an earlier total. Returns an error message on failure."""
        details = payment.details
        logger.warning(
            f"Total changed from {details.amount_cents} to {self.draft.amount_cents} cents, "
            f"refunding {details.transaction_id}"
        )
        try:
            await self.gateway.refund(details.transaction_id)
        except (APIError, httpx.HTTPError, ValueError) as e:
            logger.error(f"Refund of {details.transaction_id} failed: {e}")
            return "The booking total changed and the earlier payment could not be refunded. Please contact support."
        payment.details = PaymentDetails()
        return None

    def _save_to_profile(self):
        # Not transactional with the booking itself; a failure here is only logged
        if self.profiles is None or not self.current_user:
            return
        try:
            self.profiles.append_booking(self.current_user, self.draft.snapshot())
        except (TravlError, OSError) as e:
            logger.error(f"Could not save booking {self.draft.booking_id} to profile {self.current_user}: {e}")

    async def _notify_complete(self):
        if self.on_complete is None:
            return
        outcome = self.on_complete(self.draft.booking_id)
        if inspect.isawaitable(outcome):
            await outcome

    def _result(self, event: WizardEvent, **kwargs) -> StepResult:
        return StepResult(event=event, step=self.step, **kwargs)

    def _fail(self, event: WizardEvent, message: str, errors: Optional[list[str]] = None) -> StepResult:
        self.error = message
        logger.info(f"{self.label} step: {event.value}: {message}")
        return self._result(event, message=message, errors=errors or [message])
