"""Tests for card validation and the payment gateway."""
import httpx
import pytest
from datetime import date

from travl.models.payment import CardPayment, ChargeResult, WalletPayment
from travl.services.api_client import BookingAPIClient
from travl.services.payment_gateway import (
    BAD_RESPONSE_MESSAGE,
    PaymentGateway,
    SimulatedCardProcessor,
    detect_card_type,
    format_card_number,
    is_valid_cvv,
    is_valid_expiry,
    luhn_valid,
    validate_card,
)


TODAY = date(2024, 6, 15)


class TestCardValidation:
    """Test the card validation helpers."""

    @pytest.mark.parametrize("number", [
        "4242 4242 4242 4242",
        "4111111111111111",
        "5555555555554444",
        "378282246310005",
        "6011111111111117",
    ])
    def test_luhn_valid_numbers(self, number):
        assert luhn_valid(number)
        assert "Invalid card number" not in validate_card(number, "12/30", "123", TODAY)

    @pytest.mark.parametrize("number", [
        "4242 4242 4242 4241",
        "1234567812345678",
        "4242-abcd",
        "",
    ])
    def test_luhn_invalid_numbers(self, number):
        assert not luhn_valid(number)
        assert "Invalid card number" in validate_card(number, "12/30", "123", TODAY)

    def test_expiry_current_month_accepted(self):
        assert is_valid_expiry("06/24", TODAY)
        assert is_valid_expiry("07/24", TODAY)
        assert is_valid_expiry("01/2030", TODAY)

    def test_expiry_rejected(self):
        assert not is_valid_expiry("05/24", TODAY)
        assert not is_valid_expiry("13/30", TODAY)
        assert not is_valid_expiry("1230", TODAY)
        assert not is_valid_expiry("", TODAY)

    def test_cvv(self):
        assert is_valid_cvv("123")
        assert is_valid_cvv("1234")
        assert not is_valid_cvv("12")
        assert not is_valid_cvv("12a")

    def test_validate_card_lists_every_violation(self):
        errors = validate_card("1234", "01/20", "1", TODAY)

        assert errors == ["Invalid card number", "Invalid expiry date", "Invalid CVV"]

    def test_validate_card_ok(self):
        assert validate_card("4242424242424242", "12/30", "123", TODAY) == []

    @pytest.mark.parametrize("number,expected", [
        ("4242424242424242", "visa"),
        ("5555 5555 5555 4444", "mastercard"),
        ("378282246310005", "amex"),
        ("6011111111111117", "discover"),
        ("6500000000000002", "discover"),
        ("30569309025904", "diners"),
        ("38520000023237", "diners"),
        ("3530111333300000", "jcb"),
        ("9999", "unknown"),
    ])
    def test_detect_card_type(self, number, expected):
        assert detect_card_type(number) == expected

    def test_format_card_number(self):
        assert format_card_number("4242424242424242") == "4242 4242 4242 4242"
        assert format_card_number("4242-42") == "4242 42"


def payments_backend(calls: list) -> httpx.MockTransport:
    """Minimal stand-in for the payment routes."""

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if request.url.path == "/api/payments/create-payment-intent":
            return httpx.Response(200, json={
                "success": True, "clientSecret": "pi_42_secret_x", "paymentIntentId": "pi_42",
            })
        if request.url.path == "/api/payments/create-paypal-order":
            return httpx.Response(200, json={
                "success": True, "orderID": "PAYPAL_1", "amount": 100, "currency": "USD",
            })
        if request.url.path == "/api/payments/capture-paypal-order":
            return httpx.Response(200, json={
                "success": True, "transactionId": "TXN_1", "message": "Payment captured successfully",
            })
        return httpx.Response(404, json={"success": False, "error": "Not found"})

    return httpx.MockTransport(handler)


class TestPaymentGateway:
    """Test charging through the gateway."""

    @pytest.mark.asyncio
    async def test_charge_card_success(self):
        calls = []
        async with BookingAPIClient(base_url="http://api.test", transport=payments_backend(calls)) as api:
            gateway = PaymentGateway(api)
            result = await gateway.charge_card("tok_visa", 68500, "usd", "REF1", "ada@example.com")

        assert result.success
        assert result.transaction_id == "pi_42"
        assert result.status == "succeeded"
        assert calls == ["/api/payments/create-payment-intent"]

    @pytest.mark.asyncio
    async def test_charge_card_declined(self):
        calls = []
        async with BookingAPIClient(base_url="http://api.test", transport=payments_backend(calls)) as api:
            gateway = PaymentGateway(api)
            result = await gateway.charge_card("tok_chargeDeclined", 1000)

        assert not result.success
        assert result.error == "Your card was declined."

    @pytest.mark.asyncio
    async def test_charge_card_intent_error(self):
        def handler(request):
            return httpx.Response(400, json={"success": False, "error": "Invalid API Key provided"})

        async with BookingAPIClient(base_url="http://api.test", transport=httpx.MockTransport(handler)) as api:
            result = await PaymentGateway(api).charge_card("tok_visa", 1000)

        assert not result.success
        assert result.error == "Invalid API Key provided"

    @pytest.mark.asyncio
    async def test_charge_card_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with BookingAPIClient(base_url="http://api.test", transport=httpx.MockTransport(handler)) as api:
            result = await PaymentGateway(api).charge_card("tok_visa", 1000)

        assert not result.success
        assert "try again" in result.error

    @pytest.mark.asyncio
    async def test_charge_card_not_succeeded(self):
        class PendingProcessor(SimulatedCardProcessor):
            async def confirm_payment(self, client_secret, payment_method_id):
                return {"id": "pi_42", "status": "requires_action"}

        async with BookingAPIClient(base_url="http://api.test", transport=payments_backend([])) as api:
            result = await PaymentGateway(api, card_processor=PendingProcessor()).charge_card("tok_visa", 1000)

        assert not result.success
        assert result.status == "requires_action"

    @pytest.mark.asyncio
    async def test_charge_wallet_creates_then_captures(self):
        calls = []
        async with BookingAPIClient(base_url="http://api.test", transport=payments_backend(calls)) as api:
            result = await PaymentGateway(api).charge_wallet(100, "usd", "REF1")

        assert result.success
        assert result.transaction_id == "TXN_1"
        assert calls == ["/api/payments/create-paypal-order", "/api/payments/capture-paypal-order"]

    @pytest.mark.asyncio
    async def test_charge_dispatches_on_method(self):
        calls = []
        async with BookingAPIClient(base_url="http://api.test", transport=payments_backend(calls)) as api:
            gateway = PaymentGateway(api)
            card = await gateway.charge(CardPayment(card_number="4242424242424242"), 1000)
            wallet = await gateway.charge(WalletPayment(), 1000)

        assert card.transaction_id == "pi_42"
        assert wallet.transaction_id == "TXN_1"

    @pytest.mark.asyncio
    async def test_wallet_button_calls_back(self):
        approved = []
        async with BookingAPIClient(base_url="http://api.test", transport=payments_backend([])) as api:
            button = PaymentGateway(api).render_wallet_button(100, "REF1", on_approve=approved.append)
            result = await button.click()

        assert approved == [result]
        assert isinstance(result, ChargeResult)
        assert result.success

    @pytest.mark.asyncio
    async def test_non_positive_amount(self):
        async with BookingAPIClient(base_url="http://api.test", transport=payments_backend([])) as api:
            result = await PaymentGateway(api).charge_card("tok_visa", 0)

        assert not result.success

    @pytest.mark.asyncio
    async def test_charge_records_amount(self):
        async with BookingAPIClient(base_url="http://api.test", transport=payments_backend([])) as api:
            gateway = PaymentGateway(api)
            card = await gateway.charge_card("tok_visa", 68500)
            wallet = await gateway.charge_wallet(12345)

        assert card.amount_cents == 68500
        assert wallet.amount_cents == 12345

    @pytest.mark.asyncio
    async def test_malformed_intent_response(self):
        def handler(request):
            return httpx.Response(200, json={"success": True})

        async with BookingAPIClient(base_url="http://api.test", transport=httpx.MockTransport(handler)) as api:
            result = await PaymentGateway(api).charge_card("tok_visa", 1000)

        assert not result.success
        assert result.error == BAD_RESPONSE_MESSAGE

    @pytest.mark.asyncio
    async def test_non_json_wallet_response(self):
        def handler(request):
            return httpx.Response(200, text="<html>maintenance</html>")

        async with BookingAPIClient(base_url="http://api.test", transport=httpx.MockTransport(handler)) as api:
            result = await PaymentGateway(api).charge_wallet(1000)

        assert not result.success
        assert result.error == BAD_RESPONSE_MESSAGE


class TestSimulatedCardProcessor:
    """Test the in-process card processor."""

    @pytest.mark.asyncio
    async def test_method_ids_count_up(self):
        processor = SimulatedCardProcessor()

        first = await processor.create_payment_method("tok_visa")
        second = await processor.create_payment_method("tok_visa")

        assert (first, second) == ("pm_sim_000001", "pm_sim_000002")
        assert await SimulatedCardProcessor().create_payment_method("tok_visa") == "pm_sim_000001"

    @pytest.mark.asyncio
    async def test_confirm_returns_intent_id(self):
        processor = SimulatedCardProcessor()
        method_id = await processor.create_payment_method("4242 4242 4242 4242")

        confirmed = await processor.confirm_payment("pi_7_secret_abc", method_id)

        assert confirmed == {"id": "pi_7", "status": "succeeded"}
