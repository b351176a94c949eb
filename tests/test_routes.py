"""Tests for the HTTP routes."""
import hashlib
import hmac
import json
import time
from types import SimpleNamespace
from unittest.mock import patch

import stripe

from travl.config import settings
from travl.models.booking import BookingStatus


BOOKING_BODY = {
    "destination": {"id": "bali", "name": "Bali", "nightlyPrice": 200},
    "checkin": "2024-01-01",
    "checkout": "2024-01-04",
    "travelers": 1,
    "guests": [{"firstName": "Ada", "lastName": "Lovelace", "email": "ada@example.com"}],
    "totalPrice": 685.0,
    "paymentMethod": "card",
    "transactionId": "pi_test123",
}


def sign(payload: str, secret: str) -> str:
    timestamp = int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


class TestBookingRoutes:
    """Test /api/bookings."""

    def test_create_booking(self, client):
        response = client.post("/api/bookings/create", json=BOOKING_BODY)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["booking"]["id"].startswith("TRV")
        assert data["booking"]["status"] == "confirmed"
        assert data["booking"]["totalPrice"] == 685.0
        assert data["booking"]["guests"][0]["email"] == "ada@example.com"
        assert "createdAt" in data["booking"]

    def test_create_booking_invalid_body(self, client):
        response = client.post("/api/bookings/create", json={"destination": "Bali"})

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert "checkin" in response.json()["error"]

    def test_get_booking(self, client):
        booking_id = client.post("/api/bookings/create", json=BOOKING_BODY).json()["booking"]["id"]

        response = client.get(f"/api/bookings/{booking_id}")

        assert response.status_code == 200
        assert response.json()["booking"]["id"] == booking_id

    def test_get_unknown_booking_is_404(self, client):
        response = client.get("/api/bookings/TRV99999999")

        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Booking not found"}

    def test_user_bookings_by_guest_email(self, client):
        client.post("/api/bookings/create", json=BOOKING_BODY)
        other = dict(BOOKING_BODY, guests=[{"firstName": "Bob", "lastName": "B", "email": "bob@example.com"}])
        client.post("/api/bookings/create", json=other)

        response = client.get("/api/bookings/user/ada@example.com")

        assert response.status_code == 200
        bookings = response.json()["bookings"]
        assert len(bookings) == 1
        assert bookings[0]["guests"][0]["firstName"] == "Ada"

    def test_cancel_booking(self, client, repository):
        booking_id = client.post("/api/bookings/create", json=BOOKING_BODY).json()["booking"]["id"]

        response = client.post(f"/api/bookings/{booking_id}/cancel")

        assert response.status_code == 200
        assert response.json()["booking"]["status"] == "cancelled"
        assert repository.get_by_id(booking_id).status == BookingStatus.CANCELLED

        again = client.post(f"/api/bookings/{booking_id}/cancel")
        assert again.status_code == 400
        assert again.json()["success"] is False


class TestPaymentRoutes:
    """Test /api/payments."""

    def test_create_payment_intent(self, client, stripe_intent):
        response = client.post("/api/payments/create-payment-intent", json={
            "amount": 68500,
            "currency": "usd",
            "bookingId": "REF1",
            "customerEmail": "ada@example.com",
        })

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "clientSecret": "pi_test123_secret_abc",
            "paymentIntentId": "pi_test123",
        }
        kwargs = stripe_intent.call_args.kwargs
        assert kwargs["amount"] == 68500
        assert kwargs["metadata"] == {"bookingId": "REF1", "customerEmail": "ada@example.com"}
        assert kwargs["automatic_payment_methods"] == {"enabled": True}

    def test_payment_intent_provider_error(self, client):
        error = stripe.InvalidRequestError("Amount must be at least $0.50 usd", "amount")
        with patch("stripe.PaymentIntent.create", side_effect=error):
            response = client.post("/api/payments/create-payment-intent", json={"amount": 10})

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Amount must be at least $0.50 usd"}

    def test_payment_intent_requires_positive_amount(self, client):
        response = client.post("/api/payments/create-payment-intent", json={"amount": 0})

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_wallet_order_and_capture(self, client):
        order = client.post("/api/payments/create-paypal-order", json={"amount": 68500, "bookingId": "REF1"})

        assert order.status_code == 200
        order_data = order.json()
        assert order_data["orderID"].startswith("PAYPAL_")
        assert order_data["amount"] == 68500
        assert order_data["currency"] == "USD"

        capture = client.post("/api/payments/capture-paypal-order", json={"orderID": order_data["orderID"]})

        assert capture.status_code == 200
        assert capture.json()["transactionId"].startswith("TXN_")
        assert capture.json()["message"] == "Payment captured successfully"

    def test_wallet_capture_twice_rejected(self, client):
        order_id = client.post("/api/payments/create-paypal-order", json={"amount": 100}).json()["orderID"]
        client.post("/api/payments/capture-paypal-order", json={"orderID": order_id})

        response = client.post("/api/payments/capture-paypal-order", json={"orderID": order_id})

        assert response.status_code == 400
        assert "already captured" in response.json()["error"]

    def test_wallet_capture_unknown_order(self, client):
        response = client.post("/api/payments/capture-paypal-order", json={"orderID": "PAYPAL_nope"})

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_refund(self, client):
        refund = SimpleNamespace(id="re_1", status="succeeded")
        with patch("stripe.Refund.create", return_value=refund) as create:
            response = client.post("/api/payments/refund", json={"paymentIntentId": "pi_1", "amount": 500})

        assert response.status_code == 200
        assert response.json() == {"success": True, "refundId": "re_1", "status": "succeeded"}
        assert create.call_args.kwargs["payment_intent"] == "pi_1"
        assert create.call_args.kwargs["amount"] == 500


class TestWebhooks:
    """Test /webhooks/stripe."""

    def test_bad_signature_rejected(self, client, monkeypatch):
        monkeypatch.setattr(settings, "stripe_webhook_secret", "whsec_test")
        payload = json.dumps({"id": "evt_1", "object": "event", "type": "payment_intent.succeeded"})

        response = client.post(
            "/webhooks/stripe",
            content=payload,
            headers={"stripe-signature": sign(payload, "whsec_other")},
        )

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_missing_signature_rejected(self, client, monkeypatch):
        monkeypatch.setattr(settings, "stripe_webhook_secret", "whsec_test")

        response = client.post("/webhooks/stripe", content="{}")

        assert response.status_code == 400

    def test_failed_payment_cancels_booking(self, client, repository, monkeypatch):
        monkeypatch.setattr(settings, "stripe_webhook_secret", "whsec_test")
        booking_id = client.post("/api/bookings/create", json=BOOKING_BODY).json()["booking"]["id"]
        payload = json.dumps({
            "id": "evt_1",
            "object": "event",
            "type": "payment_intent.payment_failed",
            "data": {"object": {"id": "pi_test123", "object": "payment_intent"}},
        })

        response = client.post(
            "/webhooks/stripe",
            content=payload,
            headers={"stripe-signature": sign(payload, "whsec_test")},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        assert repository.get_by_id(booking_id).status == BookingStatus.CANCELLED


class TestHealth:
    """Test the health endpoint."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "OK"
        assert data["service"] == "travl-backend"
        assert "timestamp" in data
