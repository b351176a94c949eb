"""Shared fixtures: a fresh booking store and payment service behind the app."""
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from travl.main import app
from travl.services.booking_store import InMemoryBookingRepository, get_booking_repository
from travl.services.payment_service import PaymentService, get_payment_service


@pytest.fixture
def repository():
    return InMemoryBookingRepository()


@pytest.fixture
def payment_service():
    return PaymentService(api_key="sk_test_dummy")


@pytest.fixture
def test_app(repository, payment_service):
    app.dependency_overrides[get_booking_repository] = lambda: repository
    app.dependency_overrides[get_payment_service] = lambda: payment_service
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(test_app):
    return TestClient(test_app)


@pytest.fixture
def stripe_intent():
    """Patch PaymentIntent.create to answer like Stripe does."""
    with patch("stripe.PaymentIntent.create") as create:
        create.side_effect = lambda **kwargs: SimpleNamespace(
            id="pi_test123", client_secret="pi_test123_secret_abc"
        )
        yield create
