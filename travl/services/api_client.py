"""
Booking API Client - HTTP access to the travl backend.
Caches GET responses and coalesces identical in-flight requests.
"""
import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union
from urllib.parse import quote

import httpx

from ..config import settings
from ..errors import APIError, BackendUnavailableError
from ..models.booking import BookingCreateRequest, BookingDraft, BookingRecord
from ..models.payment import (
    PaymentIntentResponse,
    RefundResponse,
    WalletCaptureResponse,
    WalletOrderResponse,
)

logger = logging.getLogger(__name__)

RETRY_STATUSES = frozenset({408, 429, 500, 502, 503, 504})
SLOW_CALL_SECONDS = 1.0


def should_retry(error: Exception) -> bool:
    if isinstance(error, APIError):
        return error.status_code in RETRY_STATUSES
    return isinstance(error, httpx.TransportError)


async def retry_request(
    func: Callable[[], Awaitable[Any]],
    retries: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
) -> Any:
    """
    Run ``func`` and retry it with exponential backoff on retryable failures.

    Retryable: HTTP 408/429/500/502/503/504 and transport errors. Delays are
    ``base_delay * 2**attempt`` (1s, 2s, 4s by default). The last error
    propagates once ``retries`` is exhausted.
    """
    attempt = 0
    while True:
        try:
            return await func()
        except (APIError, httpx.TransportError) as e:
            if attempt >= retries or not should_retry(e):
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(f"Retrying after {e} (attempt {attempt + 1}/{retries}, {delay:.1f}s)")
            await sleep(delay)
            attempt += 1


@dataclass
class _CacheEntry:
    data: Any
    expiry: float


@dataclass
class BookingCreation:
    """Created booking, and whether the fallback endpoint had to serve it."""
    booking: BookingRecord
    used_fallback: bool = False


class BookingAPIClient:
    """Async client for the booking and payment endpoints."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        fallback_url: Optional[str] = None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        default_ttl: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None
    ):
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        fallback_url = fallback_url if fallback_url is not None else settings.fallback_api_url
        self.fallback_url = fallback_url.rstrip("/") if fallback_url else None
        self.token_provider = token_provider
        self.default_ttl = default_ttl if default_ttl is not None else settings.cache_ttl_seconds

        client_kwargs = {"transport": transport}
        if timeout is not None:
            client_kwargs["timeout"] = timeout
        self._client = httpx.AsyncClient(**client_kwargs)

        self._cache: dict[str, _CacheEntry] = {}
        self._in_flight: dict[str, asyncio.Future] = {}

    async def __aenter__(self) -> "BookingAPIClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def call(
        self,
        endpoint: str,
        method: str = "GET",
        body: Optional[dict] = None,
        headers: Optional[dict] = None,
        cache: bool = True,
        cache_ttl: Optional[float] = None,
        base_url: Optional[str] = None
    ) -> Any:
        """
        Call ``endpoint`` and return the decoded JSON body.

        A fresh cache entry is returned without touching the network. While
        a request with the same URL and options is in flight, further callers
        share its result instead of sending another request.

        Raises:
            APIError: the server answered with a non-2xx status
            httpx.HTTPError: transport-level failure
        """
        url = f"{(base_url or self.base_url).rstrip('/')}{endpoint}"
        options = {
            "method": method.upper(),
            "body": body,
            "headers": headers,
            "cache": cache,
            "cache_ttl": cache_ttl,
        }
        key = self._cache_key(url, options)

        if cache is not False:
            cached = self._get_from_cache(key)
            if cached is not None:
                return cached

        pending = self._in_flight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._make_request(url, options, key))
            self._in_flight[key] = pending
            pending.add_done_callback(lambda _: self._in_flight.pop(key, None))

        # one caller being cancelled must not cancel the shared request
        return await asyncio.shield(pending)

    async def _make_request(self, url: str, options: dict, key: str) -> Any:
        method = options["method"]
        headers = {"Content-Type": "application/json"}
        auth = self._auth_header()
        if auth:
            headers["Authorization"] = auth
        headers.update(options["headers"] or {})

        start = time.perf_counter()
        try:
            response = await self._client.request(method, url, json=options["body"], headers=headers)
        except httpx.HTTPError as e:
            elapsed = (time.perf_counter() - start) * 1000
            logger.error(f"API call failed: {method} {url} after {elapsed:.0f}ms: {e!r}")
            raise

        elapsed = time.perf_counter() - start
        if elapsed > SLOW_CALL_SECONDS:
            logger.warning(f"Slow API call: {method} {url} took {elapsed * 1000:.0f}ms")
        logger.debug(f"{method} {url} -> {response.status_code} ({elapsed * 1000:.0f}ms)")

        if not response.is_success:
            raise APIError(response.status_code, self._error_message(response))

        data = response.json()
        if options["cache"] is not False and method == "GET":
            self._set_cache(key, data, options["cache_ttl"])
        return data

    @staticmethod
    def _error_message(response: httpx.Response) -> Optional[str]:
        try:
            payload = response.json()
        except ValueError:
            return None
        if isinstance(payload, dict):
            return payload.get("error") or payload.get("detail")
        return None

    def _auth_header(self) -> str:
        token = self.token_provider() if self.token_provider else None
        return f"Bearer {token}" if token else ""

    # Cache management

    @staticmethod
    def _cache_key(url: str, options: dict) -> str:
        return f"{url}-{json.dumps(options, sort_keys=True, default=str)}"

    def _get_from_cache(self, key: str) -> Any:
        entry = self._cache.get(key)
        if entry and time.monotonic() < entry.expiry:
            return entry.data
        self._cache.pop(key, None)
        return None

    def _set_cache(self, key: str, data: Any, ttl: Optional[float] = None):
        ttl = self.default_ttl if ttl is None else ttl
        self._cache[key] = _CacheEntry(data=data, expiry=time.monotonic() + ttl)

    def clear_cache(self, pattern: Optional[str] = None):
        """Drop cached responses, only those whose key contains ``pattern`` if given."""
        if pattern is None:
            self._cache.clear()
            return
        for key in [k for k in self._cache if pattern in k]:
            del self._cache[key]

    # Bookings

    async def create_booking(self, draft: Union[BookingDraft, BookingCreateRequest]) -> BookingCreation:
        """
        Create a booking on the backend, falling back to the fallback
        endpoint when the backend fails.

        Raises:
            BackendUnavailableError: the backend failed and there is no
                fallback, or the fallback failed too; ``cause`` is the
                backend's error
        """
        request = draft.to_booking_request() if isinstance(draft, BookingDraft) else draft
        body = request.to_wire()

        try:
            data = await self.call("/api/bookings/create", method="POST", body=body, cache=False)
            return BookingCreation(booking=BookingRecord.model_validate(data["booking"]))
        except (APIError, httpx.HTTPError, KeyError, ValueError) as e:
            if not self.fallback_url:
                raise BackendUnavailableError(f"Booking backend unavailable: {e}", e) from e
            logger.warning(f"Backend booking failed ({e}), using fallback {self.fallback_url}")
            primary = e

        try:
            data = await self.call(
                "/api/bookings/create", method="POST", body=body, cache=False,
                base_url=self.fallback_url
            )
            return BookingCreation(
                booking=BookingRecord.model_validate(data["booking"]),
                used_fallback=True
            )
        except (APIError, httpx.HTTPError, KeyError, ValueError) as secondary:
            logger.error(f"Fallback booking failed too: {secondary}")
            raise BackendUnavailableError(
                f"Booking backend and fallback unavailable: {primary}", primary
            ) from secondary

    async def get_booking(self, booking_id: str) -> BookingRecord:
        data = await retry_request(lambda: self.call(f"/api/bookings/{quote(booking_id)}"))
        return BookingRecord.model_validate(data["booking"])

    async def get_user_bookings(self, email: str) -> list[BookingRecord]:
        data = await retry_request(
            lambda: self.call(f"/api/bookings/user/{quote(email)}", cache_ttl=2 * 60)
        )
        return [BookingRecord.model_validate(item) for item in data.get("bookings", [])]

    async def cancel_booking(self, booking_id: str) -> BookingRecord:
        data = await self.call(f"/api/bookings/{quote(booking_id)}/cancel", method="POST", cache=False)
        self.clear_cache("/api/bookings/")
        return BookingRecord.model_validate(data["booking"])

    # Payments

    async def create_payment_intent(
        self,
        amount_cents: int,
        currency: Optional[str] = None,
        booking_id: Optional[str] = None,
        customer_email: Optional[str] = None
    ) -> PaymentIntentResponse:
        data = await self.call(
            "/api/payments/create-payment-intent",
            method="POST",
            body={
                "amount": amount_cents,
                "currency": currency or settings.currency,
                "bookingId": booking_id,
                "customerEmail": customer_email,
            },
            cache=False,
        )
        return PaymentIntentResponse.model_validate(data)

    async def create_wallet_order(
        self,
        amount_cents: int,
        currency: Optional[str] = None,
        booking_id: Optional[str] = None
    ) -> WalletOrderResponse:
        data = await self.call(
            "/api/payments/create-paypal-order",
            method="POST",
            body={
                "amount": amount_cents,
                "currency": (currency or settings.currency).upper(),
                "bookingId": booking_id,
            },
            cache=False,
        )
        return WalletOrderResponse.model_validate(data)

    async def capture_wallet_order(self, order_id: str) -> WalletCaptureResponse:
        data = await self.call(
            "/api/payments/capture-paypal-order",
            method="POST",
            body={"orderID": order_id},
            cache=False,
        )
        return WalletCaptureResponse.model_validate(data)

    async def refund_payment(self, payment_intent_id: str, amount_cents: Optional[int] = None) -> RefundResponse:
        body = {"paymentIntentId": payment_intent_id}
        if amount_cents is not None:
            body["amount"] = amount_cents
        data = await self.call("/api/payments/refund", method="POST", body=body, cache=False)
        return RefundResponse.model_validate(data)
