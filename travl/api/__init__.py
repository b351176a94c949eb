"""API router aggregator."""
from fastapi import APIRouter

from .bookings import router as bookings_router
from .payments import router as payments_router
from .webhooks import router as webhooks_router

router = APIRouter()
router.include_router(bookings_router)
router.include_router(payments_router)
router.include_router(webhooks_router)

__all__ = ["router"]
