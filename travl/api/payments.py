"""
Payment routes - card payment intents, wallet orders and refunds.
"""
from fastapi import APIRouter, Depends

from ..models.payment import (
    PaymentIntentRequest,
    PaymentIntentResponse,
    RefundRequest,
    RefundResponse,
    WalletCaptureRequest,
    WalletCaptureResponse,
    WalletOrderRequest,
    WalletOrderResponse,
)
from ..services.payment_service import PaymentService, get_payment_service


router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.post("/create-payment-intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    request: PaymentIntentRequest,
    service: PaymentService = Depends(get_payment_service)
):
    """Create a card payment intent; ``amount`` is in cents."""
    intent = service.create_payment_intent(
        request.amount,
        currency=request.currency,
        booking_id=request.booking_id,
        customer_email=request.customer_email,
    )
    return PaymentIntentResponse(
        client_secret=intent["client_secret"],
        payment_intent_id=intent["payment_intent_id"],
    )


@router.post("/create-paypal-order", response_model=WalletOrderResponse)
async def create_wallet_order(
    request: WalletOrderRequest,
    service: PaymentService = Depends(get_payment_service)
):
    order = service.create_wallet_order(
        request.amount,
        currency=request.currency,
        booking_id=request.booking_id,
    )
    return WalletOrderResponse(
        order_id=order["order_id"],
        amount=order["amount"],
        currency=order["currency"],
    )


@router.post("/capture-paypal-order", response_model=WalletCaptureResponse)
async def capture_wallet_order(
    request: WalletCaptureRequest,
    service: PaymentService = Depends(get_payment_service)
):
    captured = service.capture_wallet_order(request.order_id)
    return WalletCaptureResponse(transaction_id=captured["transaction_id"])


@router.post("/refund", response_model=RefundResponse)
async def refund(
    request: RefundRequest,
    service: PaymentService = Depends(get_payment_service)
):
    result = service.refund(request.payment_intent_id, request.amount)
    return RefundResponse(refund_id=result["refund_id"], status=result["status"])
