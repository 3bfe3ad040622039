"""
Payment endpoints for Razorpay and Cashfree checkouts, callbacks and webhooks.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, Request

from ..schemas.common import SuccessResponse
from ..schemas.payment import (
    CashfreeSessionRequest,
    CashfreeVerifyRequest,
    CreateGatewayOrderRequest,
    VerifyPaymentRequest,
)
from ..services.payments import PaymentService
from ..utils.dependencies import get_current_user
from ..utils.serializers import api_response
from .deps import get_payment_service

router = APIRouter(prefix="/payments", tags=["Payments"])

WEBHOOK_PROCESSED = "Webhook processed successfully"


@router.post("/create-order", response_model=SuccessResponse)
async def create_gateway_order(
    payload: CreateGatewayOrderRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    created = await service.create_gateway_order(payload.amount, payload.currency, payload.receipt)
    return api_response(created, "Razorpay order created successfully")


@router.post("/verify-payment", response_model=SuccessResponse)
async def verify_payment(
    payload: VerifyPaymentRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    verified = await service.verify_razorpay_payment(
        payload.razorpay_order_id, payload.razorpay_payment_id, payload.razorpay_signature, user
    )
    return api_response(verified, "Payment verified successfully")


@router.post("/webhook", response_model=SuccessResponse)
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(None),
    service: PaymentService = Depends(get_payment_service),
):
    """Signed against the exact raw body, so the body is read unparsed."""
    await service.handle_razorpay_webhook(await request.body(), x_razorpay_signature)
    return api_response(message=WEBHOOK_PROCESSED)


@router.post("/cashfree/create-session", response_model=SuccessResponse)
async def create_cashfree_session(
    payload: CashfreeSessionRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    customer = {
        "customer_id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "phone": user.get("phone"),
        **payload.customer,
    }
    session = await service.create_cashfree_session(payload.amount, payload.currency, customer, payload.order_id)
    return api_response(session, "Cashfree payment session created successfully")


@router.post("/cashfree/verify-payment", response_model=SuccessResponse)
async def verify_cashfree_payment(
    payload: CashfreeVerifyRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    verified = await service.verify_cashfree_payment(payload.order_id, user, payload.payment_id)
    return api_response(verified, "Payment verified successfully")


@router.post("/cashfree/webhook", response_model=SuccessResponse)
async def cashfree_webhook(
    request: Request,
    x_webhook_signature: Optional[str] = Header(None),
    x_webhook_timestamp: Optional[str] = Header(None),
    service: PaymentService = Depends(get_payment_service),
):
    await service.handle_cashfree_webhook(await request.body(), x_webhook_signature, x_webhook_timestamp)
    return api_response(message=WEBHOOK_PROCESSED)


@router.get("/status/{gateway_order_id}", response_model=SuccessResponse)
async def get_payment_status(
    gateway_order_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return api_response(await service.get_payment_status(gateway_order_id, user), "Payment status retrieved")
