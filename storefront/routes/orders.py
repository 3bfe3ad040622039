"""
Order endpoints: checkout, customer views, admin lifecycle actions and public tracking.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from ..config.settings import get_settings
from ..schemas.common import SuccessResponse
from ..schemas.order import (
    CancelOrderRequest,
    CancellationDecisionRequest,
    ConfirmCODRequest,
    CreateOrderRequest,
    UpdateOrderStatusRequest,
)
from ..services.orders import OrderService
from ..utils.dependencies import get_current_admin, get_current_user
from ..utils.serializers import api_response
from .deps import get_order_service

settings = get_settings()

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("", status_code=201, response_model=SuccessResponse)
async def create_order(
    order: CreateOrderRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    created = await service.create_order(user, order)
    return api_response(created, "Order created successfully")


@router.get("", response_model=SuccessResponse)
async def get_my_orders(
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size, description="Number of orders to return"),
    offset: int = Query(0, ge=0, description="Number of orders to skip"),
    user: Dict[str, Any] = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    return api_response(await service.list_user_orders(user, limit, offset), "Orders retrieved successfully")


# Fixed paths are registered before /{order_id} so they aren't captured by it
@router.get("/admin/all", response_model=SuccessResponse, tags=["Admin"])
async def get_all_orders(
    status: Optional[str] = Query(None, description="Filter by order status"),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    offset: int = Query(0, ge=0),
    admin: Dict[str, Any] = Depends(get_current_admin),
    service: OrderService = Depends(get_order_service),
):
    return api_response(await service.list_all_orders(status, limit, offset), "Orders retrieved successfully")


@router.get("/track/{identifier}", response_model=SuccessResponse)
async def track_order(
    identifier: str,
    phone: Optional[str] = Query(None, description="Phone number on the order, for verification"),
    service: OrderService = Depends(get_order_service),
):
    """Public lookup by order number or tracking number."""
    return api_response(await service.track_order(identifier, phone), "Order found")


@router.get("/{order_id}", response_model=SuccessResponse)
async def get_order(
    order_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    return api_response(await service.get_order(order_id, user), "Order retrieved successfully")


@router.put("/{order_id}/cancel", response_model=SuccessResponse)
async def cancel_order(
    order_id: str,
    payload: Optional[CancelOrderRequest] = None,
    user: Dict[str, Any] = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    reason = payload.reason if payload else None
    updated = await service.cancel_order(order_id, user, reason)
    return api_response(updated, "Cancellation request submitted successfully")


@router.put("/{order_id}/status", response_model=SuccessResponse, tags=["Admin"])
async def update_order_status(
    order_id: str,
    status_update: UpdateOrderStatusRequest,
    admin: Dict[str, Any] = Depends(get_current_admin),
    service: OrderService = Depends(get_order_service),
):
    updated = await service.update_order_status(order_id, status_update.order_status)
    return api_response(updated, "Order status updated successfully")


@router.put("/{order_id}/cancellation", response_model=SuccessResponse, tags=["Admin"])
async def handle_cancellation(
    order_id: str,
    decision: CancellationDecisionRequest,
    admin: Dict[str, Any] = Depends(get_current_admin),
    service: OrderService = Depends(get_order_service),
):
    updated = await service.handle_cancellation(order_id, decision.action, admin, decision.rejection_reason)
    return api_response(updated, f"Cancellation request {decision.action}d successfully")


@router.put("/{order_id}/refund", response_model=SuccessResponse, tags=["Admin"])
async def process_refund(
    order_id: str,
    admin: Dict[str, Any] = Depends(get_current_admin),
    service: OrderService = Depends(get_order_service),
):
    return api_response(await service.process_refund(order_id, admin), "Refund processed successfully")


@router.put("/{order_id}/confirm-cod", response_model=SuccessResponse, tags=["Admin"])
async def confirm_cod_receipt(
    order_id: str,
    payload: ConfirmCODRequest,
    admin: Dict[str, Any] = Depends(get_current_admin),
    service: OrderService = Depends(get_order_service),
):
    updated = await service.confirm_cod_receipt(order_id, payload.confirmed_amount, admin)
    return api_response(updated, "COD receipt confirmed successfully")
