"""
Schemas package for API request/response validation.
These models define the structure of data sent to and from the API endpoints.
"""

# Order schemas
from .order import (
    OrderItemRequest,
    ShippingAddressRequest,
    RazorpayRefRequest,
    CashfreeRefRequest,
    CouponRequest,
    CreateOrderRequest,
    CancelOrderRequest,
    UpdateOrderStatusRequest,
    CancellationDecisionRequest,
    ConfirmCODRequest,
)

# Payment schemas
from .payment import (
    CreateGatewayOrderRequest,
    VerifyPaymentRequest,
    CashfreeSessionRequest,
    CashfreeVerifyRequest,
)

# Announcement schemas
from .announcement import CreateAnnouncementRequest, CreateCouponRequest

# Common schemas
from .common import (
    HealthCheckResponse,
    RootResponse,
    ErrorResponse,
    SuccessResponse
)

__all__ = [
    # Order schemas
    "OrderItemRequest",
    "ShippingAddressRequest",
    "RazorpayRefRequest",
    "CashfreeRefRequest",
    "CouponRequest",
    "CreateOrderRequest",
    "CancelOrderRequest",
    "UpdateOrderStatusRequest",
    "CancellationDecisionRequest",
    "ConfirmCODRequest",

    # Payment schemas
    "CreateGatewayOrderRequest",
    "VerifyPaymentRequest",
    "CashfreeSessionRequest",
    "CashfreeVerifyRequest",

    # Announcement schemas
    "CreateAnnouncementRequest",
    "CreateCouponRequest",

    # Common schemas
    "HealthCheckResponse",
    "RootResponse",
    "ErrorResponse",
    "SuccessResponse"
]
