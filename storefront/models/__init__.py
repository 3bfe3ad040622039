"""
Models package for database document structures.
These models represent how data is stored in MongoDB.
"""
from .order import (
    CancellationStatus,
    CashfreeRef,
    CouponSnapshot,
    FINAL_REFUND_STATUSES,
    NON_CANCELLABLE_STATUSES,
    OrderDocument,
    OrderItemDocument,
    OrderStatus,
    PaymentGateway,
    PaymentMethod,
    PaymentStatus,
    RazorpayRef,
    RefundStatus,
    RevenueStatus,
    ShippingAddress,
    TrackingMilestone,
)

__all__ = [
    # Order models
    "OrderDocument",
    "OrderItemDocument",
    "ShippingAddress",
    "TrackingMilestone",
    "RazorpayRef",
    "CashfreeRef",
    "CouponSnapshot",

    # Order state enums
    "PaymentMethod",
    "PaymentStatus",
    "OrderStatus",
    "CancellationStatus",
    "RevenueStatus",
    "RefundStatus",
    "PaymentGateway",
    "NON_CANCELLABLE_STATUSES",
    "FINAL_REFUND_STATUSES",
]
