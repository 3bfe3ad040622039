"""
Tracking history projection.

The customer-facing checklist is derived from the order status: advancing to
a status completes every milestone up to and including the mapped one.
Milestones are never un-completed.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models.order import OrderStatus, PaymentMethod, PaymentStatus, TrackingMilestone

ORDER_PLACED = "Order Placed"
CONFIRMED = "Confirmed"
PROCESSING = "Processing"
SHIPPED = "Shipped"
OUT_FOR_DELIVERY = "Out for Delivery"
DELIVERED = "Delivered"

# Canonical milestone order
MILESTONES = [ORDER_PLACED, CONFIRMED, PROCESSING, SHIPPED, OUT_FOR_DELIVERY, DELIVERED]

STATUS_TO_MILESTONE = {
    OrderStatus.CONFIRMED.value: CONFIRMED,
    OrderStatus.PROCESSING.value: PROCESSING,
    OrderStatus.SHIPPED.value: SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY.value: OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED.value: DELIVERED,
}

_PENDING_DESCRIPTIONS = {
    PROCESSING: "Your order is being processed",
    SHIPPED: "Your order has been shipped",
    OUT_FOR_DELIVERY: "Your order is out for delivery",
    DELIVERED: "Your order has been delivered",
}


def confirmation_description(payment_method: str, payment_status: str) -> str:
    """Description of the Confirmed milestone, worded after how the order is paid."""
    if payment_method == PaymentMethod.COD.value:
        return "Order confirmed. Payment will be collected on delivery"
    if payment_status == PaymentStatus.PENDING.value:
        return "Order confirmed. Payment pending"
    if payment_status == PaymentStatus.FAILED.value:
        return "Order confirmed. Payment failed"
    return "Order confirmed and payment received"


def seed_tracking_history(payment_method: str, payment_status: str, now: datetime) -> List[TrackingMilestone]:
    """Initial checklist for a new order: placed and confirmed, the rest pending."""
    history = [
        TrackingMilestone(
            status=ORDER_PLACED,
            date=now,
            description="Your order has been placed successfully",
            completed=True,
        ),
        TrackingMilestone(
            status=CONFIRMED,
            date=now,
            description=confirmation_description(payment_method, payment_status),
            completed=True,
        ),
    ]
    for name in MILESTONES[2:]:
        history.append(TrackingMilestone(status=name, date=None, description=_PENDING_DESCRIPTIONS[name]))
    return history


def milestone_for_status(order_status: str) -> Optional[str]:
    return STATUS_TO_MILESTONE.get((order_status or "").lower())


def advance_tracking(
    history: List[Dict[str, Any]], order_status: str, now: datetime
) -> List[Dict[str, Any]]:
    """
    Complete every milestone at or before the one mapped from `order_status`.

    Args:
        history: tracking history as stored on the order
        order_status: the order's new status
        now: timestamp for milestones reached by this transition

    Returns:
        A new history list. Unchanged when the status maps to no milestone.
        Existing dates are kept so repeated transitions don't re-stamp them.
    """
    target = milestone_for_status(order_status)
    if target is None:
        return list(history)

    target_index = MILESTONES.index(target)
    advanced = []
    for milestone in history:
        entry = dict(milestone)
        name = entry.get("status")
        if name in MILESTONES and MILESTONES.index(name) <= target_index:
            entry["completed"] = True
            if entry.get("date") is None:
                entry["date"] = now
        advanced.append(entry)
    return advanced
