"""
Domain services: order lifecycle, payments, inventory, tracking and notifications.
"""
from .notifications import NotificationBroadcaster, get_broadcaster
from .orders import OrderService
from .payments import PaymentService

__all__ = [
    "NotificationBroadcaster",
    "get_broadcaster",
    "OrderService",
    "PaymentService",
]
