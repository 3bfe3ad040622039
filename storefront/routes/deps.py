"""
Service providers for route handlers; overridden in tests.
"""
from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..config.database import get_database
from ..config.settings import Settings, get_settings
from ..services.gateways import CashfreeGateway, RazorpayGateway
from ..services.notifications import NotificationBroadcaster, get_broadcaster
from ..services.orders import OrderService
from ..services.payments import PaymentService


def get_razorpay_gateway(settings: Settings = Depends(get_settings)) -> RazorpayGateway:
    return RazorpayGateway(settings)


def get_cashfree_gateway(settings: Settings = Depends(get_settings)) -> CashfreeGateway:
    return CashfreeGateway(settings)


def get_order_service(
    db: AsyncIOMotorDatabase = Depends(get_database),
    broadcaster: NotificationBroadcaster = Depends(get_broadcaster),
    settings: Settings = Depends(get_settings),
) -> OrderService:
    return OrderService(db, broadcaster, settings)


def get_payment_service(
    db: AsyncIOMotorDatabase = Depends(get_database),
    broadcaster: NotificationBroadcaster = Depends(get_broadcaster),
    razorpay: RazorpayGateway = Depends(get_razorpay_gateway),
    cashfree: CashfreeGateway = Depends(get_cashfree_gateway),
) -> PaymentService:
    return PaymentService(db, broadcaster, razorpay, cashfree)
