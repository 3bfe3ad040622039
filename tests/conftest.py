"""Pytest fixtures for storefront tests."""

from contextlib import asynccontextmanager
from types import SimpleNamespace
from typing import Any, Dict, List, Tuple

import pytest
import pytest_asyncio
from bson import ObjectId
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from storefront.config.database import get_database
from storefront.config.settings import Settings
from storefront.main import create_app
from storefront.routes.deps import get_cashfree_gateway, get_razorpay_gateway
from storefront.services.gateways import CashfreeGateway, RazorpayGateway
from storefront.services.notifications import NotificationBroadcaster, get_broadcaster
from storefront.services.orders import OrderService
from storefront.services.payments import PaymentService
from storefront.utils.security import create_access_token
from storefront.utils.serializers import utcnow


class RecordingSubscriber:
    """Subscriber that keeps every event it receives."""

    def __init__(self, name: str = "subscriber"):
        self.name = name
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    async def send_event(self, event: str, payload: Dict[str, Any]) -> None:
        self.events.append((event, payload))

    def named(self, event: str) -> List[Dict[str, Any]]:
        return [payload for name, payload in self.events if name == event]


class FailingSubscriber:
    async def send_event(self, event: str, payload: Dict[str, Any]) -> None:
        raise ConnectionError("socket closed")


async def seed_database(db) -> SimpleNamespace:
    """Customers, an admin-role user, a bootstrap admin and two products."""
    now = utcnow()
    customer = {
        "_id": ObjectId(),
        "name": "Asha Verma",
        "email": "asha@example.com",
        "phone": "+91 98765 43210",
        "role": "user",
        "is_active": True,
    }
    other_customer = {
        "_id": ObjectId(),
        "name": "Ravi Kumar",
        "email": "ravi@example.com",
        "phone": "9123456780",
        "role": "user",
        "is_active": True,
    }
    staff_user = {
        "_id": ObjectId(),
        "name": "Store Staff",
        "email": "staff@example.com",
        "phone": "9000000000",
        "role": "admin",
        "is_active": True,
    }
    inactive_user = {
        "_id": ObjectId(),
        "name": "Dormant",
        "email": "dormant@example.com",
        "role": "user",
        "is_active": False,
    }
    admin = {
        "_id": ObjectId(),
        "name": "Head Admin",
        "email": "admin@example.com",
        "role": "admin",
        "is_active": True,
    }
    shirt = {"_id": ObjectId(), "name": "Linen Shirt", "price": 1200.0, "stock": 10, "images": ["shirt.jpg"], "created_at": now}
    scarf = {"_id": ObjectId(), "name": "Silk Scarf", "price": 800.0, "stock": 3, "images": ["scarf.jpg"], "created_at": now}

    await db.users.insert_many([customer, other_customer, staff_user, inactive_user])
    await db.admins.insert_one(admin)
    await db.products.insert_many([shirt, scarf])
    await db.carts.insert_one({
        "user_id": customer["_id"],
        "items": [{"product": shirt["_id"], "quantity": 2}],
        "coupon": "WELCOME10",
    })

    return SimpleNamespace(
        customer=customer,
        other_customer=other_customer,
        staff_user=staff_user,
        inactive_user=inactive_user,
        admin=admin,
        shirt=shirt,
        scarf=scarf,
    )


def order_payload(product_id, quantity: Any = 2, payment_method: str = "cod", **extra) -> Dict[str, Any]:
    payload = {
        "order_items": [{
            "product_id": str(product_id),
            "name": "Linen Shirt",
            "quantity": quantity,
            "price": 1200,
            "size": "M",
        }],
        "shipping_address": {
            "type": "home",
            "name": "Asha Verma",
            "phone": "9876543210",
            "address": "12 MG Road",
            "city": "Bengaluru",
            "state": "Karnataka",
            "pincode": "560001",
        },
        "payment_method": payment_method,
        "items_price": 2400,
        "shipping_price": 0,
        "discount_price": 0,
        "total_price": 2400,
    }
    payload.update(extra)
    return payload


def auth_header(subject_id) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(subject_id)}"}


@pytest.fixture
def settings():
    return Settings(
        razorpay_key_id="rzp_test_key",
        razorpay_key_secret="rzp_test_secret",
        razorpay_webhook_secret="rzp_webhook_secret",
        cashfree_app_id="cf_test_app",
        cashfree_secret_key="cf_test_secret",
        admin_bootstrap_email=None,
    )


@pytest.fixture
def db():
    return AsyncMongoMockClient()["storefront_test"]


@pytest.fixture
def broadcaster():
    return NotificationBroadcaster()


@pytest.fixture
def razorpay(settings):
    return RazorpayGateway(settings)


@pytest.fixture
def cashfree(settings):
    return CashfreeGateway(settings)


@pytest_asyncio.fixture
async def seeded(db):
    return await seed_database(db)


@pytest.fixture
def order_service(db, broadcaster, settings):
    return OrderService(db, broadcaster, settings)


@pytest.fixture
def payment_service(db, broadcaster, razorpay, cashfree):
    return PaymentService(db, broadcaster, razorpay, cashfree)


@asynccontextmanager
async def _no_lifespan(app):
    yield


@pytest.fixture
def api(db, broadcaster, razorpay, cashfree):
    """TestClient on a fresh app wired to the in-memory database, plus seeded data."""
    app = create_app()
    app.router.lifespan_context = _no_lifespan

    async def override_database():
        return db

    app.dependency_overrides[get_database] = override_database
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    app.dependency_overrides[get_razorpay_gateway] = lambda: razorpay
    app.dependency_overrides[get_cashfree_gateway] = lambda: cashfree

    with TestClient(app) as client:
        data = client.portal.call(seed_database, db)
        yield SimpleNamespace(
            client=client,
            data=data,
            db=db,
            broadcaster=broadcaster,
            razorpay=razorpay,
            cashfree=cashfree,
            run=client.portal.call,
        )
