"""
Order lifecycle service.

Owns the order, payment, cancellation, refund and revenue status fields and
their legal transitions. Every business-rule check runs before the first
write. Writes touching more than one document (order plus product stock,
cart) are not wrapped in a transaction; a failure after the order insert
leaves the earlier writes in place.
"""
import logging
import random
import re
import string
import time
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from ..config.settings import Settings, get_settings
from ..errors import AuthorizationError, BusinessRuleError, NotFoundError, ValidationFailed
from ..models.order import (
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
)
from ..schemas.order import CreateOrderRequest
from ..utils.dependencies import is_admin_user, verify_order_exists
from ..utils.serializers import utcnow
from .inventory import InventoryAdjuster
from .notifications import NotificationBroadcaster
from .tracking import advance_tracking, seed_tracking_history

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_uppercase + string.digits

SHIPPED_STATUSES = (
    OrderStatus.SHIPPED.value, OrderStatus.OUT_FOR_DELIVERY.value, OrderStatus.DELIVERED.value
)


def _random_suffix(length: int) -> str:
    return "".join(random.choices(_ID_ALPHABET, k=length))


def generate_order_number(prefix: str = "VB") -> str:
    """Time plus random suffix; collisions are not checked beyond the unique index."""
    return f"{prefix}{int(time.time() * 1000)}{_random_suffix(4)}"


def generate_tracking_number(prefix: str = "TRK") -> str:
    return f"{prefix}{int(time.time() * 1000)}{_random_suffix(6)}"


def mask_phone(phone: Optional[str]) -> Optional[str]:
    """
    Keep only the first and last two digits: 9876543210 -> 98******10

    Separators are dropped first so formatted numbers are masked too.
    """
    if not phone:
        return None
    digits = re.sub(r"\D", "", phone)
    if len(digits) < 10:
        return re.sub(r"\d", "*", phone)
    return f"{digits[:2]}{'*' * (len(digits) - 4)}{digits[-2:]}"


def phones_match(owner_phone: str, supplied_phone: str) -> bool:
    """Digit-only comparison that tolerates a country code on either side."""
    owner_digits = re.sub(r"\D", "", owner_phone)
    supplied_digits = re.sub(r"\D", "", supplied_phone)
    if not owner_digits or not supplied_digits:
        return False
    return (
        owner_digits == supplied_digits
        or owner_digits.endswith(supplied_digits)
        or supplied_digits.endswith(owner_digits)
    )


def derive_payment_status(command: CreateOrderRequest) -> PaymentStatus:
    """COD starts pending; online is completed only with a real gateway payment id."""
    if command.payment_method == PaymentMethod.ONLINE and command.gateway_payment_id():
        return PaymentStatus.COMPLETED
    return PaymentStatus.PENDING


def revenue_status_after(order: Dict[str, Any], order_status: str) -> Optional[str]:
    """Revenue status implied by moving `order` to `order_status`; None leaves it as is."""
    method = order.get("payment_method")
    paid_online = method == PaymentMethod.ONLINE.value and order.get("payment_status") == PaymentStatus.COMPLETED.value

    if order_status == OrderStatus.DELIVERED.value:
        if method == PaymentMethod.COD.value:
            return RevenueStatus.EARNED.value
        if paid_online:
            return RevenueStatus.CONFIRMED.value
    elif order_status in (OrderStatus.CONFIRMED.value, OrderStatus.PROCESSING.value) and paid_online:
        return RevenueStatus.CONFIRMED.value
    return None


class OrderService:
    """Order state machine on top of the `orders` collection."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        broadcaster: NotificationBroadcaster,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.broadcaster = broadcaster
        self.settings = settings or get_settings()
        self.inventory = InventoryAdjuster(db)

    # Lookups

    async def _get_order(self, order_id: str) -> Dict[str, Any]:
        return await verify_order_exists(order_id, self.db)

    async def _populate_products(self, order: Dict[str, Any]) -> Dict[str, Any]:
        """Replace each item's product id with {_id, name, images} where the product still exists."""
        product_ids = [item["product"] for item in order.get("order_items", [])]
        cursor = self.db.products.find({"_id": {"$in": product_ids}}, {"name": 1, "images": 1, "price": 1})
        products = {product["_id"]: product for product in await cursor.to_list(length=None)}

        populated = dict(order)
        populated["order_items"] = [
            {**item, "product": products.get(item["product"], item["product"])}
            for item in order.get("order_items", [])
        ]
        return populated

    async def _update(self, order_id: ObjectId, fields: Dict[str, Any]) -> Dict[str, Any]:
        fields["updated_at"] = utcnow()
        order = await self.db.orders.find_one_and_update(
            {"_id": order_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        if order is None:
            raise NotFoundError("Order", message="Order not found")
        return order

    # Customer operations

    async def create_order(self, user: Dict[str, Any], command: CreateOrderRequest) -> Dict[str, Any]:
        """
        Place an order, reserve its stock and empty the user's cart

        Every item is checked against current stock before anything is written,
        so an order rejected for stock leaves all products untouched.

        Raises:
            NotFoundError: an item references an unknown product
            BusinessRuleError: an item asks for more than is in stock
        """
        # Lines for the same product draw on one stock figure
        requested: Dict[str, int] = {}
        for item in command.order_items:
            requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity

        items: List[OrderItemDocument] = []
        for item in command.order_items:
            product = await self.db.products.find_one({"_id": ObjectId(item.product_id)})
            if not product:
                raise NotFoundError("Product", item.product_id)

            available = product.get("stock", 0)
            if available < requested[item.product_id]:
                raise BusinessRuleError(
                    f"Insufficient stock for {product.get('name')}. "
                    f"Available: {available}, Requested: {requested[item.product_id]}"
                )

            items.append(OrderItemDocument(
                product=product["_id"],
                name=item.name,
                quantity=item.quantity,
                price=item.price,
                selected_price=item.selected_price,
                size=item.size,
                image=item.image,
            ))

        payment_status = derive_payment_status(command)
        order_status = OrderStatus.CONFIRMED if payment_status == PaymentStatus.COMPLETED else OrderStatus.PENDING
        now = utcnow()

        razorpay = cashfree = None
        if command.razorpay and command.razorpay.order_id:
            razorpay = RazorpayRef(**command.razorpay.model_dump())
            gateway = command.payment_gateway or PaymentGateway.RAZORPAY.value
        elif command.cashfree and command.cashfree.order_id:
            cashfree = CashfreeRef(**command.cashfree.model_dump())
            gateway = command.payment_gateway or PaymentGateway.CASHFREE.value
        else:
            gateway = command.payment_gateway or PaymentGateway.RAZORPAY.value

        document = OrderDocument(
            user_id=user["_id"],
            order_number=generate_order_number(self.settings.order_number_prefix),
            tracking_number=generate_tracking_number(self.settings.tracking_number_prefix),
            order_items=items,
            shipping_address=ShippingAddress(**command.shipping_address.model_dump()),
            payment_method=command.payment_method,
            payment_status=payment_status,
            order_status=order_status,
            tracking_history=seed_tracking_history(command.payment_method.value, payment_status.value, now),
            items_price=command.items_price,
            shipping_price=command.shipping_price,
            discount_price=command.discount_price,
            total_price=command.total_price,
            coupon=CouponSnapshot(**command.coupon.model_dump()) if command.coupon else None,
            razorpay=razorpay,
            cashfree=cashfree,
            payment_gateway=gateway,
            created_at=now,
            updated_at=now,
        ).to_mongo()

        result = await self.db.orders.insert_one(document)
        document["_id"] = result.inserted_id

        await self.inventory.reserve_items(document["order_items"])
        await self.inventory.clear_cart(user["_id"])

        logger.info(
            f"Order created: {document['order_number']} (ID: {result.inserted_id}) for user {user['_id']}, "
            f"payment {document['payment_method']}/{document['payment_status']}"
        )
        return await self._populate_products(document)

    async def list_user_orders(self, user: Dict[str, Any], limit: int = 10, offset: int = 0) -> Dict[str, Any]:
        filter_query = {"user_id": user["_id"]}
        total_count = await self.db.orders.count_documents(filter_query)
        cursor = self.db.orders.find(filter_query).sort("created_at", -1).skip(offset).limit(limit)
        orders = await cursor.to_list(length=limit)
        return {
            "orders": [await self._populate_products(order) for order in orders],
            "pagination": {
                "total": total_count,
                "limit": limit,
                "offset": offset,
                "has_more": offset + limit < total_count,
            },
        }

    async def get_order(self, order_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
        """Single order for its owner or an admin user."""
        order = await self._get_order(order_id)
        if order["user_id"] != user["_id"] and not is_admin_user(user):
            raise AuthorizationError("Not authorized to access this order")
        return await self._populate_products(order)

    async def cancel_order(self, order_id: str, user: Dict[str, Any], reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Record a customer's cancellation request and give the stock back

        Stock is restored when the request is made, not when an admin approves
        it; a rejected request takes the stock back again.

        Raises:
            AuthorizationError: caller doesn't own the order
            BusinessRuleError: order is shipped, delivered or already cancelled
        """
        order = await self._get_order(order_id)
        if order["user_id"] != user["_id"]:
            raise AuthorizationError("Not authorized to cancel this order")

        blocked = [status.value for status in NON_CANCELLABLE_STATUSES]
        if order.get("order_status") in blocked:
            raise BusinessRuleError("Order cannot be cancelled at this stage")

        # The status guard is repeated in the filter so a concurrent shipment wins
        updated = await self.db.orders.find_one_and_update(
            {"_id": order["_id"], "order_status": {"$nin": blocked}},
            {"$set": {
                "cancellation_status": CancellationStatus.REQUESTED.value,
                "cancellation_reason": reason or "Cancelled by user",
                "updated_at": utcnow(),
            }},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise BusinessRuleError("Order cannot be cancelled at this stage")

        await self.inventory.restore_items(updated)

        logger.info(f"Cancellation requested for order {order_id} by user {user['_id']}")
        await self.broadcaster.publish_order_update(
            updated, ("cancellation_status", "cancellation_reason", "tracking_history")
        )
        return updated

    # Admin operations

    async def list_all_orders(self, status: Optional[str] = None, limit: int = 10, offset: int = 0) -> Dict[str, Any]:
        filter_query: Dict[str, Any] = {}
        if status:
            filter_query["order_status"] = status
        total_count = await self.db.orders.count_documents(filter_query)
        cursor = self.db.orders.find(filter_query).sort("created_at", -1).skip(offset).limit(limit)
        orders = await cursor.to_list(length=limit)

        user_ids = list({order["user_id"] for order in orders})
        users = {
            user["_id"]: {"_id": user["_id"], "name": user.get("name"), "email": user.get("email"), "phone": user.get("phone")}
            for user in await self.db.users.find({"_id": {"$in": user_ids}}).to_list(length=None)
        }
        return {
            "orders": [{**order, "user": users.get(order["user_id"])} for order in orders],
            "pagination": {
                "total": total_count,
                "limit": limit,
                "offset": offset,
                "has_more": offset + limit < total_count,
            },
        }

    async def update_order_status(self, order_id: str, order_status: OrderStatus) -> Dict[str, Any]:
        """
        Move an order to `order_status`, advancing tracking and revenue

        Tracking only ever moves forward: an earlier status leaves completed
        milestones as they are.
        """
        order = await self._get_order(order_id)
        now = utcnow()
        fields: Dict[str, Any] = {
            "order_status": order_status.value,
            "tracking_history": advance_tracking(order.get("tracking_history", []), order_status.value, now),
        }
        revenue_status = revenue_status_after(order, order_status.value)
        if revenue_status is not None:
            fields["revenue_status"] = revenue_status

        updated = await self._update(order["_id"], fields)

        # Shipping an order with an undecided request takes back the stock the request released
        if order_status.value in SHIPPED_STATUSES:
            await self.inventory.rereserve_items(updated)

        logger.info(f"Order status updated: {order_id} -> {order_status.value}")
        await self.broadcaster.publish_order_update(updated, ("tracking_history",))
        return updated

    async def handle_cancellation(
        self,
        order_id: str,
        action: str,
        admin: Dict[str, Any],
        rejection_reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Approve or reject a cancellation

        Approving cancels the order, opens a refund for paid online orders and
        makes sure stock is back. Rejecting re-reserves stock the request gave
        back. Only a pending request can be decided, once, and only while the
        order hasn't shipped.

        Raises:
            ValidationFailed: action is neither approve nor reject
            BusinessRuleError: no pending request, or the order has shipped
        """
        if action not in ("approve", "reject"):
            raise ValidationFailed("Action must be 'approve' or 'reject'")

        order = await self._get_order(order_id)
        if order.get("cancellation_status") != CancellationStatus.REQUESTED.value:
            raise BusinessRuleError("No pending cancellation request for this order")

        blocked = [status.value for status in NON_CANCELLABLE_STATUSES]
        if order.get("order_status") in blocked:
            raise BusinessRuleError("Order cannot be cancelled at this stage")

        if action == "approve":
            fields: Dict[str, Any] = {
                "cancellation_status": CancellationStatus.APPROVED.value,
                "order_status": OrderStatus.CANCELLED.value,
                "cancelled_at": utcnow(),
                "cancellation_approved_by": admin.get("name"),
            }
            if (
                order.get("payment_method") == PaymentMethod.ONLINE.value
                and order.get("payment_status") == PaymentStatus.COMPLETED.value
            ):
                fields["refund_status"] = RefundStatus.PENDING.value
                fields["refund_amount"] = order.get("total_price", 0)
        else:
            fields = {
                "cancellation_status": CancellationStatus.REJECTED.value,
                "cancellation_rejection_reason": rejection_reason or "Cancellation request rejected by admin",
            }
        fields["updated_at"] = utcnow()

        # Both guards are repeated in the filter so only one decision lands
        updated = await self.db.orders.find_one_and_update(
            {
                "_id": order["_id"],
                "cancellation_status": CancellationStatus.REQUESTED.value,
                "order_status": {"$nin": blocked},
            },
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise BusinessRuleError("No pending cancellation request for this order")

        if action == "approve":
            await self.inventory.restore_items(updated)
        else:
            await self.inventory.rereserve_items(updated)

        logger.info(f"Cancellation {action}d for order {order_id} by {admin.get('name')}")
        await self.broadcaster.publish_order_update(updated, (
            "cancellation_status", "cancellation_reason", "refund_status", "refund_amount", "tracking_history",
        ))
        return updated

    async def process_refund(self, order_id: str, admin: Dict[str, Any]) -> Dict[str, Any]:
        """
        Refund a paid online order in full, once

        Raises:
            BusinessRuleError: not a paid online order, or already refunded
        """
        order = await self._get_order(order_id)

        if (
            order.get("payment_method") != PaymentMethod.ONLINE.value
            or order.get("payment_status") != PaymentStatus.COMPLETED.value
        ):
            raise BusinessRuleError("Refund can only be processed for online orders with completed payment")

        final = [status.value for status in FINAL_REFUND_STATUSES]
        if order.get("refund_status") in final:
            raise BusinessRuleError("Refund has already been processed")

        now = utcnow()
        # Conditional write so two concurrent refunds can't both succeed
        updated = await self.db.orders.find_one_and_update(
            {
                "_id": order["_id"],
                "payment_status": PaymentStatus.COMPLETED.value,
                "refund_status": {"$nin": final},
            },
            {"$set": {
                "refund_status": RefundStatus.COMPLETED.value,
                "refund_amount": order.get("total_price", 0),
                "refund_processed_at": now,
                "refund_processed_by": admin.get("name"),
                "revenue_status": RevenueStatus.PENDING.value,
                "payment_status": PaymentStatus.REFUNDED.value,
                "updated_at": now,
            }},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise BusinessRuleError("Refund has already been processed")

        logger.info(f"💸 Refund of {updated['refund_amount']} processed for order {order_id} by {admin.get('name')}")
        await self.broadcaster.publish_order_update(
            updated, ("payment_status", "refund_status", "refund_amount", "tracking_history")
        )
        return updated

    async def confirm_cod_receipt(
        self, order_id: str, confirmed_amount: Optional[float], admin: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Record cash collected on delivery as confirmed revenue."""
        order = await self._get_order(order_id)

        if order.get("payment_method") != PaymentMethod.COD.value:
            raise BusinessRuleError("This order is not a COD order")
        if not confirmed_amount or confirmed_amount <= 0:
            raise ValidationFailed("Please provide a valid confirmed amount")

        now = utcnow()
        updated = await self._update(order["_id"], {
            "revenue_status": RevenueStatus.CONFIRMED.value,
            "revenue_amount": confirmed_amount,
            "payment_status": PaymentStatus.COMPLETED.value,
            "cod_confirmed_at": now,
            "cod_confirmed_by": admin.get("name"),
        })

        logger.info(f"COD receipt of {confirmed_amount} confirmed for order {order_id} by {admin.get('name')}")
        await self.broadcaster.publish_order_update(updated, ("payment_status",))
        return updated

    # Public operations

    async def track_order(self, identifier: str, phone: Optional[str] = None) -> Dict[str, Any]:
        """
        Public lookup by order number or tracking number

        When `phone` is given it must match the owner's phone. The owner is
        only ever exposed as name plus masked phone.
        """
        if not identifier or not identifier.strip():
            raise ValidationFailed("Order number or tracking number is required")

        identifier = identifier.strip()
        order = await self.db.orders.find_one({
            "$or": [{"order_number": identifier}, {"tracking_number": identifier}]
        })
        if not order:
            raise NotFoundError(
                "Order", message="Order not found. Please check your order number or tracking number."
            )

        owner = await self.db.users.find_one({"_id": order["user_id"]}) or {}
        owner_phone = owner.get("phone")
        if phone and owner_phone and not phones_match(owner_phone, phone):
            raise AuthorizationError(
                "Phone number does not match. "
                "Please provide the correct phone number associated with this order."
            )

        tracked = await self._populate_products(order)
        tracked.pop("user_id", None)
        tracked["user"] = {"name": owner.get("name"), "phone": mask_phone(owner_phone)}
        return tracked
