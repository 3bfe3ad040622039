"""
Payment confirmation flow: callbacks and webhooks feeding order payment status.
"""
import json
import logging
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from ..errors import AuthorizationError, NotFoundError, ValidationFailed
from ..models.order import PaymentGateway, PaymentStatus
from ..utils.dependencies import is_admin_user
from ..utils.serializers import utcnow
from .gateways import CashfreeGateway, PaymentOutcome, RazorpayGateway
from .notifications import NotificationBroadcaster

logger = logging.getLogger(__name__)


def _parse_json(raw_body: bytes) -> Dict[str, Any]:
    try:
        payload = json.loads(raw_body or b"{}")
    except ValueError:
        raise ValidationFailed("Webhook body is not valid JSON")
    if not isinstance(payload, dict):
        raise ValidationFailed("Webhook body must be a JSON object")
    return payload


class PaymentService:
    """Applies gateway outcomes to orders and answers payment status queries."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        broadcaster: NotificationBroadcaster,
        razorpay: RazorpayGateway,
        cashfree: CashfreeGateway,
    ):
        self.db = db
        self.broadcaster = broadcaster
        self.razorpay = razorpay
        self.cashfree = cashfree

    async def _check_caller_may_confirm(self, gateway: str, gateway_order_id: str, user: Dict[str, Any]) -> None:
        """Only the order's owner or an admin user may confirm its payment."""
        order = await self.db.orders.find_one({f"{gateway}.order_id": gateway_order_id}, {"user_id": 1})
        if order and order["user_id"] != user["_id"] and not is_admin_user(user):
            logger.warning(f"⚠️  User {user['_id']} tried to confirm payment for {gateway} order {gateway_order_id}")
            raise AuthorizationError("Not authorized to access this order")

    async def apply_outcome(self, outcome: PaymentOutcome) -> Optional[Dict[str, Any]]:
        """
        Write a gateway outcome onto the order carrying its gateway order id

        Plain field overwrite, so a replayed event leaves the same state.

        Returns:
            The updated order, or None when no order carries that id
        """
        prefix = outcome.gateway.value
        fields: Dict[str, Any] = {"payment_status": outcome.status.value, "updated_at": utcnow()}
        if outcome.status == PaymentStatus.COMPLETED:
            fields[f"{prefix}.order_id"] = outcome.order_id
            fields[f"{prefix}.payment_id"] = outcome.payment_id
            if outcome.signature is not None:
                fields[f"{prefix}.signature"] = outcome.signature

        order = await self.db.orders.find_one_and_update(
            {f"{prefix}.order_id": outcome.order_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        if order is None:
            logger.info(f"No order for {prefix} order {outcome.order_id}; outcome {outcome.status.value} ignored")
            return None

        logger.info(
            f"Payment {outcome.status.value} for order {order['_id']} "
            f"({prefix} order {outcome.order_id}, payment {outcome.payment_id})"
        )
        await self.broadcaster.publish_order_update(order, ("payment_status",))
        return order

    # Razorpay

    async def create_gateway_order(self, amount: float, currency: str = "INR", receipt: Optional[str] = None) -> Dict[str, Any]:
        return await self.razorpay.create_order(amount, currency, receipt)

    async def verify_razorpay_payment(
        self, order_id: str, payment_id: str, signature: str, user: Dict[str, Any]
    ) -> Dict[str, Any]:
        await self._check_caller_may_confirm(PaymentGateway.RAZORPAY.value, order_id, user)
        outcome = await self.razorpay.verify_payment(order_id, payment_id, signature)
        await self.apply_outcome(outcome)
        return outcome.model_dump(exclude={"raw", "signature"}, mode="json")

    async def handle_razorpay_webhook(self, raw_body: bytes, signature: Optional[str]) -> Optional[Dict[str, Any]]:
        """Verify, parse and apply a Razorpay webhook; unknown events are no-ops."""
        self.razorpay.verify_webhook(raw_body, signature)
        payload = _parse_json(raw_body)
        outcome = self.razorpay.parse_webhook(payload)
        if outcome is None:
            logger.info(f"Razorpay webhook event '{payload.get('event')}' acknowledged without changes")
            return None
        return await self.apply_outcome(outcome)

    # Cashfree

    async def create_cashfree_session(
        self,
        amount: float,
        currency: str = "INR",
        customer: Optional[Dict[str, Any]] = None,
        order_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self.cashfree.create_session(amount, currency, customer, order_id)

    async def verify_cashfree_payment(
        self, order_id: str, user: Dict[str, Any], payment_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Confirm a Cashfree checkout and write it onto the caller's order

        Raises:
            AuthorizationError: the local order belongs to someone else
            BusinessRuleError: Cashfree has no successful payment for the order
        """
        if not order_id:
            raise ValidationFailed("Order ID is required")
        await self._check_caller_may_confirm(PaymentGateway.CASHFREE.value, order_id, user)
        outcome = await self.cashfree.verify_payment(order_id, payment_id)
        await self.apply_outcome(outcome)
        return outcome.model_dump(exclude={"raw", "signature"}, mode="json")

    async def handle_cashfree_webhook(
        self, raw_body: bytes, signature: Optional[str], timestamp: Optional[str]
    ) -> Optional[Dict[str, Any]]:
        self.cashfree.verify_webhook(raw_body, signature, timestamp)
        outcome = self.cashfree.parse_webhook(_parse_json(raw_body))
        if outcome is None:
            logger.info("Cashfree webhook acknowledged without changes")
            return None
        return await self.apply_outcome(outcome)

    # Status

    async def get_payment_status(self, gateway_order_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
        """Normalized payment view for the order owner or an admin user."""
        order = await self.db.orders.find_one({
            "$or": [{"razorpay.order_id": gateway_order_id}, {"cashfree.order_id": gateway_order_id}]
        })
        if not order:
            raise NotFoundError("Order", message="Order not found")
        if order["user_id"] != user["_id"] and not is_admin_user(user):
            raise AuthorizationError("Not authorized to access this order")

        razorpay = order.get("razorpay") or {}
        cashfree = order.get("cashfree") or {}
        return {
            "order_id": razorpay.get("order_id") or cashfree.get("order_id"),
            "payment_id": razorpay.get("payment_id") or cashfree.get("payment_id"),
            "payment_status": order.get("payment_status"),
            "order_status": order.get("order_status"),
        }
