"""Tests for the order state machine."""

import pytest
from bson import ObjectId

from conftest import RecordingSubscriber, order_payload
from storefront.errors import AuthorizationError, BusinessRuleError, NotFoundError, ValidationFailed
from storefront.models.order import OrderStatus
from storefront.schemas.order import CreateOrderRequest
from storefront.services.notifications import ORDER_STATUS_UPDATED, order_topic, user_topic
from storefront.services.orders import (
    generate_order_number,
    generate_tracking_number,
    mask_phone,
    phones_match,
)


async def _stock(db, product):
    return (await db.products.find_one({"_id": product["_id"]}))["stock"]


async def _place(service, seeded, quantity=2, payment_method="cod", **extra):
    command = CreateOrderRequest.model_validate(
        order_payload(seeded.shirt["_id"], quantity, payment_method, **extra)
    )
    return await service.create_order(seeded.customer, command)


async def _paid_online_order(service, seeded, **extra):
    return await _place(
        service, seeded, payment_method="online",
        razorpay={"order_id": "order_RZP1", "payment_id": "pay_RZP1", "signature": "sig"},
        **extra,
    )


class TestIdentifiers:
    def test_order_and_tracking_numbers(self):
        order_number = generate_order_number("VB")
        tracking_number = generate_tracking_number("TRK")
        assert order_number.startswith("VB") and len(order_number) == 2 + 13 + 4
        assert tracking_number.startswith("TRK") and len(tracking_number) == 3 + 13 + 6

    def test_mask_phone(self):
        assert mask_phone("9876543210") == "98******10"
        assert mask_phone("+91 98765 43210") == "91********10"
        assert mask_phone(None) is None

    def test_phones_match_tolerates_country_code(self):
        assert phones_match("+91 98765 43210", "9876543210")
        assert phones_match("9876543210", "+91-9876543210")
        assert not phones_match("9876543210", "9123456780")
        assert not phones_match("9876543210", "---")


class TestCreateOrder:
    @pytest.mark.asyncio
    async def test_cod_order_reserves_stock_and_clears_cart(self, order_service, db, seeded):
        order = await _place(order_service, seeded, quantity=2)

        assert order["payment_status"] == "pending"
        assert order["order_status"] == "pending"
        assert order["order_number"].startswith("VB")
        assert order["tracking_number"].startswith("TRK")
        assert order["order_items"][0]["product"]["name"] == "Linen Shirt"
        assert await _stock(db, seeded.shirt) == 8

        cart = await db.carts.find_one({"user_id": seeded.customer["_id"]})
        assert cart["items"] == []
        assert cart["coupon"] is None

    @pytest.mark.asyncio
    async def test_online_order_with_gateway_payment_is_confirmed(self, order_service, seeded):
        order = await _paid_online_order(order_service, seeded)

        assert order["payment_status"] == "completed"
        assert order["order_status"] == "confirmed"
        assert order["payment_gateway"] == "razorpay"
        assert order["razorpay"]["payment_id"] == "pay_RZP1"

    @pytest.mark.asyncio
    async def test_placeholder_payment_id_stays_pending(self, order_service, seeded):
        order = await _place(
            order_service, seeded, payment_method="online",
            cashfree={"order_id": "order_CF1", "payment_id": "{payment_id}"},
        )

        assert order["payment_status"] == "pending"
        assert order["order_status"] == "pending"
        assert order["payment_gateway"] == "cashfree"

    @pytest.mark.asyncio
    async def test_insufficient_stock_writes_nothing(self, order_service, db, seeded):
        payload = order_payload(seeded.shirt["_id"], 2)
        payload["order_items"].append({"product_id": str(seeded.scarf["_id"]), "name": "Silk Scarf", "quantity": 5, "price": 800})

        with pytest.raises(BusinessRuleError) as exc_info:
            await order_service.create_order(seeded.customer, CreateOrderRequest.model_validate(payload))

        assert "Insufficient stock for Silk Scarf. Available: 3, Requested: 5" in exc_info.value.message
        assert await _stock(db, seeded.shirt) == 10
        assert await _stock(db, seeded.scarf) == 3
        assert await db.orders.count_documents({}) == 0

    @pytest.mark.asyncio
    async def test_repeated_product_lines_share_stock(self, order_service, db, seeded):
        payload = order_payload(seeded.scarf["_id"], 2)
        payload["order_items"].append({"product_id": str(seeded.scarf["_id"]), "name": "Silk Scarf", "quantity": 2, "price": 800})

        with pytest.raises(BusinessRuleError) as exc_info:
            await order_service.create_order(seeded.customer, CreateOrderRequest.model_validate(payload))

        assert "Available: 3, Requested: 4" in exc_info.value.message
        assert await _stock(db, seeded.scarf) == 3
        assert await db.orders.count_documents({}) == 0

    @pytest.mark.asyncio
    async def test_unknown_product(self, order_service, db, seeded):
        command = CreateOrderRequest.model_validate(order_payload(ObjectId()))
        with pytest.raises(NotFoundError):
            await order_service.create_order(seeded.customer, command)
        assert await db.orders.count_documents({}) == 0


class TestCancelOrder:
    @pytest.mark.asyncio
    async def test_request_restores_stock_and_notifies(self, order_service, broadcaster, db, seeded):
        order = await _place(order_service, seeded, quantity=2)
        subscriber = RecordingSubscriber()
        broadcaster.subscribe(order_topic(order["_id"]), subscriber)
        broadcaster.subscribe(user_topic(seeded.customer["_id"]), subscriber)

        updated = await order_service.cancel_order(str(order["_id"]), seeded.customer, "Ordered by mistake")

        assert updated["cancellation_status"] == "requested"
        assert updated["cancellation_reason"] == "Ordered by mistake"
        assert updated["order_status"] == "pending"
        assert await _stock(db, seeded.shirt) == 10

        events = subscriber.named(ORDER_STATUS_UPDATED)
        assert len(events) == 1
        assert events[0]["order_id"] == str(order["_id"])
        assert events[0]["cancellation_status"] == "requested"

    @pytest.mark.asyncio
    async def test_repeated_request_restores_stock_once(self, order_service, db, seeded):
        order = await _place(order_service, seeded, quantity=2)

        await order_service.cancel_order(str(order["_id"]), seeded.customer)
        await order_service.cancel_order(str(order["_id"]), seeded.customer)

        assert await _stock(db, seeded.shirt) == 10

    @pytest.mark.asyncio
    async def test_only_owner_can_cancel(self, order_service, seeded):
        order = await _place(order_service, seeded)
        with pytest.raises(AuthorizationError):
            await order_service.cancel_order(str(order["_id"]), seeded.other_customer)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [OrderStatus.SHIPPED, OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED])
    async def test_cannot_cancel_after_shipping(self, order_service, db, seeded, status):
        order = await _place(order_service, seeded, quantity=2)
        await order_service.update_order_status(str(order["_id"]), status)

        with pytest.raises(BusinessRuleError, match="cannot be cancelled"):
            await order_service.cancel_order(str(order["_id"]), seeded.customer)
        assert await _stock(db, seeded.shirt) == 8

    @pytest.mark.asyncio
    async def test_invalid_order_id(self, order_service, seeded):
        with pytest.raises(ValidationFailed):
            await order_service.cancel_order("not-an-id", seeded.customer)


class TestCancellationDecision:
    @pytest.mark.asyncio
    async def test_approve_cancels_and_opens_refund_for_paid_online(self, order_service, db, seeded):
        order = await _paid_online_order(order_service, seeded)
        await order_service.cancel_order(str(order["_id"]), seeded.customer)

        updated = await order_service.handle_cancellation(str(order["_id"]), "approve", seeded.admin)

        assert updated["order_status"] == "cancelled"
        assert updated["cancellation_status"] == "approved"
        assert updated["cancellation_approved_by"] == "Head Admin"
        assert updated["refund_status"] == "pending"
        assert updated["refund_amount"] == 2400
        assert updated["cancelled_at"] is not None
        assert await _stock(db, seeded.shirt) == 10

    @pytest.mark.asyncio
    async def test_approve_cod_order_has_no_refund(self, order_service, seeded):
        order = await _place(order_service, seeded)
        await order_service.cancel_order(str(order["_id"]), seeded.customer)

        updated = await order_service.handle_cancellation(str(order["_id"]), "approve", seeded.admin)

        assert updated["order_status"] == "cancelled"
        assert updated["refund_status"] == "none"

    @pytest.mark.asyncio
    async def test_reject_takes_stock_back(self, order_service, db, seeded):
        order = await _place(order_service, seeded, quantity=2)
        await order_service.cancel_order(str(order["_id"]), seeded.customer)
        assert await _stock(db, seeded.shirt) == 10

        updated = await order_service.handle_cancellation(str(order["_id"]), "reject", seeded.admin, "Already packed")

        assert updated["cancellation_status"] == "rejected"
        assert updated["cancellation_rejection_reason"] == "Already packed"
        assert updated["order_status"] == "pending"
        assert await _stock(db, seeded.shirt) == 8

    @pytest.mark.asyncio
    async def test_unknown_action(self, order_service, seeded):
        order = await _place(order_service, seeded)
        with pytest.raises(ValidationFailed):
            await order_service.handle_cancellation(str(order["_id"]), "maybe", seeded.admin)

    @pytest.mark.asyncio
    async def test_reject_after_approve_is_refused(self, order_service, db, seeded):
        order = await _place(order_service, seeded, quantity=2)
        await order_service.cancel_order(str(order["_id"]), seeded.customer)
        await order_service.handle_cancellation(str(order["_id"]), "approve", seeded.admin)

        with pytest.raises(BusinessRuleError, match="No pending cancellation request"):
            await order_service.handle_cancellation(str(order["_id"]), "reject", seeded.admin)

        stored = await db.orders.find_one({"_id": order["_id"]})
        assert stored["order_status"] == "cancelled"
        assert stored["cancellation_status"] == "approved"
        assert await _stock(db, seeded.shirt) == 10

    @pytest.mark.asyncio
    async def test_approve_after_reject_is_refused(self, order_service, db, seeded):
        order = await _place(order_service, seeded, quantity=2)
        await order_service.cancel_order(str(order["_id"]), seeded.customer)
        await order_service.handle_cancellation(str(order["_id"]), "reject", seeded.admin)

        with pytest.raises(BusinessRuleError, match="No pending cancellation request"):
            await order_service.handle_cancellation(str(order["_id"]), "approve", seeded.admin)

        stored = await db.orders.find_one({"_id": order["_id"]})
        assert stored["order_status"] == "pending"
        assert stored["cancellation_status"] == "rejected"
        assert await _stock(db, seeded.shirt) == 8

    @pytest.mark.asyncio
    async def test_decision_without_request_is_refused(self, order_service, db, seeded):
        order = await _place(order_service, seeded, quantity=2)

        with pytest.raises(BusinessRuleError):
            await order_service.handle_cancellation(str(order["_id"]), "approve", seeded.admin)

        stored = await db.orders.find_one({"_id": order["_id"]})
        assert stored["order_status"] == "pending"
        assert await _stock(db, seeded.shirt) == 8

    @pytest.mark.asyncio
    async def test_shipping_with_pending_request_takes_stock_back(self, order_service, db, seeded):
        order = await _place(order_service, seeded, quantity=2)
        await order_service.cancel_order(str(order["_id"]), seeded.customer)
        assert await _stock(db, seeded.shirt) == 10

        await order_service.update_order_status(str(order["_id"]), OrderStatus.SHIPPED)
        await order_service.update_order_status(str(order["_id"]), OrderStatus.DELIVERED)

        assert await _stock(db, seeded.shirt) == 8

    @pytest.mark.asyncio
    async def test_delivered_order_cannot_be_approved(self, order_service, db, seeded):
        order = await _place(order_service, seeded, quantity=2)
        await order_service.cancel_order(str(order["_id"]), seeded.customer)
        await order_service.update_order_status(str(order["_id"]), OrderStatus.DELIVERED)
        assert await _stock(db, seeded.shirt) == 8

        with pytest.raises(BusinessRuleError, match="cannot be cancelled"):
            await order_service.handle_cancellation(str(order["_id"]), "approve", seeded.admin)

        stored = await db.orders.find_one({"_id": order["_id"]})
        assert stored["order_status"] == "delivered"
        assert stored["cancellation_status"] == "requested"
        assert await _stock(db, seeded.shirt) == 8


class TestStatusAndRevenue:
    @pytest.mark.asyncio
    async def test_delivered_cod_order_earns_revenue(self, order_service, seeded):
        order = await _place(order_service, seeded)

        updated = await order_service.update_order_status(str(order["_id"]), OrderStatus.DELIVERED)

        assert updated["order_status"] == "delivered"
        assert updated["revenue_status"] == "earned"
        assert all(entry["completed"] for entry in updated["tracking_history"])

    @pytest.mark.asyncio
    async def test_processing_paid_online_confirms_revenue(self, order_service, seeded):
        order = await _paid_online_order(order_service, seeded)

        updated = await order_service.update_order_status(str(order["_id"]), OrderStatus.PROCESSING)

        assert updated["revenue_status"] == "confirmed"

    @pytest.mark.asyncio
    async def test_unpaid_online_order_revenue_stays_pending(self, order_service, seeded):
        order = await _place(order_service, seeded, payment_method="online")

        updated = await order_service.update_order_status(str(order["_id"]), OrderStatus.DELIVERED)

        assert updated["revenue_status"] == "pending"

    @pytest.mark.asyncio
    async def test_status_update_publishes_tracking(self, order_service, broadcaster, seeded):
        order = await _place(order_service, seeded)
        subscriber = RecordingSubscriber()
        broadcaster.subscribe(user_topic(seeded.customer["_id"]), subscriber)

        await order_service.update_order_status(str(order["_id"]), OrderStatus.SHIPPED)

        (payload,) = subscriber.named(ORDER_STATUS_UPDATED)
        assert payload["order_status"] == "shipped"
        assert "tracking_history" in payload


class TestRefund:
    @pytest.mark.asyncio
    async def test_refund_processed_once(self, order_service, seeded):
        order = await _paid_online_order(order_service, seeded)

        updated = await order_service.process_refund(str(order["_id"]), seeded.admin)

        assert updated["refund_status"] == "completed"
        assert updated["payment_status"] == "refunded"
        assert updated["refund_amount"] == 2400
        assert updated["revenue_status"] == "pending"

        with pytest.raises(BusinessRuleError):
            await order_service.process_refund(str(order["_id"]), seeded.admin)

    @pytest.mark.asyncio
    async def test_cod_order_cannot_be_refunded(self, order_service, seeded):
        order = await _place(order_service, seeded)
        with pytest.raises(BusinessRuleError, match="online orders with completed payment"):
            await order_service.process_refund(str(order["_id"]), seeded.admin)


class TestConfirmCOD:
    @pytest.mark.asyncio
    async def test_confirms_revenue_and_payment(self, order_service, seeded):
        order = await _place(order_service, seeded)

        updated = await order_service.confirm_cod_receipt(str(order["_id"]), 2400, seeded.admin)

        assert updated["revenue_status"] == "confirmed"
        assert updated["revenue_amount"] == 2400
        assert updated["payment_status"] == "completed"
        assert updated["cod_confirmed_by"] == "Head Admin"

    @pytest.mark.asyncio
    async def test_rejects_online_orders(self, order_service, seeded):
        order = await _paid_online_order(order_service, seeded)
        with pytest.raises(BusinessRuleError, match="not a COD order"):
            await order_service.confirm_cod_receipt(str(order["_id"]), 2400, seeded.admin)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [None, 0, -5])
    async def test_requires_positive_amount(self, order_service, seeded, amount):
        order = await _place(order_service, seeded)
        with pytest.raises(ValidationFailed):
            await order_service.confirm_cod_receipt(str(order["_id"]), amount, seeded.admin)


class TestAccess:
    @pytest.mark.asyncio
    async def test_owner_and_admin_role_can_view(self, order_service, seeded):
        order = await _place(order_service, seeded)

        assert (await order_service.get_order(str(order["_id"]), seeded.customer))["_id"] == order["_id"]
        assert (await order_service.get_order(str(order["_id"]), seeded.staff_user))["_id"] == order["_id"]
        with pytest.raises(AuthorizationError):
            await order_service.get_order(str(order["_id"]), seeded.other_customer)

    @pytest.mark.asyncio
    async def test_list_user_orders_paginates(self, order_service, seeded):
        for _ in range(3):
            await _place(order_service, seeded, quantity=1)

        page = await order_service.list_user_orders(seeded.customer, limit=2, offset=0)

        assert len(page["orders"]) == 2
        assert page["pagination"] == {"total": 3, "limit": 2, "offset": 0, "has_more": True}
        assert (await order_service.list_user_orders(seeded.other_customer))["orders"] == []

    @pytest.mark.asyncio
    async def test_list_all_orders_filters_by_status(self, order_service, seeded):
        first = await _place(order_service, seeded, quantity=1)
        await _place(order_service, seeded, quantity=1)
        await order_service.update_order_status(str(first["_id"]), OrderStatus.SHIPPED)

        result = await order_service.list_all_orders(status="shipped")

        assert result["pagination"]["total"] == 1
        assert result["orders"][0]["user"]["email"] == "asha@example.com"


class TestTrackOrder:
    @pytest.mark.asyncio
    async def test_track_by_order_number_masks_owner(self, order_service, seeded):
        order = await _place(order_service, seeded)

        tracked = await order_service.track_order(order["order_number"], phone="9876543210")

        assert tracked["order_number"] == order["order_number"]
        assert "user_id" not in tracked
        assert tracked["user"] == {"name": "Asha Verma", "phone": "91********10"}

    @pytest.mark.asyncio
    async def test_track_by_tracking_number_without_phone(self, order_service, seeded):
        order = await _place(order_service, seeded)
        tracked = await order_service.track_order(f"  {order['tracking_number']} ")
        assert tracked["_id"] == order["_id"]

    @pytest.mark.asyncio
    async def test_phone_mismatch(self, order_service, seeded):
        order = await _place(order_service, seeded)
        with pytest.raises(AuthorizationError, match="Phone number does not match"):
            await order_service.track_order(order["order_number"], phone="9123456780")

    @pytest.mark.asyncio
    async def test_unknown_identifier(self, order_service, seeded):
        with pytest.raises(NotFoundError):
            await order_service.track_order("VB000")
        with pytest.raises(ValidationFailed):
            await order_service.track_order("   ")
