"""
Inventory adjustments for the order lifecycle.

Stock is a shared counter touched concurrently by checkouts and
cancellations, so it is only ever changed with a single $inc, never read and
written back. Reservation and restoration span several product documents and
are not transactional; restoration is made idempotent per order instead.
"""
import logging
from typing import Any, Dict, Iterable

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from ..errors import NotFoundError
from ..utils.serializers import utcnow

logger = logging.getLogger(__name__)


class InventoryAdjuster:
    """Atomic stock counter updates plus the cart side effect of checkout."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def adjust_stock(self, product_id: ObjectId, delta: int) -> Dict[str, Any]:
        """
        Atomically add `delta` to a product's stock (negative reserves, positive restores)

        No floor is enforced here; callers validate availability before
        reserving.

        Raises:
            NotFoundError: if the product doesn't exist
        """
        product = await self.db.products.find_one_and_update(
            {"_id": ObjectId(product_id)},
            {"$inc": {"stock": delta}, "$set": {"updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if product is None:
            raise NotFoundError("Product", str(product_id))
        logger.debug(f"Stock for product {product_id} adjusted by {delta} -> {product.get('stock')}")
        return product

    async def reserve_items(self, items: Iterable[Dict[str, Any]]) -> None:
        for item in items:
            await self.adjust_stock(item["product"], -int(item["quantity"]))

    async def _release_items(self, items: Iterable[Dict[str, Any]]) -> None:
        for item in items:
            try:
                await self.adjust_stock(item["product"], int(item["quantity"]))
            except NotFoundError:
                # Product was removed from the catalogue after the order was placed
                logger.warning(f"⚠️  Cannot restore stock for missing product {item['product']}")

    async def restore_items(self, order: Dict[str, Any]) -> bool:
        """
        Return an order's items to stock, at most once per order

        Returns:
            True if stock was restored by this call, False if it already was
        """
        claimed = await self.db.orders.find_one_and_update(
            {"_id": order["_id"], "stock_restored": {"$ne": True}},
            {"$set": {"stock_restored": True}},
        )
        if claimed is None:
            logger.info(f"Stock for order {order['_id']} already restored, skipping")
            return False

        await self._release_items(claimed.get("order_items", []))
        logger.info(f"📦 Stock restored for order {order['_id']}")
        return True

    async def rereserve_items(self, order: Dict[str, Any]) -> bool:
        """
        Take back stock released by a cancellation request that was later rejected

        Returns:
            True if stock was reserved again by this call
        """
        claimed = await self.db.orders.find_one_and_update(
            {"_id": order["_id"], "stock_restored": True},
            {"$set": {"stock_restored": False}},
        )
        if claimed is None:
            return False

        await self.reserve_items(claimed.get("order_items", []))
        logger.info(f"📦 Stock re-reserved for order {order['_id']}")
        return True

    async def clear_cart(self, user_id: ObjectId) -> None:
        """Empty the user's cart after a successful checkout."""
        await self.db.carts.update_one(
            {"user_id": user_id},
            {"$set": {"items": [], "coupon": None, "updated_at": utcnow()}},
        )
