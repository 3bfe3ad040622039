"""
Publish/subscribe hub for real-time order notifications.

The order and payment services only see `NotificationBroadcaster`; the
WebSocket transport registers its connections as subscribers. Delivery is
best-effort and at-most-once: nothing is persisted and a subscriber that
fails to receive an event is dropped.
"""
import logging
from typing import Any, Dict, Iterable, Optional, Protocol, Set

from ..utils.serializers import convert_object_ids

logger = logging.getLogger(__name__)

ORDER_STATUS_UPDATED = "order-status-updated"
NEW_ANNOUNCEMENT = "new-announcement"
NEW_COUPON = "new-coupon"


class Subscriber(Protocol):
    """Anything that can receive a pushed event (e.g. a WebSocket connection)."""

    async def send_event(self, event: str, payload: Dict[str, Any]) -> None:
        ...


def order_topic(order_id: Any) -> str:
    return f"order:{order_id}"


def user_topic(user_id: Any) -> str:
    return f"user:{user_id}"


class NotificationBroadcaster:
    """In-process topic registry with order-, user- and global-scoped delivery."""

    def __init__(self) -> None:
        self._topics: Dict[str, Set[Subscriber]] = {}
        self._connections: Set[Subscriber] = set()

    def connect(self, subscriber: Subscriber) -> None:
        """Register a subscriber for global events."""
        self._connections.add(subscriber)

    def disconnect(self, subscriber: Subscriber) -> None:
        """Forget a subscriber and every topic it joined."""
        self._connections.discard(subscriber)
        for topic in list(self._topics):
            self.unsubscribe(topic, subscriber)

    def subscribe(self, topic: str, subscriber: Subscriber) -> None:
        self._topics.setdefault(topic, set()).add(subscriber)

    def unsubscribe(self, topic: str, subscriber: Subscriber) -> None:
        subscribers = self._topics.get(topic)
        if not subscribers:
            return
        subscribers.discard(subscriber)
        if not subscribers:
            del self._topics[topic]

    def subscribers(self, *topics: str) -> Set[Subscriber]:
        found: Set[Subscriber] = set()
        for topic in topics:
            found.update(self._topics.get(topic, ()))
        return found

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def _deliver(self, subscribers: Iterable[Subscriber], event: str, payload: Dict[str, Any]) -> int:
        delivered = 0
        for subscriber in list(subscribers):
            try:
                await subscriber.send_event(event, payload)
                delivered += 1
            except Exception as exc:
                logger.warning(f"⚠️  Dropping subscriber after failed '{event}' delivery: {exc}")
                self.disconnect(subscriber)
        return delivered

    async def publish(self, topic: str, event: str, payload: Dict[str, Any]) -> int:
        """Push an event to every subscriber of one topic."""
        return await self._deliver(self.subscribers(topic), event, convert_object_ids(payload))

    async def publish_order_update(self, order: Dict[str, Any], fields: Iterable[str] = ()) -> int:
        """
        Push an `order-status-updated` event for an order.

        The payload always carries order_id, order_status and updated_at plus
        the requested `fields` of the order. Each subscriber of the order topic
        or the owner's user topic receives it once.
        """
        payload: Dict[str, Any] = {
            "order_id": str(order["_id"]),
            "order_status": order.get("order_status"),
        }
        for field in fields:
            payload[field] = order.get(field)
        payload["updated_at"] = order.get("updated_at")

        subscribers = self.subscribers(order_topic(order["_id"]), user_topic(order.get("user_id")))
        delivered = await self._deliver(subscribers, ORDER_STATUS_UPDATED, convert_object_ids(payload))
        logger.debug(f"Order {order['_id']} update delivered to {delivered} subscriber(s)")
        return delivered

    async def broadcast(self, event: str, payload: Dict[str, Any]) -> int:
        """Push an event to every connected subscriber."""
        return await self._deliver(self._connections, event, convert_object_ids(payload))


_broadcaster: Optional[NotificationBroadcaster] = None


def get_broadcaster() -> NotificationBroadcaster:
    """FastAPI dependency returning the process-wide broadcaster."""
    global _broadcaster
    if _broadcaster is None:
        _broadcaster = NotificationBroadcaster()
    return _broadcaster
