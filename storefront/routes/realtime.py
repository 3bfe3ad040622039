"""
WebSocket transport for the notification broadcaster.

Clients connect to /ws?token=<bearer token>. Anonymous connections only get
global events. Authenticated users are joined to their own user room and to
the room of every order they own, and may join or leave order rooms with:

    {"action": "join-order-room", "order_id": "..."}
    {"action": "leave-order-room", "order_id": "..."}

Every push is a JSON object {"event": <name>, "data": <payload>}.
"""
import json
import logging
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..config.database import get_database
from ..services.notifications import NotificationBroadcaster, get_broadcaster, order_topic, user_topic
from ..utils.dependencies import load_user_from_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])

JOIN_ORDER_ROOM = "join-order-room"
LEAVE_ORDER_ROOM = "leave-order-room"


class WebSocketSubscriber:
    """Broadcaster subscriber backed by one WebSocket connection."""

    def __init__(self, websocket: WebSocket, user: Optional[Dict[str, Any]] = None):
        self.websocket = websocket
        self.user = user

    async def send_event(self, event: str, payload: Dict[str, Any]) -> None:
        await self.websocket.send_json({"event": event, "data": jsonable_encoder(payload)})


async def _owns_order(db: AsyncIOMotorDatabase, user: Optional[Dict[str, Any]], order_id: Any) -> bool:
    if user is None or not isinstance(order_id, str) or not ObjectId.is_valid(order_id):
        return False
    order = await db.orders.find_one({"_id": ObjectId(order_id), "user_id": user["_id"]}, {"_id": 1})
    return order is not None


async def _handle_message(
    subscriber: WebSocketSubscriber,
    message: Dict[str, Any],
    db: AsyncIOMotorDatabase,
    broadcaster: NotificationBroadcaster,
) -> None:
    action = message.get("action")
    order_id = message.get("order_id")

    if action == JOIN_ORDER_ROOM:
        # Rooms of orders the user doesn't own are ignored without a reply
        if await _owns_order(db, subscriber.user, order_id):
            broadcaster.subscribe(order_topic(order_id), subscriber)
            await subscriber.send_event("room-joined", {"order_id": order_id})
    elif action == LEAVE_ORDER_ROOM and isinstance(order_id, str):
        broadcaster.unsubscribe(order_topic(order_id), subscriber)
        await subscriber.send_event("room-left", {"order_id": order_id})


@router.websocket("/ws")
async def notifications_socket(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    db: AsyncIOMotorDatabase = Depends(get_database),
    broadcaster: NotificationBroadcaster = Depends(get_broadcaster),
):
    await websocket.accept()

    user = await load_user_from_token(token, db)
    subscriber = WebSocketSubscriber(websocket, user)
    broadcaster.connect(subscriber)

    if user is not None:
        broadcaster.subscribe(user_topic(user["_id"]), subscriber)
        owned = await db.orders.find({"user_id": user["_id"]}, {"_id": 1}).to_list(length=None)
        for order in owned:
            broadcaster.subscribe(order_topic(order["_id"]), subscriber)
        logger.info(f"🔌 WebSocket connected for user {user['_id']} ({len(owned)} order room(s))")
    else:
        logger.info("🔌 Anonymous WebSocket connected")

    try:
        await subscriber.send_event("connected", {"authenticated": user is not None})
        while True:
            text = await websocket.receive_text()
            try:
                message = json.loads(text)
            except ValueError:
                logger.debug("Ignoring non-JSON WebSocket message")
                continue
            if isinstance(message, dict):
                await _handle_message(subscriber, message, db, broadcaster)
    except WebSocketDisconnect:
        logger.info("🔌 WebSocket disconnected")
    finally:
        broadcaster.disconnect(subscriber)
