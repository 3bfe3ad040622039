"""
Admin endpoints for announcements and coupons, pushed live to every connected client.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..config.database import get_database
from ..errors import BusinessRuleError
from ..schemas.announcement import CreateAnnouncementRequest, CreateCouponRequest
from ..schemas.common import SuccessResponse
from ..services.notifications import NEW_ANNOUNCEMENT, NEW_COUPON, NotificationBroadcaster, get_broadcaster
from ..utils.dependencies import get_current_admin
from ..utils.serializers import api_response, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Admin"])


@router.post("/announcements", status_code=201, response_model=SuccessResponse)
async def create_announcement(
    announcement: CreateAnnouncementRequest,
    admin: Dict[str, Any] = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_database),
    broadcaster: NotificationBroadcaster = Depends(get_broadcaster),
):
    doc = {**announcement.model_dump(), "created_by": admin["_id"], "created_at": utcnow()}
    result = await db.announcements.insert_one(doc)
    doc["_id"] = result.inserted_id

    logger.info(f"📣 Announcement created: {doc['title']} (ID: {result.inserted_id})")
    if doc["active"]:
        await broadcaster.broadcast(NEW_ANNOUNCEMENT, {
            "id": doc["_id"],
            "type": doc["type"],
            "title": doc["title"],
            "message": doc["message"],
            "data": None,
            "created_at": doc["created_at"],
        })
    return api_response(doc, "Announcement created successfully")


@router.post("/coupons", status_code=201, response_model=SuccessResponse)
async def create_coupon(
    coupon: CreateCouponRequest,
    admin: Dict[str, Any] = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_database),
    broadcaster: NotificationBroadcaster = Depends(get_broadcaster),
):
    if await db.coupons.find_one({"code": coupon.code}):
        raise BusinessRuleError(f"Coupon code {coupon.code} already exists")

    doc = {**coupon.model_dump(), "created_by": admin["_id"], "created_at": utcnow()}
    result = await db.coupons.insert_one(doc)
    doc["_id"] = result.inserted_id

    logger.info(f"🏷️  Coupon created: {doc['code']} (ID: {result.inserted_id})")
    if doc["is_active"]:
        if doc["discount_type"] == "percentage":
            summary = f"Use {doc['code']} for {doc['discount_value']:g}% off"
        else:
            summary = f"Use {doc['code']} for {doc['discount_value']:g} off"
        await broadcaster.broadcast(NEW_COUPON, {
            "id": doc["_id"],
            "type": "coupon",
            "title": "New coupon available",
            "message": doc.get("description") or summary,
            "data": {"code": doc["code"], "discount_type": doc["discount_type"], "discount_value": doc["discount_value"]},
            "created_at": doc["created_at"],
        })
    return api_response(doc, "Coupon created successfully")
