"""
Admin provisioning.

Admins live in their own `admins` collection and are never created by
registration. The bootstrap admin named in settings is upserted at startup;
running this module seeds it and prints a bearer token for it:

    python -m storefront.bootstrap
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from .config.settings import Settings, get_settings
from .utils.security import create_access_token
from .utils.serializers import utcnow

logger = logging.getLogger(__name__)


async def seed_admin(db: AsyncIOMotorDatabase, settings: Settings) -> Optional[Dict[str, Any]]:
    """
    Upsert the configured bootstrap admin

    Args:
        db: Database handle
        settings: Application settings carrying admin_bootstrap_email/name

    Returns:
        The admin document, or None when no bootstrap email is configured
    """
    if not settings.admin_bootstrap_email:
        logger.info("No bootstrap admin configured, skipping admin seed")
        return None

    email = settings.admin_bootstrap_email.strip().lower()
    now = utcnow()
    admin = await db.admins.find_one_and_update(
        {"email": email},
        {
            "$set": {"name": settings.admin_bootstrap_name, "updated_at": now},
            "$setOnInsert": {"email": email, "role": "admin", "is_active": True, "created_at": now},
        },
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    logger.info(f"👤 Bootstrap admin ready: {email}")
    return admin


async def _run() -> None:
    from .config.database import DatabaseManager

    settings = get_settings()
    manager = DatabaseManager()
    await manager.connect()
    try:
        admin = await seed_admin(manager.get_database(), settings)
        if admin is None:
            print("Set ADMIN_BOOTSTRAP_EMAIL to seed an admin.")
            return
        print(create_access_token(admin["_id"], {"role": "admin"}, settings))
    finally:
        await manager.disconnect()


def main() -> None:
    logging.basicConfig(level=get_settings().log_level)
    asyncio.run(_run())


if __name__ == "__main__":
    main()
