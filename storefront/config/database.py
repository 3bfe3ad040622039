"""
Database configuration and connection management.
Handles MongoDB connection lifecycle and database operations.
"""
import logging
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from contextlib import asynccontextmanager
from fastapi import FastAPI

from ..errors import ServiceUnavailableError
from .settings import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


class DatabaseManager:
    """Manages MongoDB database connection and operations."""

    def __init__(self):
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None

    async def connect(self) -> None:
        """Establish connection to MongoDB."""
        try:
            logger.info("🚀 Connecting to MongoDB...")

            self.client = AsyncIOMotorClient(
                settings.mongodb_url,
                serverSelectionTimeoutMS=settings.server_selection_timeout_ms,
                connectTimeoutMS=settings.connect_timeout_ms,
                socketTimeoutMS=settings.socket_timeout_ms,
                maxPoolSize=settings.max_pool_size,
                minPoolSize=settings.min_pool_size,
                retryWrites=settings.retry_writes,
                directConnection=settings.direct_connection,
            )

            self.database = self.client[settings.database_name]

            await self.client.admin.command('ping')
            logger.info("✅ Connected to MongoDB successfully")

        except Exception as db_error:
            # The app still starts so health checks can report the outage
            logger.warning(f"⚠️  MongoDB connection failed: {db_error}")

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client is not None:
            self.client.close()
            logger.info("🔌 MongoDB connection closed")

    async def create_indexes(self) -> None:
        """Create the indexes the order lifecycle queries rely on."""
        if self.database is None:
            logger.warning("Database not connected, skipping index creation")
            return

        try:
            await self.database.products.create_index("name")

            await self.database.orders.create_index("user_id")
            await self.database.orders.create_index("order_number", unique=True)
            await self.database.orders.create_index("tracking_number")
            await self.database.orders.create_index("razorpay.order_id")
            await self.database.orders.create_index("cashfree.order_id")
            await self.database.orders.create_index([("user_id", 1), ("created_at", -1)])

            await self.database.carts.create_index("user_id")

            logger.info("✅ Database indexes created successfully")

        except Exception as index_error:
            logger.warning(f"⚠️  Failed to create indexes: {index_error}")

    def get_database(self) -> AsyncIOMotorDatabase:
        """Get database instance."""
        if self.database is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self.database

    def is_connected(self) -> bool:
        """Check if database is connected."""
        return self.database is not None


# Global database manager instance
db_manager = DatabaseManager()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context manager for database connection."""
    from ..bootstrap import seed_admin
    from ..services.notifications import get_broadcaster

    logger.info("🚀 Starting up application...")
    await db_manager.connect()
    await db_manager.create_indexes()
    if db_manager.is_connected():
        try:
            await seed_admin(db_manager.get_database(), settings)
        except Exception as seed_error:
            logger.error(f"❌ Failed to seed bootstrap admin: {seed_error}")

    app.state.db_manager = db_manager
    app.state.broadcaster = get_broadcaster()

    yield

    await db_manager.disconnect()


async def get_database() -> AsyncIOMotorDatabase:
    """FastAPI dependency to get database instance."""
    if not db_manager.is_connected():
        raise ServiceUnavailableError(
            "Database connection not available. Please check your MongoDB connection."
        )
    return db_manager.get_database()


def get_database_manager() -> DatabaseManager:
    """Get database manager instance."""
    return db_manager
