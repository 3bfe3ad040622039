"""
FastAPI dependencies for authentication and common validations
"""
import logging
from typing import Any, Dict, Optional

import jwt
from bson import ObjectId
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..config.database import get_database
from ..errors import AuthenticationError, AuthorizationError, NotFoundError, ValidationFailed
from .security import decode_access_token

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def validate_object_id(object_id: str, resource_name: str = "resource") -> ObjectId:
    """
    Validate and convert string to ObjectId

    Args:
        object_id: String representation of ObjectId
        resource_name: Name of the resource for error messages

    Returns:
        Valid ObjectId instance

    Raises:
        ValidationFailed: If ObjectId format is invalid
    """
    if not ObjectId.is_valid(object_id):
        raise ValidationFailed(f"Invalid {resource_name} ID format: {object_id}")
    return ObjectId(object_id)


async def verify_order_exists(order_id: str, db: AsyncIOMotorDatabase) -> Dict[str, Any]:
    """
    Verify that an order exists in the database

    Raises:
        NotFoundError: If order is not found
        ValidationFailed: If the ID is malformed
    """
    object_id = validate_object_id(order_id, "order")

    order = await db.orders.find_one({"_id": object_id})
    if not order:
        raise NotFoundError("Order", message="Order not found")

    return order


def _subject_id(token: str) -> ObjectId:
    try:
        claims = decode_access_token(token)
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired. Please login again.")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token. Please login again.")

    subject = claims.get("id")
    if not subject or not ObjectId.is_valid(subject):
        raise AuthenticationError("Invalid token - missing user ID")
    return ObjectId(subject)


async def load_user_from_token(token: Optional[str], db: AsyncIOMotorDatabase) -> Optional[Dict[str, Any]]:
    """Resolve a token to an active user, or None when it doesn't resolve to one."""
    if not token:
        return None
    try:
        user_id = _subject_id(token)
    except AuthenticationError:
        return None
    user = await db.users.find_one({"_id": user_id})
    if not user or not user.get("is_active", True):
        return None
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> Dict[str, Any]:
    """
    Dependency resolving the bearer token to an active user document

    Raises:
        AuthenticationError: no token, bad token, unknown or deactivated user
    """
    if credentials is None:
        raise AuthenticationError("Not authorized to access this route - no token provided")

    user = await db.users.find_one({"_id": _subject_id(credentials.credentials)})
    if not user:
        raise AuthenticationError("User not found")
    if not user.get("is_active", True):
        raise AuthenticationError("Your account has been deactivated")
    return user


async def get_current_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> Dict[str, Any]:
    """
    Dependency resolving the bearer token to an active admin document

    Raises:
        AuthenticationError: no token or bad token
        AuthorizationError: valid token that doesn't belong to an active admin
    """
    if credentials is None:
        raise AuthenticationError("Not authorized to access this route. Admin token required.")

    admin = await db.admins.find_one({"_id": _subject_id(credentials.credentials)})
    if not admin or not admin.get("is_active", True):
        raise AuthorizationError("Admin access required")
    return admin


def is_admin_user(user: Dict[str, Any]) -> bool:
    return user.get("role") == "admin"
