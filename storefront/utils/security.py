"""
Token and signature helpers.
"""
import base64
import hashlib
import hmac
from datetime import timedelta
from typing import Any, Dict, Optional

import jwt

from ..config.settings import Settings, get_settings
from .serializers import utcnow


def create_access_token(
    subject_id: Any,
    extra_claims: Optional[Dict[str, Any]] = None,
    settings: Optional[Settings] = None,
) -> str:
    """Issue a signed bearer token whose `id` claim names a user or admin document."""
    settings = settings or get_settings()
    claims = {
        "id": str(subject_id),
        "exp": utcnow() + timedelta(minutes=settings.jwt_expires_minutes),
    }
    if extra_claims:
        claims.update(extra_claims)
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Optional[Settings] = None) -> Dict[str, Any]:
    """
    Verify a bearer token and return its claims

    Raises:
        jwt.ExpiredSignatureError: token expired
        jwt.InvalidTokenError: any other signature or format problem
    """
    settings = settings or get_settings()
    return jwt.decode(token.strip(), settings.jwt_secret, algorithms=[settings.jwt_algorithm])


def hmac_sha256_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def hmac_sha256_base64(secret: str, message: bytes) -> str:
    digest = hmac.new(secret.encode(), message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def signatures_match(expected: str, supplied: Optional[str]) -> bool:
    """Exact comparison in constant time; a missing signature never matches."""
    if not supplied:
        return False
    return hmac.compare_digest(expected.encode(), supplied.encode())
