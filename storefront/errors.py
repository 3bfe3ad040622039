"""Custom exceptions for the storefront order lifecycle."""
from typing import Any, Dict, Optional


class StorefrontError(Exception):
    """Base exception for all storefront errors. Carries its HTTP status."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationFailed(StorefrontError):
    """Raised when a request is missing fields or carries malformed values."""

    status_code = 400


class BusinessRuleError(StorefrontError):
    """Raised when a request is well formed but the order state forbids it."""

    status_code = 400


class SignatureMismatchError(BusinessRuleError):
    """Raised when a gateway signature does not match the recomputed HMAC."""

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message)


class AuthenticationError(StorefrontError):
    """Raised when a bearer token is missing, invalid or belongs to no active account."""

    status_code = 401


class AuthorizationError(StorefrontError):
    """Raised when an authenticated caller may not act on a resource."""

    status_code = 403


class NotFoundError(StorefrontError):
    """Raised when an order, product or other document doesn't exist."""

    status_code = 404

    def __init__(self, resource: str, identifier: Optional[str] = None, message: Optional[str] = None):
        self.resource = resource
        self.identifier = identifier
        if message is None:
            message = f"{resource} not found" if identifier is None else f"{resource} {identifier} not found"
        super().__init__(message)


class GatewayError(StorefrontError):
    """Raised when a payment gateway is unreachable or answers with an error."""

    status_code = 502

    def __init__(self, gateway: str, message: str, response: Any = None):
        self.gateway = gateway
        self.response = response
        super().__init__(message, {"gateway": gateway} if response is None else {"gateway": gateway, "response": response})


class ServiceUnavailableError(StorefrontError):
    """Raised when the document store is not connected."""

    status_code = 503
