"""
Payment gateway adapters.

Each adapter talks to one provider's REST API and turns its responses and
webhook payloads into a `PaymentOutcome`. Signature checks fail closed: any
mismatch raises before the payload is trusted.
"""
import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiohttp
from pydantic import BaseModel

from ..config.settings import Settings
from ..errors import BusinessRuleError, GatewayError, SignatureMismatchError, ValidationFailed
from ..models.order import PaymentGateway, PaymentStatus
from ..schemas.order import PLACEHOLDER_PAYMENT_IDS
from ..utils.security import hmac_sha256_base64, hmac_sha256_hex, signatures_match

logger = logging.getLogger(__name__)

# ACTIVE means the order is still open for payment, not that it was paid
CASHFREE_PAID_ORDER_STATUS = "PAID"
CASHFREE_SUCCESS_PAYMENT_STATUSES = ("SUCCESS", "PAID")


class PaymentOutcome(BaseModel):
    """Gateway-independent view of a payment."""
    gateway: PaymentGateway
    order_id: str
    payment_id: Optional[str] = None
    status: PaymentStatus
    amount: Optional[float] = None
    currency: Optional[str] = None
    method: Optional[str] = None
    signature: Optional[str] = None
    raw: Dict[str, Any] = {}


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def _require_amount(amount: Optional[float]) -> float:
    if amount is None or amount <= 0:
        raise ValidationFailed("Invalid amount")
    return amount


class GatewayClient(ABC):
    """Shared aiohttp plumbing: bounded timeout, JSON in and out, errors as GatewayError."""

    name = "gateway"

    def __init__(self, settings: Settings):
        self.settings = settings
        self.timeout = aiohttp.ClientTimeout(total=settings.gateway_timeout_seconds)

    @property
    @abstractmethod
    def base_url(self) -> str:
        """Provider API root, without a trailing slash."""

    def _auth(self) -> Optional[aiohttp.BasicAuth]:
        return None

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.request(
                    method, url, json=payload, headers=self._headers(), auth=self._auth()
                ) as response:
                    text = await response.text()
                    body = json.loads(text) if text else {}
                    if response.status >= 400:
                        logger.error(f"❌ {self.name} API error: {response.status} {method} {path} - {text}")
                        message = body.get("message") if isinstance(body, dict) else None
                        if not message and isinstance(body, dict) and isinstance(body.get("error"), dict):
                            message = body["error"].get("description")
                        raise GatewayError(self.name, message or f"{self.name} request failed", body)
                    return body
        except aiohttp.ClientError as exc:
            logger.error(f"❌ {self.name} unreachable: {method} {path} - {exc}")
            raise GatewayError(self.name, f"{self.name} is unreachable: {exc}")
        except asyncio.TimeoutError:
            logger.error(f"❌ {self.name} timed out: {method} {path}")
            raise GatewayError(self.name, f"{self.name} request timed out")
        except json.JSONDecodeError:
            raise GatewayError(self.name, f"{self.name} returned a malformed response")


class RazorpayGateway(GatewayClient):
    """Razorpay orders, payments and webhooks."""

    name = PaymentGateway.RAZORPAY.value

    @property
    def base_url(self) -> str:
        return self.settings.razorpay_base_url

    def _auth(self) -> aiohttp.BasicAuth:
        if not self.settings.razorpay_key_id or not self.settings.razorpay_key_secret:
            raise GatewayError(self.name, "Razorpay credentials not configured")
        return aiohttp.BasicAuth(self.settings.razorpay_key_id, self.settings.razorpay_key_secret)

    async def create_order(self, amount: float, currency: str = "INR", receipt: Optional[str] = None) -> Dict[str, Any]:
        """Create a gateway order; the amount is sent in paise with auto-capture on."""
        amount = _require_amount(amount)
        created = await self._request("POST", "/orders", {
            "amount": round(amount * 100),
            "currency": currency,
            "receipt": receipt or f"receipt_{_epoch_ms()}",
            "payment_capture": 1,
        })
        logger.info(f"💳 Razorpay order created: {created.get('id')}")
        return {
            "order_id": created.get("id"),
            "amount": created.get("amount"),
            "currency": created.get("currency"),
            "key_id": self.settings.razorpay_key_id,
        }

    def payment_signature(self, order_id: str, payment_id: str) -> str:
        return hmac_sha256_hex(self.settings.razorpay_key_secret, f"{order_id}|{payment_id}".encode())

    async def verify_payment(self, order_id: str, payment_id: str, signature: str) -> PaymentOutcome:
        """
        Check a checkout callback signature, then fetch the authoritative payment

        Raises:
            SignatureMismatchError: the signature doesn't match; nothing is fetched
        """
        if not self.settings.razorpay_key_secret:
            raise GatewayError(self.name, "Razorpay credentials not configured")
        if not signatures_match(self.payment_signature(order_id, payment_id), signature):
            logger.warning(f"⚠️  Razorpay signature mismatch for order {order_id}, payment {payment_id}")
            raise SignatureMismatchError("Payment verification failed: Invalid signature")

        payment = await self._request("GET", f"/payments/{payment_id}")
        amount = payment.get("amount")
        return PaymentOutcome(
            gateway=PaymentGateway.RAZORPAY,
            order_id=order_id,
            payment_id=payment_id,
            status=PaymentStatus.COMPLETED,
            amount=amount / 100 if amount is not None else None,
            currency=payment.get("currency"),
            method=payment.get("method"),
            signature=signature,
            raw=payment,
        )

    def verify_webhook(self, raw_body: bytes, signature: Optional[str]) -> None:
        """HMAC of the exact raw body with the webhook secret; raises on mismatch."""
        secret = self.settings.webhook_secret
        if not secret or not signatures_match(hmac_sha256_hex(secret, raw_body), signature):
            logger.warning("⚠️  Rejected Razorpay webhook with invalid signature")
            raise SignatureMismatchError("Invalid webhook signature")

    def parse_webhook(self, payload: Dict[str, Any]) -> Optional[PaymentOutcome]:
        """Outcome for payment.captured / payment.failed; None for any other event."""
        event = payload.get("event")
        entity = ((payload.get("payload") or {}).get("payment") or {}).get("entity")
        if not entity or not entity.get("order_id"):
            return None

        if event == "payment.captured":
            status = PaymentStatus.COMPLETED
        elif event == "payment.failed":
            status = PaymentStatus.FAILED
        else:
            return None

        amount = entity.get("amount")
        return PaymentOutcome(
            gateway=PaymentGateway.RAZORPAY,
            order_id=entity["order_id"],
            payment_id=entity.get("id"),
            status=status,
            amount=amount / 100 if amount is not None else None,
            currency=entity.get("currency"),
            method=entity.get("method"),
            signature=entity.get("signature"),
            raw=entity,
        )


class CashfreeGateway(GatewayClient):
    """Cashfree payment sessions, order lookups and webhooks."""

    name = PaymentGateway.CASHFREE.value

    @property
    def base_url(self) -> str:
        return self.settings.cashfree_base_url

    def _headers(self) -> Dict[str, str]:
        if not self.settings.cashfree_app_id or not self.settings.cashfree_secret_key:
            raise GatewayError(self.name, "Cashfree credentials not configured")
        return {
            "x-client-id": self.settings.cashfree_app_id,
            "x-client-secret": self.settings.cashfree_secret_key,
            "x-api-version": self.settings.cashfree_api_version,
            "Content-Type": "application/json",
        }

    async def create_session(
        self,
        amount: float,
        currency: str = "INR",
        customer: Optional[Dict[str, Any]] = None,
        order_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a payment session; Cashfree takes the amount in rupees."""
        amount = _require_amount(amount)
        customer = customer or {}
        session = await self._request("POST", "/orders", {
            "order_id": order_id or f"order_{_epoch_ms()}",
            "order_amount": round(amount, 2),
            "order_currency": currency,
            "customer_details": {
                "customer_id": customer.get("customer_id", ""),
                "customer_name": customer.get("name") or "Customer",
                "customer_email": customer.get("email") or "",
                "customer_phone": customer.get("phone") or "",
            },
            "order_meta": {
                "return_url": (
                    f"{self.settings.frontend_url}/order-success"
                    "?gateway=cashfree&order_id={order_id}&payment_id={payment_id}"
                ),
                "notify_url": f"{self.settings.backend_url}/api/payments/cashfree/webhook",
            },
        })
        if not session.get("payment_session_id"):
            raise GatewayError(self.name, "Failed to create Cashfree payment session", session)

        logger.info(f"💳 Cashfree session created for order {session.get('order_id')}")
        return {
            "order_id": session.get("order_id"),
            "payment_session_id": session["payment_session_id"],
            "app_id": self.settings.cashfree_app_id,
            "order_amount": session.get("order_amount"),
            "order_currency": session.get("order_currency"),
        }

    async def verify_payment(self, order_id: str, payment_id: Optional[str] = None) -> PaymentOutcome:
        """
        Ask Cashfree for the order's payment state

        Paid means order_status PAID or a SUCCESS payment in `payments`; a
        supplied payment id must itself be one of the successful payments.

        Raises:
            BusinessRuleError: the order is known but not paid
        """
        order = await self._request("GET", f"/orders/{order_id}")
        status = order.get("order_status")
        payments = order.get("payments") if isinstance(order.get("payments"), list) else []
        successful = [
            p for p in payments
            if isinstance(p, dict) and p.get("payment_status") in CASHFREE_SUCCESS_PAYMENT_STATUSES
        ]

        if payment_id and payment_id not in PLACEHOLDER_PAYMENT_IDS:
            successful = [p for p in successful if p.get("payment_id") == payment_id]
        else:
            payment_id = next((p.get("payment_id") for p in successful if p.get("payment_id")), None)
            if payment_id is None and status == CASHFREE_PAID_ORDER_STATUS:
                payment_id = order.get("payment_id")

        if not successful and status != CASHFREE_PAID_ORDER_STATUS:
            logger.warning(f"⚠️  Cashfree order {order_id} not paid: {status}")
            raise BusinessRuleError(f"Payment verification failed: {status or 'Unknown status'}")

        return PaymentOutcome(
            gateway=PaymentGateway.CASHFREE,
            order_id=order.get("order_id") or order_id,
            payment_id=payment_id,
            status=PaymentStatus.COMPLETED,
            amount=order.get("order_amount"),
            currency=order.get("order_currency") or "INR",
            method=order.get("payment_method") or "unknown",
            raw=order,
        )

    def verify_webhook(self, raw_body: bytes, signature: Optional[str], timestamp: Optional[str]) -> None:
        """Base64 HMAC of timestamp + raw body with the secret key; raises on mismatch."""
        secret = self.settings.cashfree_secret_key
        if not secret or not timestamp:
            logger.warning("⚠️  Rejected Cashfree webhook without secret or timestamp")
            raise SignatureMismatchError("Invalid webhook signature")
        expected = hmac_sha256_base64(secret, timestamp.encode() + raw_body)
        if not signatures_match(expected, signature):
            logger.warning("⚠️  Rejected Cashfree webhook with invalid signature")
            raise SignatureMismatchError("Invalid webhook signature")

    def parse_webhook(self, payload: Dict[str, Any]) -> Optional[PaymentOutcome]:
        data = payload.get("data") or {}
        order_id = (data.get("order") or {}).get("order_id")
        payment = data.get("payment") or {}
        payment_id = payment.get("payment_id")
        status = payment.get("payment_status")

        if status == "SUCCESS" and order_id and payment_id:
            outcome_status = PaymentStatus.COMPLETED
        elif status == "FAILED" and order_id:
            outcome_status = PaymentStatus.FAILED
        else:
            return None

        return PaymentOutcome(
            gateway=PaymentGateway.CASHFREE,
            order_id=order_id,
            payment_id=payment_id,
            status=outcome_status,
            amount=payment.get("payment_amount"),
            currency=payment.get("payment_currency"),
            method=str(payment.get("payment_group")) if payment.get("payment_group") else None,
            raw=data,
        )
