"""Razorpay REST client and signature checks.

Amounts cross the gateway boundary in paise: multiplied by 100 on the way
out and divided by 100 on the way back.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import httpx

from funbookr.core.config import settings
from funbookr.services.pricing import money

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Base error for payment gateway failures."""


class GatewayAuthError(GatewayError):
    """Raised when the gateway rejects our credentials."""


class GatewayConnectionError(GatewayError):
    """Raised when the gateway cannot be reached or times out."""


class GatewayRequestError(GatewayError):
    """Raised for any other non-2xx gateway response."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(value: int | None) -> Decimal:
    return money(Decimal(value or 0) / 100)


@dataclass(frozen=True)
class GatewayOrder:
    id: str
    amount: Decimal
    currency: str
    receipt: str | None
    status: str


@dataclass(frozen=True)
class GatewayPayment:
    id: str
    order_id: str | None
    amount: Decimal
    currency: str
    status: str
    method: str | None = None
    card_last4: str | None = None
    card_brand: str | None = None
    error_description: str | None = None
    raw: dict = field(default_factory=dict)

    @classmethod
    def from_entity(cls, data: dict[str, Any]) -> "GatewayPayment":
        card = data.get("card") or {}
        return cls(
            id=data["id"],
            order_id=data.get("order_id"),
            amount=from_minor_units(data.get("amount")),
            currency=data.get("currency", settings.default_currency),
            status=data.get("status", ""),
            method=data.get("method"),
            card_last4=card.get("last4"),
            card_brand=card.get("network"),
            error_description=data.get("error_description"),
            raw=data,
        )


@dataclass(frozen=True)
class GatewayRefund:
    id: str
    payment_id: str
    amount: Decimal
    status: str


class RazorpayClient:
    """Thin async wrapper over the Razorpay orders, payments and refunds API."""

    name = "razorpay"

    def __init__(
        self,
        key_id: str | None = None,
        key_secret: str | None = None,
        base_url: str | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.key_id = key_id if key_id is not None else settings.razorpay_key_id
        self._key_secret = key_secret if key_secret is not None else settings.razorpay_key_secret
        self.http = http or httpx.AsyncClient(
            base_url=base_url or settings.razorpay_base_url,
            auth=(self.key_id, self._key_secret),
            timeout=settings.razorpay_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def _request(self, method: str, path: str, *, json: dict[str, Any] | None = None) -> dict:
        try:
            response = await self.http.request(method, path, json=json)
        except httpx.TimeoutException as exc:
            raise GatewayConnectionError(f"Razorpay request timed out: {method} {path}") from exc
        except httpx.RequestError as exc:
            raise GatewayConnectionError(f"Razorpay connection failed: {exc}") from exc

        if response.status_code == 401:
            raise GatewayAuthError("Razorpay rejected the API credentials")
        if response.status_code >= 400:
            description = _error_description(response)
            logger.error("Razorpay %s %s failed with %s: %s", method, path, response.status_code, description)
            raise GatewayRequestError(description, status_code=response.status_code)
        return response.json()

    async def create_order(
        self,
        amount: Decimal,
        currency: str,
        receipt: str,
        notes: dict[str, str] | None = None,
        now: datetime | None = None,
    ) -> GatewayOrder:
        now = now or datetime.now(UTC)
        payload = {
            "amount": to_minor_units(amount),
            "currency": currency,
            "receipt": receipt,
            "notes": {"booking_reference": receipt, "created_at": now.isoformat(), **(notes or {})},
        }
        data = await self._request("POST", "orders", json=payload)
        logger.info("Razorpay order %s created for %s %s (%s)", data["id"], amount, currency, receipt)
        return GatewayOrder(
            id=data["id"],
            amount=from_minor_units(data.get("amount")),
            currency=data.get("currency", currency),
            receipt=data.get("receipt"),
            status=data.get("status", "created"),
        )

    async def fetch_payment(self, payment_id: str) -> GatewayPayment:
        data = await self._request("GET", f"payments/{payment_id}")
        return GatewayPayment.from_entity(data)

    async def create_refund(
        self,
        payment_id: str,
        amount: Decimal,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> GatewayRefund:
        now = now or datetime.now(UTC)
        payload = {
            "amount": to_minor_units(amount),
            "speed": "normal",
            "notes": {"reason": reason or "Booking cancelled", "created_at": now.isoformat()},
            "receipt": f"refund_{now:%Y%m%d%H%M%S}",
        }
        data = await self._request("POST", f"payments/{payment_id}/refund", json=payload)
        logger.info("Razorpay refund %s issued for payment %s: %s", data["id"], payment_id, amount)
        return _refund_from(data, payment_id)

    async def fetch_refund(self, refund_id: str) -> GatewayRefund:
        data = await self._request("GET", f"refunds/{refund_id}")
        return _refund_from(data, data.get("payment_id", ""))


def _refund_from(data: dict[str, Any], payment_id: str) -> GatewayRefund:
    return GatewayRefund(
        id=data["id"],
        payment_id=data.get("payment_id", payment_id),
        amount=from_minor_units(data.get("amount")),
        status=data.get("status", ""),
    )


def _error_description(response: httpx.Response) -> str:
    try:
        return response.json()["error"]["description"]
    except (ValueError, KeyError, TypeError):
        return response.text or f"HTTP {response.status_code}"


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------


def compute_signature(message: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def _matches(expected: str, signature: str | None) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(expected, signature.strip().lower())


def verify_payment_signature(order_id: str, payment_id: str, signature: str | None, secret: str | None = None) -> bool:
    """Checkout callback signature: HMAC-SHA256 of "order_id|payment_id" with the key secret."""
    secret = settings.razorpay_key_secret if secret is None else secret
    return _matches(compute_signature(f"{order_id}|{payment_id}".encode(), secret), signature)


def verify_webhook_signature(body: bytes, signature: str | None, secret: str | None = None) -> bool:
    """Webhook signature: HMAC-SHA256 of the raw request body with the webhook secret."""
    secret = settings.razorpay_webhook_secret if secret is None else secret
    return _matches(compute_signature(body, secret), signature)
