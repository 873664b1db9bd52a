"""Thin synchronous client for the Paystack REST API.

Amounts sent to and received from Paystack are in cents (the gateway calls
them the currency subunit). Every call raises :class:`PaystackError` when the
gateway answers with a non-2xx status or ``"status": false``.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import string
import time
from typing import Any, Dict, Iterable, Optional

import httpx

from ..core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_CHANNELS = ("card", "bank_transfer", "eft")
TICKET_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
_BASE36 = string.digits + string.ascii_uppercase


class PaystackError(Exception):
    """Gateway refused or failed a request."""

    def __init__(self, message: str, status_code: int | None = None, payload: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


def _headers() -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {settings.PAYSTACK_SECRET_KEY}",
        "Content-Type": "application/json",
    }


def _request(method: str, path: str, *, json: Optional[dict] = None, params: Optional[dict] = None) -> dict:
    url = f"{settings.PAYSTACK_BASE_URL}{path}"
    try:
        with httpx.Client(timeout=settings.PAYSTACK_TIMEOUT) as client:
            r = client.request(method, url, json=json, params=params, headers=_headers())
    except httpx.HTTPError as exc:
        logger.error("Paystack %s %s transport error: %s", method, path, exc)
        raise PaystackError(f"Paystack unreachable: {exc}") from exc

    try:
        body = r.json()
    except ValueError:
        body = {}
    if r.status_code >= 400 or not body.get("status", False):
        message = body.get("message") or "Paystack API error"
        logger.warning("Paystack %s %s failed (%s): %s", method, path, r.status_code, message)
        raise PaystackError(message, status_code=r.status_code, payload=body)
    return body


# ─── Payments ───────────────────────────────────────────────────────────────


def initialize_payment(
    *,
    email: str,
    amount: int,
    reference: str,
    callback_url: Optional[str] = None,
    metadata: Optional[dict] = None,
    channels: Iterable[str] = DEFAULT_CHANNELS,
) -> dict:
    """Start a checkout and return ``data`` (authorization_url, access_code, reference)."""
    payload = {
        "email": email,
        "amount": int(amount),
        "reference": reference,
        "callback_url": callback_url,
        "metadata": metadata or {},
        "channels": list(channels),
        "currency": settings.DEFAULT_CURRENCY,
    }
    return _request("POST", "/transaction/initialize", json=payload)["data"]


def verify_payment(reference: str) -> dict:
    return _request("GET", f"/transaction/verify/{reference}")["data"]


def refund_payment(*, reference: str, amount: int, reason: str = "") -> dict:
    """Refund ``amount`` of a settled charge back to the original card or account."""
    payload = {"transaction": reference, "amount": int(amount), "merchant_note": reason[:200]}
    return _request("POST", "/refund", json=payload)["data"]


# ─── Transfers ──────────────────────────────────────────────────────────────


def create_transfer_recipient(*, name: str, account_number: str, bank_code: str) -> dict:
    payload = {
        # South African accounts use the BASA recipient type
        "type": "basa",
        "name": name,
        "account_number": account_number,
        "bank_code": bank_code,
        "currency": settings.DEFAULT_CURRENCY,
    }
    return _request("POST", "/transferrecipient", json=payload)["data"]


def initiate_transfer(*, amount: int, recipient_code: str, reference: str, reason: str = "Ziyawa Payout") -> dict:
    payload = {
        "source": "balance",
        "amount": int(amount),
        "recipient": recipient_code,
        "reference": reference,
        "reason": reason,
    }
    return _request("POST", "/transfer", json=payload)["data"]


def get_transfer(transfer_code: str) -> dict:
    return _request("GET", f"/transfer/{transfer_code}")["data"]


# ─── Banks ──────────────────────────────────────────────────────────────────


def list_banks() -> list[dict]:
    return _request(
        "GET", "/bank", params={"country": "south africa", "currency": settings.DEFAULT_CURRENCY}
    )["data"]


def resolve_account(*, account_number: str, bank_code: str) -> dict:
    return _request(
        "GET",
        "/bank/resolve",
        params={"account_number": account_number, "bank_code": bank_code},
    )["data"]


# ─── Webhooks and identifiers ───────────────────────────────────────────────


def compute_signature(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha512).hexdigest()


def verify_webhook_signature(payload: bytes, signature: str | None, secret: str | None = None) -> bool:
    """Check the ``x-paystack-signature`` header against the raw body."""
    webhook_secret = secret if secret is not None else settings.webhook_secret
    if not webhook_secret:
        logger.warning("Paystack webhook secret not set - skipping signature verification")
        return True
    if not signature:
        return False
    return hmac.compare_digest(compute_signature(payload, webhook_secret), signature)


def _base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_reference(prefix: str = "ZIY") -> str:
    """Return ``PREFIX-<base36 millis>-<6 random>`` in upper case."""
    stamp = _base36(int(time.time() * 1000))
    rand = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"{prefix}-{stamp}-{rand}"


def generate_ticket_code() -> str:
    """Return a door code like ``ZIY-7K2M-QX9D`` without ambiguous glyphs."""
    first = "".join(secrets.choice(TICKET_CODE_ALPHABET) for _ in range(4))
    second = "".join(secrets.choice(TICKET_CODE_ALPHABET) for _ in range(4))
    return f"ZIY-{first}-{second}"
