import hashlib
import hmac
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Tuple

import requests

from core.config import settings
from core.errors import PaymentIntentFailed


def _auth() -> Tuple[str, str]:
    return settings.PAYMENT_GATEWAY_KEY_ID, settings.PAYMENT_GATEWAY_SECRET


def to_minor_units(amount: Decimal | int | float | str) -> int:
    """Gateway amounts are integers in the currency's smallest unit (paise, cents)."""
    value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def create_intent(amount: Decimal, currency: str, order_ref: str) -> Dict[str, Any]:
    """Open a payment intent for ``amount`` and return its gateway reference.

    Any transport failure, timeout, error status or malformed response is
    reported as ``PaymentIntentFailed``.
    """
    payload = {
        "amount": to_minor_units(amount),
        "currency": currency,
        "receipt": f"order_{order_ref}",
        "notes": {"order_id": order_ref},
    }
    try:
        resp = requests.post(
            f"{settings.PAYMENT_GATEWAY_URL}/orders",
            json=payload,
            auth=_auth(),
            timeout=settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS,
        )
        resp.raise_for_status()
        body = resp.json()
    except requests.Timeout as exc:
        raise PaymentIntentFailed("Payment gateway timed out") from exc
    except requests.RequestException as exc:
        raise PaymentIntentFailed(f"Unable to initialize payment: {exc}") from exc
    except ValueError as exc:
        raise PaymentIntentFailed("Payment gateway returned an unreadable response") from exc

    reference = body.get("id")
    if not reference:
        raise PaymentIntentFailed("Missing reference from payment gateway")
    return {
        "gateway_reference": reference,
        "amount": body.get("amount"),
        "currency": body.get("currency"),
        "raw": body,
    }


def sign_capture(gateway_reference: str, order_id: str, amount: int, secret: str | None = None) -> str:
    message = f"{gateway_reference}|{order_id}|{amount}"
    key = (secret if secret is not None else settings.PAYMENT_GATEWAY_SECRET).encode()
    return hmac.new(key, message.encode(), hashlib.sha256).hexdigest()


def verify_capture(payload: Dict[str, Any], signature: str | None) -> bool:
    """Check the gateway's HMAC over reference, order id and amount."""
    if not signature:
        return False
    try:
        expected = sign_capture(payload["gateway_reference"], payload["order_id"], int(payload["amount"]))
    except (KeyError, TypeError, ValueError):
        return False
    return hmac.compare_digest(expected, signature)
