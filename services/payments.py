"""
Two-phase payment orchestration against the external gateway.

Phase one opens an intent for exactly the order total. Phase two verifies the
capture confirmation independently (stored intent, amounts, HMAC signature)
before the order is marked paid and moved to ``processing``. The client
redirect and the gateway webhook both go through ``confirm_payment``.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from core.config import settings
from core.errors import (
    CancellationNotPermitted,
    InvalidTransition,
    PaymentIntentFailed,
    PaymentVerificationFailed,
    PermissionDenied,
    ValidationError,
)
from core.identity import Actor, Role, SYSTEM_ACTOR
from models.order import Order, OrderStatus
from models.payment import Payment
from services import gateway, notifications, state_machine
from services.order_query import ensure_can_view
from services.order_store import OrderStore

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("payments.security")


def begin_payment(store: OrderStore, order_id: str, actor: Actor) -> Dict[str, Any]:
    order = ensure_can_view(store.get(order_id), actor)
    if order.is_paid:
        raise ValidationError("Order is already paid")
    if order.status != OrderStatus.PENDING:
        raise ValidationError(f"Payment can only start for pending orders; this order is {order.status.value}")
    if order.payment_method == "cod":
        raise ValidationError("Cash on delivery orders are not paid through the gateway")
    if order.total_price is None or order.total_price <= 0:
        raise ValidationError("Order total must be greater than 0")

    expected_amount = gateway.to_minor_units(order.total_price)
    intent = gateway.create_intent(order.total_price, order.currency, order.id)

    if intent.get("amount") != expected_amount or (intent.get("currency") or order.currency) != order.currency:
        logger.warning(
            "Gateway intent %s for order %s came back as %s %s, expected %s %s",
            intent["gateway_reference"],
            order.id,
            intent.get("amount"),
            intent.get("currency"),
            expected_amount,
            order.currency,
        )
        raise PaymentIntentFailed("Payment gateway opened an intent for a different amount")

    order.payments.append(
        Payment(
            provider="razorpay",
            gateway_reference=intent["gateway_reference"],
            amount=order.total_price,
            currency=order.currency,
            status="created",
            verified=False,
            raw_response=intent.get("raw"),
        )
    )
    store.save(order)
    logger.info("Payment intent %s opened for order %s", intent["gateway_reference"], order.id)
    return {
        "gateway_reference": intent["gateway_reference"],
        "amount": expected_amount,
        "currency": order.currency,
        "key_id": settings.PAYMENT_GATEWAY_KEY_ID,
    }


def _verification_problem(
    order: Order,
    payment: Optional[Payment],
    payload: Dict[str, Any],
    signature: Optional[str],
) -> Optional[str]:
    if payment is None:
        return "unknown gateway reference"
    if payment.order_id != order.id:
        return "gateway reference belongs to another order"
    if str(payload.get("order_id")) != order.id:
        return "order id does not match"

    try:
        amount = int(payload.get("amount"))
    except (TypeError, ValueError):
        return "amount missing or malformed"
    if amount != gateway.to_minor_units(payment.amount) or amount != gateway.to_minor_units(order.total_price):
        return "amount does not match the order total"
    if payload.get("currency") and str(payload["currency"]).upper() != payment.currency:
        return "currency does not match"

    if not signature:
        return "signature missing"
    signed = {"gateway_reference": payment.gateway_reference, "order_id": order.id, "amount": amount}
    if not gateway.verify_capture(signed, signature):
        return "signature mismatch"
    return None


def confirm_payment(
    store: OrderStore,
    order_id: str,
    payload: Dict[str, Any],
    signature: Optional[str],
    actor: Actor = SYSTEM_ACTOR,
) -> Order:
    """Verify a capture confirmation and mark the order paid.

    A confirmation for an already verified reference is a no-op. If the
    payment verifies but the order can no longer move to ``processing``, the
    capture is kept and the order is flagged for reconciliation.
    """
    order = store.get(order_id)
    if actor.role != Role.SYSTEM:
        ensure_can_view(order, actor)

    reference = payload.get("gateway_reference")
    payment = store.find_payment(reference) if reference else None

    # Duplicate delivery: checked before any side effect
    if payment is not None and payment.order_id == order.id and payment.verified:
        logger.info("Duplicate confirmation for payment %s on order %s ignored", reference, order.id)
        return order
    if order.is_paid:
        raise ValidationError("Order is already paid")

    problem = _verification_problem(order, payment, payload, signature)
    if problem:
        security_logger.error(
            "Payment verification failed for order %s (reference %s, via %s): %s",
            order.id,
            reference,
            actor.label,
            problem,
        )
        raise PaymentVerificationFailed("Payment verification failed")

    now = datetime.utcnow()
    payment.verified = True
    payment.status = "captured"
    payment.gateway_payment_id = payload.get("gateway_payment_id")
    order.is_paid = True
    order.paid_at = now

    changed = False
    reconciliation_reason = None
    try:
        changed = state_machine.request_transition(
            order, OrderStatus.PROCESSING, SYSTEM_ACTOR, "Payment captured", now=now
        )
    except (InvalidTransition, CancellationNotPermitted) as exc:
        reconciliation_reason = exc.message
        order.needs_reconciliation = True
        order.reconciliation_note = (
            f"Payment {payment.gateway_reference} captured while order was {order.status.value}; refund required"
        )

    store.save(order)
    logger.info("Payment %s captured for order %s", payment.gateway_reference, order.id)

    if reconciliation_reason:
        notifications.alert_payment_reconciliation(order, payment, reconciliation_reason)
    elif changed:
        notifications.notify_status_change(order, "Payment captured")
    return order


def payment_status(store: OrderStore, order_id: str, actor: Actor) -> Dict[str, Any]:
    """Payment view for the order's owner or an admin; the verified capture wins over open intents."""
    order = ensure_can_view(store.get(order_id), actor)
    if actor.role not in (Role.CUSTOMER, Role.ADMIN):
        raise PermissionDenied("Only the customer or an admin can view payment status")

    payment = next((p for p in order.payments if p.verified), None)
    if payment is None and order.payments:
        payment = order.payments[-1]

    return {
        "order_id": order.id,
        "is_paid": order.is_paid,
        "paid_at": order.paid_at,
        "payment_method": order.payment_method,
        "payment_status": payment.status if payment else "none",
        "gateway_reference": payment.gateway_reference if payment else None,
        "payment_id": payment.gateway_payment_id if payment else None,
    }
