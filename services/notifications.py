import logging

from core.config import settings
from models.order import Order
from models.payment import Payment
from services.email import send_templated_email

logger = logging.getLogger(__name__)


def notify_status_change(order: Order, note: str | None = None) -> None:
    """Tell the customer their order moved; sent after the change is committed."""
    if not order.email:
        return
    send_templated_email(
        order.email,
        f"Your order {order.id} is {order.status.value}",
        "emails/order_status.txt",
        {
            "order_id": order.id,
            "status": order.status.value,
            "note": note,
            "tracking_number": order.tracking_number,
            "total_price": order.total_price,
            "currency": order.currency,
        },
    )


def alert_payment_reconciliation(order: Order, payment: Payment, reason: str) -> None:
    logger.warning(
        "Payment %s captured for order %s but status move failed: %s",
        payment.gateway_reference,
        order.id,
        reason,
    )
    send_templated_email(
        settings.OPS_ALERT_EMAIL,
        f"[Action required] Refund or restore order {order.id}",
        "emails/payment_reconciliation.txt",
        {
            "order_id": order.id,
            "status": order.status.value,
            "gateway_reference": payment.gateway_reference,
            "amount": payment.amount,
            "currency": payment.currency,
            "reason": reason,
        },
    )
