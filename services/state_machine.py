"""
Order status state machine.

``ALLOWED_TRANSITIONS`` is the complete edge table; any pair not listed is
rejected. ``request_transition`` validates everything (edge, cancellation
guard, tracking assignment) before it touches the order, so a rejected
request leaves the order exactly as it was.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, FrozenSet, Optional

from core.errors import CancellationNotPermitted, InvalidTransition
from core.identity import Actor
from models.order import Order, OrderStatus
from services import audit, shipping
from services.cancellation import CancellationGuard, can_cancel

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

_MILESTONE_FIELDS = {
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
    OrderStatus.REFUNDED: "refunded_at",
}

TrackingAssigner = Callable[[Order], str]


def is_allowed(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def check_transition(order: Order, target: OrderStatus, cancel_guard: CancellationGuard = can_cancel) -> None:
    """Raise if ``order`` may not move to ``target``. Never mutates."""
    current = order.status
    if not is_allowed(current, target):
        if target == OrderStatus.CANCELLED:
            raise InvalidTransition(f"Order cannot be cancelled because it is already {current.value}")
        if not ALLOWED_TRANSITIONS[current]:
            raise InvalidTransition(f"Order is already {current.value} and cannot change status")
        raise InvalidTransition(f"Cannot change order status from {current.value} to {target.value}")

    if target == OrderStatus.CANCELLED and not cancel_guard(order):
        raise CancellationNotPermitted(f"Order cannot be cancelled because it is already {current.value}")


def request_transition(
    order: Order,
    target: OrderStatus,
    actor: Actor,
    note: Optional[str] = None,
    *,
    cancel_guard: CancellationGuard = can_cancel,
    assign_tracking: Optional[TrackingAssigner] = None,
    now: Optional[datetime] = None,
) -> bool:
    """Move ``order`` to ``target`` on behalf of ``actor``.

    Returns True when the order changed and False for the idempotent case
    where it is already in ``target`` (no audit entry is written then).
    Persisting the order is the caller's job.
    """
    target = OrderStatus.parse(target)
    if order.status == target:
        return False

    check_transition(order, target, cancel_guard)

    tracking_number = None
    if target == OrderStatus.SHIPPED and not order.tracking_number:
        tracking_number = (assign_tracking or shipping.assign_tracking_number)(order)

    timestamp = now or datetime.utcnow()
    previous = order.status
    order.status = target
    if tracking_number:
        order.tracking_number = tracking_number
    milestone = _MILESTONE_FIELDS.get(target)
    if milestone:
        setattr(order, milestone, timestamp)
    audit.record_status_change(order, target, actor, note, now=timestamp)

    logger.info("Order %s moved %s -> %s by %s", order.id, previous.value, target.value, actor.label)
    return True
