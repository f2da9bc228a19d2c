"""
Who may cancel an order, and when.

The state machine only knows which status edges exist. Whether a given caller
may use the ``cancelled`` edge is decided here, once per call, from the
caller's role.
"""
from typing import Callable

from core.identity import Actor
from models.order import Order, OrderStatus

CUSTOMER_CANCELLABLE = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})
OPERATOR_CANCELLABLE = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.SHIPPED})

CancellationGuard = Callable[[Order], bool]


def can_cancel(order: Order) -> bool:
    """Customer path: only before the goods leave the warehouse."""
    return order.status in CUSTOMER_CANCELLABLE


def can_cancel_as_operator(order: Order) -> bool:
    return order.status in OPERATOR_CANCELLABLE


def cancellation_guard_for(actor: Actor) -> CancellationGuard:
    if actor.is_operator:
        return can_cancel_as_operator
    return can_cancel
