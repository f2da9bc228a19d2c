from datetime import datetime
from typing import Optional

from core.identity import Actor
from models.order import Order, OrderStatus
from models.status_update import StatusUpdate


def record_status_change(
    order: Order,
    status: OrderStatus,
    actor: Actor,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> StatusUpdate:
    """Append an audit entry for ``status`` to the order's history.

    ``updated_at`` never goes backwards within one order's history, even if
    the clock does.
    """
    timestamp = now or datetime.utcnow()
    if order.status_history:
        timestamp = max(timestamp, order.status_history[-1].updated_at)

    entry = StatusUpdate(
        status=status,
        note=note,
        updated_at=timestamp,
        actor_id=actor.user_id,
        actor_role=actor.role.value,
    )
    order.status_history.append(entry)
    return entry
