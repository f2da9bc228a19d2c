from datetime import timedelta

from core.config import settings
from core.errors import TrackingNotFound, ValidationError
from schemas.order import TimelineEntry, TrackedItem, TrackingView
from services.order_store import OrderStore


def track_by_number(store: OrderStore, tracking_number: str) -> TrackingView:
    """Customer-facing shipment view for a tracking token. Read-only."""
    token = (tracking_number or "").strip()
    if not token:
        raise ValidationError("Please provide tracking number")

    order = store.find_by_tracking_number(token)
    if not order:
        raise TrackingNotFound("No order found with this tracking number")

    return TrackingView(
        tracking_number=order.tracking_number,
        status=order.status.value,
        timeline=[TimelineEntry.model_validate(entry) for entry in order.status_history],
        shipping_address=dict(order.shipping_address),
        items=[TrackedItem.model_validate(item) for item in order.items],
        created_at=order.created_at,
        delivered_at=order.delivered_at,
        expected_delivery_date=order.created_at + timedelta(days=settings.EXPECTED_DELIVERY_DAYS),
    )
