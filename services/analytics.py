from collections import defaultdict
from datetime import date, datetime, timedelta, timezone, tzinfo
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.config import settings
from core.errors import PermissionDenied, ValidationError
from core.identity import Actor, Role
from models.order import NON_REVENUE_STATUSES, Order, OrderStatus
from models.order_item import OrderItem
from schemas.analytics import AnalyticsSnapshot, DailyRevenue, StatusBreakdown, TopCustomer, TopProduct
from services.order_store import OrderStore

ZERO = Decimal("0")
DAILY_REVENUE_DAYS = 30


def resolve_timezone(name: Optional[str]) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        raise ValidationError(f"Unknown timezone: {name}")


def local_date(moment: datetime, tz: tzinfo) -> date:
    # Stored timestamps are naive UTC
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()


def order_amount(order: Order, vendor_id: Optional[str] = None) -> Decimal:
    if vendor_id is None:
        return Decimal(order.total_price)
    return sum(
        (Decimal(item.unit_price) * item.quantity for item in order.items if item.vendor_id == vendor_id),
        ZERO,
    )


def revenue_of(order: Order, vendor_id: Optional[str] = None) -> Decimal:
    if order.status in NON_REVENUE_STATUSES:
        return ZERO
    return order_amount(order, vendor_id)


def rank_customers(orders: Iterable[Order], vendor_id: Optional[str] = None, top: int = 5) -> List[TopCustomer]:
    """Order count desc, then spend desc, then owner id so ties rank the same every time."""
    counts: Dict[str, int] = defaultdict(int)
    spent: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for order in orders:
        counts[order.owner_id] += 1
        spent[order.owner_id] += revenue_of(order, vendor_id)

    ranked = sorted(counts, key=lambda owner: (-counts[owner], -spent[owner], owner))
    return [
        TopCustomer(owner_id=owner, order_count=counts[owner], total_spent=spent[owner])
        for owner in ranked[:top]
    ]


def rank_products(orders: Iterable[Order], vendor_id: Optional[str] = None, top: int = 5) -> List[TopProduct]:
    """Best sellers by units sold, then revenue, then product id. Non-revenue orders are skipped."""
    names: Dict[str, str] = {}
    quantities: Dict[str, int] = defaultdict(int)
    revenue: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for order in orders:
        if order.status in NON_REVENUE_STATUSES:
            continue
        for item in order.items:
            if vendor_id is not None and item.vendor_id != vendor_id:
                continue
            names.setdefault(item.product_id, item.name)
            quantities[item.product_id] += item.quantity
            revenue[item.product_id] += Decimal(item.unit_price) * item.quantity

    ranked = sorted(quantities, key=lambda product: (-quantities[product], -revenue[product], product))
    return [
        TopProduct(product_id=product, name=names[product], quantity=quantities[product], revenue=revenue[product])
        for product in ranked[:top]
    ]

def compute_snapshot(
    orders: Iterable[Order],
    tz_name: Optional[str] = None,
    now: Optional[datetime] = None,
    vendor_id: Optional[str] = None,
    top: int = 5,
) -> AnalyticsSnapshot:
    """Aggregate counts and revenue over ``orders``.

    Cancelled and refunded orders are counted but never add revenue. "Today"
    and the daily buckets follow the calendar of ``tz_name``.
    """
    tz = resolve_timezone(tz_name or settings.ANALYTICS_TIMEZONE)
    now = now or datetime.utcnow()
    today = local_date(now, tz)
    window_start = today - timedelta(days=DAILY_REVENUE_DAYS - 1)

    orders = list(orders)
    by_status = {status.value: {"count": 0, "revenue": ZERO} for status in OrderStatus}
    daily: Dict[date, Dict[str, object]] = {}
    total_revenue = today_revenue = ZERO
    today_orders = 0

    for order in orders:
        revenue = revenue_of(order, vendor_id)
        bucket = by_status[order.status.value]
        bucket["count"] += 1
        bucket["revenue"] += revenue
        total_revenue += revenue

        created_on = local_date(order.created_at, tz)
        if created_on == today:
            today_orders += 1
            today_revenue += revenue
        if window_start <= created_on <= today and order.status not in NON_REVENUE_STATUSES:
            day = daily.setdefault(created_on, {"revenue": ZERO, "count": 0})
            day["revenue"] += revenue
            day["count"] += 1

    return AnalyticsSnapshot(
        timezone=str(tz_name or settings.ANALYTICS_TIMEZONE),
        total_orders=len(orders),
        total_revenue=total_revenue,
        today_orders=today_orders,
        today_revenue=today_revenue,
        orders_by_status={name: StatusBreakdown(**values) for name, values in by_status.items()},
        daily_revenue=[
            DailyRevenue(date=day.isoformat(), revenue=values["revenue"], count=values["count"])
            for day, values in sorted(daily.items())
        ],
        top_customers=rank_customers(orders, vendor_id, top),
        top_products=rank_products(orders, vendor_id, top),
    )


def get_analytics(store: OrderStore, actor: Actor, tz_name: Optional[str] = None, top: int = 5) -> AnalyticsSnapshot:
    if top < 1:
        raise ValidationError("top must be 1 or greater")
    if actor.role == Role.ADMIN:
        return compute_snapshot(store.all(), tz_name, top=top)
    if actor.role == Role.VENDOR:
        orders = store.all([Order.items.any(OrderItem.vendor_id == actor.user_id)])
        return compute_snapshot(orders, tz_name, vendor_id=actor.user_id, top=top)
    raise PermissionDenied("Analytics are available to vendors and admins only")
