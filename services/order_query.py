"""
Role-scoped, paginated read access to orders.

Customers see their own orders, vendors see orders that contain at least one
of their items (with other vendors' items removed), admins see everything and
get the extra date/amount/search filters.
"""
import math
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select

from core.config import settings
from core.errors import NotFound, PermissionDenied, ValidationError
from core.identity import Actor, Role
from models.order import Order, OrderStatus
from models.order_item import OrderItem
from schemas.order import OrderListOut, OrderOut, Pagination
from services.order_store import OrderStore

ADMIN_ONLY_FILTERS = ("start_date", "end_date", "min_amount", "max_amount", "search")


@dataclass
class OrderFilters:
    status: Optional[OrderStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    search: Optional[str] = None

    def admin_only_in_use(self) -> List[str]:
        return [name for name in ADMIN_ONLY_FILTERS if getattr(self, name) not in (None, "")]


def can_view(order: Order, actor: Actor) -> bool:
    if actor.role in (Role.ADMIN, Role.SYSTEM):
        return True
    if actor.role == Role.VENDOR:
        return any(item.vendor_id == actor.user_id for item in order.items)
    return order.owner_id == actor.user_id


def ensure_can_view(order: Order, actor: Actor) -> Order:
    # Orders the caller may not see are indistinguishable from missing ones
    if not can_view(order, actor):
        raise NotFound("Order not found")
    return order


def scope_conditions(actor: Actor) -> list:
    if actor.role == Role.CUSTOMER:
        return [Order.owner_id == actor.user_id]
    if actor.role == Role.VENDOR:
        return [Order.items.any(OrderItem.vendor_id == actor.user_id)]
    if actor.role == Role.ADMIN:
        return []
    raise PermissionDenied("This caller cannot list orders")


def filter_conditions(filters: OrderFilters) -> list:
    conditions = []
    if filters.status:
        conditions.append(Order.status == filters.status)
    if filters.start_date:
        conditions.append(Order.created_at >= datetime.combine(filters.start_date, time.min))
    if filters.end_date:
        conditions.append(Order.created_at <= datetime.combine(filters.end_date, time.max))
    if filters.min_amount is not None:
        conditions.append(Order.total_price >= filters.min_amount)
    if filters.max_amount is not None:
        conditions.append(Order.total_price <= filters.max_amount)
    if filters.search:
        escaped = filters.search.strip().lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        term = f"%{escaped}%"
        conditions.append(
            or_(
                func.lower(Order.id).like(term, escape="\\"),
                func.lower(Order.owner_id).like(term, escape="\\"),
                func.lower(Order.email).like(term, escape="\\"),
                func.lower(Order.tracking_number).like(term, escape="\\"),
                Order.items.any(func.lower(OrderItem.name).like(term, escape="\\")),
            )
        )
    return conditions


def validate_page(page: int, limit: int) -> None:
    if page < 1:
        raise ValidationError("page must be 1 or greater")
    if limit < 1 or limit > settings.MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {settings.MAX_PAGE_SIZE}")


def project_for(order: Order, actor: Actor) -> OrderOut:
    """Serialize ``order`` with only the fields ``actor`` may see."""
    out = OrderOut.model_validate(order)
    if actor.role != Role.VENDOR:
        return out
    items = [item for item in out.items if item.vendor_id == actor.user_id]
    subtotal = sum(
        (Decimal(str(item.unit_price)) * item.quantity for item in items),
        Decimal("0"),
    )
    return out.model_copy(update={"items": items, "vendor_subtotal": float(subtotal)})


def vendor_status_counts(store: OrderStore, vendor_id: str) -> Dict[str, int]:
    stmt = (
        select(Order.status, func.count())
        .where(Order.items.any(OrderItem.vendor_id == vendor_id))
        .group_by(Order.status)
    )
    counts = {status.value: 0 for status in OrderStatus}
    for status, count in store.db.execute(stmt).all():
        counts[OrderStatus.parse(status).value] = count
    counts["total"] = sum(counts.values())
    return counts


def list_orders(
    store: OrderStore,
    actor: Actor,
    filters: Optional[OrderFilters] = None,
    page: int = 1,
    limit: Optional[int] = None,
) -> OrderListOut:
    filters = filters or OrderFilters()
    limit = settings.DEFAULT_PAGE_SIZE if limit is None else limit
    validate_page(page, limit)

    if actor.role != Role.ADMIN:
        restricted = filters.admin_only_in_use()
        if restricted:
            raise ValidationError(f"Filters not available for {actor.role.value}: {', '.join(restricted)}")

    conditions = scope_conditions(actor) + filter_conditions(filters)
    orders, count = store.query(conditions, page, limit)

    return OrderListOut(
        data=[project_for(order, actor) for order in orders],
        pagination=Pagination(current=page, total=math.ceil(count / limit), count=count),
        status_counts=vendor_status_counts(store, actor.user_id) if actor.role == Role.VENDOR else None,
    )


def get_order(store: OrderStore, order_id: str, actor: Actor) -> Order:
    return ensure_can_view(store.get(order_id), actor)


def parse_filters(params: Dict[str, Any]) -> OrderFilters:
    """Build filters from raw query values, rejecting malformed ones."""
    try:
        filters = OrderFilters(
            status=OrderStatus.parse(params["status"]) if params.get("status") else None,
            start_date=date.fromisoformat(params["start_date"]) if params.get("start_date") else None,
            end_date=date.fromisoformat(params["end_date"]) if params.get("end_date") else None,
            min_amount=Decimal(str(params["min_amount"])) if params.get("min_amount") is not None else None,
            max_amount=Decimal(str(params["max_amount"])) if params.get("max_amount") is not None else None,
            search=params.get("search") or None,
        )
    except (ValueError, ArithmeticError) as exc:
        raise ValidationError(f"Invalid filter value: {exc}")
    if filters.start_date and filters.end_date and filters.start_date > filters.end_date:
        raise ValidationError("start_date must not be after end_date")
    return filters
