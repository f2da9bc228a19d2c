import logging
from decimal import Decimal, ROUND_HALF_UP

from core.config import settings
from core.errors import PermissionDenied, ValidationError
from core.identity import Actor, Role
from models.order import Order, OrderStatus, PAYMENT_METHODS
from models.order_item import OrderItem
from schemas.order import OrderCreate
from services import audit, notifications, state_machine
from services.cancellation import cancellation_guard_for
from services.order_query import ensure_can_view
from services.order_store import OrderStore

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _money(value) -> Decimal:
    value = value if isinstance(value, Decimal) else Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def compute_total(items_price: Decimal, tax_price: Decimal, shipping_price: Decimal, discount_amount: Decimal) -> Decimal:
    return _money(items_price + tax_price + shipping_price - discount_amount)


def create_order(store: OrderStore, actor: Actor, data: OrderCreate) -> Order:
    if actor.role != Role.CUSTOMER:
        raise PermissionDenied("Only customers can place orders")
    if not data.items:
        raise ValidationError("Order must contain items")
    if data.payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method. Must be one of: {', '.join(PAYMENT_METHODS)}")

    currency = (data.currency or settings.DEFAULT_CURRENCY).strip().upper()
    if len(currency) != 3 or not currency.isalpha():
        raise ValidationError(f"Invalid currency: {data.currency}")

    items: list[OrderItem] = []
    items_price = Decimal("0.00")
    for item in data.items:
        unit_price = _money(item.unit_price)
        total = _money(unit_price * item.quantity)
        items_price += total
        items.append(
            OrderItem(
                product_id=item.product_id,
                vendor_id=item.vendor_id,
                name=item.name,
                quantity=item.quantity,
                unit_price=unit_price,
                total=total,
                selected_variants=[variant.model_dump() for variant in item.selected_variants],
            )
        )

    tax_price = _money(data.tax_price)
    shipping_price = _money(data.shipping_price)
    discount_amount = _money(data.discount_amount)
    total_price = compute_total(items_price, tax_price, shipping_price, discount_amount)
    if total_price < 0:
        raise ValidationError("Discount cannot exceed the order amount")

    shipping_address = data.shipping_address.model_dump()
    order = Order(
        owner_id=actor.user_id,
        email=data.email,
        currency=currency,
        status=OrderStatus.PENDING,
        items=items,
        items_price=_money(items_price),
        tax_price=tax_price,
        shipping_price=shipping_price,
        discount_amount=discount_amount,
        total_price=total_price,
        shipping_address=shipping_address,
        billing_address=data.billing_address.model_dump() if data.billing_address else dict(shipping_address),
        payment_method=data.payment_method,
        is_paid=False,
    )
    audit.record_status_change(order, OrderStatus.PENDING, actor, "Order placed")
    store.add(order)
    logger.info("Order %s placed by %s for %s %s", order.id, actor.label, total_price, currency)
    return order


def _apply(store: OrderStore, order: Order, target: OrderStatus, actor: Actor, note: str | None) -> Order:
    changed = state_machine.request_transition(
        order,
        target,
        actor,
        note,
        cancel_guard=cancellation_guard_for(actor),
    )
    if changed:
        store.save(order)
        notifications.notify_status_change(order, note)
    return order


def transition_status(store: OrderStore, order_id: str, target, actor: Actor, note: str | None = None) -> Order:
    """Operator path for any status change; customers may only cancel their own order."""
    target = OrderStatus.parse(target)
    if actor.role == Role.CUSTOMER and target != OrderStatus.CANCELLED:
        raise PermissionDenied("Customers can only cancel their orders")

    order = ensure_can_view(store.get(order_id), actor)
    return _apply(store, order, target, actor, note)


def cancel_order(store: OrderStore, order_id: str, actor: Actor, reason: str | None = None) -> Order:
    """Cancel on behalf of ``actor``; the cancellation policy follows the actor's role."""
    order = ensure_can_view(store.get(order_id), actor)
    return _apply(store, order, OrderStatus.CANCELLED, actor, reason or f"Cancelled by {actor.role.value}")
