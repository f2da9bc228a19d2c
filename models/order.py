import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import String, DateTime, Numeric, Boolean, Integer, Text, JSON, Enum as SAEnum, event, inspect
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base
from core.errors import ValidationError


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    @classmethod
    def parse(cls, value: "str | OrderStatus") -> "OrderStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Invalid status value: {value}")


# Orders in these statuses contribute nothing to revenue
NON_REVENUE_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.REFUNDED})

PAYMENT_METHODS = ("card", "paypal", "razorpay", "cod")


def status_column_type() -> SAEnum:
    return SAEnum(
        OrderStatus,
        native_enum=False,
        length=20,
        validate_strings=True,
        values_callable=lambda statuses: [s.value for s in statuses],
    )


def _new_order_id() -> str:
    return uuid.uuid4().hex


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_order_id)
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="INR")
    status: Mapped[OrderStatus] = mapped_column(status_column_type(), default=OrderStatus.PENDING, index=True)

    # Money; total_price == items_price + tax_price + shipping_price - discount_amount
    items_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    tax_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    shipping_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, index=True)

    shipping_address: Mapped[dict] = mapped_column(JSON)
    billing_address: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Payment
    payment_method: Mapped[str] = mapped_column(String(20))
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    needs_reconciliation: Mapped[bool] = mapped_column(Boolean, default=False)
    reconciliation_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Fulfillment
    tracking_number: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True, index=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship("OrderItem", cascade="all, delete-orphan", back_populates="order", order_by="OrderItem.id")
    status_history = relationship(
        "StatusUpdate",
        cascade="save-update, merge",
        back_populates="order",
        order_by="StatusUpdate.id",
    )
    payments = relationship("Payment", back_populates="order", order_by="Payment.id")

    __mapper_args__ = {"version_id_col": version}


# Fixed once the order row exists
IMMUTABLE_FIELDS = (
    "owner_id",
    "currency",
    "items_price",
    "tax_price",
    "shipping_price",
    "discount_amount",
    "total_price",
    "shipping_address",
    "billing_address",
    "payment_method",
    "created_at",
)


@event.listens_for(Order, "before_update")
def _reject_immutable_changes(mapper, connection, target):
    state = inspect(target)
    changed = [name for name in IMMUTABLE_FIELDS if state.attrs[name].history.has_changes()]
    if changed:
        raise ValidationError(f"Order fields are immutable after creation: {', '.join(changed)}")
