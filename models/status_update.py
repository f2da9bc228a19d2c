from datetime import datetime

from sqlalchemy import String, DateTime, ForeignKey, Text, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base
from models.order import OrderStatus, status_column_type


class StatusUpdate(Base):
    """One audit entry: the status an order moved into, by whom and when."""

    __tablename__ = "order_status_updates"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id", ondelete="RESTRICT"), index=True)
    status: Mapped[OrderStatus] = mapped_column(status_column_type())
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    actor_id: Mapped[str] = mapped_column(String(64))
    actor_role: Mapped[str] = mapped_column(String(20))

    order = relationship("Order", back_populates="status_history")


class AuditTrailViolation(RuntimeError):
    pass


@event.listens_for(StatusUpdate, "before_update")
def _reject_update(mapper, connection, target):
    raise AuditTrailViolation(f"Status history entry {target.id} is append-only")


@event.listens_for(StatusUpdate, "before_delete")
def _reject_delete(mapper, connection, target):
    raise AuditTrailViolation(f"Status history entry {target.id} cannot be deleted")
