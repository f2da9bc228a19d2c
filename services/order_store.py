import math
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from core.errors import ConcurrencyConflict, NotFound, ValidationError
from models.order import Order
from models.payment import Payment


class OrderStore:
    """Reads and writes orders; every write is one version-checked commit."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, order_id: str) -> Order:
        order = self.db.get(Order, order_id, populate_existing=True)
        if not order:
            raise NotFound("Order not found")
        return order

    def find_by_tracking_number(self, tracking_number: str) -> Optional[Order]:
        return self.db.scalars(select(Order).where(Order.tracking_number == tracking_number)).one_or_none()

    def find_payment(self, gateway_reference: str) -> Optional[Payment]:
        stmt = (
            select(Payment)
            .where(Payment.gateway_reference == gateway_reference)
            .execution_options(populate_existing=True)
        )
        return self.db.scalars(stmt).one_or_none()

    def add(self, order: Order) -> Order:
        self.db.add(order)
        return self.save(order)

    def save(self, order: Order) -> Order:
        """Commit pending changes. A stale version means someone else won the race."""
        try:
            self.db.commit()
        except StaleDataError as exc:
            self.db.rollback()
            raise ConcurrencyConflict("Order was modified by another request; reload and retry") from exc
        except IntegrityError as exc:
            self.db.rollback()
            raise ValidationError("Order could not be saved: conflicting data") from exc
        except Exception:
            self.db.rollback()
            raise
        return order

    def query(self, conditions: Sequence, page: int, limit: int) -> Tuple[List[Order], int]:
        """Return one page of matching orders (newest first) and the total match count."""
        total = self.db.scalar(select(func.count()).select_from(Order).where(*conditions)) or 0
        if total == 0 or page > math.ceil(total / limit):
            return [], total

        stmt = (
            select(Order)
            .where(*conditions)
            .options(selectinload(Order.items), selectinload(Order.status_history))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(self.db.scalars(stmt).all()), total

    def all(self, conditions: Sequence = ()) -> List[Order]:
        stmt = select(Order).where(*conditions).options(selectinload(Order.items))
        return list(self.db.scalars(stmt).all())
