from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.db import get_db
from core.identity import Actor, get_current_actor
from schemas.analytics import AnalyticsSnapshot
from schemas.order import CancelRequest, OrderCreate, OrderListOut, OrderOut, StatusChangeRequest, TrackingView
from services import analytics, order_query, orders, tracking
from services.order_store import OrderStore

router = APIRouter(prefix="/orders", tags=["orders"])


def get_order_store(db: Session = Depends(get_db)) -> OrderStore:
    return OrderStore(db)


@router.post("/", response_model=OrderOut, status_code=201)
def create_order(
    data: OrderCreate,
    actor: Actor = Depends(get_current_actor),
    store: OrderStore = Depends(get_order_store),
):
    order = orders.create_order(store, actor, data)
    return order_query.project_for(order, actor)


@router.get("/", response_model=OrderListOut)
def list_orders(
    status: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    min_amount: Optional[str] = None,
    max_amount: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: Optional[int] = None,
    actor: Actor = Depends(get_current_actor),
    store: OrderStore = Depends(get_order_store),
):
    filters = order_query.parse_filters(
        {
            "status": status,
            "start_date": start_date,
            "end_date": end_date,
            "min_amount": min_amount,
            "max_amount": max_amount,
            "search": search,
        }
    )
    return order_query.list_orders(store, actor, filters, page, limit)


@router.get("/analytics", response_model=AnalyticsSnapshot)
def get_analytics(
    tz: Optional[str] = None,
    top: int = 5,
    actor: Actor = Depends(get_current_actor),
    store: OrderStore = Depends(get_order_store),
):
    return analytics.get_analytics(store, actor, tz, top)


@router.get("/track/{tracking_number}", response_model=TrackingView)
def track_order(tracking_number: str, store: OrderStore = Depends(get_order_store)):
    return tracking.track_by_number(store, tracking_number)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: str,
    actor: Actor = Depends(get_current_actor),
    store: OrderStore = Depends(get_order_store),
):
    order = order_query.get_order(store, order_id, actor)
    return order_query.project_for(order, actor)


@router.put("/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: str,
    data: StatusChangeRequest,
    actor: Actor = Depends(get_current_actor),
    store: OrderStore = Depends(get_order_store),
):
    order = orders.transition_status(store, order_id, data.status, actor, data.note)
    return order_query.project_for(order, actor)


@router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: str,
    data: Optional[CancelRequest] = None,
    actor: Actor = Depends(get_current_actor),
    store: OrderStore = Depends(get_order_store),
):
    order = orders.cancel_order(store, order_id, actor, data.reason if data else None)
    return order_query.project_for(order, actor)
