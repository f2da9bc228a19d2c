from typing import Optional

from fastapi import APIRouter, Depends, Header

from core.identity import Actor, SYSTEM_ACTOR, get_current_actor
from routes.orders import get_order_store
from schemas.order import OrderOut
from schemas.payment import (
    GatewayCapturePayload,
    PaymentConfirmRequest,
    PaymentIntentOut,
    PaymentIntentRequest,
    PaymentStatusOut,
)
from services import order_query, payments
from services.order_store import OrderStore

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/intent", response_model=PaymentIntentOut)
def begin_payment(
    data: PaymentIntentRequest,
    actor: Actor = Depends(get_current_actor),
    store: OrderStore = Depends(get_order_store),
):
    return payments.begin_payment(store, data.order_id, actor)


@router.post("/confirm", response_model=OrderOut)
def confirm_payment(
    data: PaymentConfirmRequest,
    actor: Actor = Depends(get_current_actor),
    store: OrderStore = Depends(get_order_store),
):
    payload = data.model_dump(exclude={"signature"})
    order = payments.confirm_payment(store, data.order_id, payload, data.signature, actor)
    return order_query.project_for(order, actor)


@router.post("/webhook")
def payment_webhook(
    data: GatewayCapturePayload,
    x_gateway_signature: Optional[str] = Header(default=None, alias="X-Gateway-Signature"),
    store: OrderStore = Depends(get_order_store),
):
    """Gateway-delivered capture confirmation; same verification path as /confirm."""
    order = payments.confirm_payment(store, data.order_id, data.model_dump(), x_gateway_signature, SYSTEM_ACTOR)
    return {
        "received": True,
        "order_id": order.id,
        "status": order.status.value,
        "is_paid": order.is_paid,
        "needs_reconciliation": order.needs_reconciliation,
    }


@router.get("/{order_id}/status", response_model=PaymentStatusOut)
def get_payment_status(
    order_id: str,
    actor: Actor = Depends(get_current_actor),
    store: OrderStore = Depends(get_order_store),
):
    return payments.payment_status(store, order_id, actor)
