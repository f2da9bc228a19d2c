from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class PaymentIntentRequest(BaseModel):
    order_id: str


class PaymentIntentOut(BaseModel):
    gateway_reference: str
    amount: int
    currency: str
    key_id: str


class GatewayCapturePayload(BaseModel):
    order_id: str
    gateway_reference: str
    gateway_payment_id: Optional[str] = None
    amount: int
    currency: Optional[str] = None


class PaymentConfirmRequest(GatewayCapturePayload):
    signature: Optional[str] = None



class PaymentStatusOut(BaseModel):
    order_id: str
    is_paid: bool
    paid_at: Optional[datetime] = None
    payment_method: str
    payment_status: str
    gateway_reference: Optional[str] = None
    payment_id: Optional[str] = None
