from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field


class VariantIn(BaseModel):
    name: str
    value: str


class OrderItemIn(BaseModel):
    product_id: str = Field(min_length=1)
    vendor_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    unit_price: Decimal = Field(ge=0)
    quantity: int = Field(ge=1)
    selected_variants: List[VariantIn] = []


class AddressIn(BaseModel):
    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    zip_code: str = Field(min_length=1)
    country: str = Field(min_length=1)
    phone: Optional[str] = None


class OrderCreate(BaseModel):
    email: Optional[EmailStr] = None
    currency: Optional[str] = None
    items: List[OrderItemIn]
    shipping_address: AddressIn
    billing_address: Optional[AddressIn] = None
    payment_method: str
    tax_price: Decimal = Field(default=Decimal("0"), ge=0)
    shipping_price: Decimal = Field(default=Decimal("0"), ge=0)
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)


class StatusChangeRequest(BaseModel):
    status: str
    note: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class OrderItemOut(BaseModel):
    id: int
    product_id: str
    vendor_id: str
    name: str
    quantity: int
    unit_price: float
    total: float
    selected_variants: Optional[List[VariantIn]] = None

    class Config:
        from_attributes = True


class StatusUpdateOut(BaseModel):
    status: str
    note: Optional[str] = None
    updated_at: datetime
    actor_id: str
    actor_role: str

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: str
    owner_id: str
    email: Optional[str] = None
    currency: str
    status: str
    items: List[OrderItemOut]
    items_price: float
    tax_price: float
    shipping_price: float
    discount_amount: float
    total_price: float
    shipping_address: Dict[str, Optional[str]]
    billing_address: Optional[Dict[str, Optional[str]]] = None
    payment_method: str
    is_paid: bool
    paid_at: Optional[datetime] = None
    tracking_number: Optional[str] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    needs_reconciliation: bool = False
    reconciliation_note: Optional[str] = None
    status_history: List[StatusUpdateOut]
    vendor_subtotal: Optional[float] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    current: int
    total: int
    count: int


class OrderListOut(BaseModel):
    data: List[OrderOut]
    pagination: Pagination
    status_counts: Optional[Dict[str, int]] = None


class TimelineEntry(BaseModel):
    status: str
    note: Optional[str] = None
    updated_at: datetime

    class Config:
        from_attributes = True


class TrackedItem(BaseModel):
    name: str
    quantity: int

    class Config:
        from_attributes = True


class TrackingView(BaseModel):
    tracking_number: str
    status: str
    timeline: List[TimelineEntry]
    shipping_address: Dict[str, Optional[str]]
    items: List[TrackedItem]
    created_at: datetime
    delivered_at: Optional[datetime] = None
    expected_delivery_date: datetime
