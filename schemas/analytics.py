from typing import Dict, List

from pydantic import BaseModel


class StatusBreakdown(BaseModel):
    count: int
    revenue: float


class DailyRevenue(BaseModel):
    date: str
    revenue: float
    count: int


class TopCustomer(BaseModel):
    owner_id: str
    order_count: int
    total_spent: float


class TopProduct(BaseModel):
    product_id: str
    name: str
    quantity: int
    revenue: float


class AnalyticsSnapshot(BaseModel):
    timezone: str
    total_orders: int
    total_revenue: float
    today_orders: int
    today_revenue: float
    orders_by_status: Dict[str, StatusBreakdown]
    daily_revenue: List[DailyRevenue]
    top_customers: List[TopCustomer]
    top_products: List[TopProduct]
