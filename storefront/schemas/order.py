from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from uuid import UUID

from pydantic import BaseModel, Field


OrderStatus = Literal["PROCESSING", "CONFIRMED", "SHIPPED", "DELIVERED", "CANCELLED"]


class OrderItemIn(BaseModel):
    product_id: UUID
    quantity: int = Field(gt=0)

    is_gift: bool = False
    gift_rule_id: Optional[UUID] = None


class OrderCreate(BaseModel):
    items: list[OrderItemIn] = Field(min_length=1)
    total: Decimal = Field(ge=0)

    shipping_address: str = Field(min_length=1)
    delivery_phone: Optional[str] = None
    delivery_name: Optional[str] = None

    payment_method: Optional[str] = None
    delivery_method: Optional[str] = None

    voucher_code: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderItemOut(BaseModel):
    id: UUID
    product_id: UUID
    quantity: int
    price: float
    original_price: float

    is_gift: bool
    gift_rule_id: Optional[UUID] = None

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: UUID
    user_id: str
    status: str
    total: float

    shipping_address: str
    delivery_phone: Optional[str] = None
    delivery_name: Optional[str] = None

    payment_method: str
    delivery_method: str
    voucher_id: Optional[UUID] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    items: list[OrderItemOut] = Field(default_factory=list)


class OrderPage(BaseModel):
    orders: list[OrderOut]
    total: int
    page: int
    limit: int
    total_pages: int


class OrderStatsOut(BaseModel):
    total_orders: int
    total_revenue: float
    today_orders: int
    today_revenue: float
    processing_orders: int
    delivered_orders: int
    cancelled_orders: int


class OrderBlockSettings(BaseModel):
    block_new_orders: bool = False
    block_reason: str = ""
    # NULL while blocked = permanent block
    block_until: Optional[datetime] = None

    allowed_payment_methods: list[str] = Field(default_factory=lambda: ["cash", "card", "transfer", "crypto"])
    minimum_order_value: float = Field(default=0, ge=0)
    maximum_order_value: Optional[float] = Field(default=None, gt=0)
