from datetime import datetime
from decimal import Decimal
from typing import Optional

from uuid import UUID

from pydantic import BaseModel, Field


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None


class CategoryOut(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None

    class Config:
        from_attributes = True


class ProductCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    price: Decimal = Field(ge=0)
    category_id: Optional[UUID] = None

    stock: int = Field(default=0, ge=0)
    low_stock_alert: int = Field(default=5, ge=0)
    is_active: bool = True


class ProductUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    category_id: Optional[UUID] = None

    low_stock_alert: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None


class ProductOut(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    price: float
    category_id: Optional[UUID] = None

    stock: int
    reserved_stock: int
    available_stock: int
    total_sold: int
    total_ordered: int
    low_stock_alert: int

    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StockAdd(BaseModel):
    quantity: int = Field(gt=0)
    reason: str = "Restock"


class StockMovementOut(BaseModel):
    id: UUID
    product_id: UUID
    type: str
    quantity: int
    reason: Optional[str] = None
    order_id: Optional[UUID] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
