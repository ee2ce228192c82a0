from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from uuid import UUID

from pydantic import BaseModel, Field


class VoucherCreate(BaseModel):
    code: str = Field(min_length=1)
    discount_type: Literal["percentage", "fixed"] = "percentage"
    discount_value: Decimal = Field(gt=0)
    min_purchase: Optional[Decimal] = None
    max_discount: Optional[Decimal] = None
    valid_until: Optional[datetime] = None
    is_active: bool = True


class VoucherOut(BaseModel):
    id: UUID
    code: str
    discount_type: str
    discount_value: float
    min_purchase: Optional[float] = None
    max_discount: Optional[float] = None
    valid_until: Optional[datetime] = None
    is_active: bool
    used_count: int

    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
