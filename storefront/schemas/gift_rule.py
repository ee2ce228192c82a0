from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from uuid import UUID

from pydantic import BaseModel, Field


ConditionType = Literal["MIN_AMOUNT", "SPECIFIC_PRODUCT", "PRODUCT_CATEGORY", "PRODUCT_QUANTITY"]
ConditionLogic = Literal["AND", "OR"]


class GiftConditionIn(BaseModel):
    type: ConditionType

    min_amount: Optional[Decimal] = Field(default=None, gt=0)
    product_id: Optional[UUID] = None
    min_quantity: Optional[int] = Field(default=None, gt=0)
    category_id: Optional[UUID] = None
    min_category_amount: Optional[Decimal] = Field(default=None, gt=0)

    logic: Optional[ConditionLogic] = None
    sub_conditions: Optional[list["GiftConditionIn"]] = None


class GiftRuleCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None

    priority: int = Field(default=50, ge=1, le=100)
    is_active: bool = True
    condition_logic: ConditionLogic = "AND"

    conditions: list[GiftConditionIn] = Field(default_factory=list)
    gift_product_ids: list[UUID] = Field(default_factory=list)

    max_uses_per_customer: Optional[int] = Field(default=None, gt=0)
    max_total_uses: Optional[int] = Field(default=None, gt=0)

    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None


class GiftRuleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None

    priority: Optional[int] = Field(default=None, ge=1, le=100)
    is_active: Optional[bool] = None
    condition_logic: Optional[ConditionLogic] = None

    # replace the whole collection when supplied
    conditions: Optional[list[GiftConditionIn]] = None
    gift_product_ids: Optional[list[UUID]] = None

    max_uses_per_customer: Optional[int] = Field(default=None, gt=0)
    max_total_uses: Optional[int] = Field(default=None, gt=0)

    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None


class GiftRuleToggle(BaseModel):
    is_active: bool


class GiftConditionOut(BaseModel):
    id: UUID
    type: str

    min_amount: Optional[float] = None
    product_id: Optional[UUID] = None
    min_quantity: Optional[int] = None
    category_id: Optional[UUID] = None
    min_category_amount: Optional[float] = None

    logic: Optional[str] = None
    sub_conditions: list["GiftConditionOut"] = Field(default_factory=list)


class GiftProductOut(BaseModel):
    id: UUID
    product_id: UUID
    title: Optional[str] = None
    price: Optional[float] = None
    stock: Optional[int] = None

    max_quantity_per_order: int
    remaining_stock: Optional[int] = None


class GiftRuleOut(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None

    is_active: bool
    priority: int
    condition_logic: str

    max_uses_per_customer: Optional[int] = None
    max_total_uses: Optional[int] = None
    current_total_uses: int

    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None

    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    conditions: list[GiftConditionOut] = Field(default_factory=list)
    gift_products: list[GiftProductOut] = Field(default_factory=list)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class GiftRulePage(BaseModel):
    rules: list[GiftRuleOut]
    pagination: Pagination


class PublicGiftRuleOut(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    priority: int

    class Config:
        from_attributes = True


class ProductUsageOut(BaseModel):
    product_id: UUID
    product_name: Optional[str] = None
    count: int
    total_value: float


class DailyUsageOut(BaseModel):
    date: str
    count: int


class RuleStatisticsOut(BaseModel):
    total_uses: int
    unique_users: int
    total_value_given: float
    usage_by_product: list[ProductUsageOut]
    usage_over_time: list[DailyUsageOut]


GiftConditionIn.model_rebuild()
GiftConditionOut.model_rebuild()
