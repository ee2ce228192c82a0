from typing import Optional

from uuid import UUID

from pydantic import BaseModel, Field


class CartItemAdd(BaseModel):
    product_id: UUID
    quantity: int = Field(default=1, gt=0)


class CartItemUpdate(BaseModel):
    # <= 0 removes the line
    quantity: int


class GiftSelection(BaseModel):
    gift_rule_id: UUID
    product_id: UUID


class CartLineOut(BaseModel):
    id: UUID
    product_id: UUID
    title: str
    price: float
    quantity: int

    is_gift: bool
    gift_rule_id: Optional[UUID] = None


class CartOut(BaseModel):
    items: list[CartLineOut]
    total: float
    item_count: int


class RemovedGiftOut(BaseModel):
    cart_item_id: UUID
    product_name: str
    reason: str


class EligibleRuleSummary(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None


class EligibleGiftProductOut(BaseModel):
    id: UUID
    product_id: UUID
    title: str
    price: float
    stock: int
    max_quantity_per_order: int


class EligibleRuleOut(BaseModel):
    rule: EligibleRuleSummary
    available_products: list[EligibleGiftProductOut]


class ReevaluationOut(BaseModel):
    removed_gifts: list[RemovedGiftOut]
    eligible_rules: list[EligibleRuleOut]


class CartMutationOut(BaseModel):
    cart: CartOut
    removed_gifts: list[RemovedGiftOut] = Field(default_factory=list)
    eligible_rules: list[EligibleRuleOut] = Field(default_factory=list)
