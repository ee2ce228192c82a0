import uuid
from sqlalchemy import Column, String, Integer, Numeric, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from storefront.db import Base


class GiftCondition(Base):
    __tablename__ = "gift_conditions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    gift_rule_id = Column(UUID(as_uuid=True), ForeignKey("gift_rules.id"), nullable=False, index=True)
    # NULL for top-level conditions
    parent_condition_id = Column(UUID(as_uuid=True), ForeignKey("gift_conditions.id"), nullable=True)

    type = Column(String(30), nullable=False)
    # MIN_AMOUNT | SPECIFIC_PRODUCT | PRODUCT_CATEGORY | PRODUCT_QUANTITY

    min_amount = Column(Numeric(12, 2))
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=True)
    min_quantity = Column(Integer)
    category_id = Column(UUID(as_uuid=True), ForeignKey("categories.id"), nullable=True)
    min_category_amount = Column(Numeric(12, 2))

    # combines sub-conditions when present
    logic = Column(String(3), nullable=True)
