import uuid
from sqlalchemy import Column, Integer, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from storefront.db import Base


class GiftProduct(Base):
    __tablename__ = "gift_products"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    gift_rule_id = Column(UUID(as_uuid=True), ForeignKey("gift_rules.id"), nullable=False, index=True)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False)

    max_quantity_per_order = Column(Integer, nullable=False, default=1)

    # rule-scoped cap, NULL = bounded only by product stock
    remaining_stock = Column(Integer, nullable=True)
