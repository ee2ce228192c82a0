import uuid
from sqlalchemy import Column, Integer, Numeric, Boolean, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from storefront.db import Base


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False)

    quantity = Column(Integer, nullable=False)

    # 0 for gifts
    price = Column(Numeric(12, 2), nullable=False)
    # catalog price at order time, kept for reporting
    original_price = Column(Numeric(12, 2), nullable=False)

    is_gift = Column(Boolean, nullable=False, default=False)
    gift_rule_id = Column(UUID(as_uuid=True), ForeignKey("gift_rules.id", ondelete="SET NULL"), nullable=True)
