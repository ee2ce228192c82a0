import uuid
from sqlalchemy import Column, String, TIMESTAMP, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from storefront.db import Base


class GiftRuleUsage(Base):
    __tablename__ = "gift_rule_usages"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # kept after the rule is deleted (set NULL)
    gift_rule_id = Column(UUID(as_uuid=True), ForeignKey("gift_rules.id", ondelete="SET NULL"), nullable=True, index=True)
    user_id = Column(String(100), nullable=False)
    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id"), nullable=False)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False)

    used_at = Column(TIMESTAMP, server_default=func.now())
