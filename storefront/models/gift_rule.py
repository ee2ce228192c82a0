import uuid
from sqlalchemy import Column, String, Integer, Boolean, TIMESTAMP
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from storefront.db import Base


class GiftRule(Base):
    __tablename__ = "gift_rules"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    name = Column(String(150), nullable=False)
    description = Column(String(1000))

    is_active = Column(Boolean, nullable=False, default=True)
    priority = Column(Integer, nullable=False, default=50)

    # AND | OR across top-level conditions
    condition_logic = Column(String(3), nullable=False, default="AND")

    # NULL = unlimited
    max_uses_per_customer = Column(Integer, nullable=True)
    max_total_uses = Column(Integer, nullable=True)
    current_total_uses = Column(Integer, nullable=False, default=0)

    valid_from = Column(TIMESTAMP, nullable=True)
    valid_until = Column(TIMESTAMP, nullable=True)

    created_by = Column(String(100))

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())
