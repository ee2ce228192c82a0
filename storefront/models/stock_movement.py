import uuid
from sqlalchemy import Column, Integer, String, TIMESTAMP, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from storefront.db import Base


class StockMovement(Base):
    __tablename__ = "stock_movements"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True)

    type = Column(String(20), nullable=False)  # IN / OUT / RESERVED / RELEASED
    quantity = Column(Integer, nullable=False)
    reason = Column(String(255))

    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id"), nullable=True)

    created_at = Column(TIMESTAMP, server_default=func.now())
