import uuid
from sqlalchemy import Column, String, Integer, Numeric, Boolean, TIMESTAMP, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from storefront.db import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    title = Column(String(200), nullable=False)
    description = Column(String(1000))
    price = Column(Numeric(12, 2), nullable=False, default=0)

    category_id = Column(UUID(as_uuid=True), ForeignKey("categories.id"), nullable=True)

    # physical units owned
    stock = Column(Integer, nullable=False, default=0)
    # held against open, undelivered orders
    reserved_stock = Column(Integer, nullable=False, default=0)
    # stock - reserved_stock, kept in sync by the inventory ledger
    available_stock = Column(Integer, nullable=False, default=0)

    total_sold = Column(Integer, nullable=False, default=0)
    total_ordered = Column(Integer, nullable=False, default=0)
    low_stock_alert = Column(Integer, nullable=False, default=5)

    is_active = Column(Boolean, default=True)

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())
