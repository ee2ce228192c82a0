import uuid
from sqlalchemy import Column, String, Numeric, TIMESTAMP, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from storefront.db import Base


class Order(Base):
    __tablename__ = "orders"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    user_id = Column(String(100), nullable=False, index=True)

    status = Column(String(20), nullable=False, default="PROCESSING")
    # PROCESSING | CONFIRMED | SHIPPED | DELIVERED | CANCELLED

    total = Column(Numeric(12, 2), nullable=False)

    shipping_address = Column(String(500), nullable=False)
    delivery_phone = Column(String(50))
    delivery_name = Column(String(150))

    payment_method = Column(String(30), nullable=False, default="cash")
    delivery_method = Column(String(30), nullable=False, default="courier")

    voucher_id = Column(UUID(as_uuid=True), ForeignKey("vouchers.id"), nullable=True)

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())
