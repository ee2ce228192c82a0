from sqlalchemy import Column, String, JSON, TIMESTAMP
from sqlalchemy.sql import func
from storefront.db import Base


class SiteConfig(Base):
    __tablename__ = "site_config"

    key = Column(String(100), primary_key=True)
    value = Column(JSON)
    description = Column(String(255))

    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())
