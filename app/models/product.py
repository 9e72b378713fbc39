"""
Product Cost Cache
"""
from sqlalchemy import Column, String, Numeric
from app.core import Base
from .base import UUIDMixin, TimestampMixin

class VariantCost(Base, UUIDMixin, TimestampMixin):
    """Unit cost per Shopify variant, filled by the variant-cost backfill"""
    __tablename__ = "shopify_variant_cost"
    
    variant_id = Column(String(64), unique=True, nullable=False, index=True)
    inventory_item_id = Column(String(64))
    unit_cost = Column(Numeric(12, 4))
    currency = Column(String(3), default="GBP")
