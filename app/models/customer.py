"""
Customer Models
"""
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Integer, JSON
from sqlalchemy.orm import relationship
from app.core import Base
from .base import UUIDMixin, TimestampMixin

class Customer(Base, UUIDMixin, TimestampMixin):
    """Salon account, optionally linked to a Shopify customer"""
    __tablename__ = "customer"
    
    # Shopify identity (unique when present)
    shopify_customer_id = Column(String(64), unique=True, index=True)
    shopify_shop_domain = Column(String(200))
    shopify_tags = Column(JSON, default=list, nullable=False)
    shopify_last_synced_at = Column(DateTime)
    
    # Contact
    salon_name = Column(String(200), nullable=False)
    customer_name = Column(String(200))
    email = Column(String(200), index=True)  # lower-cased, secondary match key
    phone = Column(String(50))
    address_line1 = Column(String(300))
    address_line2 = Column(String(300))
    town = Column(String(120))
    county = Column(String(120))
    post_code = Column(String(20))
    notes = Column(Text)
    
    # Sales rep (denormalized name + optional canonical link)
    sales_rep = Column(String(120))
    sales_rep_id = Column(Integer, ForeignKey("sales_rep.id", ondelete="SET NULL"))
    
    # Relationships
    orders = relationship("Order", back_populates="customer", passive_deletes=True)
    rep = relationship("SalesRep", back_populates="customers")

    def __repr__(self):
        return f"<Customer {self.salon_name} shopify={self.shopify_customer_id}>"
