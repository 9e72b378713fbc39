"""
Order Models
"""
from sqlalchemy import Column, String, Numeric, Integer, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from app.core import Base
from .base import UUIDMixin, TimestampMixin

class Order(Base, UUIDMixin, TimestampMixin):
    """Order synced from Shopify (last write wins)"""
    __tablename__ = "shop_order"
    
    # External reference
    shopify_order_id = Column(String(64), unique=True, nullable=False, index=True)
    shopify_order_number = Column(String(50))
    shopify_name = Column(String(100))  # e.g. "#1001"
    
    # Customer (weak reference, the order survives the customer)
    shopify_customer_id = Column(String(64), index=True)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customer.id", ondelete="SET NULL"), index=True)
    
    # Status
    financial_status = Column(String(50))
    fulfillment_status = Column(String(50))
    
    # Dates
    processed_at = Column(DateTime)
    
    # Amounts (null = missing or unparsable, never coerced to zero)
    currency = Column(String(3))
    subtotal = Column(Numeric(12, 2))
    taxes = Column(Numeric(12, 2))
    discounts = Column(Numeric(12, 2))
    shipping = Column(Numeric(12, 2))
    total = Column(Numeric(12, 2))
    
    # Relationships
    customer = relationship("Customer", back_populates="orders")
    items = relationship(
        "OrderLineItem",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OrderLineItem.line_no",
    )

    def __repr__(self):
        return f"<Order {self.shopify_name or self.shopify_order_id}>"

class OrderLineItem(Base, UUIDMixin):
    """Order Line (replaced wholesale on every order upsert)"""
    __tablename__ = "order_line_item"
    
    order_id = Column(Uuid(as_uuid=True), ForeignKey("shop_order.id", ondelete="CASCADE"), nullable=False, index=True)
    line_no = Column(Integer, nullable=False, default=1)
    
    shopify_line_item_id = Column(String(64))
    product_id = Column(String(64), index=True)
    variant_id = Column(String(64), index=True)
    sku = Column(String(100))
    product_title = Column(String(300))
    variant_title = Column(String(300))
    product_vendor = Column(String(200))
    
    quantity = Column(Integer)
    price = Column(Numeric(12, 2))
    total = Column(Numeric(12, 2))
    
    # Relationships
    order = relationship("Order", back_populates="items")
