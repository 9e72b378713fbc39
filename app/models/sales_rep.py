"""
Sales Rep Models - canonical reps, name aliases and Shopify tag rules
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from app.core import Base


class SalesRep(Base):
    """Canonical sales representative"""
    __tablename__ = "sales_rep"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False, unique=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    aliases = relationship("SalesRepAlias", back_populates="sales_rep", cascade="all, delete-orphan")
    tag_rules = relationship("SalesRepTagRule", back_populates="sales_rep", cascade="all, delete-orphan")
    customers = relationship("Customer", back_populates="rep")

    def __repr__(self):
        return f"<SalesRep {self.name}>"


class SalesRepAlias(Base):
    """Normalized free-text spelling -> SalesRep"""
    __tablename__ = "sales_rep_alias"

    id = Column(Integer, primary_key=True, autoincrement=True)
    alias = Column(String(120), nullable=False, unique=True)  # stored as normalize_rep_key()
    sales_rep_id = Column(Integer, ForeignKey("sales_rep.id", ondelete="CASCADE"), nullable=False)

    sales_rep = relationship("SalesRep", back_populates="aliases")


class SalesRepTagRule(Base):
    """Shopify customer tag -> SalesRep. Oldest rule wins when several tags match."""
    __tablename__ = "sales_rep_tag_rule"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tag = Column(String(120), nullable=False, index=True)
    sales_rep_id = Column(Integer, ForeignKey("sales_rep.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    sales_rep = relationship("SalesRep", back_populates="tag_rules")

    def __repr__(self):
        return f"<SalesRepTagRule {self.tag} -> {self.sales_rep_id}>"
