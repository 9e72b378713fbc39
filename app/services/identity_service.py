"""
Identity Service - match Shopify customers to CRM customers
"""
from dataclasses import dataclass
from typing import Optional
from uuid import UUID
from sqlalchemy import func
from sqlalchemy.orm import Session
import logging

from app.models.customer import Customer
from app.integrations.base import NormalizedCustomer

logger = logging.getLogger(__name__)

MATCHED_BY_EXTERNAL_ID = "external_id"
MATCHED_BY_EMAIL = "email"


@dataclass
class IdentityMatch:
    customer_id: Optional[UUID]
    is_new_match: bool = False
    matched_by: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.customer_id is not None


def find_customer_by_external_id(db: Session, external_id: Optional[str]) -> Optional[Customer]:
    """Exact Shopify id lookup (no email fallback)"""
    if not external_id:
        return None
    return db.query(Customer).filter(Customer.shopify_customer_id == str(external_id)).first()


def find_customer_by_email(db: Session, email: Optional[str]) -> Optional[Customer]:
    """
    Case-insensitive email lookup (CRM-entered rows may keep their original
    casing). Records not yet linked to Shopify are preferred,
    then the oldest record.
    """
    normalized = (email or "").strip().lower()
    if not normalized:
        return None
    return (
        db.query(Customer)
        .filter(func.lower(func.trim(Customer.email)) == normalized)
        .order_by(Customer.shopify_customer_id.isnot(None), Customer.created_at.asc())
        .first()
    )


def resolve_customer(db: Session, normalized: NormalizedCustomer) -> IdentityMatch:
    """
    1. Shopify id match (authoritative)
    2. email match - the record gets linked to the Shopify id during upsert
    3. no match - caller creates a customer
    """
    by_id = find_customer_by_external_id(db, normalized.shopify_customer_id)
    if by_id:
        return IdentityMatch(by_id.id, is_new_match=False, matched_by=MATCHED_BY_EXTERNAL_ID)

    by_email = find_customer_by_email(db, normalized.email)
    if by_email:
        if by_email.shopify_customer_id and by_email.shopify_customer_id != normalized.shopify_customer_id:
            logger.warning(
                f"Shopify customer {normalized.shopify_customer_id} shares email with "
                f"customer {by_email.id} already linked to {by_email.shopify_customer_id}"
            )
        return IdentityMatch(by_email.id, is_new_match=True, matched_by=MATCHED_BY_EMAIL)

    return IdentityMatch(None)
