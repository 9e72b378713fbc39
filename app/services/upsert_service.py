"""
Upsert Service - idempotent create-or-update of Shopify customers and orders
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from app.models.customer import Customer
from app.models.order import Order, OrderLineItem
from app.integrations.base import MalformedPayloadError, NormalizedCustomer, NormalizedOrder
from app.integrations.payload import clean_id, pick, split_tags
from app.integrations.shopify import CUSTOMER_ID, normalize_customer, normalize_order
from app.services.identity_service import find_customer_by_external_id, resolve_customer
from app.services.rep_service import rep_ref_for_tags

logger = logging.getLogger(__name__)


@dataclass
class UpsertResult:
    record: Any
    created: bool


class CommerceUpsertService:
    """
    Converts Shopify payloads into CRM rows. Every write is a full overwrite
    derived only from the payload, so replays and out-of-order deliveries
    converge on the latest processed payload.
    """

    def __init__(self, db: Session):
        self.db = db

    # ========== Customers ==========

    def upsert_customer(self, payload: Dict[str, Any], shop_domain: Optional[str] = None) -> UpsertResult:
        normalized = normalize_customer(payload)
        try:
            return self._write_customer(normalized, shop_domain)
        except IntegrityError:
            # another writer created the same Shopify id first
            self.db.rollback()
            logger.warning(f"Customer {normalized.shopify_customer_id} inserted concurrently, retrying as update")
            return self._write_customer(normalized, shop_domain)

    def _write_customer(self, normalized: NormalizedCustomer, shop_domain: Optional[str]) -> UpsertResult:
        rep = rep_ref_for_tags(self.db, normalized.tags)

        match = resolve_customer(self.db, normalized)
        if match.found:
            customer = self.db.get(Customer, match.customer_id)
            created = False
        else:
            customer = Customer(shopify_customer_id=normalized.shopify_customer_id)
            self.db.add(customer)
            created = True

        # linking by email only claims the Shopify id when the record has none
        if not customer.shopify_customer_id:
            customer.shopify_customer_id = normalized.shopify_customer_id

        customer.salon_name = normalized.salon_name
        customer.customer_name = normalized.customer_name
        customer.email = normalized.email
        customer.phone = normalized.phone
        customer.address_line1 = normalized.address_line1
        customer.address_line2 = normalized.address_line2
        customer.town = normalized.town
        customer.county = normalized.county
        customer.post_code = normalized.post_code
        customer.shopify_tags = list(normalized.tags)
        customer.shopify_last_synced_at = normalized.updated_at or datetime.utcnow()
        if shop_domain:
            customer.shopify_shop_domain = shop_domain

        # an existing assignment is never cleared by a sync that resolves nothing
        if rep:
            customer.sales_rep = rep.name
            customer.sales_rep_id = rep.id

        self.db.commit()
        self.db.refresh(customer)

        logger.info(
            f"{'Created' if created else 'Updated'} customer {customer.id} "
            f"(shopify={normalized.shopify_customer_id}, matched_by={match.matched_by})"
        )
        return UpsertResult(customer, created)

    def apply_tag_delta(self, payload: Dict[str, Any], added: bool) -> Optional[Customer]:
        """
        Tag added/removed events carry no full customer data: update-only,
        exact Shopify id lookup, no-op when the customer is unknown.
        """
        customer_id = pick(payload, CUSTOMER_ID, coerce=clean_id)
        if not customer_id:
            raise MalformedPayloadError("Tag event has no customer id")

        customer = find_customer_by_external_id(self.db, customer_id)
        if not customer:
            logger.info(f"Tag event for unknown Shopify customer {customer_id}, ignored")
            return None

        delta = split_tags(payload.get("tags"))
        current = list(customer.shopify_tags or [])
        if added:
            seen = {t.lower() for t in current}
            for tag in delta:
                if tag.lower() not in seen:
                    current.append(tag)
                    seen.add(tag.lower())
        else:
            removed = {t.lower() for t in delta}
            current = [t for t in current if t.lower() not in removed]

        customer.shopify_tags = current
        rep = rep_ref_for_tags(self.db, current)
        if rep:
            customer.sales_rep = rep.name
            customer.sales_rep_id = rep.id

        self.db.commit()
        self.db.refresh(customer)
        logger.info(f"Tags {'added' if added else 'removed'} on customer {customer.id}: {delta}")
        return customer

    # ========== Orders ==========

    def upsert_order(self, payload: Dict[str, Any]) -> UpsertResult:
        normalized = normalize_order(payload)
        try:
            return self._write_order(normalized)
        except IntegrityError:
            self.db.rollback()
            logger.warning(f"Order {normalized.shopify_order_id} inserted concurrently, retrying as update")
            return self._write_order(normalized)

    def _find_order(self, shopify_order_id: str) -> Optional[Order]:
        return self.db.query(Order).filter(Order.shopify_order_id == shopify_order_id).first()

    def _write_order(self, normalized: NormalizedOrder) -> UpsertResult:
        # orders carry the authoritative customer id or none: no email fallback
        customer = find_customer_by_external_id(self.db, normalized.shopify_customer_id)

        order = self._find_order(normalized.shopify_order_id)
        created = order is None
        if created:
            order = Order(shopify_order_id=normalized.shopify_order_id)
            self.db.add(order)

        order.shopify_order_number = normalized.shopify_order_number
        order.shopify_name = normalized.shopify_name
        order.shopify_customer_id = normalized.shopify_customer_id
        order.customer_id = customer.id if customer else None
        order.processed_at = normalized.processed_at
        order.currency = normalized.currency
        order.financial_status = normalized.financial_status
        order.fulfillment_status = normalized.fulfillment_status
        order.subtotal = normalized.subtotal
        order.taxes = normalized.taxes
        order.discounts = normalized.discounts
        order.shipping = normalized.shipping
        order.total = normalized.total
        self.db.flush()

        # full replacement, not a diff
        self.db.query(OrderLineItem).filter(OrderLineItem.order_id == order.id).delete(synchronize_session=False)
        self.db.expire(order, ["items"])
        self.db.add_all([
            OrderLineItem(
                order_id=order.id,
                line_no=item.line_no,
                shopify_line_item_id=item.shopify_line_item_id,
                product_id=item.product_id,
                variant_id=item.variant_id,
                sku=item.sku,
                product_title=item.product_title,
                variant_title=item.variant_title,
                product_vendor=item.product_vendor,
                quantity=item.quantity,
                price=item.price,
                total=item.total,
            )
            for item in normalized.items
        ])

        self.db.commit()
        self.db.refresh(order)

        logger.info(
            f"{'Created' if created else 'Updated'} order {normalized.shopify_name or normalized.shopify_order_id} "
            f"({len(normalized.items)} lines, customer={'linked' if customer else 'none'})"
        )
        return UpsertResult(order, created)
