"""
Enrichment Service - rate-limited repair jobs over already-synced data

Each job works in bounded batches, sleeps through a fixed-interval throttle
between Shopify calls and returns a summary dict even when some lookups fail.
"""
import uuid
from typing import Any, Dict, List, Optional
from sqlalchemy import distinct, or_
from sqlalchemy.orm import Session
import logging

from app.integrations import ShopifyAPIError, ShopifyClient
from app.integrations.payload import clean_id, clean_str, coerce_decimal, split_tags
from app.models.customer import Customer
from app.models.integration import SyncJobType
from app.models.order import Order, OrderLineItem
from app.models.product import VariantCost
from app.services import integration_service
from app.services.backfill_service import DEFAULT_RPM, FixedIntervalThrottle, Sleep, clamp, clamp_rpm
from app.services.rep_service import rep_ref_for_tags, resolve_rep
from app.services.upsert_service import CommerceUpsertService

logger = logging.getLogger(__name__)

VARIANT_CHUNK_SIZE = 50
SAMPLE_SIZE = 20

VARIANT_COST_QUERY = """
query VariantCosts($ids: [ID!]!) {
  nodes(ids: $ids) {
    ... on ProductVariant {
      id
      inventoryItem {
        id
        unitCost { amount currencyCode }
      }
    }
  }
}
"""


def _start_job(db: Session, resource: str, cursor: Optional[str] = None):
    return integration_service.create_sync_job(
        db, resource=resource, job_type=SyncJobType.ENRICHMENT.value, cursor=cursor
    )


# ========== Vendors ==========

class VendorCache:
    """product id -> vendor (None when the lookup found nothing). Lives for one job."""

    def __init__(self):
        self._vendors: Dict[str, Optional[str]] = {}

    def __contains__(self, product_id: str) -> bool:
        return product_id in self._vendors

    def get(self, product_id: str) -> Optional[str]:
        return self._vendors.get(product_id)

    def set(self, product_id: str, vendor: Optional[str]):
        self._vendors[product_id] = vendor

    def __len__(self):
        return len(self._vendors)


def _missing_vendor_filter():
    return (
        OrderLineItem.product_id.isnot(None),
        or_(OrderLineItem.product_vendor.is_(None), OrderLineItem.product_vendor == ""),
    )


async def _lookup_vendor(client: ShopifyClient, product_id: str, cache: VendorCache) -> Optional[str]:
    if product_id in cache:
        return cache.get(product_id)
    response = await client.get_product(product_id)
    vendor = None
    if response.ok:
        product = response.json_body.get("product") or {}
        vendor = clean_str(product.get("vendor"))
    else:
        logger.warning(f"Vendor lookup for product {product_id} failed: {response.status} {response.error or ''}")
    cache.set(product_id, vendor)
    return vendor


async def backfill_vendors(
    db: Session,
    client: ShopifyClient,
    rpm: int = DEFAULT_RPM,
    cache: Optional[VendorCache] = None,
    sleep: Optional[Sleep] = None,
) -> Dict[str, Any]:
    """
    Fill product_vendor on line items where it is null or empty, one
    Shopify product lookup per distinct product id.
    """
    cache = cache if cache is not None else VendorCache()
    throttle = FixedIntervalThrottle(rpm, sleep=sleep)

    missing_count = db.query(OrderLineItem).filter(*_missing_vendor_filter()).count()
    if missing_count == 0:
        return {"productIds": 0, "lookedUp": 0, "updated": 0, "skipped": 0, "missingCount": 0}

    job = _start_job(db, "vendors")
    product_ids = [
        row[0] for row in
        db.query(distinct(OrderLineItem.product_id)).filter(*_missing_vendor_filter()).all()
    ]

    looked_up = updated = skipped = 0
    for product_id in product_ids:
        await throttle.wait()
        vendor = await _lookup_vendor(client, product_id, cache)
        looked_up += 1
        if not vendor:
            skipped += 1
            continue
        updated += (
            db.query(OrderLineItem)
            .filter(OrderLineItem.product_id == product_id, *_missing_vendor_filter())
            .update({OrderLineItem.product_vendor: vendor}, synchronize_session=False)
        )
        db.commit()

    summary = {
        "productIds": len(product_ids),
        "lookedUp": looked_up,
        "updated": updated,
        "skipped": skipped,
        "missingCount": missing_count,
    }
    integration_service.complete_sync_job(
        db, job.id, records_fetched=looked_up, records_imported=updated, records_failed=skipped, stats=summary
    )
    logger.info(f"Vendor backfill: {summary}")
    return summary


# ========== Order -> customer links ==========

def _unlinked_orders():
    return or_(Order.shopify_customer_id.is_(None), Order.customer_id.is_(None))


async def link_orders_to_customers(
    db: Session,
    client: ShopifyClient,
    limit: int = 50,
    rpm: int = DEFAULT_RPM,
    sleep: Optional[Sleep] = None,
) -> Dict[str, Any]:
    """
    Refetch orders that have no Shopify customer id or no CRM customer,
    upsert the embedded customer and link the order to it.
    """
    limit = clamp(limit, 1, 200, 50)
    rpm = clamp_rpm(rpm)
    throttle = FixedIntervalThrottle(rpm, sleep=sleep)
    upserts = CommerceUpsertService(db)

    candidates = (
        db.query(Order.id, Order.shopify_order_id)
        .filter(_unlinked_orders())
        .order_by(Order.created_at.asc())
        .limit(limit)
        .all()
    )
    if not candidates:
        return {"processed": 0, "linked": 0, "skipped": 0, "remaining": 0, "rpm": rpm}

    job = _start_job(db, "orders-link-customers")
    processed = linked = skipped = 0
    for order_id, shopify_order_id in candidates:
        processed += 1
        await throttle.wait()
        try:
            response = await client.get_order(shopify_order_id)
            if not response.ok:
                skipped += 1
                continue
            customer_payload = (response.json_body.get("order") or {}).get("customer")
            if not isinstance(customer_payload, dict) or not customer_payload.get("id"):
                # guest checkout
                skipped += 1
                continue

            customer = upserts.upsert_customer(customer_payload, client.shop_domain or None).record
            order = db.get(Order, order_id)
            order.shopify_customer_id = customer.shopify_customer_id
            order.customer_id = customer.id
            db.commit()
            linked += 1
        except Exception:
            db.rollback()
            skipped += 1
            logger.exception(f"Linking order {shopify_order_id} to its customer failed")

    remaining = db.query(Order).filter(_unlinked_orders()).count()
    summary = {"processed": processed, "linked": linked, "skipped": skipped, "remaining": remaining, "rpm": rpm}
    integration_service.complete_sync_job(
        db, job.id, records_fetched=processed, records_imported=linked, records_failed=skipped, stats=summary
    )
    logger.info(f"Order/customer link repair: {summary}")
    return summary


# ========== Variant costs ==========

def _parse_variant_costs(body: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    costs: Dict[str, Dict[str, Any]] = {}
    for node in (body.get("data") or {}).get("nodes") or []:
        if not isinstance(node, dict) or not node.get("id"):
            continue
        inventory_item = node.get("inventoryItem") or {}
        unit_cost = inventory_item.get("unitCost") or {}
        costs[clean_id(node["id"])] = {
            "inventory_item_id": clean_id(inventory_item.get("id")),
            "unit_cost": coerce_decimal(unit_cost.get("amount")),
            "currency": clean_str(unit_cost.get("currencyCode")) or "GBP",
        }
    return costs


async def backfill_variant_costs(db: Session, client: ShopifyClient, limit: int = 1000) -> Dict[str, Any]:
    """Cache unit costs for variants seen on line items but not cached yet"""
    limit = clamp(limit, 1, 5000, 1000)

    variant_ids = [
        row[0] for row in
        db.query(distinct(OrderLineItem.variant_id))
        .filter(OrderLineItem.variant_id.isnot(None))
        .order_by(OrderLineItem.variant_id)
        .limit(limit)
        .all()
    ]
    if not variant_ids:
        return {"scanned": 0, "upserts": 0}

    cached = {
        row[0] for row in
        db.query(VariantCost.variant_id).filter(VariantCost.variant_id.in_(variant_ids)).all()
    }
    missing = [v for v in variant_ids if v not in cached]
    if not missing:
        return {"scanned": len(variant_ids), "upserts": 0}

    job = _start_job(db, "variant-costs")
    upserts = failed_chunks = 0
    for start in range(0, len(missing), VARIANT_CHUNK_SIZE):
        chunk = missing[start:start + VARIANT_CHUNK_SIZE]
        gids = [f"gid://shopify/ProductVariant/{v}" for v in chunk]
        try:
            costs = _parse_variant_costs(await client.graphql_call(VARIANT_COST_QUERY, {"ids": gids}))
        except ShopifyAPIError as e:
            failed_chunks += 1
            logger.error(f"Variant cost lookup failed for {len(chunk)} variants: {e}")
            continue

        for variant_id in chunk:
            entry = costs.get(variant_id)
            if not entry:
                continue
            row = db.query(VariantCost).filter(VariantCost.variant_id == variant_id).first()
            if row is None:
                row = VariantCost(variant_id=variant_id)
                db.add(row)
            row.inventory_item_id = entry["inventory_item_id"]
            row.unit_cost = entry["unit_cost"]
            row.currency = entry["currency"]
            upserts += 1
        db.commit()

    summary = {"scanned": len(variant_ids), "upserts": upserts}
    integration_service.complete_sync_job(
        db,
        job.id,
        records_fetched=len(missing),
        records_imported=upserts,
        stats={**summary, "failedChunks": failed_chunks},
        error_message=f"{failed_chunks} GraphQL chunk(s) failed" if failed_chunks else None,
    )
    logger.info(f"Variant cost backfill: {summary}")
    return summary


# ========== Sales reps ==========

REP_MODES = ("apply", "dry-run")
REP_SOURCES = ("db", "shopify", "auto")


async def _fetch_shopify_tags(client: ShopifyClient, shopify_customer_id: Optional[str]) -> List[str]:
    if not shopify_customer_id:
        return []
    response = await client.get_customer(shopify_customer_id)
    if not response.ok:
        return []
    return split_tags((response.json_body.get("customer") or {}).get("tags"))


async def backfill_sales_reps(
    db: Session,
    client: ShopifyClient,
    mode: str = "dry-run",
    source: str = "auto",
    limit: int = 100,
    cursor: Optional[str] = None,
    reeval: bool = False,
    rpm: int = DEFAULT_RPM,
    sleep: Optional[Sleep] = None,
) -> Dict[str, Any]:
    """
    Assign reps from customer tags in id-ordered batches.

    mode    apply | dry-run (default, nothing is written)
    source  db (stored tags) | shopify (live tags) | auto (stored, else live)
    cursor  id of the last customer of the previous batch
    reeval  include customers that already have a rep
    """
    mode = (mode or "dry-run").strip().lower()
    if mode not in REP_MODES:
        raise ValueError(f"mode must be one of {', '.join(REP_MODES)}")
    source = (source or "auto").strip().lower()
    if source not in REP_SOURCES:
        raise ValueError(f"source must be one of {', '.join(REP_SOURCES)}")
    apply = mode == "apply"
    limit = clamp(limit, 1, 500, 100)
    throttle = FixedIntervalThrottle(rpm, sleep=sleep)

    query = db.query(Customer)
    if not reeval:
        query = query.filter(or_(Customer.sales_rep.is_(None), Customer.sales_rep == ""))
    if cursor:
        try:
            query = query.filter(Customer.id > uuid.UUID(str(cursor)))
        except ValueError:
            raise ValueError(f"Invalid cursor: {cursor!r}")
    batch = query.order_by(Customer.id.asc()).limit(limit).all()

    job = _start_job(db, "sales-reps", cursor=cursor)
    updated = kept_same = skipped_no_tags = skipped_no_rep = 0
    results: List[Dict[str, Any]] = []

    for customer in batch:
        stored = split_tags(customer.shopify_tags)
        if source == "db":
            tags = stored
        elif source == "shopify" or not stored:
            await throttle.wait()
            tags = await _fetch_shopify_tags(client, customer.shopify_customer_id)
        else:
            tags = stored

        old_rep = customer.sales_rep
        if not tags:
            skipped_no_tags += 1
            results.append({"id": str(customer.id), "oldRep": old_rep, "newRep": None, "reason": "no-tags"})
            continue

        rep = rep_ref_for_tags(db, tags)
        if not rep:
            skipped_no_rep += 1
            results.append({"id": str(customer.id), "oldRep": old_rep, "newRep": None, "reason": "no-matching-rep"})
            continue

        mapped = rep.name
        if (old_rep or "").strip().lower() == mapped.strip().lower():
            kept_same += 1
            results.append({"id": str(customer.id), "oldRep": old_rep, "newRep": mapped, "reason": "already-set"})
            continue

        if apply:
            customer.sales_rep = mapped
            customer.sales_rep_id = rep.id
        updated += 1
        results.append({"id": str(customer.id), "oldRep": old_rep, "newRep": mapped})

    if apply:
        db.commit()

    next_cursor = str(batch[-1].id) if len(batch) == limit else None
    summary = {
        "mode": mode,
        "source": source,
        "processed": len(batch),
        "updated": updated,
        "keptSame": kept_same,
        "skippedNoTags": skipped_no_tags,
        "skippedNoRep": skipped_no_rep,
        "nextCursor": next_cursor,
        "sample": results[:SAMPLE_SIZE],
    }
    integration_service.complete_sync_job(
        db,
        job.id,
        records_fetched=len(batch),
        records_imported=updated if apply else 0,
        next_cursor=next_cursor,
        stats={k: v for k, v in summary.items() if k != "sample"},
    )
    logger.info(
        f"Sales rep backfill ({mode}, {source}): processed={len(batch)}, updated={updated}, "
        f"keptSame={kept_same}, noTags={skipped_no_tags}, noRep={skipped_no_rep}"
    )
    return summary


def link_rep_ids(db: Session) -> Dict[str, Any]:
    """Resolve free-text Customer.sales_rep to a SalesRep id where the id is missing"""
    customers = (
        db.query(Customer)
        .filter(
            Customer.sales_rep_id.is_(None),
            Customer.sales_rep.isnot(None),
            Customer.sales_rep != "",
        )
        .all()
    )

    job = _start_job(db, "rep-links")
    resolved: Dict[str, Any] = {}
    linked = unresolved = 0
    for customer in customers:
        name = customer.sales_rep
        if name not in resolved:
            resolved[name] = resolve_rep(db, name=name)
        rep = resolved[name]
        if rep:
            customer.sales_rep_id = rep.id
            linked += 1
        else:
            unresolved += 1
    db.commit()

    summary = {"processed": len(customers), "linked": linked, "unresolved": unresolved}
    integration_service.complete_sync_job(
        db, job.id, records_fetched=len(customers), records_imported=linked, records_failed=unresolved, stats=summary
    )
    if unresolved:
        logger.warning(f"{unresolved} customer(s) carry a rep name that matches no sales rep")
    logger.info(f"Rep id links: {summary}")
    return summary
