"""
Tests for the enrichment jobs: vendor backfill, order/customer link repair,
variant costs, sales-rep backfill and rep id links.

Called by: pytest tests/test_enrichment.py -v
"""

from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from app.integrations import ShopifyAPIError
from app.models import Customer, Order, OrderLineItem, SyncJob, SyncJobType, VariantCost
from app.services import enrichment_service
from app.services.enrichment_service import VendorCache
from app.services.rep_service import add_alias


def _order(db: Session, shopify_order_id: str, items=(), **fields) -> Order:
    order = Order(shopify_order_id=shopify_order_id, **fields)
    db.add(order)
    db.flush()
    for idx, item in enumerate(items, start=1):
        db.add(OrderLineItem(order_id=order.id, line_no=idx, **item))
    db.commit()
    db.refresh(order)
    return order


def _customer(db: Session, **fields) -> Customer:
    customer = Customer(salon_name=fields.pop("salon_name", "Test Salon"), **fields)
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


# ══════════════════════════════════════════════════════════════════════
#  Vendors
# ══════════════════════════════════════════════════════════════════════

@pytest.mark.asyncio
async def test_backfill_vendors(db_session: Session, fake_shopify, sleep_recorder):
    _order(db_session, "1", items=[
        {"product_id": "9", "sku": "A"},
        {"product_id": "9", "sku": "B", "product_vendor": ""},
        {"product_id": "8", "sku": "C"},
        {"product_id": "7", "sku": "D", "product_vendor": "Known"},
    ])
    fake_shopify.reply("/products/9.json", {"product": {"id": 9, "vendor": " Wella "}})
    fake_shopify.reply("/products/8.json", {"errors": "Not Found"}, status=404)

    summary = await enrichment_service.backfill_vendors(db_session, fake_shopify, rpm=240, sleep=sleep_recorder)

    assert summary == {"productIds": 2, "lookedUp": 2, "updated": 2, "skipped": 1, "missingCount": 3}
    db_session.expire_all()
    vendors = {i.sku: i.product_vendor for i in db_session.query(OrderLineItem).all()}
    assert vendors == {"A": "Wella", "B": "Wella", "C": None, "D": "Known"}
    assert sleep_recorder.delays == [0.25]
    job = db_session.query(SyncJob).one()
    assert job.job_type == SyncJobType.ENRICHMENT.value


@pytest.mark.asyncio
async def test_backfill_vendors_nothing_missing(db_session: Session, fake_shopify):
    summary = await enrichment_service.backfill_vendors(db_session, fake_shopify)
    assert summary["missingCount"] == 0
    assert fake_shopify.calls == []


@pytest.mark.asyncio
async def test_cached_vendor_skips_lookup(db_session: Session, fake_shopify, sleep_recorder):
    _order(db_session, "1", items=[{"product_id": "9", "sku": "A"}])
    cache = VendorCache()
    cache.set("9", "Cached Vendor")

    summary = await enrichment_service.backfill_vendors(db_session, fake_shopify, cache=cache, sleep=sleep_recorder)

    assert summary["updated"] == 1
    assert fake_shopify.calls == []
    db_session.expire_all()
    assert db_session.query(OrderLineItem).one().product_vendor == "Cached Vendor"


# ══════════════════════════════════════════════════════════════════════
#  Order -> customer links
# ══════════════════════════════════════════════════════════════════════

@pytest.mark.asyncio
async def test_link_orders_to_customers(db_session: Session, fake_shopify, sleep_recorder):
    _order(db_session, "1001")
    _order(db_session, "1002")
    _order(db_session, "1003")
    fake_shopify.reply("/orders/1001.json", {"order": {"id": 1001, "customer": {"id": 55, "email": "a@b.example"}}})
    fake_shopify.reply("/orders/1002.json", {"order": {"id": 1002, "customer": None}})
    fake_shopify.reply("/orders/1003.json", {"errors": "Not Found"}, status=404)

    summary = await enrichment_service.link_orders_to_customers(
        db_session, fake_shopify, limit=10, rpm=120, sleep=sleep_recorder
    )

    assert summary == {"processed": 3, "linked": 1, "skipped": 2, "remaining": 2, "rpm": 120}
    order = db_session.query(Order).filter(Order.shopify_order_id == "1001").one()
    customer = db_session.query(Customer).one()
    assert order.customer_id == customer.id
    assert order.shopify_customer_id == "55"
    assert fake_shopify.calls[0]["params"] == {"status": "any"}
    assert sleep_recorder.delays == [0.5, 0.5]


@pytest.mark.asyncio
async def test_link_orders_no_candidates(db_session: Session, fake_shopify):
    summary = await enrichment_service.link_orders_to_customers(db_session, fake_shopify, rpm=10)
    assert summary == {"processed": 0, "linked": 0, "skipped": 0, "remaining": 0, "rpm": 30}


# ══════════════════════════════════════════════════════════════════════
#  Variant costs
# ══════════════════════════════════════════════════════════════════════

@pytest.mark.asyncio
async def test_backfill_variant_costs(db_session: Session, fake_shopify):
    _order(db_session, "1", items=[{"variant_id": "90"}, {"variant_id": "91"}, {"variant_id": "92"}])
    db_session.add(VariantCost(variant_id="92", unit_cost=Decimal("1.00")))
    db_session.commit()
    fake_shopify.graphql_results.append({"data": {"nodes": [
        {
            "id": "gid://shopify/ProductVariant/90",
            "inventoryItem": {
                "id": "gid://shopify/InventoryItem/500",
                "unitCost": {"amount": "3.25", "currencyCode": "GBP"},
            },
        },
        None,
    ]}})

    summary = await enrichment_service.backfill_variant_costs(db_session, fake_shopify)

    assert summary == {"scanned": 3, "upserts": 1}
    ids = fake_shopify.graphql_calls[0]["variables"]["ids"]
    assert ids == ["gid://shopify/ProductVariant/90", "gid://shopify/ProductVariant/91"]
    cost = db_session.query(VariantCost).filter(VariantCost.variant_id == "90").one()
    assert cost.inventory_item_id == "500"
    assert cost.unit_cost == Decimal("3.25")


@pytest.mark.asyncio
async def test_backfill_variant_costs_chunks_of_fifty(db_session: Session, fake_shopify):
    _order(db_session, "1", items=[{"variant_id": str(1000 + i)} for i in range(120)])

    summary = await enrichment_service.backfill_variant_costs(db_session, fake_shopify)

    assert summary["scanned"] == 120
    assert [len(c["variables"]["ids"]) for c in fake_shopify.graphql_calls] == [50, 50, 20]


@pytest.mark.asyncio
async def test_backfill_variant_costs_failed_chunk_is_counted(db_session: Session, fake_shopify):
    _order(db_session, "1", items=[{"variant_id": "90"}])
    fake_shopify.graphql_results.append(ShopifyAPIError("GraphQL HTTP 500", status=500))

    summary = await enrichment_service.backfill_variant_costs(db_session, fake_shopify)

    assert summary == {"scanned": 1, "upserts": 0}
    assert db_session.query(SyncJob).one().error_message


# ══════════════════════════════════════════════════════════════════════
#  Sales reps
# ══════════════════════════════════════════════════════════════════════

@pytest.mark.asyncio
async def test_backfill_sales_reps_dry_run_writes_nothing(db_session: Session, fake_shopify, make_rep):
    make_rep("Alice", tags=["brand-a"])
    customer = _customer(db_session, shopify_tags=["brand-a"])

    summary = await enrichment_service.backfill_sales_reps(db_session, fake_shopify, source="db")

    assert summary["mode"] == "dry-run"
    assert summary["updated"] == 1
    db_session.refresh(customer)
    assert customer.sales_rep is None


@pytest.mark.asyncio
async def test_backfill_sales_reps_apply(db_session: Session, fake_shopify, make_rep):
    alice = make_rep("Alice", tags=["brand-a"])
    tagged = _customer(db_session, shopify_tags=["brand-a"])
    _customer(db_session, shopify_tags=[])
    _customer(db_session, shopify_tags=["unmapped"])
    _customer(db_session, shopify_tags=["brand-a"], sales_rep="Alice")

    summary = await enrichment_service.backfill_sales_reps(db_session, fake_shopify, mode="apply", source="db")

    assert summary["processed"] == 3
    assert summary["updated"] == 1
    assert summary["skippedNoTags"] == 1
    assert summary["skippedNoRep"] == 1
    assert summary["nextCursor"] is None
    db_session.refresh(tagged)
    assert tagged.sales_rep == "Alice"
    assert tagged.sales_rep_id == alice.id


@pytest.mark.asyncio
async def test_backfill_sales_reps_apply_keeps_name_and_id_together(db_session: Session, fake_shopify, make_rep):
    sam = make_rep("Sam", tags=["brand-a"])
    add_alias(db_session, make_rep("Samantha Jones"), "sam")
    customer = _customer(db_session, shopify_tags=["brand-a"])

    await enrichment_service.backfill_sales_reps(db_session, fake_shopify, mode="apply", source="db")

    db_session.refresh(customer)
    assert (customer.sales_rep, customer.sales_rep_id) == ("Sam", sam.id)


@pytest.mark.asyncio
async def test_backfill_sales_reps_reeval_counts_kept_same(db_session: Session, fake_shopify, make_rep):
    make_rep("Alice", tags=["brand-a"])
    _customer(db_session, shopify_tags=["brand-a"], sales_rep="alice")

    summary = await enrichment_service.backfill_sales_reps(
        db_session, fake_shopify, mode="apply", source="db", reeval=True
    )

    assert summary["keptSame"] == 1
    assert summary["updated"] == 0


@pytest.mark.asyncio
async def test_backfill_sales_reps_auto_falls_back_to_shopify(db_session: Session, fake_shopify, make_rep, sleep_recorder):
    make_rep("Bob", tags=["brand-b"])
    customer = _customer(db_session, shopify_customer_id="55", shopify_tags=[])
    fake_shopify.reply("/customers/55.json", {"customer": {"id": 55, "tags": "brand-b, vip"}})

    summary = await enrichment_service.backfill_sales_reps(
        db_session, fake_shopify, mode="apply", source="auto", sleep=sleep_recorder
    )

    assert summary["updated"] == 1
    db_session.refresh(customer)
    assert customer.sales_rep == "Bob"


@pytest.mark.asyncio
async def test_backfill_sales_reps_cursor_pages(db_session: Session, fake_shopify, make_rep):
    make_rep("Alice", tags=["brand-a"])
    for _ in range(3):
        _customer(db_session, shopify_tags=["brand-a"])

    first = await enrichment_service.backfill_sales_reps(db_session, fake_shopify, source="db", limit=2)
    second = await enrichment_service.backfill_sales_reps(
        db_session, fake_shopify, source="db", limit=2, cursor=first["nextCursor"]
    )

    assert first["processed"] == 2
    assert first["nextCursor"] is not None
    assert second["processed"] == 1
    assert second["nextCursor"] is None


@pytest.mark.asyncio
async def test_backfill_sales_reps_rejects_bad_arguments(db_session: Session, fake_shopify):
    with pytest.raises(ValueError):
        await enrichment_service.backfill_sales_reps(db_session, fake_shopify, mode="yolo")
    with pytest.raises(ValueError):
        await enrichment_service.backfill_sales_reps(db_session, fake_shopify, source="crm")
    with pytest.raises(ValueError):
        await enrichment_service.backfill_sales_reps(db_session, fake_shopify, cursor="not-a-uuid")


# ══════════════════════════════════════════════════════════════════════
#  Rep id links
# ══════════════════════════════════════════════════════════════════════

def test_link_rep_ids(db_session: Session, make_rep):
    alice = make_rep("Alice Smith")
    linked = _customer(db_session, sales_rep="alice  smith")
    _customer(db_session, sales_rep="Nobody")
    _customer(db_session, sales_rep="")

    summary = enrichment_service.link_rep_ids(db_session)

    assert summary == {"processed": 2, "linked": 1, "unresolved": 1}
    db_session.refresh(linked)
    assert linked.sales_rep_id == alice.id
