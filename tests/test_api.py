"""
Tests for the admin backfill API, its token guard and the health routes.

Called by: pytest tests/test_api.py -v
"""

from sqlalchemy.orm import Session

from app.models import Customer, Order, OrderLineItem, SyncJob

BASE = "/api/shopify/backfill"


def _customers(n):
    return [{"id": 100 + i, "email": f"c{i}@salon.example"} for i in range(n)]


# ══════════════════════════════════════════════════════════════════════
#  Health
# ══════════════════════════════════════════════════════════════════════

def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_api_status(client):
    body = client.get("/api/status").json()
    assert body["status"] == "ok"
    assert body["webhook_signature_configured"] is True
    assert body["scheduler_enabled"] is False
    assert "admin-test-token" not in str(body)


# ══════════════════════════════════════════════════════════════════════
#  Admin token
# ══════════════════════════════════════════════════════════════════════

def test_backfill_requires_token(client, fake_shopify):
    assert client.post(f"{BASE}/customers").status_code == 401
    response = client.post(f"{BASE}/customers", headers={"Authorization": "Bearer wrong"})
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"
    assert fake_shopify.calls == []


def test_backfill_denied_when_token_unset(client, admin_headers, monkeypatch):
    from app.core import settings

    monkeypatch.setattr(settings, "SYNC_ADMIN_TOKEN", "")
    assert client.post(f"{BASE}/customers", headers=admin_headers).status_code == 401


# ══════════════════════════════════════════════════════════════════════
#  Paginated backfill
# ══════════════════════════════════════════════════════════════════════

def test_customers_backfill_single_page(client, admin_headers, fake_shopify, db_session: Session):
    fake_shopify.paginate("customers", _customers(3))

    response = client.post(f"{BASE}/customers", params={"limit": "2"}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json() == {"imported": 2, "failed": 0, "nextPageInfo": "tok2"}

    response = client.post(
        f"{BASE}/customers", params={"limit": "2", "pageInfo": "tok2"}, headers=admin_headers
    )
    assert response.json() == {"imported": 1, "failed": 0, "nextPageInfo": None}
    assert db_session.query(Customer).count() == 3


def test_customers_backfill_clamps_limit(client, admin_headers, fake_shopify):
    fake_shopify.paginate("customers", [])

    client.post(f"{BASE}/customers", params={"limit": "9999"}, headers=admin_headers)

    assert fake_shopify.calls[0]["params"]["limit"] == 250


def test_customers_backfill_overflowing_limit_uses_default(client, admin_headers, fake_shopify):
    fake_shopify.paginate("customers", [])

    response = client.post(f"{BASE}/customers", params={"limit": "1e999"}, headers=admin_headers)

    assert response.status_code == 200
    assert fake_shopify.calls[0]["params"]["limit"] == 250


def test_customers_backfill_max_pages(client, admin_headers, fake_shopify):
    fake_shopify.paginate("customers", _customers(5))

    response = client.post(
        f"{BASE}/customers", params={"limit": "2", "maxPages": "10"}, headers=admin_headers
    )

    assert response.json() == {"imported": 5, "failed": 0, "nextPageInfo": None}
    assert len(fake_shopify.calls) == 3


def test_orders_backfill_passes_filters(client, admin_headers, fake_shopify, db_session: Session):
    fake_shopify.paginate("orders", [{"id": 1001, "line_items": []}])

    response = client.post(
        f"{BASE}/orders",
        params={"created_at_min": "2024-01-01T00:00:00Z", "status": "closed"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    params = fake_shopify.calls[0]["params"]
    assert params["created_at_min"] == "2024-01-01T00:00:00Z"
    assert params["status"] == "closed"
    assert db_session.query(Order).count() == 1


def test_backfill_upstream_error_is_502(client, admin_headers, fake_shopify):
    fake_shopify.reply("/customers.json", {"errors": "Throttled"}, status=429)

    response = client.post(f"{BASE}/customers", headers=admin_headers)

    assert response.status_code == 502
    assert "429" in response.json()["detail"]


# ══════════════════════════════════════════════════════════════════════
#  Enrichment
# ══════════════════════════════════════════════════════════════════════

def test_vendors_endpoint(client, admin_headers, fake_shopify, db_session: Session):
    order = Order(shopify_order_id="1")
    db_session.add(order)
    db_session.flush()
    db_session.add(OrderLineItem(order_id=order.id, line_no=1, product_id="9"))
    db_session.commit()
    fake_shopify.reply("/products/9.json", {"product": {"id": 9, "vendor": "Wella"}})

    response = client.post(f"{BASE}/vendors", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["updated"] == 1


def test_orders_link_customers_endpoint(client, admin_headers, fake_shopify):
    response = client.post(f"{BASE}/orders-link-customers", params={"rpm": "1000"}, headers=admin_headers)
    assert response.json() == {"processed": 0, "linked": 0, "skipped": 0, "remaining": 0, "rpm": 240}


def test_variant_costs_endpoint(client, admin_headers):
    response = client.post(f"{BASE}/variant-costs", headers=admin_headers)
    assert response.json() == {"scanned": 0, "upserts": 0}


def test_sales_reps_endpoint(client, admin_headers, make_rep, db_session: Session):
    make_rep("Alice", tags=["brand-a"])
    db_session.add(Customer(salon_name="Glow", shopify_tags=["brand-a"]))
    db_session.commit()

    response = client.post(
        f"{BASE}/sales-reps", params={"mode": "apply", "source": "db"}, headers=admin_headers
    )

    body = response.json()
    assert response.status_code == 200
    assert body["updated"] == 1
    assert body["sample"][0]["newRep"] == "Alice"


def test_sales_reps_bad_mode_is_400(client, admin_headers):
    response = client.post(f"{BASE}/sales-reps", params={"mode": "yolo"}, headers=admin_headers)
    assert response.status_code == 400


def test_rep_links_endpoint(client, admin_headers, make_rep, db_session: Session):
    make_rep("Alice")
    db_session.add(Customer(salon_name="Glow", sales_rep="alice"))
    db_session.commit()

    response = client.post(f"{BASE}/rep-links", headers=admin_headers)

    assert response.json() == {"processed": 1, "linked": 1, "unresolved": 0}


# ══════════════════════════════════════════════════════════════════════
#  Job history
# ══════════════════════════════════════════════════════════════════════

def test_jobs_lists_backfill_runs(client, admin_headers, fake_shopify, db_session: Session):
    fake_shopify.paginate("customers", _customers(1))
    client.post(f"{BASE}/customers", headers=admin_headers)

    response = client.get(f"{BASE}/jobs", headers=admin_headers)

    assert response.status_code == 200
    jobs = response.json()
    assert len(jobs) == db_session.query(SyncJob).count() == 1
    assert jobs[0]["resource"] == "customers"
    assert jobs[0]["records_imported"] == 1
