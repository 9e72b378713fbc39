"""
conftest.py - Shared test fixtures for SalonSync

In-memory SQLite database, a FastAPI TestClient with the DB and Shopify
client dependencies overridden, and a scriptable fake Shopify client.
"""

import os

# Must be set before importing app modules
os.environ["DATABASE_URI"] = "sqlite://"
os.environ["SHOPIFY_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["SYNC_ADMIN_TOKEN"] = "admin-test-token"
os.environ["SHOPIFY_ALLOWED_SHOP_DOMAINS"] = ""
os.environ["SYNC_SCHEDULER_ENABLED"] = "false"

import json
from typing import Any, Callable, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  (registers tables)
from app.core.database import Base
from app.integrations import ClientResponse, ShopifyClient
from app.models import SalesRep, SalesRepTagRule

ADMIN_TOKEN = os.environ["SYNC_ADMIN_TOKEN"]

# ── In-memory SQLite engine ──────────────────────────────────────────

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@event.listens_for(engine, "connect")
def _enable_fk(dbapi_conn, _):
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ── Fake Shopify ─────────────────────────────────────────────────────

def respond(body: Optional[Dict[str, Any]] = None, status: int = 200, link: Optional[str] = None) -> ClientResponse:
    headers = {"Link": link} if link else {}
    return ClientResponse(
        ok=200 <= status < 300,
        status=status,
        headers=headers,
        json_body=body or {},
        text=json.dumps(body or {}),
    )


def next_link(resource: str, token: str) -> str:
    return (
        f'<https://salon-test.myshopify.com/admin/api/2024-07/{resource}.json'
        f'?limit=2&page_info={token}>; rel="next"'
    )


class FakeShopifyClient(ShopifyClient):
    """Routes REST paths to canned responses and records every call"""

    def __init__(self):
        super().__init__("salon-test.myshopify.com", "shpat_test")
        self.routes: Dict[str, Any] = {}
        self.calls: List[Dict[str, Any]] = []
        self.graphql_results: List[Any] = []
        self.graphql_calls: List[Dict[str, Any]] = []

    def route(self, path: str, handler: Any):
        """handler: a ClientResponse or a callable(params) -> ClientResponse"""
        self.routes[path] = handler

    def paginate(self, resource: str, records: List[Dict[str, Any]]):
        """Serve records through Link-header cursors (token = offset)"""
        def _handler(params: Dict[str, Any]) -> ClientResponse:
            offset = int(params["page_info"][3:]) if params.get("page_info") else 0
            limit = int(params.get("limit", 250))
            page = records[offset:offset + limit]
            end = offset + limit
            link = next_link(resource, f"tok{end}") if end < len(records) else None
            return respond({resource: page}, link=link)
        self.route(f"/{resource}.json", _handler)

    def reply(self, path: str, body: Dict[str, Any], status: int = 200, link: Optional[str] = None):
        self.route(path, respond(body, status=status, link=link))

    async def rest_call(self, path, method="GET", params=None, json=None):
        self.calls.append({"method": method, "path": path, "params": dict(params or {})})
        handler = self.routes.get(path)
        if handler is None:
            return respond({"errors": "Not Found"}, status=404)
        if callable(handler):
            return handler(dict(params or {}))
        return handler

    async def graphql_call(self, query, variables=None):
        self.graphql_calls.append({"query": query, "variables": variables or {}})
        result = self.graphql_results.pop(0) if self.graphql_results else {"data": {"nodes": []}}
        if isinstance(result, Exception):
            raise result
        return result


class SleepRecorder:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)


# ── Fixtures ─────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def db_session():
    """Create all tables, yield a session, then tear down."""
    Base.metadata.create_all(bind=engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def fake_shopify() -> FakeShopifyClient:
    return FakeShopifyClient()


@pytest.fixture()
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture()
def make_rep(db_session: Session) -> Callable[..., SalesRep]:
    """Create a rep with optional tag rules."""
    def _make(name: str, tags=(), is_active: bool = True) -> SalesRep:
        rep = SalesRep(name=name, is_active=is_active)
        db_session.add(rep)
        db_session.flush()
        for tag in tags:
            db_session.add(SalesRepTagRule(tag=tag, sales_rep_id=rep.id))
            db_session.flush()
        db_session.commit()
        db_session.refresh(rep)
        return rep
    return _make


@pytest.fixture()
def client(db_session: Session, fake_shopify: FakeShopifyClient) -> TestClient:
    """FastAPI TestClient bound to the test session and the fake Shopify client."""
    from app.api.backfill import get_shopify_client
    from app.core.database import get_db
    from main import app

    def _override_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_shopify_client] = lambda: fake_shopify

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture()
def admin_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}

