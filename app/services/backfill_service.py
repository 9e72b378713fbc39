"""
Backfill Service - paginated historical sync from Shopify with resumable cursors
"""
import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional
from sqlalchemy.orm import Session
import logging

from app.integrations.base import BaseCommerceClient
from app.integrations.shopify import parse_next_page_info
from app.models.integration import SyncJobType
from app.services import integration_service
from app.services.upsert_service import CommerceUpsertService

logger = logging.getLogger(__name__)

MIN_PAGE_SIZE = 1
MAX_PAGE_SIZE = 250
DEFAULT_MAX_PAGES = 100

MIN_RPM = 30
MAX_RPM = 240
DEFAULT_RPM = 120

Sleep = Callable[[float], Awaitable[Any]]


class ResourceKind(str, enum.Enum):
    CUSTOMERS = "customers"
    ORDERS = "orders"


# first-page defaults and the filters each resource accepts
RESOURCE_DEFAULTS: Dict[ResourceKind, Dict[str, str]] = {
    ResourceKind.CUSTOMERS: {},
    ResourceKind.ORDERS: {"status": "any", "order": "created_at asc"},
}
RESOURCE_FILTERS: Dict[ResourceKind, tuple] = {
    ResourceKind.CUSTOMERS: ("created_at_min", "created_at_max", "updated_at_min", "updated_at_max"),
    ResourceKind.ORDERS: ("created_at_min", "created_at_max", "updated_at_min", "updated_at_max", "status"),
}


class BackfillFetchError(Exception):
    """A page fetch returned non-2xx or failed in transport"""

    def __init__(self, path: str, status: int, detail: str = ""):
        super().__init__(f"Shopify GET {path} failed: {status} {detail}".strip())
        self.path = path
        self.status = status
        self.detail = detail


def clamp(value: Optional[Any], low: int, high: int, default: int) -> int:
    """Parse and clamp a numeric query value"""
    try:
        number = int(float(value)) if value is not None and str(value).strip() != "" else default
    except (TypeError, ValueError, OverflowError):
        # "inf", "1e999" and other junk fall back to the default
        number = default
    return max(low, min(high, number))


def clamp_rpm(value: Optional[Any]) -> int:
    return clamp(value, MIN_RPM, MAX_RPM, DEFAULT_RPM)


def clamp_limit(value: Optional[Any], default: int = MAX_PAGE_SIZE) -> int:
    return clamp(value, MIN_PAGE_SIZE, MAX_PAGE_SIZE, default)


class FixedIntervalThrottle:
    """
    Sleeps 60/rpm seconds between throttled calls (the first call goes
    straight through). A fixed interval, not a token bucket.
    """

    def __init__(self, rpm: int, sleep: Optional[Sleep] = None):
        self.rpm = clamp_rpm(rpm)
        self.delay = 60.0 / self.rpm
        self._sleep = sleep or asyncio.sleep
        self._calls = 0

    async def wait(self):
        if self._calls:
            await self._sleep(self.delay)
        self._calls += 1


@dataclass
class BatchResult:
    fetched: int = 0
    imported: int = 0
    failed: int = 0
    next_cursor: Optional[str] = None


@dataclass
class BackfillRunResult:
    pages: int = 0
    fetched: int = 0
    imported: int = 0
    failed: int = 0
    next_cursor: Optional[str] = None
    hit_page_limit: bool = False
    errors: list = field(default_factory=list)


def build_page_params(
    kind: ResourceKind,
    limit: int,
    cursor: Optional[str] = None,
    filters: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Shopify rejects filters mixed with page_info: cursor pages carry only
    limit + page_info.
    """
    if cursor:
        return {"limit": limit, "page_info": cursor}

    params: Dict[str, Any] = {"limit": limit}
    params.update(RESOURCE_DEFAULTS[kind])
    for key in RESOURCE_FILTERS[kind]:
        value = (filters or {}).get(key)
        if value not in (None, ""):
            params[key] = value
    return params


class BackfillDriver:
    """
    Drives Shopify list endpoints page by page into the upsert engine
    """

    def __init__(
        self,
        db: Session,
        client: BaseCommerceClient,
        sleep: Optional[Sleep] = None,
        job_type: str = SyncJobType.BACKFILL.value,
        shop_domain: Optional[str] = None,
    ):
        self.db = db
        self.client = client
        # REST records do not name their shop; they belong to the one the client talks to
        self.shop_domain = shop_domain or client.shop_domain or None
        self.job_type = job_type
        self.upserts = CommerceUpsertService(db)
        self._sleep = sleep

    async def run_batch(
        self,
        kind: ResourceKind,
        cursor: Optional[str] = None,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = MAX_PAGE_SIZE,
    ) -> BatchResult:
        """
        Fetch one page and upsert each record in its own failure boundary.
        Returns next_cursor=None when Shopify reports no next page.
        """
        kind = ResourceKind(kind)
        limit = clamp_limit(limit)
        path = f"/{kind.value}.json"
        params = build_page_params(kind, limit, cursor, filters)

        job = integration_service.create_sync_job(
            self.db, resource=kind.value, job_type=self.job_type, cursor=cursor
        )

        response = await self.client.rest_call(path, method="GET", params=params)
        if not response.ok:
            error = BackfillFetchError(path, response.status, response.error or response.text[:300])
            integration_service.complete_sync_job(self.db, job.id, error_message=str(error))
            logger.error(str(error))
            raise error

        next_cursor = parse_next_page_info(response.header("link"))
        records = response.json_body.get(kind.value)
        if not isinstance(records, list):
            records = []

        result = BatchResult(fetched=len(records), next_cursor=next_cursor)
        for record in records:
            try:
                self._import_record(kind, record)
                result.imported += 1
            except Exception:
                self.db.rollback()
                result.failed += 1
                record_id = record.get("id") if isinstance(record, dict) else None
                logger.exception(f"[backfill:{kind.value}] upsert failed for {record_id}")

        integration_service.complete_sync_job(
            self.db,
            job.id,
            records_fetched=result.fetched,
            records_imported=result.imported,
            records_failed=result.failed,
            next_cursor=next_cursor,
        )
        logger.info(
            f"[backfill:{kind.value}] page done: fetched={result.fetched}, "
            f"imported={result.imported}, failed={result.failed}, more={'yes' if next_cursor else 'no'}"
        )
        return result

    def _import_record(self, kind: ResourceKind, record: Dict[str, Any]):
        if not isinstance(record, dict):
            raise ValueError(f"Unexpected {kind.value} record: {type(record).__name__}")
        if kind is ResourceKind.CUSTOMERS:
            self.upserts.upsert_customer(record, self.shop_domain)
        else:
            # customer first so the order can link to it
            if isinstance(record.get("customer"), dict) and record["customer"].get("id"):
                self.upserts.upsert_customer(record["customer"], self.shop_domain)
            self.upserts.upsert_order(record)

    async def run(
        self,
        kind: ResourceKind,
        cursor: Optional[str] = None,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = MAX_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
        rpm: int = DEFAULT_RPM,
    ) -> BackfillRunResult:
        """
        Follow cursors until the last page or max_pages, whichever comes
        first. Reaching max_pages is not an error: the returned next_cursor
        resumes the job.
        """
        kind = ResourceKind(kind)
        throttle = FixedIntervalThrottle(rpm, sleep=self._sleep)
        run = BackfillRunResult(next_cursor=cursor)

        for _ in range(max(1, max_pages)):
            await throttle.wait()
            try:
                batch = await self.run_batch(kind, cursor=run.next_cursor, filters=filters, limit=limit)
            except BackfillFetchError as e:
                run.errors.append(str(e))
                break

            run.pages += 1
            run.fetched += batch.fetched
            run.imported += batch.imported
            run.failed += batch.failed
            run.next_cursor = batch.next_cursor
            if not batch.next_cursor:
                break
        else:
            run.hit_page_limit = True
            logger.warning(f"[backfill:{kind.value}] stopped at page ceiling {max_pages}, resume from {run.next_cursor}")

        return run
