"""
Backfill API - admin-triggered historical sync and enrichment jobs
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
import logging

from app.api.auth import require_sync_admin
from app.core.database import get_db
from app.integrations import ShopifyAPIError, ShopifyClient
from app.schemas import (
    BackfillResponse,
    OrderLinkResponse,
    RepLinkResponse,
    SalesRepBackfillResponse,
    SyncJobResponse,
    VariantCostResponse,
    VendorBackfillResponse,
)
from app.services import enrichment_service, integration_service
from app.services.backfill_service import (
    BackfillDriver,
    BackfillFetchError,
    ResourceKind,
    clamp,
    clamp_limit,
    clamp_rpm,
)

logger = logging.getLogger(__name__)

backfill_router = APIRouter(
    prefix="/shopify/backfill",
    tags=["backfill"],
    dependencies=[Depends(require_sync_admin)],
)


def get_shopify_client() -> ShopifyClient:
    return integration_service.get_shopify_client()


async def _run_backfill(
    db: Session,
    client: ShopifyClient,
    kind: ResourceKind,
    limit: Optional[str],
    page_info: Optional[str],
    max_pages: Optional[str],
    filters: dict,
) -> BackfillResponse:
    driver = BackfillDriver(db, client)
    pages = clamp(max_pages, 1, 1000, 1)
    try:
        if pages == 1:
            batch = await driver.run_batch(kind, cursor=page_info, filters=filters, limit=clamp_limit(limit))
            return BackfillResponse(imported=batch.imported, failed=batch.failed, next_page_info=batch.next_cursor)

        run = await driver.run(kind, cursor=page_info, filters=filters, limit=clamp_limit(limit), max_pages=pages)
    except BackfillFetchError as e:
        raise HTTPException(status_code=502, detail=str(e))

    if run.errors and not run.pages:
        raise HTTPException(status_code=502, detail=run.errors[0])
    return BackfillResponse(imported=run.imported, failed=run.failed, next_page_info=run.next_cursor)


# ========== Paginated Backfill ==========

@backfill_router.post("/customers", response_model=BackfillResponse)
async def backfill_customers(
    limit: Optional[str] = Query(None),
    page_info: Optional[str] = Query(None, alias="pageInfo"),
    page_info_raw: Optional[str] = Query(None, alias="page_info"),
    max_pages: Optional[str] = Query(None, alias="maxPages"),
    created_at_min: Optional[str] = Query(None),
    created_at_max: Optional[str] = Query(None),
    updated_at_min: Optional[str] = Query(None),
    updated_at_max: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    client: ShopifyClient = Depends(get_shopify_client),
):
    """
    Import one page of customers (or up to maxPages). Pass the returned
    nextPageInfo back as pageInfo to continue; filters apply to the first page only.
    """
    filters = {
        "created_at_min": created_at_min,
        "created_at_max": created_at_max,
        "updated_at_min": updated_at_min,
        "updated_at_max": updated_at_max,
    }
    return await _run_backfill(
        db, client, ResourceKind.CUSTOMERS, limit, page_info or page_info_raw, max_pages, filters
    )


@backfill_router.post("/orders", response_model=BackfillResponse)
async def backfill_orders(
    limit: Optional[str] = Query(None),
    page_info: Optional[str] = Query(None, alias="pageInfo"),
    page_info_raw: Optional[str] = Query(None, alias="page_info"),
    max_pages: Optional[str] = Query(None, alias="maxPages"),
    created_at_min: Optional[str] = Query(None),
    created_at_max: Optional[str] = Query(None),
    updated_at_min: Optional[str] = Query(None),
    updated_at_max: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    client: ShopifyClient = Depends(get_shopify_client),
):
    """Import orders (status=any unless given), embedded customers first"""
    filters = {
        "created_at_min": created_at_min,
        "created_at_max": created_at_max,
        "updated_at_min": updated_at_min,
        "updated_at_max": updated_at_max,
        "status": status,
    }
    return await _run_backfill(
        db, client, ResourceKind.ORDERS, limit, page_info or page_info_raw, max_pages, filters
    )


# ========== Enrichment ==========

@backfill_router.post("/vendors", response_model=VendorBackfillResponse)
async def backfill_vendors(
    rpm: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    client: ShopifyClient = Depends(get_shopify_client),
):
    """Fill missing line-item vendors from Shopify products"""
    return await enrichment_service.backfill_vendors(db, client, rpm=clamp_rpm(rpm))


@backfill_router.post("/orders-link-customers", response_model=OrderLinkResponse)
async def backfill_order_links(
    limit: Optional[str] = Query(None),
    rpm: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    client: ShopifyClient = Depends(get_shopify_client),
):
    """Link orders that have no customer by refetching them"""
    return await enrichment_service.link_orders_to_customers(
        db, client, limit=clamp(limit, 1, 200, 50), rpm=clamp_rpm(rpm)
    )


@backfill_router.post("/variant-costs", response_model=VariantCostResponse)
async def backfill_variant_costs(
    limit: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    client: ShopifyClient = Depends(get_shopify_client),
):
    """Cache unit costs for variants seen on orders"""
    try:
        return await enrichment_service.backfill_variant_costs(db, client, limit=clamp(limit, 1, 5000, 1000))
    except ShopifyAPIError as e:
        raise HTTPException(status_code=502, detail=str(e))


@backfill_router.post("/sales-reps", response_model=SalesRepBackfillResponse)
async def backfill_sales_reps(
    mode: str = Query("dry-run"),
    source: str = Query("auto"),
    limit: Optional[str] = Query(None),
    cursor: Optional[str] = Query(None),
    reeval: bool = Query(False),
    rpm: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    client: ShopifyClient = Depends(get_shopify_client),
):
    """Assign reps from tags (dry-run unless mode=apply)"""
    try:
        return await enrichment_service.backfill_sales_reps(
            db,
            client,
            mode=mode,
            source=source,
            limit=clamp(limit, 1, 500, 100),
            cursor=cursor,
            reeval=reeval,
            rpm=clamp_rpm(rpm),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@backfill_router.post("/rep-links", response_model=RepLinkResponse)
async def backfill_rep_links(db: Session = Depends(get_db)):
    """Resolve free-text rep names to SalesRep ids"""
    return await run_in_threadpool(enrichment_service.link_rep_ids, db)


# ========== Job History ==========

@backfill_router.get("/jobs", response_model=List[SyncJobResponse])
async def list_sync_jobs(
    resource: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    return await run_in_threadpool(integration_service.get_sync_jobs, db, resource, limit)
