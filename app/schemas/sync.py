"""
Sync Schemas - backfill, enrichment and bookkeeping responses
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from uuid import UUID


class BackfillResponse(BaseModel):
    imported: int
    failed: int
    next_page_info: Optional[str] = Field(None, alias="nextPageInfo")

    class Config:
        populate_by_name = True


class VendorBackfillResponse(BaseModel):
    productIds: int
    lookedUp: int
    updated: int
    skipped: int
    missingCount: int


class OrderLinkResponse(BaseModel):
    processed: int
    linked: int
    skipped: int
    remaining: int
    rpm: int


class VariantCostResponse(BaseModel):
    scanned: int
    upserts: int


class SalesRepSample(BaseModel):
    id: str
    oldRep: Optional[str] = None
    newRep: Optional[str] = None
    reason: Optional[str] = None


class SalesRepBackfillResponse(BaseModel):
    mode: str
    source: str
    processed: int
    updated: int
    keptSame: int
    skippedNoTags: int
    skippedNoRep: int
    nextCursor: Optional[str] = None
    sample: List[SalesRepSample] = []


class RepLinkResponse(BaseModel):
    processed: int
    linked: int
    unresolved: int


class SyncJobResponse(BaseModel):
    id: UUID
    job_type: Optional[str]
    resource: str
    status: Optional[str]
    started_at: Optional[datetime]
    finished_at: Optional[datetime]
    cursor: Optional[str]
    next_cursor: Optional[str]
    records_fetched: int = 0
    records_imported: int = 0
    records_failed: int = 0
    stats: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None

    class Config:
        from_attributes = True


class WebhookLogResponse(BaseModel):
    id: UUID
    topic: str
    shop_domain: Optional[str]
    webhook_id: Optional[str]
    dedupe_key: Optional[str]
    process_result: Optional[str]
    process_error: Optional[str]
    received_at: Optional[datetime]
    processed_at: Optional[datetime]

    class Config:
        from_attributes = True
