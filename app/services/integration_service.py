"""
Integration Service - Shopify client factory, webhook log and sync job bookkeeping
"""
from typing import Optional, List, Dict, Any
from datetime import datetime
from sqlalchemy.orm import Session
import logging

from app.core.config import Settings, settings as default_settings
from app.models.integration import SyncJob, SyncJobStatus, SyncJobType, WebhookLog, WebhookResult
from app.integrations import ShopifyClient

logger = logging.getLogger(__name__)


def get_shopify_client(config: Optional[Settings] = None) -> ShopifyClient:
    """Build a Shopify client from settings"""
    config = config or default_settings
    return ShopifyClient(
        shop_domain=config.shop_domain,
        access_token=config.SHOPIFY_ADMIN_ACCESS_TOKEN.strip(),
        api_version=config.SHOPIFY_API_VERSION.strip(),
        timeout=config.SHOPIFY_TIMEOUT_SECONDS,
    )


# ========== Webhook Log ==========

def find_processed_webhook(db: Session, dedupe_key: str) -> Optional[WebhookLog]:
    """A delivery with this key that already completed successfully"""
    return db.query(WebhookLog).filter(
        WebhookLog.dedupe_key == dedupe_key,
        WebhookLog.process_result == WebhookResult.SUCCESS.value,
    ).first()


def log_webhook(
    db: Session,
    topic: str,
    dedupe_key: str,
    payload: Dict[str, Any],
    shop_domain: Optional[str] = None,
    webhook_id: Optional[str] = None,
) -> WebhookLog:
    """Record a verified webhook delivery"""
    webhook_log = WebhookLog(
        topic=topic,
        dedupe_key=dedupe_key,
        payload=payload,
        shop_domain=shop_domain,
        webhook_id=webhook_id,
        process_result=WebhookResult.RECEIVED.value,
    )
    db.add(webhook_log)
    db.commit()
    db.refresh(webhook_log)
    return webhook_log


def mark_webhook_processed(
    db: Session,
    webhook_log_id: str,
    result: str,
    error: Optional[str] = None,
) -> Optional[WebhookLog]:
    """Mark webhook as processed"""
    webhook_log = db.get(WebhookLog, webhook_log_id)
    if webhook_log:
        webhook_log.mark_processed(result, error)
        db.commit()
    return webhook_log


def get_recent_webhooks(db: Session, topic: Optional[str] = None, limit: int = 50) -> List[WebhookLog]:
    query = db.query(WebhookLog)
    if topic:
        query = query.filter(WebhookLog.topic == topic)
    return query.order_by(WebhookLog.received_at.desc()).limit(limit).all()


# ========== Sync Jobs ==========

def create_sync_job(
    db: Session,
    resource: str,
    job_type: str = SyncJobType.BACKFILL.value,
    cursor: Optional[str] = None,
) -> SyncJob:
    """Create new sync job record"""
    job = SyncJob(
        resource=resource,
        job_type=job_type,
        cursor=cursor,
        status=SyncJobStatus.RUNNING.value,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def complete_sync_job(
    db: Session,
    job_id,
    records_fetched: int = 0,
    records_imported: int = 0,
    records_failed: int = 0,
    next_cursor: Optional[str] = None,
    stats: Optional[Dict[str, Any]] = None,
    error_message: Optional[str] = None,
) -> Optional[SyncJob]:
    """Complete sync job with results"""
    job = db.get(SyncJob, job_id)
    if not job:
        return None

    job.records_fetched = records_fetched
    job.records_imported = records_imported
    job.records_failed = records_failed
    job.next_cursor = next_cursor
    job.stats = stats

    if error_message:
        job.mark_failed(error_message)
    else:
        job.mark_success()

    db.commit()
    return job


def get_sync_jobs(db: Session, resource: Optional[str] = None, limit: int = 20) -> List[SyncJob]:
    """Get recent sync jobs"""
    query = db.query(SyncJob)
    if resource:
        query = query.filter(SyncJob.resource == resource)
    return query.order_by(SyncJob.started_at.desc()).limit(limit).all()
