"""
Webhook API Endpoints - Receive Shopify push notifications
"""
from typing import List, Optional
from fastapi import APIRouter, Request, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
import logging

from app.api.auth import require_sync_admin
from app.core.config import settings
from app.core.database import get_db
from app.schemas import WebhookLogResponse
from app.services import integration_service
from app.services.webhook_service import WebhookPipeline

logger = logging.getLogger(__name__)

webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


# ========== Shopify Webhook ==========

@webhook_router.post("/shopify")
async def shopify_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Receive webhook notifications from Shopify
    Topics: customers/*, customer_tags/*, orders/*. Anything else is acked and ignored.
    """
    # HMAC is computed over the exact bytes, so read the body raw
    body = await request.body()

    pipeline = WebhookPipeline(
        db,
        secret=settings.SHOPIFY_WEBHOOK_SECRET,
        allowed_shop_domains=settings.allowed_shop_domains,
    )
    outcome = await run_in_threadpool(pipeline.handle, body, request.headers)

    if outcome.status_code == 200:
        logger.info(f"Shopify webhook {outcome.topic}: {outcome.detail}")
    return JSONResponse(status_code=outcome.status_code, content=outcome.as_dict())


@webhook_router.get("/status")
def webhook_status():
    """Check webhook endpoints status"""
    return {
        "status": "active",
        "signature_configured": bool(settings.SHOPIFY_WEBHOOK_SECRET.strip()),
        "endpoints": {
            "shopify": "/api/webhooks/shopify",
        },
    }


@webhook_router.get("/log", response_model=List[WebhookLogResponse], dependencies=[Depends(require_sync_admin)])
async def webhook_log(
    topic: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Recent verified deliveries"""
    return await run_in_threadpool(integration_service.get_recent_webhooks, db, topic, limit)
