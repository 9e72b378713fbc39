"""
API Router - JSON Endpoints
"""
from fastapi import APIRouter
from datetime import datetime

from app.core import settings

# Import sub-routers
from app.api.webhooks import webhook_router
from app.api.backfill import backfill_router

api_router = APIRouter(tags=["API"])

# Include sub-routers
api_router.include_router(webhook_router)
api_router.include_router(backfill_router)

# ===================== HEALTH & STATUS =====================

@api_router.get("/status")
async def api_status():
    """Sync configuration at a glance (no secrets)"""
    return {
        "status": "ok",
        "version": "1.0.0",
        "timestamp": datetime.now().isoformat(),
        "shop": settings.shop_domain or None,
        "api_version": settings.SHOPIFY_API_VERSION,
        "webhook_signature_configured": bool(settings.SHOPIFY_WEBHOOK_SECRET.strip()),
        "admin_token_configured": bool(settings.SYNC_ADMIN_TOKEN.strip()),
        "scheduler_enabled": settings.SYNC_SCHEDULER_ENABLED,
    }
