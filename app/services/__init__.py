# Services Package
from . import integration_service
from .upsert_service import CommerceUpsertService, UpsertResult
from .webhook_service import WebhookPipeline, WebhookOutcome
from .backfill_service import BackfillDriver, BackfillFetchError, ResourceKind
from . import enrichment_service

__all__ = [
    "integration_service",
    "CommerceUpsertService",
    "UpsertResult",
    "WebhookPipeline",
    "WebhookOutcome",
    "BackfillDriver",
    "BackfillFetchError",
    "ResourceKind",
    "enrichment_service",
]
