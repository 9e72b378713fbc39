# Pydantic Schemas Package
from .sync import (
    BackfillResponse,
    VendorBackfillResponse,
    OrderLinkResponse,
    VariantCostResponse,
    SalesRepBackfillResponse,
    RepLinkResponse,
    SyncJobResponse,
    WebhookLogResponse,
)

__all__ = [
    "BackfillResponse", "VendorBackfillResponse", "OrderLinkResponse", "VariantCostResponse",
    "SalesRepBackfillResponse", "RepLinkResponse", "SyncJobResponse", "WebhookLogResponse",
]
