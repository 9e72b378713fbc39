from .base import TimestampMixin, UUIDMixin
from .sales_rep import SalesRep, SalesRepAlias, SalesRepTagRule
from .customer import Customer
from .order import Order, OrderLineItem
from .product import VariantCost
from .integration import SyncJob, SyncJobType, SyncJobStatus, WebhookLog, WebhookResult

__all__ = [
    # Base
    "TimestampMixin", "UUIDMixin",
    # Sales reps
    "SalesRep", "SalesRepAlias", "SalesRepTagRule",
    # Customer
    "Customer",
    # Order
    "Order", "OrderLineItem",
    # Product
    "VariantCost",
    # Integration
    "SyncJob", "SyncJobType", "SyncJobStatus", "WebhookLog", "WebhookResult",
]
