# Jobs Package - Scheduled background tasks
from .order_sync import ShopifySyncScheduler, start_scheduler, stop_scheduler

__all__ = ["ShopifySyncScheduler", "start_scheduler", "stop_scheduler"]
