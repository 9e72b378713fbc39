"""
Shopify Sync Scheduler - Periodic incremental pull of recently updated records
"""
import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import Settings, settings as default_settings
from app.core.database import SessionLocal, session_scope
from app.models.integration import SyncJobType
from app.services import integration_service
from app.services.backfill_service import BackfillDriver, ResourceKind

logger = logging.getLogger(__name__)

SYNC_JOB_ID = "shopify_incremental_sync"

# Global scheduler instance
_scheduler = None


class ShopifySyncScheduler:
    """
    Re-pulls customers and orders updated inside a lookback window. Webhooks
    are the primary path; this closes gaps left by missed deliveries.
    """

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings
        self.scheduler = AsyncIOScheduler()
        self.is_running = False

    def start(self):
        """Start the scheduler"""
        if self.is_running:
            return
        self.scheduler.start()
        self.is_running = True
        self.scheduler.add_job(
            func=self.run_sync,
            trigger=IntervalTrigger(minutes=self.config.SYNC_INTERVAL_MINUTES),
            id=SYNC_JOB_ID,
            name="Shopify incremental sync",
            replace_existing=True,
            max_instances=1,  # Prevent overlapping syncs
        )
        logger.info(f"Shopify sync scheduler started (every {self.config.SYNC_INTERVAL_MINUTES} minutes)")

    def stop(self):
        """Stop the scheduler"""
        if self.is_running:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Shopify sync scheduler stopped")

    def trigger_sync_now(self):
        """Run the incremental sync once, outside the interval"""
        self.scheduler.add_job(
            func=self.run_sync,
            trigger="date",
            run_date=datetime.now(),
            id=f"{SYNC_JOB_ID}_immediate",
            replace_existing=True,
        )
        logger.info("Triggered immediate Shopify sync")

    async def run_sync(self) -> Dict[str, Any]:
        """Execute one incremental pass over customers then orders"""
        updated_at_min = datetime.utcnow() - timedelta(hours=self.config.SYNC_LOOKBACK_HOURS)
        filters = {"updated_at_min": updated_at_min.strftime("%Y-%m-%dT%H:%M:%SZ")}
        stats: Dict[str, Any] = {}

        try:
            with session_scope(SessionLocal) as db:
                driver = BackfillDriver(
                    db,
                    integration_service.get_shopify_client(self.config),
                    job_type=SyncJobType.SCHEDULED.value,
                )
                for kind in (ResourceKind.CUSTOMERS, ResourceKind.ORDERS):
                    run = await driver.run(kind, filters=filters, max_pages=self.config.BACKFILL_MAX_PAGES)
                    stats[kind.value] = {
                        "pages": run.pages,
                        "fetched": run.fetched,
                        "imported": run.imported,
                        "failed": run.failed,
                        "errors": run.errors,
                    }
                    logger.info(
                        f"Scheduled sync {kind.value}: pages={run.pages}, fetched={run.fetched}, "
                        f"imported={run.imported}, failed={run.failed}"
                    )
        except Exception as e:
            logger.exception(f"Scheduled Shopify sync failed: {e}")
            stats["error"] = str(e)

        return stats


# ========== Global Functions ==========

def get_scheduler() -> "ShopifySyncScheduler":
    """Get or create the global scheduler instance"""
    global _scheduler
    if _scheduler is None:
        _scheduler = ShopifySyncScheduler()
    return _scheduler


def start_scheduler():
    """Start the global scheduler"""
    scheduler = get_scheduler()
    scheduler.start()


def stop_scheduler():
    """Stop the global scheduler"""
    global _scheduler
    if _scheduler:
        _scheduler.stop()
        _scheduler = None


# ========== CLI Commands ==========

if __name__ == "__main__":
    """
    Run standalone:
    python -m app.jobs.order_sync sync   # one pass
    python -m app.jobs.order_sync        # keep scheduling
    """
    import sys

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    if len(sys.argv) > 1 and sys.argv[1] == "sync":
        asyncio.run(ShopifySyncScheduler().run_sync())
    else:
        print("Starting Shopify sync scheduler...")
        print("Press Ctrl+C to stop")

        async def _serve():
            start_scheduler()
            await asyncio.Event().wait()

        try:
            asyncio.run(_serve())
        except KeyboardInterrupt:
            stop_scheduler()
            print("Scheduler stopped")
