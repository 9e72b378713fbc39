"""
Integration Models - webhook delivery log and sync job history
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Text, Boolean, Integer, DateTime, JSON, Uuid
from app.core.database import Base
import enum


class SyncJobType(str, enum.Enum):
    BACKFILL = "BACKFILL"
    ENRICHMENT = "ENRICHMENT"
    SCHEDULED = "SCHEDULED"


class SyncJobStatus(str, enum.Enum):
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class WebhookResult(str, enum.Enum):
    RECEIVED = "RECEIVED"
    SUCCESS = "SUCCESS"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class SyncJob(Base):
    """
    Track backfill / enrichment batch history
    """
    __tablename__ = "sync_job"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    job_type = Column(String(20), default=SyncJobType.BACKFILL.value)
    resource = Column(String(50), nullable=False)  # customers, orders, vendors, ...
    started_at = Column(DateTime, default=datetime.utcnow)
    finished_at = Column(DateTime)
    status = Column(String(20), default=SyncJobStatus.RUNNING.value)
    
    # Cursor in / out
    cursor = Column(Text)
    next_cursor = Column(Text)
    
    # Stats
    records_fetched = Column(Integer, default=0)
    records_imported = Column(Integer, default=0)
    records_failed = Column(Integer, default=0)
    stats = Column(JSON)
    
    # Error tracking
    error_message = Column(Text)

    def __repr__(self):
        return f"<SyncJob {self.id} {self.resource} {self.status}>"
    
    def mark_success(self):
        self.status = SyncJobStatus.SUCCESS.value
        self.finished_at = datetime.utcnow()
    
    def mark_failed(self, error_message: str):
        self.status = SyncJobStatus.FAILED.value
        self.finished_at = datetime.utcnow()
        self.error_message = error_message


class WebhookLog(Base):
    """
    Verified webhook deliveries, used for dedupe and audit
    """
    __tablename__ = "webhook_log"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    topic = Column(String(80), nullable=False)
    shop_domain = Column(String(200))
    webhook_id = Column(String(100))
    dedupe_key = Column(String(300), nullable=False, index=True)
    
    payload = Column(JSON)
    
    # Processing status
    processed = Column(Boolean, default=False)
    processed_at = Column(DateTime)
    process_result = Column(String(20), default=WebhookResult.RECEIVED.value)
    process_error = Column(Text)
    
    received_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<WebhookLog {self.topic} {self.dedupe_key} {self.process_result}>"
    
    def mark_processed(self, result: str, error: str = None):
        self.processed = True
        self.processed_at = datetime.utcnow()
        self.process_result = result
        self.process_error = error
