"""Sync models — queued tasks, incremental checkpoints and per-pass logs."""

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)

from ..database import UTCDateTime, utcnow
from .base import Base

TASK_KINDS = ("orders", "products")
ACTIVE_STATUSES = ("pending", "processing")
TERMINAL_STATUSES = ("completed", "failed", "cancelled")


class SyncTask(Base):
    """One queued order/product sync for a site."""

    __tablename__ = "sync_tasks"
    id = Column(Integer, primary_key=True)
    site_id = Column(
        Integer, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False
    )
    task_type = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    priority = Column(Integer, nullable=False, default=3)
    retry_count = Column(Integer, nullable=False, default=0)
    task_metadata = Column("metadata", JSON, default=dict)
    progress = Column(JSON, default=dict)
    result = Column(JSON)
    error_message = Column(Text)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    started_at = Column(UTCDateTime)
    completed_at = Column(UTCDateTime)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_sync_tasks_claim", "status", "priority", "created_at"),
        Index("ix_sync_tasks_site_type", "site_id", "task_type", "status"),
        Index(
            "uq_sync_tasks_active",
            "site_id",
            "task_type",
            unique=True,
            postgresql_where=text("status IN ('pending', 'processing')"),
            sqlite_where=text("status IN ('pending', 'processing')"),
        ),
    )


class SyncCheckpoint(Base):
    """Durable cursor for incremental fetches, one per (site, sync type)."""

    __tablename__ = "sync_checkpoints"
    id = Column(Integer, primary_key=True)
    site_id = Column(
        Integer, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False
    )
    sync_type = Column(String(20), nullable=False)
    last_object_id = Column(BigInteger)
    last_modified = Column(UTCDateTime)
    synced_count = Column(Integer, default=0, nullable=False)
    last_sync_status = Column(String(20))
    last_error = Column(Text)
    last_duration_ms = Column(Integer)
    last_sync_at = Column(UTCDateTime)

    __table_args__ = (
        Index("ix_sync_checkpoints_site_type", "site_id", "sync_type", unique=True),
    )


class SyncLog(Base):
    """Log of each incremental sync pass."""

    __tablename__ = "sync_logs"
    id = Column(Integer, primary_key=True)
    site_id = Column(Integer, ForeignKey("sites.id", ondelete="CASCADE"))
    task_id = Column(Integer, ForeignKey("sync_tasks.id", ondelete="SET NULL"))
    sync_type = Column(String(20), nullable=False)
    mode = Column(String(20))
    status = Column(String(20), nullable=False)
    items_synced = Column(Integer, default=0)
    items_failed = Column(Integer, default=0)
    error_sample = Column(JSON)
    started_at = Column(UTCDateTime, nullable=False)
    completed_at = Column(UTCDateTime)
    duration_ms = Column(Integer)

    __table_args__ = (Index("ix_sync_logs_site_started", "site_id", "started_at"),)
