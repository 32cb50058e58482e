"""Site models — storefront credentials, per-site filter overrides, auto-sync policy."""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from ..database import UTCDateTime, utcnow
from .base import Base


class Site(Base):
    """A storefront whose stock status is kept in line with the ERP."""

    __tablename__ = "sites"
    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    url = Column(String(500), nullable=False)
    api_key = Column(String(255), nullable=False)
    api_secret = Column(String(255), nullable=False)
    enabled = Column(Boolean, default=True, nullable=False)
    last_sync_at = Column(UTCDateTime)
    created_at = Column(UTCDateTime, default=utcnow)

    filters = relationship(
        "SiteFilter", back_populates="site", uselist=False, cascade="all, delete-orphan"
    )

    @property
    def api_base(self) -> str:
        return self.url.rstrip("/") + "/wp-json/wc/v3"


class SiteFilter(Base):
    """Per-site filter overrides. Empty fields fall back to the global config."""

    __tablename__ = "site_filters"
    id = Column(Integer, primary_key=True)
    site_id = Column(
        Integer, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False
    )
    sku_filter = Column(Text, default="")
    exclude_sku_prefixes = Column(Text, default="")
    category_filters = Column(JSON, default=list)
    exclude_warehouses = Column(Text, default="")
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    site = relationship("Site", back_populates="filters")

    __table_args__ = (Index("ix_site_filters_site", "site_id", unique=True),)


class AutoSyncConfig(Base):
    """Operator-edited reconciliation policy. One row named 'default'."""

    __tablename__ = "auto_sync_config"
    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False, unique=True, default="default")
    enabled = Column(Boolean, default=False, nullable=False)
    site_ids = Column(JSON, default=list)
    filters = Column(JSON, default=dict)
    sync_to_instock = Column(Boolean, default=True, nullable=False)
    sync_to_outofstock = Column(Boolean, default=True, nullable=False)
    webhook_url = Column(String(1000))
    notify_on_success = Column(Boolean, default=True, nullable=False)
    notify_on_failure = Column(Boolean, default=True, nullable=False)
    notify_on_no_changes = Column(Boolean, default=False, nullable=False)
    last_run_at = Column(UTCDateTime)
    last_run_status = Column(String(20))
    last_run_summary = Column(JSON)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)


class RunLog(Base):
    """One row per reconciliation run. Inserted once, never updated."""

    __tablename__ = "auto_sync_logs"
    id = Column(Integer, primary_key=True)
    config_id = Column(Integer, ForeignKey("auto_sync_config.id", ondelete="SET NULL"))
    site_id = Column(Integer, ForeignKey("sites.id", ondelete="SET NULL"))
    site_name = Column(String(255))
    status = Column(String(20), nullable=False)
    total_checked = Column(Integer, default=0)
    synced_to_instock = Column(Integer, default=0)
    synced_to_outofstock = Column(Integer, default=0)
    failed = Column(Integer, default=0)
    skipped = Column(Integer, default=0)
    duration_ms = Column(Integer)
    error_message = Column(Text)
    details = Column(JSON)
    notification_sent = Column(Boolean, default=False)
    notification_error = Column(Text)
    started_at = Column(UTCDateTime, nullable=False)
    completed_at = Column(UTCDateTime)

    __table_args__ = (Index("ix_auto_sync_logs_site_started", "site_id", "started_at"),)
