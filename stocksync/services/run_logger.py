"""Reconciliation run summaries and the append-only auto_sync_logs table."""

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.orm import Session

from ..database import utcnow
from ..models import RunLog

MAX_DETAILS = 50


@dataclass
class RunSummary:
    site_id: int | None
    site_name: str | None = None
    config_id: int | None = None
    status: str = "success"
    total_checked: int = 0
    synced_to_instock: int = 0
    synced_to_outofstock: int = 0
    failed: int = 0
    skipped: int = 0
    duration_ms: int = 0
    error_message: str | None = None
    details: list[dict] = field(default_factory=list)
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    stats: dict = field(default_factory=dict)

    def add_detail(self, detail: dict) -> None:
        if len(self.details) < MAX_DETAILS:
            self.details.append(detail)

    def resolve_status(self) -> str:
        if self.failed:
            self.status = "partial"
        elif not (self.synced_to_instock or self.synced_to_outofstock):
            self.status = "no_changes"
        else:
            self.status = "success"
        return self.status

    def as_dict(self) -> dict:
        return {
            "site_id": self.site_id,
            "site_name": self.site_name,
            "status": self.status,
            "total_checked": self.total_checked,
            "synced_to_instock": self.synced_to_instock,
            "synced_to_outofstock": self.synced_to_outofstock,
            "failed": self.failed,
            "skipped": self.skipped,
            "duration_ms": self.duration_ms,
            "error_message": self.error_message,
            "details": self.details,
            "stats": self.stats,
        }


def record_run(db: Session, summary: RunSummary, sent: bool = False, error: str | None = None) -> RunLog:
    """Insert the run's log row. Called once, after notification, so the row is final."""
    entry = RunLog(
        config_id=summary.config_id,
        site_id=summary.site_id,
        site_name=summary.site_name,
        status=summary.status,
        total_checked=summary.total_checked,
        synced_to_instock=summary.synced_to_instock,
        synced_to_outofstock=summary.synced_to_outofstock,
        failed=summary.failed,
        skipped=summary.skipped,
        duration_ms=summary.duration_ms,
        error_message=summary.error_message,
        details=summary.details[:MAX_DETAILS],
        notification_sent=sent,
        notification_error=error,
        started_at=summary.started_at,
        completed_at=summary.completed_at or utcnow(),
    )
    db.add(entry)
    db.commit()
    return entry


def list_runs(db: Session, site_id: int | None = None, limit: int = 50) -> list[RunLog]:
    q = db.query(RunLog)
    if site_id is not None:
        q = q.filter(RunLog.site_id == site_id)
    return q.order_by(RunLog.started_at.desc(), RunLog.id.desc()).limit(limit).all()
