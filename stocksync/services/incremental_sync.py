"""
incremental_sync.py — Shared machinery for checkpointed order/product syncs

Business Rules:
- Pages are fetched oldest-modified first; incremental mode starts 1s after
  the checkpoint and stops after incremental_max_pages, full mode has no cap
- An id seen twice in one fetch is dropped on the second sighting (warning)
- Batches upsert on the natural key and commit per batch
- A batch that fails is rolled back and retried once without rows holding
  values outside their column range; those rows count as failed. If no row
  is out of range, or the retry fails too, the whole batch counts as failed
- Every pass writes one sync_logs row and keeps the task progress current

Called by: services/order_sync.py, services/product_sync.py
Depends on: models (SyncLog), services/task_queue.py, connectors/storefront.py
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import BigInteger, Integer, Numeric
from sqlalchemy.exc import StatementError
from sqlalchemy.orm import Session

from ..database import utcnow
from ..models import SyncLog
from ..utils import MAX_BIGINT, MAX_INT
from . import task_queue

log = logging.getLogger("stocksync.incremental")

MAX_ERROR_SAMPLE = 20
_DB_ERRORS = (StatementError, OverflowError)


@dataclass
class SyncStats:
    fetched: int = 0
    duplicates: int = 0
    malformed: int = 0
    persisted: int = 0
    failed: int = 0
    pages: int = 0
    errors: list[dict] = field(default_factory=list)

    def add_error(self, ref, message: str) -> None:
        if len(self.errors) < MAX_ERROR_SAMPLE:
            self.errors.append({"id": ref, "error": message[:300]})

    def as_dict(self) -> dict:
        return {
            "fetched": self.fetched,
            "duplicates": self.duplicates,
            "malformed": self.malformed,
            "persisted": self.persisted,
            "failed": self.failed,
            "pages": self.pages,
            "errors": self.errors,
        }


# ── Fetch ────────────────────────────────────────────────────────────


def modified_after_param(since: datetime | None) -> str | None:
    if since is None:
        return None
    return (since + timedelta(seconds=1)).strftime("%Y-%m-%dT%H:%M:%S")


async def fetch_changed(
    client,
    resource: str,
    since: datetime | None,
    stats: SyncStats,
    per_page: int = 100,
    max_pages: int | None = 50,
    should_stop: Callable[[], bool] | None = None,
) -> list[dict]:
    """All records changed after `since`, deduplicated by id, in fetch order."""
    modified_after = modified_after_param(since)
    seen: set = set()
    records: list[dict] = []
    page = 1
    while True:
        if max_pages is not None and page > max_pages:
            log.info(f"{resource}: page cap {max_pages} reached, resuming next run")
            break
        if should_stop is not None and should_stop():
            log.info(f"{resource}: stop requested after {page - 1} pages")
            break
        items, total_pages = await client.list_page(resource, page, per_page, modified_after)
        stats.pages += 1
        for raw in items:
            rid = raw.get("id") if isinstance(raw, dict) else None
            if rid in seen:
                stats.duplicates += 1
                log.warning(f"{resource}: duplicate id {rid} on page {page}, dropped")
                continue
            seen.add(rid)
            records.append(raw)
        if len(items) < per_page or (total_pages and page >= total_pages):
            break
        page += 1
    stats.fetched = len(records)
    return records


# ── Persist ──────────────────────────────────────────────────────────


def dialect_insert(db: Session):
    name = db.get_bind().dialect.name
    if name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"Upsert not supported on {name}")
    return insert


def upsert_rows(db: Session, model, rows: list[dict], conflict_cols: list[str]) -> None:
    if not rows:
        return
    stmt = dialect_insert(db)(model).values(rows)
    update = {c: stmt.excluded[c] for c in rows[0] if c not in conflict_cols}
    db.execute(stmt.on_conflict_do_update(index_elements=conflict_cols, set_=update))


def column_limits(model) -> dict[str, float]:
    """Largest storable magnitude per numeric column."""
    limits: dict[str, float] = {}
    for col in model.__table__.columns:
        t = col.type
        if isinstance(t, BigInteger):
            limits[col.name] = MAX_BIGINT
        elif isinstance(t, Integer):
            limits[col.name] = MAX_INT
        elif isinstance(t, Numeric) and t.precision:
            scale = t.scale or 0
            limits[col.name] = 10 ** (t.precision - scale) - 10 ** -scale
    return limits


def out_of_range(row: dict, limits: dict[str, float]) -> bool:
    for key, value in row.items():
        limit = limits.get(key)
        if limit is None or value is None or isinstance(value, bool):
            continue
        if isinstance(value, (int, float)) and abs(value) > limit:
            return True
    return False


def persist_batch(
    db: Session,
    model,
    rows: list[dict],
    conflict_cols: list[str],
    stats: SyncStats | None = None,
    ref_key: str = "id",
) -> tuple[list[dict], list[dict]]:
    """Upsert one batch. Returns (persisted rows, failed rows)."""
    if not rows:
        return [], []
    try:
        upsert_rows(db, model, rows, conflict_cols)
        db.commit()
        return rows, []
    except _DB_ERRORS as e:
        db.rollback()
        first_error = e

    limits = column_limits(model)
    bad = [r for r in rows if out_of_range(r, limits)]
    if not bad:
        log.error(f"{model.__tablename__}: batch of {len(rows)} failed: {first_error}")
        if stats is not None:
            for r in rows:
                stats.add_error(r.get(ref_key), str(first_error))
        return [], rows

    good = [r for r in rows if not out_of_range(r, limits)]
    log.warning(
        f"{model.__tablename__}: retrying batch without {len(bad)} out-of-range rows"
    )
    if stats is not None:
        for r in bad:
            stats.add_error(r.get(ref_key), "numeric value out of range")
    try:
        upsert_rows(db, model, good, conflict_cols)
        db.commit()
    except _DB_ERRORS as e:
        db.rollback()
        log.error(f"{model.__tablename__}: retry failed: {e}")
        if stats is not None:
            for r in good:
                stats.add_error(r.get(ref_key), str(e))
        return [], rows
    return good, bad


# ── Run bookkeeping ──────────────────────────────────────────────────


class SyncRun:
    """sync_logs row plus task progress for one pass."""

    def __init__(self, db: Session, site_id: int, kind: str, mode: str, task_id: int | None = None):
        self.db = db
        self.site_id = site_id
        self.kind = kind
        self.task_id = task_id
        self.started = time.monotonic()
        self.log = SyncLog(
            site_id=site_id,
            task_id=task_id,
            sync_type=kind,
            mode=mode,
            status="running",
            started_at=utcnow(),
        )
        db.add(self.log)
        db.commit()

    @property
    def duration_ms(self) -> int:
        return int((time.monotonic() - self.started) * 1000)

    def progress(self, **values) -> None:
        if self.task_id is not None:
            task_queue.update_progress(self.db, self.task_id, **values)

    def is_cancelled(self) -> bool:
        if self.task_id is None:
            return False
        return task_queue.is_cancelled(self.db, self.task_id)

    def finish(self, status: str, stats: SyncStats) -> None:
        self.log.status = status
        self.log.items_synced = stats.persisted
        self.log.items_failed = stats.failed
        self.log.error_sample = stats.errors or None
        self.log.completed_at = utcnow()
        self.log.duration_ms = self.duration_ms
        self.db.commit()
