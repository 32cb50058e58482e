"""Checkpoint store — durable incremental-sync cursor per (site, sync type).

The cursor is (last object id, last modified timestamp) and only moves
forward. Callers advance it after at least one record of a pass is
committed; failures record the error and leave the cursor alone.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from ..database import utcnow
from ..models import SyncCheckpoint

log = logging.getLogger("stocksync.checkpoints")


@dataclass(frozen=True)
class Cursor:
    object_id: int | None
    modified: datetime | None


def get_checkpoint(db: Session, site_id: int, kind: str) -> SyncCheckpoint | None:
    return (
        db.query(SyncCheckpoint)
        .filter(SyncCheckpoint.site_id == site_id, SyncCheckpoint.sync_type == kind)
        .first()
    )


def _get_or_create(db: Session, site_id: int, kind: str) -> SyncCheckpoint:
    cp = get_checkpoint(db, site_id, kind)
    if cp is None:
        cp = SyncCheckpoint(site_id=site_id, sync_type=kind, synced_count=0)
        db.add(cp)
    return cp


def _is_forward(current: datetime | None, new: datetime | None) -> bool:
    if new is None:
        return False
    return current is None or new >= current


def advance(
    db: Session,
    site_id: int,
    kind: str,
    cursor: Cursor,
    delta_count: int,
    duration_ms: int | None = None,
) -> SyncCheckpoint:
    cp = _get_or_create(db, site_id, kind)
    if _is_forward(cp.last_modified, cursor.modified):
        cp.last_object_id = cursor.object_id
        cp.last_modified = cursor.modified
    else:
        log.warning(
            f"Checkpoint {site_id}/{kind}: ignoring cursor {cursor.modified} older than {cp.last_modified}"
        )
    cp.synced_count = (cp.synced_count or 0) + delta_count
    cp.last_sync_status = "success"
    cp.last_error = None
    cp.last_duration_ms = duration_ms
    cp.last_sync_at = utcnow()
    db.commit()
    return cp


def mark_failed(
    db: Session, site_id: int, kind: str, error: str, duration_ms: int | None = None
) -> SyncCheckpoint:
    cp = _get_or_create(db, site_id, kind)
    cp.last_sync_status = "failed"
    cp.last_error = (error or "")[:2000]
    cp.last_duration_ms = duration_ms
    cp.last_sync_at = utcnow()
    db.commit()
    return cp
