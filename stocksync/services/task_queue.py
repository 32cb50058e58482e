"""
task_queue.py — Durable sync task queue and its state machine

Business Rules:
- pending -> processing -> completed | failed
- pending | processing -> cancelled (user action)
- failed -> pending (retry: retry_count + 1, timestamps/error/progress cleared)
- At most one pending/processing task per (site, kind); a duplicate enqueue
  raises TaskConflictError and writes nothing
- The uq_sync_tasks_active partial index backs the conflict check, so a racing
  enqueue or retry that slips past find_active still fails with a conflict
- Delete only from completed, failed or cancelled

Called by: routers/sync_queue.py, services/batch_processor.py
Depends on: models (SyncTask, Site)
"""

import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..database import utcnow
from ..models import Site, SyncTask
from ..models.sync import ACTIVE_STATUSES, TASK_KINDS, TERMINAL_STATUSES

log = logging.getLogger("stocksync.queue")

ALL_STATUSES = ("pending", "processing", "completed", "failed", "cancelled")


class TaskQueueError(Exception):
    pass


class TaskConflictError(TaskQueueError):
    def __init__(self, existing: SyncTask):
        super().__init__(
            f"A {existing.task_type} task for site {existing.site_id} is already {existing.status}"
        )
        self.existing = existing


class TaskNotFoundError(TaskQueueError):
    pass


class TaskStateError(TaskQueueError):
    pass


def get_task(db: Session, task_id: int) -> SyncTask:
    task = db.get(SyncTask, task_id)
    if task is None:
        raise TaskNotFoundError(f"Task {task_id} not found")
    return task


def find_active(db: Session, site_id: int, kind: str) -> SyncTask | None:
    return (
        db.query(SyncTask)
        .filter(
            SyncTask.site_id == site_id,
            SyncTask.task_type == kind,
            SyncTask.status.in_(ACTIVE_STATUSES),
        )
        .first()
    )


def _commit_or_conflict(db: Session, site_id: int, kind: str) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = find_active(db, site_id, kind)
        if existing is None:
            raise
        raise TaskConflictError(existing) from None


def enqueue(
    db: Session, site_id: int, kind: str, priority: int = 3, metadata: dict | None = None
) -> SyncTask:
    if kind not in TASK_KINDS:
        raise TaskStateError(f"Unknown task type {kind!r}")
    if db.get(Site, site_id) is None:
        raise TaskNotFoundError(f"Site {site_id} not found")
    existing = find_active(db, site_id, kind)
    if existing is not None:
        raise TaskConflictError(existing)

    task = SyncTask(
        site_id=site_id,
        task_type=kind,
        status="pending",
        priority=priority,
        retry_count=0,
        task_metadata=metadata or {},
        progress={},
        created_at=utcnow(),
    )
    db.add(task)
    _commit_or_conflict(db, site_id, kind)
    db.refresh(task)
    log.info(f"Queued {kind} task #{task.id} for site {site_id} (priority {priority})")
    return task


def list_tasks(db: Session, status: str | None = None, limit: int = 50) -> list[SyncTask]:
    q = db.query(SyncTask)
    if status:
        q = q.filter(SyncTask.status == status)
    return q.order_by(SyncTask.created_at.desc(), SyncTask.id.desc()).limit(limit).all()


def queue_stats(db: Session) -> dict[str, int]:
    counts = dict(
        db.query(SyncTask.status, func.count(SyncTask.id)).group_by(SyncTask.status).all()
    )
    stats = {s: counts.get(s, 0) for s in ALL_STATUSES}
    stats["total"] = sum(counts.values())
    return stats


def cancel(db: Session, task_id: int) -> SyncTask:
    task = get_task(db, task_id)
    if task.status not in ACTIVE_STATUSES:
        raise TaskStateError(f"Cannot cancel a {task.status} task")
    task.status = "cancelled"
    task.completed_at = utcnow()
    task.error_message = "Task cancelled by user"
    db.commit()
    log.info(f"Task #{task_id} cancelled")
    return task


def retry(db: Session, task_id: int) -> SyncTask:
    task = get_task(db, task_id)
    if task.status != "failed":
        raise TaskStateError(f"Only failed tasks can be retried (task is {task.status})")
    existing = find_active(db, task.site_id, task.task_type)
    if existing is not None:
        raise TaskConflictError(existing)
    task.status = "pending"
    task.retry_count = (task.retry_count or 0) + 1
    task.started_at = None
    task.completed_at = None
    task.error_message = None
    task.result = None
    task.progress = {}
    _commit_or_conflict(db, task.site_id, task.task_type)
    log.info(f"Task #{task_id} re-queued (retry {task.retry_count})")
    return task


def delete(db: Session, task_id: int) -> None:
    task = get_task(db, task_id)
    if task.status not in TERMINAL_STATUSES:
        raise TaskStateError(f"Cannot delete a {task.status} task; cancel it first")
    db.delete(task)
    db.commit()


def claim_pending(db: Session, limit: int) -> list[SyncTask]:
    return (
        db.query(SyncTask)
        .filter(SyncTask.status == "pending")
        .order_by(SyncTask.priority.desc(), SyncTask.created_at.asc(), SyncTask.id.asc())
        .limit(limit)
        .all()
    )


def mark_processing(db: Session, task: SyncTask) -> bool:
    """pending -> processing. False when the task left pending in the meantime."""
    db.refresh(task)
    if task.status != "pending":
        return False
    task.status = "processing"
    task.started_at = utcnow()
    task.progress = {"phase": "starting"}
    db.commit()
    return True


def mark_completed(db: Session, task: SyncTask, result: dict) -> None:
    db.refresh(task)
    if task.status == "cancelled":
        task.result = result
        db.commit()
        return
    task.status = "completed"
    task.result = result
    task.completed_at = utcnow()
    db.commit()


def mark_failed(db: Session, task: SyncTask, error: str) -> None:
    db.refresh(task)
    if task.status == "cancelled":
        return
    task.status = "failed"
    task.error_message = (error or "unknown error")[:2000]
    task.completed_at = utcnow()
    db.commit()


def update_progress(db: Session, task_id: int, **progress) -> None:
    """Merge values into a running task's progress. Missing tasks are ignored."""
    task = db.get(SyncTask, task_id)
    if task is None:
        return
    task.progress = {**(task.progress or {}), **progress, "updated_at": utcnow().isoformat()}
    db.commit()


def is_cancelled(db: Session, task_id: int) -> bool:
    """True when the task was cancelled or deleted since it was claimed."""
    task = db.get(SyncTask, task_id)
    if task is None:
        return True
    db.refresh(task, ["status"])
    return task.status == "cancelled"
