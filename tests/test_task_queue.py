"""
test_task_queue.py — Tests for the durable sync task queue

Covers: enqueue with conflict detection (no second row written), cancel /
retry / delete state rules, claim ordering by priority then age, stats, the
active-task unique index catching enqueues that race past the lookup.

Called by: pytest
Depends on: stocksync/services/task_queue.py
"""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from stocksync.models import SyncTask
from stocksync.services import task_queue
from stocksync.services.task_queue import (
    TaskConflictError,
    TaskNotFoundError,
    TaskStateError,
)


def _set_status(db, task, status):
    task.status = status
    db.commit()
    return task


# ── Enqueue ──────────────────────────────────────────────────────────


def test_enqueue_creates_pending_task(db_session, test_site):
    task = task_queue.enqueue(db_session, test_site.id, "orders", priority=5, metadata={"mode": "full"})
    assert task.status == "pending"
    assert task.priority == 5
    assert task.retry_count == 0
    assert task.task_metadata == {"mode": "full"}


def test_duplicate_active_task_conflicts_and_writes_nothing(db_session, test_site):
    first = task_queue.enqueue(db_session, test_site.id, "orders")
    with pytest.raises(TaskConflictError) as exc:
        task_queue.enqueue(db_session, test_site.id, "orders")
    assert exc.value.existing.id == first.id
    assert db_session.query(SyncTask).count() == 1


def test_conflict_also_applies_while_processing(db_session, test_site):
    _set_status(db_session, task_queue.enqueue(db_session, test_site.id, "orders"), "processing")
    with pytest.raises(TaskConflictError):
        task_queue.enqueue(db_session, test_site.id, "orders")


def test_other_kind_or_finished_task_does_not_conflict(db_session, test_site):
    orders = task_queue.enqueue(db_session, test_site.id, "orders")
    task_queue.enqueue(db_session, test_site.id, "products")
    _set_status(db_session, orders, "completed")
    task_queue.enqueue(db_session, test_site.id, "orders")
    assert db_session.query(SyncTask).count() == 3


def test_enqueue_rejects_unknown_kind_and_site(db_session, test_site):
    with pytest.raises(TaskStateError):
        task_queue.enqueue(db_session, test_site.id, "customers")
    with pytest.raises(TaskNotFoundError):
        task_queue.enqueue(db_session, 9999, "orders")


# ── Transitions ──────────────────────────────────────────────────────


def test_cancel_pending_and_processing(db_session, test_site):
    task = task_queue.enqueue(db_session, test_site.id, "orders")
    cancelled = task_queue.cancel(db_session, task.id)
    assert cancelled.status == "cancelled"
    assert cancelled.completed_at is not None

    running = _set_status(db_session, task_queue.enqueue(db_session, test_site.id, "orders"), "processing")
    assert task_queue.cancel(db_session, running.id).status == "cancelled"


@pytest.mark.parametrize("status", ["completed", "failed", "cancelled"])
def test_cancel_rejected_for_finished_tasks(db_session, test_site, status):
    task = _set_status(db_session, task_queue.enqueue(db_session, test_site.id, "orders"), status)
    with pytest.raises(TaskStateError):
        task_queue.cancel(db_session, task.id)


def test_retry_resets_failed_task(db_session, test_site):
    task = task_queue.enqueue(db_session, test_site.id, "orders")
    task_queue.mark_processing(db_session, task)
    task_queue.mark_failed(db_session, task, "boom")

    retried = task_queue.retry(db_session, task.id)
    assert retried.status == "pending"
    assert retried.retry_count == 1
    assert retried.error_message is None
    assert retried.started_at is None
    assert retried.completed_at is None
    assert retried.progress == {}


def test_active_index_rejects_second_pending_row(db_session, test_site):
    task_queue.enqueue(db_session, test_site.id, "orders")
    db_session.add(SyncTask(site_id=test_site.id, task_type="orders", status="pending", priority=3, retry_count=0))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()
    assert db_session.query(SyncTask).count() == 1


def test_racing_enqueue_surfaces_as_conflict(db_session, test_site):
    first = task_queue.enqueue(db_session, test_site.id, "orders")
    real_find = task_queue.find_active
    lookups = []

    def stale_lookup(db, site_id, kind):
        lookups.append(kind)
        return None if len(lookups) == 1 else real_find(db, site_id, kind)

    with patch.object(task_queue, "find_active", side_effect=stale_lookup):
        with pytest.raises(TaskConflictError) as exc:
            task_queue.enqueue(db_session, test_site.id, "orders")
    assert exc.value.existing.id == first.id
    assert db_session.query(SyncTask).count() == 1


def test_retry_only_from_failed(db_session, test_site):
    task = task_queue.enqueue(db_session, test_site.id, "orders")
    with pytest.raises(TaskStateError):
        task_queue.retry(db_session, task.id)


def test_retry_conflicts_with_newer_active_task(db_session, test_site):
    old = _set_status(db_session, task_queue.enqueue(db_session, test_site.id, "orders"), "failed")
    task_queue.enqueue(db_session, test_site.id, "orders")
    with pytest.raises(TaskConflictError):
        task_queue.retry(db_session, old.id)


def test_delete_rules(db_session, test_site):
    task = task_queue.enqueue(db_session, test_site.id, "orders")
    with pytest.raises(TaskStateError):
        task_queue.delete(db_session, task.id)
    task_queue.cancel(db_session, task.id)
    task_queue.delete(db_session, task.id)
    assert db_session.get(SyncTask, task.id) is None
    with pytest.raises(TaskNotFoundError):
        task_queue.delete(db_session, task.id)


# ── Claiming ─────────────────────────────────────────────────────────


def test_claim_orders_by_priority_then_age(db_session, test_site):
    a = task_queue.enqueue(db_session, test_site.id, "orders", priority=3)
    b = task_queue.enqueue(db_session, test_site.id, "products", priority=8)
    assert [t.id for t in task_queue.claim_pending(db_session, 5)] == [b.id, a.id]
    assert [t.id for t in task_queue.claim_pending(db_session, 1)] == [b.id]


def test_mark_processing_refuses_non_pending(db_session, test_site):
    task = task_queue.enqueue(db_session, test_site.id, "orders")
    task_queue.cancel(db_session, task.id)
    assert task_queue.mark_processing(db_session, task) is False


def test_completion_does_not_override_cancel(db_session, test_site):
    task = task_queue.enqueue(db_session, test_site.id, "orders")
    task_queue.mark_processing(db_session, task)
    task_queue.cancel(db_session, task.id)
    task_queue.mark_completed(db_session, task, {"persisted": 3})
    assert task.status == "cancelled"
    assert task.result == {"persisted": 3}
    task_queue.mark_failed(db_session, task, "late failure")
    assert task.status == "cancelled"


def test_queue_stats(db_session, test_site):
    task_queue.enqueue(db_session, test_site.id, "orders")
    products = task_queue.enqueue(db_session, test_site.id, "products")
    task_queue.cancel(db_session, products.id)
    stats = task_queue.queue_stats(db_session)
    assert stats["pending"] == 1
    assert stats["cancelled"] == 1
    assert stats["processing"] == 0
    assert stats["total"] == 2


def test_progress_merges_and_cancel_is_visible(db_session, test_site):
    task = task_queue.enqueue(db_session, test_site.id, "orders")
    task_queue.update_progress(db_session, task.id, phase="fetching")
    task_queue.update_progress(db_session, task.id, processed=50, total=100)
    assert task.progress["phase"] == "fetching"
    assert task.progress["processed"] == 50
    assert "updated_at" in task.progress

    assert task_queue.is_cancelled(db_session, task.id) is False
    task_queue.cancel(db_session, task.id)
    assert task_queue.is_cancelled(db_session, task.id) is True
    assert task_queue.is_cancelled(db_session, 9999) is True
