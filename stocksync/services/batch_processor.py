"""Batch processor — drains the sync task queue one task at a time.

A process-wide asyncio.Lock keeps drains from overlapping, so the scheduler
and the "process now" endpoint never run two tasks concurrently.
"""

import asyncio
import logging

from sqlalchemy.orm import Session

from ..config import settings as default_settings
from ..connectors.storefront import StorefrontClient
from ..models import Site
from . import task_queue
from .concurrency import AdaptiveConcurrencyController
from .order_sync import run_order_sync
from .product_sync import run_product_sync

log = logging.getLogger("stocksync.batch")

_drain_lock = asyncio.Lock()

EXECUTORS = {
    "orders": run_order_sync,
    "products": run_product_sync,
}


async def execute_task(db: Session, task, http, settings=None) -> dict:
    settings = settings or default_settings
    site = db.get(Site, task.site_id)
    if site is None:
        raise ValueError(f"Site {task.site_id} no longer exists")
    if not site.enabled:
        raise ValueError(f"Site {site.name} is disabled")
    controller = AdaptiveConcurrencyController.from_settings(settings)
    client = StorefrontClient.for_site(
        http, site, controller=controller, timeout=settings.http_timeout_seconds
    )
    mode = (task.task_metadata or {}).get("mode", "incremental")
    executor = EXECUTORS[task.task_type]
    result = await executor(db, site.id, client, settings, task_id=task.id, mode=mode)
    result["controller"] = controller.snapshot()
    return result


async def process_batch(db: Session, http, limit: int | None = None, settings=None) -> dict:
    """Claim up to `limit` pending tasks and run them serially."""
    settings = settings or default_settings
    limit = limit or settings.queue_claim_limit
    summary = {"claimed": 0, "completed": 0, "failed": 0, "skipped": 0}

    if _drain_lock.locked():
        log.info("Queue drain already running, skipping")
        summary["busy"] = True
        return summary

    async with _drain_lock:
        tasks = task_queue.claim_pending(db, limit)
        summary["claimed"] = len(tasks)
        for task in tasks:
            if not task_queue.mark_processing(db, task):
                summary["skipped"] += 1
                continue
            log.info(f"Processing task #{task.id}: {task.task_type} for site {task.site_id}")
            try:
                result = await execute_task(db, task, http, settings)
            except Exception as e:
                db.rollback()
                task_queue.mark_failed(db, task, str(e))
                summary["failed"] += 1
                log.error(f"Task #{task.id} failed: {e}")
                continue
            task_queue.mark_completed(db, task, result)
            summary["completed"] += 1
    return summary
