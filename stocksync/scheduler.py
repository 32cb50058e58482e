"""Background scheduler — queue drain and periodic reconciliation.

Runs on a tick loop (scheduler_tick_seconds). Each tick:
  - Queue drain: every tick, runs pending order/product sync tasks serially
  - Reconciliation: every reconcile_interval_min, one run per site on the
    enabled auto-sync config
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

log = logging.getLogger("stocksync.scheduler")

_last_reconcile = datetime.min.replace(tzinfo=timezone.utc)


async def start_scheduler(http):
    """Launch the background scheduler loop. Call once on app startup."""
    from .config import settings

    log.info(
        f"Background scheduler started — tick {settings.scheduler_tick_seconds}s, "
        f"reconcile every {settings.reconcile_interval_min} min"
    )

    # Let the app finish booting before the first tick
    await asyncio.sleep(10)

    while True:
        try:
            await scheduler_tick(http)
        except Exception as e:
            log.error(f"Scheduler tick error: {e}")
        await asyncio.sleep(settings.scheduler_tick_seconds)


async def scheduler_tick(http, now: datetime | None = None):
    """Check what needs to run this tick."""
    from .config import settings
    from .database import SessionLocal
    from .services.batch_processor import process_batch
    from .services.reconcile_runner import run_auto_sync

    global _last_reconcile
    now = now or datetime.now(timezone.utc)

    db = SessionLocal()
    try:
        # ── Task queue drain ──
        try:
            summary = await process_batch(db, http)
            if summary.get("claimed"):
                log.info(f"Queue drain: {summary}")
        except Exception as e:
            log.error(f"Queue drain error: {e}")
            db.rollback()

        # ── Periodic reconciliation ──
        if now - _last_reconcile >= timedelta(minutes=settings.reconcile_interval_min):
            _last_reconcile = now
            try:
                results = await run_auto_sync(db, http)
                if results:
                    log.info(
                        "Auto-sync: "
                        + ", ".join(f"{r.site_name or r.site_id}={r.status}" for r in results)
                    )
            except Exception as e:
                log.error(f"Auto-sync error: {e}")
                db.rollback()
    finally:
        db.close()
