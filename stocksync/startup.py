"""
startup.py — Database Startup Migrations (Idempotent)

Tables and indexes are defined in the ORM models and created via
Base.metadata.create_all(checkfirst=True). This file also seeds the default
auto-sync config row so the policy endpoints always have something to edit.

Called by: main.py lifespan
Depends on: database.py (engine, SessionLocal), models (Base)
"""

import logging
import os

from .database import SessionLocal, engine

log = logging.getLogger("stocksync.startup")


def run_startup_migrations() -> None:
    """Execute all idempotent startup operations. Safe to call on every app boot."""
    if os.environ.get("TESTING"):
        log.info("TESTING mode — skipping startup migrations")
        return

    from .models import Base

    Base.metadata.create_all(bind=engine, checkfirst=True)
    log.info("ORM schema sync complete (create_all checkfirst=True)")
    _seed_auto_sync_config()
    log.info("Startup migrations complete")


def _seed_auto_sync_config() -> None:
    from .services.reconcile_runner import get_or_create_config

    db = SessionLocal()
    try:
        get_or_create_config(db)
    except Exception as e:
        log.warning(f"Could not seed auto-sync config: {e}")
        db.rollback()
    finally:
        db.close()
