"""
StockSync — ERP to storefront stock reconciliation service.

The lifespan owns the process-wide resources: logging, schema, the shared
httpx client (app.state.http) and the scheduler task.
"""

import asyncio
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from .config import settings
from .http_client import build_http_client, close_client
from .logging_config import setup_logging
from .routers import reconcile, sites, sync_queue
from .startup import run_startup_migrations


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    run_startup_migrations()
    app.state.http = build_http_client()

    task = None
    if settings.scheduler_enabled and not os.environ.get("TESTING"):
        from .scheduler import start_scheduler

        task = asyncio.create_task(start_scheduler(app.state.http))
    logger.info("StockSync ready")
    yield

    if task is not None:
        task.cancel()
    await close_client(app.state.http)
    logger.info("StockSync stopped")


app = FastAPI(title="StockSync", version="1.0.0", lifespan=lifespan)
app.include_router(sites.router)
app.include_router(sync_queue.router)
app.include_router(reconcile.router)


@app.get("/health")
def health():
    return {"status": "ok"}
