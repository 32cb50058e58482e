"""Sync queue API — enqueue, inspect, cancel, retry, delete and drain tasks."""

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_http
from ..schemas.sync import QueueResponse, TaskAction, TaskCreate, TaskOut
from ..services import task_queue
from ..services.batch_processor import process_batch

router = APIRouter(tags=["sync-queue"])


def _raise_http(e: task_queue.TaskQueueError):
    if isinstance(e, task_queue.TaskConflictError):
        raise HTTPException(409, str(e))
    if isinstance(e, task_queue.TaskNotFoundError):
        raise HTTPException(404, str(e))
    raise HTTPException(400, str(e))


@router.get("/api/sync/queue", response_model=QueueResponse)
def list_queue(
    status: str | None = Query(None, pattern="^(pending|processing|completed|failed|cancelled)$"),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    tasks = task_queue.list_tasks(db, status, limit)
    return {
        "tasks": [TaskOut.model_validate(t) for t in tasks],
        "stats": task_queue.queue_stats(db),
    }


@router.post("/api/sync/queue", response_model=TaskOut, status_code=201)
def create_task(body: TaskCreate, db: Session = Depends(get_db)):
    try:
        task = task_queue.enqueue(db, body.site_id, body.task_type, body.priority, body.metadata)
    except task_queue.TaskQueueError as e:
        _raise_http(e)
    return TaskOut.model_validate(task)


@router.patch("/api/sync/queue", response_model=TaskOut)
def update_task(body: TaskAction, db: Session = Depends(get_db)):
    try:
        if body.action == "cancel":
            task = task_queue.cancel(db, body.task_id)
        else:
            task = task_queue.retry(db, body.task_id)
    except task_queue.TaskQueueError as e:
        _raise_http(e)
    logger.info("Task #{} {}", body.task_id, body.action)
    return TaskOut.model_validate(task)


@router.delete("/api/sync/queue/{task_id}")
def delete_task(task_id: int, db: Session = Depends(get_db)):
    try:
        task_queue.delete(db, task_id)
    except task_queue.TaskQueueError as e:
        _raise_http(e)
    return {"ok": True}


@router.post("/api/sync/queue/process")
async def process_queue(
    limit: int | None = Query(None, ge=1, le=50),
    db: Session = Depends(get_db),
    http: httpx.AsyncClient = Depends(get_http),
):
    """Drain pending tasks now instead of waiting for the scheduler tick."""
    summary = await process_batch(db, http, limit)
    logger.info("Manual queue drain: {}", summary)
    return summary
