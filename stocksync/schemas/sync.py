"""
schemas/sync.py — Request/response models for the sync control surface

Business Rules:
- Task kind must be orders or products; priority 1..10, higher runs first
- Queue PATCH accepts only cancel or retry
- Detection accepts 1..500 SKUs per call

Called by: routers/sync_queue.py, routers/reconcile.py
Depends on: pydantic
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class TaskCreate(BaseModel):
    site_id: int
    task_type: Literal["orders", "products"]
    priority: int = Field(default=3, ge=1, le=10)
    metadata: dict = Field(default_factory=dict)


class TaskAction(BaseModel):
    task_id: int
    action: Literal["cancel", "retry"]


class TaskOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    site_id: int
    task_type: str
    status: str
    priority: int
    retry_count: int
    metadata: dict | None = Field(default=None, validation_alias="task_metadata")
    progress: dict | None = None
    result: dict | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class QueueResponse(BaseModel):
    tasks: list[TaskOut]
    stats: dict[str, int]


class FilterSettings(BaseModel):
    """Global filter block stored on the auto-sync config."""

    categoryFilters: list[str] = Field(default_factory=list)
    skuFilter: str = ""
    excludeSkuPrefixes: str = ""
    excludeWarehouses: str = ""


class AutoSyncConfigUpdate(BaseModel):
    enabled: bool | None = None
    site_ids: list[int] | None = None
    filters: FilterSettings | None = None
    sync_to_instock: bool | None = None
    sync_to_outofstock: bool | None = None
    webhook_url: str | None = Field(default=None, max_length=1000)
    notify_on_success: bool | None = None
    notify_on_failure: bool | None = None
    notify_on_no_changes: bool | None = None


class SiteFilterUpdate(BaseModel):
    sku_filter: str = ""
    exclude_sku_prefixes: str = ""
    category_filters: list[str] = Field(default_factory=list)
    exclude_warehouses: str = ""


class DetectRequest(BaseModel):
    site_id: int
    skus: list[str] = Field(..., min_length=1, max_length=500)


class RunLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    site_id: int | None = None
    site_name: str | None = None
    status: str
    total_checked: int = 0
    synced_to_instock: int = 0
    synced_to_outofstock: int = 0
    failed: int = 0
    skipped: int = 0
    duration_ms: int | None = None
    error_message: str | None = None
    notification_sent: bool | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class SiteCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., pattern=r"^https?://")
    api_key: str = Field(..., min_length=1)
    api_secret: str = Field(..., min_length=1)
    enabled: bool = True


class SiteUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    url: str | None = Field(default=None, pattern=r"^https?://")
    api_key: str | None = None
    api_secret: str | None = None
    enabled: bool | None = None


class SiteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    url: str
    enabled: bool
    last_sync_at: datetime | None = None
