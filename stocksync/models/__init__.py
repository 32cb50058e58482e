"""Database models — re-exports all models.

Import from here:  from stocksync.models import Site, SyncTask, ...
Or from submodules: from stocksync.models.sync import SyncTask
"""

from .base import Base  # noqa: F401

# Sites, filters, reconciliation policy and run history
from .sites import AutoSyncConfig, RunLog, Site, SiteFilter  # noqa: F401

# Task queue and incremental sync
from .sync import SyncCheckpoint, SyncLog, SyncTask  # noqa: F401

# Storefront mirror
from .catalog import CachedProduct  # noqa: F401
from .orders import Order, OrderItem  # noqa: F401
