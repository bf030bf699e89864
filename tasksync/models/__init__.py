"""Database models"""

from tasksync.models.base import Base
from tasksync.models.sync_log import SyncLog

__all__ = [
    "Base",
    "SyncLog",
]
