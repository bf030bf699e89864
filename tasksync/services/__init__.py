"""Services"""

from tasksync.services.backend_client import BackendClient
from tasksync.services.cache import TTLCache
from tasksync.services.clickup_client import ClickUpClient
from tasksync.services.identity import IdentityMapper
from tasksync.services.outbound import OutboundSync
from tasksync.services.relay import SyncRelay

__all__ = [
    "BackendClient",
    "ClickUpClient",
    "IdentityMapper",
    "OutboundSync",
    "SyncRelay",
    "TTLCache",
]
