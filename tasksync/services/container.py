"""Long-lived service instances shared by the API routes and scheduled jobs"""

import logging

from tasksync.config import Settings
from tasksync.models.base import SessionLocal
from tasksync.services.audit import SyncRecorder
from tasksync.services.backend_client import BackendClient
from tasksync.services.cache import TTLCache
from tasksync.services.clickup_client import ClickUpClient
from tasksync.services.identity import IdentityMapper
from tasksync.services.kpi import KPIService
from tasksync.services.outbound import OutboundSync
from tasksync.services.relay import SyncRelay
from tasksync.services.tasks import TaskLookup
from tasksync.services.telegram import TelegramNotifier
from tasksync.services.users import UserDirectory
from tasksync.worker import WebhookWorkerPool

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Builds every service from settings around one shared cache.

    Clients and the session factory can be passed in (tests use fakes).
    """

    def __init__(
        self,
        settings: Settings,
        *,
        clickup=None,
        backend=None,
        session_factory=None,
        notifier=None,
    ):
        self.settings = settings
        self.cache = TTLCache()

        self.clickup = clickup or ClickUpClient(
            settings.clickup_base_url,
            settings.clickup_api_token,
            team_id=settings.clickup_team_id,
            list_id=settings.clickup_list_id,
            timeout=settings.clickup_timeout_seconds,
        )
        self.backend = backend or BackendClient(
            settings.backend_base_url,
            api_token=settings.backend_api_token,
            timeout=settings.backend_timeout_seconds,
        )
        self.recorder = SyncRecorder(session_factory or SessionLocal)
        if notifier is None and settings.telegram_enabled:
            notifier = TelegramNotifier(
                settings.telegram_bot_token,
                settings.telegram_chat_id,
                base_url=settings.telegram_base_url,
                timeout=settings.telegram_timeout_seconds,
            )
        self.notifier = notifier

        self.lookup = TaskLookup(
            self.backend,
            placeholder_prefix=settings.placeholder_prefix,
            placeholder_max_age_seconds=settings.placeholder_max_age_seconds,
        )
        self.mapper = IdentityMapper(
            self.clickup,
            self.backend,
            self.cache,
            ttl_seconds=settings.identity_cache_minutes * 60,
            miss_diagnostics=settings.mapping_miss_diagnostics,
        )
        self.relay = SyncRelay(
            self.backend,
            self.clickup,
            self.mapper,
            self.lookup,
            self.cache,
            default_assignee_id=settings.default_assignee_id,
        )
        self.outbound = OutboundSync(
            self.backend,
            self.clickup,
            self.mapper,
            self.lookup,
            self.cache,
            self.recorder,
            placeholder_prefix=settings.placeholder_prefix,
            tag_fetch_concurrency=settings.tag_fetch_concurrency,
            tag_fetch_limit=settings.tag_fetch_limit,
            tags_ttl_seconds=settings.tags_cache_minutes * 60,
        )
        self.users = UserDirectory(
            self.backend,
            self.clickup,
            self.cache,
            self.mapper,
            ttl_seconds=settings.users_cache_minutes * 60,
        )
        self.kpi = KPIService(
            self.lookup,
            self.users,
            self.outbound,
            self.cache,
            teams=settings.kpi_team_list,
            ttl_seconds=settings.kpi_cache_minutes * 60,
        )
        self.webhooks = WebhookWorkerPool(
            self.relay.handle_event,
            self.recorder,
            workers=settings.webhook_workers,
            queue_size=settings.webhook_queue_size,
        )

    async def aclose(self) -> None:
        await self.webhooks.stop()
        for client in (self.clickup, self.backend, self.notifier):
            close = getattr(client, "aclose", None)
            if close is not None:
                await close()
        logger.info("Services closed")
