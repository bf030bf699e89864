"""Application configuration"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Database (sync audit log)
    database_url: str = "sqlite:///./tasksync.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Internal task backend
    backend_base_url: str = "http://localhost:8001/api/v1/"
    backend_api_token: str | None = None
    backend_timeout_seconds: float = 10.0

    # ClickUp
    clickup_base_url: str = "https://api.clickup.com/api/v2/"
    clickup_api_token: str = ""
    clickup_team_id: str = ""
    clickup_list_id: str = ""
    clickup_timeout_seconds: float = 15.0
    # When set, webhook deliveries must carry a valid X-Signature header.
    clickup_webhook_secret: str | None = None

    # Task linking
    placeholder_prefix: str = "PENDING_"
    placeholder_max_age_seconds: int = 30
    # Assignee used for inbound syncs when the ClickUp assignee has no mapping.
    # If unset, the assignee field is left out of the update.
    default_assignee_id: int | None = None

    # Caches
    identity_cache_minutes: int = 10
    users_cache_minutes: int = 5
    tags_cache_minutes: int = 10
    kpi_cache_minutes: int = 10
    mapping_miss_diagnostics: bool = True

    # Tag fetching / KPI
    tag_fetch_concurrency: int = 15
    tag_fetch_limit: int = 150
    # Comma-separated list of team tags to compute KPIs for.
    kpi_teams: str = "admin,content,dev"

    # Webhook processing
    webhook_workers: int = 4
    webhook_queue_size: int = 1000

    # Scheduled jobs
    mapping_refresh_minutes: int = 10
    sync_log_retention_days: int = 30

    # Telegram notifications (optional)
    # When both are set, mutating /api/ calls are announced in the chat.
    telegram_bot_token: str | None = None
    telegram_chat_id: str | None = None
    telegram_base_url: str = "https://api.telegram.org/"
    telegram_timeout_seconds: float = 10.0

    # Logging
    log_level: str = "INFO"

    # Auth (optional)
    # When enabled, all routes are protected by HTTP Basic auth,
    # except for /health and the ClickUp webhook receiver.
    auth_enabled: bool = False
    auth_username: str | None = None
    auth_password: str | None = None

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    @property
    def kpi_team_list(self) -> list[str]:
        return [t.strip().lower() for t in (self.kpi_teams or "").split(",") if t.strip()]


settings = Settings()
