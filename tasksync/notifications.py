"""Chat notifications for API writes"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from tasksync.security import WEBHOOK_PATH

MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


def format_api_change(path: str, method: str, status_code: int) -> str:
    return f"*API Update*\nPath: `{path}`\nMethod: {method}\nStatus: {status_code}"


class ApiChangeNotifyMiddleware(BaseHTTPMiddleware):
    """Post a chat message after every mutating /api/ call.

    The notifier is taken from the running ServiceContainer; nothing is sent
    when it has none. Webhook deliveries are skipped by default since ClickUp
    sends one per change.
    """

    def __init__(self, app, *, skip_paths: set[str] | None = None):
        super().__init__(app)
        self._skip_paths = skip_paths if skip_paths is not None else {WEBHOOK_PATH}

    def _should_notify(self, request: Request) -> bool:
        path = request.url.path
        return (
            path.startswith("/api/")
            and request.method in MUTATING_METHODS
            and path not in self._skip_paths
        )

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        if self._should_notify(request):
            services = getattr(request.app.state, "services", None)
            notifier = getattr(services, "notifier", None)
            if notifier is not None:
                await notifier.send_message(
                    format_api_change(request.url.path, request.method, response.status_code)
                )
        return response
