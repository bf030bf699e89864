"""API routes"""

from tasksync.api import dashboard, debug, kpi, sync, task_push, tasks, telegram, users, webhook

__all__ = ["webhook", "tasks", "task_push", "debug", "users", "kpi", "sync", "dashboard", "telegram"]
