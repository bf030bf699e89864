"""Shared route dependencies"""

from starlette.requests import Request

from tasksync.services.container import ServiceContainer


def get_services(request: Request) -> ServiceContainer:
    """The ServiceContainer created in the application lifespan"""
    return request.app.state.services
