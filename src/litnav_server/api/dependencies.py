from fastapi import Request

from ..core.events import EventChannel
from ..sessions.workspace import WorkspaceRegistry, WorkspaceSession


def get_registry(request: Request) -> WorkspaceRegistry:
    return request.app.state.registry


def get_session(request: Request) -> WorkspaceSession:
    # Raises WorkspaceNotConfigured (409) when nothing is open
    return get_registry(request).current()


def get_events(request: Request) -> EventChannel:
    return get_registry(request).events
