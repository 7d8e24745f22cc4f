"""Docs Preview - local documentation preview server with diagram rendering and live reload."""

from .api import app, create_app
from .live import ChangeEvent, ChangeWatcher, NotificationBroadcaster
from .rendering import DiagramService, RenderCache, RenderQueue, diagram_key

__version__ = "1.0.0"

__all__ = [
    "ChangeEvent",
    "ChangeWatcher",
    "DiagramService",
    "NotificationBroadcaster",
    "RenderCache",
    "RenderQueue",
    "app",
    "create_app",
    "diagram_key",
]
