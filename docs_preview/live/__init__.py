"""Live reload: change watcher, session broadcaster and SSE framing."""

from .broadcaster import NotificationBroadcaster, ViewerSession
from .models import ChangeEvent
from .stream import FILE_CHANGED_EVENT, format_sse, session_stream
from .watcher import ChangeWatcher

__all__ = [
    "FILE_CHANGED_EVENT",
    "ChangeEvent",
    "ChangeWatcher",
    "NotificationBroadcaster",
    "ViewerSession",
    "format_sse",
    "session_stream",
]
