"""Server-Sent Events framing for viewer sessions."""

from collections.abc import AsyncIterator, Awaitable, Callable

from .broadcaster import NotificationBroadcaster, ViewerSession

FILE_CHANGED_EVENT = "file-changed"
KEEPALIVE = ": ping\n\n"


def format_sse(event: str, data: str) -> str:
    """Frame one SSE message; multi-line data becomes several ``data:`` lines."""
    lines = data.splitlines() or [""]
    payload = "".join(f"data: {line}\n" for line in lines)
    return f"event: {event}\n{payload}\n"


async def session_stream(
    broadcaster: NotificationBroadcaster,
    session: ViewerSession,
    is_disconnected: Callable[[], Awaitable[bool]],
    keepalive: float = 15.0,
) -> AsyncIterator[str]:
    """Yield SSE frames for a session until the viewer goes away.

    The session is unregistered however the stream ends.
    """
    try:
        yield ": connected\n\n"
        while not session.closed:
            if await is_disconnected():
                break
            event = await session.receive(timeout=keepalive)
            if event is None:
                yield KEEPALIVE
                continue
            yield format_sse(FILE_CHANGED_EVENT, event.file_identifier)
    finally:
        await broadcaster.unregister(session)
