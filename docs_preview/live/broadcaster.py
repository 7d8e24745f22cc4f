"""Viewer session registry pushing change events to every connected viewer."""

import asyncio
import itertools

from loguru import logger

from ..exceptions import SessionSendError
from .models import ChangeEvent

_session_ids = itertools.count(1)


class ViewerSession:
    """One connected live-reload viewer.

    Events are buffered in a bounded queue and drained by the viewer's
    response stream, in the order they were sent.
    """

    def __init__(self, max_pending: int = 100) -> None:
        self.id = next(_session_ids)
        self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=max_pending)
        self.closed = False

    def send(self, event: ChangeEvent) -> None:
        """Queue an event without waiting.

        Raises:
            SessionSendError: The session is closed or its buffer is full.
        """
        if self.closed:
            raise SessionSendError(f"Session {self.id} is closed")
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull as e:
            raise SessionSendError(f"Session {self.id} is not keeping up") from e

    async def receive(self, timeout: float | None = None) -> ChangeEvent | None:
        """Next event, or None if none arrives within ``timeout`` seconds."""
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def close(self) -> None:
        self.closed = True

    def __repr__(self) -> str:
        return f"ViewerSession(id={self.id}, closed={self.closed})"


class NotificationBroadcaster:
    """Owns the set of viewer sessions; the only place they are added or removed."""

    def __init__(self, max_pending: int = 100) -> None:
        self.max_pending = max_pending
        self._sessions: dict[int, ViewerSession] = {}
        self._lock = asyncio.Lock()

    @property
    def count(self) -> int:
        return len(self._sessions)

    async def register(self) -> ViewerSession:
        """Open a session and add it to the registry."""
        session = ViewerSession(max_pending=self.max_pending)
        async with self._lock:
            self._sessions[session.id] = session
        logger.info(f"Viewer session {session.id} connected ({self.count} open)")
        return session

    async def unregister(self, session: ViewerSession) -> None:
        """Remove a session; does nothing if it is already gone."""
        async with self._lock:
            removed = self._sessions.pop(session.id, None)
        session.close()
        if removed is not None:
            logger.info(f"Viewer session {session.id} disconnected ({self.count} open)")

    async def publish(self, event: ChangeEvent) -> int:
        """Send an event to every registered session.

        A session that fails to accept the event is dropped; the others
        still receive it.

        Returns:
            Number of sessions the event was delivered to.
        """
        async with self._lock:
            sessions = list(self._sessions.values())

        delivered = 0
        failed: list[ViewerSession] = []
        for session in sessions:
            try:
                session.send(event)
            except Exception as e:  # noqa: BLE001
                logger.warning(f"Dropping viewer session {session.id}: {e}")
                failed.append(session)
            else:
                delivered += 1

        for session in failed:
            await self.unregister(session)

        logger.debug(f"Published {event.file_identifier} to {delivered} session(s)")
        return delivered

    async def close_all(self) -> None:
        """Close every session, e.g. at shutdown."""
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.close()
