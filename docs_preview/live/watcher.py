"""Polling change watcher for the document directory."""

import asyncio
import hashlib
import os
import time
from collections.abc import AsyncIterator, Iterable
from pathlib import Path

from loguru import logger

from .broadcaster import NotificationBroadcaster
from .models import ChangeEvent

# (st_mtime_ns, st_size, content digest or None)
Signature = tuple[int, int, str | None]

# Files modified this recently may be rewritten again within one timestamp tick
RACY_WINDOW_NS = 2_000_000_000


class ChangeWatcher:
    """Watches a directory tree for modified files.

    Files are compared by ``(st_mtime_ns, st_size)`` between scans. Only
    modifications are reported; files that appear or disappear between two
    scans are tracked silently.

    A same-size rewrite inside one mtime tick leaves that pair unchanged on
    coarse-timestamp filesystems. Files whose mtime falls within
    ``racy_window_ns`` of the scan are therefore also hashed, so such rewrites
    are still seen while the file is recent.
    """

    def __init__(
        self,
        root: Path | str,
        interval: float = 0.5,
        suffixes: Iterable[str] = (),
        racy_window_ns: int = RACY_WINDOW_NS,
    ) -> None:
        self.root = Path(root)
        self.interval = interval
        self.suffixes = tuple(suffixes)
        self.racy_window_ns = racy_window_ns
        self.running = False

    def snapshot(self) -> dict[str, Signature]:
        """Signatures of every watched file, keyed by path relative to the root."""
        scanned_at = time.time_ns()
        signatures: dict[str, Signature] = {}
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = [name for name in dirnames if not name.startswith(".")]
            for filename in filenames:
                if self.suffixes and not filename.endswith(self.suffixes):
                    continue
                path = Path(dirpath) / filename
                try:
                    stat = path.stat()
                    digest = None
                    if scanned_at - stat.st_mtime_ns < self.racy_window_ns:
                        digest = hashlib.sha256(path.read_bytes()).hexdigest()
                except OSError:
                    # Removed between listing and reading.
                    continue
                identifier = path.relative_to(self.root).as_posix()
                signatures[identifier] = (stat.st_mtime_ns, stat.st_size, digest)
        return signatures

    @staticmethod
    def changed(before: Signature, after: Signature) -> bool:
        """Compare two signatures of one file.

        Digests only decide when both scans hashed the file; a file aging out
        of the racy window is not a change.
        """
        if before[:2] != after[:2]:
            return True
        return before[2] is not None and after[2] is not None and before[2] != after[2]

    @classmethod
    def diff(cls, previous: dict[str, Signature], current: dict[str, Signature]) -> list[str]:
        """Identifiers present in both snapshots whose signature changed."""
        return sorted(
            identifier
            for identifier, signature in current.items()
            if identifier in previous and cls.changed(previous[identifier], signature)
        )

    async def events(self) -> AsyncIterator[ChangeEvent]:
        """Yield one event per observed modification, forever.

        Each call starts from a fresh baseline, so the sequence can be
        restarted after a failure.
        """
        previous = await asyncio.to_thread(self.snapshot)
        logger.info(f"Watching {self.root} ({len(previous)} files)")
        while True:
            await asyncio.sleep(self.interval)
            current = await asyncio.to_thread(self.snapshot)
            for identifier in self.diff(previous, current):
                logger.info(f"File changed: {identifier}")
                yield ChangeEvent(file_identifier=identifier)
            previous = current

    async def run(self, broadcaster: NotificationBroadcaster) -> None:
        """Feed every change event into the broadcaster until cancelled.

        A failing scan restarts the event sequence from a new baseline.
        """
        self.running = True
        try:
            while True:
                try:
                    async for event in self.events():
                        await broadcaster.publish(event)
                except Exception:  # noqa: BLE001
                    logger.exception(f"Watching {self.root} failed, restarting")
                    await asyncio.sleep(self.interval)
        finally:
            self.running = False
