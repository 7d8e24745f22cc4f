"""Two-tier render cache: in-process LRU map backed by a content-addressed directory."""

import asyncio
import os
import tempfile
import threading
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from ..exceptions import CacheWriteError
from ..retry import with_write_retry
from ..types import CacheStats, DiagramKey
from .keyer import is_diagram_key

IMAGE_SUFFIX = ".png"
TEMP_SUFFIX = ".tmp"


@dataclass(frozen=True)
class CacheEntry:
    """A rendered image stored under its diagram key."""

    key: DiagramKey
    data: bytes


class RenderCache:
    """Render cache with a memory tier and a durable on-disk tier.

    The durable tier is a flat directory of ``<key>.png`` files. A file that
    exists under its final name and is non-empty is the only validity signal;
    writes go through a temp file in the same directory followed by an atomic
    rename, so readers never observe a partial image.
    """

    def __init__(
        self,
        cache_dir: Path | str,
        max_memory_entries: int = 256,
        write_attempts: int = 3,
    ) -> None:
        """Initialize the cache.

        Args:
            cache_dir: Directory of the durable tier.
            max_memory_entries: Size bound of the memory tier.
            write_attempts: Attempts per durable write before giving up.
        """
        self.cache_dir = Path(cache_dir)
        self.max_memory_entries = max_memory_entries
        self._memory: OrderedDict[DiagramKey, bytes] = OrderedDict()
        self._lock = threading.Lock()
        self._write_durable = with_write_retry(attempts=write_attempts)(self._write_file)

    def startup(self) -> None:
        """Create the cache directory and drop leftovers of interrupted writes."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        for leftover in self.cache_dir.glob(f"*{TEMP_SUFFIX}"):
            try:
                leftover.unlink()
                logger.debug(f"Removed stale cache temp file {leftover.name}")
            except OSError as e:
                logger.warning(f"Could not remove stale cache temp file {leftover.name}: {e}")
        logger.info(f"Render cache ready at {self.cache_dir}")

    def path_for(self, key: DiagramKey) -> Path:
        """Durable-tier path of a key."""
        return self.cache_dir / f"{key}{IMAGE_SUFFIX}"

    def peek(self, key: DiagramKey) -> CacheEntry | None:
        """Look a key up in the memory tier only."""
        with self._lock:
            data = self._memory.get(key)
            if data is None:
                return None
            self._memory.move_to_end(key)
        return CacheEntry(key=key, data=data)

    async def lookup(self, key: DiagramKey) -> CacheEntry | None:
        """Look a key up in memory, then on disk.

        A durable hit is copied into the memory tier.
        """
        entry = self.peek(key)
        if entry is not None:
            logger.debug(f"Memory cache hit for {key[:12]}")
            return entry

        data = await asyncio.to_thread(self._read_file, key)
        if data is None:
            return None

        logger.debug(f"File cache hit for {key[:12]}")
        self._remember(key, data)
        return CacheEntry(key=key, data=data)

    async def store(self, key: DiagramKey, data: bytes) -> bool:
        """Store an image in both tiers.

        Returns:
            True if the durable write succeeded. A failed durable write is
            logged and leaves the memory tier populated.
        """
        self._remember(key, data)
        try:
            await asyncio.to_thread(self._write_durable, key, data)
        except CacheWriteError as e:
            logger.error(f"Failed to save {key[:12]} to file cache: {e}")
            return False

        logger.debug(f"Saved {key[:12]} to file cache")
        return True

    def stats(self) -> CacheStats:
        """Count entries in both tiers."""
        with self._lock:
            memory_entries = len(self._memory)
        try:
            durable_entries = sum(
                1
                for path in self.cache_dir.glob(f"*{IMAGE_SUFFIX}")
                if is_diagram_key(path.stem)
            )
        except OSError:
            durable_entries = 0
        return {"memory_entries": memory_entries, "durable_entries": durable_entries}

    def is_writable(self) -> bool:
        """Check whether the durable tier directory accepts writes."""
        return self.cache_dir.is_dir() and os.access(self.cache_dir, os.W_OK)

    def _remember(self, key: DiagramKey, data: bytes) -> None:
        with self._lock:
            self._memory[key] = data
            self._memory.move_to_end(key)
            while len(self._memory) > self.max_memory_entries:
                evicted, _ = self._memory.popitem(last=False)
                logger.debug(f"Evicted {evicted[:12]} from memory cache")

    def _read_file(self, key: DiagramKey) -> bytes | None:
        path = self.path_for(key)
        try:
            if path.stat().st_size == 0:
                return None
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Could not read cached image {path.name}: {e}")
            return None

    def _write_file(self, key: DiagramKey, data: bytes) -> None:
        fd, temp_name = tempfile.mkstemp(
            dir=self.cache_dir, prefix=f"{key}.", suffix=TEMP_SUFFIX
        )
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_path, self.path_for(key))
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise
