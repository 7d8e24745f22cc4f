"""Diagram rendering service tying the keyer, cache and queue together."""

from dataclasses import dataclass

from loguru import logger

from ..types import DiagramKey
from .cache import RenderCache
from .keyer import diagram_key
from .queue import RenderQueue


@dataclass(frozen=True)
class RenderOutcome:
    """Image returned to a caller, with where it came from."""

    key: DiagramKey
    data: bytes
    cached: bool


class DiagramService:
    """Diagram service handling cache lookups and queued renders."""

    def __init__(self, cache: RenderCache, queue: RenderQueue) -> None:
        """Initialize with injected dependencies."""
        self.cache = cache
        self.queue = queue

    async def render(self, source: str) -> RenderOutcome:
        """Return the image for a diagram source, rendering it on a cache miss.

        Raises:
            RenderError: The diagram could not be rendered.
        """
        key = diagram_key(source)
        entry = await self.cache.lookup(key)
        if entry is not None:
            logger.debug(f"Cache hit for {key[:12]}")
            return RenderOutcome(key=key, data=entry.data, cached=True)

        logger.info(f"Cache miss for {key[:12]}, queuing render task")
        data = await self.queue.submit(key, source)
        return RenderOutcome(key=key, data=data, cached=False)
