"""Type definitions for the docs preview server."""

from typing_extensions import TypedDict

DiagramKey = str


class QueueStats(TypedDict):
    """Snapshot of the render queue."""

    pending: int
    running: int
    in_flight: int
    concurrency: int


class CacheStats(TypedDict):
    """Entry counts of both cache tiers."""

    memory_entries: int
    durable_entries: int


class HealthStatus(TypedDict):
    """Health status of system components."""

    cache: bool
    renderer: bool
    watcher: bool
