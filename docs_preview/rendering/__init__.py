"""Diagram rendering: content keys, two-tier cache, render queue and executor."""

import shlex

from ..config import Settings
from ..exceptions import ConfigurationError
from .cache import CacheEntry, RenderCache
from .executor import MermaidExecutor, RenderWorkspace
from .keyer import diagram_key, is_diagram_key
from .protocols import Executor
from .queue import RenderQueue
from .service import DiagramService, RenderOutcome


def create_executor(settings: Settings) -> MermaidExecutor:
    """Create the mermaid executor from settings.

    Raises:
        ConfigurationError: The renderer command is empty.
    """
    command = shlex.split(settings.renderer_command)
    if not command:
        raise ConfigurationError("Renderer command is empty, set DOCS_RENDERER_COMMAND")
    return MermaidExecutor(
        command=command,
        width=settings.render_width,
        height=settings.render_height,
        scale=settings.render_scale,
        timeout=settings.render_timeout,
    )


def create_cache(settings: Settings) -> RenderCache:
    """Create the render cache from settings."""
    return RenderCache(
        settings.cache_dir,
        max_memory_entries=settings.memory_cache_max_entries,
        write_attempts=settings.cache_write_attempts,
    )


__all__ = [
    "CacheEntry",
    "DiagramService",
    "Executor",
    "MermaidExecutor",
    "RenderCache",
    "RenderOutcome",
    "RenderQueue",
    "RenderWorkspace",
    "create_cache",
    "create_executor",
    "diagram_key",
    "is_diagram_key",
]
