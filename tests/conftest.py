"""Shared test fixtures."""

import asyncio
import os
import sys
from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import AsyncClient

# Set test environment before the app reads its settings
os.environ["DOCS_LOG_LEVEL"] = "ERROR"  # Reduce log noise
os.environ.pop("DOCS_RENDER_RATE_LIMIT", None)  # Render route runs unlimited, as by default

from docs_preview import app  # noqa: E402
from docs_preview.exceptions import RenderError, RenderFailure  # noqa: E402

PNG_HEADER = b"\x89PNG\r\n\x1a\n"


class FakeExecutor:
    """Executor double that records calls and concurrency."""

    def __init__(self, delay: float = 0.0, fail: RenderFailure | None = None) -> None:
        self.delay = delay
        self.fail = fail
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0
        self.gate: asyncio.Event | None = None

    async def execute(self, source: str) -> bytes:
        self.calls.append(source)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail is not None:
                raise RenderError(self.fail, "fake failure")
            return PNG_HEADER + source.encode("utf-8")
        finally:
            self.active -= 1

    def available(self) -> bool:
        return True


@pytest.fixture
def png_header() -> bytes:
    """Bytes every fake render starts with."""
    return PNG_HEADER


@pytest.fixture
def renderer_command(tmp_path: Path) -> Callable[[str], list[str]]:
    """Factory writing a fake renderer script and returning the command running it.

    The script body sees ``sys``, ``input_path`` and ``output_path``.
    """

    def make(body: str) -> list[str]:
        script = tmp_path / "fake_mmdc.py"
        script.write_text(
            "import sys\n"
            "args = sys.argv[1:]\n"
            "input_path = args[args.index('-i') + 1]\n"
            "output_path = args[args.index('-o') + 1]\n" + body,
            encoding="utf-8",
        )
        return [sys.executable, str(script)]

    return make


@pytest.fixture
def fake_executor() -> FakeExecutor:
    """Fake executor fixture."""
    return FakeExecutor()


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    """Empty durable cache directory."""
    path = tmp_path / "cache"
    path.mkdir()
    return path


@pytest_asyncio.fixture
async def client(cache_dir: Path, fake_executor: FakeExecutor) -> AsyncGenerator[AsyncClient, None]:
    """Test client fixture - components injected via app.state."""
    from httpx import ASGITransport

    from docs_preview.live import ChangeWatcher, NotificationBroadcaster
    from docs_preview.rendering import DiagramService, RenderCache, RenderQueue

    cache = RenderCache(cache_dir)
    queue = RenderQueue(fake_executor, cache, concurrency=2)

    app.state.diagram_service = DiagramService(cache, queue)
    app.state.executor = fake_executor
    app.state.broadcaster = NotificationBroadcaster()
    app.state.watcher = ChangeWatcher(cache_dir.parent)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await queue.drain()


@pytest.fixture
def sample_diagram() -> str:
    """Sample mermaid diagram."""
    return "flowchart\nA-->B"
