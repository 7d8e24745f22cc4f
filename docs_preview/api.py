"""FastAPI application and route handlers."""

import asyncio
import base64
import binascii
import sys
from contextlib import asynccontextmanager, suppress
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from loguru import logger
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from .config import settings
from .exceptions import DocsPreviewError, InvalidDiagramError, RenderError
from .live import ChangeWatcher, NotificationBroadcaster, session_stream
from .middleware import add_request_id
from .rendering import DiagramService, RenderQueue, create_cache, create_executor
from .types import HealthStatus

RENDER_ERROR_MESSAGE = "Error rendering diagram"


def configure_logging() -> None:
    """Configure logging - should be called at startup, not import time."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=settings.log_level,
        serialize=False,
    )
    if settings.log_file:
        logger.add(
            settings.log_file,
            rotation="10 MB",
            retention="7 days",
            compression="zip",
            level=settings.log_level,
        )


def get_limiter() -> Limiter:
    """Get or create rate limiter."""
    return Limiter(key_func=get_remote_address, storage_uri="memory://")


def decode_source(encoded: str) -> str:
    """Decode a base64 path segment into diagram source.

    Both the standard and the URL-safe alphabet are accepted, with or
    without padding.

    Raises:
        InvalidDiagramError: Not base64, not UTF-8, or empty.
    """
    normalized = encoded.strip().replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    try:
        source = base64.b64decode(normalized, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise InvalidDiagramError(f"Diagram is not valid base64-encoded UTF-8: {e}") from e
    if not source.strip():
        raise InvalidDiagramError("Diagram source is empty")
    return source


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    configure_logging()

    cache = create_cache(settings)
    cache.startup()
    executor = create_executor(settings)
    queue = RenderQueue(executor, cache, concurrency=settings.render_concurrency)
    broadcaster = NotificationBroadcaster(max_pending=settings.session_queue_size)
    watcher = ChangeWatcher(
        settings.docs_dir,
        interval=settings.watch_interval,
        suffixes=settings.watch_suffixes,
    )

    if not executor.available():
        logger.warning(f"Renderer {executor.command[0]!r} not found on PATH, renders will fail")
    if not settings.docs_dir.is_dir():
        logger.warning(f"Docs directory {settings.docs_dir} does not exist")

    app.state.diagram_service = DiagramService(cache, queue)
    app.state.executor = executor
    app.state.broadcaster = broadcaster
    app.state.watcher = watcher
    watch_task = asyncio.create_task(watcher.run(broadcaster))

    logger.info("Application started successfully")

    yield

    watch_task.cancel()
    with suppress(asyncio.CancelledError):
        await watch_task
    await broadcaster.close_all()
    await queue.drain()
    logger.info("Application shutdown complete")


app = FastAPI(
    title="Docs Preview",
    version="1.0.0",
    description="Local documentation preview server with diagram rendering and live reload",
    lifespan=lifespan,
)

app.middleware("http")(add_request_id)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET"],
    allow_headers=["*"],
)

limiter = get_limiter()
app.state.limiter = limiter  # Required by slowapi
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]


def optional_limit(limit_value: str | None):
    """Apply a slowapi limit to a route only when one is configured."""

    def decorator(func):
        if not limit_value:
            return func
        return limiter.limit(limit_value)(func)

    return decorator


@app.exception_handler(DocsPreviewError)
async def docs_preview_exception_handler(request: Request, exc: DocsPreviewError) -> JSONResponse:
    """Handle domain-specific errors."""
    logger.error(f"Docs preview error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "type": exc.__class__.__name__},
    )


def get_diagram_service(request: Request) -> DiagramService:
    """Get diagram service from app state."""
    service = getattr(request.app.state, "diagram_service", None)
    if service is None:
        raise RuntimeError("Service not initialized")
    return service


def get_broadcaster(request: Request) -> NotificationBroadcaster:
    """Get notification broadcaster from app state."""
    broadcaster = getattr(request.app.state, "broadcaster", None)
    if broadcaster is None:
        raise RuntimeError("Broadcaster not initialized")
    return broadcaster


@app.get("/api/render-diagram/{encoded_source:path}", tags=["diagrams"])
@app.get("/api/render-mermaid/{encoded_source:path}", tags=["diagrams"], include_in_schema=False)
@optional_limit(settings.render_rate_limit)
async def render_diagram_endpoint(
    request: Request,
    encoded_source: str,
    service: Annotated[DiagramService, Depends(get_diagram_service)],
) -> Response:
    """Render a base64-encoded mermaid diagram to PNG."""
    try:
        source = decode_source(encoded_source)
    except InvalidDiagramError as e:
        logger.warning(f"Rejected diagram request: {e}")
        return PlainTextResponse(str(e), status_code=status.HTTP_400_BAD_REQUEST)

    try:
        outcome = await service.render(source)
    except RenderError as e:
        logger.error(f"Render error: {e}")
        return PlainTextResponse(
            RENDER_ERROR_MESSAGE, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    return Response(
        content=outcome.data,
        media_type="image/png",
        headers={
            "ETag": f'"{outcome.key}"',
            "Cache-Control": "public, max-age=31536000, immutable",
            "X-Cache": "hit" if outcome.cached else "miss",
        },
    )


@app.get("/sse", tags=["live"])
async def sse_endpoint(
    request: Request,
    broadcaster: Annotated[NotificationBroadcaster, Depends(get_broadcaster)],
) -> StreamingResponse:
    """Push a ``file-changed`` event whenever a watched document is modified."""
    session = await broadcaster.register()
    return StreamingResponse(
        session_stream(
            broadcaster,
            session,
            request.is_disconnected,
            keepalive=settings.sse_keepalive_seconds,
        ),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@app.get("/health", tags=["health"])
async def health_endpoint(request: Request, response: Response) -> dict[str, Any]:
    """Check health status of all components."""
    state = request.app.state
    service: DiagramService | None = getattr(state, "diagram_service", None)
    executor = getattr(state, "executor", None)
    watcher: ChangeWatcher | None = getattr(state, "watcher", None)
    broadcaster: NotificationBroadcaster | None = getattr(state, "broadcaster", None)

    services: HealthStatus = {
        "cache": service is not None and service.cache.is_writable(),
        "renderer": executor is not None and executor.available(),
        "watcher": watcher is not None and watcher.running,
    }
    all_healthy = all(services.values())
    if not all_healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    result: dict[str, Any] = {
        "status": "healthy" if all_healthy else "unhealthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "services": services,
        "sessions": broadcaster.count if broadcaster is not None else 0,
    }
    if service is not None:
        result["queue"] = service.queue.stats()
        result["cache"] = await asyncio.to_thread(service.cache.stats)
    return result


@app.get("/", tags=["health"])
async def root_endpoint() -> dict[str, str]:
    """API information endpoint."""
    return {
        "name": "Docs Preview",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs",
    }


app.openapi_tags = [
    {"name": "diagrams", "description": "Diagram rendering"},
    {"name": "live", "description": "Live reload notifications"},
    {"name": "health", "description": "Health checks"},
]


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    return app
