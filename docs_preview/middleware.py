"""Request tracking middleware."""

import time
import uuid

from fastapi import Request
from loguru import logger


async def add_request_id(request: Request, call_next):
    """Tag each request with an ID and log how long its handler took.

    Args:
        request: Incoming FastAPI request.
        call_next: Next middleware or handler in chain.

    Returns:
        Response with X-Request-ID and X-Process-Time headers. For streaming
        responses the time covers the handler only, not the stream.

    """
    request_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = request_id
    started = time.perf_counter()

    with logger.contextualize(request_id=request_id):
        logger.debug(
            "Request started",
            method=request.method,
            path=request.url.path,
            client=request.client.host if request.client else None,
        )

        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{elapsed_ms:.1f}ms"

        logger.debug(
            f"Request completed in {elapsed_ms:.1f}ms",
            status_code=response.status_code,
        )

        return response
