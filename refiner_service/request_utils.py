"""
Request helpers shared by the route modules.

- run_until_disconnect: cancels in-flight work when the client goes away
- http_error: maps refiner exceptions to HTTP responses
"""

import asyncio
import logging
from typing import Awaitable, TypeVar

from fastapi import HTTPException, Request

from refiner.common.error_handling import (
    ExtractionError,
    InputValidationError,
    RefinerError,
    SessionNotFoundError,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# nginx's non-standard "client closed request"
CLIENT_CLOSED_REQUEST = 499

DISCONNECT_POLL_SECONDS = 0.5

UPSTREAM_UNAVAILABLE_DETAIL = (
    "The AI service is currently unavailable. Please try again in a moment."
)


async def run_until_disconnect(
    request: Request,
    work: Awaitable[T],
    poll_interval: float = DISCONNECT_POLL_SECONDS,
) -> T:
    """
    Await ``work``, cancelling it if the client disconnects first.

    Cancellation aborts any in-flight model call, releasing its upstream
    connection.

    Raises:
        HTTPException: 499 if the client disconnected
    """
    task = asyncio.ensure_future(work)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=poll_interval)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.info(f"Client disconnected, cancelling {request.method} {request.url.path}")
                task.cancel()
                await asyncio.wait({task})
                raise HTTPException(status_code=CLIENT_CLOSED_REQUEST, detail="Client closed request")
    finally:
        if not task.done():
            task.cancel()


def http_error(error: RefinerError) -> HTTPException:
    """Translate a refiner exception into the HTTPException reported to the client."""
    if isinstance(error, (InputValidationError, ExtractionError, SessionNotFoundError)):
        return HTTPException(status_code=400, detail=error.message)

    if isinstance(error, UpstreamUnavailableError):
        logger.error(f"Language model unavailable: {error.message}", exc_info=error.cause)
        return HTTPException(status_code=503, detail=UPSTREAM_UNAVAILABLE_DETAIL)

    logger.error(f"Unhandled refiner error: {error.message}")
    return HTTPException(status_code=500, detail="An unexpected error occurred. Please try again.")
