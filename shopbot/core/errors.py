"""Exception handling utilities."""

from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from shopbot.conversation.errors import (
    ActionFailed,
    GuardFailed,
    InvalidTransition,
    PersistenceConflict,
    TransitionError,
)

logger = logging.getLogger("shopbot.errors")

INTERNAL_ERROR_CODES = frozenset({"internal_error"})


def transition_status_code(exc: TransitionError) -> int:
    """HTTP status for a failed transition."""

    if isinstance(exc, InvalidTransition):
        return 409
    if isinstance(exc, GuardFailed):
        return 422
    if isinstance(exc, PersistenceConflict) or isinstance(exc.__cause__, PersistenceConflict):
        return 503
    if isinstance(exc, ActionFailed):
        if exc.error_code is None or exc.error_code in INTERNAL_ERROR_CODES:
            return 500
        return 422
    return 500


async def transition_error_handler(request: Request, exc: TransitionError) -> JSONResponse:
    """Render a rejected transition with the messages the customer should see."""

    status_code = transition_status_code(exc)
    if status_code >= 500:
        logger.error("Transition failed on %s %s: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("Transition rejected on %s %s: %s", request.method, request.url.path, exc.message)

    headers = {"Retry-After": "1"} if status_code == 503 else None
    return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # noqa: D401
    """Return a generic JSON error response while logging the exception."""

    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "message": "Something unexpected happened. Please try again later.",
        },
    )
