"""FastAPI error mapping for the marketplace error taxonomy.

Layered on top of protean's own handlers (``ValidationError`` → 400,
``ObjectNotFoundError`` → 404) so workflow errors reach clients with a status
code and a stable ``error`` code they can render an actionable message from.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from shared.errors import (
    AlreadyResolved,
    Conflict,
    DuplicatePayout,
    DuplicateRefund,
    GatewayError,
    InvalidTransition,
    NotEligible,
)

logger = structlog.get_logger(__name__)

ERROR_STATUS_CODES = {
    NotEligible: 400,
    InvalidTransition: 409,
    AlreadyResolved: 409,
    Conflict: 409,
    DuplicatePayout: 409,
    DuplicateRefund: 409,
    GatewayError: 502,
}


def _error_body(exc) -> dict:
    return {"error": exc.code, "messages": exc.messages}


def _make_handler(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        logger.info(
            "Request failed",
            path=request.url.path,
            error=exc.code,
            status_code=status_code,
        )
        return JSONResponse(status_code=status_code, content=_error_body(exc))

    return handler


def register_error_handlers(app: FastAPI) -> None:
    """Install protean's handlers plus the marketplace error mapping on ``app``."""
    register_exception_handlers(app)
    for exc_class, status_code in ERROR_STATUS_CODES.items():
        app.add_exception_handler(exc_class, _make_handler(status_code))
