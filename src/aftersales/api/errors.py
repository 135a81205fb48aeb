"""Maps the lifecycle's failure taxonomy onto HTTP responses.

The specific handlers are registered alongside Protean's generic ones;
Starlette picks the handler for the most specific class in the MRO, so an
AccessDeniedError is a 403 even though it is also a ValidationError.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ExpectedVersionError
from protean.integrations.fastapi import register_exception_handlers

from aftersales.errors import (
    AccessDeniedError,
    ConcurrentModificationError,
    IneligibleError,
    InvalidTransitionError,
    NotFoundError,
)

logger = structlog.get_logger(__name__)

_STATUS_CODES = {
    IneligibleError: 400,
    InvalidTransitionError: 400,
    AccessDeniedError: 403,
    ConcurrentModificationError: 409,
}


def _handler_for(status_code: int):
    async def handler(request: Request, exc) -> JSONResponse:
        logger.info(
            "Request rejected",
            path=request.url.path,
            error_type=type(exc).__name__,
            status_code=status_code,
        )
        return JSONResponse(status_code=status_code, content={"error": exc.messages})

    return handler


async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": {"_entity": [exc.message]}})


async def _version_conflict(request: Request, exc: ExpectedVersionError) -> JSONResponse:
    logger.warning("Version conflict at commit", path=request.url.path, detail=str(exc))
    return JSONResponse(
        status_code=409,
        content={"error": {"version": ["The record was modified by another request; reload and retry"]}},
    )


def install_error_handlers(app: FastAPI) -> None:
    for exc_class, status_code in _STATUS_CODES.items():
        app.add_exception_handler(exc_class, _handler_for(status_code))
    app.add_exception_handler(NotFoundError, _not_found)
    app.add_exception_handler(ExpectedVersionError, _version_conflict)
    register_exception_handlers(app)
