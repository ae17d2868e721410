"""Exception handlers: engine exceptions to HTTP responses.

Caller errors arrive as ``ValueError`` whose message names the problem
("Session not found: ...", "Session already exists: ...", "Session is not
active: ..."); the handler picks the status by keyword so routes stay on the
happy path.  ``FlowConfigurationError`` means the deployed flows are broken
and is reported as a 500.

Response bodies never echo the exception text: messages carry client and
session identifiers that belong in the server log only.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from leadflow_engine.errors import FlowConfigurationError

logger = logging.getLogger(__name__)

# First keyword found in the lower-cased message wins
_VALUE_ERROR_STATUS: list[tuple[str, int]] = [
    ("already exists", 409),
    ("not found", 404),
    ("not active", 400),
]

_DETAIL_BY_STATUS: dict[int, str] = {
    400: "Invalid request",
    404: "Resource not found",
    409: "Resource already exists",
    500: "Internal server error",
}


def status_for_value_error(message: str) -> int:
    lowered = message.lower()
    for keyword, status in _VALUE_ERROR_STATUS:
        if keyword in lowered:
            return status
    return 400


def _error(status: int) -> JSONResponse:
    return JSONResponse(status_code=status, content={"detail": _DETAIL_BY_STATUS[status]})


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    status = status_for_value_error(str(exc))
    logger.warning("%s %s -> %d: %s", request.method, request.url.path, status, exc)
    return _error(status)


async def flow_config_error_handler(
    request: Request, exc: FlowConfigurationError
) -> JSONResponse:
    logger.error("Flow configuration error on %s %s: %s", request.method, request.url.path, exc)
    return _error(500)


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: full traceback to the log, generic 500 to the client."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500)


def install_error_handlers(app: FastAPI) -> None:
    # FlowConfigurationError is not a ValueError, so registration order is free
    app.add_exception_handler(ValueError, value_error_handler)
    app.add_exception_handler(FlowConfigurationError, flow_config_error_handler)
    app.add_exception_handler(Exception, generic_error_handler)
