"""Translation of domain errors into HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from schedulehub.domain.errors import (
    CollaboratorError,
    ConflictError,
    ExpiredError,
    InvalidStateError,
    NotFoundError,
    SchedulingError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: tuple[tuple[type[SchedulingError], int], ...] = (
    (NotFoundError, 404),
    (InvalidStateError, 409),
    (ConflictError, 409),
    (ExpiredError, 410),
    (ValidationError, 422),
    (CollaboratorError, 502),
)


def status_for(exc: SchedulingError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.warning(
            "api.collaborator_error",
            extra={"path": request.url.path, "error": exc.message, "status_code": status_code},
        )
    body = {"error": exc.code, "message": exc.message}
    field = getattr(exc, "field", None)
    if field:
        body["field"] = field
    return JSONResponse(status_code=status_code, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SchedulingError, scheduling_error_handler)
