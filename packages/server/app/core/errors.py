"""
Domain error taxonomy and the JSON error envelope.

Every error leaves the API as ``{"error": ..., "message": ..., "details": [...]}``
with the HTTP status conveying the kind:

- 400 ValidationFailed / Conflict (duplicates, processed tickets, ledger shortfalls)
- 401 Unauthenticated / AccountDeactivated
- 403 Forbidden
- 404 NotFound
- 500 Internal (message withheld unless running in debug outside production)
"""

from __future__ import annotations

from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from app.core.config import get_settings

log = structlog.get_logger()


class AppError(Exception):
    """Base class for errors rendered through the error envelope."""

    status_code = 500
    error = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        error: Optional[str] = None,
        details: Any = None,
    ):
        super().__init__(message or error or self.error)
        self.message = message
        if error is not None:
            self.error = error
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.error}
        if self.message:
            body["message"] = self.message
        if self.details:
            body["details"] = self.details
        return body


class ValidationFailed(AppError):
    status_code = 400
    error = "Validation failed"


class Unauthenticated(AppError):
    status_code = 401
    error = "Access denied"


class AccountDeactivated(Unauthenticated):
    error = "Account is deactivated"


class Forbidden(AppError):
    status_code = 403
    error = "Access denied"


class NotFound(AppError):
    status_code = 404
    error = "Not found"


class Conflict(AppError):
    status_code = 400
    error = "Conflict"


class Internal(AppError):
    status_code = 500
    error = "Internal server error"


# ---------------------------------------------------------------------------
# Named conflicts and lookups
# ---------------------------------------------------------------------------


class DuplicateEntry(Conflict):
    error = "Duplicate entry"


class AlreadyProcessed(Conflict):
    error = "Ticket already processed"


class InvalidTransition(Conflict):
    error = "Invalid status transition"


class InsufficientAvailableQuantity(Conflict):
    error = "Insufficient available quantity"


class OverDeallocation(Conflict):
    error = "Cannot deallocate more than allocated"


class AllocationNotFound(NotFound):
    error = "Allocation not found"


class RequestNotFound(NotFound):
    error = "Request not found"


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _validation_details(exc: RequestValidationError) -> list[dict[str, Any]]:
    details = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        details.append({"field": ".".join(loc), "message": err.get("msg", "")})
    return details


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("request.failed", path=request.url.path, error=exc.error)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    err = ValidationFailed(details=_validation_details(exc))
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("request.unhandled_error", path=request.url.path, method=request.method)
    err = Internal(str(exc) if get_settings().expose_errors else None)
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
