"""
Domain exceptions and the FastAPI handlers that render them.

Every error response follows the same JSON envelope::

    {
        "error": true,
        "message": "<human-readable description>",
        "details": {...}          # only when the error carries context
    }

The ledger services raise the exceptions below without importing FastAPI,
so the core stays usable outside the HTTP layer.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from invoice_ledger.core.resilience import CircuitBreakerError

logger = logging.getLogger(__name__)


# ────────────────────────────────────────────────────────────────────────────
# Domain exceptions  (raised by service layer, caught by handlers below)
# ────────────────────────────────────────────────────────────────────────────


class AppException(Exception):
    """Base exception for all application-level errors."""

    def __init__(self, status_code: int, message: str, details: Any = None):
        self.status_code = status_code
        self.message = message
        self.details = details
        super().__init__(message)


class NotFoundException(AppException):
    """Resource not found (404)."""

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            status_code=404,
            message=f"{resource} with id '{identifier}' not found",
            details={"resource": resource, "id": str(identifier)},
        )


class ConflictException(AppException):
    """Request conflicts with the current ledger state (409)."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(status_code=409, message=message, details=details)


class BusinessRuleViolation(AppException):
    """Business rule was violated (422)."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(status_code=422, message=message, details=details)


class ForbiddenException(AppException):
    """Caller is not allowed to use an operator-only route (403)."""

    def __init__(self, message: str = "Operator credentials required"):
        super().__init__(status_code=403, message=message)


class InvalidTransitionException(ConflictException):
    """Invoice status change not permitted by the lifecycle."""

    def __init__(self, invoice_id: Any, current: Any, requested: Any):
        self.invoice_id = invoice_id
        super().__init__(
            f"Invoice '{invoice_id}' cannot move from '{_value(current)}' "
            f"to '{_value(requested)}'. Lifecycle is pending → funded → settled.",
            details={
                "invoice_id": str(invoice_id),
                "current_status": _value(current),
                "requested_status": _value(requested),
            },
        )


class AlreadyFundedException(ConflictException):
    """Invest called on an invoice that is no longer pending."""

    def __init__(self, invoice_id: Any, current: Any):
        self.invoice_id = invoice_id
        super().__init__(
            f"Invoice '{invoice_id}' is already {_value(current)} and cannot be financed again",
            details={"invoice_id": str(invoice_id), "current_status": _value(current)},
        )


class NotFundedException(ConflictException):
    """Settle called on an invoice that is not funded."""

    def __init__(self, invoice_id: Any, current: Any):
        self.invoice_id = invoice_id
        super().__init__(
            f"Invoice '{invoice_id}' must be funded to settle (current status: {_value(current)})",
            details={"invoice_id": str(invoice_id), "current_status": _value(current)},
        )


def _value(status: Any) -> str:
    return getattr(status, "value", str(status))


# ────────────────────────────────────────────────────────────────────────────
# FastAPI exception handler registration
# ────────────────────────────────────────────────────────────────────────────


def add_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI application instance."""

    @app.exception_handler(AppException)
    async def app_exception_handler(
        request: Request, exc: AppException
    ) -> JSONResponse:
        """Handle domain-specific exceptions raised by the service layer."""
        content = {"error": True, "message": exc.message}
        if exc.details is not None:
            content["details"] = exc.details
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(CircuitBreakerError)
    async def circuit_breaker_handler(
        request: Request, exc: CircuitBreakerError
    ) -> JSONResponse:
        """The database breaker is open: tell the caller when to come back."""
        logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=503,
            headers={"Retry-After": str(int(exc.retry_after) + 1)},
            content={
                "error": True,
                "message": f"Service temporarily unavailable: circuit is open ({exc.name})",
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        """Handle standard HTTP exceptions (e.g. 404 from path-not-found)."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": True, "message": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Return a 422 listing each field that failed validation and why."""
        errors = []
        for err in exc.errors():
            loc = " -> ".join(str(part) for part in err["loc"])
            errors.append({"field": loc, "message": err["msg"]})
        return JSONResponse(
            status_code=422,
            content={"error": True, "message": "Validation failed", "details": errors},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Catch-all for unexpected exceptions."""
        logger.exception(
            "Unhandled exception on %s %s", request.method, request.url.path
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": True,
                "message": "Internal Server Error. Please contact support.",
            },
        )
