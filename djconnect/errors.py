"""
Domain errors and their HTTP mapping

Services raise these; the exception handlers registered on the app turn them
into JSON bodies of the form {"error": "..."}.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base class for errors surfaced to API callers"""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(DomainError):
    status_code = 404


class ValidationError(DomainError):
    status_code = 400


class InvalidState(DomainError):
    status_code = 400


class Unauthorized(DomainError):
    status_code = 401


class PermissionDenied(DomainError):
    status_code = 403


class GatewayError(DomainError):
    """Payment gateway call failed (payment link, payment lookup, payout)"""

    status_code = 502


class DeliveryFailure(Exception):
    """Chat message could not be delivered. Logged, never surfaced to API callers."""

    def __init__(self, message: str, blocked: bool = False):
        super().__init__(message)
        self.blocked = blocked


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        if exc.status_code >= 500:
            logger.error(f"❌ {request.method} {request.url.path} - {type(exc).__name__}: {exc}")
        else:
            logger.warning(f"⚠️ {request.method} {request.url.path} - {type(exc).__name__}: {exc}")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=400,
            content={"error": "Validation failed", "details": jsonable_errors(exc)},
        )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Strip non-serializable context (e.g. exception instances) from pydantic errors"""
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
