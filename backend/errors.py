"""
Error taxonomy and the exception handlers that serialise every failure
into the API envelope: {"success": false, "message": ..., "errors"?: [...]}.
"""

import logging
import traceback
from typing import List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, NoResultFound
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Domain failure carrying the HTTP status it maps to"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None, errors: Optional[List[dict]] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.errors = errors


class BadRequestError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(ApiError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(ApiError):
    status_code = status.HTTP_404_NOT_FOUND


class NotImplementedFeatureError(ApiError):
    status_code = status.HTTP_501_NOT_IMPLEMENTED


class DuplicateInvoiceError(ApiError):
    """An invoice already covers this subscription period"""
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "Invoice already exists for this period"):
        super().__init__(message)


class ConcurrentBillingError(ApiError):
    """The subscription period was advanced by another billing run"""
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "Subscription was billed by a concurrent run"):
        super().__init__(message)


def _error_body(message: str, errors: Optional[list] = None, exc: Optional[BaseException] = None) -> dict:
    body = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    if exc is not None and not settings.is_production:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


def _field_errors(raw_errors) -> List[dict]:
    errors = []
    for err in raw_errors:
        # Drop the request location ("body", "query") from the field path
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return errors


async def api_error_handler(request: Request, exc: ApiError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message, exc.errors, exc))


async def validation_error_handler(request: Request, exc):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body("Validation failed", _field_errors(exc.errors()))
    )


async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"Integrity error on {request.method} {request.url.path}: {exc.orig}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body("Duplicate entry found", exc=exc)
    )


async def no_result_handler(request: Request, exc: NoResultFound):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content=_error_body("Record not found", exc=exc)
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None)
    )


async def generic_exception_handler(request: Request, exc: Exception):
    """Catch-all for unexpected errors"""
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("Internal Server Error", exc=exc)
    )


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(NoResultFound, no_result_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
