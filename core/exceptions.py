"""
Global exception handlers for the FastAPI application.
"""
import traceback
from typing import Any, Dict, Optional
from fastapi import Request, HTTPException, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
import structlog

logger = structlog.get_logger("exceptions")


class APIException(Exception):
    """Base API exception class."""

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "Internal server error",
        headers: dict = None,
        error_code: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail
        self.headers = headers or {}
        self.error_code = error_code
        self.data = data


class DatabaseException(APIException):
    """Database-related exception."""

    def __init__(self, detail: str = "Database operation failed"):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code="INTERNAL_ERROR"
        )


class AuthenticationException(APIException):
    """Authentication-related exception."""

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
            error_code="UNAUTHORIZED"
        )


class ValidationException(APIException):
    """Validation-related exception."""

    def __init__(self, detail: str = "Validation failed", errors: list = None):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code="VALIDATION_ERROR"
        )
        self.errors = errors or []


class ReviewValidationError(ValidationException):
    """Malformed review input, rejected before any scheduling state changes."""


class ResourceNotFoundException(APIException):
    """Resource not found exception."""

    def __init__(self, detail: str = "Resource not found"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            error_code="NOT_FOUND"
        )


class DuplicateResourceException(APIException):
    """The resource already exists for this user."""

    def __init__(self, detail: str = "Resource already exists"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code="DUPLICATE"
        )


class ConflictException(APIException):
    """Concurrent modification detected."""

    def __init__(self, detail: str = "Resource was modified concurrently"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="CONFLICT"
        )


class EntitlementDeniedException(APIException):
    """The resolved permission set does not include the requested feature."""

    def __init__(
        self,
        detail: str = "This feature requires a premium subscription",
        error_code: str = "SUBSCRIPTION_REQUIRED",
        trial_available: bool = False,
        upgrade_url: str = "/pricing",
    ):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code=error_code,
            data={"trial_available": trial_available, "upgrade_url": upgrade_url}
        )


class QuotaExceededException(APIException):
    """The usage counter for the current period is at its limit."""

    def __init__(
        self,
        detail: str = "Usage limit reached",
        used: int = 0,
        limit: Optional[int] = None,
        remaining: Optional[int] = 0,
        reset_at=None,
        upgrade_url: str = "/pricing",
    ):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code="USAGE_LIMIT_EXCEEDED",
            data={
                "used": used,
                "limit": limit,
                "remaining": remaining,
                "reset_at": reset_at,
                "upgrade_url": upgrade_url,
            }
        )


class TrialNotAllowedException(APIException):
    """A trial cannot be started for this user, email or network."""

    MESSAGES = {
        "already_used": "You have already used your free trial",
        "email_reused": "This email address has already been used for a free trial",
        "ip_abuse": "Too many trials have been started from this network, please contact support",
    }

    def __init__(self, reason: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=self.MESSAGES.get(reason, "Unable to start free trial"),
            error_code="TRIAL_NOT_ALLOWED",
            data={"reason": reason}
        )
        self.reason = reason


class RateLimitException(APIException):
    """Rate limit exceeded exception."""

    def __init__(self, detail: str = "Rate limit exceeded", retry_after: int = 60):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=detail,
            headers={"Retry-After": str(retry_after)},
            error_code="RATE_LIMITED"
        )


class AIServiceException(APIException):
    """AI service-related exception."""

    def __init__(self, detail: str = "AI service error", provider: str = None):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            error_code="AI_SERVICE_ERROR"
        )
        self.provider = provider


async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    """Handle custom API exceptions."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "API exception occurred",
        exception_type=type(exc).__name__,
        status_code=exc.status_code,
        error_code=exc.error_code,
        detail=exc.detail,
        path=str(request.url),
        method=request.method,
        client_host=request.client.host if request.client else None
    )

    error = {
        "type": type(exc).__name__,
        "message": exc.detail,
        "status_code": exc.status_code,
    }
    if exc.error_code:
        error["error_code"] = exc.error_code
    if exc.data is not None:
        error["data"] = jsonable_encoder(exc.data)
    if isinstance(exc, ValidationException) and exc.errors:
        error["details"] = exc.errors

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": error},
        headers=exc.headers
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTP exceptions."""
    logger.warning(
        "HTTP exception occurred",
        status_code=exc.status_code,
        detail=exc.detail,
        path=str(request.url),
        method=request.method,
        client_host=request.client.host if request.client else None
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "type": "HTTPException",
                "message": exc.detail,
                "status_code": exc.status_code
            }
        },
        headers=exc.headers
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors."""
    logger.warning(
        "Validation error occurred",
        errors=exc.errors(),
        path=str(request.url),
        method=request.method,
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "type": "ValidationError",
                "message": "Request validation failed",
                "status_code": status.HTTP_422_UNPROCESSABLE_ENTITY,
                "error_code": "VALIDATION_ERROR",
                "details": jsonable_encoder(exc.errors())
            }
        }
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle SQLAlchemy database exceptions."""
    logger.error(
        "Database error occurred",
        exception_type=type(exc).__name__,
        error_detail=str(exc),
        path=str(request.url),
        method=request.method,
    )

    if isinstance(exc, IntegrityError):
        detail = "Database constraint violation"
        status_code = status.HTTP_400_BAD_REQUEST
    else:
        detail = "Database operation failed"
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "type": "DatabaseError",
                "message": detail,
                "status_code": status_code
            }
        }
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle all other uncaught exceptions."""
    logger.error(
        "Unhandled exception occurred",
        exception_type=type(exc).__name__,
        error_detail=str(exc),
        traceback=traceback.format_exc(),
        path=str(request.url),
        method=request.method,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "type": "InternalServerError",
                "message": "An unexpected error occurred",
                "status_code": status.HTTP_500_INTERNAL_SERVER_ERROR,
                "error_code": "INTERNAL_ERROR"
            }
        }
    )


def setup_exception_handlers(app):
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
