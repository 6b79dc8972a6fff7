"""
Typed application errors and the single HTTP translation boundary

Services and pipeline stages raise these; nothing outside
register_exception_handlers() formats an error response.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from farmhub.utils.date import utc_now

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for every error that maps to an HTTP response"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"
    default_message: str = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.default_message
        self.extra: Dict[str, Any] = extra
        super().__init__(self.message)


# -------------------------
# AUTHENTICATION (401)
# -------------------------
class AuthenticationRequired(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "AUTHENTICATION_REQUIRED"
    default_message = "Authentication required"


class TokenExpired(AuthenticationRequired):
    code = "TOKEN_EXPIRED"
    default_message = "Token has expired"


class AccountNotFound(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "ACCOUNT_NOT_FOUND"
    default_message = "User not found"


# -------------------------
# AUTHORIZATION (403)
# -------------------------
class AccountInactive(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "ACCOUNT_INACTIVE"
    default_message = "User account is deactivated"


class InsufficientPermissions(AppError):
    """
    A gate predicate failed. Always names the predicate that failed
    (requirement) and, where it applies, what was required and what the
    caller currently holds.
    """

    status_code = status.HTTP_403_FORBIDDEN
    code = "INSUFFICIENT_PERMISSIONS"
    default_message = "Insufficient permissions"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        requirement: str,
        required: Optional[Sequence[Any]] = None,
        current: Any = None,
    ):
        extra: Dict[str, Any] = {"requirement": requirement}
        if required is not None:
            extra["required"] = list(required)
        if current is not None:
            extra["current"] = current
        super().__init__(message, **extra)


# -------------------------
# FARM CONTEXT
# -------------------------
class FarmSelectionRequired(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "FARM_SELECTION_REQUIRED"
    default_message = "Farm selection required"


class NoFarmRoleAssigned(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "NO_FARM_ROLE_ASSIGNED"
    default_message = "No farm role assigned"


class FarmInactive(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FARM_INACTIVE"
    default_message = "Farm is not active"


# -------------------------
# REQUEST / RESOURCE
# -------------------------
class ValidationFailed(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_FAILED"
    default_message = "Validation failed"

    def __init__(self, errors: List[str]):
        super().__init__(f"Validation Error: {'; '.join(errors)}", errors=list(errors))
        self.errors = list(errors)


class RateLimitExceeded(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, max_requests: int, window_minutes: int, retry_after: Optional[int] = None):
        super().__init__(
            f"Too many requests. Maximum {max_requests} requests per {window_minutes} minutes allowed.",
            max=max_requests,
            windowMinutes=window_minutes,
        )
        self.max_requests = max_requests
        self.window_minutes = window_minutes
        self.retry_after = retry_after


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_message = "Resource not found"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    default_message = "Resource already exists"


class InvalidStateTransition(Conflict):
    code = "INVALID_STATE_TRANSITION"
    default_message = "Resource is no longer in a state that allows this action"


class InternalError(AppError):
    pass


# -------------------------
# HTTP TRANSLATION
# -------------------------
def error_body(message: str, code: str, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "success": False,
        "message": message,
        "error": code,
        "timestamp": utc_now().isoformat(),
    }
    body.update(extra)
    return jsonable_encoder(body)


def _format_validation_error(error: Dict[str, Any]) -> str:
    loc = [str(part) for part in error.get("loc", ())]
    field = ".".join(loc) if loc else "request"
    return f"{field}: {error.get('msg', 'invalid value')}"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimitExceeded) and exc.retry_after is not None:
        headers = {"Retry-After": str(exc.retry_after)}
    if isinstance(exc, AuthenticationRequired):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.code, **exc.extra),
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    failure = ValidationFailed([_format_validation_error(err) for err in exc.errors()])
    return await app_error_handler(request, failure)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(message, f"HTTP_{exc.status_code}"),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler"""
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("An unexpected error occurred", InternalError.code),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
