"""Domain error types and their JSON rendering.

Services raise :class:`AppError` subclasses; the API layer turns them into the
``{"success": false, "error": {"code", "message"}}`` envelope the frontend
expects.
"""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse


logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base error carrying a machine-readable code and an HTTP status."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str = None, status_code: int = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error": {"code": self.code, "message": self.message},
        }


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "AUTH_ERROR"


class AuthorizationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class DatabaseError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "DB_ERROR"


class ExternalServiceError(AppError):
    """Upstream provider (Supabase, Resend) rejected or failed a call."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "UPSTREAM_ERROR"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: [%s] %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def database_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render unexpected SQLAlchemy failures as ``DB_ERROR``; the request session rolls back on close."""
    logger.exception("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    error = DatabaseError("A database error occurred")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())
