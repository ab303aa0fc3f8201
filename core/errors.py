"""
Application error taxonomy and the exception handlers that turn every
failure into the same ApiResponse envelope.
"""
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from core.config import get_settings
from core.logger import logger
from core.models import ApiResponse, ErrorDetail


class AppError(Exception):
    """Base class for errors that map directly onto an HTTP status"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    field: str = "general"

    def __init__(
        self,
        message: str,
        errors: list[ErrorDetail] | None = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.errors = errors or [ErrorDetail(field=self.field, message=message)]
        self.headers = headers


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    field = "validation"


class AuthError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    field = "auth"

    def __init__(self, message: str = "Could not validate credentials", **kwargs):
        kwargs.setdefault("headers", {"WWW-Authenticate": "Bearer"})
        super().__init__(message, **kwargs)


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    field = "auth"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT


class InternalError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class UploadTimeoutError(AppError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    field = "content"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return ApiResponse.error(exc.message, exc.errors).to_response(
        exc.status_code, headers=exc.headers
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        message = f"Route {request.url.path} not found"
    else:
        message = str(exc.detail)
    return ApiResponse.error(message).to_response(
        exc.status_code, headers=getattr(exc, "headers", None)
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        ErrorDetail(
            field=".".join(str(part) for part in err["loc"] if part != "body") or "body",
            message=err["msg"],
        )
        for err in exc.errors()
    ]
    return ApiResponse.error("Validation failed", errors).to_response(
        status.HTTP_400_BAD_REQUEST
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = str(exc) if get_settings().DEBUG else "Internal server error"
    return ApiResponse.error(message).to_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
