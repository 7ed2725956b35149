"""
Global error handling for the extension guard API.

Every failure leaves the service as the same JSON envelope:

    {"success": false, "message": <user message>,
     "error": {"code", "message", "details", "category", "correlation_id"}}

Domain exceptions keep their own status codes and reasons. Request
validation failures report the first field message with 422. Anything
unexpected becomes a generic 500 whose internals are only shown in debug
mode.
"""

import traceback
import uuid
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.status import HTTP_500_INTERNAL_SERVER_ERROR

from ...core.exceptions import BaseCustomException, ErrorCode, get_exception_response_data
from ...utils.logging import get_correlation_id, get_logger
from extension_guard.config.settings import get_settings


class ErrorCategory(str, Enum):
    """Error categories for classification and routing."""
    VALIDATION = "validation"
    CONFLICT = "conflict"
    RESOURCE = "resource"
    UPLOAD = "upload"
    SYSTEM = "system"


class ErrorHandler:
    """Centralized error handling with classification and formatting."""

    def __init__(self):
        self.logger = get_logger(__name__)
        self.debug = get_settings().debug
        self._error_categories = self._build_error_category_mapping()

    def _build_error_category_mapping(self) -> Dict[str, ErrorCategory]:
        return {
            ErrorCode.CONFIG_VALIDATION_FAILED: ErrorCategory.SYSTEM,
            ErrorCode.CONFIG_INVALID_VALUE: ErrorCategory.VALIDATION,
            ErrorCode.DATABASE_CONNECTION_ERROR: ErrorCategory.SYSTEM,
            ErrorCode.DATABASE_OPERATION_FAILED: ErrorCategory.SYSTEM,
            ErrorCode.DATABASE_CONSTRAINT_VIOLATION: ErrorCategory.CONFLICT,
            ErrorCode.EXTENSION_INVALID_FORMAT: ErrorCategory.VALIDATION,
            ErrorCode.EXTENSION_QUOTA_EXCEEDED: ErrorCategory.RESOURCE,
            ErrorCode.EXTENSION_DUPLICATE: ErrorCategory.CONFLICT,
            ErrorCode.EXTENSION_FIXED_NAME_CONFLICT: ErrorCategory.CONFLICT,
            ErrorCode.EXTENSION_NOT_FOUND: ErrorCategory.RESOURCE,
            ErrorCode.EXTENSION_CATEGORY_MISMATCH: ErrorCategory.VALIDATION,
            ErrorCode.EXTENSION_CONCURRENT_MODIFICATION: ErrorCategory.CONFLICT,
            ErrorCode.UPLOAD_EMPTY_BATCH: ErrorCategory.UPLOAD,
            ErrorCode.UPLOAD_REJECTED: ErrorCategory.UPLOAD,
            ErrorCode.UPLOAD_INSPECTION_FAILED: ErrorCategory.UPLOAD,
        }

    def classify_error(self, error_code: str) -> ErrorCategory:
        return self._error_categories.get(error_code, ErrorCategory.SYSTEM)

    def handle_custom_exception(self, request: Request, exc: BaseCustomException) -> JSONResponse:
        """
        Handle custom application exceptions.

        Args:
            request: HTTP request object
            exc: Custom exception to handle

        Returns:
            JSON error response with the exception's status code
        """
        correlation_id = self._get_correlation_id(request, exc)
        category = self.classify_error(exc.error_code)

        response = get_exception_response_data(exc)
        response["correlation_id"] = correlation_id
        response["error"]["category"] = category.value
        response["error"]["correlation_id"] = correlation_id

        if self.debug:
            response["error"]["debug"] = {
                "exception_type": type(exc).__name__,
                "technical_message": exc.message,
                "request_url": str(request.url),
            }

        log = self.logger.error if exc.http_status_code >= 500 else self.logger.info
        log(
            "Request failed",
            error_code=exc.error_code.value,
            status_code=exc.http_status_code,
            category=category.value,
            reason=exc.message,
            method=request.method,
            path=request.url.path,
            correlation_id=correlation_id
        )

        return JSONResponse(
            status_code=exc.http_status_code,
            content=response,
            headers={"X-Correlation-ID": correlation_id}
        )

    def handle_http_exception(self, request: Request, exc: HTTPException) -> JSONResponse:
        """Handle FastAPI/Starlette HTTP exceptions such as unknown routes."""
        correlation_id = self._get_correlation_id(request)
        message = str(exc.detail)

        self.logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=message,
            method=request.method,
            path=request.url.path
        )

        return JSONResponse(
            status_code=exc.status_code,
            content=self._envelope(
                message,
                code=str(exc.status_code),
                details={"http_status": exc.status_code},
                category=ErrorCategory.VALIDATION if exc.status_code < 500 else ErrorCategory.SYSTEM,
                correlation_id=correlation_id
            ),
            headers={"X-Correlation-ID": correlation_id}
        )

    def handle_validation_error(self, request: Request, exc: RequestValidationError) -> JSONResponse:
        """
        Handle request validation errors.

        The first field message becomes the response message.
        """
        correlation_id = self._get_correlation_id(request)

        validation_errors = []
        for error in exc.errors():
            validation_errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": self._clean_validation_message(error["msg"]),
                "type": error["type"],
            })

        message = validation_errors[0]["message"] if validation_errors else "Request validation failed"

        self.logger.info(
            "Request validation failed",
            error_count=len(validation_errors),
            first_error=message,
            method=request.method,
            path=request.url.path
        )

        return JSONResponse(
            status_code=422,
            content=self._envelope(
                message,
                code=ErrorCode.CONFIG_INVALID_VALUE.value,
                details={"validation_errors": validation_errors},
                category=ErrorCategory.VALIDATION,
                correlation_id=correlation_id
            ),
            headers={"X-Correlation-ID": correlation_id}
        )

    def handle_unexpected_error(self, request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions without leaking internals."""
        correlation_id = self._get_correlation_id(request)

        response = self._envelope(
            "An unexpected error occurred. Please try again later.",
            code=ErrorCode.DATABASE_OPERATION_FAILED.value,
            details={},
            category=ErrorCategory.SYSTEM,
            correlation_id=correlation_id
        )

        if self.debug:
            response["error"]["debug"] = {
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
                "traceback": traceback.format_exc(),
            }

        self.logger.error(
            "Unexpected error",
            exception_type=type(exc).__name__,
            error=str(exc),
            method=request.method,
            path=request.url.path,
            correlation_id=correlation_id,
            exc_info=True
        )

        return JSONResponse(
            status_code=HTTP_500_INTERNAL_SERVER_ERROR,
            content=response,
            headers={"X-Correlation-ID": correlation_id}
        )

    @staticmethod
    def _envelope(
        message: str,
        code: str,
        details: Dict[str, Any],
        category: ErrorCategory,
        correlation_id: str
    ) -> Dict[str, Any]:
        return {
            "success": False,
            "message": message,
            "error": {
                "code": code,
                "message": message,
                "details": details,
                "category": category.value,
                "correlation_id": correlation_id,
            },
            "correlation_id": correlation_id,
        }

    @staticmethod
    def _clean_validation_message(message: str) -> str:
        # pydantic prefixes custom validator errors
        prefix = "Value error, "
        return message[len(prefix):] if message.startswith(prefix) else message

    def _get_correlation_id(self, request: Request, exc: Optional[BaseCustomException] = None) -> str:
        """Get or generate correlation ID for request tracking."""
        if exc is not None and exc.correlation_id:
            return exc.correlation_id

        correlation_id = getattr(request.state, "correlation_id", None)
        if correlation_id:
            return correlation_id

        correlation_id = request.headers.get("X-Correlation-ID") or get_correlation_id()
        return correlation_id or str(uuid.uuid4())


def setup_error_handlers(app: FastAPI) -> None:
    """
    Setup global error handlers for the FastAPI application.

    Args:
        app: FastAPI application instance
    """
    error_handler = ErrorHandler()

    @app.exception_handler(BaseCustomException)
    async def custom_exception_handler(request: Request, exc: BaseCustomException):
        return error_handler.handle_custom_exception(request, exc)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return error_handler.handle_http_exception(request, exc)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return error_handler.handle_validation_error(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def starlette_exception_handler(request: Request, exc: StarletteHTTPException):
        fastapi_exc = HTTPException(status_code=exc.status_code, detail=exc.detail)
        return error_handler.handle_http_exception(request, fastapi_exc)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        return error_handler.handle_unexpected_error(request, exc)

    get_logger(__name__).info("Global error handlers configured successfully")
