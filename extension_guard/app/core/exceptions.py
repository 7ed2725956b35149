"""
Custom exception classes for the extension guard service.

This module defines the exception hierarchy used across the service:
- Registry errors raised by the admission controller and toggle policy
- Upload gate errors for empty and rejected batches
- Storage errors, including the uniqueness violation raised by repositories
- HTTP status code mapping and structured error payloads
"""

import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(str, Enum):
    """
    Standardized error codes for the extension guard service.

    These codes give clients a stable identifier for every failure
    the administrative surface can report.
    """

    # Configuration Errors (1xxx)
    CONFIG_VALIDATION_FAILED = "1001"
    CONFIG_INVALID_VALUE = "1004"

    # Database Errors (2xxx)
    DATABASE_CONNECTION_ERROR = "2001"
    DATABASE_OPERATION_FAILED = "2002"
    DATABASE_CONSTRAINT_VIOLATION = "2003"

    # Extension Registry Errors (3xxx)
    EXTENSION_INVALID_FORMAT = "3001"
    EXTENSION_QUOTA_EXCEEDED = "3002"
    EXTENSION_DUPLICATE = "3003"
    EXTENSION_FIXED_NAME_CONFLICT = "3004"
    EXTENSION_NOT_FOUND = "3005"
    EXTENSION_CATEGORY_MISMATCH = "3006"
    EXTENSION_CONCURRENT_MODIFICATION = "3007"

    # Upload Errors (4xxx)
    UPLOAD_EMPTY_BATCH = "4001"
    UPLOAD_REJECTED = "4002"
    UPLOAD_INSPECTION_FAILED = "4003"


class BaseCustomException(Exception):
    """
    Base exception class for all custom exceptions in the service.

    Provides common functionality for error tracking, context preservation,
    and structured error information.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        details: Optional[Dict[str, Any]] = None,
        http_status_code: int = 500,
        correlation_id: Optional[str] = None,
        user_message: Optional[str] = None
    ):
        """
        Initialize base exception with structured error information.

        Args:
            message: Technical error message for developers
            error_code: Standardized error code for identification
            details: Additional context and debugging information
            http_status_code: HTTP status code for API responses
            correlation_id: Request correlation ID for tracking
            user_message: User-friendly error message for display
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.http_status_code = http_status_code
        self.correlation_id = correlation_id
        self.user_message = user_message or self._generate_user_message()
        self.traceback_info = traceback.format_exc()

    def _generate_user_message(self) -> str:
        """Generate a user-friendly error message based on the error code."""
        user_messages = {
            ErrorCode.CONFIG_VALIDATION_FAILED: "Configuration validation failed. Please check your settings.",
            ErrorCode.DATABASE_CONNECTION_ERROR: "Unable to connect to the database. Please try again later.",
            ErrorCode.DATABASE_OPERATION_FAILED: "A storage error occurred. Please try again later.",
        }
        return user_messages.get(self.error_code, "An unexpected error occurred. Please contact support.")

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON serialization."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "user_message": self.user_message,
            "details": self.details,
            "http_status_code": self.http_status_code,
            "correlation_id": self.correlation_id,
        }

    def add_context(self, key: str, value: Any) -> None:
        """Add additional context to the exception details."""
        self.details[key] = value

    def __str__(self) -> str:
        """String representation of the exception."""
        return f"[{self.error_code.value}] {self.message}"


class ConfigurationError(BaseCustomException):
    """Exception raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.CONFIG_VALIDATION_FAILED,
        config_section: Optional[str] = None,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        **kwargs
    ):
        details = {
            "config_section": config_section,
            "config_key": config_key,
            "config_value": str(config_value) if config_value is not None else None,
        }
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            http_status_code=400,
            **kwargs
        )


class DatabaseError(BaseCustomException):
    """Exception raised for database-related errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.DATABASE_OPERATION_FAILED,
        database_type: Optional[str] = None,
        collection_name: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs
    ):
        details = {
            "database_type": database_type,
            "collection_name": collection_name,
            "operation": operation,
        }
        status_map = {
            ErrorCode.DATABASE_CONSTRAINT_VIOLATION: 409,
            ErrorCode.DATABASE_CONNECTION_ERROR: 503,
        }
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            http_status_code=status_map.get(error_code, 500),
            **kwargs
        )


class DuplicateRecordError(DatabaseError):
    """Raised by a repository when its uniqueness constraint rejects a write."""

    def __init__(self, extension: str, database_type: Optional[str] = None, **kwargs):
        super().__init__(
            message=f"Unique constraint violated for extension '{extension}'",
            error_code=ErrorCode.DATABASE_CONSTRAINT_VIOLATION,
            database_type=database_type,
            operation="insert",
            **kwargs
        )
        self.extension = extension
        self.add_context("extension", extension)


class ExtensionRegistryError(BaseCustomException):
    """
    Base class for caller-actionable registry failures.

    The message doubles as the user message: every registry failure
    carries a human-readable reason.
    """

    status_code = 400
    default_error_code = ErrorCode.EXTENSION_INVALID_FORMAT

    def __init__(
        self,
        message: str,
        extension: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        merged = {"extension": extension}
        merged.update(details or {})
        kwargs.setdefault("user_message", message)
        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", self.default_error_code),
            details=merged,
            http_status_code=self.status_code,
            **kwargs
        )
        self.extension = extension


class ValidationError(ExtensionRegistryError):
    """Exception raised for malformed extension input."""

    status_code = 422
    default_error_code = ErrorCode.EXTENSION_INVALID_FORMAT


class QuotaExceededError(ExtensionRegistryError):
    """The custom category would exceed its capacity limit."""

    status_code = 429
    default_error_code = ErrorCode.EXTENSION_QUOTA_EXCEEDED

    def __init__(self, message: str, current_count: int, requested: int, limit: int, **kwargs):
        super().__init__(
            message,
            details={"current_count": current_count, "requested": requested, "limit": limit},
            **kwargs
        )
        self.current_count = current_count
        self.requested = requested
        self.limit = limit


class DuplicateExtensionError(ExtensionRegistryError):
    """The extension is already registered, in either category."""

    status_code = 409
    default_error_code = ErrorCode.EXTENSION_DUPLICATE


class FixedNameConflictError(ExtensionRegistryError):
    """A custom extension would shadow a fixed one."""

    status_code = 409
    default_error_code = ErrorCode.EXTENSION_FIXED_NAME_CONFLICT


class ExtensionNotFoundError(ExtensionRegistryError):
    """No record matches the given id or extension."""

    status_code = 404
    default_error_code = ErrorCode.EXTENSION_NOT_FOUND


class CategoryMismatchError(ExtensionRegistryError):
    """The operation does not apply to the record's category."""

    status_code = 400
    default_error_code = ErrorCode.EXTENSION_CATEGORY_MISMATCH


class ConcurrentModificationError(ExtensionRegistryError):
    """Optimistic version check failed on a fixed extension update."""

    status_code = 409
    default_error_code = ErrorCode.EXTENSION_CONCURRENT_MODIFICATION

    def __init__(self, message: str, extension: Optional[str] = None, expected_version: Optional[int] = None, **kwargs):
        super().__init__(
            message,
            extension=extension,
            details={"expected_version": expected_version},
            **kwargs
        )
        self.expected_version = expected_version


class UploadError(BaseCustomException):
    """Base class for upload gate failures."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        http_status_code: int,
        details: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        kwargs.setdefault("user_message", message)
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            http_status_code=http_status_code,
            **kwargs
        )


class EmptyBatchError(UploadError):
    """Raised when an upload batch contains no files."""

    def __init__(self, message: str = "No files to upload.", **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.UPLOAD_EMPTY_BATCH,
            http_status_code=400,
            **kwargs
        )


class UploadRejectedError(UploadError):
    """Raised at the API boundary when the gate rejects a batch."""

    def __init__(self, reasons: List[str], **kwargs):
        detail = "\n".join(reasons)
        super().__init__(
            f"The upload was rejected because the batch contains blocked files.\n\n{detail}",
            error_code=ErrorCode.UPLOAD_REJECTED,
            http_status_code=403,
            details={"reasons": list(reasons)},
            **kwargs
        )
        self.reasons = list(reasons)


class ContentInspectionError(UploadError):
    """Content type detection failed for a file."""

    def __init__(self, message: str, filename: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.UPLOAD_INSPECTION_FAILED,
            http_status_code=422,
            details={"filename": filename},
            **kwargs
        )


def get_exception_response_data(exception: BaseCustomException) -> Dict[str, Any]:
    """
    Extract response data from a custom exception for API responses.

    Args:
        exception: Custom exception instance

    Returns:
        Dictionary containing structured error data
    """
    return {
        "success": False,
        "message": exception.user_message,
        "error": {
            "code": exception.error_code.value,
            "message": exception.user_message,
            "details": exception.details,
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "correlation_id": exception.correlation_id,
    }


# Convenience functions for common exception patterns

def raise_config_error(
    message: str,
    config_section: Optional[str] = None,
    config_key: Optional[str] = None,
    config_value: Optional[Any] = None
) -> None:
    """Raise a configuration error with context."""
    raise ConfigurationError(
        message=message,
        config_section=config_section,
        config_key=config_key,
        config_value=config_value
    )


def raise_database_error(
    message: str,
    database_type: Optional[str] = None,
    operation: Optional[str] = None,
    collection_name: Optional[str] = None,
    error_code: ErrorCode = ErrorCode.DATABASE_OPERATION_FAILED
) -> None:
    """Raise a database error with context."""
    raise DatabaseError(
        message=message,
        error_code=error_code,
        database_type=database_type,
        operation=operation,
        collection_name=collection_name
    )


def raise_extension_not_found(extension: Optional[str] = None, extension_id: Optional[str] = None) -> None:
    """Raise a not-found error for an extension name or record id."""
    if extension is not None:
        raise ExtensionNotFoundError(f"Extension does not exist: {extension}", extension=extension)
    raise ExtensionNotFoundError(
        "Extension does not exist.",
        details={"extension_id": extension_id}
    )


def raise_quota_exceeded(current_count: int, requested: int, limit: int) -> None:
    """Raise a capacity error for the custom category."""
    raise QuotaExceededError(
        f"At most {limit} custom extensions can be registered "
        f"(current: {current_count}, requested: {requested}).",
        current_count=current_count,
        requested=requested,
        limit=limit
    )
