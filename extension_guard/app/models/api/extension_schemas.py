"""
Pydantic API schemas for the extension guard endpoints.

This module defines the request/response schemas for:
- Fixed extension listing and toggling
- Custom extension listing and registration
- Upload gate results
- The generic API response envelope
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from extension_guard.app.models.domain.extension import ExtensionRecord


class FixedExtensionUpdateRequest(BaseModel):
    """Schema for toggling one fixed extension."""

    extension: str = Field(
        ...,
        min_length=1,
        max_length=20,
        pattern=r"^[A-Za-z0-9]+$",
        description="Fixed extension name, case-insensitive"
    )

    blocked: bool = Field(
        ...,
        description="New blocked flag"
    )

    version: Optional[int] = Field(
        None,
        ge=0,
        description="Version from the caller's last read, for conflict detection"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "extension": "exe",
                "blocked": True,
                "version": 0
            }
        }
    )


class CustomExtensionAddRequest(BaseModel):
    """Schema for registering comma-separated custom extensions."""

    extensions: str = Field(
        ...,
        min_length=1,
        max_length=500,
        pattern=r"^[A-Za-z0-9,\s]+$",
        description="Comma-separated extensions, e.g. 'py, java'"
    )

    @field_validator("extensions")
    @classmethod
    def validate_extensions(cls, v):
        """Reject input made only of separators."""
        if not v.replace(",", "").strip():
            raise ValueError("Please enter an extension.")
        return v

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"extensions": "py, java, sh"}
        }
    )


class FixedExtensionResponse(BaseModel):
    """Fixed extension as returned by the API."""

    id: str
    extension: str
    blocked: bool
    version: int

    @classmethod
    def from_record(cls, record: ExtensionRecord) -> "FixedExtensionResponse":
        return cls(id=record.id, extension=record.extension, blocked=record.blocked, version=record.version)


class CustomExtensionResponse(BaseModel):
    """Custom extension as returned by the API."""

    id: str
    extension: str
    created_at: datetime

    @classmethod
    def from_record(cls, record: ExtensionRecord) -> "CustomExtensionResponse":
        return cls(id=record.id, extension=record.extension, created_at=record.created_at)


class UploadResponse(BaseModel):
    """Result of an accepted upload batch."""

    total_files: int = Field(..., ge=0)
    accepted_files: int = Field(..., ge=0)
    accepted_file_names: List[str] = Field(default_factory=list)


class ApiResponse(BaseModel):
    """Generic API response wrapper."""

    success: bool = Field(
        ...,
        description="Whether the request was successful"
    )

    message: Optional[str] = Field(
        None,
        description="Human-readable message"
    )

    data: Optional[Any] = Field(
        None,
        description="Response payload"
    )

    error: Optional[Dict[str, Any]] = Field(
        None,
        description="Error information if request failed"
    )

    correlation_id: Optional[str] = Field(
        None,
        description="Request correlation ID for tracking"
    )
