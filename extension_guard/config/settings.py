# Application settings for the extension guard service.

from functools import lru_cache
from typing import Any, Dict, List

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_FIXED_EXTENSIONS = ["bat", "cmd", "com", "cpl", "exe", "scr", "js"]


class RegistrySettings(BaseModel):
    """Blocked-extension registry settings."""
    custom_extension_limit: int = Field(
        default=200,
        description="Maximum number of custom extensions"
    )
    max_extension_length: int = Field(
        default=20,
        description="Maximum length of a single extension"
    )
    fixed_extensions: List[str] = Field(
        default_factory=lambda: list(DEFAULT_FIXED_EXTENSIONS),
        description="Built-in dangerous extensions seeded at startup"
    )
    filler_prefix: str = Field(
        default="test",
        description="Name prefix for generated filler extensions"
    )
    max_input_length: int = Field(
        default=500,
        description="Maximum length of a comma-separated add request"
    )


class UploadSettings(BaseModel):
    """Upload gate settings."""
    sniff_bytes: int = Field(
        default=2048,
        description="Bytes read from each upload for content type detection"
    )


class DatabaseSettings(BaseModel):
    """Storage backend settings."""
    backend: str = Field(
        default="mongodb",
        description="Storage backend (mongodb/memory)"
    )
    mongodb_url: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URL"
    )
    mongodb_database: str = Field(
        default="extension_guard",
        description="MongoDB database name"
    )
    collection_name: str = Field(
        default="blocked_extensions",
        description="Collection holding extension records"
    )
    use_transactions: bool = Field(
        default=True,
        description="Use MongoDB multi-document transactions (replica set or sharded cluster required)"
    )
    server_selection_timeout_ms: int = Field(
        default=5000,
        description="MongoDB server selection timeout"
    )


class LoggingSettings(BaseModel):
    """Logging configuration settings."""

    level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    format: str = Field(
        default="text",
        description="Log format (json/text)"
    )

    enable_correlation_ids: bool = Field(
        default=True,
        description="Enable correlation ID tracking"
    )

    excluded_paths: List[str] = Field(
        default_factory=lambda: ["/health", "/docs", "/redoc", "/openapi.json"],
        description="Paths to exclude from request logging"
    )

    def get_log_level_numeric(self) -> int:
        """
        Get numeric log level for Python logging.

        Returns:
            Numeric log level
        """
        import logging
        return getattr(logging, self.level.upper(), logging.INFO)


class Settings(BaseSettings):
    """
    Application configuration settings.

    Loaded from environment variables, an optional .env file and defaults.
    Nested sections use the "__" delimiter, e.g. REGISTRY__CUSTOM_EXTENSION_LIMIT.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore"
    )

    app_name: str = Field(
        default="Extension Guard",
        description="Application name"
    )

    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )

    debug: bool = Field(
        default=False,
        description="Debug mode enabled"
    )

    environment: str = Field(
        default="development",
        description="Environment (development/staging/production)"
    )

    registry: RegistrySettings = Field(
        default_factory=RegistrySettings,
        description="Extension registry settings"
    )

    upload: UploadSettings = Field(
        default_factory=UploadSettings,
        description="Upload gate settings"
    )

    database: DatabaseSettings = Field(
        default_factory=DatabaseSettings,
        description="Storage configuration"
    )

    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration"
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary for JSON serialization."""
        return self.model_dump(
            exclude_unset=False,
            exclude_none=False
        )

    def validate_configuration(self) -> Dict[str, List[str]]:
        """
        Validate the entire configuration.

        Returns:
            Dictionary with validation errors by section
        """
        errors: Dict[str, List[str]] = {}

        positive_int_fields = [
            ("registry.custom_extension_limit", self.registry.custom_extension_limit),
            ("registry.max_extension_length", self.registry.max_extension_length),
            ("registry.max_input_length", self.registry.max_input_length),
            ("upload.sniff_bytes", self.upload.sniff_bytes),
        ]

        for field_path, value in positive_int_fields:
            if not isinstance(value, int) or value <= 0:
                section = field_path.split('.')[0]
                errors.setdefault(section, []).append(
                    f"Must be positive integer: {field_path} = {value}"
                )

        if self.database.backend not in ("mongodb", "memory"):
            errors.setdefault("database", []).append(
                f"Unknown storage backend: database.backend = {self.database.backend}"
            )

        if not self.registry.fixed_extensions:
            errors.setdefault("registry", []).append(
                "At least one fixed extension is required: registry.fixed_extensions"
            )

        if self.logging.format not in ("json", "text"):
            errors.setdefault("logging", []).append(
                f"Unknown log format: logging.format = {self.logging.format}"
            )

        return errors


@lru_cache()
def get_settings() -> Settings:
    """Get application settings singleton."""
    return Settings()


# Environment variable examples:
# REGISTRY__CUSTOM_EXTENSION_LIMIT=300
# DATABASE__BACKEND=memory
# DATABASE__MONGODB_URL=mongodb://mongo:27017
# DATABASE__USE_TRANSACTIONS=false  (standalone server, no replica set)
# LOGGING__LEVEL=DEBUG
# LOGGING__FORMAT=json
