"""
Domain model for blocked file extensions.

This module defines the core entities of the extension registry:
- Extension categories (fixed built-ins and administrator-managed custom entries)
- Immutable extension records with optimistic version tracking
- The built-in set of dangerous extensions
- Conversion to and from storage documents
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Tuple


FIXED_EXTENSIONS: Tuple[str, ...] = ("bat", "cmd", "com", "cpl", "exe", "scr", "js")


class ExtensionCategory(str, Enum):
    """Registry category of an extension record."""

    FIXED = "fixed"      # Built-in set, seeded at startup, only the blocked flag changes
    CUSTOM = "custom"    # Administrator-managed, capacity-bounded, always blocked


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class ExtensionRecord:
    """
    Immutable extension registry entry.

    Updates never mutate a record in place; repositories return a new
    record carrying the incremented version instead.
    """

    extension: str
    category: ExtensionCategory
    blocked: bool
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utcnow)
    version: int = 0

    def __post_init__(self):
        if not self.extension:
            raise ValueError("Extension is required")
        if self.version < 0:
            raise ValueError("Version cannot be negative")
        if not isinstance(self.category, ExtensionCategory):
            object.__setattr__(self, "category", ExtensionCategory(self.category))

    @classmethod
    def create_fixed(cls, extension: str) -> "ExtensionRecord":
        """Create a new fixed record; fixed extensions start allowed."""
        return cls(extension=extension, category=ExtensionCategory.FIXED, blocked=False)

    @classmethod
    def create_custom(cls, extension: str) -> "ExtensionRecord":
        """Create a new custom record; custom extensions exist only to be blocked."""
        return cls(extension=extension, category=ExtensionCategory.CUSTOM, blocked=True)

    @property
    def is_fixed(self) -> bool:
        return self.category == ExtensionCategory.FIXED

    @property
    def is_custom(self) -> bool:
        return self.category == ExtensionCategory.CUSTOM

    def with_blocked(self, blocked: bool) -> "ExtensionRecord":
        """Return a copy with the new flag and the next version."""
        return replace(self, blocked=blocked, version=self.version + 1)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the record to its storage document."""
        return {
            "_id": self.id,
            "extension": self.extension,
            "category": self.category.value,
            "blocked": self.blocked,
            "created_at": self.created_at,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtensionRecord":
        """Rebuild a record from a storage document."""
        created_at = data.get("created_at") or _utcnow()
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        if created_at.tzinfo is None:
            # MongoDB returns naive UTC datetimes by default
            created_at = created_at.replace(tzinfo=timezone.utc)

        return cls(
            id=str(data.get("_id") or data.get("id")),
            extension=data["extension"],
            category=ExtensionCategory(data["category"]),
            blocked=bool(data["blocked"]),
            created_at=created_at,
            version=int(data.get("version", 0)),
        )

    def __str__(self) -> str:
        state = "blocked" if self.blocked else "allowed"
        return f"{self.category.value}:{self.extension} ({state})"
