"""
Validation utilities for extension registry input.

Normalizes administrator input into extension tokens and checks
the token format before anything reaches the store.
"""

import re
from typing import List, Optional

from ..core.exceptions import ValidationError

EXTENSION_PATTERN = re.compile(r"[a-z0-9]+")
MAX_EXTENSION_LENGTH = 20


def normalize_extension(value: str) -> str:
    """Trim and lowercase a single extension token."""
    return value.strip().lower()


def parse_extension_list(raw_input: Optional[str]) -> List[str]:
    """
    Parse comma-separated administrator input.

    Tokens are trimmed and lowercased; empty tokens are dropped and
    duplicates removed, keeping the first occurrence.

    Args:
        raw_input: Comma-separated extensions, e.g. "py, Java,,py"

    Returns:
        Normalized extensions in first-seen order
    """
    if not raw_input:
        return []

    seen = set()
    extensions = []
    for part in raw_input.split(","):
        extension = normalize_extension(part)
        if extension and extension not in seen:
            seen.add(extension)
            extensions.append(extension)
    return extensions


def validate_extension_format(extension: str, max_length: int = MAX_EXTENSION_LENGTH) -> None:
    """
    Check a normalized extension against the allowed format.

    Raises:
        ValidationError: If the extension is blank, too long, or has characters
            outside lowercase letters and digits
    """
    if not extension or not extension.strip():
        raise ValidationError("Please enter an extension.", extension=extension)
    if len(extension) > max_length:
        raise ValidationError(
            f"Extensions can be at most {max_length} characters: {extension}",
            extension=extension
        )
    if not EXTENSION_PATTERN.fullmatch(extension):
        raise ValidationError(
            f"Extensions may only contain lowercase letters and digits: {extension}",
            extension=extension
        )


def extract_extension(filename: Optional[str]) -> Optional[str]:
    """
    Return the case-folded text after the last dot of a file name.

    Names without a dot, or ending in a dot, have no extension.
    """
    if not filename:
        return None
    last_dot = filename.rfind(".")
    if last_dot < 0 or last_dot == len(filename) - 1:
        return None
    return filename[last_dot + 1:].lower()
