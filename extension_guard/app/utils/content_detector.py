"""
Content type detection for uploaded files.

Detection looks at the leading bytes of a file rather than its name, so a
renamed executable is still recognized for what it is.
"""

import mimetypes
from abc import ABC, abstractmethod
from typing import BinaryIO, Dict, Optional, Tuple

from ..core.exceptions import ContentInspectionError
from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_SNIFF_BYTES = 2048
OCTET_STREAM = "application/octet-stream"

_PE_EXTENSIONS = ("exe", "com", "scr")

# Detected media type -> extensions it implies, most specific first
DANGEROUS_MIME_EXTENSIONS: Dict[str, Tuple[str, ...]] = {
    "application/x-msdownload": _PE_EXTENSIONS,
    "application/x-dosexec": _PE_EXTENSIONS,
    "application/vnd.microsoft.portable-executable": _PE_EXTENSIONS,
    "application/x-executable": ("exe",),
    "application/x-msdos-program": ("exe", "com", "bat", "cmd"),
    "application/x-bat": ("bat",),
    "application/x-msdos-batch": ("bat", "cmd"),
    "application/x-cpl": ("cpl",),
    "text/javascript": ("js",),
    "application/javascript": ("js",),
}


def implied_extensions(media_type: str) -> Tuple[str, ...]:
    """Extensions implied by a detected media type, in table order."""
    base_type = media_type.split(";", 1)[0].strip().lower()
    return DANGEROUS_MIME_EXTENSIONS.get(base_type, ())


class ContentTypeDetector(ABC):
    """Maps file content to a media type string."""

    @abstractmethod
    def detect(self, stream: BinaryIO, filename_hint: Optional[str] = None) -> str:
        """
        Detect the media type of a stream.

        Raises:
            ContentInspectionError: If the content cannot be inspected,
                including a closed stream
            OSError: If reading the stream fails
        """


class MagicContentTypeDetector(ContentTypeDetector):
    """libmagic-backed detector using python-magic."""

    def __init__(self, sniff_bytes: int = DEFAULT_SNIFF_BYTES):
        self.sniff_bytes = sniff_bytes

    def _read_head(self, stream: BinaryIO) -> bytes:
        # Spooled upload files support tell/seek but not always seekable()
        position = stream.tell()
        head = stream.read(self.sniff_bytes)
        stream.seek(position)
        return head or b""

    def detect(self, stream: BinaryIO, filename_hint: Optional[str] = None) -> str:
        try:
            head = self._read_head(stream)
        except ValueError as e:
            # Closed or detached streams raise ValueError rather than OSError
            raise ContentInspectionError(f"Upload stream is not readable: {e}", filename=filename_hint)

        try:
            import magic
            mime_type = magic.from_buffer(head, mime=True)
        except ImportError as e:
            raise ContentInspectionError(f"libmagic is not available: {e}", filename=filename_hint)
        except Exception as e:
            logger.warning("Content type detection failed", filename=filename_hint, error=str(e))
            raise ContentInspectionError(f"Content type detection failed: {e}", filename=filename_hint)

        if mime_type and mime_type != OCTET_STREAM:
            return mime_type

        # libmagic only knows it is binary; fall back to the name
        if filename_hint:
            guessed, _ = mimetypes.guess_type(filename_hint)
            if guessed:
                return guessed

        return OCTET_STREAM
