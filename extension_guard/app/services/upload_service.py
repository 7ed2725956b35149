"""
Upload Gate Service

Decides whether a batch of uploaded files may be accepted. A batch is
accepted only if no file in it is blocked, either by its name or by what
its content really is. The gate reads one snapshot of the blocked set per
batch and never writes.
"""

import asyncio
from dataclasses import dataclass, field
from typing import BinaryIO, FrozenSet, List, Optional, Sequence, Set

from ..core.exceptions import ContentInspectionError, EmptyBatchError
from ..repositories.base import ExtensionRepository
from ..utils.content_detector import ContentTypeDetector, implied_extensions
from ..utils.logging import get_logger, performance_context
from ..utils.validators import extract_extension

logger = get_logger(__name__)


@dataclass
class UploadedFile:
    """A named file stream submitted for upload."""
    name: Optional[str]
    stream: BinaryIO


@dataclass
class UploadBatchResult:
    """Outcome of evaluating one upload batch."""
    accepted: bool
    total_files: int
    accepted_files: int = 0
    accepted_names: List[str] = field(default_factory=list)
    reasons: List[str] = field(default_factory=list)

    @property
    def detail(self) -> str:
        return "\n".join(self.reasons)


class UploadGateService:
    """All-or-nothing upload gate over the blocked extension snapshot."""

    def __init__(self, repository: ExtensionRepository, detector: ContentTypeDetector):
        self.repository = repository
        self.detector = detector

    async def get_blocked_extensions(self) -> Set[str]:
        """Current blocked extensions across both categories. Does not lock."""
        return {record.extension for record in await self.repository.find_blocked()}

    async def evaluate_batch(self, files: Sequence[UploadedFile]) -> UploadBatchResult:
        """
        Evaluate a batch of files against the blocked set.

        Raises:
            EmptyBatchError: If the batch has no files
        """
        if not files:
            raise EmptyBatchError()

        with performance_context("upload_gate_evaluate", total_files=len(files)):
            blocked = frozenset(await self.get_blocked_extensions())

            reasons: List[str] = []
            accepted_names: List[str] = []
            for uploaded in files:
                name = uploaded.name
                if not name or not name.strip():
                    continue

                reason = await self._check_file(uploaded, blocked)
                if reason:
                    reasons.append(reason)
                else:
                    accepted_names.append(name)

        if reasons:
            logger.info("Upload batch rejected", total_files=len(files), rejected=len(reasons))
            return UploadBatchResult(accepted=False, total_files=len(files), reasons=reasons)

        logger.info("Upload batch accepted", total_files=len(files), accepted_files=len(accepted_names))
        return UploadBatchResult(
            accepted=True,
            total_files=len(files),
            accepted_files=len(accepted_names),
            accepted_names=accepted_names
        )

    async def _check_file(self, uploaded: UploadedFile, blocked: FrozenSet[str]) -> Optional[str]:
        name = uploaded.name
        extension = extract_extension(name)
        if extension and extension in blocked:
            return f"{name} (extension blocked: .{extension})"

        try:
            # File reads and libmagic block; keep them off the event loop
            media_type = await asyncio.to_thread(self.detector.detect, uploaded.stream, name)
        except (OSError, ContentInspectionError) as e:
            logger.warning("Upload content inspection failed", filename=name, error=str(e))
            return f"{name} (inspection failed)"

        for implied in implied_extensions(media_type):
            if implied in blocked:
                return f"{name} (content/extension mismatch: detected {media_type} implies .{implied})"
        return None
