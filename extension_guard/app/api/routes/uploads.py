"""
Upload API Routes

Multipart upload endpoint guarded by the upload gate. A batch is accepted
only as a whole; a rejected batch answers 403 with every offending file
listed in the message.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile

from ...core.exceptions import UploadRejectedError
from ...models.api.extension_schemas import ApiResponse, UploadResponse
from ...services.upload_service import UploadedFile, UploadGateService
from ...utils.logging import get_logger, log_business_event, log_route_entry
from ..deps import get_upload_gate_service

logger = get_logger(__name__)

router = APIRouter(prefix="/api/extensions", tags=["uploads"])


@router.post(
    "/upload",
    response_model=ApiResponse,
    summary="Upload Files",
    description="Accept a batch of files unless any of them is blocked by name or content."
)
async def upload_files(
    request: Request,
    files: Optional[List[UploadFile]] = File(None, description="Files to upload"),
    upload_service: UploadGateService = Depends(get_upload_gate_service)
) -> ApiResponse:
    files = files or []
    log_route_entry(request, file_count=len(files))

    batch = [UploadedFile(name=f.filename, stream=f.file) for f in files]
    result = await upload_service.evaluate_batch(batch)

    if not result.accepted:
        log_business_event("upload_rejected", request, reasons=result.reasons)
        raise UploadRejectedError(result.reasons)

    log_business_event("upload_accepted", request, accepted_files=result.accepted_files)
    return ApiResponse(
        success=True,
        message=f"{result.accepted_files} files uploaded.",
        data=UploadResponse(
            total_files=result.total_files,
            accepted_files=result.accepted_files,
            accepted_file_names=result.accepted_names
        ).model_dump()
    )
