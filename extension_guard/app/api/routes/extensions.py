"""
Extension Registry API Routes

Administrative endpoints for the blocked extension registry:
- Fixed extensions: list, toggle one (optimistic), toggle all
- Custom extensions: list, add (comma-separated), delete one, delete all
- Registry reset and filler data generation
- Snapshot of the currently blocked extensions

Domain errors propagate to the global error handlers, which map them to
their HTTP status codes.
"""

from fastapi import APIRouter, Depends, Path, Query, Request, status

from ...models.api.extension_schemas import (
    ApiResponse,
    CustomExtensionAddRequest,
    CustomExtensionResponse,
    FixedExtensionResponse,
    FixedExtensionUpdateRequest
)
from ...services.custom_extension_service import CustomExtensionService
from ...services.fixed_extension_service import FixedExtensionService
from ...services.upload_service import UploadGateService
from ...utils.logging import get_logger, log_route_entry
from ..deps import get_custom_extension_service, get_fixed_extension_service, get_upload_gate_service

logger = get_logger(__name__)

router = APIRouter(prefix="/api/extensions", tags=["extensions"])


@router.get(
    "/fixed",
    response_model=ApiResponse,
    summary="List Fixed Extensions"
)
async def list_fixed_extensions(
    request: Request,
    fixed_service: FixedExtensionService = Depends(get_fixed_extension_service)
) -> ApiResponse:
    """List the fixed extensions with their blocked flags and versions."""
    log_route_entry(request)
    records = await fixed_service.list_fixed_extensions()
    return ApiResponse(
        success=True,
        message="Fixed extensions retrieved.",
        data=[FixedExtensionResponse.from_record(r).model_dump() for r in records]
    )


@router.patch(
    "/fixed",
    response_model=ApiResponse,
    summary="Update Fixed Extension",
    description="Toggle one fixed extension. Send the version from your last read to detect conflicts."
)
async def update_fixed_extension(
    request: Request,
    update: FixedExtensionUpdateRequest,
    fixed_service: FixedExtensionService = Depends(get_fixed_extension_service)
) -> ApiResponse:
    log_route_entry(request, extension=update.extension, blocked=update.blocked)
    record = await fixed_service.update_fixed(update.extension, update.blocked, update.version)
    state = "blocked" if record.blocked else "allowed"
    return ApiResponse(
        success=True,
        message=f"'{record.extension}' is now {state}.",
        data=FixedExtensionResponse.from_record(record).model_dump()
    )


@router.patch(
    "/fixed/bulk",
    response_model=ApiResponse,
    summary="Update All Fixed Extensions"
)
async def bulk_update_fixed_extensions(
    request: Request,
    blocked: bool = Query(..., description="New blocked flag for every fixed extension"),
    fixed_service: FixedExtensionService = Depends(get_fixed_extension_service)
) -> ApiResponse:
    log_route_entry(request, blocked=blocked)
    count = await fixed_service.bulk_update_fixed(blocked)
    return ApiResponse(
        success=True,
        message=f"{count} fixed extensions updated.",
        data={"count": count}
    )


@router.get(
    "/custom",
    response_model=ApiResponse,
    summary="List Custom Extensions"
)
async def list_custom_extensions(
    request: Request,
    custom_service: CustomExtensionService = Depends(get_custom_extension_service)
) -> ApiResponse:
    """List custom extensions, newest first."""
    log_route_entry(request)
    records = await custom_service.list_custom_extensions()
    return ApiResponse(
        success=True,
        message="Custom extensions retrieved.",
        data=[CustomExtensionResponse.from_record(r).model_dump(mode="json") for r in records]
    )


@router.post(
    "/custom",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add Custom Extensions",
    description="Register one or more comma-separated extensions. The batch is all-or-nothing."
)
async def add_custom_extensions(
    request: Request,
    add_request: CustomExtensionAddRequest,
    custom_service: CustomExtensionService = Depends(get_custom_extension_service)
) -> ApiResponse:
    log_route_entry(request, extensions=add_request.extensions)
    records = await custom_service.add_custom_extensions(add_request.extensions)
    return ApiResponse(
        success=True,
        message=f"{len(records)} extensions added.",
        data=[CustomExtensionResponse.from_record(r).model_dump(mode="json") for r in records]
    )


@router.delete(
    "/custom/{extension_id}",
    response_model=ApiResponse,
    summary="Delete Custom Extension"
)
async def delete_custom_extension(
    request: Request,
    extension_id: str = Path(..., description="Extension record identifier"),
    custom_service: CustomExtensionService = Depends(get_custom_extension_service)
) -> ApiResponse:
    log_route_entry(request, extension_id=extension_id)
    await custom_service.delete_custom_extension(extension_id)
    return ApiResponse(success=True, message="Extension deleted.")


@router.delete(
    "/custom",
    response_model=ApiResponse,
    summary="Delete All Custom Extensions"
)
async def delete_all_custom_extensions(
    request: Request,
    custom_service: CustomExtensionService = Depends(get_custom_extension_service)
) -> ApiResponse:
    log_route_entry(request)
    count = await custom_service.delete_all_custom_extensions()
    return ApiResponse(
        success=True,
        message=f"{count} custom extensions deleted.",
        data={"count": count}
    )


@router.post(
    "/reset",
    response_model=ApiResponse,
    summary="Reset Registry",
    description="Delete every custom extension and unblock every fixed extension."
)
async def reset_registry(
    request: Request,
    custom_service: CustomExtensionService = Depends(get_custom_extension_service)
) -> ApiResponse:
    log_route_entry(request)
    await custom_service.reset_all()
    return ApiResponse(success=True, message="All extension settings have been reset.")


@router.post(
    "/filler-data",
    response_model=ApiResponse,
    summary="Generate Filler Data",
    description="Fill the remaining custom capacity with synthetic extensions."
)
async def generate_filler_data(
    request: Request,
    custom_service: CustomExtensionService = Depends(get_custom_extension_service)
) -> ApiResponse:
    log_route_entry(request)
    count = await custom_service.generate_filler_data()
    return ApiResponse(
        success=True,
        message=f"{count} filler extensions created.",
        data={"count": count}
    )


@router.get(
    "/blocked",
    response_model=ApiResponse,
    summary="List Blocked Extensions"
)
async def list_blocked_extensions(
    request: Request,
    upload_service: UploadGateService = Depends(get_upload_gate_service)
) -> ApiResponse:
    """Current blocked extensions across both categories, sorted."""
    log_route_entry(request)
    blocked = await upload_service.get_blocked_extensions()
    return ApiResponse(
        success=True,
        message="Blocked extensions retrieved.",
        data=sorted(blocked)
    )
