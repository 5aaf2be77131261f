"""Scans router."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from depsentinel.api.deps import get_scan_service
from depsentinel.api.schemas.scan import ErrorResponse, ScanRequest, ScanResponse
from depsentinel.services.scan_service import DependencyScanService

router = APIRouter()


@router.post(
    "/deps",
    response_model=ScanResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def scan_dependencies(
    body: ScanRequest,
    svc: DependencyScanService = Depends(get_scan_service),
) -> ScanResponse:
    result = await svc.scan(body.analysis_id, max_deps=body.max_deps, max_vulns=body.max_vulns)
    return ScanResponse.from_result(result)
