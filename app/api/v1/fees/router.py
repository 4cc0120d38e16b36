"""Fees router: fee structures (create, revise, history, status, listing) and student fee ledger."""

from typing import List, Optional, Union
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import check_permission
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import (
    FeeStructureCreate,
    FeeStructureHistoryResponse,
    FeeStructurePage,
    FeeStructureResponse,
    FeeStructureRevise,
    FeeStructureRevisionResponse,
    FeeStructureStatusResponse,
    FeeStructureStatusUpdate,
    FeeStructureVersionDetails,
    MonthlyFeeCompute,
    MonthlyFeeComputeResponse,
    StudentFeeHistoryResponse,
    VersionComparisonResponse,
)
from . import computation_service, export_service, service

router = APIRouter(prefix="/api/v1/fees", tags=["fees"])


# --- Fee Structure ---
@router.post(
    "/structures",
    response_model=Union[FeeStructureResponse, List[FeeStructureResponse]],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("fees", "create"))],
)
async def create_fee_structure(
    payload: FeeStructureCreate,
    db: AsyncSession = Depends(get_db),
) -> Union[FeeStructureResponse, List[FeeStructureResponse]]:
    """One target class returns the structure; several return a list of structures."""
    try:
        return await service.create_structure(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/structures/list",
    response_model=FeeStructurePage,
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def list_fee_structures(
    class_id: Optional[UUID] = Query(None),
    academic_year: Optional[str] = Query(None),
    page: int = Query(1),
    page_size: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> FeeStructurePage:
    return await service.list_structures(
        db,
        class_id=class_id,
        academic_year=academic_year,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/structures/{fee_structure_id}",
    response_model=FeeStructureResponse,
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_fee_structure(
    fee_structure_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> FeeStructureResponse:
    try:
        return await service.get_structure(db, fee_structure_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.post(
    "/structures/{fee_structure_id}/revise",
    response_model=FeeStructureRevisionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("fees", "update"))],
)
async def revise_fee_structure(
    fee_structure_id: UUID,
    payload: FeeStructureRevise,
    db: AsyncSession = Depends(get_db),
) -> FeeStructureRevisionResponse:
    try:
        return await service.revise_structure(db, fee_structure_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/structures/{fee_structure_id}/history",
    response_model=List[FeeStructureHistoryResponse],
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_fee_structure_history(
    fee_structure_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> List[FeeStructureHistoryResponse]:
    try:
        return await service.get_structure_history(db, fee_structure_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/structures/{fee_structure_id}/history/export",
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def export_fee_structure_history(
    fee_structure_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Download every version of the structure as an Excel workbook (Versions and Items sheets)."""
    try:
        content = await export_service.export_structure_history(db, fee_structure_id)
        return Response(
            content=content,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={"Content-Disposition": f"attachment; filename=fee_structure_{fee_structure_id}_history.xlsx"},
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/structures/{fee_structure_id}/versions/{version}",
    response_model=FeeStructureVersionDetails,
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_fee_structure_version(
    fee_structure_id: UUID,
    version: int,
    db: AsyncSession = Depends(get_db),
) -> FeeStructureVersionDetails:
    try:
        return await service.get_version_details(db, fee_structure_id, version)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/structures/{fee_structure_id}/compare",
    response_model=VersionComparisonResponse,
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def compare_fee_structure_versions(
    fee_structure_id: UUID,
    from_version: Optional[int] = Query(None, ge=1),
    to_version: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_db),
) -> VersionComparisonResponse:
    try:
        return await service.compare_versions(db, fee_structure_id, from_version, to_version)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.patch(
    "/structures/{fee_structure_id}/status",
    response_model=FeeStructureStatusResponse,
    dependencies=[Depends(check_permission("fees", "update"))],
)
async def update_fee_structure_status(
    fee_structure_id: UUID,
    payload: FeeStructureStatusUpdate,
    db: AsyncSession = Depends(get_db),
) -> FeeStructureStatusResponse:
    try:
        return await service.update_status(db, fee_structure_id, payload.status)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


# --- Student ledger ---
@router.get(
    "/students/{student_id}/history",
    response_model=List[StudentFeeHistoryResponse],
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_student_fee_history(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> List[StudentFeeHistoryResponse]:
    try:
        return await service.get_student_fee_history(db, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.post(
    "/compute-month",
    response_model=MonthlyFeeComputeResponse,
    dependencies=[Depends(check_permission("fees", "update"))],
)
async def compute_monthly_fees(
    payload: MonthlyFeeCompute,
    db: AsyncSession = Depends(get_db),
) -> MonthlyFeeComputeResponse:
    """Compute payable amounts for a month and append ledger versions for students whose amounts changed."""
    try:
        return await computation_service.compute_month(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
