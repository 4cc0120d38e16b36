from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.fees.schemas import FeeStructurePage
from app.auth.rbac import check_permission
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import ClassSummary, FeeStructureAsOfResponse, StudentCharge, StudentScholarship
from . import service

router = APIRouter(prefix="/api/v1/accounting", tags=["accounting"])


@router.get(
    "/class",
    response_model=List[ClassSummary],
    dependencies=[Depends(check_permission("accounting", "read"))],
)
async def list_classes(db: AsyncSession = Depends(get_db)) -> List[ClassSummary]:
    return await service.list_classes(db)


@router.get(
    "/fee-structure/{class_id}",
    response_model=FeeStructurePage,
    dependencies=[Depends(check_permission("accounting", "read"))],
)
async def list_class_fee_structures(
    class_id: UUID,
    academic_year: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> FeeStructurePage:
    return await service.list_class_fee_structures(db, class_id, academic_year=academic_year)


@router.get(
    "/fee-structure/{class_id}/as-of",
    response_model=FeeStructureAsOfResponse,
    dependencies=[Depends(check_permission("accounting", "read"))],
)
async def get_fee_structure_as_of(
    class_id: UUID,
    for_date: Optional[date] = Query(None, description="Defaults to today"),
    db: AsyncSession = Depends(get_db),
) -> FeeStructureAsOfResponse:
    try:
        return await service.resolve_structure_as_of(db, class_id, for_date or date.today())
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/scholarships/{student_id}",
    response_model=List[StudentScholarship],
    dependencies=[Depends(check_permission("accounting", "read"))],
)
async def get_scholarships_for_student(
    student_id: UUID,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> List[StudentScholarship]:
    try:
        return await service.get_scholarships_for_student(db, student_id, start_date, end_date)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/charges-and-fines/{student_id}",
    response_model=List[StudentCharge],
    dependencies=[Depends(check_permission("accounting", "read"))],
)
async def get_charges_for_student(
    student_id: UUID,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> List[StudentCharge]:
    try:
        return await service.get_charges_for_student(db, student_id, start_date, end_date)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
