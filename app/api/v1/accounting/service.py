"""Accounting read paths: classes, fee structure in effect on a date, scholarships and charges per student."""

import logging
from datetime import date
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.api.v1.fees import service as fees_service
from app.api.v1.fees.schemas import FeeStructurePage
from app.core.exceptions import NotFoundError, ValidationError
from app.core.models import (
    ChargeAssignment,
    FeeStructure,
    FeeStructureHistory,
    ScholarshipAssignment,
    SchoolClass,
    Student,
)
from app.core.money import monthly_total, to_decimal
from app.core.snapshot import expand_items

from .schemas import (
    ClassSummary,
    FeeStructureAsOfResponse,
    ResolvedFeeStructure,
    StudentCharge,
    StudentScholarship,
)

logger = logging.getLogger(__name__)


async def list_classes(db: AsyncSession) -> List[ClassSummary]:
    result = await db.execute(
        select(SchoolClass)
        .where(SchoolClass.deleted_at.is_(None))
        .order_by(SchoolClass.grade, SchoolClass.section)
    )
    return [
        ClassSummary(id=c.id, grade=c.grade, section=c.section, shift=c.shift)
        for c in result.scalars().all()
    ]


async def list_class_fee_structures(
    db: AsyncSession,
    class_id: UUID,
    academic_year: Optional[str] = None,
) -> FeeStructurePage:
    return await fees_service.list_structures(db, class_id=class_id, academic_year=academic_year)


async def resolve_structure_as_of(
    db: AsyncSession,
    class_id: UUID,
    for_date: date,
) -> FeeStructureAsOfResponse:
    """
    Most recent structure with effective_from <= for_date, then its most recent history row
    with effective_from <= for_date (version breaks ties). Items come from the history snapshot.
    """
    school_class = (
        await db.execute(
            select(SchoolClass).where(
                SchoolClass.id == class_id,
                SchoolClass.deleted_at.is_(None),
            )
        )
    ).scalar_one_or_none()
    if not school_class:
        raise NotFoundError("Class not found")

    structure = (
        await db.execute(
            select(FeeStructure)
            .where(
                FeeStructure.class_id == class_id,
                FeeStructure.deleted_at.is_(None),
                FeeStructure.effective_from <= for_date,
            )
            .order_by(FeeStructure.effective_from.desc(), FeeStructure.created_at.desc())
            .limit(1)
        )
    ).scalar_one_or_none()
    if not structure:
        raise NotFoundError(
            f"No fee structure found for class (Grade {school_class.grade} Section "
            f"{school_class.section}) effective on or before {for_date.isoformat()}"
        )

    history = (
        await db.execute(
            select(FeeStructureHistory)
            .where(
                FeeStructureHistory.fee_structure_id == structure.id,
                FeeStructureHistory.effective_from <= for_date,
            )
            .order_by(FeeStructureHistory.effective_from.desc(), FeeStructureHistory.version.desc())
            .limit(1)
        )
    ).scalar_one_or_none()
    if not history:
        raise NotFoundError("No fee structure history found for the specified date")

    total_annual = to_decimal(history.total_annual)
    return FeeStructureAsOfResponse(
        class_id=school_class.id,
        grade=school_class.grade,
        section=school_class.section,
        shift=school_class.shift,
        for_date=for_date,
        fee_structure=ResolvedFeeStructure(
            id=structure.id,
            name=structure.name,
            academic_year=structure.academic_year,
            effective_from=structure.effective_from,
            status=structure.status,
            version=history.version,
            history_effective_from=history.effective_from,
            total_annual=total_annual,
            total_monthly=monthly_total(total_annual),
        ),
        items=expand_items(history.snapshot),
    )


def _require_range(start_date: Optional[date], end_date: Optional[date]) -> None:
    if start_date is None or end_date is None:
        raise ValidationError("start_date and end_date are required")
    if start_date > end_date:
        raise ValidationError("start_date must be on or before end_date")


async def _require_student(db: AsyncSession, student_id: UUID) -> Student:
    student = (
        await db.execute(
            select(Student).where(Student.id == student_id, Student.deleted_at.is_(None))
        )
    ).scalar_one_or_none()
    if not student:
        raise NotFoundError("Student not found")
    return student


async def active_scholarship_assignments(
    db: AsyncSession,
    student_ids: Sequence[UUID],
    start_date: date,
    end_date: date,
) -> List[ScholarshipAssignment]:
    """Assignments in force for the whole range: started on/before start_date, not expired before end_date."""
    if not student_ids:
        return []
    result = await db.execute(
        select(ScholarshipAssignment)
        .options(selectinload(ScholarshipAssignment.scholarship))
        .where(
            ScholarshipAssignment.student_id.in_(student_ids),
            ScholarshipAssignment.deleted_at.is_(None),
            ScholarshipAssignment.effective_from <= start_date,
            or_(
                ScholarshipAssignment.expires_at.is_(None),
                ScholarshipAssignment.expires_at >= end_date,
            ),
        )
        .order_by(ScholarshipAssignment.effective_from.desc())
    )
    return list(result.scalars().all())


async def charge_assignments_between(
    db: AsyncSession,
    student_ids: Sequence[UUID],
    start_date: date,
    end_date: date,
) -> List[ChargeAssignment]:
    if not student_ids:
        return []
    result = await db.execute(
        select(ChargeAssignment)
        .options(selectinload(ChargeAssignment.charge))
        .where(
            ChargeAssignment.student_id.in_(student_ids),
            ChargeAssignment.deleted_at.is_(None),
            ChargeAssignment.applied_month >= start_date,
            ChargeAssignment.applied_month <= end_date,
        )
        .order_by(ChargeAssignment.applied_month, ChargeAssignment.created_at)
    )
    return list(result.scalars().all())


async def get_scholarships_for_student(
    db: AsyncSession,
    student_id: UUID,
    start_date: Optional[date],
    end_date: Optional[date],
) -> List[StudentScholarship]:
    """Scholarships in force for the whole range: started on/before start_date, not expired before end_date."""
    _require_range(start_date, end_date)
    await _require_student(db, student_id)

    assignments = await active_scholarship_assignments(db, [student_id], start_date, end_date)
    return [
        StudentScholarship(
            name=a.scholarship.name,
            type=a.scholarship.type,
            value_type=a.scholarship.value_type,
            value=to_decimal(a.scholarship.value),
            description=a.scholarship.description,
            is_active=a.scholarship.is_active,
            effective_from=a.effective_from,
            expires_at=a.expires_at,
        )
        for a in assignments
    ]


async def get_charges_for_student(
    db: AsyncSession,
    student_id: UUID,
    start_date: Optional[date],
    end_date: Optional[date],
) -> List[StudentCharge]:
    """Charges and fines applied to months within [start_date, end_date]."""
    _require_range(start_date, end_date)
    await _require_student(db, student_id)

    assignments = await charge_assignments_between(db, [student_id], start_date, end_date)
    return [
        StudentCharge(
            id=a.id,
            charge_id=a.charge_id,
            name=a.charge.name,
            type=a.charge.type,
            category=a.charge.category,
            value_type=a.charge.value_type,
            value=to_decimal(a.charge.value),
            amount=to_decimal(a.amount) if a.amount is not None else None,
            applied_month=a.applied_month,
            reason=a.reason,
            created_at=a.created_at,
        )
        for a in assignments
    ]
