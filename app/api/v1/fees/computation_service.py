"""
Monthly fee computation: per-student payable for one month from the structure version in effect,
active scholarships and the charges applied that month. Appends a new ledger version only when
the amounts differ from the latest row for (student, month).
"""

import calendar
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.accounting import service as accounting_service
from app.core.enums import Frequency, ValueType
from app.core.exceptions import NotFoundError
from app.core.models import (
    ChargeAssignment,
    ScholarshipAssignment,
    SchoolClass,
    Student,
    StudentFeeHistory,
)
from app.core.money import frequency_key, monthly_equivalent, to_cents, to_decimal
from app.core.snapshot import SNAPSHOT_SCHEMA_VERSION, ExpandedFeeItem

from . import ledger_service
from .schemas import MonthlyFeeCompute, MonthlyFeeComputeResponse

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class MonthlyFee:
    base: Decimal
    scholarship: Decimal
    charges: Decimal
    breakdown: Dict[str, Any] = field(default_factory=dict)

    @property
    def final_payable(self) -> Decimal:
        return self.base - self.scholarship + self.charges

    def matches(self, row: StudentFeeHistory) -> bool:
        return (
            to_decimal(row.base_amount) == self.base
            and to_decimal(row.scholarship_amount) == self.scholarship
            and to_decimal(row.extra_charges_amount) == self.charges
            and to_decimal(row.final_payable) == self.final_payable
        )


def month_bounds(day: date) -> Tuple[date, date]:
    last_day = calendar.monthrange(day.year, day.month)[1]
    return date(day.year, day.month, 1), date(day.year, day.month, last_day)


def billed_amount(item: ExpandedFeeItem, period_month: date, first_month: date) -> Decimal:
    """ONE_TIME items bill only in the month the version took effect; others bill their monthly equivalent."""
    if frequency_key(item.frequency) == Frequency.ONE_TIME.value:
        return to_decimal(item.amount) if period_month == first_month else ZERO
    return monthly_equivalent(item.amount, item.frequency)


def _percentage_of(base: Decimal, value: Any) -> Decimal:
    return to_cents(base * to_decimal(value) / 100)


def compute_monthly_fee(
    items: Sequence[ExpandedFeeItem],
    period_month: date,
    first_month: date,
    scholarships: Sequence[ScholarshipAssignment],
    charges: Sequence[ChargeAssignment],
) -> MonthlyFee:
    """
    base = sum of billed item amounts.
    Scholarships reduce the base (PERCENTAGE of base or FIXED value), never below zero.
    Charges use the assignment amount, else the definition value (PERCENTAGE of base or FIXED).
    Inactive definitions are ignored.
    """
    item_rows = []
    base = ZERO
    for item in items:
        billed = billed_amount(item, period_month, first_month)
        base += billed
        row = item.model_dump(mode="json")
        row["billed_amount"] = str(billed)
        item_rows.append(row)

    reduction = ZERO
    scholarship_rows = []
    for assignment in scholarships:
        definition = assignment.scholarship
        if definition is None or not definition.is_active:
            continue
        if definition.value_type == ValueType.PERCENTAGE.value:
            amount = _percentage_of(base, definition.value)
        else:
            amount = to_decimal(definition.value)
        reduction += amount
        scholarship_rows.append(
            {
                "scholarship_id": str(definition.id),
                "name": definition.name,
                "value_type": definition.value_type,
                "value": str(definition.value),
                "amount": str(amount),
            }
        )
    reduction = min(reduction, base)

    extra = ZERO
    charge_rows = []
    for assignment in charges:
        definition = assignment.charge
        if definition is None or not definition.is_active:
            continue
        if assignment.amount is not None:
            amount = to_decimal(assignment.amount)
        elif definition.value_type == ValueType.PERCENTAGE.value:
            amount = _percentage_of(base, definition.value)
        else:
            amount = to_decimal(definition.value)
        extra += amount
        charge_rows.append(
            {
                "charge_id": str(definition.id),
                "name": definition.name,
                "amount": str(amount),
                "reason": assignment.reason,
            }
        )

    fee = MonthlyFee(base=base, scholarship=reduction, charges=extra)
    fee.breakdown = {
        "schema_version": SNAPSHOT_SCHEMA_VERSION,
        "items": item_rows,
        "scholarships": scholarship_rows,
        "charges": charge_rows,
        "totals": {
            "base": str(fee.base),
            "scholarship": str(fee.scholarship),
            "charges": str(fee.charges),
            "final_payable": str(fee.final_payable),
        },
    }
    return fee


async def _target_students(db: AsyncSession, class_id: Optional[UUID]) -> List[Tuple[UUID, UUID]]:
    stmt = select(Student.id, Student.class_id).where(Student.deleted_at.is_(None))
    if class_id is not None:
        found = (
            await db.execute(
                select(SchoolClass.id).where(SchoolClass.id == class_id, SchoolClass.deleted_at.is_(None))
            )
        ).scalar_one_or_none()
        if not found:
            raise NotFoundError("Class not found")
        stmt = stmt.where(Student.class_id == class_id)
    return [(sid, cid) for sid, cid in (await db.execute(stmt)).all()]


async def _latest_rows(
    db: AsyncSession,
    student_ids: Sequence[UUID],
    period_month: date,
) -> Dict[UUID, StudentFeeHistory]:
    result = await db.execute(
        select(StudentFeeHistory)
        .where(
            StudentFeeHistory.student_id.in_(student_ids),
            StudentFeeHistory.period_month == period_month,
        )
        .order_by(StudentFeeHistory.version)
    )
    # ascending order: the last row seen per student is its latest version
    return {row.student_id: row for row in result.scalars().all()}


async def compute_month(db: AsyncSession, payload: MonthlyFeeCompute) -> MonthlyFeeComputeResponse:
    """
    Compute the month for every enrolled student (optionally one class). The structure version
    in effect is the one resolved as of the last day of the month.
    Unchanged students are skipped unless include_existing is set.
    """
    period_month, month_end = month_bounds(payload.month)
    try:
        students = await _target_students(db, payload.class_id)
        student_ids = [sid for sid, _ in students]

        resolved: Dict[UUID, Any] = {}
        for class_id in dict.fromkeys(cid for _, cid in students):
            try:
                resolved[class_id] = await accounting_service.resolve_structure_as_of(db, class_id, month_end)
            except NotFoundError:
                logger.info("No fee structure in effect for class %s in %s", class_id, period_month)

        scholarships_by_student: Dict[UUID, List[ScholarshipAssignment]] = {}
        for a in await accounting_service.active_scholarship_assignments(
            db, student_ids, period_month, period_month
        ):
            scholarships_by_student.setdefault(a.student_id, []).append(a)
        charges_by_student: Dict[UUID, List[ChargeAssignment]] = {}
        for a in await accounting_service.charge_assignments_between(db, student_ids, period_month, month_end):
            charges_by_student.setdefault(a.student_id, []).append(a)
        latest = await _latest_rows(db, student_ids, period_month) if student_ids else {}

        rows: List[Dict[str, Any]] = []
        unchanged = without_structure = 0
        now = datetime.utcnow()
        for student_id, class_id in students:
            structure = resolved.get(class_id)
            if structure is None:
                without_structure += 1
                continue
            fee = compute_monthly_fee(
                structure.items,
                period_month,
                ledger_service.period_month_for(structure.fee_structure.history_effective_from),
                scholarships_by_student.get(student_id, []),
                charges_by_student.get(student_id, []),
            )
            fee.breakdown["fee_structure_id"] = str(structure.fee_structure.id)
            fee.breakdown["fee_structure_version"] = structure.fee_structure.version
            last = latest.get(student_id)
            if last is not None and fee.matches(last) and not payload.include_existing:
                unchanged += 1
                continue
            rows.append(
                {
                    "id": uuid.uuid4(),
                    "student_id": student_id,
                    "fee_structure_id": structure.fee_structure.id,
                    "period_month": period_month,
                    "version": (last.version if last is not None else 0) + 1,
                    "base_amount": fee.base,
                    "scholarship_amount": fee.scholarship,
                    "extra_charges_amount": fee.charges,
                    "final_payable": fee.final_payable,
                    "breakdown": fee.breakdown,
                    "created_at": now,
                }
            )

        created = 0
        if rows:
            insert = ledger_service.dialect_insert(db)
            stmt = (
                insert(StudentFeeHistory)
                .values(rows)
                .on_conflict_do_nothing(index_elements=ledger_service.LEDGER_KEY)
                .returning(StudentFeeHistory.id)
            )
            created = len((await db.execute(stmt)).scalars().all())
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Computed fees for %s: %d students, %d new ledger rows, %d unchanged, %d without structure",
        period_month.isoformat(),
        len(students),
        created,
        unchanged,
        without_structure,
    )
    return MonthlyFeeComputeResponse(
        period_month=period_month,
        students_processed=len(students),
        created=created,
        unchanged=unchanged,
        without_structure=without_structure,
    )
