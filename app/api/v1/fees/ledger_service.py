"""
Student fee ledger seeding. Called inside the structure-creation transaction; caller must commit.
"""

import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ServiceError
from app.core.models import Student, StudentFeeHistory
from app.core.money import to_decimal

logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}

LEDGER_KEY = ["student_id", "period_month", "version"]


def period_month_for(day: date) -> date:
    return date(day.year, day.month, 1)


def dialect_insert(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    insert = _INSERT_BY_DIALECT.get(dialect)
    if insert is None:
        raise ServiceError(f"Ledger seeding is not supported on {dialect}")
    return insert


async def seed_student_ledger(
    db: AsyncSession,
    class_id: UUID,
    fee_structure_id: UUID,
    total_annual: Decimal,
    snapshot: Dict[str, Any],
    effective_from: date,
    version: int = 1,
) -> int:
    """
    Insert one StudentFeeHistory row per enrolled student of the class for the month of
    effective_from. Rows already present for (student, period_month, version) are left as-is.
    Returns the number of rows inserted.
    """
    student_ids = (
        await db.execute(
            select(Student.id).where(
                Student.class_id == class_id,
                Student.deleted_at.is_(None),
            )
        )
    ).scalars().all()
    if not student_ids:
        logger.info("No enrolled students in class %s; ledger not seeded", class_id)
        return 0

    period_month = period_month_for(effective_from)
    amount = to_decimal(total_annual)
    now = datetime.utcnow()
    rows: List[Dict[str, Any]] = [
        {
            "id": uuid.uuid4(),
            "student_id": student_id,
            "fee_structure_id": fee_structure_id,
            "period_month": period_month,
            "version": version,
            "base_amount": amount,
            "scholarship_amount": Decimal("0"),
            "extra_charges_amount": Decimal("0"),
            "final_payable": amount,
            "breakdown": snapshot,
            "created_at": now,
        }
        for student_id in student_ids
    ]

    insert = dialect_insert(db)
    stmt = (
        insert(StudentFeeHistory)
        .values(rows)
        .on_conflict_do_nothing(index_elements=LEDGER_KEY)
        .returning(StudentFeeHistory.id)
    )
    inserted = len((await db.execute(stmt)).scalars().all())
    logger.info(
        "Seeded %d of %d ledger rows for class %s, period %s, version %d",
        inserted,
        len(rows),
        class_id,
        period_month.isoformat(),
        version,
    )
    return inserted
