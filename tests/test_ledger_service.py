from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.api.v1.fees import ledger_service, service
from app.core.models import FeeStructureHistory, StudentFeeHistory


@pytest.mark.asyncio
async def test_create_seeds_enrolled_students(db_session, make_class, make_student, structure_payload) -> None:
    class_id = await make_class()
    s1 = await make_student(class_id, "Asha")
    s2 = await make_student(class_id, "Bilal")
    await make_student(class_id, "Left school", deleted=True)
    other_class = await make_class(grade=9)
    await make_student(other_class, "Other class")

    created = await service.create_structure(
        db_session, structure_payload(class_id=class_id, effective_from=date(2024, 4, 15))
    )

    rows = (await db_session.execute(select(StudentFeeHistory))).scalars().all()
    assert {r.student_id for r in rows} == {s1, s2}
    for row in rows:
        assert row.fee_structure_id == created.id
        assert row.period_month == date(2024, 4, 1)
        assert row.version == 1
        assert row.base_amount == Decimal("3150")
        assert row.scholarship_amount == Decimal("0")
        assert row.extra_charges_amount == Decimal("0")
        assert row.final_payable == Decimal("3150")
        assert len(row.breakdown["items"]) == 4


@pytest.mark.asyncio
async def test_seeding_twice_is_idempotent(db_session, make_class, make_student, structure_payload) -> None:
    class_id = await make_class()
    await make_student(class_id)
    await make_student(class_id)
    created = await service.create_structure(db_session, structure_payload(class_id=class_id))
    history = (await db_session.execute(select(FeeStructureHistory))).scalar_one()

    inserted = await ledger_service.seed_student_ledger(
        db_session,
        class_id,
        created.id,
        history.total_annual,
        history.snapshot,
        created.effective_from,
    )
    await db_session.commit()

    assert inserted == 0
    rows = (await db_session.execute(select(StudentFeeHistory))).scalars().all()
    assert len(rows) == 2


@pytest.mark.asyncio
async def test_seeding_picks_up_new_students_only(db_session, make_class, make_student, structure_payload) -> None:
    class_id = await make_class()
    await make_student(class_id)
    created = await service.create_structure(db_session, structure_payload(class_id=class_id))
    late_joiner = await make_student(class_id, "Late joiner")
    history = (await db_session.execute(select(FeeStructureHistory))).scalar_one()

    inserted = await ledger_service.seed_student_ledger(
        db_session,
        class_id,
        created.id,
        history.total_annual,
        history.snapshot,
        date(2024, 4, 30),
    )
    await db_session.commit()

    assert inserted == 1
    rows = (await db_session.execute(select(StudentFeeHistory))).scalars().all()
    assert len(rows) == 2
    assert late_joiner in {r.student_id for r in rows}


@pytest.mark.asyncio
async def test_seeding_empty_class(db_session, make_class, structure_payload) -> None:
    class_id = await make_class()
    await service.create_structure(db_session, structure_payload(class_id=class_id))
    rows = (await db_session.execute(select(StudentFeeHistory))).scalars().all()
    assert rows == []


def test_period_month_for() -> None:
    assert ledger_service.period_month_for(date(2024, 2, 29)) == date(2024, 2, 1)
    assert ledger_service.period_month_for(date(2024, 12, 1)) == date(2024, 12, 1)
