from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from app.api.v1.fees import computation_service, service
from app.api.v1.fees.schemas import MonthlyFeeCompute
from app.core.exceptions import NotFoundError
from app.core.models import (
    ChargeAssignment,
    ChargeDefinition,
    ScholarshipAssignment,
    ScholarshipDefinition,
    StudentFeeHistory,
)
from app.core.snapshot import ExpandedFeeItem

MAY = date(2024, 5, 1)


async def _rows(db_session, period_month):
    result = await db_session.execute(
        select(StudentFeeHistory)
        .where(StudentFeeHistory.period_month == period_month)
        .order_by(StudentFeeHistory.version)
    )
    return {(r.student_id, r.version): r for r in result.scalars().all()}


@pytest.fixture()
def school(db_session, make_class, make_student, structure_payload):
    """One class with the default structure (effective 2024-04-15) and three students:
    merit (10% scholarship), fined (fixed 50 charge in May), plain."""

    async def _build():
        class_id = await make_class()
        merit = await make_student(class_id, "Merit")
        fined = await make_student(class_id, "Fined")
        plain = await make_student(class_id, "Plain")
        await service.create_structure(db_session, structure_payload(class_id=class_id))

        scholarship = ScholarshipDefinition(name="Merit", type="MERIT", value_type="PERCENTAGE", value=Decimal("10"))
        fine = ChargeDefinition(name="Late fee", type="FINE", value_type="FIXED", value=Decimal("50"))
        db_session.add_all([scholarship, fine])
        await db_session.flush()
        db_session.add(
            ScholarshipAssignment(scholarship_id=scholarship.id, student_id=merit, effective_from=date(2024, 1, 1))
        )
        db_session.add(ChargeAssignment(charge_id=fine.id, student_id=fined, applied_month=MAY))
        await db_session.commit()
        return SimpleNamespace(class_id=class_id, merit=merit, fined=fined, plain=plain, fine_id=fine.id)

    return _build


# --- compute_monthly_fee ---
def _item(label, amount, frequency):
    return ExpandedFeeItem(
        label=label,
        amount=Decimal(amount),
        category="General",
        frequency=frequency,
        is_optional=False,
        monthly_amount=Decimal("0"),
    )


def test_one_time_items_bill_only_in_first_month() -> None:
    items = [_item("Tuition", "100", "MONTHLY"), _item("Admission", "50", "ONE_TIME")]

    first = computation_service.compute_monthly_fee(items, date(2024, 4, 1), date(2024, 4, 1), [], [])
    later = computation_service.compute_monthly_fee(items, MAY, date(2024, 4, 1), [], [])

    assert first.base == Decimal("150")
    assert later.base == Decimal("100")
    assert later.breakdown["items"][1]["billed_amount"] == "0"


def test_scholarships_never_exceed_base() -> None:
    items = [_item("Tuition", "100", "MONTHLY")]
    full_ride = SimpleNamespace(
        scholarship=SimpleNamespace(
            id=uuid4(), name="Full", value_type="FIXED", value=Decimal("500"), is_active=True
        )
    )
    retired = SimpleNamespace(
        scholarship=SimpleNamespace(
            id=uuid4(), name="Old", value_type="PERCENTAGE", value=Decimal("50"), is_active=False
        )
    )

    fee = computation_service.compute_monthly_fee(items, MAY, MAY, [full_ride, retired], [])

    assert fee.scholarship == Decimal("100")
    assert fee.final_payable == Decimal("0")
    assert [s["name"] for s in fee.breakdown["scholarships"]] == ["Full"]


def test_charge_override_and_percentage() -> None:
    items = [_item("Tuition", "200", "MONTHLY")]
    override = SimpleNamespace(
        amount=Decimal("75"),
        reason="Lost book",
        charge=SimpleNamespace(id=uuid4(), name="Library", value_type="FIXED", value=Decimal("20"), is_active=True),
    )
    surcharge = SimpleNamespace(
        amount=None,
        reason=None,
        charge=SimpleNamespace(id=uuid4(), name="Late", value_type="PERCENTAGE", value=Decimal("5"), is_active=True),
    )

    fee = computation_service.compute_monthly_fee(items, MAY, MAY, [], [override, surcharge])

    assert fee.charges == Decimal("85.00")
    assert fee.final_payable == Decimal("285.00")


# --- compute_month ---
@pytest.mark.asyncio
async def test_compute_month_applies_scholarship_and_charge(db_session, school) -> None:
    s = await school()

    result = await computation_service.compute_month(db_session, MonthlyFeeCompute(month=date(2024, 5, 20)))

    assert result.period_month == MAY
    assert (result.students_processed, result.created, result.unchanged) == (3, 3, 0)
    rows = await _rows(db_session, MAY)
    # Tuition 100 + Exam 300/3 + Library floor(1000/12); Admission billed in April only
    merit, fined, plain = rows[(s.merit, 1)], rows[(s.fined, 1)], rows[(s.plain, 1)]
    assert plain.base_amount == Decimal("283")
    assert plain.final_payable == Decimal("283")
    assert merit.scholarship_amount == Decimal("28.30")
    assert merit.final_payable == Decimal("254.70")
    assert fined.extra_charges_amount == Decimal("50")
    assert fined.final_payable == Decimal("333")
    assert fined.breakdown["charges"][0]["name"] == "Late fee"
    assert merit.breakdown["totals"]["final_payable"] == "254.70"


@pytest.mark.asyncio
async def test_recompute_appends_version_only_on_change(db_session, school) -> None:
    s = await school()
    await computation_service.compute_month(db_session, MonthlyFeeCompute(month=MAY))

    again = await computation_service.compute_month(db_session, MonthlyFeeCompute(month=MAY))
    assert (again.created, again.unchanged) == (0, 3)

    db_session.add(
        ChargeAssignment(charge_id=s.fine_id, student_id=s.plain, applied_month=MAY, amount=Decimal("20"))
    )
    await db_session.commit()
    changed = await computation_service.compute_month(db_session, MonthlyFeeCompute(month=MAY))

    assert (changed.created, changed.unchanged) == (1, 2)
    rows = await _rows(db_session, MAY)
    assert rows[(s.plain, 2)].final_payable == Decimal("303")
    assert (s.merit, 2) not in rows


@pytest.mark.asyncio
async def test_include_existing_forces_new_versions(db_session, school) -> None:
    await school()
    await computation_service.compute_month(db_session, MonthlyFeeCompute(month=MAY))

    forced = await computation_service.compute_month(
        db_session, MonthlyFeeCompute(month=MAY, include_existing=True)
    )

    assert forced.created == 3
    assert {version for _, version in await _rows(db_session, MAY)} == {1, 2}


@pytest.mark.asyncio
async def test_first_month_follows_seeded_row(db_session, school) -> None:
    s = await school()

    result = await computation_service.compute_month(
        db_session, MonthlyFeeCompute(month=date(2024, 4, 1), class_id=s.class_id)
    )

    assert result.created == 3
    rows = await _rows(db_session, date(2024, 4, 1))
    # version 1 is the annual row seeded at creation
    assert rows[(s.plain, 1)].base_amount == Decimal("3150")
    assert rows[(s.plain, 2)].base_amount == Decimal("333")


@pytest.mark.asyncio
async def test_students_without_structure_are_skipped(db_session, make_class, make_student) -> None:
    class_id = await make_class(grade=8)
    await make_student(class_id)

    result = await computation_service.compute_month(db_session, MonthlyFeeCompute(month=MAY))

    assert (result.students_processed, result.created, result.without_structure) == (1, 0, 1)


@pytest.mark.asyncio
async def test_compute_unknown_class(db_session) -> None:
    with pytest.raises(NotFoundError):
        await computation_service.compute_month(db_session, MonthlyFeeCompute(month=MAY, class_id=uuid4()))


@pytest.mark.asyncio
async def test_compute_month_endpoint(client: AsyncClient, school) -> None:
    s = await school()

    response = await client.post("/api/v1/fees/compute-month", json={"month": "2024-05-01"})
    history = (await client.get(f"/api/v1/fees/students/{s.merit}/history")).json()

    assert response.status_code == 200
    assert response.json()["created"] == 3
    may = next(h for h in history if h["period_month"] == "2024-05-01")
    assert Decimal(may["final_payable"]) == Decimal("254.70")
    assert Decimal(may["scholarship_amount"]) == Decimal("28.30")
    assert len(may["items"]) == 4

    missing = await client.post(
        "/api/v1/fees/compute-month", json={"month": "2024-05-01", "class_id": str(uuid4())}
    )
    assert missing.status_code == 404
