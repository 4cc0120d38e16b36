"""Fees service: fee structure creation, revision, history, status and listing. Every write is one transaction."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple, Union
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.enums import FeeStructureStatus
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.models import (
    FeeStructure,
    FeeStructureHistory,
    FeeStructureItem,
    SchoolClass,
    Student,
    StudentFeeHistory,
)
from app.core.money import annualize, monthly_total, to_cents, to_decimal
from app.core.snapshot import build_snapshot, expand_items, parse_snapshot

from . import ledger_service
from .schemas import (
    AmountChange,
    AssignedClass,
    FeeItemCreate,
    FeeItemRevise,
    FeeStructureCreate,
    FeeStructureHistoryResponse,
    FeeStructureItemResponse,
    FeeStructureListEntry,
    FeeStructureListEntryItem,
    FeeStructurePage,
    FeeStructureResponse,
    FeeStructureRevise,
    FeeStructureRevisionResponse,
    FeeStructureStatusResponse,
    FeeStructureVersionDetails,
    ItemComparison,
    RevenueImpact,
    StudentFeeHistoryResponse,
    VersionComparisonResponse,
    VersionTotals,
)

logger = logging.getLogger(__name__)

DUPLICATE_STRUCTURE_MESSAGE = (
    "Fee structure already exists for one or more selected classes for this academic year"
)


def _item_to_response(item: FeeStructureItem) -> FeeStructureItemResponse:
    return FeeStructureItemResponse(
        id=item.id,
        fee_structure_id=item.fee_structure_id,
        category=item.category,
        label=item.label,
        amount=to_decimal(item.amount),
        frequency=item.frequency,
        is_optional=item.is_optional,
        created_at=item.created_at,
    )


def _structure_to_response(
    structure: FeeStructure,
    items: Sequence[FeeStructureItem],
) -> FeeStructureResponse:
    return FeeStructureResponse(
        id=structure.id,
        class_id=structure.class_id,
        academic_year=structure.academic_year,
        name=structure.name,
        effective_from=structure.effective_from,
        status=structure.status,
        created_at=structure.created_at,
        updated_at=structure.updated_at,
        items=[_item_to_response(i) for i in items],
    )


def _history_to_response(history: FeeStructureHistory) -> FeeStructureHistoryResponse:
    return FeeStructureHistoryResponse(
        id=history.id,
        fee_structure_id=history.fee_structure_id,
        version=history.version,
        effective_from=history.effective_from,
        total_annual=to_decimal(history.total_annual),
        change_reason=history.change_reason,
        created_at=history.created_at,
        items=expand_items(history.snapshot),
    )


def _target_class_ids(payload: FeeStructureCreate) -> List[UUID]:
    """Union of class_id and class_ids, first occurrence wins."""
    raw: List[UUID] = []
    if payload.class_id is not None:
        raw.append(payload.class_id)
    raw.extend(payload.class_ids or [])
    return list(dict.fromkeys(raw))


async def _get_live_structure(
    db: AsyncSession,
    fee_structure_id: UUID,
    for_update: bool = False,
) -> Optional[FeeStructure]:
    stmt = select(FeeStructure).where(
        FeeStructure.id == fee_structure_id,
        FeeStructure.deleted_at.is_(None),
    )
    if for_update:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def _insert_items(
    db: AsyncSession,
    fee_structure_id: UUID,
    items: Sequence[Union[FeeItemCreate, FeeItemRevise]],
) -> List[FeeStructureItem]:
    rows = [
        FeeStructureItem(
            fee_structure_id=fee_structure_id,
            category=i.category.strip(),
            label=i.label.strip(),
            amount=to_cents(i.amount),
            frequency=i.frequency.value,
            is_optional=i.is_optional,
        )
        for i in items
    ]
    db.add_all(rows)
    await db.flush()
    return rows


async def _live_items(db: AsyncSession, fee_structure_id: UUID) -> List[FeeStructureItem]:
    result = await db.execute(
        select(FeeStructureItem)
        .where(
            FeeStructureItem.fee_structure_id == fee_structure_id,
            FeeStructureItem.deleted_at.is_(None),
        )
        .order_by(FeeStructureItem.created_at, FeeStructureItem.label)
    )
    return list(result.scalars().all())


async def _live_structure_class_ids(
    db: AsyncSession,
    academic_year: str,
    class_ids: Sequence[UUID],
) -> List[UUID]:
    """Classes among class_ids that already have a live structure for academic_year."""
    existing = (
        await db.execute(
            select(FeeStructure.class_id).where(
                FeeStructure.academic_year == academic_year,
                FeeStructure.deleted_at.is_(None),
                FeeStructure.class_id.in_(class_ids),
            )
        )
    ).scalars().all()
    return list(dict.fromkeys(existing))


async def _next_version(db: AsyncSession, fee_structure_id: UUID) -> int:
    current_max = (
        await db.execute(
            select(func.max(FeeStructureHistory.version)).where(
                FeeStructureHistory.fee_structure_id == fee_structure_id
            )
        )
    ).scalar()
    return (current_max or 0) + 1


# --- Creation ---
async def _create_for_class(
    db: AsyncSession,
    class_id: UUID,
    payload: FeeStructureCreate,
) -> Tuple[FeeStructure, List[FeeStructureItem]]:
    structure = FeeStructure(
        class_id=class_id,
        academic_year=payload.academic_year.strip(),
        name=payload.name.strip(),
        effective_from=payload.effective_from,
        status=FeeStructureStatus.ACTIVE.value,
    )
    db.add(structure)
    await db.flush()

    items = await _insert_items(db, structure.id, payload.items)
    total_annual = annualize(items)
    snapshot = build_snapshot(items)
    db.add(
        FeeStructureHistory(
            fee_structure_id=structure.id,
            version=1,
            effective_from=payload.effective_from,
            total_annual=total_annual,
            snapshot=snapshot,
        )
    )
    await db.flush()

    await ledger_service.seed_student_ledger(
        db,
        class_id,
        structure.id,
        total_annual,
        snapshot,
        payload.effective_from,
    )
    return structure, items


async def create_structure(
    db: AsyncSession,
    payload: FeeStructureCreate,
) -> Union[FeeStructureResponse, List[FeeStructureResponse]]:
    """
    Create one structure per target class with history version 1, and seed each class's ledger.
    All classes succeed or none do. A single target returns one structure; several return a list.
    """
    target_class_ids = _target_class_ids(payload)
    if not target_class_ids:
        raise ValidationError("At least one class_id required")
    academic_year = payload.academic_year.strip()

    try:
        found = (
            await db.execute(
                select(SchoolClass.id).where(
                    SchoolClass.id.in_(target_class_ids),
                    SchoolClass.deleted_at.is_(None),
                )
            )
        ).scalars().all()
        found_ids = set(found)
        missing = [str(c) for c in target_class_ids if c not in found_ids]
        if missing:
            raise NotFoundError(f"Class not found: {', '.join(missing)}")

        conflicting = await _live_structure_class_ids(db, academic_year, target_class_ids)
        if conflicting:
            logger.warning(
                "Duplicate fee structure for academic year %s, classes %s",
                academic_year,
                conflicting,
            )
            raise ConflictError(DUPLICATE_STRUCTURE_MESSAGE, conflicting_class_ids=conflicting)

        created: List[Tuple[FeeStructure, List[FeeStructureItem]]] = []
        for class_id in target_class_ids:
            created.append(await _create_for_class(db, class_id, payload))
        await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent create; the partial unique index caught it.
        await db.rollback()
        conflicting = await _live_structure_class_ids(db, academic_year, target_class_ids)
        logger.warning(
            "Concurrent fee structure create for academic year %s, classes %s",
            academic_year,
            conflicting,
        )
        raise ConflictError(
            DUPLICATE_STRUCTURE_MESSAGE,
            conflicting_class_ids=conflicting or target_class_ids,
        )
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Created %d fee structure(s) for academic year %s: %s",
        len(created),
        payload.academic_year,
        [str(s.id) for s, _ in created],
    )
    responses = [_structure_to_response(s, items) for s, items in created]
    if len(responses) == 1:
        return responses[0]
    return responses


# --- Revision ---
async def revise_structure(
    db: AsyncSession,
    fee_structure_id: UUID,
    payload: FeeStructureRevise,
) -> FeeStructureRevisionResponse:
    """
    Replace the live item set and append the next history version.
    The structure row is locked for the transaction so concurrent revisions get consecutive versions.
    Existing student ledger rows are not touched.
    """
    try:
        structure = await _get_live_structure(db, fee_structure_id, for_update=True)
        if not structure:
            raise NotFoundError("Fee structure not found")

        next_version = await _next_version(db, structure.id)

        await db.execute(
            update(FeeStructureItem)
            .where(
                FeeStructureItem.fee_structure_id == structure.id,
                FeeStructureItem.deleted_at.is_(None),
            )
            .values(deleted_at=datetime.utcnow())
        )
        items = await _insert_items(db, structure.id, payload.items)
        total_annual = annualize(items)
        db.add(
            FeeStructureHistory(
                fee_structure_id=structure.id,
                version=next_version,
                effective_from=payload.effective_from,
                total_annual=total_annual,
                snapshot=build_snapshot(items),
                change_reason=payload.change_reason,
            )
        )
        await db.flush()
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Fee structure was revised concurrently; retry the revision")
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Revised fee structure %s to version %d (total_annual=%s)",
        fee_structure_id,
        next_version,
        total_annual,
    )
    return FeeStructureRevisionResponse(version=next_version, total_annual=total_annual)


# --- Reads ---
async def get_structure(db: AsyncSession, fee_structure_id: UUID) -> FeeStructureResponse:
    structure = await _get_live_structure(db, fee_structure_id)
    if not structure:
        raise NotFoundError("Fee structure not found")
    return _structure_to_response(structure, await _live_items(db, structure.id))


async def get_structure_history(
    db: AsyncSession,
    fee_structure_id: UUID,
) -> List[FeeStructureHistoryResponse]:
    """All versions, oldest first. Works for soft-deleted structures too: history is kept forever."""
    structure = await db.get(FeeStructure, fee_structure_id)
    if not structure:
        raise NotFoundError("Fee structure not found")
    result = await db.execute(
        select(FeeStructureHistory)
        .where(FeeStructureHistory.fee_structure_id == fee_structure_id)
        .order_by(FeeStructureHistory.version)
    )
    return [_history_to_response(h) for h in result.scalars().all()]


async def get_version_details(
    db: AsyncSession,
    fee_structure_id: UUID,
    version: int,
) -> FeeStructureVersionDetails:
    structure = await db.get(FeeStructure, fee_structure_id)
    if not structure:
        raise NotFoundError("Fee structure not found")
    history = (
        await db.execute(
            select(FeeStructureHistory).where(
                FeeStructureHistory.fee_structure_id == fee_structure_id,
                FeeStructureHistory.version == version,
            )
        )
    ).scalar_one_or_none()
    if not history:
        raise NotFoundError(f"Version {version} not found for this fee structure")
    base = _history_to_response(history)
    return FeeStructureVersionDetails(
        **base.model_dump(),
        total_monthly=monthly_total(history.total_annual),
    )


async def update_status(
    db: AsyncSession,
    fee_structure_id: UUID,
    new_status: FeeStructureStatus,
) -> FeeStructureStatusResponse:
    try:
        structure = await _get_live_structure(db, fee_structure_id)
        if not structure:
            raise NotFoundError("Fee structure not found")
        old_status = structure.status
        structure.status = new_status.value
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("Fee structure %s status %s -> %s", structure.id, old_status, structure.status)
    return FeeStructureStatusResponse(id=structure.id, status=structure.status)


# --- Version comparison ---
def _percentage(change: Decimal, base: Decimal) -> Decimal:
    if base <= 0:
        return Decimal("0.00")
    return to_cents(change / base * 100)


def _compare_items(from_raw, to_raw) -> List[ItemComparison]:
    """Diff keyed by label. Unchanged items are omitted."""
    from_items = {i.label: i for i in parse_snapshot(from_raw).items}
    to_items = {i.label: i for i in parse_snapshot(to_raw).items}
    labels = list(dict.fromkeys(list(from_items) + list(to_items)))

    comparison: List[ItemComparison] = []
    for label in labels:
        before = from_items.get(label)
        after = to_items.get(label)
        from_amount = before.amount if before else Decimal("0")
        to_amount = after.amount if after else Decimal("0")
        if before is None:
            change_type = "added"
        elif after is None:
            change_type = "removed"
        elif to_amount != from_amount:
            change_type = "modified"
        else:
            continue
        comparison.append(
            ItemComparison(
                label=label,
                from_amount=from_amount,
                to_amount=to_amount,
                amount_change=to_amount - from_amount,
                change_type=change_type,
                from_frequency=before.frequency if before else None,
                to_frequency=after.frequency if after else None,
            )
        )
    return comparison


async def compare_versions(
    db: AsyncSession,
    fee_structure_id: UUID,
    from_version: Optional[int] = None,
    to_version: Optional[int] = None,
) -> VersionComparisonResponse:
    """Financial impact between two versions (defaults: first and latest)."""
    structure = await db.get(FeeStructure, fee_structure_id)
    if not structure:
        raise NotFoundError("Fee structure not found")
    histories = (
        await db.execute(
            select(FeeStructureHistory)
            .where(FeeStructureHistory.fee_structure_id == fee_structure_id)
            .order_by(FeeStructureHistory.version)
        )
    ).scalars().all()
    if not histories:
        raise NotFoundError("No version history found for this fee structure")

    by_version: Dict[int, FeeStructureHistory] = {h.version: h for h in histories}
    start = from_version if from_version is not None else histories[0].version
    end = to_version if to_version is not None else histories[-1].version
    if start not in by_version or end not in by_version:
        raise ValidationError("Invalid version numbers specified")
    before, after = by_version[start], by_version[end]

    from_total = to_decimal(before.total_annual)
    to_total = to_decimal(after.total_annual)
    annual_change = to_total - from_total

    students_affected = (
        await db.execute(
            select(func.count(StudentFeeHistory.id)).where(
                StudentFeeHistory.fee_structure_id == fee_structure_id,
                StudentFeeHistory.version == end,
            )
        )
    ).scalar() or 0
    annual_revenue = annual_change * students_affected

    return VersionComparisonResponse(
        fee_structure_id=structure.id,
        name=structure.name,
        academic_year=structure.academic_year,
        from_version=VersionTotals(
            version=start,
            effective_from=before.effective_from,
            annual_total=from_total,
            monthly_total=monthly_total(from_total),
        ),
        to_version=VersionTotals(
            version=end,
            effective_from=after.effective_from,
            annual_total=to_total,
            monthly_total=monthly_total(to_total),
        ),
        amount_change=AmountChange(
            annual=annual_change,
            monthly=to_cents(annual_change / 12),
            percentage=_percentage(annual_change, from_total),
            is_increase=annual_change > 0,
        ),
        revenue_impact=RevenueImpact(
            students_affected=students_affected,
            annual_revenue=annual_revenue,
            monthly_revenue=to_cents(annual_revenue / 12),
        ),
        item_comparison=_compare_items(before.snapshot, after.snapshot),
    )


# --- Listing ---
def _clamp_paging(page: Optional[int], page_size: Optional[int]) -> Tuple[int, int]:
    page = page if page and page > 0 else 1
    if not page_size or page_size <= 0 or page_size > settings.max_page_size:
        page_size = settings.default_page_size
    return page, page_size


async def list_structures(
    db: AsyncSession,
    class_id: Optional[UUID] = None,
    academic_year: Optional[str] = None,
    page: Optional[int] = 1,
    page_size: Optional[int] = None,
) -> FeeStructurePage:
    """
    Paginated live structures, newest effective_from first, each with live items, latest
    version/total, class grade/section and current student count.
    """
    page, page_size = _clamp_paging(page, page_size)

    filters = [FeeStructure.deleted_at.is_(None)]
    if class_id is not None:
        filters.append(FeeStructure.class_id == class_id)
    if academic_year:
        filters.append(FeeStructure.academic_year == academic_year)

    # Count and page fetch share the session's transaction.
    total = (await db.execute(select(func.count(FeeStructure.id)).where(*filters))).scalar() or 0
    rows = (
        await db.execute(
            select(FeeStructure, SchoolClass.grade, SchoolClass.section)
            .outerjoin(SchoolClass, FeeStructure.class_id == SchoolClass.id)
            .where(*filters)
            .order_by(FeeStructure.effective_from.desc(), FeeStructure.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).all()

    structure_ids = [s.id for s, _, _ in rows]
    class_ids = list({s.class_id for s, _, _ in rows})

    items_by_structure: Dict[UUID, List[FeeStructureItem]] = {sid: [] for sid in structure_ids}
    latest_by_structure: Dict[UUID, Tuple[int, Decimal]] = {}
    count_by_class: Dict[UUID, int] = {}
    if structure_ids:
        item_rows = (
            await db.execute(
                select(FeeStructureItem)
                .where(
                    FeeStructureItem.fee_structure_id.in_(structure_ids),
                    FeeStructureItem.deleted_at.is_(None),
                )
                .order_by(FeeStructureItem.created_at, FeeStructureItem.label)
            )
        ).scalars().all()
        for item in item_rows:
            items_by_structure[item.fee_structure_id].append(item)

        latest = (
            select(
                FeeStructureHistory.fee_structure_id,
                func.max(FeeStructureHistory.version).label("version"),
            )
            .where(FeeStructureHistory.fee_structure_id.in_(structure_ids))
            .group_by(FeeStructureHistory.fee_structure_id)
            .subquery()
        )
        history_rows = (
            await db.execute(
                select(
                    FeeStructureHistory.fee_structure_id,
                    FeeStructureHistory.version,
                    FeeStructureHistory.total_annual,
                ).join(
                    latest,
                    (FeeStructureHistory.fee_structure_id == latest.c.fee_structure_id)
                    & (FeeStructureHistory.version == latest.c.version),
                )
            )
        ).all()
        for sid, version, total_annual in history_rows:
            latest_by_structure[sid] = (version, to_decimal(total_annual))

        count_rows = (
            await db.execute(
                select(Student.class_id, func.count(Student.id))
                .where(Student.class_id.in_(class_ids), Student.deleted_at.is_(None))
                .group_by(Student.class_id)
            )
        ).all()
        count_by_class = {cid: count for cid, count in count_rows}

    data: List[FeeStructureListEntry] = []
    for structure, grade, section in rows:
        version, total_annual = latest_by_structure.get(structure.id, (1, None))
        data.append(
            FeeStructureListEntry(
                id=structure.id,
                name=structure.name,
                academic_year=structure.academic_year,
                status=structure.status,
                effective_from=structure.effective_from,
                class_id=structure.class_id,
                grade=grade,
                section=section,
                assigned_classes=[AssignedClass(id=structure.class_id, grade=grade, section=section)],
                student_count=count_by_class.get(structure.class_id, 0),
                items=[
                    FeeStructureListEntryItem(id=i.id, label=i.label, amount=to_decimal(i.amount))
                    for i in items_by_structure.get(structure.id, [])
                ],
                total_annual=total_annual,
                latest_version=version,
            )
        )

    return FeeStructurePage(
        data=data,
        page=page,
        page_size=page_size,
        total=total,
        total_pages=(total + page_size - 1) // page_size,
    )


# --- Student ledger ---
async def get_student_fee_history(
    db: AsyncSession,
    student_id: UUID,
) -> List[StudentFeeHistoryResponse]:
    student = (
        await db.execute(
            select(Student).where(Student.id == student_id, Student.deleted_at.is_(None))
        )
    ).scalar_one_or_none()
    if not student:
        raise NotFoundError("Student not found")
    result = await db.execute(
        select(StudentFeeHistory)
        .where(StudentFeeHistory.student_id == student_id)
        .order_by(StudentFeeHistory.period_month.desc(), StudentFeeHistory.version.desc())
    )
    return [
        StudentFeeHistoryResponse(
            id=row.id,
            student_id=row.student_id,
            fee_structure_id=row.fee_structure_id,
            period_month=row.period_month,
            version=row.version,
            base_amount=to_decimal(row.base_amount),
            scholarship_amount=to_decimal(row.scholarship_amount),
            extra_charges_amount=to_decimal(row.extra_charges_amount),
            final_payable=to_decimal(row.final_payable),
            created_at=row.created_at,
            items=expand_items(row.breakdown),
        )
        for row in result.scalars().all()
    ]
