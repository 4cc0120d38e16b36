"""Excel export of a fee structure's version history."""

import io
from datetime import datetime
from typing import Optional
from uuid import UUID

from openpyxl import Workbook
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.money import monthly_total

from . import service

VERSIONS_SHEET_NAME = "Versions"
ITEMS_SHEET_NAME = "Items"
VERSION_HEADERS = ("version", "effective_from", "total_annual", "total_monthly", "change_reason", "created_at")
ITEM_HEADERS = ("version", "category", "label", "amount", "frequency", "is_optional", "monthly_amount")


def _excel_datetime(value: Optional[datetime]) -> Optional[datetime]:
    # Excel cells cannot hold tz-aware datetimes
    if value is not None and value.tzinfo is not None:
        return value.replace(tzinfo=None)
    return value


async def export_structure_history(db: AsyncSession, fee_structure_id: UUID) -> bytes:
    """Versions sheet with one row per version, Items sheet with one row per snapshot item per version."""
    history = await service.get_structure_history(db, fee_structure_id)

    wb = Workbook()
    ws_versions = wb.active
    ws_versions.title = VERSIONS_SHEET_NAME
    ws_versions.append(list(VERSION_HEADERS))
    ws_items = wb.create_sheet(ITEMS_SHEET_NAME)
    ws_items.append(list(ITEM_HEADERS))

    for h in history:
        ws_versions.append(
            [
                h.version,
                h.effective_from,
                h.total_annual,
                monthly_total(h.total_annual),
                h.change_reason or "",
                _excel_datetime(h.created_at),
            ]
        )
        for item in h.items:
            ws_items.append(
                [
                    h.version,
                    item.category,
                    item.label,
                    item.amount,
                    item.frequency,
                    "Yes" if item.is_optional else "No",
                    item.monthly_amount,
                ]
            )

    bio = io.BytesIO()
    wb.save(bio)
    return bio.getvalue()
