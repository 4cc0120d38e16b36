"""
Item snapshots stored in FeeStructureHistory.snapshot and StudentFeeHistory.breakdown.

Stored shape: {"schema_version": 1, "items": [{id, category, label, amount, frequency, is_optional}]}
with amounts as decimal strings. Reading is tolerant: older rows may be a bare list or use camelCase keys.
"""

from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from app.core.enums import Frequency
from app.core.money import monthly_equivalent

SNAPSHOT_SCHEMA_VERSION = 1


class SnapshotItem(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Optional[str] = None
    category: str = "General"
    label: str = ""
    amount: Decimal = Decimal("0")
    frequency: str = Frequency.MONTHLY.value
    is_optional: bool = Field(False, validation_alias=AliasChoices("is_optional", "isOptional"))


class FeeSnapshot(BaseModel):
    model_config = ConfigDict(extra="ignore")

    schema_version: int = SNAPSHOT_SCHEMA_VERSION
    items: List[SnapshotItem] = Field(default_factory=list)


class ExpandedFeeItem(BaseModel):
    """Snapshot item with its monthly-equivalent amount."""

    id: Optional[str] = None
    label: str
    amount: Decimal
    category: str
    frequency: str
    is_optional: bool
    monthly_amount: Decimal


def build_snapshot(items: Iterable[Any]) -> Dict[str, Any]:
    """Freeze FeeStructureItem rows into a JSON-ready dict."""
    snapshot = FeeSnapshot(
        items=[
            SnapshotItem(
                id=str(i.id) if i.id is not None else None,
                category=i.category,
                label=i.label,
                amount=i.amount,
                frequency=i.frequency,
                is_optional=bool(i.is_optional),
            )
            for i in items
        ]
    )
    return snapshot.model_dump(mode="json")


def parse_snapshot(raw: Any) -> FeeSnapshot:
    if raw is None:
        return FeeSnapshot()
    if isinstance(raw, list):
        raw = {"items": raw}
    return FeeSnapshot.model_validate(raw)


def expand_items(raw: Any) -> List[ExpandedFeeItem]:
    return [
        ExpandedFeeItem(
            id=item.id,
            label=item.label,
            amount=item.amount,
            category=item.category,
            frequency=item.frequency,
            is_optional=item.is_optional,
            monthly_amount=monthly_equivalent(item.amount, item.frequency),
        )
        for item in parse_snapshot(raw).items
    ]
