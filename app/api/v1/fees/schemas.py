"""Fees schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import FeeStructureStatus, Frequency
from app.core.snapshot import ExpandedFeeItem


# --- Fee Structure ---
class FeeItemCreate(BaseModel):
    category: str = Field(..., max_length=50)
    label: str = Field(..., max_length=120)
    amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    frequency: Frequency
    is_optional: bool = False


class FeeItemRevise(BaseModel):
    category: str = Field("General", max_length=50)
    label: str = Field(..., max_length=120)
    amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    frequency: Frequency = Frequency.MONTHLY
    is_optional: bool = False


class FeeStructureCreate(BaseModel):
    """Either class_id, class_ids or both; targets are the de-duplicated union."""

    class_id: Optional[UUID] = None
    class_ids: List[UUID] = Field(default_factory=list)
    academic_year: str = Field(..., max_length=20)
    name: str = Field(..., max_length=120)
    effective_from: date
    items: List[FeeItemCreate] = Field(..., min_length=1)


class FeeStructureRevise(BaseModel):
    effective_from: date
    items: List[FeeItemRevise] = Field(..., min_length=1)
    change_reason: Optional[str] = None


class FeeStructureStatusUpdate(BaseModel):
    status: FeeStructureStatus


class FeeStructureItemResponse(BaseModel):
    id: UUID
    fee_structure_id: UUID
    category: str
    label: str
    amount: Decimal
    frequency: str
    is_optional: bool
    created_at: datetime

    class Config:
        from_attributes = True


class FeeStructureResponse(BaseModel):
    id: UUID
    class_id: UUID
    academic_year: str
    name: str
    effective_from: date
    status: str
    created_at: datetime
    updated_at: datetime
    items: List[FeeStructureItemResponse] = Field(default_factory=list)


class FeeStructureRevisionResponse(BaseModel):
    version: int
    total_annual: Decimal


class FeeStructureStatusResponse(BaseModel):
    id: UUID
    status: str


class FeeStructureHistoryResponse(BaseModel):
    id: UUID
    fee_structure_id: UUID
    version: int
    effective_from: date
    total_annual: Decimal
    change_reason: Optional[str] = None
    created_at: datetime
    items: List[ExpandedFeeItem] = Field(default_factory=list)


class FeeStructureVersionDetails(FeeStructureHistoryResponse):
    total_monthly: Decimal


# --- Version comparison ---
class VersionTotals(BaseModel):
    version: int
    effective_from: date
    annual_total: Decimal
    monthly_total: Decimal


class AmountChange(BaseModel):
    annual: Decimal
    monthly: Decimal
    percentage: Decimal
    is_increase: bool


class RevenueImpact(BaseModel):
    students_affected: int
    annual_revenue: Decimal
    monthly_revenue: Decimal


class ItemComparison(BaseModel):
    label: str
    from_amount: Decimal
    to_amount: Decimal
    amount_change: Decimal
    change_type: str  # added | removed | modified
    from_frequency: Optional[str] = None
    to_frequency: Optional[str] = None


class VersionComparisonResponse(BaseModel):
    fee_structure_id: UUID
    name: str
    academic_year: str
    from_version: VersionTotals
    to_version: VersionTotals
    amount_change: AmountChange
    revenue_impact: RevenueImpact
    item_comparison: List[ItemComparison]


# --- Listing ---
class AssignedClass(BaseModel):
    id: UUID
    grade: Optional[int] = None
    section: Optional[str] = None


class FeeStructureListEntryItem(BaseModel):
    id: UUID
    label: str
    amount: Decimal


class FeeStructureListEntry(BaseModel):
    id: UUID
    name: str
    academic_year: str
    status: str
    effective_from: date
    class_id: UUID
    grade: Optional[int] = None
    section: Optional[str] = None
    assigned_classes: List[AssignedClass]
    student_count: int
    items: List[FeeStructureListEntryItem]
    total_annual: Optional[Decimal] = None
    latest_version: int


class FeeStructurePage(BaseModel):
    data: List[FeeStructureListEntry]
    page: int
    page_size: int
    total: int
    total_pages: int


# --- Student ledger ---
class StudentFeeHistoryResponse(BaseModel):
    id: UUID
    student_id: UUID
    fee_structure_id: UUID
    period_month: date
    version: int
    base_amount: Decimal
    scholarship_amount: Decimal
    extra_charges_amount: Decimal
    final_payable: Decimal
    created_at: datetime
    items: List[ExpandedFeeItem] = Field(default_factory=list)


# --- Monthly computation ---
class MonthlyFeeCompute(BaseModel):
    """Any day of the month selects the month. Without class_id every class is computed."""

    month: date
    class_id: Optional[UUID] = None
    include_existing: bool = False


class MonthlyFeeComputeResponse(BaseModel):
    period_month: date
    students_processed: int
    created: int
    unchanged: int
    without_structure: int
