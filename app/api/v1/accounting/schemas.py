"""Accounting schemas: classes, as-of fee structure, scholarships and charges for a student."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel

from app.core.snapshot import ExpandedFeeItem


class ClassSummary(BaseModel):
    id: UUID
    grade: int
    section: Optional[str] = None
    shift: Optional[str] = None


class ResolvedFeeStructure(BaseModel):
    id: UUID
    name: str
    academic_year: str
    effective_from: date
    status: str
    version: int
    history_effective_from: date
    total_annual: Decimal
    total_monthly: Decimal


class FeeStructureAsOfResponse(BaseModel):
    """Structure and version in effect for a class on a given date."""

    class_id: UUID
    grade: int
    section: Optional[str] = None
    shift: Optional[str] = None
    for_date: date
    fee_structure: ResolvedFeeStructure
    items: List[ExpandedFeeItem]


class StudentScholarship(BaseModel):
    name: str
    type: str
    value_type: str
    value: Decimal
    description: Optional[str] = None
    is_active: bool
    effective_from: date
    expires_at: Optional[date] = None


class StudentCharge(BaseModel):
    id: UUID
    charge_id: UUID
    name: str
    type: str
    category: Optional[str] = None
    value_type: str
    value: Decimal
    amount: Optional[Decimal] = None
    applied_month: date
    reason: Optional[str] = None
    created_at: datetime
