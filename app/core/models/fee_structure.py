"""Fee structure per class per academic year, and its line items."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, Numeric, String, Uuid, text
from sqlalchemy.orm import relationship

from app.core.enums import FeeStructureStatus
from app.db.session import Base


class FeeStructure(Base):
    """
    One live structure per (class, academic year). Never hard-deleted; deleted_at marks removal.
    Items and history versions hang off this row.
    """

    __tablename__ = "fee_structures"
    __table_args__ = (
        Index(
            "uq_fee_structure_class_year_live",
            "class_id",
            "academic_year",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    class_id = Column(Uuid, ForeignKey("classes.id", ondelete="RESTRICT"), nullable=False, index=True)
    academic_year = Column(String(20), nullable=False)  # e.g. "2025-2026"
    name = Column(String(120), nullable=False)
    effective_from = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default=FeeStructureStatus.ACTIVE.value)  # ACTIVE | ARCHIVED | DRAFT
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    school_class = relationship("SchoolClass", foreign_keys=[class_id])


class FeeStructureItem(Base):
    """Line item of a structure. Revisions soft-delete the live set and insert a new one; rows are never edited."""

    __tablename__ = "fee_structure_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    fee_structure_id = Column(
        Uuid,
        ForeignKey("fee_structures.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    category = Column(String(50), nullable=False)
    label = Column(String(120), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    frequency = Column(String(20), nullable=False)  # MONTHLY | TERM | ANNUAL | ONE_TIME
    is_optional = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    fee_structure = relationship("FeeStructure")
