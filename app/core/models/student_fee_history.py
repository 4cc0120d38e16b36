"""Student fee history: per-student snapshot of a structure version for one billing period."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Integer, Numeric, UniqueConstraint, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.db.session import Base


class StudentFeeHistory(Base):
    """
    Frozen ledger row. final_payable = base_amount - scholarship_amount + extra_charges_amount.
    One row per (student, period_month, version); inserts go through ON CONFLICT DO NOTHING.
    """

    __tablename__ = "student_fee_histories"
    __table_args__ = (
        UniqueConstraint(
            "student_id",
            "period_month",
            "version",
            name="uq_student_fee_history_student_period_version",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    fee_structure_id = Column(
        Uuid,
        ForeignKey("fee_structures.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    period_month = Column(Date, nullable=False)  # always the 1st of the month
    version = Column(Integer, nullable=False)
    base_amount = Column(Numeric(14, 2), nullable=False)
    scholarship_amount = Column(Numeric(14, 2), nullable=False, default=0)
    extra_charges_amount = Column(Numeric(14, 2), nullable=False, default=0)
    final_payable = Column(Numeric(14, 2), nullable=False)
    breakdown = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    student = relationship("Student", foreign_keys=[student_id])
    fee_structure = relationship("FeeStructure")
