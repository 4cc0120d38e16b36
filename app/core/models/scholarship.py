"""Scholarship definitions and their time-bounded assignment to students. Read-only for the fee core."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from app.core.enums import ValueType
from app.db.session import Base


class ScholarshipDefinition(Base):
    __tablename__ = "scholarship_definitions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(120), nullable=False)
    type = Column(String(20), nullable=False)  # MERIT | NEED_BASED | SPORTS | OTHER
    description = Column(Text, nullable=True)
    value_type = Column(String(20), nullable=False, default=ValueType.FIXED.value)  # FIXED | PERCENTAGE
    value = Column(Numeric(12, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)


class ScholarshipAssignment(Base):
    """Scholarship granted to a student from effective_from until expires_at (open-ended when NULL)."""

    __tablename__ = "scholarship_assignments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    scholarship_id = Column(Uuid, ForeignKey("scholarship_definitions.id"), nullable=False)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    effective_from = Column(Date, nullable=False)
    expires_at = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    scholarship = relationship("ScholarshipDefinition")
    student = relationship("Student", foreign_keys=[student_id])
