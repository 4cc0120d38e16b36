"""Charge/fine definitions and the months they were applied to a student. Read-only for the fee core."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from app.core.enums import ValueType
from app.db.session import Base


class ChargeDefinition(Base):
    __tablename__ = "charge_definitions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(120), nullable=False)
    type = Column(String(20), nullable=False)  # FINE | EQUIPMENT | TRANSPORT | OTHER
    category = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    value_type = Column(String(20), nullable=False, default=ValueType.FIXED.value)
    value = Column(Numeric(12, 2), nullable=False)
    is_recurring = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)


class ChargeAssignment(Base):
    """A charge applied to a student for one month. amount overrides the definition value when set."""

    __tablename__ = "charge_assignments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    charge_id = Column(Uuid, ForeignKey("charge_definitions.id"), nullable=False)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    applied_month = Column(Date, nullable=False)
    amount = Column(Numeric(12, 2), nullable=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    charge = relationship("ChargeDefinition")
    student = relationship("Student", foreign_keys=[student_id])
