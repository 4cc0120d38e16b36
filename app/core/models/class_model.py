"""School classes (grade + section + shift). Model named SchoolClass to avoid Python 'class' keyword."""
import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Uuid

from app.db.session import Base


class SchoolClass(Base):
    """Class master (e.g. Grade 5 Section A, morning shift). Soft delete via deleted_at."""

    __tablename__ = "classes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    grade = Column(Integer, nullable=False)
    section = Column(String(10), nullable=True)
    shift = Column(String(20), nullable=True)  # MORNING | DAY | EVENING
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
