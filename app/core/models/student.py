import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base


class Student(Base):
    """
    Enrolled student. class_id is the class the student currently sits in.
    Students with deleted_at set are not enrolled and are skipped by ledger seeding and counts.
    """

    __tablename__ = "students"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    class_id = Column(Uuid, ForeignKey("classes.id"), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    roll_number = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    school_class = relationship("SchoolClass", foreign_keys=[class_id])
