"""Fee structure history: immutable, append-only version snapshots."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Integer, Numeric, Text, UniqueConstraint, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.db.session import Base


class FeeStructureHistory(Base):
    """
    Version N of a fee structure. snapshot is a frozen copy of the items at creation time,
    so as-of queries never read the (mutable) item table. Rows are never updated or deleted.
    """

    __tablename__ = "fee_structure_histories"
    __table_args__ = (
        UniqueConstraint("fee_structure_id", "version", name="uq_fee_structure_history_version"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    fee_structure_id = Column(
        Uuid,
        ForeignKey("fee_structures.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    version = Column(Integer, nullable=False)
    effective_from = Column(Date, nullable=False)
    total_annual = Column(Numeric(14, 2), nullable=False)
    snapshot = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    change_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    fee_structure = relationship("FeeStructure")
