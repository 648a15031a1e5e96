"""
TherapyProgress model - Running completion counter per patient and therapy.

Exactly one row exists per (user_id, therapy_id) pair. The row is created on
the first completion and its total_sessions_completed always equals the
number of therapy_sessions rows for the pair.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import CheckConstraint, Column, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

from src.models.base import Base


# =============================================================================
# SQLAlchemy Model
# =============================================================================

class TherapyProgress(Base):
    """SQLAlchemy model for user_therapy_progress table.

    updated_at is refreshed by the ORM on regular updates. Statements that
    bypass the ORM unit of work (INSERT ... ON CONFLICT DO UPDATE) must set
    it themselves.
    """

    __tablename__ = "user_therapy_progress"

    id = Column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(String(255), nullable=False)
    therapy_id = Column(String(255), nullable=False)
    therapy_name = Column(String(255), nullable=False)
    total_sessions_completed = Column(Integer, nullable=False, default=0)
    last_completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "therapy_id", name="uq_user_therapy_progress_user_therapy"),
        CheckConstraint("total_sessions_completed >= 0", name="total_sessions_non_negative"),
        Index("ix_user_therapy_progress_user_id", "user_id"),
        Index("ix_user_therapy_progress_therapy_id", "therapy_id"),
        Index("ix_user_therapy_progress_user_therapy", "user_id", "therapy_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<TherapyProgress(user_id={self.user_id}, therapy_id={self.therapy_id}, "
            f"total_sessions_completed={self.total_sessions_completed})>"
        )


# =============================================================================
# Pydantic Schemas
# =============================================================================

class TherapyCompletionCreate(BaseModel):
    """Schema for reporting a finished therapy session."""
    therapy_id: str = Field(..., min_length=1, max_length=255, description="Therapy module identifier")
    therapy_name: str = Field(..., min_length=1, max_length=255, description="Therapy display name")


class TherapyProgressRead(BaseModel):
    """Schema for reading a progress summary row."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: str
    therapy_id: str
    therapy_name: str
    total_sessions_completed: int
    last_completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
