"""
TherapySession model - Append-only log of completed therapy sessions.

One row per completion event. The session_number is the 1-based ordinal of
the completion within its (user_id, therapy_id) pair and is assigned by the
CompletionRecorder from the progress counter.
"""

from datetime import datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict
from sqlalchemy import CheckConstraint, Column, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

from src.models.base import Base


# =============================================================================
# SQLAlchemy Model
# =============================================================================

class TherapySession(Base):
    """SQLAlchemy model for therapy_sessions table."""

    __tablename__ = "therapy_sessions"

    id = Column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(String(255), nullable=False)
    therapy_id = Column(String(255), nullable=False)
    therapy_name = Column(String(255), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    session_number = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint(
            "user_id", "therapy_id", "session_number",
            name="uq_therapy_sessions_user_therapy_number",
        ),
        CheckConstraint("session_number >= 1", name="session_number_positive"),
        Index("ix_therapy_sessions_user_id", "user_id"),
        Index("ix_therapy_sessions_therapy_id", "therapy_id"),
        Index("ix_therapy_sessions_user_therapy", "user_id", "therapy_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<TherapySession(id={self.id}, user_id={self.user_id}, "
            f"therapy_id={self.therapy_id}, session_number={self.session_number})>"
        )


# =============================================================================
# Pydantic Schemas
# =============================================================================

class TherapySessionRead(BaseModel):
    """Schema for reading a completed therapy session."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: str
    therapy_id: str
    therapy_name: str
    completed_at: datetime
    session_number: int
    created_at: datetime
