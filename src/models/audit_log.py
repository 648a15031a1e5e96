"""
AuditLog model - Audit trail for all access to patient therapy progress.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Column, DateTime, String
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

from src.models.base import Base, JSONType


# =============================================================================
# SQLAlchemy Model
# =============================================================================

class AuditLog(Base):
    """SQLAlchemy model for audit_logs table."""

    __tablename__ = "audit_logs"

    id = Column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    event_type = Column(String(100), nullable=False, index=True)
    user_id = Column(String(255), nullable=True, index=True)  # Nullable for system events
    resource_type = Column(String(100), nullable=False, index=True)
    resource_id = Column(String(255), nullable=True)
    action = Column(String(50), nullable=False, index=True)
    ip_address = Column(String(45), nullable=True)  # IPv6 max length
    details = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow, index=True)

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, event_type={self.event_type}, action={self.action})>"


# =============================================================================
# Pydantic Schemas
# =============================================================================

class AuditLogRead(BaseModel):
    """Schema for reading audit log data."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    event_type: str = Field(..., max_length=100)
    user_id: Optional[str] = None
    resource_type: str = Field(..., max_length=100)
    resource_id: Optional[str] = None
    action: str = Field(..., max_length=50)
    ip_address: Optional[str] = None
    details: dict[str, Any] = {}
    created_at: datetime


# =============================================================================
# Audit Event Types (Constants)
# =============================================================================

class AuditEventType:
    """Audit event types for therapy progress data."""
    PHI_ACCESS = "phi_access"
    PHI_CREATE = "phi_create"
    PHI_DELETE = "phi_delete"
    ACCESS_DENIED = "access_denied"


class AuditAction:
    """Standard audit actions."""
    CREATE = "create"
    READ = "read"
    DELETE = "delete"


class AuditResource:
    """Resource types recorded in the audit trail."""
    THERAPY_SESSION = "therapy_session"
    THERAPY_PROGRESS = "therapy_progress"
