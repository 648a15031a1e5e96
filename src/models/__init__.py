# Therapy Progress Models Package
# SQLAlchemy ORM models with Pydantic schemas

from src.models.base import Base, get_engine, get_session, get_session_factory, init_db
from src.models.therapy_session import TherapySession, TherapySessionRead
from src.models.therapy_progress import TherapyProgress, TherapyProgressRead, TherapyCompletionCreate
from src.models.audit_log import AuditLog, AuditLogRead, AuditEventType, AuditAction, AuditResource

__all__ = [
    # Base
    "Base",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    # Therapy Session
    "TherapySession",
    "TherapySessionRead",
    # Therapy Progress
    "TherapyProgress",
    "TherapyProgressRead",
    "TherapyCompletionCreate",
    # Audit Log
    "AuditLog",
    "AuditLogRead",
    "AuditEventType",
    "AuditAction",
    "AuditResource",
]
