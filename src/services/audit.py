"""
Centralized Audit Service

Provides structured audit logging for access to patient therapy progress.
Every read, write, reset, and denied request is logged with who, what, when.
"""

from typing import Any, Callable, Optional
from uuid import uuid4

import structlog

from src.models.audit_log import AuditAction, AuditEventType, AuditLog

logger = structlog.get_logger(__name__)


class AuditService:
    """
    Centralized audit logging service.

    Persists entries to the database when a session factory is available,
    and always emits structlog events.

    Args:
        session_factory: Optional SQLAlchemy session factory for DB persistence.
            When None, audit entries are logged via structlog only.
    """

    def __init__(self, session_factory: Optional[Callable] = None) -> None:
        self._session_factory = session_factory

    def _create_entry(
        self,
        event_type: str,
        user_id: Optional[str],
        resource_type: str,
        resource_id: Optional[str],
        action: str,
        details: Optional[dict[str, Any]] = None,
        ip_address: str = "unknown",
    ) -> AuditLog:
        """
        Create an AuditLog entry, persist to DB if possible, and emit structlog event.

        Args:
            event_type: Category of audit event (e.g. phi_access, access_denied).
            user_id: ID of the user performing the action.
            resource_type: Type of resource being accessed/modified.
            resource_id: ID of the specific resource (the patient ID here).
            action: Action performed (create, read, delete).
            details: Additional context as a JSON-serializable dict.
            ip_address: Client IP address for the request.

        Returns:
            The created AuditLog ORM instance.
        """
        entry = AuditLog(
            id=uuid4(),
            event_type=event_type,
            user_id=str(user_id) if user_id is not None else None,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            action=action,
            ip_address=ip_address,
            details=details or {},
        )

        if self._session_factory is not None:
            session = self._session_factory()
            try:
                session.add(entry)
                session.commit()
                session.refresh(entry)
            except Exception:
                session.rollback()
                logger.error(
                    "audit_persist_failed",
                    event_type=event_type,
                    action=action,
                    resource_type=resource_type,
                )
                raise
            finally:
                session.close()

        logger.info(
            "audit_event",
            event_type=event_type,
            user_id=str(user_id) if user_id else None,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id else None,
            action=action,
            ip_address=ip_address,
            details=details or {},
        )

        return entry

    def log_phi_access(
        self,
        user_id: str,
        resource_type: str,
        resource_id: str,
        details: Optional[dict[str, Any]] = None,
        ip_address: str = "unknown",
    ) -> AuditLog:
        """Log a read of patient progress data."""
        return self._create_entry(
            event_type=AuditEventType.PHI_ACCESS,
            user_id=user_id,
            resource_type=resource_type,
            resource_id=resource_id,
            action=AuditAction.READ,
            details=details,
            ip_address=ip_address,
        )

    def log_phi_creation(
        self,
        user_id: str,
        resource_type: str,
        resource_id: str,
        details: Optional[dict[str, Any]] = None,
        ip_address: str = "unknown",
    ) -> AuditLog:
        """Log a newly recorded completion."""
        return self._create_entry(
            event_type=AuditEventType.PHI_CREATE,
            user_id=user_id,
            resource_type=resource_type,
            resource_id=resource_id,
            action=AuditAction.CREATE,
            details=details,
            ip_address=ip_address,
        )

    def log_phi_deletion(
        self,
        user_id: str,
        resource_type: str,
        resource_id: str,
        details: Optional[dict[str, Any]] = None,
        ip_address: str = "unknown",
    ) -> AuditLog:
        """Log an irreversible progress reset."""
        return self._create_entry(
            event_type=AuditEventType.PHI_DELETE,
            user_id=user_id,
            resource_type=resource_type,
            resource_id=resource_id,
            action=AuditAction.DELETE,
            details=details,
            ip_address=ip_address,
        )

    def log_access_denied(
        self,
        user_id: str,
        resource_type: str,
        resource_id: str,
        action: str,
        details: Optional[dict[str, Any]] = None,
        ip_address: str = "unknown",
    ) -> AuditLog:
        """Log a request rejected by the access policy."""
        return self._create_entry(
            event_type=AuditEventType.ACCESS_DENIED,
            user_id=user_id,
            resource_type=resource_type,
            resource_id=resource_id,
            action=action,
            details=details,
            ip_address=ip_address,
        )

    def get_audit_trail(
        self,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        user_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[AuditLog]:
        """
        Query audit entries with optional filters.

        Args:
            resource_type: Filter by resource type.
            resource_id: Filter by resource ID.
            user_id: Filter by user ID.
            limit: Maximum number of entries to return.

        Returns:
            List of matching AuditLog entries, newest first. Empty when no
            session factory is configured.
        """
        if self._session_factory is None:
            return []

        session = self._session_factory()
        try:
            query = session.query(AuditLog)

            if resource_type is not None:
                query = query.filter(AuditLog.resource_type == resource_type)
            if resource_id is not None:
                query = query.filter(AuditLog.resource_id == str(resource_id))
            if user_id is not None:
                query = query.filter(AuditLog.user_id == str(user_id))

            query = query.order_by(AuditLog.created_at.desc()).limit(limit)
            return query.all()
        finally:
            session.close()
