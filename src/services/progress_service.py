"""
Therapy Progress Service

Service boundary for therapy progress. Applies the access policy and the
audit trail in front of the CompletionRecorder and ProgressReader:
- Patients record completions and read or reset their own progress
- Therapists read any patient's progress and digest, read-only

Denied requests are audited before AccessDenied is raised.
"""

from typing import Any, Callable, Optional

import structlog

from src.models.audit_log import AuditAction, AuditResource
from src.models.therapy_progress import TherapyProgressRead
from src.models.therapy_session import TherapySessionRead
from src.services.access_control import (
    AccessDenied,
    Caller,
    authorize_read,
    authorize_write,
)
from src.services.audit import AuditService
from src.services.completion_recorder import CompletionRecorder, CompletionResult
from src.services.progress_reader import (
    ProgressReader,
    ProgressSummary,
    QueryResult,
    TherapistDigest,
)

logger = structlog.get_logger(__name__)


class TherapyProgressService:
    """
    Authorized, audited access to therapy completions and progress.

    Args:
        session_factory: Optional SQLAlchemy session factory shared by the
            recorder, reader, and default audit service.
        audit_service: Optional audit service override.
    """

    def __init__(
        self,
        session_factory: Optional[Callable] = None,
        audit_service: Optional[AuditService] = None,
    ):
        self._recorder = CompletionRecorder(session_factory=session_factory)
        self._reader = ProgressReader(session_factory=session_factory)
        self._audit = audit_service or AuditService(session_factory=session_factory)

    # =========================================================================
    # Write operations
    # =========================================================================

    def record_completion(
        self,
        caller: Caller,
        patient_id: str,
        therapy_id: str,
        therapy_name: str,
    ) -> CompletionResult:
        """Record a completion on behalf of the patient.

        Raises:
            AccessDenied: If the caller is not the patient.
        """
        self._authorize(
            authorize_write, caller, patient_id, AuditResource.THERAPY_SESSION, AuditAction.CREATE
        )

        result = self._recorder.record_completion(patient_id, therapy_id, therapy_name)
        if result.success:
            self._safe_audit(
                self._audit.log_phi_creation,
                user_id=caller.user_id,
                ip_address=caller.ip_address,
                resource_type=AuditResource.THERAPY_SESSION,
                resource_id=patient_id,
                details={"therapy_id": therapy_id, "session_number": result.session_number},
            )
        return result

    def reset_progress(self, caller: Caller, patient_id: str) -> QueryResult[bool]:
        """Delete all of the patient's sessions and progress.

        Raises:
            AccessDenied: If the caller is not the patient.
        """
        self._authorize(
            authorize_write, caller, patient_id, AuditResource.THERAPY_PROGRESS, AuditAction.DELETE
        )

        result = self._reader.reset(patient_id)
        if result.data:
            self._safe_audit(
                self._audit.log_phi_deletion,
                user_id=caller.user_id,
                ip_address=caller.ip_address,
                resource_type=AuditResource.THERAPY_PROGRESS,
                resource_id=patient_id,
            )
        return result

    # =========================================================================
    # Read operations
    # =========================================================================

    def list_progress(
        self,
        caller: Caller,
        patient_id: str,
        therapy_id: Optional[str] = None,
    ) -> QueryResult[list[TherapyProgressRead]]:
        """List the patient's progress rows."""
        self._authorize_read(caller, patient_id, AuditResource.THERAPY_PROGRESS)
        result = self._reader.list_progress(patient_id, therapy_id=therapy_id)
        self._audit_read(caller, patient_id, AuditResource.THERAPY_PROGRESS, "list_progress")
        return result

    def list_session_history(
        self,
        caller: Caller,
        patient_id: str,
        therapy_id: Optional[str] = None,
    ) -> QueryResult[list[TherapySessionRead]]:
        """List the patient's completed sessions."""
        self._authorize_read(caller, patient_id, AuditResource.THERAPY_SESSION)
        result = self._reader.list_session_history(patient_id, therapy_id=therapy_id)
        self._audit_read(caller, patient_id, AuditResource.THERAPY_SESSION, "list_session_history")
        return result

    def summarize_progress(self, caller: Caller, patient_id: str) -> QueryResult[ProgressSummary]:
        """Summarize the patient's progress across therapies."""
        self._authorize_read(caller, patient_id, AuditResource.THERAPY_PROGRESS)
        result = self._reader.summarize_progress(patient_id)
        self._audit_read(caller, patient_id, AuditResource.THERAPY_PROGRESS, "summarize_progress")
        return result

    def therapist_digest(self, caller: Caller, patient_id: str) -> QueryResult[TherapistDigest]:
        """Build the digest shown to a therapist."""
        self._authorize_read(caller, patient_id, AuditResource.THERAPY_PROGRESS)
        result = self._reader.therapist_digest(patient_id)
        self._audit_read(caller, patient_id, AuditResource.THERAPY_PROGRESS, "therapist_digest")
        return result

    # =========================================================================
    # Private helpers
    # =========================================================================

    def _authorize(
        self,
        check: Callable[[Caller, str], None],
        caller: Caller,
        patient_id: str,
        resource_type: str,
        action: str,
    ) -> None:
        try:
            check(caller, patient_id)
        except AccessDenied as e:
            self._safe_audit(
                self._audit.log_access_denied,
                user_id=caller.user_id,
                ip_address=caller.ip_address,
                resource_type=resource_type,
                resource_id=patient_id,
                action=action,
                details={"role": caller.role.value, "reason": str(e)},
            )
            raise

    def _authorize_read(self, caller: Caller, patient_id: str, resource_type: str) -> None:
        self._authorize(authorize_read, caller, patient_id, resource_type, AuditAction.READ)

    def _audit_read(self, caller: Caller, patient_id: str, resource_type: str, operation: str) -> None:
        self._safe_audit(
            self._audit.log_phi_access,
            user_id=caller.user_id,
            ip_address=caller.ip_address,
            resource_type=resource_type,
            resource_id=patient_id,
            details={"operation": operation, "role": caller.role.value},
        )

    @staticmethod
    def _safe_audit(log_fn: Callable[..., Any], **kwargs) -> None:
        """Write an audit entry; persistence failures never change the outcome."""
        try:
            log_fn(**kwargs)
        except Exception as e:
            logger.error(
                "audit_write_failed",
                resource_type=kwargs.get("resource_type"),
                error=str(e),
            )
