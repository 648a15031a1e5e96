"""
Access Control Tests

Tests verify:
1. Patients read and write only their own progress
2. Therapists read any patient's progress but never write
3. The service boundary audits denied requests before raising
4. Successful reads and writes leave audit entries
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.models.audit_log import AuditEventType, AuditResource
from src.models.base import Base
from src.services.access_control import (
    AccessDenied,
    Caller,
    CallerRole,
    authorize_read,
    authorize_write,
)
from src.services.audit import AuditService
from src.services.progress_reader import QueryStatus
from src.services.progress_service import TherapyProgressService


PATIENT = Caller(user_id="p1", role=CallerRole.PATIENT)
OTHER_PATIENT = Caller(user_id="p2", role=CallerRole.PATIENT)
THERAPIST = Caller(user_id="t1", role=CallerRole.THERAPIST)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def test_session_factory():
    """In-memory SQLite session factory with tables created."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def audit(test_session_factory):
    return AuditService(session_factory=test_session_factory)


@pytest.fixture
def service(test_session_factory, audit):
    return TherapyProgressService(session_factory=test_session_factory, audit_service=audit)


# =============================================================================
# Policy Functions
# =============================================================================

class TestPolicy:
    """Test authorize_read / authorize_write."""

    def test_patient_reads_own(self):
        authorize_read(PATIENT, "p1")

    def test_patient_cannot_read_other(self):
        with pytest.raises(AccessDenied, match="own therapy progress"):
            authorize_read(OTHER_PATIENT, "p1")

    def test_therapist_reads_any(self):
        authorize_read(THERAPIST, "p1")
        authorize_read(THERAPIST, "p2")

    def test_patient_writes_own(self):
        authorize_write(PATIENT, "p1")

    def test_patient_cannot_write_other(self):
        with pytest.raises(AccessDenied):
            authorize_write(OTHER_PATIENT, "p1")

    def test_therapist_cannot_write(self):
        with pytest.raises(AccessDenied, match="read-only"):
            authorize_write(THERAPIST, "p1")

    def test_therapist_writes_own_progress(self):
        """A therapist who is also the patient may write their own rows."""
        authorize_write(Caller(user_id="p1", role=CallerRole.THERAPIST), "p1")

    def test_caller_defaults_to_patient(self):
        assert Caller(user_id="p1").role == CallerRole.PATIENT


# =============================================================================
# Service Boundary
# =============================================================================

class TestServiceBoundary:
    """Test TherapyProgressService enforces the policy."""

    def test_patient_records_and_reads(self, service):
        result = service.record_completion(PATIENT, "p1", "breathing-101", "Breathing Basics")
        assert result.success is True

        progress = service.list_progress(PATIENT, "p1")
        assert progress.status == QueryStatus.OK
        assert progress.data[0].total_sessions_completed == 1

    def test_therapist_cannot_record(self, service):
        with pytest.raises(AccessDenied):
            service.record_completion(THERAPIST, "p1", "breathing-101", "Breathing Basics")

        assert service.list_progress(PATIENT, "p1").data == []

    def test_therapist_reads_digest(self, service):
        service.record_completion(PATIENT, "p1", "breathing-101", "Breathing Basics")

        digest = service.therapist_digest(THERAPIST, "p1")

        assert digest.data.summary.total_sessions == 1
        assert len(digest.data.recent_sessions) == 1

    def test_other_patient_cannot_read_history(self, service):
        with pytest.raises(AccessDenied):
            service.list_session_history(OTHER_PATIENT, "p1")

    def test_other_patient_cannot_summarize(self, service):
        with pytest.raises(AccessDenied):
            service.summarize_progress(OTHER_PATIENT, "p1")

    def test_therapist_cannot_reset(self, service):
        service.record_completion(PATIENT, "p1", "breathing-101", "Breathing Basics")

        with pytest.raises(AccessDenied):
            service.reset_progress(THERAPIST, "p1")

        assert len(service.list_progress(PATIENT, "p1").data) == 1

    def test_patient_resets_own(self, service):
        service.record_completion(PATIENT, "p1", "breathing-101", "Breathing Basics")

        assert service.reset_progress(PATIENT, "p1").data is True
        assert service.summarize_progress(PATIENT, "p1").data.total_sessions == 0


# =============================================================================
# Audit Trail
# =============================================================================

class TestAuditTrail:
    """Test audit entries written by the service."""

    def test_denied_request_audited(self, service, audit):
        with pytest.raises(AccessDenied):
            service.list_progress(OTHER_PATIENT, "p1")

        entries = audit.get_audit_trail(user_id="p2")
        assert len(entries) == 1
        assert entries[0].event_type == AuditEventType.ACCESS_DENIED
        assert entries[0].resource_id == "p1"
        assert entries[0].details["role"] == "patient"

    def test_completion_audited(self, service, audit):
        service.record_completion(PATIENT, "p1", "breathing-101", "Breathing Basics")

        entries = audit.get_audit_trail(resource_type=AuditResource.THERAPY_SESSION)
        assert [e.event_type for e in entries] == [AuditEventType.PHI_CREATE]
        assert entries[0].details["session_number"] == 1

    def test_failed_completion_not_audited_as_create(self, test_session_factory, audit):
        broken = TherapyProgressService(
            session_factory=sessionmaker(bind=create_engine("sqlite:///:memory:")),
            audit_service=audit,
        )

        result = broken.record_completion(PATIENT, "p1", "breathing-101", "Breathing Basics")

        assert result.success is False
        assert audit.get_audit_trail(resource_type=AuditResource.THERAPY_SESSION) == []

    def test_therapist_read_audited(self, service, audit):
        service.therapist_digest(THERAPIST, "p1")

        entries = audit.get_audit_trail(user_id="t1")
        assert entries[0].event_type == AuditEventType.PHI_ACCESS
        assert entries[0].details == {"operation": "therapist_digest", "role": "therapist"}

    def test_reset_audited(self, service, audit):
        service.reset_progress(PATIENT, "p1")

        entries = audit.get_audit_trail(resource_type=AuditResource.THERAPY_PROGRESS)
        assert entries[0].event_type == AuditEventType.PHI_DELETE

    def test_caller_address_recorded(self, service, audit):
        caller = Caller(user_id="p1", role=CallerRole.PATIENT, ip_address="10.0.0.5")
        intruder = Caller(user_id="p2", role=CallerRole.PATIENT, ip_address="10.0.0.9")

        service.record_completion(caller, "p1", "breathing-101", "Breathing Basics")
        service.summarize_progress(caller, "p1")
        with pytest.raises(AccessDenied):
            service.summarize_progress(intruder, "p1")

        assert {e.ip_address for e in audit.get_audit_trail(user_id="p1")} == {"10.0.0.5"}
        assert audit.get_audit_trail(user_id="p2")[0].ip_address == "10.0.0.9"

    def test_caller_address_defaults_to_unknown(self, service, audit):
        service.list_progress(PATIENT, "p1")

        assert audit.get_audit_trail(user_id="p1")[0].ip_address == "unknown"

    def test_audit_failure_does_not_fail_operation(self, test_session_factory):
        class FailingAudit(AuditService):
            def _create_entry(self, *args, **kwargs):
                raise RuntimeError("audit store unavailable")

        service = TherapyProgressService(
            session_factory=test_session_factory,
            audit_service=FailingAudit(),
        )

        result = service.record_completion(PATIENT, "p1", "breathing-101", "Breathing Basics")
        assert result.success is True
        assert service.list_progress(PATIENT, "p1").data[0].total_sessions_completed == 1
