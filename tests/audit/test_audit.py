"""
Tests for the centralized AuditService.

Validates that audit entries are created with correct event types and
persisted to the database when a session factory is available.
"""

from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.models.base import Base
from src.models.audit_log import AuditAction, AuditEventType, AuditLog, AuditResource
from src.services.audit import AuditService


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def audit_service():
    """AuditService with no DB session (structlog-only mode)."""
    return AuditService()


@pytest.fixture
def db_session_factory():
    """In-memory SQLite session factory with tables created."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_audit_service(db_session_factory):
    """AuditService backed by an in-memory SQLite database."""
    return AuditService(session_factory=db_session_factory)


# ---------------------------------------------------------------------------
# Basic creation
# ---------------------------------------------------------------------------

def test_audit_service_creation():
    """AuditService can be instantiated with no arguments."""
    service = AuditService()
    assert service is not None
    assert service._session_factory is None


def test_phi_access_entry(audit_service):
    entry = audit_service.log_phi_access(
        user_id="t1",
        resource_type=AuditResource.THERAPY_PROGRESS,
        resource_id="p1",
        details={"operation": "summarize_progress"},
    )

    assert isinstance(entry, AuditLog)
    assert entry.event_type == AuditEventType.PHI_ACCESS
    assert entry.action == AuditAction.READ
    assert entry.user_id == "t1"
    assert entry.resource_id == "p1"


def test_phi_creation_entry(audit_service):
    entry = audit_service.log_phi_creation(
        user_id="p1",
        resource_type=AuditResource.THERAPY_SESSION,
        resource_id="p1",
    )

    assert entry.event_type == AuditEventType.PHI_CREATE
    assert entry.action == AuditAction.CREATE
    assert entry.details == {}


def test_phi_deletion_entry(audit_service):
    entry = audit_service.log_phi_deletion(
        user_id="p1",
        resource_type=AuditResource.THERAPY_PROGRESS,
        resource_id="p1",
    )

    assert entry.event_type == AuditEventType.PHI_DELETE
    assert entry.action == AuditAction.DELETE


def test_access_denied_entry(audit_service):
    entry = audit_service.log_access_denied(
        user_id="p2",
        resource_type=AuditResource.THERAPY_PROGRESS,
        resource_id="p1",
        action=AuditAction.READ,
        details={"reason": "not owner"},
    )

    assert entry.event_type == AuditEventType.ACCESS_DENIED
    assert entry.details["reason"] == "not owner"


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

def test_entries_persisted(db_audit_service, db_session_factory):
    db_audit_service.log_phi_access("t1", AuditResource.THERAPY_PROGRESS, "p1")
    db_audit_service.log_phi_creation("p1", AuditResource.THERAPY_SESSION, "p1")

    db = db_session_factory()
    try:
        assert db.query(AuditLog).count() == 2
    finally:
        db.close()


def test_audit_trail_filters(db_audit_service):
    db_audit_service.log_phi_access("t1", AuditResource.THERAPY_PROGRESS, "p1")
    db_audit_service.log_phi_access("t1", AuditResource.THERAPY_SESSION, "p2")
    db_audit_service.log_phi_creation("p1", AuditResource.THERAPY_SESSION, "p1")

    assert len(db_audit_service.get_audit_trail(user_id="t1")) == 2
    assert len(db_audit_service.get_audit_trail(resource_id="p1")) == 2
    assert len(db_audit_service.get_audit_trail(resource_type=AuditResource.THERAPY_SESSION)) == 2
    assert len(db_audit_service.get_audit_trail(limit=1)) == 1


def test_audit_trail_without_db(audit_service):
    assert audit_service.get_audit_trail() == []


def test_persist_failure_rolls_back_and_raises():
    session = MagicMock()
    session.commit.side_effect = RuntimeError("db down")
    service = AuditService(session_factory=lambda: session)

    with pytest.raises(RuntimeError, match="db down"):
        service.log_phi_access("t1", AuditResource.THERAPY_PROGRESS, "p1")

    session.rollback.assert_called_once()
    session.close.assert_called_once()
