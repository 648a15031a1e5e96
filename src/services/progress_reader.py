"""
Progress Reader

Read-side queries and aggregations over therapy progress:
- Progress rows per patient (optionally narrowed to one therapy)
- Session history per patient
- Cross-therapy summary
- Therapist digest (summary plus the most recent sessions)
- Irreversible reset of a patient's progress

Store errors never escape this layer. Every operation returns a QueryResult
whose data holds the empty/zero default on failure and whose status tells
"no data" apart from "query failed".
"""

from datetime import datetime
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

import structlog
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.models.therapy_progress import TherapyProgress, TherapyProgressRead
from src.models.therapy_session import TherapySession, TherapySessionRead

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DIGEST_RECENT_SESSIONS = 10


# =============================================================================
# Result Types
# =============================================================================

class QueryStatus(str, Enum):
    """Outcome of a progress query."""
    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"


class QueryResult(BaseModel, Generic[T]):
    """Query outcome with the (possibly degraded) data and failure reason."""
    status: QueryStatus
    data: T
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != QueryStatus.FAILED

    @property
    def failed(self) -> bool:
        return self.status == QueryStatus.FAILED


class TherapyBreakdown(BaseModel):
    """Per-therapy line of a progress summary."""
    therapy_id: str
    therapy_name: str
    sessions_completed: int
    last_completed: Optional[datetime] = None


class ProgressSummary(BaseModel):
    """Aggregate progress across every therapy a patient has started."""
    total_sessions: int = 0
    therapies_in_progress: int = 0
    progress_by_therapy: list[TherapyBreakdown] = Field(default_factory=list)
    last_activity: Optional[datetime] = None


class TherapistDigest(BaseModel):
    """Read-only view of a patient's progress prepared for their therapist."""
    patient_id: str
    summary: ProgressSummary
    recent_sessions: list[TherapySessionRead] = Field(default_factory=list)
    generated_at: datetime


# =============================================================================
# Reader
# =============================================================================

class ProgressReader:
    """
    Queries and aggregates therapy progress.

    Args:
        session_factory: SQLAlchemy session factory. If None, every query
            returns a failed result with empty data.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory

    def _get_session(self) -> Optional[Session]:
        """Get a database session if factory is available."""
        if self._session_factory is None:
            return None
        return self._session_factory()

    @staticmethod
    def _no_session(default):
        return QueryResult(
            status=QueryStatus.FAILED,
            data=default,
            error="No database session configured",
        )

    @staticmethod
    def _failure(operation: str, patient_id: str, error: Exception, default):
        logger.warning(
            "progress_read_failed",
            operation=operation,
            patient_id=str(patient_id),
            error=str(error),
        )
        return QueryResult(status=QueryStatus.FAILED, data=default, error=str(error))

    def list_progress(
        self,
        patient_id: str,
        therapy_id: Optional[str] = None,
    ) -> QueryResult[list[TherapyProgressRead]]:
        """List a patient's progress rows, most recently updated first.

        Args:
            patient_id: Patient identifier.
            therapy_id: Optional therapy filter.

        Returns:
            QueryResult with a list of TherapyProgressRead.
        """
        db = self._get_session()
        if db is None:
            return self._no_session([])

        try:
            query = db.query(TherapyProgress).filter(
                TherapyProgress.user_id == str(patient_id)
            )
            if therapy_id is not None:
                query = query.filter(TherapyProgress.therapy_id == therapy_id)

            rows = query.order_by(
                TherapyProgress.updated_at.desc(),
                TherapyProgress.id.desc(),
            ).all()

            data = [TherapyProgressRead.model_validate(row) for row in rows]
            return QueryResult(
                status=QueryStatus.OK if data else QueryStatus.EMPTY,
                data=data,
            )
        except SQLAlchemyError as e:
            return self._failure("list_progress", patient_id, e, [])
        finally:
            db.close()

    def list_session_history(
        self,
        patient_id: str,
        therapy_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> QueryResult[list[TherapySessionRead]]:
        """List a patient's completed sessions, most recent completion first.

        Args:
            patient_id: Patient identifier.
            therapy_id: Optional therapy filter.
            limit: Optional cap on the number of sessions returned.

        Returns:
            QueryResult with a list of TherapySessionRead.
        """
        db = self._get_session()
        if db is None:
            return self._no_session([])

        try:
            query = db.query(TherapySession).filter(
                TherapySession.user_id == str(patient_id)
            )
            if therapy_id is not None:
                query = query.filter(TherapySession.therapy_id == therapy_id)

            query = query.order_by(
                TherapySession.completed_at.desc(),
                TherapySession.session_number.desc(),
            )
            if limit is not None:
                query = query.limit(limit)

            data = [TherapySessionRead.model_validate(row) for row in query.all()]
            return QueryResult(
                status=QueryStatus.OK if data else QueryStatus.EMPTY,
                data=data,
            )
        except SQLAlchemyError as e:
            return self._failure("list_session_history", patient_id, e, [])
        finally:
            db.close()

    def summarize_progress(self, patient_id: str) -> QueryResult[ProgressSummary]:
        """Aggregate a patient's progress across all therapies.

        Args:
            patient_id: Patient identifier.

        Returns:
            QueryResult with a ProgressSummary. The status is inherited from
            the underlying progress query.
        """
        progress = self.list_progress(patient_id)
        return QueryResult(
            status=progress.status,
            data=self.build_summary(progress.data),
            error=progress.error,
        )

    def therapist_digest(self, patient_id: str) -> QueryResult[TherapistDigest]:
        """Combine the progress summary with the most recent sessions.

        Args:
            patient_id: Patient identifier.

        Returns:
            QueryResult with a TherapistDigest. Failed if either underlying
            query failed.
        """
        summary = self.summarize_progress(patient_id)
        sessions = self.list_session_history(patient_id, limit=DIGEST_RECENT_SESSIONS)

        digest = TherapistDigest(
            patient_id=str(patient_id),
            summary=summary.data,
            recent_sessions=sessions.data,
            generated_at=datetime.utcnow(),
        )

        errors = [r.error for r in (summary, sessions) if r.failed]
        if errors:
            status = QueryStatus.FAILED
        elif summary.status == QueryStatus.EMPTY and sessions.status == QueryStatus.EMPTY:
            status = QueryStatus.EMPTY
        else:
            status = QueryStatus.OK

        return QueryResult(
            status=status,
            data=digest,
            error="; ".join(errors) if errors else None,
        )

    def reset(self, patient_id: str) -> QueryResult[bool]:
        """Delete every session and progress row for a patient.

        Irreversible. Sessions and progress rows are removed in one
        transaction. Other patients' rows are untouched.

        Args:
            patient_id: Patient identifier.

        Returns:
            QueryResult with True on success, False on failure.
        """
        db = self._get_session()
        if db is None:
            return self._no_session(False)

        try:
            sessions_deleted = (
                db.query(TherapySession)
                .filter(TherapySession.user_id == str(patient_id))
                .delete(synchronize_session=False)
            )
            progress_deleted = (
                db.query(TherapyProgress)
                .filter(TherapyProgress.user_id == str(patient_id))
                .delete(synchronize_session=False)
            )
            db.commit()

            logger.info(
                "therapy_progress_reset",
                patient_id=str(patient_id),
                sessions_deleted=sessions_deleted,
                progress_deleted=progress_deleted,
            )
            return QueryResult(status=QueryStatus.OK, data=True)
        except SQLAlchemyError as e:
            db.rollback()
            return self._failure("reset", patient_id, e, False)
        finally:
            db.close()

    # =========================================================================
    # Aggregation
    # =========================================================================

    @staticmethod
    def build_summary(progress: list[TherapyProgressRead]) -> ProgressSummary:
        """Aggregate progress rows into a ProgressSummary.

        last_activity is the latest non-null last_completed_at, or None.
        """
        completed_at = [p.last_completed_at for p in progress if p.last_completed_at is not None]

        return ProgressSummary(
            total_sessions=sum(p.total_sessions_completed for p in progress),
            therapies_in_progress=len(progress),
            progress_by_therapy=[
                TherapyBreakdown(
                    therapy_id=p.therapy_id,
                    therapy_name=p.therapy_name,
                    sessions_completed=p.total_sessions_completed,
                    last_completed=p.last_completed_at,
                )
                for p in progress
            ],
            last_activity=max(completed_at) if completed_at else None,
        )
