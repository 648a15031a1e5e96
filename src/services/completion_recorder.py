"""
Completion Recorder

Records a finished therapy session for a patient:
1. Atomically increments (or creates) the progress counter for the
   (patient, therapy) pair and reads back the new count.
2. Appends an immutable TherapySession stamped with that count as its
   session number.

Both writes share one database transaction. The increment is a single
INSERT ... ON CONFLICT DO UPDATE ... RETURNING statement, so concurrent
completions for the same pair are serialized by the store's row lock and
can never observe the same prior count.
"""

from datetime import datetime
from typing import Callable, Optional
from uuid import uuid4

import structlog
from pydantic import BaseModel, Field
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.models.therapy_progress import TherapyProgress
from src.models.therapy_session import TherapySession, TherapySessionRead

logger = structlog.get_logger(__name__)


# Dialects with a native upsert that can return the incremented counter
_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class CompletionRecorderError(Exception):
    """Exception for completion recorder errors."""
    pass


class CompletionResult(BaseModel):
    """Outcome of recording a therapy completion."""
    success: bool
    session_number: int = Field(0, ge=0, description="Assigned session number, 0 on failure")
    error: Optional[str] = Field(None, description="Failure reason when success is False")
    session: Optional[TherapySessionRead] = None


class CompletionRecorder:
    """
    Records therapy completions and keeps the progress counter in lockstep
    with the session log.

    Args:
        session_factory: SQLAlchemy session factory. If None, every
            recording attempt fails with a "no database session" result.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory

    def _get_session(self) -> Optional[Session]:
        """Get a database session if factory is available."""
        if self._session_factory is None:
            return None
        return self._session_factory()

    def record_completion(
        self,
        patient_id: str,
        therapy_id: str,
        therapy_name: str,
    ) -> CompletionResult:
        """Record one completed session of a therapy for a patient.

        Args:
            patient_id: Opaque patient identifier.
            therapy_id: Opaque therapy module identifier.
            therapy_name: Display name stored alongside the records.

        Returns:
            CompletionResult carrying the assigned session number on success,
            or the failure reason. Store errors are never raised.
        """
        for label, value in (
            ("patient_id", patient_id),
            ("therapy_id", therapy_id),
            ("therapy_name", therapy_name),
        ):
            if not value or not str(value).strip():
                return CompletionResult(success=False, error=f"{label} is required")

        db = self._get_session()
        if db is None:
            return CompletionResult(
                success=False,
                error="Cannot record completions without a database session.",
            )

        try:
            now = datetime.utcnow()
            session_number = self._increment_progress(
                db, str(patient_id), therapy_id, therapy_name, now
            )

            therapy_session = TherapySession(
                id=uuid4(),
                user_id=str(patient_id),
                therapy_id=therapy_id,
                therapy_name=therapy_name,
                session_number=session_number,
                completed_at=now,
                created_at=now,
            )
            db.add(therapy_session)
            db.commit()
            db.refresh(therapy_session)

            logger.info(
                "therapy_completion_recorded",
                patient_id=str(patient_id),
                therapy_id=therapy_id,
                session_number=session_number,
            )
            return CompletionResult(
                success=True,
                session_number=session_number,
                session=TherapySessionRead.model_validate(therapy_session),
            )
        except (SQLAlchemyError, CompletionRecorderError) as e:
            db.rollback()
            logger.error(
                "therapy_completion_failed",
                patient_id=str(patient_id),
                therapy_id=therapy_id,
                error=str(e),
            )
            return CompletionResult(success=False, error=str(e))
        finally:
            db.close()

    @staticmethod
    def _increment_progress(
        db: Session,
        patient_id: str,
        therapy_id: str,
        therapy_name: str,
        now: datetime,
    ) -> int:
        """Create or increment the progress row and return the new count.

        Raises:
            CompletionRecorderError: If the store dialect has no upsert.
        """
        dialect = db.get_bind().dialect.name
        insert = _UPSERT_INSERTS.get(dialect)
        if insert is None:
            raise CompletionRecorderError(
                f"Unsupported database dialect for atomic progress updates: {dialect}"
            )

        table = TherapyProgress.__table__
        stmt = insert(table).values(
            id=uuid4(),
            user_id=patient_id,
            therapy_id=therapy_id,
            therapy_name=therapy_name,
            total_sessions_completed=1,
            last_completed_at=now,
            created_at=now,
            updated_at=now,
        )
        # onupdate hooks do not fire for ON CONFLICT, so updated_at is explicit
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.user_id, table.c.therapy_id],
            set_={
                "total_sessions_completed": table.c.total_sessions_completed + 1,
                "last_completed_at": now,
                "updated_at": now,
            },
        ).returning(table.c.total_sessions_completed)

        return db.execute(stmt).scalar_one()
