"""
Therapy Progress API Endpoints

Provides endpoints for patient therapy progress:
- Record a completed therapy session
- List progress per therapy
- List session history
- Get cross-therapy summary
- Get therapist digest
- Reset progress

The caller identity arrives in the X-User-Id and X-User-Role headers.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Header, Query, Request
from pydantic import BaseModel, Field

from src.models.therapy_progress import TherapyCompletionCreate, TherapyProgressRead
from src.models.therapy_session import TherapySessionRead
from src.services.access_control import AccessDenied, Caller, CallerRole
from src.services.progress_reader import ProgressSummary, QueryStatus, TherapistDigest
from src.services.progress_service import TherapyProgressService


router = APIRouter(prefix="/patients/{patient_id}/therapy-progress", tags=["therapy-progress"])


# =============================================================================
# Response Models
# =============================================================================

class CompletionResponse(BaseModel):
    """Response for a recorded completion."""
    patient_id: str
    therapy_id: str
    session_number: int
    completed_at: Optional[datetime] = None


class ProgressListResponse(BaseModel):
    """Response with a patient's progress rows."""
    status: QueryStatus
    error: Optional[str] = None
    items: list[TherapyProgressRead] = Field(default_factory=list)
    count: int = 0


class SessionHistoryResponse(BaseModel):
    """Response with a patient's session history."""
    status: QueryStatus
    error: Optional[str] = None
    items: list[TherapySessionRead] = Field(default_factory=list)
    count: int = 0


class ProgressSummaryResponse(BaseModel):
    """Response with a cross-therapy progress summary."""
    status: QueryStatus
    error: Optional[str] = None
    summary: ProgressSummary


class TherapistDigestResponse(BaseModel):
    """Response with a therapist digest."""
    status: QueryStatus
    error: Optional[str] = None
    digest: TherapistDigest


class ResetResponse(BaseModel):
    """Response for a progress reset."""
    reset: bool
    error: Optional[str] = None


# =============================================================================
# Module-level service (for dependency injection)
# =============================================================================

_progress_service: Optional[TherapyProgressService] = None


def get_progress_service() -> TherapyProgressService:
    """Get or create therapy progress service."""
    global _progress_service
    if _progress_service is None:
        from src.models.base import get_session_factory

        _progress_service = TherapyProgressService(session_factory=get_session_factory())
    return _progress_service


def set_progress_service(service: Optional[TherapyProgressService]) -> None:
    """Set therapy progress service (for testing)."""
    global _progress_service
    _progress_service = service


def _caller(request: Request, x_user_id: str, x_user_role: str) -> Caller:
    """Build the caller identity from the request headers and client address."""
    try:
        role = CallerRole(x_user_role)
    except ValueError:
        raise HTTPException(status_code=403, detail=f"Invalid user role: {x_user_role}")
    ip_address = request.client.host if request.client else "unknown"
    return Caller(user_id=x_user_id, role=role, ip_address=ip_address)


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/completions", response_model=CompletionResponse)
async def record_completion(
    patient_id: str,
    request: Request,
    data: TherapyCompletionCreate,
    x_user_id: str = Header(...),
    x_user_role: str = Header(default="patient"),
) -> CompletionResponse:
    """
    Record a completed therapy session.

    SECURITY: Only the patient can record their own completions.
    """
    service = get_progress_service()

    try:
        result = service.record_completion(
            _caller(request, x_user_id, x_user_role),
            patient_id,
            data.therapy_id,
            data.therapy_name,
        )
    except AccessDenied as e:
        raise HTTPException(status_code=403, detail=str(e))

    if not result.success:
        raise HTTPException(status_code=500, detail=result.error or "Completion was not recorded")

    return CompletionResponse(
        patient_id=patient_id,
        therapy_id=data.therapy_id,
        session_number=result.session_number,
        completed_at=result.session.completed_at if result.session else None,
    )


@router.get("", response_model=ProgressListResponse)
async def list_progress(
    patient_id: str,
    request: Request,
    therapy_id: Optional[str] = Query(None, description="Filter by therapy"),
    x_user_id: str = Header(...),
    x_user_role: str = Header(default="patient"),
) -> ProgressListResponse:
    """
    List progress per therapy, most recently updated first.

    SECURITY: Patient sees own progress. Therapist sees any patient's progress.
    """
    service = get_progress_service()

    try:
        result = service.list_progress(
            _caller(request, x_user_id, x_user_role), patient_id, therapy_id=therapy_id
        )
    except AccessDenied as e:
        raise HTTPException(status_code=403, detail=str(e))

    return ProgressListResponse(
        status=result.status,
        error=result.error,
        items=result.data,
        count=len(result.data),
    )


@router.get("/sessions", response_model=SessionHistoryResponse)
async def list_session_history(
    patient_id: str,
    request: Request,
    therapy_id: Optional[str] = Query(None, description="Filter by therapy"),
    x_user_id: str = Header(...),
    x_user_role: str = Header(default="patient"),
) -> SessionHistoryResponse:
    """
    List completed sessions, most recent first.

    SECURITY: Patient sees own sessions. Therapist sees any patient's sessions.
    """
    service = get_progress_service()

    try:
        result = service.list_session_history(
            _caller(request, x_user_id, x_user_role), patient_id, therapy_id=therapy_id
        )
    except AccessDenied as e:
        raise HTTPException(status_code=403, detail=str(e))

    return SessionHistoryResponse(
        status=result.status,
        error=result.error,
        items=result.data,
        count=len(result.data),
    )


@router.get("/summary", response_model=ProgressSummaryResponse)
async def get_progress_summary(
    patient_id: str,
    request: Request,
    x_user_id: str = Header(...),
    x_user_role: str = Header(default="patient"),
) -> ProgressSummaryResponse:
    """Get progress totals across all therapies."""
    service = get_progress_service()

    try:
        result = service.summarize_progress(_caller(request, x_user_id, x_user_role), patient_id)
    except AccessDenied as e:
        raise HTTPException(status_code=403, detail=str(e))

    return ProgressSummaryResponse(status=result.status, error=result.error, summary=result.data)


@router.get("/digest", response_model=TherapistDigestResponse)
async def get_therapist_digest(
    patient_id: str,
    request: Request,
    x_user_id: str = Header(...),
    x_user_role: str = Header(default="patient"),
) -> TherapistDigestResponse:
    """
    Get the therapist digest: summary plus the 10 most recent sessions.

    SECURITY: Therapists and the patient themselves can view the digest.
    """
    service = get_progress_service()

    try:
        result = service.therapist_digest(_caller(request, x_user_id, x_user_role), patient_id)
    except AccessDenied as e:
        raise HTTPException(status_code=403, detail=str(e))

    return TherapistDigestResponse(status=result.status, error=result.error, digest=result.data)


@router.delete("", response_model=ResetResponse)
async def reset_progress(
    patient_id: str,
    request: Request,
    x_user_id: str = Header(...),
    x_user_role: str = Header(default="patient"),
) -> ResetResponse:
    """
    Delete all sessions and progress for the patient. Irreversible.

    SECURITY: Only the patient can reset their own progress.
    """
    service = get_progress_service()

    try:
        result = service.reset_progress(_caller(request, x_user_id, x_user_role), patient_id)
    except AccessDenied as e:
        raise HTTPException(status_code=403, detail=str(e))

    return ResetResponse(reset=result.data, error=result.error)
