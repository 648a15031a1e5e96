"""
Access Control for Therapy Progress

Authorization rules applied at the service boundary:
- A patient may read and write only their own sessions and progress.
- A therapist may read any patient's sessions and progress, but never write.

Reset is a write, so only the patient can reset their own progress.
"""

from enum import Enum

from pydantic import BaseModel, Field


class CallerRole(str, Enum):
    """Role attribute carried by an authenticated caller."""
    PATIENT = "patient"
    THERAPIST = "therapist"


class Caller(BaseModel):
    """Authenticated identity invoking a therapy progress operation."""
    user_id: str = Field(..., min_length=1, description="Authenticated user ID")
    role: CallerRole = Field(CallerRole.PATIENT, description="Caller role")
    ip_address: str = Field("unknown", description="Client address the request came from")


class AccessDenied(Exception):
    """Raised when a caller is not permitted to perform an operation."""
    pass


def is_self(caller: Caller, patient_id: str) -> bool:
    """Return True when the caller is the patient that owns the rows."""
    return caller.user_id == str(patient_id)


def authorize_read(caller: Caller, patient_id: str) -> None:
    """Verify the caller may read the patient's therapy progress.

    Raises:
        AccessDenied: If the caller is neither the patient nor a therapist.
    """
    if is_self(caller, patient_id):
        return
    if caller.role == CallerRole.THERAPIST:
        return
    raise AccessDenied("Access denied: patients can only view their own therapy progress")


def authorize_write(caller: Caller, patient_id: str) -> None:
    """Verify the caller may write the patient's therapy progress.

    Raises:
        AccessDenied: If the caller is not the patient.
    """
    if is_self(caller, patient_id):
        return
    if caller.role == CallerRole.THERAPIST:
        raise AccessDenied("Access denied: therapists have read-only access to patient progress")
    raise AccessDenied("Access denied: patients can only modify their own therapy progress")
