from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class SessionStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ClinicalSession(BaseModel):
    """Represents one clinical encounter between a clinician and a patient.

    A session is usually started from an appointment and is never deleted by
    the workflow; it only moves forward to COMPLETED when the treatment plan
    is finalized.
    """

    id: UUID
    created_at: datetime
    updated_at: datetime
    patient_id: str
    appointment_id: Optional[UUID] = None
    status: SessionStatus = SessionStatus.SCHEDULED
    clinician_name: str
    session_date: date
    transcript: Optional[str] = None
    clinician_notes: Optional[str] = None
