from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from src.physio.domain.models.exercise import Frequency


class PlanStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"


class TreatmentPlan(BaseModel):
    """Patient-facing exercise prescription; at most one per session.

    Plans are keyed by (session_id, patient_id) and are looked up before any
    insert so a session never ends up with two plans.
    """

    id: UUID
    session_id: UUID
    patient_id: str
    status: PlanStatus = PlanStatus.DRAFT
    notes: Optional[str] = None
    sent_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class PlanExercise(BaseModel):
    """Persisted prescription row linked to a treatment plan."""

    id: UUID
    treatment_plan_id: UUID
    exercise_id: UUID
    order_index: int
    sets: Optional[int] = None
    reps: Optional[int] = None
    duration_seconds: Optional[int] = None
    frequency: Frequency = Frequency.DAILY
    notes: Optional[str] = None
    created_at: datetime
