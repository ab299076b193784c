from __future__ import annotations

from enum import Enum
from typing import List

from pydantic import BaseModel, Field

from src.physio.domain.models.exercise import ExercisePrescription
from src.physio.domain.models.note_version import SOAPSummary


class WorkflowStep(str, Enum):
    CONSULTATION = "consultation"
    SUMMARY = "summary"
    EXERCISES = "exercises"
    CONFIGURE = "configure"
    FINALIZE = "finalize"


# Linear order of the session workflow; back-transitions only go one step.
WORKFLOW_STEPS: List[WorkflowStep] = [
    WorkflowStep.CONSULTATION,
    WorkflowStep.SUMMARY,
    WorkflowStep.EXERCISES,
    WorkflowStep.CONFIGURE,
    WorkflowStep.FINALIZE,
]


class SessionData(BaseModel):
    """In-memory aggregate threaded through every workflow step."""

    transcript: str = ""
    clinician_notes: str = ""
    summary: SOAPSummary = Field(default_factory=SOAPSummary)
    selected_exercises: List[ExercisePrescription] = Field(default_factory=list)
