from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


BodyArea = Literal["shoulder", "knee", "back", "hip", "ankle", "neck", "wrist"]
Goal = Literal["mobility", "strength", "flexibility"]
Difficulty = Literal["easy", "medium", "hard"]


class Frequency(str, Enum):
    DAILY = "daily"
    TWICE_DAILY = "twice_daily"
    THREE_PER_WEEK = "3x_week"
    TWO_PER_WEEK = "2x_week"
    WEEKLY = "weekly"


FREQUENCY_LABELS = {
    Frequency.DAILY: "Daily",
    Frequency.TWICE_DAILY: "Twice Daily",
    Frequency.THREE_PER_WEEK: "3x per Week",
    Frequency.TWO_PER_WEEK: "2x per Week",
    Frequency.WEEKLY: "Weekly",
}


class Exercise(BaseModel):
    """An entry in the clinic's exercise library."""

    id: UUID
    created_at: datetime
    name: str
    description: Optional[str] = None
    body_area: str = "back"
    goal: str = "mobility"
    difficulty: str = "easy"
    instructions: Optional[str] = None


class ExerciseCreate(BaseModel):
    name: str
    description: Optional[str] = None
    body_area: BodyArea = "back"
    goal: Goal = "mobility"
    difficulty: Difficulty = "easy"
    instructions: Optional[str] = None


class DosageUpdate(BaseModel):
    """Partial dosage edit; only fields explicitly set are applied."""

    sets: Optional[int] = Field(default=None, ge=0)
    reps: Optional[int] = Field(default=None, ge=0)
    duration_seconds: Optional[int] = Field(default=None, ge=0)
    frequency: Optional[Frequency] = None
    notes: Optional[str] = None


class ExercisePrescription(BaseModel):
    """A library exercise selected into the in-progress plan, with dosage.

    The position in the session's selected list is the order index; rows are
    only written to storage when the plan is finalized.
    """

    exercise: Exercise
    sets: Optional[int] = None
    reps: Optional[int] = None
    duration_seconds: Optional[int] = None
    frequency: Frequency = Frequency.DAILY
    notes: Optional[str] = None

    @property
    def exercise_id(self) -> UUID:
        return self.exercise.id

    def frequency_label(self) -> str:
        return FREQUENCY_LABELS.get(self.frequency, self.frequency.value)
