from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence
from uuid import UUID

from src.physio.domain.models.appointment import Appointment
from src.physio.domain.models.clinical_session import ClinicalSession
from src.physio.domain.models.exercise import Exercise
from src.physio.domain.models.note_version import NoteVersion
from src.physio.domain.models.treatment_plan import PlanExercise, TreatmentPlan


class DuplicatePlanError(Exception):
    """Raised when a second plan is inserted for the same (session, patient)."""


class AppointmentRepository(ABC):
    @abstractmethod
    def get(self, appointment_id: UUID) -> Optional[Appointment]:
        raise NotImplementedError

    @abstractmethod
    def save(self, appointment: Appointment) -> None:
        raise NotImplementedError


class SessionRepository(ABC):
    @abstractmethod
    def get(self, session_id: UUID) -> Optional[ClinicalSession]:
        raise NotImplementedError

    @abstractmethod
    def get_by_appointment(self, appointment_id: UUID) -> Optional[ClinicalSession]:
        raise NotImplementedError

    @abstractmethod
    def save(self, session: ClinicalSession) -> None:
        raise NotImplementedError


class NoteVersionRepository(ABC):
    @abstractmethod
    def get(self, version_id: UUID) -> Optional[NoteVersion]:
        raise NotImplementedError

    @abstractmethod
    def list_for_session(self, session_id: UUID) -> List[NoteVersion]:
        """Return non-deleted versions for a session, highest version first."""
        raise NotImplementedError

    @abstractmethod
    def insert(self, version: NoteVersion) -> None:
        raise NotImplementedError

    @abstractmethod
    def update(self, version: NoteVersion) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete_temporary(self, session_id: UUID, *, keep_id: Optional[UUID] = None) -> int:
        """Delete temporary versions of a session except ``keep_id``; return the count."""
        raise NotImplementedError

    def latest(self, session_id: UUID) -> Optional[NoteVersion]:
        versions = self.list_for_session(session_id)
        return versions[0] if versions else None


class ExerciseRepository(ABC):
    @abstractmethod
    def get(self, exercise_id: UUID) -> Optional[Exercise]:
        raise NotImplementedError

    @abstractmethod
    def list_all(self) -> List[Exercise]:
        """Return the whole library ordered by name."""
        raise NotImplementedError

    @abstractmethod
    def save(self, exercise: Exercise) -> None:
        raise NotImplementedError


class TreatmentPlanRepository(ABC):
    @abstractmethod
    def get(self, plan_id: UUID) -> Optional[TreatmentPlan]:
        raise NotImplementedError

    @abstractmethod
    def get_by_session(self, session_id: UUID, patient_id: str) -> Optional[TreatmentPlan]:
        raise NotImplementedError

    @abstractmethod
    def create(self, plan: TreatmentPlan) -> None:
        """Insert a new plan; raise DuplicatePlanError if its key is taken."""
        raise NotImplementedError

    @abstractmethod
    def save(self, plan: TreatmentPlan) -> None:
        raise NotImplementedError

    @abstractmethod
    def replace_exercises(self, plan_id: UUID, exercises: Sequence[PlanExercise]) -> None:
        raise NotImplementedError

    @abstractmethod
    def list_exercises(self, plan_id: UUID) -> List[PlanExercise]:
        """Return the plan's prescription rows ordered by order_index."""
        raise NotImplementedError
