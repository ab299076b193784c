from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from src.physio.domain.models.appointment import Appointment
from src.physio.domain.models.clinical_session import ClinicalSession
from src.physio.domain.models.exercise import Exercise
from src.physio.domain.models.note_version import NoteVersion
from src.physio.domain.models.treatment_plan import PlanExercise, TreatmentPlan
from src.physio.infra.db.repositories import (
    AppointmentRepository,
    DuplicatePlanError,
    ExerciseRepository,
    NoteVersionRepository,
    SessionRepository,
    TreatmentPlanRepository,
)


class InMemoryAppointmentRepository(AppointmentRepository):
    def __init__(self) -> None:
        self._appointments: Dict[UUID, Appointment] = {}

    def get(self, appointment_id: UUID) -> Optional[Appointment]:
        appointment = self._appointments.get(appointment_id)
        return appointment.model_copy() if appointment is not None else None

    def save(self, appointment: Appointment) -> None:
        self._appointments[appointment.id] = appointment.model_copy()


class InMemorySessionRepository(SessionRepository):
    def __init__(self) -> None:
        self._sessions: Dict[UUID, ClinicalSession] = {}

    def get(self, session_id: UUID) -> Optional[ClinicalSession]:
        session = self._sessions.get(session_id)
        return session.model_copy() if session is not None else None

    def get_by_appointment(self, appointment_id: UUID) -> Optional[ClinicalSession]:
        # Linear scan is fine for the small in-memory store.
        for session in self._sessions.values():
            if session.appointment_id == appointment_id:
                return session.model_copy()
        return None

    def save(self, session: ClinicalSession) -> None:
        self._sessions[session.id] = session.model_copy()


class InMemoryNoteVersionRepository(NoteVersionRepository):
    def __init__(self) -> None:
        self._versions: Dict[UUID, NoteVersion] = {}

    def get(self, version_id: UUID) -> Optional[NoteVersion]:
        version = self._versions.get(version_id)
        if version is None or version.deleted_at is not None:
            return None
        return version.model_copy()

    def list_for_session(self, session_id: UUID) -> List[NoteVersion]:
        rows = [
            v.model_copy()
            for v in self._versions.values()
            if v.session_id == session_id and v.deleted_at is None
        ]
        rows.sort(key=lambda v: v.version, reverse=True)
        return rows

    def insert(self, version: NoteVersion) -> None:
        if version.id in self._versions:
            raise KeyError(f"Note version {version.id} already exists")
        self._versions[version.id] = version.model_copy()

    def update(self, version: NoteVersion) -> None:
        if version.id not in self._versions:
            raise KeyError(f"Note version {version.id} does not exist")
        self._versions[version.id] = version.model_copy()

    def delete_temporary(self, session_id: UUID, *, keep_id: Optional[UUID] = None) -> int:
        doomed = [
            v.id
            for v in self._versions.values()
            if v.session_id == session_id and v.temporary and v.id != keep_id
        ]
        for version_id in doomed:
            del self._versions[version_id]
        return len(doomed)


class InMemoryExerciseRepository(ExerciseRepository):
    def __init__(self) -> None:
        self._exercises: Dict[UUID, Exercise] = {}

    def get(self, exercise_id: UUID) -> Optional[Exercise]:
        return self._exercises.get(exercise_id)

    def list_all(self) -> List[Exercise]:
        return sorted(self._exercises.values(), key=lambda e: e.name.lower())

    def save(self, exercise: Exercise) -> None:
        self._exercises[exercise.id] = exercise


class InMemoryTreatmentPlanRepository(TreatmentPlanRepository):
    def __init__(self) -> None:
        self._plans: Dict[UUID, TreatmentPlan] = {}
        self._by_key: Dict[Tuple[UUID, str], UUID] = {}
        self._exercises: Dict[UUID, List[PlanExercise]] = {}

    def get(self, plan_id: UUID) -> Optional[TreatmentPlan]:
        plan = self._plans.get(plan_id)
        return plan.model_copy() if plan is not None else None

    def get_by_session(self, session_id: UUID, patient_id: str) -> Optional[TreatmentPlan]:
        plan_id = self._by_key.get((session_id, patient_id))
        return self.get(plan_id) if plan_id is not None else None

    def create(self, plan: TreatmentPlan) -> None:
        key = (plan.session_id, plan.patient_id)
        if key in self._by_key:
            raise DuplicatePlanError(f"Treatment plan already exists for session {plan.session_id}")
        self._by_key[key] = plan.id
        self._plans[plan.id] = plan.model_copy()

    def save(self, plan: TreatmentPlan) -> None:
        plan.updated_at = datetime.utcnow()
        self._plans[plan.id] = plan.model_copy()

    def replace_exercises(self, plan_id: UUID, exercises: Sequence[PlanExercise]) -> None:
        self._exercises[plan_id] = [e.model_copy() for e in exercises]

    def list_exercises(self, plan_id: UUID) -> List[PlanExercise]:
        rows = [e.model_copy() for e in self._exercises.get(plan_id, [])]
        rows.sort(key=lambda e: e.order_index)
        return rows


# Module-level repository singletons. ``bootstrap.init_sql_repositories`` may
# rebind these to SQL-backed implementations at startup, so services look
# them up through this module at call time instead of importing the names.
appointment_repository: AppointmentRepository = InMemoryAppointmentRepository()
session_repository: SessionRepository = InMemorySessionRepository()
note_version_repository: NoteVersionRepository = InMemoryNoteVersionRepository()
exercise_repository: ExerciseRepository = InMemoryExerciseRepository()
treatment_plan_repository: TreatmentPlanRepository = InMemoryTreatmentPlanRepository()
