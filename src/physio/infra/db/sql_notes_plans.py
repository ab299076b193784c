from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from src.physio.domain.models.exercise import Exercise
from src.physio.domain.models.note_version import NoteVersion
from src.physio.domain.models.treatment_plan import PlanExercise, TreatmentPlan
from src.physio.infra.db.models_notes_plans import ExerciseORM, NoteVersionORM, PlanExerciseORM, TreatmentPlanORM
from src.physio.infra.db.repositories import (
    DuplicatePlanError,
    ExerciseRepository,
    NoteVersionRepository,
    TreatmentPlanRepository,
)
from src.physio.infra.db.session import SessionFactory


class SqlNoteVersionRepository(NoteVersionRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, version_id: UUID) -> Optional[NoteVersion]:
        session = self._session_factory()
        try:
            orm = session.get(NoteVersionORM, version_id)
            if orm is None or orm.deleted_at is not None:
                return None
            return orm.to_domain()
        finally:
            session.close()

    def list_for_session(self, session_id: UUID) -> List[NoteVersion]:
        session = self._session_factory()
        try:
            rows = (
                session.query(NoteVersionORM)
                .filter(
                    NoteVersionORM.session_id == session_id,
                    NoteVersionORM.deleted_at.is_(None),
                )
                .order_by(NoteVersionORM.version.desc())
                .all()
            )
            return [orm.to_domain() for orm in rows]
        finally:
            session.close()

    def insert(self, version: NoteVersion) -> None:
        session = self._session_factory()
        try:
            session.add(NoteVersionORM.from_domain(version))
            session.commit()
        finally:
            session.close()

    def update(self, version: NoteVersion) -> None:
        session = self._session_factory()
        try:
            existing = session.get(NoteVersionORM, version.id)
            if existing is None:
                raise KeyError(f"Note version {version.id} does not exist")
            existing.version = version.version
            existing.edit_type = version.edit_type.value
            existing.temporary = version.temporary
            existing.deleted_at = version.deleted_at
            existing.subjective = version.subjective
            existing.objective = version.objective
            existing.assessment = version.assessment
            existing.plan = version.plan
            existing.prompt = version.prompt
            existing.full_summary = version.full_summary
            session.commit()
        finally:
            session.close()

    def delete_temporary(self, session_id: UUID, *, keep_id: Optional[UUID] = None) -> int:
        session = self._session_factory()
        try:
            query = session.query(NoteVersionORM).filter(
                NoteVersionORM.session_id == session_id,
                NoteVersionORM.temporary.is_(True),
            )
            if keep_id is not None:
                query = query.filter(NoteVersionORM.id != keep_id)
            count = query.delete(synchronize_session=False)
            session.commit()
            return count
        finally:
            session.close()


class SqlExerciseRepository(ExerciseRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, exercise_id: UUID) -> Optional[Exercise]:
        session = self._session_factory()
        try:
            orm = session.get(ExerciseORM, exercise_id)
            return orm.to_domain() if orm is not None else None
        finally:
            session.close()

    def list_all(self) -> List[Exercise]:
        session = self._session_factory()
        try:
            return [orm.to_domain() for orm in session.query(ExerciseORM).order_by(ExerciseORM.name.asc()).all()]
        finally:
            session.close()

    def save(self, exercise: Exercise) -> None:
        session = self._session_factory()
        try:
            existing = session.get(ExerciseORM, exercise.id)
            if existing is None:
                session.add(ExerciseORM.from_domain(exercise))
            else:
                existing.name = exercise.name
                existing.description = exercise.description
                existing.body_area = exercise.body_area
                existing.goal = exercise.goal
                existing.difficulty = exercise.difficulty
                existing.instructions = exercise.instructions
            session.commit()
        finally:
            session.close()


class SqlTreatmentPlanRepository(TreatmentPlanRepository):
    """SQL-backed treatment plans and their ordered prescription rows."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, plan_id: UUID) -> Optional[TreatmentPlan]:
        session = self._session_factory()
        try:
            orm = session.get(TreatmentPlanORM, plan_id)
            return orm.to_domain() if orm is not None else None
        finally:
            session.close()

    def get_by_session(self, session_id: UUID, patient_id: str) -> Optional[TreatmentPlan]:
        session = self._session_factory()
        try:
            orm = (
                session.query(TreatmentPlanORM)
                .filter(
                    TreatmentPlanORM.session_id == session_id,
                    TreatmentPlanORM.patient_id == patient_id,
                )
                .first()
            )
            return orm.to_domain() if orm is not None else None
        finally:
            session.close()

    def create(self, plan: TreatmentPlan) -> None:
        session = self._session_factory()
        try:
            session.add(TreatmentPlanORM.from_domain(plan))
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicatePlanError(f"Treatment plan already exists for session {plan.session_id}") from exc
        finally:
            session.close()

    def save(self, plan: TreatmentPlan) -> None:
        session = self._session_factory()
        try:
            existing = session.get(TreatmentPlanORM, plan.id)
            if existing is None:
                raise KeyError(f"Treatment plan {plan.id} does not exist")
            plan.updated_at = datetime.utcnow()
            existing.status = plan.status.value
            existing.notes = plan.notes
            existing.sent_at = plan.sent_at
            existing.updated_at = plan.updated_at
            session.commit()
        finally:
            session.close()

    def replace_exercises(self, plan_id: UUID, exercises: Sequence[PlanExercise]) -> None:
        session = self._session_factory()
        try:
            session.query(PlanExerciseORM).filter(PlanExerciseORM.treatment_plan_id == plan_id).delete(
                synchronize_session=False
            )
            session.add_all([PlanExerciseORM.from_domain(row) for row in exercises])
            session.commit()
        finally:
            session.close()

    def list_exercises(self, plan_id: UUID) -> List[PlanExercise]:
        session = self._session_factory()
        try:
            rows = (
                session.query(PlanExerciseORM)
                .filter(PlanExerciseORM.treatment_plan_id == plan_id)
                .order_by(PlanExerciseORM.order_index.asc())
                .all()
            )
            return [orm.to_domain() for orm in rows]
        finally:
            session.close()
