from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.physio.infra.db.models import Base


class NoteVersionORM(Base):
    __tablename__ = "session_summaries"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    session_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("sessions.id"), nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    edit_type: Mapped[str] = mapped_column(String, nullable=False)
    temporary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    subjective: Mapped[str] = mapped_column(Text, nullable=False, default="")
    objective: Mapped[str] = mapped_column(Text, nullable=False, default="")
    assessment: Mapped[str] = mapped_column(Text, nullable=False, default="")
    plan: Mapped[str] = mapped_column(Text, nullable=False, default="")
    prompt: Mapped[str | None] = mapped_column(Text, nullable=True)
    full_summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (UniqueConstraint("session_id", "version", name="uq_session_summaries_version"),)

    @classmethod
    def from_domain(cls, note: "NoteVersion") -> "NoteVersionORM":  # type: ignore[name-defined]
        return cls(
            id=note.id,
            session_id=note.session_id,
            version=note.version,
            edit_type=note.edit_type.value,
            temporary=note.temporary,
            created_at=note.created_at,
            deleted_at=note.deleted_at,
            subjective=note.subjective,
            objective=note.objective,
            assessment=note.assessment,
            plan=note.plan,
            prompt=note.prompt,
            full_summary=note.full_summary,
        )

    def to_domain(self) -> "NoteVersion":  # type: ignore[name-defined]
        from src.physio.domain.models.note_version import EditType, NoteVersion

        return NoteVersion(
            id=self.id,
            session_id=self.session_id,
            version=self.version,
            edit_type=EditType(self.edit_type),
            temporary=self.temporary,
            created_at=self.created_at,
            deleted_at=self.deleted_at,
            subjective=self.subjective or "",
            objective=self.objective or "",
            assessment=self.assessment or "",
            plan=self.plan or "",
            prompt=self.prompt,
            full_summary=self.full_summary,
        )


class ExerciseORM(Base):
    __tablename__ = "exercises"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    body_area: Mapped[str] = mapped_column(String, nullable=False)
    goal: Mapped[str] = mapped_column(String, nullable=False)
    difficulty: Mapped[str] = mapped_column(String, nullable=False)
    instructions: Mapped[str | None] = mapped_column(Text, nullable=True)

    @classmethod
    def from_domain(cls, exercise: "Exercise") -> "ExerciseORM":  # type: ignore[name-defined]
        return cls(
            id=exercise.id,
            created_at=exercise.created_at,
            name=exercise.name,
            description=exercise.description,
            body_area=exercise.body_area,
            goal=exercise.goal,
            difficulty=exercise.difficulty,
            instructions=exercise.instructions,
        )

    def to_domain(self) -> "Exercise":  # type: ignore[name-defined]
        from src.physio.domain.models.exercise import Exercise

        return Exercise(
            id=self.id,
            created_at=self.created_at,
            name=self.name,
            description=self.description,
            body_area=self.body_area,
            goal=self.goal,
            difficulty=self.difficulty,
            instructions=self.instructions,
        )


class TreatmentPlanORM(Base):
    __tablename__ = "treatment_plans"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    session_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("sessions.id"), nullable=False)
    patient_id: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # One plan per session, enforced by storage as well as by the
    # lookup-before-insert in the finalizer.
    __table_args__ = (UniqueConstraint("session_id", "patient_id", name="uq_treatment_plans_session_patient"),)

    @classmethod
    def from_domain(cls, plan: "TreatmentPlan") -> "TreatmentPlanORM":  # type: ignore[name-defined]
        return cls(
            id=plan.id,
            session_id=plan.session_id,
            patient_id=plan.patient_id,
            status=plan.status.value,
            notes=plan.notes,
            sent_at=plan.sent_at,
            created_at=plan.created_at,
            updated_at=plan.updated_at,
        )

    def to_domain(self) -> "TreatmentPlan":  # type: ignore[name-defined]
        from src.physio.domain.models.treatment_plan import PlanStatus, TreatmentPlan

        return TreatmentPlan(
            id=self.id,
            session_id=self.session_id,
            patient_id=self.patient_id,
            status=PlanStatus(self.status),
            notes=self.notes,
            sent_at=self.sent_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class PlanExerciseORM(Base):
    __tablename__ = "treatment_plan_exercises"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    treatment_plan_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("treatment_plans.id"), nullable=False, index=True
    )
    exercise_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("exercises.id"), nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)
    sets: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reps: Mapped[int | None] = mapped_column(Integer, nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    frequency: Mapped[str] = mapped_column(String, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @classmethod
    def from_domain(cls, row: "PlanExercise") -> "PlanExerciseORM":  # type: ignore[name-defined]
        return cls(
            id=row.id,
            treatment_plan_id=row.treatment_plan_id,
            exercise_id=row.exercise_id,
            order_index=row.order_index,
            sets=row.sets,
            reps=row.reps,
            duration_seconds=row.duration_seconds,
            frequency=row.frequency.value,
            notes=row.notes,
            created_at=row.created_at,
        )

    def to_domain(self) -> "PlanExercise":  # type: ignore[name-defined]
        from src.physio.domain.models.exercise import Frequency
        from src.physio.domain.models.treatment_plan import PlanExercise

        return PlanExercise(
            id=self.id,
            treatment_plan_id=self.treatment_plan_id,
            exercise_id=self.exercise_id,
            order_index=self.order_index,
            sets=self.sets,
            reps=self.reps,
            duration_seconds=self.duration_seconds,
            frequency=Frequency(self.frequency),
            notes=self.notes,
            created_at=self.created_at,
        )
