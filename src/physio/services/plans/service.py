from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

from src.physio.config import settings
from src.physio.domain.models.exercise import ExercisePrescription
from src.physio.domain.models.note_version import SOAPSummary
from src.physio.domain.models.treatment_plan import PlanExercise, PlanStatus, TreatmentPlan
from src.physio.infra.db import inmemory as repos
from src.physio.infra.db.repositories import DuplicatePlanError, TreatmentPlanRepository
from src.physio.services.audit.service import audit_service
from src.physio.services.email.backends import DeliveryResult, EmailBackend, get_email_backend_from_env
from src.physio.services.exercises.library import ExerciseLibrary, exercise_library
from src.physio.services.notes.service import NoteVersionStore, note_version_store
from src.physio.services.plans.rendering import (
    ExerciseLine,
    PatientPlanView,
    render_plan_email,
    render_public_plan,
)
from src.physio.services.sessions.service import SessionService, session_service

logger = logging.getLogger("plans")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class RecipientValidationError(ValueError):
    pass


class NoRecipientsError(ValueError):
    pass


class PlanNotFoundError(KeyError):
    pass


class DeliveryFailedError(RuntimeError):
    """Every recipient failed; the plan stays marked as dispatched."""

    retryable = True

    def __init__(self, report: "SendReport") -> None:
        super().__init__("Failed to send treatment plan. Please try again.")
        self.report = report


class CompletionError(RuntimeError):
    """One or more completion steps failed after all steps were attempted.

    Every step is idempotent, so calling ``complete`` again is safe.
    """

    retryable = True

    def __init__(self, failures: List[Tuple[str, Exception]]) -> None:
        steps = ", ".join(step for step, _ in failures)
        super().__init__(f"Failed to complete session ({steps}). Please try again.")
        self.failures = failures


class RecipientList:
    """Ordered recipient addresses, validated and de-duplicated on add."""

    def __init__(self, emails: Iterable[str] = ()) -> None:
        self._emails: List[str] = []
        for email in emails:
            self.add(email)

    def add(self, email: str) -> str:
        email = email.strip()
        if not email:
            raise RecipientValidationError("Email address is required")
        if not EMAIL_PATTERN.match(email):
            raise RecipientValidationError("Please enter a valid email address.")
        if email in self._emails:
            raise RecipientValidationError("This email is already in the list.")
        self._emails.append(email)
        return email

    def remove(self, email: str) -> bool:
        before = len(self._emails)
        self._emails = [e for e in self._emails if e != email]
        return len(self._emails) != before

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._emails))

    def __len__(self) -> int:
        return len(self._emails)

    def as_list(self) -> List[str]:
        return list(self._emails)


class DeliveryOutcome(str, Enum):
    SENT = "sent"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class ComposedEmail:
    recipients: List[str]
    subject: str
    html: str


@dataclass
class SendReport:
    plan_id: UUID
    outcome: DeliveryOutcome
    results: List[DeliveryResult] = field(default_factory=list)

    @property
    def sent_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if not r.success)


@dataclass
class CompletionReport:
    session_id: UUID
    final_version_id: Optional[UUID] = None
    narrative_generated: bool = False
    narrative_error: Optional[str] = None
    plan_restamped: bool = False


def default_subject(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"Your Treatment Plan from {today.strftime('%m/%d/%Y')}"


def default_message(patient_name: Optional[str] = None) -> str:
    return (
        f"Dear {patient_name or 'Patient'},\n\n"
        "Please find your personalized exercise plan below. Follow the prescribed exercises as directed.\n\n"
        "If you have any questions, please don't hesitate to reach out.\n\n"
        f"Best regards,\n{settings.clinic_name}"
    )


def plan_url(plan_id: UUID) -> str:
    return f"{settings.public_plan_base_url.rstrip('/')}/plan/{plan_id}"


def _line_from_prescription(item: ExercisePrescription) -> ExerciseLine:
    return ExerciseLine(
        name=item.exercise.name,
        sets=item.sets,
        reps=item.reps,
        duration_seconds=item.duration_seconds,
        frequency_label=item.frequency_label(),
        notes=item.notes,
        description=item.exercise.description,
        instructions=item.exercise.instructions,
    )


class TreatmentPlanFinalizer:
    """Creates, emails and completes the treatment plan of a session.

    ``ensure_plan`` is a memoized get-or-create: concurrent callers for the
    same (session, patient) share one lookup-or-insert, and the storage key is
    unique as well. ``send`` marks the plan dispatched before delivery results
    are known; ``confirm_delivered`` is the separate hook for results.
    """

    def __init__(
        self,
        *,
        repository: Optional[TreatmentPlanRepository] = None,
        email_backend: Optional[EmailBackend] = None,
        note_store: Optional[NoteVersionStore] = None,
        sessions: Optional[SessionService] = None,
        library: Optional[ExerciseLibrary] = None,
    ) -> None:
        self._repository = repository
        self._email_backend: EmailBackend = email_backend or get_email_backend_from_env()
        self._note_store = note_store or note_version_store
        self._sessions = sessions or session_service
        self._library = library or exercise_library
        self._plan_ids: Dict[Tuple[UUID, str], UUID] = {}
        self._pending: Dict[Tuple[UUID, str], "asyncio.Future[TreatmentPlan]"] = {}

    @property
    def repository(self) -> TreatmentPlanRepository:
        return self._repository or repos.treatment_plan_repository

    @property
    def email_backend(self) -> EmailBackend:
        return self._email_backend

    def release(self, session_id: UUID, patient_id: str) -> None:
        """Forget the memoized plan id of a session that has left the workflow."""

        self._plan_ids.pop((session_id, patient_id), None)

    async def aclose(self) -> None:
        await self._email_backend.aclose()

    def get_plan(self, plan_id: UUID) -> TreatmentPlan:
        plan = self.repository.get(plan_id)
        if plan is None:
            raise PlanNotFoundError(str(plan_id))
        return plan

    async def ensure_plan(self, session_id: UUID, patient_id: str) -> TreatmentPlan:
        key = (session_id, patient_id)
        plan_id = self._plan_ids.get(key)
        if plan_id is not None:
            plan = self.repository.get(plan_id)
            if plan is not None:
                return plan
            self._plan_ids.pop(key, None)

        pending = self._pending.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._get_or_create(session_id, patient_id))
            self._pending[key] = pending
        try:
            plan = await pending
        finally:
            if self._pending.get(key) is pending and pending.done():
                self._pending.pop(key, None)

        self._plan_ids[key] = plan.id
        return plan

    async def _get_or_create(self, session_id: UUID, patient_id: str) -> TreatmentPlan:
        existing = self.repository.get_by_session(session_id, patient_id)
        if existing is not None:
            return existing

        now = datetime.utcnow()
        plan = TreatmentPlan(
            id=uuid4(),
            session_id=session_id,
            patient_id=patient_id,
            created_at=now,
            updated_at=now,
        )
        try:
            self.repository.create(plan)
        except DuplicatePlanError:
            existing = self.repository.get_by_session(session_id, patient_id)
            if existing is None:
                raise
            logger.info("Plan for session %s created concurrently; reusing %s", session_id, existing.id)
            return existing

        audit_service.log_event(
            action="create_treatment_plan",
            resource_type="treatment_plan",
            resource_id=str(plan.id),
            extra={"session_id": str(session_id)},
        )
        return plan

    def save_exercises(self, plan_id: UUID, prescriptions: Sequence[ExercisePrescription]) -> List[PlanExercise]:
        """Write the selected exercises as plan rows; list position is the order index."""

        self.get_plan(plan_id)
        now = datetime.utcnow()
        rows = [
            PlanExercise(
                id=uuid4(),
                treatment_plan_id=plan_id,
                exercise_id=item.exercise_id,
                order_index=index,
                sets=item.sets,
                reps=item.reps,
                duration_seconds=item.duration_seconds,
                frequency=item.frequency,
                notes=item.notes,
                created_at=now,
            )
            for index, item in enumerate(prescriptions)
        ]
        self.repository.replace_exercises(plan_id, rows)
        return rows

    def compose_email(
        self,
        plan_id: UUID,
        recipients: Iterable[str],
        subject: str,
        body: str,
        *,
        summary: SOAPSummary,
        exercises: Sequence[ExercisePrescription],
        patient_name: Optional[str] = None,
    ) -> ComposedEmail:
        view = PatientPlanView(
            plan_url=plan_url(plan_id),
            patient_name=patient_name,
            subjective=summary.subjective,
            assessment=summary.assessment,
            plan=summary.plan,
            exercises=[_line_from_prescription(item) for item in exercises],
        )
        return ComposedEmail(
            recipients=list(recipients),
            subject=subject,
            html=render_plan_email(view, body),
        )

    def mark_dispatched(self, plan_id: UUID) -> TreatmentPlan:
        plan = self.get_plan(plan_id)
        now = datetime.utcnow()
        plan.status = PlanStatus.SENT
        plan.sent_at = now
        plan.updated_at = now
        self.repository.save(plan)
        return plan

    def confirm_delivered(self, report: SendReport) -> None:
        """Record delivery results for a dispatched plan.

        Only the audit trail is updated; plan status is already SENT.
        """

        audit_service.log_event(
            action="confirm_plan_delivery",
            resource_type="treatment_plan",
            resource_id=str(report.plan_id),
            extra={
                "outcome": report.outcome.value,
                "sent": report.sent_count,
                "failed": report.failed_count,
            },
        )

    async def send(self, plan_id: UUID, email: ComposedEmail) -> SendReport:
        recipients = list(dict.fromkeys(email.recipients))
        if not recipients:
            raise NoRecipientsError("Please add at least one email address before sending.")
        self.get_plan(plan_id)

        self.mark_dispatched(plan_id)
        results = await asyncio.gather(
            *(self._deliver(to, email.subject, email.html) for to in recipients)
        )

        failed = [r for r in results if not r.success]
        if not failed:
            outcome = DeliveryOutcome.SENT
        elif len(failed) == len(results):
            outcome = DeliveryOutcome.FAILED
        else:
            outcome = DeliveryOutcome.PARTIAL
        report = SendReport(plan_id=plan_id, outcome=outcome, results=list(results))
        self.confirm_delivered(report)

        if outcome is DeliveryOutcome.FAILED:
            logger.error("All %d plan emails failed for plan %s", len(results), plan_id)
            raise DeliveryFailedError(report)
        if outcome is DeliveryOutcome.PARTIAL:
            logger.warning("%d of %d plan emails failed for plan %s", len(failed), len(results), plan_id)
        return report

    async def _deliver(self, to: str, subject: str, html: str) -> DeliveryResult:
        try:
            return await self._email_backend.send(to, subject, html)
        except Exception as exc:
            logger.exception("Email backend raised while sending to a recipient")
            return DeliveryResult(recipient=to, success=False, error=str(exc) or type(exc).__name__)

    async def complete(
        self,
        session_id: UUID,
        *,
        appointment_id: Optional[UUID] = None,
        treatment_plan_id: Optional[UUID] = None,
        exercises: Optional[Sequence[ExercisePrescription]] = None,
    ) -> CompletionReport:
        """Finish the session; every step is attempted even if an earlier one fails.

        Steps: finalize notes, attach a narrative summary (failure tolerated),
        mark the session and appointment completed, and re-stamp ``sent_at``
        on an already-sent plan.
        """

        self._sessions.get_session(session_id)

        report = CompletionReport(session_id=session_id)
        failures: List[Tuple[str, Exception]] = []

        try:
            report.final_version_id = self._note_store.finalize(session_id)
        except Exception as exc:
            logger.exception("Finalizing notes failed for session %s", session_id)
            failures.append(("finalize_notes", exc))

        if report.final_version_id is not None:
            await self._attach_narrative(report, treatment_plan_id, exercises, failures)

        try:
            self._sessions.mark_session_completed(session_id)
        except Exception as exc:
            logger.exception("Marking session %s completed failed", session_id)
            failures.append(("complete_session", exc))

        if appointment_id is not None:
            try:
                self._sessions.mark_appointment_completed(appointment_id)
            except Exception as exc:
                logger.exception("Marking appointment %s completed failed", appointment_id)
                failures.append(("complete_appointment", exc))

        if treatment_plan_id is not None:
            try:
                plan = self.get_plan(treatment_plan_id)
                if plan.status is PlanStatus.SENT:
                    self.mark_dispatched(treatment_plan_id)
                    report.plan_restamped = True
            except Exception as exc:
                logger.exception("Updating plan %s failed", treatment_plan_id)
                failures.append(("update_plan", exc))

        audit_service.log_event(
            action="complete_session",
            resource_type="session",
            resource_id=str(session_id),
            extra={
                "final_version_id": str(report.final_version_id) if report.final_version_id else None,
                "narrative_generated": report.narrative_generated,
                "failed_steps": [step for step, _ in failures],
            },
        )
        if failures:
            raise CompletionError(failures)
        return report

    async def _attach_narrative(
        self,
        report: CompletionReport,
        treatment_plan_id: Optional[UUID],
        exercises: Optional[Sequence[ExercisePrescription]],
        failures: List[Tuple[str, Exception]],
    ) -> None:
        version = self._note_store.repository.get(report.final_version_id)
        if version is None:
            return
        if exercises is None:
            exercises = self._prescriptions_for_plan(treatment_plan_id) if treatment_plan_id else []

        try:
            narrative = await self._note_store.backend.narrative_summary(version.summary(), exercises)
        except Exception as exc:
            # The session still completes without a narrative.
            logger.warning("Narrative summary failed for session %s: %s", report.session_id, exc)
            report.narrative_error = "Could not generate the AI summary. The session was still completed."
            return

        try:
            self._note_store.attach_narrative(version.id, narrative)
            report.narrative_generated = True
        except Exception as exc:
            logger.exception("Saving narrative failed for session %s", report.session_id)
            failures.append(("save_narrative", exc))

    def _prescriptions_for_plan(self, plan_id: UUID) -> List[ExercisePrescription]:
        items = []
        for row in self.repository.list_exercises(plan_id):
            exercise = self._library.get(row.exercise_id)
            if exercise is None:
                logger.warning("Plan %s references unknown exercise %s", plan_id, row.exercise_id)
                continue
            items.append(
                ExercisePrescription(
                    exercise=exercise,
                    sets=row.sets,
                    reps=row.reps,
                    duration_seconds=row.duration_seconds,
                    frequency=row.frequency,
                    notes=row.notes,
                )
            )
        return items

    def public_view(self, plan_id: UUID) -> PatientPlanView:
        """Read-only patient view of a plan, addressed by plan id."""

        plan = self.get_plan(plan_id)
        latest = self._note_store.repository.latest(plan.session_id)
        summary = latest.summary() if latest is not None else SOAPSummary()

        patient_name = None
        session = self._sessions.sessions.get(plan.session_id)
        if session is not None and session.appointment_id is not None:
            appointment = self._sessions.appointments.get(session.appointment_id)
            if appointment is not None:
                patient_name = appointment.patient_name

        return PatientPlanView(
            plan_url=plan_url(plan.id),
            patient_name=patient_name,
            subjective=summary.subjective,
            assessment=summary.assessment,
            plan=summary.plan,
            narrative=latest.full_summary if latest is not None else None,
            exercises=[_line_from_prescription(item) for item in self._prescriptions_for_plan(plan.id)],
        )

    def render_public_page(self, plan_id: UUID) -> str:
        return render_public_plan(self.public_view(plan_id))


treatment_plan_finalizer = TreatmentPlanFinalizer()
