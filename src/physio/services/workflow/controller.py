from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from src.physio.domain.models.clinical_session import ClinicalSession
from src.physio.domain.models.exercise import DosageUpdate, Exercise, ExerciseCreate, ExercisePrescription
from src.physio.domain.models.note_version import NoteVersion, SOAPSummary
from src.physio.domain.models.workflow import WORKFLOW_STEPS, SessionData, WorkflowStep
from src.physio.services.exercises.library import ExerciseLibrary, ExerciseValidationError, exercise_library
from src.physio.services.exercises.plan_builder import ExercisePlanBuilder
from src.physio.services.notes.service import NoteOutcome, NoteResult, NoteVersionStore, note_version_store
from src.physio.services.plans.service import (
    CompletionReport,
    ComposedEmail,
    RecipientList,
    SendReport,
    TreatmentPlanFinalizer,
    default_message,
    default_subject,
    treatment_plan_finalizer,
)
from src.physio.services.sessions.service import SessionService, session_service
from src.physio.services.transcript.capture import TranscriptCapture

logger = logging.getLogger("workflow")


class WorkflowGateError(RuntimeError):
    """The operation is not allowed at the current step, or the step is incomplete."""


# Step(s) at which each SessionData field may be written.
_FIELD_STEPS = {
    "transcript": (WorkflowStep.CONSULTATION,),
    "clinician_notes": (WorkflowStep.CONSULTATION,),
    "summary": (WorkflowStep.SUMMARY,),
    "selected_exercises": (WorkflowStep.EXERCISES, WorkflowStep.CONFIGURE),
}
_PLAN_STEPS = (WorkflowStep.EXERCISES, WorkflowStep.CONFIGURE)


class SessionWorkflowController:
    """Drives one clinical session through the five workflow steps.

    Holds the in-memory ``SessionData`` aggregate together with the
    transcript capture, the exercise plan builder and the recipient list.
    Transitions move one step at a time; going back is always allowed.
    Step-specific operations raise ``WorkflowGateError`` at any other step,
    and every mutation is refused once the session is completed.
    """

    def __init__(
        self,
        session: ClinicalSession,
        *,
        patient_name: Optional[str] = None,
        condition: Optional[str] = None,
        dictation_supported: bool = True,
        note_store: Optional[NoteVersionStore] = None,
        finalizer: Optional[TreatmentPlanFinalizer] = None,
        sessions: Optional[SessionService] = None,
        library: Optional[ExerciseLibrary] = None,
    ) -> None:
        self.session = session
        self.patient_name = patient_name
        self.condition = condition
        self.step = WorkflowStep.CONSULTATION
        self.data = SessionData(
            transcript=session.transcript or "",
            clinician_notes=session.clinician_notes or "",
        )
        self.capture = TranscriptCapture(
            transcript=self.data.transcript,
            clinician_notes=self.data.clinician_notes,
            dictation_supported=dictation_supported,
        )
        self.notes = note_store or note_version_store
        self.finalizer = finalizer or treatment_plan_finalizer
        self.sessions = sessions or session_service
        self.library = library or exercise_library
        self.builder = ExercisePlanBuilder(library=self.library)
        self.recipients = RecipientList()
        self.plan_id: Optional[UUID] = None
        self.completed = False

    @property
    def session_id(self) -> UUID:
        return self.session.id

    @property
    def step_index(self) -> int:
        return WORKFLOW_STEPS.index(self.step)

    def _require_step(self, *steps: WorkflowStep) -> None:
        if self.completed:
            raise WorkflowGateError("This session has already been completed.")
        if steps and self.step not in steps:
            allowed = " or ".join(step.value for step in steps)
            raise WorkflowGateError(f"Not available at the {self.step.value} step (requires {allowed}).")

    # Session data

    def update_session_data(self, **partial: Any) -> SessionData:
        """Shallow-merge fields into the aggregate and resync the helpers.

        Each field follows the rules of its dedicated operation: the transcript
        is locked while dictating and repeated exercises are dropped.
        """

        unknown = set(partial) - set(SessionData.model_fields)
        if unknown:
            raise ValueError(f"Unknown session data fields: {', '.join(sorted(unknown))}")
        self._require_step()
        for name in partial:
            self._require_step(*_FIELD_STEPS[name])

        if "transcript" in partial:
            self.capture.edit_transcript(partial["transcript"])
        if "clinician_notes" in partial:
            self.capture.set_notes(partial["clinician_notes"])
        self.data = self.data.model_copy(update=partial)
        self._sync_capture()
        if "selected_exercises" in partial:
            self.builder = ExercisePlanBuilder(partial["selected_exercises"], library=self.library)
            self._sync_builder()
        if "summary" in partial:
            self.notes.update_working_summary(self.session_id, self.data.summary)
        return self.data

    def _sync_capture(self) -> None:
        self.data = self.data.model_copy(
            update={"transcript": self.capture.transcript, "clinician_notes": self.capture.clinician_notes}
        )

    def _sync_builder(self) -> None:
        self.data = self.data.model_copy(update={"selected_exercises": self.builder.items})

    # Navigation

    def gate_reason(self) -> Optional[str]:
        """Return why the current step cannot be left forwards, or None."""

        if self.step is WorkflowStep.CONSULTATION and not self.capture.can_advance():
            return "Add a transcript or clinician notes before continuing."
        if self.step is WorkflowStep.EXERCISES and len(self.builder) == 0:
            return "Select at least one exercise before continuing."
        return None

    def can_advance(self) -> bool:
        return self.step is not WorkflowStep.FINALIZE and self.gate_reason() is None

    async def advance(self) -> WorkflowStep:
        self._require_step()
        if self.step is WorkflowStep.FINALIZE:
            return self.step
        reason = self.gate_reason()
        if reason is not None:
            raise WorkflowGateError(reason)

        if self.step is WorkflowStep.CONSULTATION:
            if self.capture.capturing:
                self.capture.stop()
            self.sessions.save_consultation(self.session_id, self.data.transcript, self.data.clinician_notes)

        target = WORKFLOW_STEPS[self.step_index + 1]
        if target is WorkflowStep.FINALIZE:
            await self._write_plan()
        logger.info("Session %s: %s -> %s", self.session_id, self.step.value, target.value)
        self.step = target
        return self.step

    def retreat(self) -> WorkflowStep:
        self._require_step()
        if self.step_index > 0:
            self.step = WORKFLOW_STEPS[self.step_index - 1]
        return self.step

    # Consultation

    def start_dictation(self) -> bool:
        self._require_step(WorkflowStep.CONSULTATION)
        return self.capture.start()

    def stop_dictation(self) -> None:
        self.capture.stop()

    def receive_fragment(self, fragment: str, *, final: bool) -> None:
        self.capture.receive(fragment, final=final)
        self._sync_capture()

    def dictation_failed(self, message: str) -> None:
        self.capture.fail(message)

    def edit_consultation(self, *, transcript: Optional[str] = None, clinician_notes: Optional[str] = None) -> SessionData:
        self._require_step(WorkflowStep.CONSULTATION)
        if transcript is not None:
            self.capture.edit_transcript(transcript)
        if clinician_notes is not None:
            self.capture.set_notes(clinician_notes)
        self._sync_capture()
        return self.data

    # Summary

    def load_versions(self) -> List[NoteVersion]:
        versions = self.notes.load_versions(self.session_id)
        self.data = self.data.model_copy(update={"summary": self.notes.editor(self.session_id).summary})
        return versions

    async def generate_summary(self, instruction: Optional[str] = None) -> NoteResult:
        self._require_step(WorkflowStep.SUMMARY)
        result = await self.notes.generate(
            self.session_id,
            self.data.transcript,
            self.data.clinician_notes,
            current_summary=self.data.summary,
            instruction=instruction,
        )
        if result.outcome is NoteOutcome.CREATED:
            self.data = self.data.model_copy(update={"summary": result.summary})
        return result

    async def save_summary_on_blur(self, summary: SOAPSummary) -> NoteResult:
        self._require_step(WorkflowStep.SUMMARY)
        self.data = self.data.model_copy(update={"summary": summary})
        return await self.notes.save_on_blur(self.session_id, summary)

    def restore_version(self, version_id: UUID) -> NoteVersion:
        self._require_step(WorkflowStep.SUMMARY)
        version = self.notes.restore(self.session_id, version_id)
        self.data = self.data.model_copy(update={"summary": version.summary()})
        return version

    # Exercises and configuration

    def suggested_exercises(self) -> List[Exercise]:
        return self.library.suggest_for_condition(self.condition)

    def add_exercise(self, exercise_id: UUID) -> bool:
        self._require_step(*_PLAN_STEPS)
        exercise = self.library.get(exercise_id)
        if exercise is None:
            raise ExerciseValidationError(f"Unknown exercise {exercise_id}")
        added = self.builder.add(exercise)
        self._sync_builder()
        return added

    def remove_exercise(self, exercise_id: UUID) -> bool:
        self._require_step(*_PLAN_STEPS)
        removed = self.builder.remove(exercise_id)
        self._sync_builder()
        return removed

    def reorder_exercises(self, from_index: int, to_index: int) -> bool:
        self._require_step(*_PLAN_STEPS)
        moved = self.builder.reorder(from_index, to_index)
        self._sync_builder()
        return moved

    def update_exercise(self, index: int, changes: DosageUpdate) -> ExercisePrescription:
        self._require_step(*_PLAN_STEPS)
        updated = self.builder.update_parameters(index, changes)
        self._sync_builder()
        return updated

    def create_custom_exercise(self, fields: ExerciseCreate) -> Exercise:
        self._require_step(*_PLAN_STEPS)
        exercise = self.builder.create_custom(fields)
        self._sync_builder()
        return exercise

    # Finalize

    async def prepare_plan(self) -> UUID:
        """Get-or-create the session's plan and write the selected exercises to it."""

        self._require_step(WorkflowStep.FINALIZE)
        return await self._write_plan()

    async def _write_plan(self) -> UUID:
        plan = await self.finalizer.ensure_plan(self.session_id, self.session.patient_id)
        self.plan_id = plan.id
        self.finalizer.save_exercises(plan.id, self.data.selected_exercises)
        return plan.id

    def add_recipient(self, email: str) -> str:
        self._require_step(WorkflowStep.FINALIZE)
        return self.recipients.add(email)

    def remove_recipient(self, email: str) -> bool:
        self._require_step(WorkflowStep.FINALIZE)
        return self.recipients.remove(email)

    async def compose_email(self, subject: Optional[str] = None, body: Optional[str] = None) -> ComposedEmail:
        self._require_step(WorkflowStep.FINALIZE)
        plan_id = self.plan_id or await self._write_plan()
        return self.finalizer.compose_email(
            plan_id,
            self.recipients,
            subject or default_subject(),
            body if body is not None else default_message(self.patient_name),
            summary=self.data.summary,
            exercises=self.data.selected_exercises,
            patient_name=self.patient_name,
        )

    async def send_plan(self, subject: Optional[str] = None, body: Optional[str] = None) -> SendReport:
        email = await self.compose_email(subject, body)
        return await self.finalizer.send(self.plan_id, email)

    async def complete(self) -> CompletionReport:
        """Complete the session and drop its per-session service state.

        A failed completion leaves the controller open so the call can be retried.
        """

        self._require_step(WorkflowStep.FINALIZE)
        report = await self.finalizer.complete(
            self.session_id,
            appointment_id=self.session.appointment_id,
            treatment_plan_id=self.plan_id,
            exercises=self.data.selected_exercises,
        )
        self.completed = True
        self.notes.release(self.session_id)
        self.finalizer.release(self.session_id, self.session.patient_id)
        logger.info("Session %s completed", self.session_id)
        return report


class WorkflowRegistry:
    """Keeps one controller per open session for the API layer."""

    def __init__(self) -> None:
        self._controllers: Dict[UUID, SessionWorkflowController] = {}

    def get(self, session_id: UUID) -> Optional[SessionWorkflowController]:
        return self._controllers.get(session_id)

    def open(self, session: ClinicalSession, **kwargs: Any) -> SessionWorkflowController:
        controller = self._controllers.get(session.id)
        if controller is None:
            controller = SessionWorkflowController(session, **kwargs)
            self._controllers[session.id] = controller
        return controller

    def close(self, session_id: UUID) -> None:
        self._controllers.pop(session_id, None)


workflow_registry = WorkflowRegistry()
