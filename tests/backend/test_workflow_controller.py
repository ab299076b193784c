from datetime import date

import pytest

from src.physio.domain.models.exercise import DosageUpdate, ExerciseCreate, Frequency
from src.physio.domain.models.note_version import SOAPSummary
from src.physio.domain.models.treatment_plan import PlanStatus
from src.physio.domain.models.workflow import WorkflowStep
from src.physio.infra.db.inmemory import (
    InMemoryAppointmentRepository,
    InMemoryExerciseRepository,
    InMemoryNoteVersionRepository,
    InMemorySessionRepository,
    InMemoryTreatmentPlanRepository,
)
from src.physio.services.email.backends import DemoEmailBackend
from src.physio.services.exercises.library import ExerciseLibrary
from src.physio.services.notes.service import NoteOutcome, NoteVersionStore
from src.physio.services.plans.service import RecipientValidationError, TreatmentPlanFinalizer
from src.physio.services.sessions.service import SessionService
from src.physio.services.summarization.backends import DemoSummarizationBackend
from src.physio.services.transcript.capture import TranscriptLockedError
from src.physio.services.workflow.controller import SessionWorkflowController, WorkflowGateError, WorkflowRegistry


def _controller(**kwargs):
    library = ExerciseLibrary(repository=InMemoryExerciseRepository())
    library.seed_defaults()
    notes = NoteVersionStore(repository=InMemoryNoteVersionRepository(), backend=DemoSummarizationBackend())
    sessions = SessionService(sessions=InMemorySessionRepository(), appointments=InMemoryAppointmentRepository())
    email = DemoEmailBackend()
    finalizer = TreatmentPlanFinalizer(
        repository=InMemoryTreatmentPlanRepository(),
        email_backend=email,
        note_store=notes,
        sessions=sessions,
        library=library,
    )
    appointment = sessions.create_appointment(
        patient_id="patient-7",
        patient_name="Alex Kim",
        clinician_name="Dr. Rivera",
        appointment_date=date(2026, 5, 4),
        condition="Right shoulder impingement",
    )
    session = sessions.start_from_appointment(appointment.id)
    controller = SessionWorkflowController(
        session,
        patient_name=appointment.patient_name,
        condition=appointment.condition,
        note_store=notes,
        finalizer=finalizer,
        sessions=sessions,
        library=library,
        **kwargs,
    )
    return controller, email


async def test_consultation_gate_requires_transcript_or_notes():
    controller, _ = _controller()
    assert controller.can_advance() is False

    with pytest.raises(WorkflowGateError):
        await controller.advance()
    assert controller.step is WorkflowStep.CONSULTATION


async def test_notes_alone_allow_advancing_to_summary():
    controller, _ = _controller()
    controller.update_session_data(transcript="", clinician_notes="Patient reports stiffness")

    assert await controller.advance() is WorkflowStep.SUMMARY
    stored = controller.sessions.get_session(controller.session_id)
    assert stored.clinician_notes == "Patient reports stiffness"


async def test_exercises_gate_and_back_navigation():
    controller, _ = _controller()
    controller.edit_consultation(transcript="Shoulder pain reaching overhead")
    await controller.advance()
    await controller.advance()
    assert controller.step is WorkflowStep.EXERCISES

    with pytest.raises(WorkflowGateError):
        await controller.advance()

    suggestions = controller.suggested_exercises()
    assert suggestions and all(e.body_area == "shoulder" for e in suggestions)
    controller.add_exercise(suggestions[0].id)
    assert await controller.advance() is WorkflowStep.CONFIGURE

    assert controller.retreat() is WorkflowStep.EXERCISES
    assert controller.retreat() is WorkflowStep.SUMMARY
    assert controller.retreat() is WorkflowStep.CONSULTATION
    assert controller.retreat() is WorkflowStep.CONSULTATION


async def test_dictation_fragments_flow_into_session_data():
    controller, _ = _controller()
    assert controller.start_dictation() is True
    controller.receive_fragment("Pain started last week", final=True)

    with pytest.raises(TranscriptLockedError):
        controller.edit_consultation(transcript="typed over")

    assert controller.data.transcript == "Pain started last week "
    assert await controller.advance() is WorkflowStep.SUMMARY
    assert controller.capture.capturing is False


async def test_unsupported_dictation_reports_error():
    controller, _ = _controller(dictation_supported=False)
    assert controller.start_dictation() is False
    assert controller.capture.error


async def test_update_session_data_is_a_shallow_merge():
    controller, _ = _controller()
    controller.update_session_data(transcript="T")
    controller.update_session_data(clinician_notes="N")
    assert (controller.data.transcript, controller.data.clinician_notes) == ("T", "N")

    with pytest.raises(ValueError):
        controller.update_session_data(unknown="x")


async def test_summary_step_generation_and_blur():
    controller, _ = _controller()
    controller.update_session_data(transcript="Shoulder pain at night")
    await controller.advance()

    generated = await controller.generate_summary()
    assert generated.outcome is NoteOutcome.CREATED
    assert controller.data.summary == generated.summary

    edited = generated.summary.model_copy(update={"plan": "Ice and rest"})
    saved = await controller.save_summary_on_blur(edited)
    assert saved.version.version == 2

    first = controller.load_versions()[-1]
    controller.restore_version(first.id)
    assert controller.data.summary == first.summary()


async def test_full_workflow_to_completion():
    controller, email = _controller()
    controller.update_session_data(transcript="Shoulder pain lifting", clinician_notes="Painful arc 70-120")
    await controller.advance()
    await controller.generate_summary()
    await controller.advance()

    wall = controller.library.search("Wall Slides")[0]
    controller.add_exercise(wall.id)
    custom = controller.create_custom_exercise(ExerciseCreate(name="Doorway Stretch", body_area="shoulder"))
    controller.reorder_exercises(1, 0)
    await controller.advance()
    controller.update_exercise(1, DosageUpdate(frequency=Frequency.TWICE_DAILY, duration_seconds=10))

    await controller.advance()
    assert controller.step is WorkflowStep.FINALIZE
    assert controller.plan_id is not None

    rows = controller.finalizer.repository.list_exercises(controller.plan_id)
    assert [r.exercise_id for r in rows] == [custom.id, wall.id]
    assert rows[1].frequency is Frequency.TWICE_DAILY

    assert await controller.advance() is WorkflowStep.FINALIZE

    controller.add_recipient("alex@example.com")
    with pytest.raises(RecipientValidationError):
        controller.add_recipient("alex@example.com")

    preview = await controller.compose_email()
    assert "Dear Alex Kim" in preview.html
    assert "Painful arc" not in preview.html

    report = await controller.send_plan()
    assert report.sent_count == 1
    assert email.outbox[0].to == "alex@example.com"
    assert controller.finalizer.get_plan(controller.plan_id).status is PlanStatus.SENT

    completion = await controller.complete()
    assert completion.final_version_id is not None
    assert completion.plan_restamped is True
    assert controller.completed is True


async def test_reentering_finalize_reuses_plan():
    controller, _ = _controller()
    controller.update_session_data(transcript="Knee pain")
    await controller.advance()
    await controller.advance()
    controller.add_exercise(controller.suggested_exercises()[0].id)
    await controller.advance()
    await controller.advance()
    plan_id = controller.plan_id

    controller.retreat()
    await controller.advance()
    assert controller.plan_id == plan_id


def test_registry_reuses_controller():
    controller, _ = _controller()
    registry = WorkflowRegistry()
    opened = registry.open(controller.session, note_store=controller.notes)
    assert registry.open(controller.session) is opened
    registry.close(controller.session_id)
    assert registry.get(controller.session_id) is None


async def test_blur_through_controller_uses_working_summary():
    controller, _ = _controller()
    controller.update_session_data(transcript="Hip pain")
    await controller.advance()
    summary = SOAPSummary(subjective="S", objective="O", assessment="A", plan="P")
    result = await controller.save_summary_on_blur(summary)
    assert result.outcome is NoteOutcome.CREATED
    assert controller.data.summary == summary


async def _at_finalize(controller):
    controller.update_session_data(transcript="Knee pain on stairs")
    await controller.advance()
    await controller.advance()
    controller.add_exercise(controller.suggested_exercises()[0].id)
    await controller.advance()
    await controller.advance()
    assert controller.step is WorkflowStep.FINALIZE


async def test_session_data_transcript_is_locked_while_dictating():
    controller, _ = _controller()
    controller.start_dictation()
    controller.receive_fragment("Heard so far", final=True)

    with pytest.raises(TranscriptLockedError):
        controller.update_session_data(transcript="typed over")

    assert controller.data.transcript == "Heard so far "
    assert controller.capture.transcript == "Heard so far "

    controller.stop_dictation()
    controller.update_session_data(transcript="typed after stop")
    assert controller.capture.transcript == "typed after stop"


async def test_session_data_exercises_never_hold_repeats():
    controller, _ = _controller()
    controller.update_session_data(transcript="Shoulder pain")
    await controller.advance()
    await controller.advance()

    first, second = controller.suggested_exercises()[:2]
    controller.add_exercise(first.id)
    item = controller.data.selected_exercises[0].model_copy(update={"sets": 5})
    other = controller.data.selected_exercises[0].model_copy(update={"sets": 1})

    controller.update_session_data(selected_exercises=[item, other, item])
    ids = [p.exercise_id for p in controller.data.selected_exercises]
    assert ids == [first.id]
    assert controller.data.selected_exercises[0].sets == 5
    assert len(controller.builder) == 1

    controller.add_exercise(second.id)
    await controller.advance()
    await controller.advance()
    rows = controller.finalizer.repository.list_exercises(controller.plan_id)
    assert [r.exercise_id for r in rows] == [first.id, second.id]


async def test_finalize_operations_are_refused_before_finalize():
    controller, email = _controller()
    controller.update_session_data(transcript="Neck stiffness")

    with pytest.raises(WorkflowGateError):
        controller.add_recipient("pat@example.com")
    with pytest.raises(WorkflowGateError):
        await controller.prepare_plan()
    with pytest.raises(WorkflowGateError):
        await controller.send_plan()
    with pytest.raises(WorkflowGateError):
        await controller.complete()

    assert controller.plan_id is None
    assert controller.finalizer.repository.get_by_session(controller.session_id, "patient-7") is None
    assert email.outbox == []
    assert controller.sessions.get_session(controller.session_id).status.value == "in_progress"


async def test_step_specific_operations_are_refused_at_other_steps():
    controller, _ = _controller()
    exercise_id = controller.suggested_exercises()[0].id

    with pytest.raises(WorkflowGateError):
        controller.add_exercise(exercise_id)
    with pytest.raises(WorkflowGateError):
        await controller.generate_summary()
    with pytest.raises(WorkflowGateError):
        controller.update_session_data(summary=SOAPSummary(subjective="S"))

    controller.update_session_data(transcript="Shoulder pain")
    await controller.advance()
    with pytest.raises(WorkflowGateError):
        controller.edit_consultation(transcript="late edit")
    with pytest.raises(WorkflowGateError):
        controller.start_dictation()
    with pytest.raises(WorkflowGateError):
        controller.update_exercise(0, DosageUpdate(sets=2))
    assert controller.data.transcript == "Shoulder pain"


async def test_completed_session_refuses_changes_and_releases_state():
    controller, email = _controller()
    await _at_finalize(controller)
    controller.add_recipient("pat@example.com")

    await controller.complete()

    assert controller.completed is True
    assert controller.session_id not in controller.notes._editors
    assert (controller.session_id, "patient-7") not in controller.finalizer._plan_ids

    with pytest.raises(WorkflowGateError):
        await controller.send_plan()
    with pytest.raises(WorkflowGateError):
        await controller.complete()
    with pytest.raises(WorkflowGateError):
        controller.retreat()
    with pytest.raises(WorkflowGateError):
        controller.update_session_data(transcript="after completion")
    assert email.outbox == []
