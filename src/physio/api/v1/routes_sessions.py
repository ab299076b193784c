from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from src.physio.api.v1.deps import get_workflow, open_workflow
from src.physio.api.v1.errors import HANDLED_ERRORS, to_http_exception
from src.physio.domain.models.clinical_session import ClinicalSession
from src.physio.domain.models.exercise import ExercisePrescription
from src.physio.domain.models.note_version import SOAPSummary
from src.physio.domain.models.workflow import SessionData, WorkflowStep
from src.physio.security import get_api_key
from src.physio.services.sessions.service import session_service
from src.physio.services.workflow.controller import SessionWorkflowController

router = APIRouter(
    prefix="/sessions",
    tags=["sessions"],
    dependencies=[Depends(get_api_key)],
)


class StartSessionRequest(BaseModel):
    appointment_id: UUID
    dictation_supported: bool = True


class WorkflowStateResponse(BaseModel):
    session_id: UUID
    step: WorkflowStep
    step_index: int
    can_advance: bool
    gate_reason: Optional[str] = None
    data: SessionData
    capturing: bool
    interim_transcript: str = ""
    dictation_error: Optional[str] = None
    treatment_plan_id: Optional[UUID] = None
    recipients: List[str] = []
    completed: bool = False


class SessionDataUpdateRequest(BaseModel):
    transcript: Optional[str] = None
    clinician_notes: Optional[str] = None
    summary: Optional[SOAPSummary] = None
    selected_exercises: Optional[List[ExercisePrescription]] = None


class TranscriptFragmentRequest(BaseModel):
    text: str
    final: bool = True


class TranscriptErrorRequest(BaseModel):
    message: str


class ConsultationUpdateRequest(BaseModel):
    transcript: Optional[str] = None
    clinician_notes: Optional[str] = None


def workflow_state(controller: SessionWorkflowController) -> WorkflowStateResponse:
    return WorkflowStateResponse(
        session_id=controller.session_id,
        step=controller.step,
        step_index=controller.step_index,
        can_advance=controller.can_advance(),
        gate_reason=controller.gate_reason(),
        data=controller.data,
        capturing=controller.capture.capturing,
        interim_transcript=controller.capture.interim,
        dictation_error=controller.capture.error,
        treatment_plan_id=controller.plan_id,
        recipients=controller.recipients.as_list(),
        completed=controller.completed,
    )


@router.post("/", response_model=WorkflowStateResponse, status_code=status.HTTP_201_CREATED)
async def start_session(payload: StartSessionRequest) -> WorkflowStateResponse:
    try:
        session = session_service.start_from_appointment(payload.appointment_id)
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
    controller = open_workflow(session.id, dictation_supported=payload.dictation_supported)
    return workflow_state(controller)


@router.get("/{session_id}", response_model=ClinicalSession)
async def get_session(session_id: UUID) -> ClinicalSession:
    try:
        return session_service.get_session(session_id)
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc


@router.get("/{session_id}/workflow", response_model=WorkflowStateResponse)
async def get_workflow_state(
    controller: SessionWorkflowController = Depends(get_workflow),
) -> WorkflowStateResponse:
    return workflow_state(controller)


@router.post("/{session_id}/workflow/advance", response_model=WorkflowStateResponse)
async def advance_workflow(
    controller: SessionWorkflowController = Depends(get_workflow),
) -> WorkflowStateResponse:
    try:
        await controller.advance()
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return workflow_state(controller)


@router.post("/{session_id}/workflow/retreat", response_model=WorkflowStateResponse)
async def retreat_workflow(
    controller: SessionWorkflowController = Depends(get_workflow),
) -> WorkflowStateResponse:
    try:
        controller.retreat()
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return workflow_state(controller)


@router.patch("/{session_id}/workflow/data", response_model=WorkflowStateResponse)
async def update_session_data(
    payload: SessionDataUpdateRequest,
    controller: SessionWorkflowController = Depends(get_workflow),
) -> WorkflowStateResponse:
    partial = {name: getattr(payload, name) for name in payload.model_fields_set}
    partial = {name: value for name, value in partial.items() if value is not None}
    try:
        controller.update_session_data(**partial)
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return workflow_state(controller)


@router.post("/{session_id}/transcript/start", response_model=WorkflowStateResponse)
async def start_dictation(
    controller: SessionWorkflowController = Depends(get_workflow),
) -> WorkflowStateResponse:
    try:
        controller.start_dictation()
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return workflow_state(controller)


@router.post("/{session_id}/transcript/stop", response_model=WorkflowStateResponse)
async def stop_dictation(
    controller: SessionWorkflowController = Depends(get_workflow),
) -> WorkflowStateResponse:
    controller.stop_dictation()
    return workflow_state(controller)


@router.post("/{session_id}/transcript/fragments", response_model=WorkflowStateResponse)
async def receive_fragment(
    payload: TranscriptFragmentRequest,
    controller: SessionWorkflowController = Depends(get_workflow),
) -> WorkflowStateResponse:
    controller.receive_fragment(payload.text, final=payload.final)
    return workflow_state(controller)


@router.post("/{session_id}/transcript/error", response_model=WorkflowStateResponse)
async def dictation_error(
    payload: TranscriptErrorRequest,
    controller: SessionWorkflowController = Depends(get_workflow),
) -> WorkflowStateResponse:
    controller.dictation_failed(payload.message)
    return workflow_state(controller)


@router.put("/{session_id}/transcript", response_model=WorkflowStateResponse)
async def edit_consultation(
    payload: ConsultationUpdateRequest,
    controller: SessionWorkflowController = Depends(get_workflow),
) -> WorkflowStateResponse:
    try:
        controller.edit_consultation(transcript=payload.transcript, clinician_notes=payload.clinician_notes)
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return workflow_state(controller)
