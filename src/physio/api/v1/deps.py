from __future__ import annotations

from uuid import UUID

from fastapi import HTTPException, status

from src.physio.api.v1.errors import to_http_exception
from src.physio.domain.models.clinical_session import SessionStatus
from src.physio.services.sessions.service import SessionNotFoundError, session_service
from src.physio.services.workflow.controller import SessionWorkflowController, workflow_registry


def open_workflow(session_id: UUID, *, dictation_supported: bool = True) -> SessionWorkflowController:
    """Return the live controller for a session, opening one from storage if needed.

    Completed sessions have left the workflow and are not reopened.
    """

    controller = workflow_registry.get(session_id)
    if controller is not None:
        return controller

    try:
        session = session_service.get_session(session_id)
    except SessionNotFoundError as exc:
        raise to_http_exception(exc) from exc

    if session.status is SessionStatus.COMPLETED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This session has already been completed.",
        )

    patient_name = None
    condition = None
    if session.appointment_id is not None:
        appointment = session_service.appointments.get(session.appointment_id)
        if appointment is not None:
            patient_name = appointment.patient_name
            condition = appointment.condition

    return workflow_registry.open(
        session,
        patient_name=patient_name,
        condition=condition,
        dictation_supported=dictation_supported,
    )


async def get_workflow(session_id: UUID) -> SessionWorkflowController:
    return open_workflow(session_id)
