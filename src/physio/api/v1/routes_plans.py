from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from src.physio.api.v1.deps import get_workflow
from src.physio.api.v1.errors import HANDLED_ERRORS, to_http_exception
from src.physio.security import get_api_key
from src.physio.services.email.backends import DeliveryResult
from src.physio.services.plans.service import DeliveryOutcome, plan_url
from src.physio.services.workflow.controller import SessionWorkflowController, workflow_registry

router = APIRouter(
    prefix="/sessions/{session_id}",
    tags=["plans"],
    dependencies=[Depends(get_api_key)],
)


class PlanResponse(BaseModel):
    treatment_plan_id: UUID
    public_url: str
    exercise_count: int


class RecipientRequest(BaseModel):
    email: str


class RecipientsResponse(BaseModel):
    recipients: List[str]


class EmailRequest(BaseModel):
    subject: Optional[str] = None
    body: Optional[str] = None


class EmailPreviewResponse(BaseModel):
    recipients: List[str]
    subject: str
    html: str


class DeliveryResultResponse(BaseModel):
    recipient: str
    success: bool
    error: Optional[str] = None


class SendResponse(BaseModel):
    treatment_plan_id: UUID
    outcome: DeliveryOutcome
    sent: int
    failed: int
    results: List[DeliveryResultResponse]


class CompleteResponse(BaseModel):
    session_id: UUID
    final_version_id: Optional[UUID] = None
    narrative_generated: bool
    narrative_error: Optional[str] = None
    plan_restamped: bool


def _result(result: DeliveryResult) -> DeliveryResultResponse:
    return DeliveryResultResponse(recipient=result.recipient, success=result.success, error=result.error)


@router.post("/plan", response_model=PlanResponse)
async def prepare_plan(
    controller: SessionWorkflowController = Depends(get_workflow),
) -> PlanResponse:
    try:
        plan_id = await controller.prepare_plan()
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return PlanResponse(
        treatment_plan_id=plan_id,
        public_url=plan_url(plan_id),
        exercise_count=len(controller.data.selected_exercises),
    )


@router.post("/plan/recipients", response_model=RecipientsResponse, status_code=status.HTTP_201_CREATED)
async def add_recipient(
    payload: RecipientRequest,
    controller: SessionWorkflowController = Depends(get_workflow),
) -> RecipientsResponse:
    try:
        controller.add_recipient(payload.email)
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return RecipientsResponse(recipients=controller.recipients.as_list())


@router.delete("/plan/recipients/{email}", response_model=RecipientsResponse)
async def remove_recipient(
    email: str,
    controller: SessionWorkflowController = Depends(get_workflow),
) -> RecipientsResponse:
    try:
        controller.remove_recipient(email)
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return RecipientsResponse(recipients=controller.recipients.as_list())


@router.post("/plan/email-preview", response_model=EmailPreviewResponse)
async def preview_email(
    payload: EmailRequest,
    controller: SessionWorkflowController = Depends(get_workflow),
) -> EmailPreviewResponse:
    try:
        email = await controller.compose_email(payload.subject, payload.body)
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return EmailPreviewResponse(recipients=email.recipients, subject=email.subject, html=email.html)


@router.post("/plan/send", response_model=SendResponse)
async def send_plan(
    payload: EmailRequest,
    controller: SessionWorkflowController = Depends(get_workflow),
) -> SendResponse:
    try:
        report = await controller.send_plan(payload.subject, payload.body)
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return SendResponse(
        treatment_plan_id=report.plan_id,
        outcome=report.outcome,
        sent=report.sent_count,
        failed=report.failed_count,
        results=[_result(r) for r in report.results],
    )


@router.post("/complete", response_model=CompleteResponse)
async def complete_session(
    controller: SessionWorkflowController = Depends(get_workflow),
) -> CompleteResponse:
    try:
        report = await controller.complete()
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
    workflow_registry.close(controller.session_id)
    return CompleteResponse(
        session_id=report.session_id,
        final_version_id=report.final_version_id,
        narrative_generated=report.narrative_generated,
        narrative_error=report.narrative_error,
        plan_restamped=report.plan_restamped,
    )
