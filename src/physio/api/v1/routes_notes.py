from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from src.physio.api.v1.deps import get_workflow
from src.physio.api.v1.errors import HANDLED_ERRORS, to_http_exception
from src.physio.domain.models.note_version import NoteVersion, SOAPSummary
from src.physio.security import get_api_key
from src.physio.services.notes.service import NoteOutcome, NoteResult
from src.physio.services.workflow.controller import SessionWorkflowController

router = APIRouter(
    prefix="/sessions/{session_id}/notes",
    tags=["notes"],
    dependencies=[Depends(get_api_key)],
)


class GenerateRequest(BaseModel):
    instruction: Optional[str] = None


class NoteResultResponse(BaseModel):
    outcome: NoteOutcome
    summary: SOAPSummary
    version: Optional[NoteVersion] = None


class NoteVersionsResponse(BaseModel):
    versions: List[NoteVersion]
    summary: SOAPSummary
    active_version_id: Optional[UUID] = None


def _result_response(result: NoteResult) -> NoteResultResponse:
    if result.outcome is NoteOutcome.DROPPED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Another summary operation is in progress for this session.",
        )
    return NoteResultResponse(outcome=result.outcome, summary=result.summary, version=result.version)


@router.get("/versions", response_model=NoteVersionsResponse)
async def list_versions(
    controller: SessionWorkflowController = Depends(get_workflow),
) -> NoteVersionsResponse:
    versions = controller.load_versions()
    editor = controller.notes.editor(controller.session_id)
    return NoteVersionsResponse(
        versions=versions,
        summary=editor.summary,
        active_version_id=editor.active_version_id,
    )


@router.post("/generate", response_model=NoteResultResponse, status_code=status.HTTP_201_CREATED)
async def generate_summary(
    payload: GenerateRequest,
    controller: SessionWorkflowController = Depends(get_workflow),
) -> NoteResultResponse:
    try:
        result = await controller.generate_summary(payload.instruction)
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return _result_response(result)


@router.post("/blur", response_model=NoteResultResponse)
async def save_on_blur(
    payload: SOAPSummary,
    controller: SessionWorkflowController = Depends(get_workflow),
) -> NoteResultResponse:
    try:
        result = await controller.save_summary_on_blur(payload)
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return _result_response(result)


@router.post("/versions/{version_id}/restore", response_model=NoteVersion)
async def restore_version(
    version_id: UUID,
    controller: SessionWorkflowController = Depends(get_workflow),
) -> NoteVersion:
    try:
        return controller.restore_version(version_id)
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
