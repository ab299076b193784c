from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from src.physio.api.v1.deps import get_workflow
from src.physio.api.v1.errors import HANDLED_ERRORS, to_http_exception
from src.physio.domain.models.exercise import DosageUpdate, Exercise, ExerciseCreate, ExercisePrescription
from src.physio.security import get_api_key
from src.physio.services.exercises.library import exercise_library
from src.physio.services.workflow.controller import SessionWorkflowController

router = APIRouter(
    tags=["exercises"],
    dependencies=[Depends(get_api_key)],
)


class AddExerciseRequest(BaseModel):
    exercise_id: UUID


class ReorderRequest(BaseModel):
    from_index: int
    to_index: int


class SelectionResponse(BaseModel):
    changed: bool
    selected_exercises: List[ExercisePrescription]


def _selection(controller: SessionWorkflowController, changed: bool) -> SelectionResponse:
    return SelectionResponse(changed=changed, selected_exercises=controller.data.selected_exercises)


@router.get("/exercises/", response_model=List[Exercise])
async def search_exercises(
    q: str = "",
    body_area: str = "all",
    goal: str = "all",
    difficulty: str = "all",
) -> List[Exercise]:
    return exercise_library.search(q, body_area=body_area, goal=goal, difficulty=difficulty)


@router.post("/exercises/", response_model=Exercise, status_code=status.HTTP_201_CREATED)
async def create_exercise(payload: ExerciseCreate) -> Exercise:
    try:
        return exercise_library.create(payload)
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc


@router.get("/sessions/{session_id}/exercises/suggestions", response_model=List[Exercise])
async def suggested_exercises(
    controller: SessionWorkflowController = Depends(get_workflow),
) -> List[Exercise]:
    return controller.suggested_exercises()


@router.get("/sessions/{session_id}/exercises", response_model=List[ExercisePrescription])
async def selected_exercises(
    controller: SessionWorkflowController = Depends(get_workflow),
) -> List[ExercisePrescription]:
    return controller.data.selected_exercises


@router.post("/sessions/{session_id}/exercises", response_model=SelectionResponse)
async def add_exercise(
    payload: AddExerciseRequest,
    controller: SessionWorkflowController = Depends(get_workflow),
) -> SelectionResponse:
    try:
        changed = controller.add_exercise(payload.exercise_id)
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return _selection(controller, changed)


@router.post("/sessions/{session_id}/exercises/custom", response_model=SelectionResponse, status_code=status.HTTP_201_CREATED)
async def add_custom_exercise(
    payload: ExerciseCreate,
    controller: SessionWorkflowController = Depends(get_workflow),
) -> SelectionResponse:
    try:
        controller.create_custom_exercise(payload)
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return _selection(controller, True)


@router.delete("/sessions/{session_id}/exercises/{exercise_id}", response_model=SelectionResponse)
async def remove_exercise(
    exercise_id: UUID,
    controller: SessionWorkflowController = Depends(get_workflow),
) -> SelectionResponse:
    try:
        changed = controller.remove_exercise(exercise_id)
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return _selection(controller, changed)


@router.post("/sessions/{session_id}/exercises/reorder", response_model=SelectionResponse)
async def reorder_exercises(
    payload: ReorderRequest,
    controller: SessionWorkflowController = Depends(get_workflow),
) -> SelectionResponse:
    try:
        changed = controller.reorder_exercises(payload.from_index, payload.to_index)
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return _selection(controller, changed)


@router.patch("/sessions/{session_id}/exercises/{index}", response_model=ExercisePrescription)
async def update_exercise(
    index: int,
    payload: DosageUpdate,
    controller: SessionWorkflowController = Depends(get_workflow),
) -> ExercisePrescription:
    try:
        return controller.update_exercise(index, payload)
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
