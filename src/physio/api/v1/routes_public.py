from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from src.physio.api.v1.errors import to_http_exception
from src.physio.services.plans.service import PlanNotFoundError, treatment_plan_finalizer

# Read-only plan access for patients; addressed by plan id, no API key.
router = APIRouter(prefix="/public", tags=["public"])
page_router = APIRouter(tags=["public"])


class PublicExercise(BaseModel):
    name: str
    dosage: str
    frequency: str
    notes: Optional[str] = None
    instructions: Optional[str] = None


class PublicPlanResponse(BaseModel):
    treatment_plan_id: UUID
    patient_name: Optional[str] = None
    subjective: str
    assessment: str
    plan: str
    narrative: Optional[str] = None
    exercises: List[PublicExercise]


@router.get("/plans/{plan_id}", response_model=PublicPlanResponse)
async def get_public_plan(plan_id: UUID) -> PublicPlanResponse:
    try:
        view = treatment_plan_finalizer.public_view(plan_id)
    except PlanNotFoundError as exc:
        raise to_http_exception(exc) from exc
    return PublicPlanResponse(
        treatment_plan_id=plan_id,
        patient_name=view.patient_name,
        subjective=view.subjective,
        assessment=view.assessment,
        plan=view.plan,
        narrative=view.narrative,
        exercises=[
            PublicExercise(
                name=line.name,
                dosage=line.dosage(),
                frequency=line.frequency_label,
                notes=line.notes,
                instructions=line.instructions or line.description,
            )
            for line in view.exercises
        ],
    )


@page_router.get("/plan/{plan_id}", response_class=HTMLResponse)
async def public_plan_page(plan_id: UUID) -> HTMLResponse:
    try:
        html = treatment_plan_finalizer.render_public_page(plan_id)
    except PlanNotFoundError as exc:
        raise to_http_exception(exc) from exc
    return HTMLResponse(content=html)
