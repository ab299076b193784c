from __future__ import annotations

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from src.physio.api.v1.errors import to_http_exception
from src.physio.domain.models.appointment import Appointment
from src.physio.security import get_api_key
from src.physio.services.sessions.service import AppointmentNotFoundError, session_service

router = APIRouter(
    prefix="/appointments",
    tags=["appointments"],
    dependencies=[Depends(get_api_key)],
)


class AppointmentCreateRequest(BaseModel):
    patient_id: str
    clinician_name: str
    appointment_date: date
    patient_name: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    appointment_type: Optional[str] = None
    condition: Optional[str] = None


@router.post("/", response_model=Appointment, status_code=status.HTTP_201_CREATED)
async def create_appointment(payload: AppointmentCreateRequest) -> Appointment:
    return session_service.create_appointment(**payload.model_dump())


@router.get("/{appointment_id}", response_model=Appointment)
async def get_appointment(appointment_id: UUID) -> Appointment:
    try:
        return session_service.get_appointment(appointment_id)
    except AppointmentNotFoundError as exc:
        raise to_http_exception(exc) from exc
