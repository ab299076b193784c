from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Appointment(BaseModel):
    """A booked slot on the clinic calendar.

    Only the fields the session workflow reads or mutates are modeled here;
    scheduling-grid concerns (business hours, drag/drop) live elsewhere.
    """

    id: UUID
    created_at: datetime
    patient_id: str
    patient_name: Optional[str] = None
    clinician_name: str
    appointment_date: date
    start_time: Optional[str] = None  # "HH:MM" in clinic local time
    end_time: Optional[str] = None
    appointment_type: Optional[str] = None
    condition: Optional[str] = None
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
