from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional
from uuid import UUID, uuid4

from src.physio.domain.models.appointment import Appointment, AppointmentStatus
from src.physio.domain.models.clinical_session import ClinicalSession, SessionStatus
from src.physio.infra.db import inmemory as repos
from src.physio.infra.db.repositories import AppointmentRepository, SessionRepository
from src.physio.services.audit.service import audit_service

logger = logging.getLogger("workflow")


class SessionNotFoundError(KeyError):
    pass


class AppointmentNotFoundError(KeyError):
    pass


class SessionService:
    """Appointment and session lifecycle used by the workflow.

    Sessions are started from appointments: an existing session row for the
    appointment is reused, otherwise a new one is created for the
    appointment's patient and clinician. Either way it moves to IN_PROGRESS.
    """

    def __init__(
        self,
        *,
        sessions: Optional[SessionRepository] = None,
        appointments: Optional[AppointmentRepository] = None,
    ) -> None:
        self._sessions = sessions
        self._appointments = appointments

    @property
    def sessions(self) -> SessionRepository:
        return self._sessions or repos.session_repository

    @property
    def appointments(self) -> AppointmentRepository:
        return self._appointments or repos.appointment_repository

    def create_appointment(
        self,
        *,
        patient_id: str,
        clinician_name: str,
        appointment_date: date,
        patient_name: Optional[str] = None,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
        appointment_type: Optional[str] = None,
        condition: Optional[str] = None,
    ) -> Appointment:
        appointment = Appointment(
            id=uuid4(),
            created_at=datetime.utcnow(),
            patient_id=patient_id,
            patient_name=patient_name,
            clinician_name=clinician_name,
            appointment_date=appointment_date,
            start_time=start_time,
            end_time=end_time,
            appointment_type=appointment_type,
            condition=condition,
        )
        self.appointments.save(appointment)
        audit_service.log_event(
            action="create_appointment",
            resource_type="appointment",
            resource_id=str(appointment.id),
        )
        return appointment

    def get_appointment(self, appointment_id: UUID) -> Appointment:
        appointment = self.appointments.get(appointment_id)
        if appointment is None:
            raise AppointmentNotFoundError(str(appointment_id))
        return appointment

    def get_session(self, session_id: UUID) -> ClinicalSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(str(session_id))
        return session

    def start_from_appointment(self, appointment_id: UUID) -> ClinicalSession:
        appointment = self.get_appointment(appointment_id)
        now = datetime.utcnow()

        session = self.sessions.get_by_appointment(appointment_id)
        if session is None:
            session = ClinicalSession(
                id=uuid4(),
                created_at=now,
                updated_at=now,
                patient_id=appointment.patient_id,
                appointment_id=appointment.id,
                clinician_name=appointment.clinician_name,
                session_date=appointment.appointment_date,
            )
            logger.info("Created session %s for appointment %s", session.id, appointment_id)
        else:
            logger.info("Reusing session %s for appointment %s", session.id, appointment_id)

        if session.status is not SessionStatus.COMPLETED:
            session.status = SessionStatus.IN_PROGRESS
        session.updated_at = now
        self.sessions.save(session)

        audit_service.log_event(
            action="start_session",
            resource_type="session",
            resource_id=str(session.id),
            extra={"appointment_id": str(appointment_id)},
        )
        return session

    def save_consultation(self, session_id: UUID, transcript: str, clinician_notes: str) -> ClinicalSession:
        """Persist the consultation text captured before leaving the first step."""

        session = self.get_session(session_id)
        session.transcript = transcript
        session.clinician_notes = clinician_notes
        session.updated_at = datetime.utcnow()
        self.sessions.save(session)
        return session

    def mark_session_completed(self, session_id: UUID) -> ClinicalSession:
        session = self.get_session(session_id)
        session.status = SessionStatus.COMPLETED
        session.updated_at = datetime.utcnow()
        self.sessions.save(session)
        return session

    def mark_appointment_completed(self, appointment_id: UUID) -> Appointment:
        appointment = self.get_appointment(appointment_id)
        appointment.status = AppointmentStatus.COMPLETED
        self.appointments.save(appointment)
        return appointment


session_service = SessionService()
