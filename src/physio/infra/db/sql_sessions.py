from __future__ import annotations

from typing import Optional
from uuid import UUID

from src.physio.domain.models.appointment import Appointment
from src.physio.domain.models.clinical_session import ClinicalSession
from src.physio.infra.db.models import AppointmentORM, SessionORM
from src.physio.infra.db.repositories import AppointmentRepository, SessionRepository
from src.physio.infra.db.session import SessionFactory


class SqlAppointmentRepository(AppointmentRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, appointment_id: UUID) -> Optional[Appointment]:
        session = self._session_factory()
        try:
            orm = session.get(AppointmentORM, appointment_id)
            return orm.to_domain() if orm is not None else None
        finally:
            session.close()

    def save(self, appointment: Appointment) -> None:
        session = self._session_factory()
        try:
            existing = session.get(AppointmentORM, appointment.id)
            if existing is None:
                session.add(AppointmentORM.from_domain(appointment))
            else:
                existing.patient_id = appointment.patient_id
                existing.patient_name = appointment.patient_name
                existing.clinician_name = appointment.clinician_name
                existing.appointment_date = appointment.appointment_date
                existing.start_time = appointment.start_time
                existing.end_time = appointment.end_time
                existing.appointment_type = appointment.appointment_type
                existing.condition = appointment.condition
                existing.status = appointment.status.value
            session.commit()
        finally:
            session.close()


class SqlSessionRepository(SessionRepository):
    """SQL-backed store for clinical sessions."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, session_id: UUID) -> Optional[ClinicalSession]:
        session = self._session_factory()
        try:
            orm = session.get(SessionORM, session_id)
            return orm.to_domain() if orm is not None else None
        finally:
            session.close()

    def get_by_appointment(self, appointment_id: UUID) -> Optional[ClinicalSession]:
        session = self._session_factory()
        try:
            orm = (
                session.query(SessionORM)
                .filter(SessionORM.appointment_id == appointment_id)
                .order_by(SessionORM.created_at.asc())
                .first()
            )
            return orm.to_domain() if orm is not None else None
        finally:
            session.close()

    def save(self, clinical_session: ClinicalSession) -> None:
        session = self._session_factory()
        try:
            existing = session.get(SessionORM, clinical_session.id)
            if existing is None:
                session.add(SessionORM.from_domain(clinical_session))
            else:
                existing.updated_at = clinical_session.updated_at
                existing.patient_id = clinical_session.patient_id
                existing.appointment_id = clinical_session.appointment_id
                existing.status = clinical_session.status.value
                existing.clinician_name = clinical_session.clinician_name
                existing.session_date = clinical_session.session_date
                existing.transcript = clinical_session.transcript
                existing.clinician_notes = clinical_session.clinician_notes
            session.commit()
        finally:
            session.close()
