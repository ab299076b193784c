from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Date, DateTime, String, Text, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class AppointmentORM(Base):
    __tablename__ = "appointments"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    patient_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    patient_name: Mapped[str | None] = mapped_column(String, nullable=True)
    clinician_name: Mapped[str] = mapped_column(String, nullable=False)
    appointment_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    end_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    appointment_type: Mapped[str | None] = mapped_column(String, nullable=True)
    condition: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False)

    @classmethod
    def from_domain(cls, appointment: "Appointment") -> "AppointmentORM":  # type: ignore[name-defined]
        return cls(
            id=appointment.id,
            created_at=appointment.created_at,
            patient_id=appointment.patient_id,
            patient_name=appointment.patient_name,
            clinician_name=appointment.clinician_name,
            appointment_date=appointment.appointment_date,
            start_time=appointment.start_time,
            end_time=appointment.end_time,
            appointment_type=appointment.appointment_type,
            condition=appointment.condition,
            status=appointment.status.value,
        )

    def to_domain(self) -> "Appointment":  # type: ignore[name-defined]
        from src.physio.domain.models.appointment import Appointment, AppointmentStatus

        return Appointment(
            id=self.id,
            created_at=self.created_at,
            patient_id=self.patient_id,
            patient_name=self.patient_name,
            clinician_name=self.clinician_name,
            appointment_date=self.appointment_date,
            start_time=self.start_time,
            end_time=self.end_time,
            appointment_type=self.appointment_type,
            condition=self.condition,
            status=AppointmentStatus(self.status),
        )


class SessionORM(Base):
    __tablename__ = "sessions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    patient_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    appointment_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    status: Mapped[str] = mapped_column(String, nullable=False)
    clinician_name: Mapped[str] = mapped_column(String, nullable=False)
    session_date: Mapped[date] = mapped_column(Date, nullable=False)
    transcript: Mapped[str | None] = mapped_column(Text, nullable=True)
    clinician_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    @classmethod
    def from_domain(cls, session: "ClinicalSession") -> "SessionORM":  # type: ignore[name-defined]
        return cls(
            id=session.id,
            created_at=session.created_at,
            updated_at=session.updated_at,
            patient_id=session.patient_id,
            appointment_id=session.appointment_id,
            status=session.status.value,
            clinician_name=session.clinician_name,
            session_date=session.session_date,
            transcript=session.transcript,
            clinician_notes=session.clinician_notes,
        )

    def to_domain(self) -> "ClinicalSession":  # type: ignore[name-defined]
        from src.physio.domain.models.clinical_session import ClinicalSession, SessionStatus

        return ClinicalSession(
            id=self.id,
            created_at=self.created_at,
            updated_at=self.updated_at,
            patient_id=self.patient_id,
            appointment_id=self.appointment_id,
            status=SessionStatus(self.status),
            clinician_name=self.clinician_name,
            session_date=self.session_date,
            transcript=self.transcript,
            clinician_notes=self.clinician_notes,
        )
