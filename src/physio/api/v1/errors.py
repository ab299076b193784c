from __future__ import annotations

from fastapi import HTTPException, status

from src.physio.services.exercises.library import ExerciseValidationError
from src.physio.services.notes.service import NoteStorageError, NoteVersionNotFoundError
from src.physio.services.plans.service import (
    CompletionError,
    DeliveryFailedError,
    NoRecipientsError,
    PlanNotFoundError,
    RecipientValidationError,
)
from src.physio.services.sessions.service import AppointmentNotFoundError, SessionNotFoundError
from src.physio.services.summarization.backends import (
    SummarizationError,
    SummarizationQuotaExceeded,
    SummarizationRateLimited,
)
from src.physio.services.transcript.capture import TranscriptLockedError
from src.physio.services.workflow.controller import WorkflowGateError

# Order matters: subclasses before their bases.
_STATUS_BY_ERROR = (
    (SessionNotFoundError, status.HTTP_404_NOT_FOUND, "Session not found"),
    (AppointmentNotFoundError, status.HTTP_404_NOT_FOUND, "Appointment not found"),
    (PlanNotFoundError, status.HTTP_404_NOT_FOUND, "Treatment plan not found"),
    (NoteVersionNotFoundError, status.HTTP_404_NOT_FOUND, "Note version not found"),
    (WorkflowGateError, status.HTTP_400_BAD_REQUEST, None),
    (TranscriptLockedError, status.HTTP_409_CONFLICT, None),
    (ExerciseValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY, None),
    (RecipientValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY, None),
    (NoRecipientsError, status.HTTP_400_BAD_REQUEST, None),
    (SummarizationRateLimited, status.HTTP_429_TOO_MANY_REQUESTS, None),
    (SummarizationQuotaExceeded, status.HTTP_402_PAYMENT_REQUIRED, None),
    (SummarizationError, status.HTTP_502_BAD_GATEWAY, None),
    (NoteStorageError, status.HTTP_500_INTERNAL_SERVER_ERROR, None),
    (DeliveryFailedError, status.HTTP_502_BAD_GATEWAY, None),
    (CompletionError, status.HTTP_500_INTERNAL_SERVER_ERROR, None),
)

HANDLED_ERRORS = tuple(error for error, _, _ in _STATUS_BY_ERROR)


def to_http_exception(exc: Exception) -> HTTPException:
    """Translate a domain error raised by a service into an HTTPException."""

    for error_type, status_code, detail in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            if detail is None:
                detail = str(exc)
            return HTTPException(status_code=status_code, detail=detail)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal error")
