from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class EditType(str, Enum):
    """Provenance tag recorded on every SOAP note snapshot."""

    INITIAL_AI = "initial_ai"
    AI_GENERATED = "ai_generated"
    AI_REVISION = "ai_revision"
    BLUR_MANUAL = "blur_manual"
    FINAL = "final"


class SOAPSummary(BaseModel):
    """The four-field clinical summary edited during the Summary step."""

    subjective: str = ""
    objective: str = ""
    assessment: str = ""
    plan: str = ""

    def is_empty(self) -> bool:
        return not (self.subjective or self.objective or self.assessment or self.plan)

    def is_complete(self) -> bool:
        return bool(self.subjective and self.objective and self.assessment and self.plan)


class NoteVersion(BaseModel):
    """One immutable snapshot of a session's SOAP summary.

    Versions are numbered per session starting at 1. The highest version is
    the current note; after finalization exactly one row per session is
    non-temporary with edit_type FINAL.
    """

    id: UUID
    session_id: UUID
    version: int
    edit_type: EditType
    temporary: bool = True
    created_at: datetime
    deleted_at: Optional[datetime] = None

    subjective: str = ""
    objective: str = ""
    assessment: str = ""
    plan: str = ""

    # Instruction that produced an AI revision, if any.
    prompt: Optional[str] = None
    # Patient-facing narrative, only populated at finalization.
    full_summary: Optional[str] = None

    def summary(self) -> SOAPSummary:
        return SOAPSummary(
            subjective=self.subjective,
            objective=self.objective,
            assessment=self.assessment,
            plan=self.plan,
        )
