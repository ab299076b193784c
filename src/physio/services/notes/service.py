from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID, uuid4

from src.physio.domain.models.note_version import EditType, NoteVersion, SOAPSummary
from src.physio.infra.db import inmemory as repos
from src.physio.infra.db.repositories import NoteVersionRepository
from src.physio.services.audit.service import audit_service
from src.physio.services.summarization.backends import (
    FreshGeneration,
    Revision,
    SummarizationBackend,
    SummarizationError,
    SummaryRequest,
    get_summarization_backend_from_env,
)

logger = logging.getLogger("notes")


class NoteStorageError(RuntimeError):
    """Persisting a note version failed; the in-memory edit is kept."""

    retryable = True


class NoteVersionNotFoundError(KeyError):
    pass


class NoteActivity(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    SAVING = "saving"


class NoteOutcome(str, Enum):
    CREATED = "created"
    UNCHANGED = "unchanged"
    DROPPED = "dropped"


@dataclass
class NoteEditorState:
    """Per-session editor state kept alongside the persisted versions.

    ``last_saved`` is the snapshot the next blur is compared against; it is
    None until the first version is created or restored.
    """

    activity: NoteActivity = NoteActivity.IDLE
    summary: SOAPSummary = field(default_factory=SOAPSummary)
    last_saved: Optional[SOAPSummary] = None
    active_version_id: Optional[UUID] = None


@dataclass
class NoteResult:
    outcome: NoteOutcome
    summary: SOAPSummary
    version: Optional[NoteVersion] = None


class NoteVersionStore:
    """Append-only versioning of SOAP summaries per session.

    Every AI generation and every changed blur inserts a new temporary
    version numbered max+1; the highest version is the current note. Only one
    generation or save may be in flight per session: a second request while
    the session is busy is dropped, not queued.
    """

    def __init__(
        self,
        *,
        repository: Optional[NoteVersionRepository] = None,
        backend: Optional[SummarizationBackend] = None,
    ) -> None:
        self._repository = repository
        self._backend: SummarizationBackend = backend or get_summarization_backend_from_env()
        self._editors: Dict[UUID, NoteEditorState] = {}

    @property
    def repository(self) -> NoteVersionRepository:
        return self._repository or repos.note_version_repository

    @property
    def backend(self) -> SummarizationBackend:
        return self._backend

    def editor(self, session_id: UUID) -> NoteEditorState:
        state = self._editors.get(session_id)
        if state is None:
            state = NoteEditorState()
            self._editors[session_id] = state
        return state

    def release(self, session_id: UUID) -> None:
        """Drop the editor state of a session that has left the workflow."""

        self._editors.pop(session_id, None)

    def load_versions(self, session_id: UUID) -> List[NoteVersion]:
        """Return the session's versions, newest first.

        With no versions the working summary is reset to four empty fields.
        On a fresh editor the latest version becomes the working summary.
        """

        versions = self.repository.list_for_session(session_id)
        state = self.editor(session_id)
        if not versions:
            state.summary = SOAPSummary()
            state.last_saved = None
            state.active_version_id = None
        elif state.last_saved is None:
            latest = versions[0]
            state.summary = latest.summary()
            state.last_saved = latest.summary()
            state.active_version_id = latest.id
        return versions

    def update_working_summary(self, session_id: UUID, summary: SOAPSummary) -> SOAPSummary:
        """Record an unsaved keystroke-level edit; no version is created."""

        state = self.editor(session_id)
        state.summary = summary.model_copy()
        return state.summary

    async def generate(
        self,
        session_id: UUID,
        transcript: str,
        clinician_notes: str,
        current_summary: Optional[SOAPSummary] = None,
        instruction: Optional[str] = None,
    ) -> NoteResult:
        state = self.editor(session_id)
        if state.activity is not NoteActivity.IDLE:
            logger.info("Dropping generate for session %s: editor is %s", session_id, state.activity.value)
            return NoteResult(outcome=NoteOutcome.DROPPED, summary=state.summary)

        instruction = (instruction or "").strip() or None
        request: SummaryRequest
        if instruction is not None:
            request = Revision(
                transcript=transcript,
                clinician_notes=clinician_notes,
                current_summary=current_summary or state.summary,
                instruction=instruction,
            )
            edit_type = EditType.AI_REVISION
        else:
            request = FreshGeneration(transcript=transcript, clinician_notes=clinician_notes)
            edit_type = EditType.AI_GENERATED

        state.activity = NoteActivity.GENERATING
        try:
            try:
                summary = await self._backend.generate_soap(request)
            except SummarizationError:
                raise
            except Exception as exc:
                logger.exception("Summarization backend failed for session %s", session_id)
                raise SummarizationError("Failed to generate summary. Please try again.") from exc

            version = self._insert(session_id, summary, edit_type=edit_type, prompt=instruction)
        finally:
            state.activity = NoteActivity.IDLE

        state.summary = summary
        state.last_saved = summary.model_copy()
        state.active_version_id = version.id
        audit_service.log_event(
            action="generate_note_version",
            resource_type="note_version",
            resource_id=str(version.id),
            extra={"session_id": str(session_id), "version": version.version, "edit_type": edit_type.value},
        )
        return NoteResult(outcome=NoteOutcome.CREATED, summary=summary, version=version)

    async def save_on_blur(self, session_id: UUID, summary: SOAPSummary) -> NoteResult:
        state = self.editor(session_id)
        state.summary = summary.model_copy()
        if state.activity is not NoteActivity.IDLE:
            logger.info("Dropping blur save for session %s: editor is %s", session_id, state.activity.value)
            return NoteResult(outcome=NoteOutcome.DROPPED, summary=state.summary)

        baseline = state.last_saved if state.last_saved is not None else SOAPSummary()
        if summary == baseline:
            return NoteResult(outcome=NoteOutcome.UNCHANGED, summary=state.summary)

        state.activity = NoteActivity.SAVING
        try:
            version = self._insert(session_id, summary, edit_type=EditType.BLUR_MANUAL)
        finally:
            state.activity = NoteActivity.IDLE

        state.last_saved = summary.model_copy()
        state.active_version_id = version.id
        audit_service.log_event(
            action="save_note_version",
            resource_type="note_version",
            resource_id=str(version.id),
            extra={"session_id": str(session_id), "version": version.version},
        )
        return NoteResult(outcome=NoteOutcome.CREATED, summary=state.summary, version=version)

    def restore(self, session_id: UUID, version_id: UUID) -> NoteVersion:
        """Make an earlier version the working summary without creating a new one."""

        version = self.repository.get(version_id)
        if version is None or version.session_id != session_id:
            raise NoteVersionNotFoundError(str(version_id))

        state = self.editor(session_id)
        state.summary = version.summary()
        state.last_saved = version.summary()
        state.active_version_id = version.id
        return version

    def finalize(self, session_id: UUID) -> Optional[UUID]:
        """Promote the latest version to FINAL and drop the other temporary rows.

        Returns the promoted version id, or None when the session has no
        versions. Safe to call again: an already-final latest version is left
        as-is. An older final row (versions saved after an earlier finalize) is
        demoted back to temporary and removed with the rest, so storage never
        holds more than one final row per session.
        """

        versions = self.repository.list_for_session(session_id)
        if not versions:
            logger.info("No note versions to finalize for session %s", session_id)
            return None

        latest = versions[0]
        if latest.temporary or latest.edit_type is not EditType.FINAL:
            latest.temporary = False
            latest.edit_type = EditType.FINAL
            self.repository.update(latest)

        for stale in versions[1:]:
            if not stale.temporary:
                stale.temporary = True
                self.repository.update(stale)
        removed = self.repository.delete_temporary(session_id, keep_id=latest.id)

        state = self.editor(session_id)
        state.summary = latest.summary()
        state.last_saved = latest.summary()
        state.active_version_id = latest.id

        audit_service.log_event(
            action="finalize_notes",
            resource_type="note_version",
            resource_id=str(latest.id),
            extra={"session_id": str(session_id), "removed_temporary": removed},
        )
        return latest.id

    def attach_narrative(self, version_id: UUID, narrative: str) -> NoteVersion:
        version = self.repository.get(version_id)
        if version is None:
            raise NoteVersionNotFoundError(str(version_id))
        version.full_summary = narrative
        self.repository.update(version)
        return version

    def _insert(
        self,
        session_id: UUID,
        summary: SOAPSummary,
        *,
        edit_type: EditType,
        prompt: Optional[str] = None,
    ) -> NoteVersion:
        try:
            latest = self.repository.latest(session_id)
            version = NoteVersion(
                id=uuid4(),
                session_id=session_id,
                version=(latest.version + 1) if latest is not None else 1,
                edit_type=edit_type,
                temporary=True,
                created_at=datetime.utcnow(),
                subjective=summary.subjective,
                objective=summary.objective,
                assessment=summary.assessment,
                plan=summary.plan,
                prompt=prompt,
            )
            self.repository.insert(version)
        except Exception as exc:
            logger.exception("Failed to persist note version for session %s", session_id)
            raise NoteStorageError("Failed to save note version. Please try again.") from exc
        return version


note_version_store = NoteVersionStore()
