from __future__ import annotations

import logging
from typing import Optional

logger = logging.getLogger("workflow")


class TranscriptLockedError(RuntimeError):
    """Manual transcript edits are refused while dictation is running."""


class TranscriptCapture:
    """Accumulates the consultation transcript and the clinician's notes.

    Finalized dictation fragments are appended with a trailing space; interim
    fragments are only kept for display and never reach the transcript.
    Dictation support is declared up front by the client. When it is missing
    or fails, capture stops, ``error`` is set and manual entry still works.
    """

    def __init__(
        self,
        *,
        transcript: str = "",
        clinician_notes: str = "",
        dictation_supported: bool = True,
    ) -> None:
        self.transcript = transcript
        self.clinician_notes = clinician_notes
        self.dictation_supported = dictation_supported
        self.capturing = False
        self.interim = ""
        self.error: Optional[str] = None

    def start(self) -> bool:
        if not self.dictation_supported:
            self.error = "Speech recognition is not supported on this device. Type the transcript instead."
            self.capturing = False
            return False
        self.capturing = True
        self.interim = ""
        self.error = None
        return True

    def stop(self) -> None:
        self.capturing = False
        self.interim = ""

    def receive(self, fragment: str, *, final: bool) -> None:
        if not self.capturing:
            return
        if final:
            self.transcript += fragment + " "
            self.interim = ""
        else:
            self.interim = fragment

    def fail(self, message: str) -> None:
        logger.warning("Dictation stopped: %s", message)
        self.capturing = False
        self.interim = ""
        self.error = message

    def edit_transcript(self, text: str) -> None:
        if self.capturing:
            raise TranscriptLockedError("Stop dictation before editing the transcript")
        self.transcript = text

    def set_notes(self, text: str) -> None:
        self.clinician_notes = text

    def can_advance(self) -> bool:
        return len(self.transcript) > 0 or len(self.clinician_notes) > 0
