import pytest

from src.physio.services.transcript.capture import TranscriptCapture, TranscriptLockedError


def test_final_fragments_are_appended_with_trailing_space():
    capture = TranscriptCapture()
    assert capture.start() is True

    capture.receive("knee hurts", final=False)
    assert capture.interim == "knee hurts"
    assert capture.transcript == ""

    capture.receive("My knee hurts", final=True)
    capture.receive("when climbing stairs", final=True)
    assert capture.transcript == "My knee hurts when climbing stairs "
    assert capture.interim == ""


def test_fragments_are_ignored_when_not_capturing():
    capture = TranscriptCapture(transcript="Existing. ")
    capture.receive("ignored", final=True)
    assert capture.transcript == "Existing. "


def test_manual_edit_is_refused_while_capturing():
    capture = TranscriptCapture()
    capture.start()
    with pytest.raises(TranscriptLockedError):
        capture.edit_transcript("typed")

    capture.stop()
    capture.edit_transcript("typed")
    assert capture.transcript == "typed"


def test_unsupported_dictation_sets_error_and_allows_typing():
    capture = TranscriptCapture(dictation_supported=False)
    assert capture.start() is False
    assert capture.capturing is False
    assert capture.error

    capture.edit_transcript("Typed transcript")
    assert capture.can_advance()


def test_failure_stops_capture():
    capture = TranscriptCapture()
    capture.start()
    capture.fail("microphone permission denied")
    assert capture.capturing is False
    assert capture.error == "microphone permission denied"


def test_notes_alone_satisfy_the_gate():
    capture = TranscriptCapture()
    assert capture.can_advance() is False
    capture.set_notes("Patient reports stiffness")
    assert capture.can_advance() is True
