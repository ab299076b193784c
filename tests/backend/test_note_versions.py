import asyncio
from uuid import uuid4

import pytest

from src.physio.domain.models.note_version import EditType, SOAPSummary
from src.physio.infra.db.inmemory import InMemoryNoteVersionRepository
from src.physio.services.notes.service import (
    NoteActivity,
    NoteOutcome,
    NoteStorageError,
    NoteVersionStore,
)
from src.physio.services.summarization.backends import (
    DemoSummarizationBackend,
    FreshGeneration,
    Revision,
    SummarizationError,
    SummarizationRateLimited,
)


class GatedBackend(DemoSummarizationBackend):
    """Demo backend that blocks until released, to hold a generation in flight."""

    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.requests = []

    async def generate_soap(self, request):
        self.requests.append(request)
        await self.release.wait()
        return await super().generate_soap(request)


class FailingBackend(DemoSummarizationBackend):
    def __init__(self, error: Exception) -> None:
        self.error = error

    async def generate_soap(self, request):
        raise self.error


class BrokenRepository(InMemoryNoteVersionRepository):
    def insert(self, version):
        raise ConnectionError("database unavailable")


def _store(backend=None, repository=None) -> NoteVersionStore:
    return NoteVersionStore(
        repository=repository or InMemoryNoteVersionRepository(),
        backend=backend or DemoSummarizationBackend(),
    )


def _summary(text: str) -> SOAPSummary:
    return SOAPSummary(subjective=f"S {text}", objective=f"O {text}", assessment=f"A {text}", plan=f"P {text}")


async def test_versions_are_contiguous_and_finalize_leaves_one_final():
    store = _store()
    session_id = uuid4()

    await store.generate(session_id, "Knee pain on stairs", "")
    await store.save_on_blur(session_id, _summary("one"))
    await store.save_on_blur(session_id, _summary("two"))
    await store.generate(session_id, "Knee pain on stairs", "", instruction="Shorter plan")

    versions = store.load_versions(session_id)
    assert [v.version for v in versions] == [4, 3, 2, 1]
    assert [v.edit_type for v in versions] == [
        EditType.AI_REVISION,
        EditType.BLUR_MANUAL,
        EditType.BLUR_MANUAL,
        EditType.AI_GENERATED,
    ]
    assert not any(v.edit_type == EditType.FINAL for v in versions)

    final_id = store.finalize(session_id)

    remaining = store.load_versions(session_id)
    assert len(remaining) == 1
    assert remaining[0].id == final_id
    assert remaining[0].edit_type == EditType.FINAL
    assert remaining[0].temporary is False
    assert remaining[0].version == 4


async def test_finalize_twice_keeps_single_final():
    repository = InMemoryNoteVersionRepository()
    store = _store(repository=repository)
    session_id = uuid4()
    await store.generate(session_id, "Shoulder ache", "")

    first = store.finalize(session_id)
    await store.save_on_blur(session_id, _summary("after final"))
    second = store.finalize(session_id)

    finals = [v for v in store.load_versions(session_id) if v.edit_type == EditType.FINAL]
    assert len(finals) == 1
    assert finals[0].id == second
    assert second != first

    # Including soft-deleted rows, storage holds exactly one final row.
    stored = [v for v in repository._versions.values() if v.session_id == session_id]
    assert [(v.id, v.temporary, v.edit_type) for v in stored] == [(second, False, EditType.FINAL)]


def test_finalize_without_versions_returns_none():
    store = _store()
    assert store.finalize(uuid4()) is None


async def test_blur_with_unchanged_summary_creates_no_version():
    store = _store()
    session_id = uuid4()
    result = await store.generate(session_id, "Back stiffness", "")

    unchanged = await store.save_on_blur(session_id, result.summary.model_copy())
    assert unchanged.outcome is NoteOutcome.UNCHANGED
    assert len(store.load_versions(session_id)) == 1

    edited = result.summary.model_copy(update={"plan": "Walk daily"})
    changed = await store.save_on_blur(session_id, edited)
    assert changed.outcome is NoteOutcome.CREATED
    assert changed.version.version == 2
    assert len(store.load_versions(session_id)) == 2


async def test_blur_with_empty_summary_before_any_version_is_unchanged():
    store = _store()
    session_id = uuid4()
    result = await store.save_on_blur(session_id, SOAPSummary())
    assert result.outcome is NoteOutcome.UNCHANGED
    assert store.load_versions(session_id) == []


async def test_restore_then_blur_creates_no_version():
    store = _store()
    session_id = uuid4()
    await store.generate(session_id, "Ankle sprain", "")
    await store.save_on_blur(session_id, _summary("edited"))
    versions = store.load_versions(session_id)
    first = versions[-1]

    restored = store.restore(session_id, first.id)
    assert store.editor(session_id).summary == restored.summary()

    result = await store.save_on_blur(session_id, restored.summary())
    assert result.outcome is NoteOutcome.UNCHANGED
    assert len(store.load_versions(session_id)) == 2


async def test_second_generate_while_in_flight_is_dropped():
    backend = GatedBackend()
    store = _store(backend=backend)
    session_id = uuid4()

    first = asyncio.create_task(store.generate(session_id, "Hip pain", ""))
    await asyncio.sleep(0)
    assert store.editor(session_id).activity is NoteActivity.GENERATING

    second = await store.generate(session_id, "Hip pain", "")
    assert second.outcome is NoteOutcome.DROPPED

    blur = await store.save_on_blur(session_id, _summary("while generating"))
    assert blur.outcome is NoteOutcome.DROPPED

    backend.release.set()
    result = await first
    assert result.outcome is NoteOutcome.CREATED
    assert len(backend.requests) == 1
    assert [v.version for v in store.load_versions(session_id)] == [1]
    assert store.editor(session_id).activity is NoteActivity.IDLE


async def test_revision_request_carries_current_summary_and_instruction():
    backend = GatedBackend()
    backend.release.set()
    store = _store(backend=backend)
    session_id = uuid4()

    fresh = await store.generate(session_id, "Neck pain", "Reduced rotation")
    revised = await store.generate(
        session_id, "Neck pain", "Reduced rotation", current_summary=fresh.summary, instruction="  Add heat  "
    )

    assert isinstance(backend.requests[0], FreshGeneration)
    assert isinstance(backend.requests[1], Revision)
    assert backend.requests[1].current_summary == fresh.summary
    assert backend.requests[1].instruction == "Add heat"
    assert revised.version.prompt == "Add heat"
    assert revised.summary.plan.endswith("(revised: Add heat)")


async def test_blank_instruction_is_a_fresh_generation():
    backend = GatedBackend()
    backend.release.set()
    store = _store(backend=backend)

    result = await store.generate(uuid4(), "Wrist pain", "", instruction="   ")
    assert isinstance(backend.requests[0], FreshGeneration)
    assert result.version.edit_type == EditType.AI_GENERATED


async def test_generation_failure_creates_no_version_and_resets_state():
    store = _store(backend=FailingBackend(SummarizationRateLimited("slow down")))
    session_id = uuid4()

    with pytest.raises(SummarizationRateLimited):
        await store.generate(session_id, "Back pain", "")
    assert store.load_versions(session_id) == []
    assert store.editor(session_id).activity is NoteActivity.IDLE

    store = _store(backend=FailingBackend(ValueError("boom")))
    with pytest.raises(SummarizationError):
        await store.generate(session_id, "Back pain", "")


async def test_storage_failure_keeps_edit_and_is_retryable():
    store = _store(repository=BrokenRepository())
    session_id = uuid4()
    summary = _summary("unsaved")

    with pytest.raises(NoteStorageError) as excinfo:
        await store.save_on_blur(session_id, summary)
    assert excinfo.value.retryable is True

    state = store.editor(session_id)
    assert state.summary == summary
    assert state.last_saved is None
    assert state.activity is NoteActivity.IDLE


def test_load_versions_on_new_session_resets_summary():
    store = _store()
    session_id = uuid4()
    store.update_working_summary(session_id, _summary("draft"))

    assert store.load_versions(session_id) == []
    assert store.editor(session_id).summary == SOAPSummary()
