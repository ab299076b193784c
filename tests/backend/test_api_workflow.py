from uuid import uuid4

from fastapi import status
from httpx import ASGITransport, AsyncClient

from src.physio.main import app
from src.physio.services.exercises.library import exercise_library


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def _start_session(ac: AsyncClient) -> str:
    appointment_resp = await ac.post(
        "/api/v1/appointments/",
        json={
            "patient_id": "patient-api",
            "patient_name": "Morgan",
            "clinician_name": "Dr. Okafor",
            "appointment_date": "2026-02-16",
            "condition": "Knee pain after running",
        },
    )
    assert appointment_resp.status_code == status.HTTP_201_CREATED
    appointment_id = appointment_resp.json()["id"]

    start_resp = await ac.post("/api/v1/sessions/", json={"appointment_id": appointment_id})
    assert start_resp.status_code == status.HTTP_201_CREATED
    state = start_resp.json()
    assert state["step"] == "consultation"
    assert state["can_advance"] is False
    return state["session_id"]


async def _to_finalize(ac: AsyncClient, session_id: str) -> str:
    base = f"/api/v1/sessions/{session_id}"
    await ac.put(f"{base}/transcript", json={"transcript": "Knee pain on stairs"})
    await ac.post(f"{base}/workflow/advance")
    await ac.post(f"{base}/workflow/advance")
    exercise_id = (await ac.get(f"{base}/exercises/suggestions")).json()[0]["id"]
    await ac.post(f"{base}/exercises", json={"exercise_id": exercise_id})
    await ac.post(f"{base}/workflow/advance")
    state = (await ac.post(f"{base}/workflow/advance")).json()
    assert state["step"] == "finalize"
    return base


async def test_full_session_workflow_over_http():
    exercise_library.seed_defaults()

    async with _client() as ac:
        session_id = await _start_session(ac)
        base = f"/api/v1/sessions/{session_id}"

        blocked = await ac.post(f"{base}/workflow/advance")
        assert blocked.status_code == status.HTTP_400_BAD_REQUEST

        notes_resp = await ac.put(f"{base}/transcript", json={"clinician_notes": "Patient reports stiffness"})
        assert notes_resp.json()["can_advance"] is True
        advanced = await ac.post(f"{base}/workflow/advance")
        assert advanced.json()["step"] == "summary"

        generated = await ac.post(f"{base}/notes/generate", json={})
        assert generated.status_code == status.HTTP_201_CREATED
        summary = generated.json()["summary"]
        assert generated.json()["version"]["version"] == 1

        unchanged = await ac.post(f"{base}/notes/blur", json=summary)
        assert unchanged.json()["outcome"] == "unchanged"

        versions = await ac.get(f"{base}/notes/versions")
        assert len(versions.json()["versions"]) == 1

        assert (await ac.post(f"{base}/workflow/advance")).json()["step"] == "exercises"

        suggestions = (await ac.get(f"{base}/exercises/suggestions")).json()
        assert suggestions and all(e["body_area"] == "knee" for e in suggestions)
        exercise_id = suggestions[0]["id"]

        added = await ac.post(f"{base}/exercises", json={"exercise_id": exercise_id})
        assert added.json()["changed"] is True
        again = await ac.post(f"{base}/exercises", json={"exercise_id": exercise_id})
        assert again.json()["changed"] is False
        assert len(again.json()["selected_exercises"]) == 1

        assert (await ac.post(f"{base}/workflow/advance")).json()["step"] == "configure"
        dosage = await ac.patch(f"{base}/exercises/0", json={"sets": 4, "frequency": "2x_week"})
        assert dosage.json()["sets"] == 4

        finalize_state = (await ac.post(f"{base}/workflow/advance")).json()
        assert finalize_state["step"] == "finalize"
        plan_id = finalize_state["treatment_plan_id"]
        assert plan_id

        added_recipient = await ac.post(f"{base}/plan/recipients", json={"email": "morgan@example.com"})
        assert added_recipient.status_code == status.HTTP_201_CREATED
        duplicate = await ac.post(f"{base}/plan/recipients", json={"email": "morgan@example.com"})
        assert duplicate.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        invalid = await ac.post(f"{base}/plan/recipients", json={"email": "not-an-email"})
        assert invalid.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

        preview = await ac.post(f"{base}/plan/email-preview", json={})
        assert "Objective" not in preview.json()["html"]
        assert f"/plan/{plan_id}" in preview.json()["html"]

        sent = await ac.post(f"{base}/plan/send", json={"subject": "Your plan"})
        assert sent.status_code == status.HTTP_200_OK
        assert sent.json()["outcome"] == "sent"
        assert sent.json()["sent"] == 1

        public = await ac.get(f"/api/v1/public/plans/{plan_id}")
        assert public.status_code == status.HTTP_200_OK
        body = public.json()
        assert body["patient_name"] == "Morgan"
        assert body["exercises"][0]["frequency"] == "2x per Week"
        assert "objective" not in body

        page = await ac.get(f"/plan/{plan_id}")
        assert page.status_code == status.HTTP_200_OK
        assert "text/html" in page.headers["content-type"]

        completed = await ac.post(f"{base}/complete")
        assert completed.status_code == status.HTTP_200_OK
        assert completed.json()["final_version_id"]
        assert completed.json()["plan_restamped"] is True

        session_resp = await ac.get(base)
        assert session_resp.json()["status"] == "completed"


async def test_unknown_session_and_plan_return_404():
    async with _client() as ac:
        workflow = await ac.get(f"/api/v1/sessions/{uuid4()}/workflow")
        assert workflow.status_code == status.HTTP_404_NOT_FOUND

        public = await ac.get(f"/api/v1/public/plans/{uuid4()}")
        assert public.status_code == status.HTTP_404_NOT_FOUND


async def test_send_without_recipients_is_rejected():
    exercise_library.seed_defaults()

    async with _client() as ac:
        session_id = await _start_session(ac)
        base = await _to_finalize(ac, session_id)
        response = await ac.post(f"{base}/plan/send", json={})
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "email address" in response.json()["detail"]


async def test_custom_exercise_requires_name():
    async with _client() as ac:
        response = await ac.post("/api/v1/exercises/", json={"name": "  "})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


async def test_patch_cannot_overwrite_transcript_while_dictating():
    async with _client() as ac:
        session_id = await _start_session(ac)
        base = f"/api/v1/sessions/{session_id}"

        assert (await ac.post(f"{base}/transcript/start")).json()["capturing"] is True
        await ac.post(f"{base}/transcript/fragments", json={"text": "Heard so far"})

        put = await ac.put(f"{base}/transcript", json={"transcript": "typed"})
        assert put.status_code == status.HTTP_409_CONFLICT
        patch = await ac.patch(f"{base}/workflow/data", json={"transcript": "typed via patch"})
        assert patch.status_code == status.HTTP_409_CONFLICT

        state = (await ac.get(f"{base}/workflow")).json()
        assert state["capturing"] is True
        assert state["data"]["transcript"] == "Heard so far "


async def test_patch_selected_exercises_drops_repeats():
    exercise_library.seed_defaults()

    async with _client() as ac:
        session_id = await _start_session(ac)
        base = f"/api/v1/sessions/{session_id}"
        await ac.put(f"{base}/transcript", json={"transcript": "Knee pain"})
        await ac.post(f"{base}/workflow/advance")
        await ac.post(f"{base}/workflow/advance")

        exercise_id = (await ac.get(f"{base}/exercises/suggestions")).json()[0]["id"]
        item = (await ac.post(f"{base}/exercises", json={"exercise_id": exercise_id})).json()["selected_exercises"][0]

        patched = await ac.patch(f"{base}/workflow/data", json={"selected_exercises": [item, item]})
        assert patched.status_code == status.HTTP_200_OK
        ids = [p["exercise"]["id"] for p in patched.json()["data"]["selected_exercises"]]
        assert ids == [exercise_id]


async def test_finalize_operations_are_refused_outside_finalize():
    async with _client() as ac:
        session_id = await _start_session(ac)
        base = f"/api/v1/sessions/{session_id}"

        for path in ("/plan", "/plan/send", "/plan/email-preview", "/complete"):
            response = await ac.post(f"{base}{path}", json={})
            assert response.status_code == status.HTTP_400_BAD_REQUEST, path

        recipient = await ac.post(f"{base}/plan/recipients", json={"email": "pat@example.com"})
        assert recipient.status_code == status.HTTP_400_BAD_REQUEST

        state = (await ac.get(f"{base}/workflow")).json()
        assert state["step"] == "consultation"
        assert state["treatment_plan_id"] is None
        session = (await ac.get(base)).json()
        assert session["status"] == "in_progress"


async def test_step_specific_routes_are_refused_at_other_steps():
    exercise_library.seed_defaults()

    async with _client() as ac:
        session_id = await _start_session(ac)
        base = f"/api/v1/sessions/{session_id}"
        exercise_id = (await ac.get(f"{base}/exercises/suggestions")).json()[0]["id"]

        added = await ac.post(f"{base}/exercises", json={"exercise_id": exercise_id})
        assert added.status_code == status.HTTP_400_BAD_REQUEST
        generated = await ac.post(f"{base}/notes/generate", json={})
        assert generated.status_code == status.HTTP_400_BAD_REQUEST


async def test_completed_session_leaves_the_workflow():
    exercise_library.seed_defaults()

    async with _client() as ac:
        session_id = await _start_session(ac)
        base = await _to_finalize(ac, session_id)

        completed = await ac.post(f"{base}/complete")
        assert completed.status_code == status.HTTP_200_OK

        for response in (
            await ac.get(f"{base}/workflow"),
            await ac.post(f"{base}/plan/send", json={}),
            await ac.post(f"{base}/complete"),
        ):
            assert response.status_code == status.HTTP_409_CONFLICT
        assert (await ac.get(base)).json()["status"] == "completed"
