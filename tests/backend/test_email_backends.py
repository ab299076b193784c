import httpx

from src.physio.services.email.backends import DemoEmailBackend, ResendEmailBackend
from src.physio.services.plans.service import TreatmentPlanFinalizer


def _transport(status_code=200, body=None):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=body if body is not None else {"id": "email-1"})

    return httpx.MockTransport(handler)


async def test_resend_backend_reports_success_and_failure():
    ok = ResendEmailBackend(api_key="key", client=httpx.AsyncClient(transport=_transport()))
    result = await ok.send("pat@example.com", "Plan", "<p>Plan</p>")
    assert result.success is True
    assert result.provider_id == "email-1"

    bad = ResendEmailBackend(
        api_key="key",
        client=httpx.AsyncClient(transport=_transport(422, {"message": "Invalid `to` field"})),
    )
    result = await bad.send("pat@example.com", "Plan", "<p>Plan</p>")
    assert result.success is False
    assert result.error == "Invalid `to` field"


async def test_resend_backend_closes_only_its_own_client():
    owned = ResendEmailBackend(api_key="key")
    await owned.aclose()
    assert owned._client.is_closed is True
    await owned.aclose()

    shared = httpx.AsyncClient(transport=_transport())
    injected = ResendEmailBackend(api_key="key", client=shared)
    await injected.aclose()
    assert shared.is_closed is False
    await shared.aclose()


async def test_finalizer_aclose_closes_email_backend():
    backend = ResendEmailBackend(api_key="key")
    finalizer = TreatmentPlanFinalizer(email_backend=backend)
    await finalizer.aclose()
    assert backend._client.is_closed is True

    await TreatmentPlanFinalizer(email_backend=DemoEmailBackend()).aclose()
