from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Set

import httpx

from src.physio.config import settings

logger = logging.getLogger("email")


@dataclass
class DeliveryResult:
    recipient: str
    success: bool
    provider_id: Optional[str] = None
    error: Optional[str] = None


class EmailBackend(Protocol):
    """Protocol for the external email delivery collaborator."""

    async def send(self, to: str, subject: str, html: str) -> DeliveryResult:  # pragma: no cover - interface
        """Deliver one message to one recipient and report the outcome."""
        raise NotImplementedError

    async def aclose(self) -> None:  # pragma: no cover - interface
        """Release any connections held by the backend."""
        raise NotImplementedError


@dataclass
class OutboxMessage:
    to: str
    subject: str
    html: str


@dataclass
class DemoEmailBackend:
    """Records messages in memory instead of sending them.

    Addresses listed in ``failing`` are reported as failed deliveries, which
    lets tests exercise partial and total failure handling.
    """

    outbox: List[OutboxMessage] = field(default_factory=list)
    failing: Set[str] = field(default_factory=set)

    async def send(self, to: str, subject: str, html: str) -> DeliveryResult:
        if to in self.failing:
            return DeliveryResult(recipient=to, success=False, error="Mailbox unavailable")
        self.outbox.append(OutboxMessage(to=to, subject=subject, html=html))
        return DeliveryResult(recipient=to, success=True, provider_id=f"demo-{len(self.outbox)}")

    async def aclose(self) -> None:
        return None


class ResendEmailBackend:
    """Email delivery through the Resend HTTP API.

    Failures are logged and reported as unsuccessful DeliveryResults rather
    than raised, so one bad address never aborts a multi-recipient send.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        sender: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key or settings.resend_api_key
        self._api_url = api_url or settings.resend_api_url
        self._sender = sender or settings.email_from
        # Only a client created here is closed by aclose().
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.email_timeout_seconds)

    async def aclose(self) -> None:
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    async def send(self, to: str, subject: str, html: str) -> DeliveryResult:
        if not self._api_key:
            logger.error("RESEND_API_KEY is not configured; cannot send email")
            return DeliveryResult(recipient=to, success=False, error="Missing API key")

        payload: Dict[str, Any] = {
            "from": self._sender,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        try:
            response = await self._client.post(self._api_url, json=payload, headers=headers)
        except httpx.HTTPError:
            logger.exception("Error calling email API")
            return DeliveryResult(recipient=to, success=False, error="Email service unreachable")

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400:
            message = data.get("message") if isinstance(data, dict) else None
            logger.error("Email API failed with status %s: %s", response.status_code, message)
            return DeliveryResult(recipient=to, success=False, error=message or "Failed to send email")

        provider_id = data.get("id") if isinstance(data, dict) else None
        return DeliveryResult(recipient=to, success=True, provider_id=provider_id)


def get_email_backend_from_env() -> EmailBackend:
    """Select an email backend based on EMAIL_BACKEND.

    Supports:
    - "demo" (default) - in-memory outbox
    - "resend" - ResendEmailBackend over HTTPS
    """

    backend_name = settings.email_backend.lower()
    if backend_name == "resend":
        return ResendEmailBackend()
    return DemoEmailBackend()
