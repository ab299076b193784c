from __future__ import annotations

import hashlib
from contextvars import ContextVar
from typing import List, Optional

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from src.physio.config import settings

# API key is expected in this header when ENABLE_API_AUTH is true.
_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Stable, non-raw identifier for the current caller (a hashed API key), used
# as the subject of audit events.
_current_subject: ContextVar[Optional[str]] = ContextVar("current_subject", default=None)


def get_current_subject() -> Optional[str]:
    """Return the current subject identifier, if any."""

    return _current_subject.get()


def _parse_api_keys() -> List[str]:
    if not settings.api_keys:
        return []
    return [key.strip() for key in settings.api_keys.split(",") if key.strip()]


async def get_api_key(api_key: Optional[str] = Security(_api_key_header)) -> str:
    """FastAPI dependency for simple API-key based authentication.

    - If ENABLE_API_AUTH is false (default for development/tests), this is a
      no-op and always succeeds.
    - If ENABLE_API_AUTH is true, a valid API key must be supplied in the
      X-API-Key header and match the configured API_KEYS list.
    """

    if not settings.enable_api_auth:
        _current_subject.set(None)
        return ""

    allowed_keys = _parse_api_keys()
    if not allowed_keys:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API authentication is enabled but no API keys are configured.",
        )

    if not api_key or api_key not in allowed_keys:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key.",
        )

    subject_id = "api-key:" + hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:16]
    _current_subject.set(subject_id)

    return api_key
