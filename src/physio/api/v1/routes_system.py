from fastapi import APIRouter

from src.physio.config import settings

router = APIRouter(prefix="", tags=["system"])


@router.get("/health")
async def health_check_v1() -> dict:
    """API v1 health endpoint."""
    return {"status": "ok", "version": "v1"}


@router.get("/system/backends")
async def backends_v1() -> dict:
    """Report which summarization and email backends are configured (no secrets)."""

    return {
        "summary_backend": settings.summary_backend,
        "email_backend": settings.email_backend,
        "sql_repositories": settings.use_sql_repos,
    }
