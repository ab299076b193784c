from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class Settings:
    """Centralized application settings.

    This keeps environment-variable handling in one place so other modules can
    depend on strongly-typed attributes instead of calling os.getenv
    directly.
    """

    # Clinic identity used in patient-facing emails and the public plan page.
    clinic_name: str = os.getenv("CLINIC_NAME", "Your Physiotherapy Team")

    # SOAP summarization backend selection: "demo" (default) or "llm".
    summary_backend: str = os.getenv("SUMMARY_BACKEND", "demo")

    # Optional settings for the external text-generation provider.
    openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
    llm_model: str = os.getenv("LLM_MODEL", "gpt-4o-mini")
    llm_timeout_seconds: float = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))

    # Email delivery backend selection: "demo" (default) or "resend".
    email_backend: str = os.getenv("EMAIL_BACKEND", "demo")
    resend_api_key: Optional[str] = os.getenv("RESEND_API_KEY")
    resend_api_url: str = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
    email_from: str = os.getenv("EMAIL_FROM", "Physio Clinic <noreply@example.com>")
    email_timeout_seconds: float = float(os.getenv("EMAIL_TIMEOUT_SECONDS", "15"))

    # Base URL under which the read-only public plan page is served, e.g.
    # "https://clinic.example.com". Plan links are "<base>/plan/<plan id>".
    public_plan_base_url: str = os.getenv("PUBLIC_PLAN_BASE_URL", "http://localhost:8000")

    # Optional database configuration for SQL-backed repositories.
    database_url: Optional[str] = os.getenv("DATABASE_URL")
    use_sql_repos: bool = os.getenv("USE_SQL_REPOS", "false").lower() == "true"

    # Basic API authentication configuration.
    # When ENABLE_API_AUTH=true, protected endpoints require a valid API key.
    enable_api_auth: bool = os.getenv("ENABLE_API_AUTH", "false").lower() == "true"
    # Comma-separated list of allowed API keys when auth is enabled.
    api_keys: Optional[str] = os.getenv("API_KEYS")

    # CORS configuration: comma-separated origins (e.g. "https://app.example.com,https://admin.example.com").
    # Default is "*" (allow all) which is acceptable for local development but
    # should be tightened in production.
    cors_allow_origins: str = os.getenv("CORS_ALLOW_ORIGINS", "*")


settings = Settings()
