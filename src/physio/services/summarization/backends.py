from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Sequence, Union

import openai

from src.physio.config import settings
from src.physio.domain.models.exercise import ExercisePrescription
from src.physio.domain.models.note_version import SOAPSummary
from src.physio.services.summarization import prompts

logger = logging.getLogger("summarization")


class SummarizationError(RuntimeError):
    """The summarization collaborator failed; the caller may retry."""

    retryable = True


class SummarizationRateLimited(SummarizationError):
    """The provider throttled the request (HTTP 429)."""


class SummarizationQuotaExceeded(SummarizationError):
    """The provider account is out of credits (HTTP 402 / insufficient_quota)."""


@dataclass(frozen=True)
class FreshGeneration:
    """Extract a new SOAP summary from the consultation text."""

    transcript: str
    clinician_notes: str


@dataclass(frozen=True)
class Revision:
    """Revise an existing summary according to a clinician instruction."""

    transcript: str
    clinician_notes: str
    current_summary: SOAPSummary
    instruction: str


SummaryRequest = Union[FreshGeneration, Revision]


class SummarizationBackend(Protocol):
    """Protocol for the external text-generation collaborator."""

    async def generate_soap(self, request: SummaryRequest) -> SOAPSummary:  # pragma: no cover - interface
        """Return a four-field SOAP summary for a fresh or revision request."""
        raise NotImplementedError

    async def narrative_summary(
        self,
        summary: SOAPSummary,
        exercises: Sequence[ExercisePrescription],
    ) -> str:  # pragma: no cover - interface
        """Return a short patient-facing narrative (2-3 sentences)."""
        raise NotImplementedError


_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_SOAP_HEADING_RE = re.compile(r"(Subjective|Objective|Assessment|Plan)\s*:", re.IGNORECASE)
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")


def parse_soap_payload(raw: str, *, fallback: Optional[SOAPSummary] = None) -> SOAPSummary:
    """Decode the model's JSON reply into a SOAPSummary.

    Markdown code fences are stripped first. Missing or non-string fields
    become empty strings, or the corresponding ``fallback`` field when one is
    given (used for revisions so an omitted section is kept as-is).
    """

    text = _CODE_FENCE_RE.sub("", raw.strip()).strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SummarizationError("Summarization response was not valid JSON") from exc
    if not isinstance(data, dict):
        raise SummarizationError("Summarization response was not a JSON object")

    def _get(key: str) -> str:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return getattr(fallback, key) if fallback is not None else ""

    return SOAPSummary(
        subjective=_get("subjective"),
        objective=_get("objective"),
        assessment=_get("assessment"),
        plan=_get("plan"),
    )


def clean_narrative(raw: str, *, max_sentences: int = 3) -> str:
    """Strip SOAP headings, collapse newlines and keep at most a few sentences."""

    cleaned = _SOAP_HEADING_RE.sub("", raw)
    cleaned = re.sub(r"\n+", " ", cleaned).strip()
    cleaned = re.sub(r"\s{2,}", " ", cleaned)
    sentences = _SENTENCE_SPLIT_RE.split(cleaned)[:max_sentences]
    concise = " ".join(sentences).strip()
    return concise or cleaned


class DemoSummarizationBackend:
    """Deterministic backend used for tests and offline development.

    Fresh requests echo the consultation text into the SOAP fields; revisions
    keep the current summary and record the instruction in the plan field so
    callers can see that a revision happened.
    """

    async def generate_soap(self, request: SummaryRequest) -> SOAPSummary:
        if isinstance(request, Revision):
            current = request.current_summary
            return SOAPSummary(
                subjective=current.subjective,
                objective=current.objective,
                assessment=current.assessment,
                plan=f"{current.plan} (revised: {request.instruction})".strip(),
            )

        source = request.transcript.strip() or request.clinician_notes.strip()
        return SOAPSummary(
            subjective=f"Patient reports: {source}",
            objective=request.clinician_notes.strip() or "No objective findings documented.",
            assessment="Presentation consistent with a musculoskeletal complaint; clinician review required.",
            plan="Home exercise programme with review at next session.",
        )

    async def narrative_summary(
        self,
        summary: SOAPSummary,
        exercises: Sequence[ExercisePrescription],
    ) -> str:
        count = len(exercises)
        noun = "exercise" if count == 1 else "exercises"
        return clean_narrative(
            f"Today we reviewed how you are feeling. {summary.assessment} "
            f"Please follow your {count} prescribed {noun} as directed."
        )


class LLMSummarizationBackend:
    """Summarization backend using the OpenAI chat completions API.

    Expects OPENAI_API_KEY to be set and uses the model from LLM_MODEL. SOAP
    requests ask for a JSON object; narrative requests return free text.
    Rate-limit and quota failures are reported as distinct error types.
    """

    def __init__(self, model: str | None = None, client: Any = None) -> None:
        self._model = model or settings.llm_model
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            if not settings.openai_api_key:
                raise SummarizationError("OPENAI_API_KEY must be set to use LLMSummarizationBackend")
            self._client = openai.AsyncOpenAI(
                api_key=settings.openai_api_key,
                timeout=settings.llm_timeout_seconds,
            )
        return self._client

    async def _complete(self, system_prompt: str, user_prompt: str, *, json_mode: bool) -> str:
        client = self._get_client()
        kwargs: Dict[str, Any] = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await client.chat.completions.create(**kwargs)
        except openai.RateLimitError as exc:
            if getattr(exc, "code", None) == "insufficient_quota":
                logger.warning("LLM quota exhausted for model %s", self._model)
                raise SummarizationQuotaExceeded("AI credits exhausted. Please add credits to continue.") from exc
            logger.warning("LLM rate limit hit for model %s", self._model)
            raise SummarizationRateLimited("Rate limit exceeded. Please try again in a moment.") from exc
        except openai.APIStatusError as exc:
            if exc.status_code == 402:
                raise SummarizationQuotaExceeded("AI credits exhausted. Please add credits to continue.") from exc
            logger.error("LLM request failed with status %s", exc.status_code)
            raise SummarizationError(f"AI provider error ({exc.status_code})") from exc
        except openai.APIError as exc:
            logger.error("LLM request failed: %s", exc.__class__.__name__)
            raise SummarizationError("AI provider unavailable") from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise SummarizationError("No content in AI response")
        return content

    async def generate_soap(self, request: SummaryRequest) -> SOAPSummary:
        if isinstance(request, Revision):
            raw = await self._complete(
                prompts.REVISION_SYSTEM_PROMPT,
                prompts.revision_user_prompt(request.current_summary, request.instruction),
                json_mode=True,
            )
            return parse_soap_payload(raw, fallback=request.current_summary)

        raw = await self._complete(
            prompts.FRESH_SYSTEM_PROMPT,
            prompts.fresh_user_prompt(request.transcript, request.clinician_notes),
            json_mode=True,
        )
        return parse_soap_payload(raw)

    async def narrative_summary(
        self,
        summary: SOAPSummary,
        exercises: Sequence[ExercisePrescription],
    ) -> str:
        raw = await self._complete(
            prompts.NARRATIVE_SYSTEM_PROMPT,
            prompts.narrative_user_prompt(summary, exercises),
            json_mode=False,
        )
        return clean_narrative(raw)


def get_summarization_backend_from_env() -> SummarizationBackend:
    """Select a summarization backend based on SUMMARY_BACKEND.

    Supports:
    - "demo" (default) - deterministic offline generator
    - "llm" - LLMSummarizationBackend using the OpenAI API
    """

    backend_name = settings.summary_backend.lower()
    if backend_name == "llm":
        return LLMSummarizationBackend()
    return DemoSummarizationBackend()
