from __future__ import annotations

from typing import Sequence

from src.physio.domain.models.exercise import ExercisePrescription
from src.physio.domain.models.note_version import SOAPSummary


SOAP_JSON_SHAPE = """{
  "subjective": "Patient's reported symptoms, history, and concerns",
  "objective": "Clinical findings, measurements, tests performed",
  "assessment": "Clinical reasoning and diagnosis",
  "plan": "Treatment plan, goals, and follow-up"
}"""


FRESH_SYSTEM_PROMPT = f"""You are a licensed physiotherapist with expertise in orthopedic and musculoskeletal assessment. \
Merge two sources of clinical information, a transcript of the consultation and the clinician's typed notes, \
into a single, accurate, clinically appropriate set of SOAP notes.

Follow these rules:
- Remove filler conversation, greetings, unrelated dialogue, and repetitions.
- Extract clinically relevant details only.
- Merge transcript information and clinician notes into one unified narrative.
- Maintain physiotherapy-specific terminology.
- Keep Subjective, Objective, Assessment, and Plan clearly separated.
- Capture treatment goals and contributing factors if mentioned.

Output format: Return ONLY valid JSON with this exact structure:
{SOAP_JSON_SHAPE}"""


REVISION_SYSTEM_PROMPT = f"""You are a licensed physiotherapist. You are editing an existing set of SOAP notes.

Rules:
- Maintain the original SOAP format (Subjective, Objective, Assessment, Plan).
- Modify only what is necessary to satisfy the revision request.
- Preserve correct physiotherapy terminology.
- Keep the notes concise, accurate, and clinically appropriate.

Output format: Return ONLY valid JSON with this exact structure:
{SOAP_JSON_SHAPE}"""


NARRATIVE_SYSTEM_PROMPT = """You are a physiotherapist writing for a patient. Summarize the session in 2-3 plain-language \
sentences: what was found, what it means, and what the patient should do next. Do not use SOAP headings, \
bullet points, or medical jargon."""


def fresh_user_prompt(transcript: str, clinician_notes: str) -> str:
    return (
        f"TRANSCRIPT:\n{transcript or 'No transcript available'}\n\n"
        f"CLINICIAN NOTES:\n{clinician_notes or 'No additional notes'}\n\n"
        "Generate a comprehensive SOAP note based on this information."
    )


def revision_user_prompt(current: SOAPSummary, instruction: str) -> str:
    return (
        "Current SOAP Notes:\n"
        f"Subjective: {current.subjective}\n"
        f"Objective: {current.objective}\n"
        f"Assessment: {current.assessment}\n"
        f"Plan: {current.plan}\n\n"
        "Apply the following revision request while preserving clinical accuracy and SOAP structure.\n\n"
        f"Revision Request: {instruction}"
    )


def narrative_user_prompt(summary: SOAPSummary, exercises: Sequence[ExercisePrescription]) -> str:
    if exercises:
        exercise_lines = "\n".join(
            f"- {item.exercise.name} ({item.frequency_label()})" for item in exercises
        )
    else:
        exercise_lines = "- None prescribed"
    return (
        f"Subjective: {summary.subjective}\n"
        f"Objective: {summary.objective}\n"
        f"Assessment: {summary.assessment}\n"
        f"Plan: {summary.plan}\n\n"
        f"Prescribed exercises:\n{exercise_lines}"
    )
