"""Patient-facing HTML rendering for treatment plans using Jinja2.

The email and the public plan page share one structure: the clinician's
message, the patient-friendly part of the SOAP note (objective findings are
clinician-only and never rendered), the prescribed exercises and a link to
the public plan page.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from jinja2 import DictLoader, Environment
from markupsafe import Markup, escape

from src.physio.config import settings


@dataclass
class ExerciseLine:
    name: str
    sets: Optional[int] = None
    reps: Optional[int] = None
    duration_seconds: Optional[int] = None
    frequency_label: str = "Daily"
    notes: Optional[str] = None
    description: Optional[str] = None
    instructions: Optional[str] = None

    def dosage(self) -> str:
        parts = []
        if self.sets:
            parts.append(f"{self.sets} sets")
        if self.reps:
            parts.append(f"{self.reps} reps")
        if self.duration_seconds:
            parts.append(f"{self.duration_seconds}s hold")
        return " × ".join(parts)


@dataclass
class PatientPlanView:
    """Everything a patient is allowed to see about their plan."""

    plan_url: str
    patient_name: Optional[str] = None
    subjective: str = ""
    assessment: str = ""
    plan: str = ""
    narrative: Optional[str] = None
    exercises: List[ExerciseLine] = field(default_factory=list)
    clinic_name: str = settings.clinic_name


_SUMMARY_BLOCK = """
{% macro summary_block(view) -%}
<h3 style="color: #333; margin-bottom: 16px;">Your Treatment Summary</h3>
{% if view.narrative %}<p>{{ view.narrative }}</p>{% endif %}
<h4 style="color: #666; margin-bottom: 8px;">What you told us</h4>
<p style="background: #f9f9f9; padding: 12px; border-radius: 6px;">{{ view.subjective | br }}</p>
<h4 style="color: #666; margin-bottom: 8px;">Assessment</h4>
<p style="background: #f9f9f9; padding: 12px; border-radius: 6px;">{{ view.assessment | br }}</p>
<h4 style="color: #666; margin-bottom: 8px;">Plan</h4>
<p style="background: #f9f9f9; padding: 12px; border-radius: 6px;">{{ view.plan | br }}</p>
<h3 style="color: #333; margin-bottom: 16px;">Prescribed Exercises</h3>
<ul style="padding-left: 20px; margin-bottom: 24px;">
{% for ex in view.exercises %}
  <li><strong>{{ ex.name }}</strong>{% if ex.dosage() %} – {{ ex.dosage() }}{% endif %} ({{ ex.frequency_label }}){% if ex.notes %}<br><em>{{ ex.notes }}</em>{% endif %}</li>
{% else %}
  <li>No exercises prescribed.</li>
{% endfor %}
</ul>
{%- endmacro %}
"""

_EMAIL_TEMPLATE = """{% from "summary_block.html" import summary_block %}
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <p>Dear {{ view.patient_name or "Patient" }},</p>
  <p>{{ message | br }}</p>
  <hr style="border: none; border-top: 1px solid #e5e5e5; margin: 24px 0;" />
  {{ summary_block(view) }}
  <p>You can view your full plan here:</p>
  <p><a href="{{ view.plan_url }}" target="_blank" rel="noopener noreferrer">View Your Exercise Plan</a></p>
  <p style="margin-top: 32px; color: #666;">Best regards,<br />{{ view.clinic_name }}</p>
</div>
"""

_PUBLIC_TEMPLATE = """{% from "summary_block.html" import summary_block %}<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>Your Exercise Plan</title></head>
<body style="font-family: Arial, sans-serif; max-width: 720px; margin: 0 auto; padding: 20px;">
  <h1>{{ view.clinic_name }}</h1>
  <p>Exercise plan for {{ view.patient_name or "Patient" }}</p>
  {{ summary_block(view) }}
  {% for ex in view.exercises if ex.instructions or ex.description %}
  {% if loop.first %}<h3>How to do your exercises</h3>{% endif %}
  <h4>{{ ex.name }}</h4>
  <p>{{ (ex.instructions or ex.description) | br }}</p>
  {% endfor %}
</body>
</html>
"""


def _br(value: Optional[str]) -> Markup:
    """Escape text and turn newlines into <br> tags."""

    return Markup("<br>").join(escape(value or "").split("\n"))


def get_builtin_templates() -> Dict[str, str]:
    return {
        "summary_block.html": _SUMMARY_BLOCK,
        "plan_email.html": _EMAIL_TEMPLATE,
        "public_plan.html": _PUBLIC_TEMPLATE,
    }


def _build_environment() -> Environment:
    env = Environment(loader=DictLoader(get_builtin_templates()), autoescape=True)
    env.filters["br"] = _br
    return env


_env = _build_environment()


def render_plan_email(view: PatientPlanView, message: str) -> str:
    return _env.get_template("plan_email.html").render(view=view, message=message)


def render_public_plan(view: PatientPlanView) -> str:
    return _env.get_template("public_plan.html").render(view=view)
