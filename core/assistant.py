# assistant.py
# Text bridge between the clinical core and the chat assistant:
# patient context going in, treatment plan drafts coming back out
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from core.models import (
    Bilingual,
    CreateTreatmentPlan,
    LabValue,
    NewAction,
    Patient,
    PlanCategory,
    RespiratorySupport,
    TransfusionAnalysis,
    TransfusionJustification,
    parse_iso,
)

# Emitted by the assistant when the physician accepts a plan. Must not change.
PLAN_MARKER = "[TREATMENT_PLAN_CREATED]"

SUMMARY_MAX_LENGTH = 500

_ACTION_RE = re.compile(r"^(\d+)\.\s+(.+)$")
_BULLET_RE = re.compile(r"^[-•]\s+(.+)$")
_DOSAGE_RE = re.compile(
    r"(\d+(?:\.\d+)?\s*(?:mg|ml|mcg|mL|mg/kg|ml/kg|U/kg|units?)[^,)]*)",
    re.IGNORECASE,
)

# Checked in order; first category with a matching keyword wins
CATEGORY_KEYWORDS = [
    (PlanCategory.TRANSFUSION, ("transfus", "blood", "rbc", "platelet")),
    (PlanCategory.SEPSIS, ("sepsis", "antibiotic", "infection")),
    (PlanCategory.NEC, ("nec", "enterocolitis", "abdominal")),
    (PlanCategory.RESPIRATORY, ("ventilat", "respirat", "intubat", "cpap")),
    (PlanCategory.FEEDING, ("feed", "tpn", "nutrition")),
    (PlanCategory.JAUNDICE, ("bilirubin", "jaundice", "phototherapy")),
    (PlanCategory.HEMOLYSIS, ("hemolysis", "ldh", "haptoglobin")),
]

CATEGORY_TITLES = {
    PlanCategory.TRANSFUSION: Bilingual("Transfusion Management Plan", "Plan de Manejo de Transfusion"),
    PlanCategory.SEPSIS: Bilingual("Sepsis Evaluation & Treatment Plan", "Plan de Evaluacion y Tratamiento de Sepsis"),
    PlanCategory.NEC: Bilingual("NEC Evaluation Plan", "Plan de Evaluacion de NEC"),
    PlanCategory.RESPIRATORY: Bilingual("Respiratory Management Plan", "Plan de Manejo Respiratorio"),
    PlanCategory.FEEDING: Bilingual("Feeding Management Plan", "Plan de Manejo de Alimentacion"),
    PlanCategory.JAUNDICE: Bilingual("Jaundice Management Plan", "Plan de Manejo de Ictericia"),
    PlanCategory.HEMOLYSIS: Bilingual("Hemolysis Evaluation Plan", "Plan de Evaluacion de Hemolisis"),
    PlanCategory.GENERAL: Bilingual("Clinical Management Plan", "Plan de Manejo Clinico"),
}

DEFAULT_SUMMARY = Bilingual(
    "Treatment plan created based on clinical assessment.",
    "Plan de tratamiento creado basado en evaluacion clinica.",
)
DEFAULT_RATIONALE = Bilingual(
    "Based on current clinical status and evidence-based guidelines.",
    "Basado en estado clinico actual y guias basadas en evidencia.",
)


# ========================================
# Context for the assistant
# ========================================

def _lab_line(labs: Sequence[LabValue], lab_type_id: str, label: str, fmt) -> str:
    series = [lab for lab in labs if lab.lab_type_id == lab_type_id and parse_iso(lab.occurred_at)]
    if not series:
        return f"  {label}: Not available"
    series.sort(key=lambda lab: parse_iso(lab.occurred_at), reverse=True)
    latest = series[0]
    trend = "stable"
    if len(series) > 1 and series[1].value:
        diff = latest.value - series[1].value
        if abs(diff / series[1].value) * 100 > 5:
            trend = "up" if diff > 0 else "down"
    return f"  {label}: {fmt(latest.value)} (trend: {trend})"


def build_context(
    patient: Optional[Patient],
    analysis: Optional[TransfusionAnalysis] = None,
    justification: Optional[TransfusionJustification] = None,
    days_of_life: Optional[int] = None,
    labs: Optional[Sequence[LabValue]] = None,
) -> str:
    """Plain-text patient snapshot passed to the assistant with every question."""
    if patient is None:
        return "No patient data available."

    if days_of_life is None:
        days_of_life = patient.days_of_life(datetime.now(timezone.utc))

    lines: List[str] = [
        f"PATIENT: {patient.display_name}",
        f"Age: {days_of_life} days of life",
        f"Gestational Age at Birth: {patient.gestational_age_weeks:g} weeks",
        f"Birth Weight: {patient.birth_weight_grams:g}g",
        f"Respiratory: {RespiratorySupport(patient.respiratory_support).value}",
    ]

    if labs is not None:
        lines += [
            "",
            "LABORATORY VALUES:",
            _lab_line(labs, "hgb", "HGB", lambda v: f"{v:.1f} g/dL"),
            _lab_line(labs, "plt", "PLT", lambda v: f"{v / 1000:.0f}K"),
            _lab_line(labs, "tbili", "TBILI", lambda v: f"{v:.1f} mg/dL"),
            _lab_line(labs, "dbili", "DBILI", lambda v: f"{v:.1f} mg/dL"),
            _lab_line(labs, "ldh", "LDH", lambda v: f"{v:g} U/L"),
            _lab_line(labs, "retic", "Reticulocytes", lambda v: f"{v:g}%"),
        ]

    if analysis is not None:
        expected = analysis.expected_rbc_transfusions
        lines += [
            "",
            "TRANSFUSION ANALYSIS:",
            f"  RBC transfusions: {analysis.total_rbc_transfusions} "
            f"(expected {expected.low}-{expected.high}, average {expected.average})",
            f"  Platelet transfusions: {analysis.total_platelet_transfusions}",
            f"  Plasma transfusions: {analysis.total_plasma_transfusions}",
            f"  Unique donors: {analysis.total_unique_donors}",
            f"  Excess severity: {analysis.transfusion_excess_severity.value}",
            f"  Hemolysis risk: {analysis.hemolysis_risk.value}",
        ]
        for indicator in analysis.hemolysis_indicators:
            lines.append(f"    - {indicator.en}")
        if analysis.investigate_root_cause:
            lines.append("  INVESTIGATE ROOT CAUSE before further transfusions")

    if justification is not None:
        lines += [
            "",
            "TRANSFUSION JUSTIFICATION:",
            f"  Status: {justification.status.value} ({justification.severity.value})",
            f"  {justification.message.en}",
        ]

    return "\n".join(lines)


# ========================================
# Plans from assistant responses
# ========================================

def strip_plan_marker(text: str) -> str:
    """Response text for display, without the plan marker."""
    return text.replace(PLAN_MARKER, "").strip()


def _action_from_text(text: str) -> NewAction:
    dosage = _DOSAGE_RE.search(text)
    return NewAction(
        description=Bilingual(text, text),
        dosage=dosage.group(1) if dosage else None,
    )


def _category_for(text: str) -> PlanCategory:
    lowered = text.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return PlanCategory.GENERAL


def parse_plan_from_assistant_response(text: str, patient_id: str) -> Optional[CreateTreatmentPlan]:
    """
    Turn an accepted assistant recommendation into a plan draft.

    Returns None unless the response carries PLAN_MARKER and at least one
    action. Numbered lines are actions; bullet lines are used only when
    there are no numbered lines.
    """
    if PLAN_MARKER not in text:
        return None

    lines = text.split("\n")
    actions: List[NewAction] = []
    title = ""
    summary_parts: List[str] = []

    for line in lines:
        stripped = line.strip()
        if PLAN_MARKER in stripped:
            continue
        if stripped.startswith("##") or stripped.startswith("**Plan"):
            title = re.sub(r"\*+$", "", re.sub(r"^[#*]+\s*", "", stripped)).strip()
            continue
        match = _ACTION_RE.match(stripped)
        if match:
            actions.append(_action_from_text(match.group(2).strip()))
        elif not actions and len(stripped) > 20 and not stripped.startswith("-"):
            summary_parts.append(stripped)

    if not actions:
        for line in lines:
            match = _BULLET_RE.match(line.strip())
            if match:
                actions.append(_action_from_text(match.group(1).strip()))

    if not actions:
        return None

    category = _category_for(text)

    summary = " ".join(summary_parts)
    if len(summary) > SUMMARY_MAX_LENGTH:
        summary = summary[:SUMMARY_MAX_LENGTH - 3] + "..."

    return CreateTreatmentPlan(
        patient_id=patient_id,
        category=category,
        title=Bilingual(title, title) if title else CATEGORY_TITLES[category],
        summary=Bilingual(summary, summary) if summary else DEFAULT_SUMMARY,
        rationale=DEFAULT_RATIONALE,
        actions=actions,
        assistant_recommendation=strip_plan_marker(text),
        occurred_at=datetime.now(timezone.utc).isoformat(),
    )
