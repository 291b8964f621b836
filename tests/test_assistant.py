# test_assistant.py
from conftest import iso
from core.analysis import analyze
from core.assistant import (
    CATEGORY_TITLES,
    DEFAULT_SUMMARY,
    PLAN_MARKER,
    SUMMARY_MAX_LENGTH,
    build_context,
    parse_plan_from_assistant_response,
    strip_plan_marker,
)
from core.justification import evaluate
from core.models import LabValue, PlanCategory, ProductType

ACCEPTED = "Excellent. I have created the treatment plan. [TREATMENT_PLAN_CREATED]"

ANEMIA_RESPONSE = f"""{ACCEPTED}

## Anemia Management Plan

Patient has a hemoglobin of 6.5 g/dL on day of life 10 with rising oxygen needs.

1. Transfuse packed RBCs 15 ml/kg over 3-4 hours
2. Start iron supplementation 6 mg/kg/day
3. Repeat Hgb in 24 hours
"""


def test_marker_is_stable():
    assert PLAN_MARKER == "[TREATMENT_PLAN_CREATED]"


def test_no_marker_no_plan():
    text = ANEMIA_RESPONSE.replace(PLAN_MARKER, "")
    assert parse_plan_from_assistant_response(text, "pt-1") is None


def test_marker_without_actions_no_plan():
    text = f"{ACCEPTED}\n\nI will keep monitoring the hemoglobin closely over the next days."
    assert parse_plan_from_assistant_response(text, "pt-1") is None


def test_numbered_actions():
    draft = parse_plan_from_assistant_response(ANEMIA_RESPONSE, "pt-1")

    assert draft.patient_id == "pt-1"
    assert draft.category == PlanCategory.TRANSFUSION
    assert draft.title.en == "Anemia Management Plan"
    assert draft.summary.en == (
        "Patient has a hemoglobin of 6.5 g/dL on day of life 10 with rising oxygen needs."
    )
    assert [a.description.en for a in draft.actions] == [
        "Transfuse packed RBCs 15 ml/kg over 3-4 hours",
        "Start iron supplementation 6 mg/kg/day",
        "Repeat Hgb in 24 hours",
    ]
    assert [a.dosage for a in draft.actions] == ["15 ml/kg over 3-4 hours", "6 mg/kg/day", None]
    assert PLAN_MARKER not in draft.assistant_recommendation
    assert draft.assistant_recommendation.startswith("Excellent.")


def test_bullets_used_when_no_numbered_lines():
    text = f"{ACCEPTED}\n\n- Start caffeine citrate 20 mg/kg load\n- Wean CPAP as tolerated\n"
    draft = parse_plan_from_assistant_response(text, "pt-1")

    assert [a.description.en for a in draft.actions] == [
        "Start caffeine citrate 20 mg/kg load",
        "Wean CPAP as tolerated",
    ]
    assert draft.category == PlanCategory.RESPIRATORY
    assert draft.title == CATEGORY_TITLES[PlanCategory.RESPIRATORY]
    assert draft.summary == DEFAULT_SUMMARY


def test_bold_plan_title():
    text = f"{ACCEPTED}\n**Plan de sepsis**\n1. Draw blood culture before antibiotics\n"
    draft = parse_plan_from_assistant_response(text, "pt-1")
    assert draft.title.en == "Plan de sepsis"


def test_general_category_when_no_keyword_matches():
    text = f"{ACCEPTED}\n1. Discuss with family at 16:00\n"
    draft = parse_plan_from_assistant_response(text, "pt-1")
    assert draft.category == PlanCategory.GENERAL


def test_summary_is_truncated():
    long_line = "Rationale " * 60
    text = f"{ACCEPTED}\n{long_line}\n1. Order DAT and antibody screen\n"
    draft = parse_plan_from_assistant_response(text, "pt-1")
    assert len(draft.summary.en) == SUMMARY_MAX_LENGTH
    assert draft.summary.en.endswith("...")


def test_strip_plan_marker():
    assert strip_plan_marker(ACCEPTED) == "Excellent. I have created the treatment plan."


def test_build_context_without_patient():
    assert build_context(None) == "No patient data available."


def test_build_context(patient):
    labs = [
        LabValue(patient.id, "hgb", iso(3), 8.0),
        LabValue(patient.id, "hgb", iso(1), 6.5),
    ]
    analysis = analyze(patient, [], labs)
    justification = evaluate(ProductType.RBC, 6.5, iso(1), False, 10, False)

    context = build_context(patient, analysis, justification, days_of_life=10, labs=labs)
    lines = context.split("\n")

    assert lines[:5] == [
        "PATIENT: Baby Martinez",
        "Age: 10 days of life",
        "Gestational Age at Birth: 28 weeks",
        "Birth Weight: 900g",
        "Respiratory: room_air",
    ]
    assert "  HGB: 6.5 g/dL (trend: down)" in lines
    assert "  PLT: Not available" in lines
    assert "TRANSFUSION ANALYSIS:" in lines
    assert "TRANSFUSION JUSTIFICATION:" in lines
    assert any(line.strip() == justification.message.en for line in lines)


def test_build_context_omits_missing_sections(patient):
    context = build_context(patient, days_of_life=3)
    assert "LABORATORY VALUES:" not in context
    assert "TRANSFUSION ANALYSIS:" not in context
    assert "Age: 3 days of life" in context
