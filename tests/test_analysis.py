# test_analysis.py
import pytest

from conftest import AS_OF, iso
from core.analysis import (
    CAUSE_ERYTHROPOIESIS,
    CAUSE_HEMOLYSIS,
    CAUSE_NUTRITIONAL,
    CAUSE_OCCULT_BLEEDING,
    CAUSE_PHLEBOTOMY,
    HEMOLYSIS_CAUSES,
    analyze,
    excess_severity,
    expected_rbc_transfusions,
)
from core.models import (
    ExcessSeverity,
    ExpectedRange,
    HemolysisRisk,
    LabValue,
    Patient,
    ProductType,
    Transfusion,
)


def rbc(patient_id, days_before, donor="D-1", volume=15):
    return Transfusion(patient_id, iso(days_before), ProductType.RBC, volume, donor)


def lab(patient_id, lab_type_id, value, days_before=1):
    return LabValue(patient_id, lab_type_id, iso(days_before), value)


@pytest.fixture
def late_preterm():
    """34 weeks, expected RBC range 0/1/2"""
    return Patient("pt-late", "Baby Late", "2025-03-01", 34, 2000)


@pytest.mark.parametrize("ga, weight, expected", [
    (25, 1200, (3, 6, 10)),
    (29, 900, (3, 6, 10)),
    (27, 1600, (2, 4, 7)),
    (30, 1400, (2, 4, 7)),
    (30, 1600, (1, 2, 4)),
    (34, 2000, (0, 1, 2)),
    (39, 3200, (0, 0, 1)),
])
def test_expected_rbc_transfusions(ga, weight, expected):
    assert expected_rbc_transfusions(ga, weight) == ExpectedRange(*expected)


@pytest.mark.parametrize("count, severity", [
    (0, ExcessSeverity.NORMAL),
    (1, ExcessSeverity.ELEVATED),
    (2, ExcessSeverity.HIGH),
    (3, ExcessSeverity.VERY_HIGH),
])
def test_excess_severity(count, severity):
    assert excess_severity(count, ExpectedRange(0, 1, 2)) == severity


def test_empty_history_is_low_risk(patient):
    result = analyze(patient, [], [], as_of=AS_OF)
    assert result.total_rbc_transfusions == 0
    assert result.transfusion_excess_severity == ExcessSeverity.NORMAL
    assert result.hemolysis_risk == HemolysisRisk.LOW
    assert result.hemolysis_indicators == []
    assert not result.investigate_root_cause
    assert result.possible_causes == []
    assert len(result.recommendations) == 1
    assert "within expected range for 28-week infant" in result.recommendations[0].en


def test_counts_and_donors(patient):
    transfusions = [
        rbc(patient.id, 20, "D-1"),
        rbc(patient.id, 15, "D-2"),
        Transfusion(patient.id, iso(12), ProductType.PLATELET, 10, "D-2"),
        Transfusion(patient.id, iso(11), ProductType.PLASMA, 10, "D-3"),
    ]
    result = analyze(patient, transfusions, [], as_of=AS_OF)
    assert result.total_rbc_transfusions == 2
    assert result.total_platelet_transfusions == 1
    assert result.total_plasma_transfusions == 1
    assert result.total_unique_donors == 3


def test_above_average_triggers_investigation(late_preterm):
    transfusions = [rbc(late_preterm.id, d) for d in (30, 25, 20)]
    result = analyze(late_preterm, transfusions, [], as_of=AS_OF)

    assert result.is_above_average_transfusions
    assert result.transfusion_excess_severity == ExcessSeverity.VERY_HIGH
    assert result.investigate_root_cause
    assert "INVESTIGATE ROOT CAUSE" in result.recommendations[0].en
    # no hemolysis indicators, so hemolysis is not listed
    assert result.possible_causes == [
        CAUSE_PHLEBOTOMY, CAUSE_OCCULT_BLEEDING, CAUSE_ERYTHROPOIESIS, CAUSE_NUTRITIONAL,
    ]


def test_elevated_but_not_above_average_is_not_investigated(late_preterm):
    result = analyze(late_preterm, [rbc(late_preterm.id, 20)], [], as_of=AS_OF)
    assert result.transfusion_excess_severity == ExcessSeverity.ELEVATED
    assert not result.is_above_average_transfusions
    assert not result.investigate_root_cause
    assert result.possible_causes == []


def test_high_hemolysis_risk(patient):
    labs = [
        lab(patient.id, "ldh", 1200),
        lab(patient.id, "hapto", 5),
        lab(patient.id, "retic", 9),
    ]
    result = analyze(patient, [], labs, as_of=AS_OF)

    assert result.hemolysis_risk == HemolysisRisk.HIGH
    assert len(result.hemolysis_indicators) == 3
    assert result.hemolysis_indicators[0].en == "LDH very elevated: 1200 U/L (>1000)"
    assert result.investigate_root_cause
    assert any("HIGH HEMOLYSIS RISK" in r.en for r in result.recommendations)

    assert CAUSE_HEMOLYSIS in result.possible_causes
    # reticulocytes are up, so the marrow is responding
    assert CAUSE_ERYTHROPOIESIS not in result.possible_causes
    for cause in HEMOLYSIS_CAUSES:
        assert cause in result.possible_causes


def test_labs_outside_window_are_ignored(patient):
    labs = [
        lab(patient.id, "ldh", 1200, days_before=10),
        lab(patient.id, "hapto", 5, days_before=8),
        lab(patient.id, "retic", 9, days_before=7.5),
    ]
    result = analyze(patient, [], labs, as_of=AS_OF)
    assert result.hemolysis_risk == HemolysisRisk.LOW
    assert result.hemolysis_indicators == []


def test_as_of_moves_the_window(patient):
    labs = [lab(patient.id, "ldh", 1200, days_before=10)]
    later = analyze(patient, [], labs, as_of=AS_OF)
    earlier = analyze(patient, [], labs, as_of=AS_OF.replace(day=8))
    assert later.hemolysis_indicators == []
    assert len(earlier.hemolysis_indicators) == 1


def test_recent_transfusion_lowers_risk_bar(patient):
    labs = [lab(patient.id, "ldh", 700)]
    without = analyze(patient, [], labs, as_of=AS_OF)
    with_recent = analyze(patient, [rbc(patient.id, 2)], labs, as_of=AS_OF)
    assert without.hemolysis_risk == HemolysisRisk.LOW
    assert with_recent.hemolysis_risk == HemolysisRisk.MODERATE
    assert any("Moderate hemolysis" in r.en for r in with_recent.recommendations)


def test_old_transfusion_is_not_recent(patient):
    labs = [lab(patient.id, "ldh", 700)]
    result = analyze(patient, [rbc(patient.id, 9)], labs, as_of=AS_OF)
    assert result.hemolysis_risk == HemolysisRisk.LOW


def test_trend_from_zero_is_stable(patient):
    labs = [
        lab(patient.id, "ldh", 0, days_before=3),
        lab(patient.id, "ldh", 500, days_before=1),
    ]
    result = analyze(patient, [], labs, as_of=AS_OF)
    assert result.hemolysis_indicators == []


def test_rising_ldh_trend_is_an_indicator(patient):
    labs = [
        lab(patient.id, "ldh", 300, days_before=3),
        lab(patient.id, "ldh", 500, days_before=1),
    ]
    result = analyze(patient, [], labs, as_of=AS_OF)
    assert [i.en for i in result.hemolysis_indicators] == ["LDH trending up"]


def test_direct_bilirubin_recommendation(patient):
    labs = [
        lab(patient.id, "tbili", 5.0),
        lab(patient.id, "dbili", 1.5),
    ]
    result = analyze(patient, [], labs, as_of=AS_OF)
    assert result.hemolysis_risk == HemolysisRisk.LOW
    assert len(result.hemolysis_indicators) == 1
    assert result.recommendations[0].en.startswith("Direct bilirubin elevated (1.5 mg/dL, 30% of total)")
    assert not any("within expected range" in r.en for r in result.recommendations)


def test_unparseable_timestamps_do_not_raise(patient):
    labs = [LabValue(patient.id, "ldh", "not-a-date", 1500)]
    transfusions = [Transfusion(patient.id, "yesterday", ProductType.RBC, 15, "D-1")]
    result = analyze(patient, transfusions, labs, as_of=AS_OF)
    assert result.total_rbc_transfusions == 1
    assert result.hemolysis_risk == HemolysisRisk.LOW
