# test_justification.py
import pytest

from core.justification import (
    cumulative_exposure_status,
    donor_exposure_status,
    evaluate,
    latest_lab,
)
from core.models import JustificationStatus, LabValue, ProductType, Severity

TS = "2025-03-15T08:00:00+00:00"


# ========================================
# Emergency override
# ========================================

@pytest.mark.parametrize("product", list(ProductType))
@pytest.mark.parametrize("value", [None, 0, 1.2, 6.5, 30000, 120000])
def test_emergency_is_always_ok(product, value):
    result = evaluate(product, value, TS if value is not None else None, True, 10, True)
    assert result.severity == Severity.OK
    assert result.status == JustificationStatus.JUSTIFIED
    assert result.message.en.startswith("Emergency transfusion")
    assert result.message.es


# ========================================
# Missing data and unevaluated products
# ========================================

def test_missing_lab_is_warning():
    result = evaluate(ProductType.RBC, None, None, False, 10, False)
    assert result.severity == Severity.WARNING
    assert result.status == JustificationStatus.NEEDS_JUSTIFICATION
    assert "Hemoglobin" in result.message.en


def test_other_product_needs_documentation():
    result = evaluate(ProductType.OTHER, 5.0, TS, False, 10, False)
    assert result.severity == Severity.WARNING
    assert result.message.en == "No standard lab criteria - document clinical justification"


# ========================================
# Platelets
# ========================================

@pytest.mark.parametrize("value", [0, 10000, 24999, 25000, 25001, 49000, 150000])
def test_platelet_threshold(value):
    result = evaluate(ProductType.PLATELET, value, TS, False, 10, False)
    if value < 25000:
        assert result.severity == Severity.OK
        assert result.status == JustificationStatus.JUSTIFIED
    else:
        assert result.severity == Severity.CRITICAL
        assert result.status == JustificationStatus.NOT_JUSTIFIED


def test_platelet_message_formats_count():
    result = evaluate(ProductType.PLATELET, 18000, TS, False, 10, False)
    assert "PLT 18,000/μL < 25,000" in result.message.en


def test_platelet_active_bleeding_uses_bleeding_threshold():
    bleeding = evaluate(ProductType.PLATELET, 30000, TS, False, 10, False, active_bleeding=True)
    assert bleeding.severity == Severity.OK
    assert bleeding.basis.threshold == 50000
    assert "active bleeding" in bleeding.message.en

    stable = evaluate(ProductType.PLATELET, 30000, TS, False, 10, False)
    assert stable.severity == Severity.CRITICAL

    at_limit = evaluate(ProductType.PLATELET, 50000, TS, False, 10, False, active_bleeding=True)
    assert at_limit.severity == Severity.CRITICAL


# ========================================
# RBC
# ========================================

def test_rbc_day_ten_hgb_six_point_five_is_justified():
    result = evaluate(ProductType.RBC, 6.5, TS, False, 10, False)
    assert result.severity == Severity.OK
    assert result.basis.threshold == 8.5
    assert result.latest_lab_value == 6.5
    assert result.latest_lab_date == TS
    assert "Second week of life" in result.message.en


def test_rbc_at_threshold_is_critical():
    result = evaluate(ProductType.RBC, 8.5, TS, False, 10, False)
    assert result.severity == Severity.CRITICAL
    assert result.status == JustificationStatus.NOT_JUSTIFIED


def test_rbc_respiratory_support_raises_threshold():
    assert evaluate(ProductType.RBC, 9.0, TS, False, 10, True).severity == Severity.OK
    assert evaluate(ProductType.RBC, 9.0, TS, False, 10, False).severity == Severity.CRITICAL


def test_rbc_threshold_differs_across_band_boundary():
    # 9.0 is under the week-one stable threshold (10.0) but not the week-two one (8.5)
    assert evaluate(ProductType.RBC, 9.0, TS, False, 7, False).severity == Severity.OK
    assert evaluate(ProductType.RBC, 9.0, TS, False, 8, False).severity == Severity.CRITICAL


def test_rbc_without_age_uses_general_threshold():
    assert evaluate(ProductType.RBC, 6.9, TS, False, None, False).severity == Severity.OK
    assert evaluate(ProductType.RBC, 7.0, TS, False, None, False).severity == Severity.CRITICAL


# ========================================
# Plasma
# ========================================

@pytest.mark.parametrize("inr, severity", [
    (2.5, Severity.OK),
    (2.0, Severity.WARNING),
    (1.8, Severity.WARNING),
    (1.5, Severity.CRITICAL),
    (1.1, Severity.CRITICAL),
])
def test_plasma_inr_bands(inr, severity):
    assert evaluate(ProductType.PLASMA, inr, TS, False, 10, False).severity == severity


def test_plasma_without_inr_is_warning():
    result = evaluate(ProductType.PLASMA, None, None, False, 10, False)
    assert result.severity == Severity.WARNING
    assert "INR" in result.message.en


# ========================================
# Cumulative and donor exposure
# ========================================

def test_cumulative_exposure_for_900g_infant():
    status = cumulative_exposure_status(ProductType.RBC, 50, 900)
    assert status.ml_per_kg == pytest.approx(55.56, abs=0.01)
    assert status.status == Severity.OK
    assert status.percent_of_warning == pytest.approx(55.56 / 80 * 100, abs=0.05)

    platelets = cumulative_exposure_status(ProductType.PLATELET, 50, 900)
    assert platelets.status == Severity.CRITICAL


def test_cumulative_exposure_boundaries_are_inclusive():
    assert cumulative_exposure_status(ProductType.RBC, 80, 1000).status == Severity.WARNING
    assert cumulative_exposure_status(ProductType.RBC, 120, 1000).status == Severity.CRITICAL
    assert cumulative_exposure_status(ProductType.RBC, 79.9, 1000).status == Severity.OK


def test_cumulative_percent_is_uncapped():
    status = cumulative_exposure_status(ProductType.RBC, 200, 1000)
    assert status.percent_of_warning == pytest.approx(250)
    assert status.message.en.startswith("Critical:")


def test_doubling_volume_never_lowers_severity():
    volume = 5.0
    previous = cumulative_exposure_status(ProductType.RBC, volume, 900)
    for _ in range(8):
        volume *= 2
        current = cumulative_exposure_status(ProductType.RBC, volume, 900)
        assert current.ml_per_kg > previous.ml_per_kg
        assert current.status.rank >= previous.status.rank
        previous = current


def test_cumulative_exposure_rejects_bad_inputs():
    with pytest.raises(ValueError):
        cumulative_exposure_status(ProductType.RBC, 10, 0)
    with pytest.raises(ValueError):
        cumulative_exposure_status(ProductType.RBC, -1, 900)


@pytest.mark.parametrize("count, severity", [
    (0, Severity.OK),
    (2, Severity.OK),
    (3, Severity.WARNING),
    (4, Severity.WARNING),
    (5, Severity.CRITICAL),
    (9, Severity.CRITICAL),
])
def test_donor_exposure(count, severity):
    status = donor_exposure_status(count)
    assert status.status == severity
    assert status.unique_donors == count


def test_latest_lab_picks_most_recent():
    labs = [
        LabValue("p", "hgb", "2025-03-14T08:00:00+00:00", 8.1),
        LabValue("p", "hgb", "2025-03-15T08:00:00+00:00", 7.2),
        LabValue("p", "plt", "2025-03-16T08:00:00+00:00", 90000),
        LabValue("p", "hgb", "2025-03-13T08:00:00+00:00", 9.0),
    ]
    assert latest_lab(labs, "hgb").value == 7.2
    assert latest_lab(labs, "inr") is None
