# test_transfusion_review.py
import pytest

from conftest import AS_OF, iso
from core.database import DEMO_PATIENT_ID, init_database
from core.models import (
    ExcessSeverity,
    JustificationStatus,
    LabValue,
    ProductType,
    Severity,
    Transfusion,
)
from services import db_operations
from services.transfusion_review import analyze_patient, review_transfusion


@pytest.fixture
def history(db, patient):
    db_operations.create_patient(patient)
    db_operations.add_lab_value(LabValue(patient.id, "hgb", iso(3), 8.0, "g/dL"))
    db_operations.add_lab_value(LabValue(patient.id, "hgb", iso(1), 6.5, "g/dL"))
    db_operations.add_transfusion(Transfusion(patient.id, iso(8), ProductType.RBC, 30, "D-1"))
    db_operations.add_transfusion(Transfusion(patient.id, iso(5), ProductType.RBC, 20, "D-2"))
    return patient


def test_review_rbc_uses_latest_hgb_and_exposure(history):
    review = review_transfusion(history.id, ProductType.RBC, is_emergency=False, as_of=AS_OF)

    assert review.justification.status == JustificationStatus.JUSTIFIED
    assert review.justification.latest_lab_value == 6.5
    assert review.justification.basis.threshold == 8.5
    assert review.cumulative_exposure.ml_per_kg == pytest.approx(55.56, abs=0.01)
    assert review.cumulative_exposure.status == Severity.OK
    assert review.donor_exposure.unique_donors == 2
    assert review.donor_exposure.status == Severity.OK


def test_review_platelets_without_count(history):
    review = review_transfusion(history.id, ProductType.PLATELET, is_emergency=False, as_of=AS_OF)
    assert review.justification.severity == Severity.WARNING
    assert review.cumulative_exposure.ml_per_kg == 0


def test_review_unknown_patient(db):
    with pytest.raises(LookupError):
        review_transfusion("missing", ProductType.RBC, is_emergency=False)


def test_transfusion_stats(history):
    stats = db_operations.get_transfusion_stats(history.id)
    assert stats.total_count == 2
    assert stats.total_volume == 50
    assert stats.volume_by_type[ProductType.RBC] == 50
    assert stats.volume_by_type[ProductType.PLATELET] == 0.0


def test_negative_volume_is_rejected(history):
    with pytest.raises(ValueError):
        db_operations.add_transfusion(Transfusion(history.id, iso(0), ProductType.RBC, -5, "D-3"))


def test_analyze_patient(history):
    analysis = analyze_patient(history.id, as_of=AS_OF)
    assert analysis.total_rbc_transfusions == 2
    assert analysis.transfusion_excess_severity == ExcessSeverity.NORMAL


def test_seeded_demo_patient(db):
    init_database(seed=True)
    patient = db_operations.get_patient(DEMO_PATIENT_ID)
    assert patient.display_name == "Mila Restrepo"
    assert patient.on_respiratory_support

    analysis = analyze_patient(DEMO_PATIENT_ID)
    assert analysis.total_rbc_transfusions == 4
    assert analysis.transfusion_excess_severity == ExcessSeverity.VERY_HIGH
    assert analysis.investigate_root_cause
