# transfusion_review.py
# Runs the justification evaluator and analysis engine over a patient's stored history
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from core import justification
from core.analysis import analyze
from core.models import (
    CumulativeExposureStatus,
    DonorExposureStatus,
    Patient,
    ProductType,
    TransfusionAnalysis,
    TransfusionJustification,
)
from core.thresholds import threshold_for
from services import db_operations

logger = logging.getLogger("mila.review")


@dataclass
class TransfusionReview:
    """Everything shown in the transfusion order panel for one proposed product"""
    product_type: ProductType
    justification: TransfusionJustification
    cumulative_exposure: CumulativeExposureStatus
    donor_exposure: DonorExposureStatus


def _require_patient(patient_id: str) -> Patient:
    patient = db_operations.get_patient(patient_id)
    if patient is None:
        raise LookupError(f"Patient not found: {patient_id}")
    return patient


def review_transfusion(patient_id: str, product_type: ProductType, is_emergency: bool,
                       as_of: Optional[datetime] = None,
                       active_bleeding: bool = False) -> TransfusionReview:
    """Evaluate a proposed transfusion against the latest lab and the patient's exposure so far"""
    product_type = ProductType(product_type)
    as_of = as_of or datetime.now(timezone.utc)
    patient = _require_patient(patient_id)

    lab_type_id = threshold_for(product_type).lab_type_id
    latest = None
    if lab_type_id:
        latest = justification.latest_lab(db_operations.list_lab_values(patient_id, lab_type_id), lab_type_id)

    result = justification.evaluate(
        product_type,
        latest.value if latest else None,
        latest.occurred_at if latest else None,
        is_emergency,
        days_of_life=patient.days_of_life(as_of),
        on_respiratory_support=patient.on_respiratory_support,
        active_bleeding=active_bleeding,
    )

    stats = db_operations.get_transfusion_stats(patient_id)
    cumulative = justification.cumulative_exposure_status(
        product_type, stats.volume_by_type.get(product_type, 0.0), patient.birth_weight_grams,
    )
    donors = justification.donor_exposure_status(stats.unique_donors)

    logger.info(
        "Transfusion review for %s: %s %s, cumulative %s, donors %s",
        patient_id, product_type.value, result.severity.value,
        cumulative.status.value, donors.status.value,
    )
    return TransfusionReview(product_type, result, cumulative, donors)


def analyze_patient(patient_id: str, as_of: Optional[datetime] = None) -> TransfusionAnalysis:
    patient = _require_patient(patient_id)
    return analyze(
        patient,
        db_operations.list_transfusions(patient_id),
        db_operations.list_lab_values(patient_id),
        as_of=as_of,
    )
