"""
Transfusion justification evaluator.

Pure functions: given the latest lab value and patient context, decide whether
a proposed transfusion is indicated, and report cumulative volume and donor
exposure. No function here reads from storage or keeps state between calls.
"""

from __future__ import annotations

from typing import Iterable, Optional

from core.models import (
    Bilingual,
    CumulativeExposureStatus,
    DonorExposureStatus,
    JustificationStatus,
    LabValue,
    ProductType,
    Severity,
    ThresholdBasis,
    TransfusionJustification,
    parse_iso,
)
from core.thresholds import (
    CUMULATIVE_LIMITS,
    DONOR_EXPOSURE_LIMITS,
    TransfusionThreshold,
    rbc_threshold_for_age,
    threshold_for,
)


def _num(value: float) -> str:
    """Compact threshold formatting: 10 -> '10', 8.5 -> '8.5'"""
    return f"{value:g}"


def _plt(value: float) -> str:
    return f"{value:,.0f}"


def latest_lab(labs: Iterable[LabValue], lab_type_id: str) -> Optional[LabValue]:
    """Most recent value of one lab type, or None when there is none."""
    latest = None
    latest_at = None
    for lab in labs:
        if lab.lab_type_id != lab_type_id:
            continue
        at = parse_iso(lab.occurred_at)
        if at is None:
            continue
        if latest_at is None or at > latest_at:
            latest, latest_at = lab, at
    return latest


def evaluate(
    product_type: ProductType,
    latest_lab_value: Optional[float],
    latest_lab_timestamp: Optional[str],
    is_emergency: bool,
    days_of_life: Optional[int] = None,
    on_respiratory_support: bool = False,
    active_bleeding: bool = False,
) -> TransfusionJustification:
    """
    Decide whether a transfusion of ``product_type`` is justified.

    Emergency transfusions bypass every lab check. Without a lab value the
    result is a ``warning`` asking for labs or documentation. ``active_bleeding``
    switches platelets to the bleeding threshold; it is never inferred.
    """
    product_type = ProductType(product_type)

    if is_emergency:
        return TransfusionJustification(
            status=JustificationStatus.JUSTIFIED,
            severity=Severity.OK,
            message=Bilingual(
                "Emergency transfusion - no lab validation required",
                "Transfusión de emergencia - no requiere validación de laboratorio",
            ),
            latest_lab_value=latest_lab_value,
            latest_lab_date=latest_lab_timestamp,
        )

    threshold = threshold_for(product_type)

    if not threshold.lab_type_id:
        return TransfusionJustification(
            status=JustificationStatus.NEEDS_JUSTIFICATION,
            severity=Severity.WARNING,
            message=Bilingual(
                "No standard lab criteria - document clinical justification",
                "Sin criterios de laboratorio estándar - documentar justificación clínica",
            ),
        )

    if latest_lab_value is None:
        return TransfusionJustification(
            status=JustificationStatus.NEEDS_JUSTIFICATION,
            severity=Severity.WARNING,
            message=Bilingual(
                f"No recent {threshold.lab_name} available - obtain labs or document justification",
                f"No hay {threshold.lab_name} reciente - obtener laboratorios o documentar justificación",
            ),
            basis=ThresholdBasis(threshold.lab_type_id, threshold.non_bleeding_threshold, threshold.unit),
        )

    if product_type == ProductType.RBC:
        result = _evaluate_rbc(threshold, latest_lab_value, days_of_life, on_respiratory_support)
    elif product_type == ProductType.PLATELET:
        result = _evaluate_platelet(threshold, latest_lab_value, active_bleeding)
    else:
        result = _evaluate_plasma(threshold, latest_lab_value)

    result.latest_lab_value = latest_lab_value
    result.latest_lab_date = latest_lab_timestamp
    result.clinical_note = threshold.notes
    return result


def _evaluate_rbc(
    threshold: TransfusionThreshold,
    hgb: float,
    days_of_life: Optional[int],
    on_respiratory_support: bool,
) -> TransfusionJustification:
    if days_of_life is not None:
        age = rbc_threshold_for_age(days_of_life, on_respiratory_support)
        limit = age.threshold
        band_en, band_es = age.description.en, age.description.es
        basis = ThresholdBasis(threshold.lab_type_id, limit, threshold.unit, age.description)
    else:
        limit = threshold.non_bleeding_threshold
        band_en, band_es = "general preterm threshold", "umbral general de prematuro"
        basis = ThresholdBasis(threshold.lab_type_id, limit, threshold.unit)

    if hgb < limit:
        return TransfusionJustification(
            status=JustificationStatus.JUSTIFIED,
            severity=Severity.OK,
            message=Bilingual(
                f"Hgb {hgb:.1f} g/dL < {_num(limit)} g/dL ({band_en}) - transfusion indicated",
                f"Hgb {hgb:.1f} g/dL < {_num(limit)} g/dL ({band_es}) - transfusión indicada",
            ),
            basis=basis,
        )
    return TransfusionJustification(
        status=JustificationStatus.NOT_JUSTIFIED,
        severity=Severity.CRITICAL,
        message=Bilingual(
            f"Hgb {hgb:.1f} g/dL ≥ {_num(limit)} g/dL ({band_en}) - transfusion NOT indicated "
            f"(ETTNO/TOP evidence). Strong clinical justification required.",
            f"Hgb {hgb:.1f} g/dL ≥ {_num(limit)} g/dL ({band_es}) - transfusión NO indicada "
            f"(evidencia ETTNO/TOP). Justificación clínica fuerte requerida.",
        ),
        basis=basis,
    )


def _evaluate_platelet(
    threshold: TransfusionThreshold,
    plt: float,
    active_bleeding: bool,
) -> TransfusionJustification:
    if active_bleeding:
        limit = threshold.bleeding_threshold
        basis_desc = Bilingual("Active bleeding threshold", "Umbral de sangrado activo")
    else:
        limit = threshold.non_bleeding_threshold
        basis_desc = Bilingual("Stable preterm (PlaNeT-2)", "Prematuro estable (PlaNeT-2)")
    basis = ThresholdBasis(threshold.lab_type_id, limit, threshold.unit, basis_desc)

    if plt < limit:
        if active_bleeding:
            message = Bilingual(
                f"PLT {_plt(plt)}/μL < {_plt(limit)} with documented active bleeding - transfusion indicated",
                f"PLT {_plt(plt)}/μL < {_plt(limit)} con sangrado activo documentado - transfusión indicada",
            )
        else:
            message = Bilingual(
                f"PLT {_plt(plt)}/μL < {_plt(limit)} - transfusion indicated per PlaNeT-2 guidelines",
                f"PLT {_plt(plt)}/μL < {_plt(limit)} - transfusión indicada según guías PlaNeT-2",
            )
        return TransfusionJustification(
            status=JustificationStatus.JUSTIFIED,
            severity=Severity.OK,
            message=message,
            basis=basis,
        )
    return TransfusionJustification(
        status=JustificationStatus.NOT_JUSTIFIED,
        severity=Severity.CRITICAL,
        message=Bilingual(
            f"PLT {_plt(plt)}/μL ≥ {_plt(limit)} - transfusion NOT indicated. "
            f"PlaNeT-2 showed increased mortality with liberal transfusion.",
            f"PLT {_plt(plt)}/μL ≥ {_plt(limit)} - transfusión NO indicada. "
            f"PlaNeT-2 mostró mayor mortalidad con transfusión liberal.",
        ),
        basis=basis,
    )


def _evaluate_plasma(threshold: TransfusionThreshold, inr: float) -> TransfusionJustification:
    upper = threshold.non_bleeding_threshold
    lower = threshold.bleeding_threshold
    basis = ThresholdBasis(threshold.lab_type_id, upper, threshold.unit)

    if inr > upper:
        return TransfusionJustification(
            status=JustificationStatus.JUSTIFIED,
            severity=Severity.OK,
            message=Bilingual(
                f"INR {inr:.1f} > {_num(upper)} - plasma may be indicated WITH active bleeding",
                f"INR {inr:.1f} > {_num(upper)} - plasma puede estar indicado CON sangrado activo",
            ),
            basis=basis,
        )
    if inr > lower:
        return TransfusionJustification(
            status=JustificationStatus.NEEDS_JUSTIFICATION,
            severity=Severity.WARNING,
            message=Bilingual(
                f"INR {inr:.1f} - plasma rarely indicated in neonates. Requires active bleeding. Document indication.",
                f"INR {inr:.1f} - plasma raramente indicado en neonatos. Requiere sangrado activo. Documentar indicación.",
            ),
            basis=basis,
        )
    return TransfusionJustification(
        status=JustificationStatus.NOT_JUSTIFIED,
        severity=Severity.CRITICAL,
        message=Bilingual(
            f"INR {inr:.1f} ≤ {_num(lower)} - plasma NOT indicated. Do not use prophylactically.",
            f"INR {inr:.1f} ≤ {_num(lower)} - plasma NO indicado. No usar profilácticamente.",
        ),
        basis=basis,
    )


def cumulative_exposure_status(
    product_type: ProductType,
    cumulative_volume_ml: float,
    birth_weight_grams: float,
) -> CumulativeExposureStatus:
    """Cumulative transfused volume per kg of birth weight against the product's limits."""
    if birth_weight_grams <= 0:
        raise ValueError(f"birth_weight_grams must be positive, got {birth_weight_grams}")
    if cumulative_volume_ml < 0:
        raise ValueError(f"cumulative_volume_ml must not be negative, got {cumulative_volume_ml}")

    limits = CUMULATIVE_LIMITS[ProductType(product_type)]
    ml_per_kg = cumulative_volume_ml / (birth_weight_grams / 1000)
    percent_of_warning = ml_per_kg / limits.warning_ml_per_kg * 100
    percent_of_critical = ml_per_kg / limits.critical_ml_per_kg * 100

    if ml_per_kg >= limits.critical_ml_per_kg:
        status = Severity.CRITICAL
        message = Bilingual(
            f"Critical: {ml_per_kg:.1f} ml/kg cumulative ({percent_of_critical:.0f}% of critical threshold)",
            f"Crítico: {ml_per_kg:.1f} ml/kg acumulado ({percent_of_critical:.0f}% del umbral crítico)",
        )
    elif ml_per_kg >= limits.warning_ml_per_kg:
        status = Severity.WARNING
        message = Bilingual(
            f"Warning: {ml_per_kg:.1f} ml/kg cumulative ({percent_of_warning:.0f}% of warning threshold)",
            f"Advertencia: {ml_per_kg:.1f} ml/kg acumulado ({percent_of_warning:.0f}% del umbral de advertencia)",
        )
    else:
        status = Severity.OK
        message = Bilingual(
            f"{ml_per_kg:.1f} ml/kg cumulative ({percent_of_warning:.0f}% of warning threshold)",
            f"{ml_per_kg:.1f} ml/kg acumulado ({percent_of_warning:.0f}% del umbral de advertencia)",
        )

    return CumulativeExposureStatus(
        status=status,
        ml_per_kg=ml_per_kg,
        percent_of_warning=percent_of_warning,
        percent_of_critical=percent_of_critical,
        message=message,
    )


def donor_exposure_status(unique_donor_count: int) -> DonorExposureStatus:
    if unique_donor_count >= DONOR_EXPOSURE_LIMITS.critical:
        status = Severity.CRITICAL
        message = Bilingual(
            f"Critical: Exposed to {unique_donor_count} unique donors "
            f"(high alloimmunization risk - use dedicated donor)",
            f"Crítico: Expuesto a {unique_donor_count} donantes únicos "
            f"(alto riesgo de aloinmunización - usar donante dedicado)",
        )
    elif unique_donor_count >= DONOR_EXPOSURE_LIMITS.warning:
        status = Severity.WARNING
        message = Bilingual(
            f"Warning: Exposed to {unique_donor_count} unique donors (consider dedicated donor program)",
            f"Advertencia: Expuesto a {unique_donor_count} donantes únicos (considerar programa de donante dedicado)",
        )
    else:
        status = Severity.OK
        message = Bilingual(
            f"{unique_donor_count} unique donor(s)",
            f"{unique_donor_count} donante(s) único(s)",
        )
    return DonorExposureStatus(status=status, unique_donors=unique_donor_count, message=message)
