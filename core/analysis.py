"""
Transfusion analysis engine.

Looks at a patient's full transfusion and lab history and reports:
  - RBC transfusion count against the expected range for gestational age
  - hemolysis risk from LDH, haptoglobin, reticulocytes and bilirubin
  - whether the team should investigate a root cause before transfusing again

Expected counts follow published VLBW transfusion-exposure data; hemolysis
rules follow the restrictive-transfusion literature (ETTNO, TOP).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence

from core.models import (
    Bilingual,
    ExcessSeverity,
    ExpectedRange,
    HemolysisRisk,
    LabValue,
    Patient,
    ProductType,
    Transfusion,
    TransfusionAnalysis,
    parse_iso,
)

logger = logging.getLogger("mila.analysis")

RECENT_WINDOW = timedelta(days=7)

# Trend changes smaller than this (percent) are treated as stable
TREND_STABLE_PERCENT = 10


# ========================================
# Expected RBC transfusion counts
# ========================================

def expected_rbc_transfusions(gestational_age_weeks: float, birth_weight_grams: float) -> ExpectedRange:
    """Expected RBC transfusions over a NICU stay, by maturity and birth weight."""
    # ELBW or extremely preterm
    if birth_weight_grams < 1000 or gestational_age_weeks < 26:
        return ExpectedRange(low=3, average=6, high=10)
    # VLBW or very preterm
    if birth_weight_grams < 1500 or gestational_age_weeks < 28:
        return ExpectedRange(low=2, average=4, high=7)
    if gestational_age_weeks < 32:
        return ExpectedRange(low=1, average=2, high=4)
    if gestational_age_weeks < 37:
        return ExpectedRange(low=0, average=1, high=2)
    return ExpectedRange(low=0, average=0, high=1)


def excess_severity(rbc_count: int, expected: ExpectedRange) -> ExcessSeverity:
    if rbc_count > expected.high:
        return ExcessSeverity.VERY_HIGH
    if rbc_count > expected.average:
        return ExcessSeverity.HIGH
    if rbc_count > expected.low:
        return ExcessSeverity.ELEVATED
    return ExcessSeverity.NORMAL


# ========================================
# Hemolysis
# ========================================

@dataclass
class _TimedLab:
    lab: LabValue
    at: datetime


class _RecentLabs:
    """Labs inside the recent window, newest first per lab type"""

    def __init__(self, labs: Iterable[LabValue], since: datetime):
        timed = []
        for lab in labs:
            at = parse_iso(lab.occurred_at)
            if at is None or at < since:
                continue
            timed.append(_TimedLab(lab, at))
        timed.sort(key=lambda t: t.at, reverse=True)
        self._labs = timed

    def series(self, lab_type_id: str) -> List[LabValue]:
        return [t.lab for t in self._labs if t.lab.lab_type_id == lab_type_id]

    def latest(self, lab_type_id: str) -> Optional[LabValue]:
        values = self.series(lab_type_id)
        return values[0] if values else None

    def trend(self, lab_type_id: str) -> str:
        """'rising', 'falling' or 'stable' comparing the two newest values"""
        values = self.series(lab_type_id)
        if len(values) < 2:
            return "stable"
        current, previous = values[0].value, values[1].value
        if previous == 0:
            return "stable"
        diff = current - previous
        if abs(diff / previous) * 100 < TREND_STABLE_PERCENT:
            return "stable"
        return "rising" if diff > 0 else "falling"


def _fmt(value: float) -> str:
    return f"{value:g}"


def hemolysis_indicators(recent: _RecentLabs, recent_rbc_transfusion: bool) -> List[Bilingual]:
    indicators: List[Bilingual] = []

    tbili = recent.latest("tbili")
    dbili = recent.latest("dbili")
    if tbili and dbili and tbili.value > 0:
        ratio = dbili.value / tbili.value * 100
        if ratio > 20:
            indicators.append(Bilingual(
                f"Direct bili {ratio:.0f}% of total (>20% is concerning)",
                f"Bili directa {ratio:.0f}% del total (>20% es preocupante)",
            ))

    if recent_rbc_transfusion and recent.trend("dbili") == "rising":
        indicators.append(Bilingual(
            "Direct bilirubin rising after recent transfusion",
            "Bilirrubina directa en aumento después de transfusión reciente",
        ))

    ldh = recent.latest("ldh")
    if ldh:
        if ldh.value > 1000:
            indicators.append(Bilingual(
                f"LDH very elevated: {_fmt(ldh.value)} U/L (>1000)",
                f"LDH muy elevada: {_fmt(ldh.value)} U/L (>1000)",
            ))
        elif ldh.value > 600:
            indicators.append(Bilingual(
                f"LDH elevated: {_fmt(ldh.value)} U/L (>600)",
                f"LDH elevada: {_fmt(ldh.value)} U/L (>600)",
            ))
    if recent.trend("ldh") == "rising":
        indicators.append(Bilingual("LDH trending up", "LDH en tendencia ascendente"))

    hapto = recent.latest("hapto")
    if hapto:
        if hapto.value < 10:
            indicators.append(Bilingual(
                f"Haptoglobin critically low: {_fmt(hapto.value)} mg/dL (<10)",
                f"Haptoglobina críticamente baja: {_fmt(hapto.value)} mg/dL (<10)",
            ))
        elif hapto.value < 30:
            indicators.append(Bilingual(
                f"Haptoglobin low: {_fmt(hapto.value)} mg/dL (<30)",
                f"Haptoglobina baja: {_fmt(hapto.value)} mg/dL (<30)",
            ))
    if recent.trend("hapto") == "falling":
        indicators.append(Bilingual("Haptoglobin trending down", "Haptoglobina en tendencia descendente"))

    retic = recent.latest("retic")
    if retic and retic.value > 7:
        indicators.append(Bilingual(
            f"Reticulocyte count elevated: {_fmt(retic.value)}% (>7%)",
            f"Conteo de reticulocitos elevado: {_fmt(retic.value)}% (>7%)",
        ))

    return indicators


def hemolysis_risk(indicator_count: int, recent_rbc_transfusion: bool) -> HemolysisRisk:
    if indicator_count >= 3 or (recent_rbc_transfusion and indicator_count >= 2):
        return HemolysisRisk.HIGH
    if indicator_count >= 2 or (recent_rbc_transfusion and indicator_count >= 1):
        return HemolysisRisk.MODERATE
    return HemolysisRisk.LOW


# ========================================
# Possible causes
# ========================================

CAUSE_PHLEBOTOMY = Bilingual(
    "Excessive phlebotomy losses - review lab ordering practices",
    "Pérdidas excesivas por flebotomía - revisar prácticas de órdenes de laboratorio",
)
CAUSE_HEMOLYSIS = Bilingual(
    "Hemolysis - check LDH, haptoglobin, DAT",
    "Hemólisis - verificar LDH, haptoglobina, PAD",
)
CAUSE_OCCULT_BLEEDING = Bilingual(
    "Occult bleeding - check stools for occult blood",
    "Sangrado oculto - verificar sangre oculta en heces",
)
CAUSE_ERYTHROPOIESIS = Bilingual(
    "Inadequate erythropoiesis - consider EPO therapy",
    "Eritropoyesis inadecuada - considerar terapia con EPO",
)
CAUSE_NUTRITIONAL = Bilingual(
    "Nutritional deficiency - ensure iron, folate, B12 supplementation",
    "Deficiencia nutricional - asegurar suplementación de hierro, folato, B12",
)

HEMOLYSIS_CAUSES = [
    Bilingual("Delayed hemolytic transfusion reaction", "Reacción transfusional hemolítica tardía"),
    Bilingual("Alloimmunization to RBC antigens", "Aloinmunización a antígenos eritrocitarios"),
    Bilingual("ABO incompatibility", "Incompatibilidad ABO"),
    Bilingual("Underlying hemolytic disease", "Enfermedad hemolítica subyacente"),
]


def possible_causes(
    recent: _RecentLabs,
    indicators: Sequence[Bilingual],
    risk: HemolysisRisk,
) -> List[Bilingual]:
    causes = [CAUSE_PHLEBOTOMY]
    if indicators:
        causes.append(CAUSE_HEMOLYSIS)
    causes.append(CAUSE_OCCULT_BLEEDING)

    # An elevated reticulocyte count means the marrow is responding
    retic = recent.latest("retic")
    if not (retic and retic.value > 7):
        causes.append(CAUSE_ERYTHROPOIESIS)

    causes.append(CAUSE_NUTRITIONAL)

    if risk == HemolysisRisk.HIGH:
        causes.extend(HEMOLYSIS_CAUSES)
    return causes


# ========================================
# Analysis
# ========================================

def _weeks(value: float) -> str:
    return f"{value:g}"


def analyze(
    patient: Patient,
    transfusions: Sequence[Transfusion],
    labs: Sequence[LabValue],
    as_of: Optional[datetime] = None,
) -> TransfusionAnalysis:
    """
    Analyze transfusion patterns for one patient.

    Never raises on partial histories: missing labs give ``low`` hemolysis
    risk with no indicators, and an empty transfusion list gives ``normal``.
    """
    as_of = as_of or datetime.now(timezone.utc)
    if as_of.tzinfo is None:
        as_of = as_of.replace(tzinfo=timezone.utc)
    since = as_of - RECENT_WINDOW

    counts = {product: 0 for product in ProductType}
    donors = set()
    recent_rbc_transfusion = False
    for transfusion in transfusions:
        product = ProductType(transfusion.product_type)
        counts[product] += 1
        if transfusion.donor_id:
            donors.add(transfusion.donor_id)
        if product == ProductType.RBC:
            at = parse_iso(transfusion.occurred_at)
            if at is not None and at >= since:
                recent_rbc_transfusion = True

    rbc_count = counts[ProductType.RBC]
    expected = expected_rbc_transfusions(patient.gestational_age_weeks, patient.birth_weight_grams)
    severity = excess_severity(rbc_count, expected)
    above_average = rbc_count > expected.average

    recent = _RecentLabs(labs, since)
    indicators = hemolysis_indicators(recent, recent_rbc_transfusion)
    risk = hemolysis_risk(len(indicators), recent_rbc_transfusion)

    investigate = above_average or risk == HemolysisRisk.HIGH
    ga = _weeks(patient.gestational_age_weeks)

    recommendations: List[Bilingual] = []
    if above_average:
        recommendations.append(Bilingual(
            f"Patient has received {rbc_count} RBC transfusions (expected average: {expected.average} "
            f"for {ga}-week infant). INVESTIGATE ROOT CAUSE before ordering more transfusions.",
            f"El paciente ha recibido {rbc_count} transfusiones de GR (promedio esperado: {expected.average} "
            f"para un bebé de {ga} semanas). INVESTIGAR CAUSA RAÍZ antes de ordenar más transfusiones.",
        ))

    if risk == HemolysisRisk.HIGH:
        recommendations.append(Bilingual(
            "HIGH HEMOLYSIS RISK DETECTED. Consider STOPPING transfusions until workup complete. "
            "Order: DAT, antibody screen, peripheral smear, bilirubin fractionation.",
            "ALTO RIESGO DE HEMÓLISIS DETECTADO. Considere DETENER transfusiones hasta completar estudio. "
            "Ordenar: PAD, panel de anticuerpos, frotis periférico, fraccionamiento de bilirrubina.",
        ))
    elif risk == HemolysisRisk.MODERATE:
        recommendations.append(Bilingual(
            "Moderate hemolysis indicators present. Monitor closely. "
            "Consider hemolysis workup before next transfusion.",
            "Indicadores moderados de hemólisis presentes. Monitorear de cerca. "
            "Considerar estudio de hemólisis antes de próxima transfusión.",
        ))

    dbili = recent.latest("dbili")
    tbili = recent.latest("tbili")
    if dbili and tbili and dbili.value > 0 and tbili.value > 0:
        ratio = dbili.value / tbili.value * 100
        if dbili.value > 1.0 or ratio > 20:
            recommendations.append(Bilingual(
                f"Direct bilirubin elevated ({dbili.value:.1f} mg/dL, {ratio:.0f}% of total). "
                f"If rising after transfusions, STOP transfusions and investigate hemolysis/cholestasis.",
                f"Bilirrubina directa elevada ({dbili.value:.1f} mg/dL, {ratio:.0f}% del total). "
                f"Si aumenta después de transfusiones, DETENER transfusiones e investigar hemólisis/colestasis.",
            ))

    if not recommendations:
        recommendations.append(Bilingual(
            f"Transfusion count ({rbc_count} RBC) is within expected range for {ga}-week infant. "
            f"Continue monitoring.",
            f"Conteo de transfusiones ({rbc_count} GR) está dentro del rango esperado para bebé de "
            f"{ga} semanas. Continuar monitoreo.",
        ))

    causes = possible_causes(recent, indicators, risk) if investigate else []

    if investigate:
        logger.info(
            "Patient %s flagged for root-cause review: %d RBC transfusions (%s), hemolysis risk %s",
            patient.id, rbc_count, severity.value, risk.value,
        )

    return TransfusionAnalysis(
        total_rbc_transfusions=rbc_count,
        total_platelet_transfusions=counts[ProductType.PLATELET],
        total_plasma_transfusions=counts[ProductType.PLASMA],
        total_unique_donors=len(donors),
        expected_rbc_transfusions=expected,
        is_above_average_transfusions=above_average,
        transfusion_excess_severity=severity,
        hemolysis_risk=risk,
        hemolysis_indicators=indicators,
        recommendations=recommendations,
        investigate_root_cause=investigate,
        possible_causes=causes,
    )
