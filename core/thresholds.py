"""
Transfusion threshold catalog for premature neonates.

Reference data only; nothing here computes a decision. Values follow:
  - ETTNO and TOP trials (restrictive RBC thresholds, age-banded)
  - PlaNeT-2/MATISSE (platelet threshold 25,000/uL for stable preterms)
  - AAP/AABB 2024 and BCSH guidance for plasma

These are clinical policy constants. Change them only together with the
unit that owns the local transfusion guideline.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from core.models import Bilingual, ProductType


# ========================================
# Age-banded RBC thresholds (ETTNO/TOP)
# ========================================

@dataclass(frozen=True)
class RBCThresholdBand:
    """Hgb thresholds (g/dL) for one day-of-life band.

    ``max_day`` of None marks the open-ended oldest band.
    """
    min_day: int
    max_day: Optional[int]
    label: str
    description: Bilingual
    respiratory_support: float
    stable: float

    def contains(self, days_of_life: int) -> bool:
        if self.max_day is None:
            return days_of_life > self.min_day
        return self.min_day <= days_of_life <= self.max_day


# Ordered youngest/most acute first; first match wins.
PRETERM_RBC_THRESHOLDS: List[RBCThresholdBand] = [
    RBCThresholdBand(
        min_day=1, max_day=7, label="1-7",
        description=Bilingual("First week of life", "Primera semana de vida"),
        respiratory_support=11.5, stable=10.0,
    ),
    RBCThresholdBand(
        min_day=8, max_day=14, label="8-14",
        description=Bilingual("Second week of life", "Segunda semana de vida"),
        respiratory_support=10.0, stable=8.5,
    ),
    RBCThresholdBand(
        min_day=15, max_day=28, label="15-28",
        description=Bilingual("Weeks 3-4 of life", "Semanas 3-4 de vida"),
        respiratory_support=8.5, stable=7.5,
    ),
    RBCThresholdBand(
        min_day=28, max_day=None, label=">28",
        description=Bilingual("After 4 weeks of life", "Después de 4 semanas de vida"),
        respiratory_support=7.5, stable=7.0,
    ),
]


@dataclass(frozen=True)
class AgeAdjustedThreshold:
    threshold: float
    band: RBCThresholdBand

    @property
    def description(self) -> Bilingual:
        return self.band.description


def rbc_threshold_for_age(days_of_life: int, on_respiratory_support: bool) -> AgeAdjustedThreshold:
    """Select the Hgb threshold for a preterm infant's day of life and respiratory status."""
    band = PRETERM_RBC_THRESHOLDS[-1]  # oldest band when nothing matches
    for candidate in PRETERM_RBC_THRESHOLDS:
        if candidate.contains(days_of_life):
            band = candidate
            break
    threshold = band.respiratory_support if on_respiratory_support else band.stable
    return AgeAdjustedThreshold(threshold=threshold, band=band)


# ========================================
# Per-product thresholds
# ========================================

@dataclass(frozen=True)
class TransfusionThreshold:
    product_type: ProductType
    lab_type_id: str
    lab_name: str
    unit: str
    non_bleeding_threshold: float  # stable patient
    bleeding_threshold: float  # active bleeding / surgery / sick
    warning_if_above: float
    notes: Bilingual


TRANSFUSION_THRESHOLDS: Dict[ProductType, TransfusionThreshold] = {
    ProductType.RBC: TransfusionThreshold(
        product_type=ProductType.RBC,
        lab_type_id="hgb",
        lab_name="Hemoglobin",
        unit="g/dL",
        non_bleeding_threshold=7.0,
        bleeding_threshold=12.0,
        warning_if_above=8.0,
        notes=Bilingual(
            "Use age-specific thresholds. Consider respiratory status. Restrictive thresholds (ETTNO/TOP) are safe.",
            "Usar umbrales por edad. Considerar estado respiratorio. Umbrales restrictivos (ETTNO/TOP) son seguros.",
        ),
    ),
    ProductType.PLATELET: TransfusionThreshold(
        product_type=ProductType.PLATELET,
        lab_type_id="plt",
        lab_name="Platelet Count",
        unit="/μL",
        non_bleeding_threshold=25000,
        bleeding_threshold=50000,
        warning_if_above=25000,
        notes=Bilingual(
            "PlaNeT-2 Trial: Threshold of 25,000 REDUCED mortality vs 50,000. Avoid prophylactic transfusions above 25,000.",
            "Estudio PlaNeT-2: Umbral de 25,000 REDUJO mortalidad vs 50,000. Evitar transfusiones profilácticas sobre 25,000.",
        ),
    ),
    # INR: higher is worse, so the comparison is inverted
    ProductType.PLASMA: TransfusionThreshold(
        product_type=ProductType.PLASMA,
        lab_type_id="inr",
        lab_name="INR",
        unit="",
        non_bleeding_threshold=2.0,
        bleeding_threshold=1.5,
        warning_if_above=0,
        notes=Bilingual(
            "Plasma rarely indicated in neonates. Requires active bleeding + coagulopathy. Do NOT use prophylactically.",
            "Plasma raramente indicado en neonatos. Requiere sangrado activo + coagulopatía. NO usar profilácticamente.",
        ),
    ),
    ProductType.OTHER: TransfusionThreshold(
        product_type=ProductType.OTHER,
        lab_type_id="",
        lab_name="",
        unit="",
        non_bleeding_threshold=0,
        bleeding_threshold=0,
        warning_if_above=0,
        notes=Bilingual("", ""),
    ),
}


def threshold_for(product_type: ProductType) -> TransfusionThreshold:
    return TRANSFUSION_THRESHOLDS[ProductType(product_type)]


def is_evaluated(product_type: ProductType) -> bool:
    """False for products with no lab criteria; their justification panel is not shown."""
    return bool(threshold_for(product_type).lab_type_id)


# ========================================
# Cumulative and donor exposure limits
# ========================================

@dataclass(frozen=True)
class CumulativeLimit:
    product_type: ProductType
    warning_ml_per_kg: float
    critical_ml_per_kg: float


CUMULATIVE_LIMITS: Dict[ProductType, CumulativeLimit] = {
    ProductType.RBC: CumulativeLimit(ProductType.RBC, 80, 120),  # typical dose 15-20 ml/kg
    ProductType.PLATELET: CumulativeLimit(ProductType.PLATELET, 30, 50),  # typical dose 10-15 ml/kg
    ProductType.PLASMA: CumulativeLimit(ProductType.PLASMA, 30, 50),
    ProductType.OTHER: CumulativeLimit(ProductType.OTHER, 50, 100),
}


@dataclass(frozen=True)
class DonorExposureLimits:
    warning: int
    critical: int


# 3 donors: consider dedicated donor; 5: high alloimmunization risk
DONOR_EXPOSURE_LIMITS = DonorExposureLimits(warning=3, critical=5)


# ========================================
# Informational catalogs
# ========================================

@dataclass(frozen=True)
class ClinicalIndication:
    id: str
    name: Bilingual
    description: Bilingual
    suggested_threshold: str


RBC_CLINICAL_INDICATIONS: List[ClinicalIndication] = [
    ClinicalIndication(
        "acute_blood_loss",
        Bilingual("Acute blood loss >10% blood volume", "Pérdida aguda >10% volumen sanguíneo"),
        Bilingual("Immediate transfusion regardless of Hgb", "Transfusión inmediata independiente de Hgb"),
        "Immediate",
    ),
    ClinicalIndication(
        "mechanical_ventilation",
        Bilingual("Mechanical ventilation (FiO2 >35%)", "Ventilación mecánica (FiO2 >35%)"),
        Bilingual("Use respiratory support thresholds", "Usar umbrales de soporte respiratorio"),
        "Hgb 10-11.5 g/dL based on age",
    ),
    ClinicalIndication(
        "symptomatic_anemia",
        Bilingual("Symptomatic anemia", "Anemia sintomática"),
        Bilingual(
            "Tachycardia, poor weight gain, apnea, increased O2 requirement",
            "Taquicardia, pobre ganancia de peso, apnea, aumento requerimiento O2",
        ),
        "Consider at Hgb 7-8 g/dL",
    ),
    ClinicalIndication(
        "major_surgery",
        Bilingual("Major surgery planned", "Cirugía mayor planeada"),
        Bilingual("Optimize Hgb before surgery", "Optimizar Hgb antes de cirugía"),
        "Hgb >10 g/dL",
    ),
]

PLATELET_CLINICAL_INDICATIONS: List[ClinicalIndication] = [
    ClinicalIndication(
        "active_bleeding",
        Bilingual("Active major bleeding", "Sangrado mayor activo"),
        Bilingual("Pulmonary hemorrhage, IVH, GI bleeding", "Hemorragia pulmonar, HIV, sangrado GI"),
        "PLT <50,000",
    ),
    ClinicalIndication(
        "nec_sepsis",
        Bilingual("NEC or sepsis with DIC", "NEC o sepsis con CID"),
        Bilingual(
            "Consider higher threshold during acute illness",
            "Considerar umbral más alto durante enfermedad aguda",
        ),
        "PLT <50,000",
    ),
    ClinicalIndication(
        "pre_procedure",
        Bilingual("Before invasive procedure", "Antes de procedimiento invasivo"),
        Bilingual("LP, central line, surgery", "PL, línea central, cirugía"),
        "PLT <50,000",
    ),
    ClinicalIndication(
        "stable_preterm",
        Bilingual("Stable preterm (no bleeding)", "Prematuro estable (sin sangrado)"),
        Bilingual("PlaNeT-2: DO NOT transfuse above 25,000!", "PlaNeT-2: ¡NO transfundir sobre 25,000!"),
        "PLT <25,000 ONLY",
    ),
]


@dataclass(frozen=True)
class TransfusionRisk:
    id: str
    name: Bilingual
    description: Bilingual
    incidence: str


TRANSFUSION_RISKS: List[TransfusionRisk] = [
    TransfusionRisk(
        "necrotizing_enterocolitis",
        Bilingual("Transfusion-associated NEC (TANEC)", "NEC asociada a transfusión (TANEC)"),
        Bilingual(
            "Increased NEC risk within 48h of RBC transfusion in preterm infants",
            "Mayor riesgo de NEC dentro de 48h de transfusión de GR en prematuros",
        ),
        "Risk increased 2-4x in some studies",
    ),
    TransfusionRisk(
        "infection",
        Bilingual("Transfusion-transmitted infection", "Infección transmitida por transfusión"),
        Bilingual(
            "Risk of viral, bacterial, or parasitic transmission despite screening",
            "Riesgo de transmisión viral, bacteriana o parasitaria a pesar del tamizaje",
        ),
        "< 1:1,000,000 for major viruses",
    ),
    TransfusionRisk(
        "trali",
        Bilingual(
            "Transfusion-related acute lung injury (TRALI)",
            "Lesión pulmonar aguda relacionada con transfusión (TRALI)",
        ),
        Bilingual(
            "Acute respiratory distress within 6 hours of transfusion",
            "Dificultad respiratoria aguda dentro de 6 horas de la transfusión",
        ),
        "1:5,000 to 1:10,000 transfusions",
    ),
    TransfusionRisk(
        "taco",
        Bilingual(
            "Transfusion-associated circulatory overload (TACO)",
            "Sobrecarga circulatoria asociada a transfusión (TACO)",
        ),
        Bilingual(
            "Volume overload causing pulmonary edema - give slowly over 3-4 hours",
            "Sobrecarga de volumen causando edema pulmonar - dar lentamente en 3-4 horas",
        ),
        "1-8% of transfusions in neonates",
    ),
    TransfusionRisk(
        "alloimmunization",
        Bilingual("Alloimmunization", "Aloinmunización"),
        Bilingual(
            "Development of antibodies - limit donor exposures, use dedicated donors",
            "Desarrollo de anticuerpos - limitar exposición a donantes, usar donantes dedicados",
        ),
        "Increases with number of transfusions and donors",
    ),
    TransfusionRisk(
        "hemolytic",
        Bilingual("Hemolytic transfusion reaction", "Reacción hemolítica transfusional"),
        Bilingual(
            "Destruction of transfused red cells due to incompatibility",
            "Destrucción de glóbulos rojos transfundidos debido a incompatibilidad",
        ),
        "1:40,000 (acute), 1:2,500 (delayed)",
    ),
    TransfusionRisk(
        "gvhd",
        Bilingual(
            "Transfusion-associated graft-vs-host disease (TA-GVHD)",
            "Enfermedad injerto contra huésped asociada a transfusión (TA-GVHD)",
        ),
        Bilingual(
            "Donor lymphocytes attack recipient - ALWAYS use irradiated products in neonates",
            "Linfocitos del donante atacan al receptor - SIEMPRE usar productos irradiados en neonatos",
        ),
        "Nearly eliminated with irradiation",
    ),
]
