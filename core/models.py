# models.py
# Data models for the MILA transfusion decision-support core
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid


# ========================================
# Helpers
# ========================================

def now_iso() -> str:
    """Current UTC time as an ISO-8601 string"""
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return uuid.uuid4().hex


def parse_iso(ts: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp; naive values are treated as UTC. Returns None if unparseable."""
    if not ts:
        return None
    try:
        dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass(frozen=True)
class Bilingual:
    """Parallel English/Spanish text attached to every clinician-facing message"""
    en: str
    es: str

    def get(self, language: str = "en") -> str:
        return self.es if language.lower() == "es" else self.en

    def to_dict(self) -> Dict[str, str]:
        return {"en": self.en, "es": self.es}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, str]]) -> Optional["Bilingual"]:
        if data is None:
            return None
        return cls(en=data.get("en", ""), es=data.get("es", ""))


# ========================================
# Vocabularies
# ========================================

class ProductType(str, Enum):
    RBC = "rbc"
    PLATELET = "platelet"
    PLASMA = "plasma"
    OTHER = "other"


class Severity(str, Enum):
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.OK: 0, Severity.WARNING: 1, Severity.CRITICAL: 2}


class JustificationStatus(str, Enum):
    JUSTIFIED = "justified"
    NEEDS_JUSTIFICATION = "needs_justification"
    NOT_JUSTIFIED = "not_justified"


class ExcessSeverity(str, Enum):
    NORMAL = "normal"
    ELEVATED = "elevated"
    HIGH = "high"
    VERY_HIGH = "very_high"


class HemolysisRisk(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class RespiratorySupport(str, Enum):
    ROOM_AIR = "room_air"
    LOW_FLOW_NC = "low_flow_nc"
    HIGH_FLOW_NC = "high_flow_nc"
    CPAP = "cpap"
    BIPAP = "bipap"
    NIPPV = "nippv"
    OXYGEN_HOOD = "oxygen_hood"
    INTUBATED_CONV = "intubated_conv"
    INTUBATED_HFOV = "intubated_hfov"
    INTUBATED_HFJV = "intubated_hfjv"


class PlanStatus(str, Enum):
    ACTIVE = "active"
    MODIFIED = "modified"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PlanCategory(str, Enum):
    TRANSFUSION = "transfusion"
    SEPSIS = "sepsis"
    NEC = "nec"
    RESPIRATORY = "respiratory"
    FEEDING = "feeding"
    JAUNDICE = "jaundice"
    HEMOLYSIS = "hemolysis"
    GENERAL = "general"


class AmendmentType(str, Enum):
    ACTION_ADDED = "action_added"
    ACTION_REMOVED = "action_removed"
    ACTION_MODIFIED = "action_modified"
    DOSAGE_CHANGED = "dosage_changed"
    HOLD = "hold"
    RESUMED = "resumed"
    ESCALATION = "escalation"
    DEESCALATION = "deescalation"
    CLINICAL_UPDATE = "clinical_update"
    PATIENT_RESPONSE = "patient_response"
    OTHER = "other"


# ========================================
# Clinical records
# ========================================

@dataclass
class Patient:
    id: str
    display_name: str
    birth_date: str  # YYYY-MM-DD
    gestational_age_weeks: float
    birth_weight_grams: float
    respiratory_support: RespiratorySupport = RespiratorySupport.ROOM_AIR
    created_at: Optional[str] = None

    @property
    def on_respiratory_support(self) -> bool:
        return RespiratorySupport(self.respiratory_support) != RespiratorySupport.ROOM_AIR

    def days_of_life(self, as_of: Optional[datetime] = None) -> int:
        """Day of life, counting the birth date as day 1"""
        birth = date.fromisoformat(self.birth_date[:10])
        today = (as_of or datetime.now(timezone.utc)).date()
        return (today - birth).days + 1


@dataclass
class LabValue:
    patient_id: str
    lab_type_id: str
    occurred_at: str
    value: float
    unit: str = ""
    ref_range_low: Optional[float] = None
    ref_range_high: Optional[float] = None
    id: str = field(default_factory=new_id)


@dataclass
class Transfusion:
    patient_id: str
    occurred_at: str
    product_type: ProductType
    volume_ml: float
    donor_id: str
    is_emergency: bool = False
    parent_consent_obtained: bool = False
    parent_consent_at: Optional[str] = None
    clinical_justification: Optional[str] = None
    notes: str = ""
    id: str = field(default_factory=new_id)


@dataclass
class TransfusionStats:
    total_count: int
    total_volume: float
    volume_by_type: Dict[ProductType, float]
    unique_donors: int


@dataclass
class AuditEvent:
    message: str
    id: Optional[int] = None
    patient_id: Optional[str] = None
    plan_id: Optional[str] = None
    actor: Optional[str] = None
    timestamp: Optional[str] = None


# ========================================
# Computed results
# ========================================

@dataclass(frozen=True)
class ThresholdBasis:
    lab_type_id: str
    threshold: float
    unit: str
    description: Optional[Bilingual] = None


@dataclass
class TransfusionJustification:
    status: JustificationStatus
    severity: Severity
    message: Bilingual
    basis: Optional[ThresholdBasis] = None
    latest_lab_value: Optional[float] = None
    latest_lab_date: Optional[str] = None
    clinical_note: Optional[Bilingual] = None


@dataclass
class CumulativeExposureStatus:
    status: Severity
    ml_per_kg: float
    percent_of_warning: float
    percent_of_critical: float
    message: Bilingual


@dataclass
class DonorExposureStatus:
    status: Severity
    unique_donors: int
    message: Bilingual


@dataclass(frozen=True)
class ExpectedRange:
    low: int
    average: int
    high: int


@dataclass
class TransfusionAnalysis:
    total_rbc_transfusions: int
    total_platelet_transfusions: int
    total_plasma_transfusions: int
    total_unique_donors: int
    expected_rbc_transfusions: ExpectedRange
    is_above_average_transfusions: bool
    transfusion_excess_severity: ExcessSeverity
    hemolysis_risk: HemolysisRisk
    hemolysis_indicators: List[Bilingual] = field(default_factory=list)
    recommendations: List[Bilingual] = field(default_factory=list)
    investigate_root_cause: bool = False
    possible_causes: List[Bilingual] = field(default_factory=list)


# ========================================
# Treatment plans
# ========================================

@dataclass
class PlanAction:
    description: Bilingual
    dosage: Optional[str] = None
    timing: Optional[str] = None
    notes: Optional[str] = None
    completed: bool = False
    completed_at: Optional[str] = None
    completed_by: Optional[str] = None
    added_at: Optional[str] = None  # set only for actions added after creation
    added_by: Optional[str] = None
    is_removed: bool = False
    removed_at: Optional[str] = None
    removed_by: Optional[str] = None
    id: str = field(default_factory=new_id)


@dataclass(frozen=True)
class Amendment:
    type: AmendmentType
    description: Bilingual
    reason: Bilingual
    amended_by: str
    occurred_at: str
    action_id: Optional[str] = None
    previous_value: Optional[str] = None
    new_value: Optional[str] = None
    assistant_recommended: bool = False
    assistant_rationale: Optional[str] = None
    id: str = field(default_factory=new_id)


@dataclass(frozen=True)
class NewAction:
    description: Bilingual
    dosage: Optional[str] = None
    timing: Optional[str] = None


@dataclass
class CreateTreatmentPlan:
    patient_id: str
    category: PlanCategory
    title: Bilingual
    summary: Bilingual
    rationale: Bilingual
    actions: List[NewAction] = field(default_factory=list)
    assistant_recommendation: Optional[str] = None
    occurred_at: Optional[str] = None


@dataclass(frozen=True)
class PlanState:
    """Plan status crossed with the orthogonal hold flag"""
    status: PlanStatus
    is_on_hold: bool

    @property
    def is_open(self) -> bool:
        return self.status in (PlanStatus.ACTIVE, PlanStatus.MODIFIED)

    @property
    def is_terminal(self) -> bool:
        return not self.is_open

    @property
    def accepts_content_changes(self) -> bool:
        return self.is_open and not self.is_on_hold


@dataclass
class TreatmentPlan:
    id: str
    patient_id: str
    category: PlanCategory
    status: PlanStatus
    title: Bilingual
    summary: Bilingual
    rationale: Bilingual
    occurred_at: str
    created_by: str
    actions: List[PlanAction] = field(default_factory=list)
    amendments: List[Amendment] = field(default_factory=list)
    is_on_hold: bool = False
    hold_reason: Optional[Bilingual] = None
    hold_at: Optional[str] = None
    resumed_at: Optional[str] = None
    outcome: Optional[Bilingual] = None
    completed_at: Optional[str] = None
    cancelled_at: Optional[str] = None
    assistant_recommendation: Optional[str] = None
    version: int = 1

    @property
    def state(self) -> PlanState:
        return PlanState(PlanStatus(self.status), self.is_on_hold)

    @property
    def active_actions(self) -> List[PlanAction]:
        return [a for a in self.actions if not a.is_removed]

    def find_action(self, action_id: str) -> Optional[PlanAction]:
        for action in self.actions:
            if action.id == action_id:
                return action
        return None

    # Serialization for the JSON payload column

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return _encode(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TreatmentPlan":
        data = dict(data)
        data["category"] = PlanCategory(data["category"])
        data["status"] = PlanStatus(data["status"])
        for key in ("title", "summary", "rationale", "hold_reason", "outcome"):
            data[key] = Bilingual.from_dict(data.get(key))
        data["actions"] = [
            PlanAction(**{**a, "description": Bilingual.from_dict(a["description"])})
            for a in data.get("actions", [])
        ]
        data["amendments"] = [
            Amendment(**{
                **m,
                "type": AmendmentType(m["type"]),
                "description": Bilingual.from_dict(m["description"]),
                "reason": Bilingual.from_dict(m["reason"]),
            })
            for m in data.get("amendments", [])
        ]
        return cls(**data)


def _encode(value: Any) -> Any:
    """Convert enums nested inside asdict() output to plain strings"""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_encode(v) for v in value]
    return value
