# core/__init__.py
# Re-export the public clinical core

from .models import (
    Bilingual, ProductType, Severity, JustificationStatus, ExcessSeverity, HemolysisRisk,
    RespiratorySupport, PlanStatus, PlanCategory, AmendmentType,
    Patient, LabValue, Transfusion, TransfusionStats, AuditEvent,
    TransfusionJustification, CumulativeExposureStatus, DonorExposureStatus, TransfusionAnalysis,
    PlanAction, Amendment, NewAction, CreateTreatmentPlan, PlanState, TreatmentPlan,
)
from .errors import (
    PlanError, PlanNotFoundError, ActionNotFoundError, PlanValidationError, StalePlanError,
    AssistantError, AssistantConfigError,
)
from .config import OPENAI_API_KEY, HOSPITAL_NAME, validate_config, configure_logging
from .database import init_database, DatabaseConnection

__all__ = [
    # Models
    'Bilingual', 'ProductType', 'Severity', 'JustificationStatus', 'ExcessSeverity', 'HemolysisRisk',
    'RespiratorySupport', 'PlanStatus', 'PlanCategory', 'AmendmentType',
    'Patient', 'LabValue', 'Transfusion', 'TransfusionStats', 'AuditEvent',
    'TransfusionJustification', 'CumulativeExposureStatus', 'DonorExposureStatus', 'TransfusionAnalysis',
    'PlanAction', 'Amendment', 'NewAction', 'CreateTreatmentPlan', 'PlanState', 'TreatmentPlan',
    # Errors
    'PlanError', 'PlanNotFoundError', 'ActionNotFoundError', 'PlanValidationError', 'StalePlanError',
    'AssistantError', 'AssistantConfigError',
    # Config
    'OPENAI_API_KEY', 'HOSPITAL_NAME', 'validate_config', 'configure_logging',
    # Database
    'init_database', 'DatabaseConnection',
]
