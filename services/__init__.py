# services/__init__.py
# Re-export repository operations and services

from .db_operations import (
    create_patient, get_patient, update_respiratory_support,
    add_lab_value, list_lab_values,
    add_transfusion, list_transfusions, get_transfusion_stats,
    create_plan, get_plan, list_plans, save_plan, delete_plan,
    log_event, get_audit_log,
)
from .plan_service import TreatmentPlanService
from .transfusion_review import TransfusionReview, review_transfusion, analyze_patient
from .openai_service import ClinicalAssistant
from .pdf_generator import TreatmentPlanPDFGenerator

__all__ = [
    # DB Operations
    'create_patient', 'get_patient', 'update_respiratory_support',
    'add_lab_value', 'list_lab_values',
    'add_transfusion', 'list_transfusions', 'get_transfusion_stats',
    'create_plan', 'get_plan', 'list_plans', 'save_plan', 'delete_plan',
    'log_event', 'get_audit_log',
    # Services
    'TreatmentPlanService',
    'TransfusionReview', 'review_transfusion', 'analyze_patient',
    'ClinicalAssistant',
    'TreatmentPlanPDFGenerator',
]
