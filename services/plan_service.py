# plan_service.py
# Applies treatment plan transitions against stored plans, one writer per plan at a time
import logging
import threading
import weakref
from typing import Callable, List, Optional

from core import treatment_plan as machine
from core.assistant import parse_plan_from_assistant_response
from core.errors import PlanNotFoundError
from core.models import (
    AmendmentType,
    AuditEvent,
    Bilingual,
    CreateTreatmentPlan,
    NewAction,
    PlanStatus,
    TreatmentPlan,
)
from services import db_operations

logger = logging.getLogger("mila.plans")


class _PlanLock:
    """threading.Lock that can be held in a WeakValueDictionary"""

    __slots__ = ("_lock", "__weakref__")

    def __init__(self):
        self._lock = threading.Lock()

    def __enter__(self):
        self._lock.acquire()
        return self

    def __exit__(self, *exc_info):
        self._lock.release()


class TreatmentPlanService:
    """
    Loads a fresh plan snapshot, applies one state machine operation and saves
    it with a version check. Writers to the same plan id are serialized by a
    per-plan lock; a save that still finds a newer version raises
    StalePlanError and is not retried. The plan write and its audit entry
    share one transaction.
    """

    def __init__(self, repository=None):
        self.repo = repository or db_operations
        # entries disappear once no writer holds the plan's lock
        self._locks: "weakref.WeakValueDictionary[str, _PlanLock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _lock_for(self, plan_id: str) -> "_PlanLock":
        with self._locks_guard:
            lock = self._locks.get(plan_id)
            if lock is None:
                lock = self._locks[plan_id] = _PlanLock()
            return lock

    # ========================================
    # Reads
    # ========================================

    def get_plan(self, plan_id: str) -> TreatmentPlan:
        plan = self.repo.get_plan(plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id)
        return plan

    def list_plans(self, patient_id: str, status: Optional[PlanStatus] = None) -> List[TreatmentPlan]:
        return self.repo.list_plans(patient_id, status)

    def progress(self, plan_id: str) -> float:
        return machine.progress(self.get_plan(plan_id))

    # ========================================
    # Writes
    # ========================================

    def _apply(self, plan_id: str, actor: str, event: str,
               transition: Callable[[TreatmentPlan], TreatmentPlan]) -> TreatmentPlan:
        with self._lock_for(plan_id):
            plan = self.get_plan(plan_id)
            expected_version = plan.version
            transition(plan)
            self.repo.save_plan(plan, expected_version,
                                AuditEvent(event, patient_id=plan.patient_id, plan_id=plan.id, actor=actor))
        logger.info("Plan %s: %s by %s -> %s (v%d)", plan_id, event, actor, plan.status.value, plan.version)
        return plan

    def create_plan(self, draft: CreateTreatmentPlan, actor: str) -> TreatmentPlan:
        plan = machine.create_plan(draft, actor)
        self.repo.create_plan(plan, AuditEvent(
            f"Treatment plan created: {plan.title.en}",
            patient_id=plan.patient_id, plan_id=plan.id, actor=actor,
        ))
        logger.info("Plan %s created for patient %s by %s", plan.id, plan.patient_id, actor)
        return plan

    def accept_assistant_response(self, text: str, patient_id: str, actor: str) -> Optional[TreatmentPlan]:
        """Create a plan from an accepted assistant reply; None when the reply holds no plan"""
        draft = parse_plan_from_assistant_response(text, patient_id)
        if draft is None:
            logger.debug("Assistant response for patient %s contained no plan", patient_id)
            return None
        return self.create_plan(draft, actor)

    def add_action(self, plan_id: str, action: NewAction, actor: str, reason: Bilingual) -> TreatmentPlan:
        return self._apply(plan_id, actor, f"Action added: {action.description.en}",
                           lambda plan: machine.add_action(plan, action, actor, reason))

    def complete_action(self, plan_id: str, action_id: str, actor: str,
                        notes: Optional[str] = None) -> TreatmentPlan:
        return self._apply(plan_id, actor, f"Action completed: {action_id}",
                           lambda plan: machine.complete_action(plan, action_id, actor, notes))

    def remove_action(self, plan_id: str, action_id: str, actor: str, reason: Bilingual) -> TreatmentPlan:
        return self._apply(plan_id, actor, f"Action removed: {action_id}",
                           lambda plan: machine.remove_action(plan, action_id, actor, reason))

    def modify_action(self, plan_id: str, action_id: str, actor: str, reason: Bilingual,
                      description: Optional[Bilingual] = None, dosage: Optional[str] = None,
                      timing: Optional[str] = None) -> TreatmentPlan:
        return self._apply(plan_id, actor, f"Action modified: {action_id}",
                           lambda plan: machine.modify_action(plan, action_id, actor, reason,
                                                              description, dosage, timing))

    def record_amendment(self, plan_id: str, amendment_type: AmendmentType, description: Bilingual,
                         reason: Bilingual, actor: str, assistant_recommended: bool = False,
                         assistant_rationale: Optional[str] = None) -> TreatmentPlan:
        return self._apply(plan_id, actor, f"Amendment recorded: {AmendmentType(amendment_type).value}",
                           lambda plan: machine.record_amendment(plan, amendment_type, description, reason,
                                                                 actor, assistant_recommended,
                                                                 assistant_rationale))

    def hold_plan(self, plan_id: str, actor: str, reason: Bilingual) -> TreatmentPlan:
        return self._apply(plan_id, actor, f"Plan put on hold: {reason.en}",
                           lambda plan: machine.hold_plan(plan, actor, reason))

    def resume_plan(self, plan_id: str, actor: str, notes: Optional[Bilingual] = None) -> TreatmentPlan:
        return self._apply(plan_id, actor, "Plan resumed",
                           lambda plan: machine.resume_plan(plan, actor, notes))

    def complete_plan(self, plan_id: str, actor: str, outcome: Bilingual) -> TreatmentPlan:
        return self._apply(plan_id, actor, f"Plan completed: {outcome.en}",
                           lambda plan: machine.complete_plan(plan, actor, outcome))

    def cancel_plan(self, plan_id: str, actor: str, reason: Bilingual) -> TreatmentPlan:
        return self._apply(plan_id, actor, f"Plan cancelled: {reason.en}",
                           lambda plan: machine.cancel_plan(plan, actor, reason))

    def delete_plan(self, plan_id: str, actor: str) -> None:
        """Permanently remove a completed or cancelled plan; the audit log keeps its trail"""
        with self._lock_for(plan_id):
            plan = self.get_plan(plan_id)
            machine.ensure_deletable(plan)
            audit = AuditEvent(
                f"Treatment plan deleted ({plan.status.value}): {plan.title.en}",
                patient_id=plan.patient_id, plan_id=plan_id, actor=actor,
            )
            if not self.repo.delete_plan(plan_id, audit):
                raise PlanNotFoundError(plan_id)
        with self._locks_guard:
            self._locks.pop(plan_id, None)
        logger.info("Plan %s deleted by %s", plan_id, actor)
