"""
Treatment plan state machine.

A plan is ``active`` when created. Content changes ratchet it to ``modified``
and it never returns to ``active``. ``completed`` and ``cancelled`` are
terminal. The hold flag is orthogonal to status and freezes plan content until
the plan is resumed.

Every operation mutates the plan in place and, apart from creation, appends
exactly one amendment. Preconditions live in ``TRANSITION_RULES``; a violated
rule raises ``PlanValidationError`` and leaves the plan untouched. Amendments
stay in occurrence order: an operation dated before the last amendment is
rejected the same way.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional

from core.errors import ActionNotFoundError, PlanValidationError
from core.models import (
    Amendment,
    AmendmentType,
    Bilingual,
    CreateTreatmentPlan,
    NewAction,
    PlanAction,
    PlanStatus,
    TreatmentPlan,
    new_id,
    now_iso,
    parse_iso,
)

logger = logging.getLogger("mila.plans")

OPEN_STATUSES = frozenset({PlanStatus.ACTIVE, PlanStatus.MODIFIED})
TERMINAL_STATUSES = frozenset({PlanStatus.COMPLETED, PlanStatus.CANCELLED})

# Amendment types a caller may record directly with record_amendment()
FREE_AMENDMENT_TYPES = frozenset({
    AmendmentType.CLINICAL_UPDATE,
    AmendmentType.ESCALATION,
    AmendmentType.DEESCALATION,
    AmendmentType.PATIENT_RESPONSE,
    AmendmentType.OTHER,
})


# ========================================
# Transition rules
# ========================================

@dataclass(frozen=True)
class TransitionRule:
    """Plan-level precondition for one operation.

    ``hold`` of None means the hold flag is not checked.
    """
    statuses: FrozenSet[PlanStatus]
    hold: Optional[bool] = None


TRANSITION_RULES: Dict[str, TransitionRule] = {
    "add action": TransitionRule(OPEN_STATUSES, hold=False),
    "complete action": TransitionRule(OPEN_STATUSES, hold=False),
    "remove action": TransitionRule(OPEN_STATUSES, hold=False),
    "modify action": TransitionRule(OPEN_STATUSES, hold=False),
    "record amendment": TransitionRule(OPEN_STATUSES, hold=False),
    "hold plan": TransitionRule(OPEN_STATUSES, hold=False),
    "resume plan": TransitionRule(OPEN_STATUSES, hold=True),
    "complete plan": TransitionRule(OPEN_STATUSES),
    "cancel plan": TransitionRule(OPEN_STATUSES),
    "delete plan": TransitionRule(TERMINAL_STATUSES),
}


def check_transition(plan: TreatmentPlan, operation: str) -> None:
    """Raise PlanValidationError unless ``operation`` is allowed in the plan's current state."""
    rule = TRANSITION_RULES[operation]
    state = plan.state
    if state.status not in rule.statuses:
        allowed = " or ".join(sorted(s.value for s in rule.statuses))
        raise PlanValidationError(operation, f"plan is {state.status.value}, must be {allowed}")
    if rule.hold is True and not state.is_on_hold:
        raise PlanValidationError(operation, "plan is not on hold")
    if rule.hold is False and state.is_on_hold:
        raise PlanValidationError(operation, "plan is on hold")


def _require_action(plan: TreatmentPlan, action_id: str) -> PlanAction:
    action = plan.find_action(action_id)
    if action is None:
        raise ActionNotFoundError(plan.id, action_id)
    return action


def _amendment_time(plan: TreatmentPlan, operation: str, now: Optional[str]) -> str:
    """Timestamp for the next amendment; never earlier than the last one recorded."""
    now = now or now_iso()
    at = parse_iso(now)
    if at is None:
        raise PlanValidationError(operation, f"invalid timestamp {now!r}")
    if plan.amendments:
        last = plan.amendments[-1].occurred_at
        last_at = parse_iso(last)
        if last_at is not None and at < last_at:
            raise PlanValidationError(operation, f"{now} is earlier than the last amendment ({last})")
    return now


def _ratchet(plan: TreatmentPlan) -> None:
    if plan.status == PlanStatus.ACTIVE:
        plan.status = PlanStatus.MODIFIED


def _append(plan: TreatmentPlan, amendment: Amendment) -> None:
    plan.amendments.append(amendment)
    logger.debug(
        "Plan %s: %s by %s (status=%s, on_hold=%s)",
        plan.id, amendment.type.value, amendment.amended_by, plan.status.value, plan.is_on_hold,
    )


# ========================================
# Operations
# ========================================

def create_plan(draft: CreateTreatmentPlan, actor: str, now: Optional[str] = None) -> TreatmentPlan:
    """Build a new active plan from a draft. Creation records no amendment."""
    now = now or now_iso()
    actions = [
        PlanAction(description=a.description, dosage=a.dosage, timing=a.timing)
        for a in draft.actions
    ]
    return TreatmentPlan(
        id=new_id(),
        patient_id=draft.patient_id,
        category=draft.category,
        status=PlanStatus.ACTIVE,
        title=draft.title,
        summary=draft.summary,
        rationale=draft.rationale,
        occurred_at=draft.occurred_at or now,
        created_by=actor,
        actions=actions,
        amendments=[],
        assistant_recommendation=draft.assistant_recommendation,
    )


def add_action(
    plan: TreatmentPlan,
    action: NewAction,
    actor: str,
    reason: Bilingual,
    now: Optional[str] = None,
) -> TreatmentPlan:
    check_transition(plan, "add action")
    now = _amendment_time(plan, "add action", now)
    added = PlanAction(
        description=action.description,
        dosage=action.dosage,
        timing=action.timing,
        added_at=now,
        added_by=actor,
    )
    plan.actions.append(added)
    _ratchet(plan)
    _append(plan, Amendment(
        type=AmendmentType.ACTION_ADDED,
        description=Bilingual(f"Added: {action.description.en}", f"Agregado: {action.description.es}"),
        reason=reason,
        amended_by=actor,
        occurred_at=now,
        action_id=added.id,
        new_value=action.description.en,
    ))
    return plan


def complete_action(
    plan: TreatmentPlan,
    action_id: str,
    actor: str,
    notes: Optional[str] = None,
    now: Optional[str] = None,
) -> TreatmentPlan:
    """Mark an action done. Plan status is unchanged, even when every action is complete."""
    check_transition(plan, "complete action")
    action = _require_action(plan, action_id)
    if action.is_removed:
        raise PlanValidationError("complete action", "action has been removed")
    if action.completed:
        raise PlanValidationError("complete action", "action is already completed")

    now = _amendment_time(plan, "complete action", now)
    action.completed = True
    action.completed_at = now
    action.completed_by = actor
    if notes:
        action.notes = notes
    _append(plan, Amendment(
        type=AmendmentType.OTHER,
        description=Bilingual(
            f"Action completed: {action.description.en}",
            f"Acción completada: {action.description.es}",
        ),
        reason=Bilingual(notes or "Action performed", notes or "Acción realizada"),
        amended_by=actor,
        occurred_at=now,
        action_id=action.id,
    ))
    return plan


def remove_action(
    plan: TreatmentPlan,
    action_id: str,
    actor: str,
    reason: Bilingual,
    now: Optional[str] = None,
) -> TreatmentPlan:
    """Soft-delete an action; it stays in ``plan.actions`` with ``is_removed`` set."""
    check_transition(plan, "remove action")
    action = _require_action(plan, action_id)
    if action.is_removed:
        raise PlanValidationError("remove action", "action is already removed")

    now = _amendment_time(plan, "remove action", now)
    action.is_removed = True
    action.removed_at = now
    action.removed_by = actor
    _ratchet(plan)
    _append(plan, Amendment(
        type=AmendmentType.ACTION_REMOVED,
        description=Bilingual(f"Removed: {action.description.en}", f"Eliminado: {action.description.es}"),
        reason=reason,
        amended_by=actor,
        occurred_at=now,
        action_id=action.id,
        previous_value=action.description.en,
    ))
    return plan


def modify_action(
    plan: TreatmentPlan,
    action_id: str,
    actor: str,
    reason: Bilingual,
    description: Optional[Bilingual] = None,
    dosage: Optional[str] = None,
    timing: Optional[str] = None,
    now: Optional[str] = None,
) -> TreatmentPlan:
    """
    Change an action's description, dosage or timing.

    A change touching only the dosage is recorded as ``dosage_changed``;
    anything else is ``action_modified``.
    """
    check_transition(plan, "modify action")
    action = _require_action(plan, action_id)
    if action.is_removed:
        raise PlanValidationError("modify action", "action has been removed")
    if action.completed:
        raise PlanValidationError("modify action", "action is already completed")

    previous, new = [], []
    changed = set()
    if description is not None and description != action.description:
        previous.append(f"Description: {action.description.en}")
        new.append(f"Description: {description.en}")
        changed.add("description")
    if dosage is not None and dosage != action.dosage:
        previous.append(f"Dosage: {action.dosage or 'none'}")
        new.append(f"Dosage: {dosage}")
        changed.add("dosage")
    if timing is not None and timing != action.timing:
        previous.append(f"Timing: {action.timing or 'none'}")
        new.append(f"Timing: {timing}")
        changed.add("timing")
    if not changed:
        raise PlanValidationError("modify action", "no changes supplied")

    now = _amendment_time(plan, "modify action", now)
    original = action.description
    if "description" in changed:
        action.description = description
    if "dosage" in changed:
        action.dosage = dosage
    if "timing" in changed:
        action.timing = timing

    amendment_type = AmendmentType.DOSAGE_CHANGED if changed == {"dosage"} else AmendmentType.ACTION_MODIFIED
    _ratchet(plan)
    _append(plan, Amendment(
        type=amendment_type,
        description=Bilingual(f"Modified action: {original.en}", f"Acción modificada: {original.es}"),
        reason=reason,
        amended_by=actor,
        occurred_at=now,
        action_id=action.id,
        previous_value="; ".join(previous),
        new_value="; ".join(new),
    ))
    return plan


def record_amendment(
    plan: TreatmentPlan,
    amendment_type: AmendmentType,
    description: Bilingual,
    reason: Bilingual,
    actor: str,
    assistant_recommended: bool = False,
    assistant_rationale: Optional[str] = None,
    now: Optional[str] = None,
) -> TreatmentPlan:
    """Record a clinical update, escalation or similar note against the plan."""
    amendment_type = AmendmentType(amendment_type)
    if amendment_type not in FREE_AMENDMENT_TYPES:
        raise PlanValidationError(
            "record amendment",
            f"{amendment_type.value} is recorded by its own operation",
        )
    check_transition(plan, "record amendment")
    now = _amendment_time(plan, "record amendment", now)
    _ratchet(plan)
    _append(plan, Amendment(
        type=amendment_type,
        description=description,
        reason=reason,
        amended_by=actor,
        occurred_at=now,
        assistant_recommended=assistant_recommended,
        assistant_rationale=assistant_rationale,
    ))
    return plan


def hold_plan(
    plan: TreatmentPlan,
    actor: str,
    reason: Bilingual,
    now: Optional[str] = None,
) -> TreatmentPlan:
    check_transition(plan, "hold plan")
    now = _amendment_time(plan, "hold plan", now)
    plan.is_on_hold = True
    plan.hold_reason = reason
    plan.hold_at = now
    _append(plan, Amendment(
        type=AmendmentType.HOLD,
        description=Bilingual("Plan put on hold", "Plan en pausa"),
        reason=reason,
        amended_by=actor,
        occurred_at=now,
    ))
    return plan


def resume_plan(
    plan: TreatmentPlan,
    actor: str,
    notes: Optional[Bilingual] = None,
    now: Optional[str] = None,
) -> TreatmentPlan:
    """Lift a hold. Status is left as it was; a modified plan stays modified."""
    check_transition(plan, "resume plan")
    now = _amendment_time(plan, "resume plan", now)
    plan.is_on_hold = False
    plan.hold_reason = None
    plan.resumed_at = now
    _append(plan, Amendment(
        type=AmendmentType.RESUMED,
        description=notes or Bilingual("Plan resumed", "Plan reanudado"),
        reason=notes or Bilingual("Ready to continue", "Listo para continuar"),
        amended_by=actor,
        occurred_at=now,
    ))
    return plan


def complete_plan(
    plan: TreatmentPlan,
    actor: str,
    outcome: Bilingual,
    now: Optional[str] = None,
) -> TreatmentPlan:
    check_transition(plan, "complete plan")
    now = _amendment_time(plan, "complete plan", now)
    plan.status = PlanStatus.COMPLETED
    plan.outcome = outcome
    plan.completed_at = now
    plan.is_on_hold = False
    plan.hold_reason = None
    _append(plan, Amendment(
        type=AmendmentType.OTHER,
        description=Bilingual("Plan completed", "Plan completado"),
        reason=outcome,
        amended_by=actor,
        occurred_at=now,
    ))
    return plan


def cancel_plan(
    plan: TreatmentPlan,
    actor: str,
    reason: Bilingual,
    now: Optional[str] = None,
) -> TreatmentPlan:
    """Cancel an open plan; the reason is kept as the plan outcome."""
    check_transition(plan, "cancel plan")
    now = _amendment_time(plan, "cancel plan", now)
    plan.status = PlanStatus.CANCELLED
    plan.outcome = reason
    plan.cancelled_at = now
    plan.is_on_hold = False
    plan.hold_reason = None
    _append(plan, Amendment(
        type=AmendmentType.OTHER,
        description=Bilingual("Plan cancelled", "Plan cancelado"),
        reason=reason,
        amended_by=actor,
        occurred_at=now,
    ))
    return plan


def ensure_deletable(plan: TreatmentPlan) -> None:
    """Only completed or cancelled plans may be deleted."""
    check_transition(plan, "delete plan")


def progress(plan: TreatmentPlan) -> float:
    """Fraction of non-removed actions that are completed (0.0 with no actions)."""
    actions = plan.active_actions
    if not actions:
        return 0.0
    return sum(1 for a in actions if a.completed) / len(actions)
