# errors.py
# Exception types raised by the plan state machine, plan service and assistant


class PlanError(Exception):
    """Base class for treatment plan failures surfaced to the clinician"""


class PlanNotFoundError(PlanError):
    def __init__(self, plan_id: str):
        super().__init__(f"Treatment plan not found: {plan_id}")
        self.plan_id = plan_id


class ActionNotFoundError(PlanError):
    def __init__(self, plan_id: str, action_id: str):
        super().__init__(f"Action {action_id} not found in plan {plan_id}")
        self.plan_id = plan_id
        self.action_id = action_id


class PlanValidationError(PlanError):
    """Operation not allowed in the plan's current state"""

    def __init__(self, operation: str, reason: str):
        super().__init__(f"Cannot {operation}: {reason}")
        self.operation = operation
        self.reason = reason


class StalePlanError(PlanError):
    """Plan was changed by another writer since the snapshot was loaded"""

    def __init__(self, plan_id: str, expected_version: int):
        super().__init__(
            f"Treatment plan {plan_id} was modified concurrently "
            f"(expected version {expected_version})"
        )
        self.plan_id = plan_id
        self.expected_version = expected_version


class AssistantError(Exception):
    """Clinical assistant call failed"""


class AssistantConfigError(AssistantError):
    """Clinical assistant is not configured (e.g. missing API key)"""
