from enum import Enum
from pydantic import BaseModel


class RuleType(str, Enum):
    assignment = "assignment"
    scoring = "scoring"
    notification = "notification"
    status_change = "status_change"
    enrichment = "enrichment"


class ActionType(str, Enum):
    assignment = "assignment"
    scoring = "scoring"
    notification = "notification"
    status_change = "status_change"
    enrichment = "enrichment"


class ConditionOperator(str, Enum):
    equals = "equals"
    not_equals = "not_equals"
    greater_than = "greater_than"
    less_than = "less_than"
    contains = "contains"
    in_ = "in"
    not_in = "not_in"


class LogicalOperator(str, Enum):
    AND = "AND"
    OR = "OR"


class StepType(str, Enum):
    action = "action"
    condition = "condition"
    delay = "delay"
    notification = "notification"
    integration = "integration"


class ExecutionStatus(str, Enum):
    running = "running"
    completed = "completed"
    failed = "failed"


class TriggerEvent(str, Enum):
    """Lead lifecycle events that fire rule execution."""

    created = "created"
    updated = "updated"
    scored = "scored"
    enriched = "enriched"


class ExecutionKind(str, Enum):
    rule = "rule"
    workflow = "workflow"


class SuccessResponse(BaseModel):
    """Generic success response base."""

    success: bool = True
