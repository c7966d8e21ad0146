from typing import Dict, FrozenSet

from app.schemas.common import (
    ActionType,
    ConditionOperator,
    ExecutionStatus,
    LogicalOperator,
    RuleType,
    StepType,
    TriggerEvent,
)

RULE_TYPES: FrozenSet[str] = frozenset(t.value for t in RuleType)
ACTION_TYPES: FrozenSet[str] = frozenset(a.value for a in ActionType)
STEP_TYPES: FrozenSet[str] = frozenset(s.value for s in StepType)
CONDITION_OPERATORS: FrozenSet[str] = frozenset(o.value for o in ConditionOperator)
LOGICAL_OPERATORS: FrozenSet[str] = frozenset(o.value for o in LogicalOperator)
TRIGGER_EVENTS: FrozenSet[str] = frozenset(e.value for e in TriggerEvent)

EXECUTION_STATUSES: FrozenSet[str] = frozenset(s.value for s in ExecutionStatus)

# Terminal states — an execution never leaves these
TERMINAL_EXECUTION_STATUSES: FrozenSet[str] = frozenset({"completed", "failed"})

# Lead fields resolved from the lead itself; anything else is read from
# the evaluation context.
KNOWN_LEAD_FIELDS: FrozenSet[str] = frozenset(
    {
        "score",
        "status",
        "industry",
        "companyName",
        "domain",
        "assignedTo",
        "assignedTeam",
        "campaignId",
        "createdAt",
        "updatedAt",
        "confidence",
        "companySize",
        "revenue",
    }
)

# Rule types that react to each lifecycle trigger event
TRIGGER_RULE_TYPES: Dict[str, FrozenSet[str]] = {
    "created": frozenset({"assignment", "notification", "status_change"}),
    "updated": frozenset({"assignment", "notification", "status_change"}),
    "scored": frozenset({"assignment", "notification", "status_change", "scoring"}),
    "enriched": frozenset(
        {"assignment", "notification", "status_change", "enrichment"}
    ),
}

# Action names understood by workflow ``action`` steps → lead column
WORKFLOW_STEP_ACTIONS: Dict[str, str] = {
    "update_lead_status": "status",
    "assign_lead": "assigned_to_id",
    "assign_team": "assigned_team_id",
}

# Trigger event recorded for rule logs written by bulk application
BULK_APPLY_TRIGGER_EVENT: str = "bulk_apply"

# Workflow priority bands used by the overview statistics
HIGH_PRIORITY_THRESHOLD: int = 80
MEDIUM_PRIORITY_THRESHOLD: int = 40

AUDIT_ACTIONS: FrozenSet[str] = frozenset({"CREATE", "UPDATE", "DELETE"})
AUDIT_ENTITY_TYPES: FrozenSet[str] = frozenset({"BUSINESS_RULE", "WORKFLOW"})
