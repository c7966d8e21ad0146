"""Business-rule Pydantic schemas (definitions, evaluation, bulk results)."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.common import RuleType, SuccessResponse, TriggerEvent


# ---------------------------------------------------------------------------
# Rule building blocks
# ---------------------------------------------------------------------------


class RuleCondition(BaseModel):
    """A single field/operator/value comparison.

    ``logical_operator`` belongs to *this* condition and decides how the
    running result combines with the *next* condition.  Operator names
    are plain strings here; the rule service rejects unknown ones when a
    rule is saved, and the evaluator treats them as non-matching.
    """

    model_config = ConfigDict(populate_by_name=True)

    field: str = Field(..., min_length=1)
    operator: str = Field(..., min_length=1)
    value: Any = None
    logical_operator: Optional[str] = Field(None, alias="logicalOperator")


class RuleAction(BaseModel):
    """A typed effect applied to a lead when its rule matches."""

    type: str = Field(..., min_length=1)
    target: str = ""
    value: Any = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class BusinessRuleCreate(BaseModel):
    """Request body for creating a business rule."""

    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    type: RuleType
    conditions: List[RuleCondition] = Field(..., min_length=1)
    actions: List[RuleAction] = Field(..., min_length=1)
    is_active: bool = True
    priority: int = Field(0, ge=0, le=100)


class BusinessRuleUpdate(BaseModel):
    """Partial update; omitted fields are left untouched."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    type: Optional[RuleType] = None
    conditions: Optional[List[RuleCondition]] = Field(None, min_length=1)
    actions: Optional[List[RuleAction]] = Field(None, min_length=1)
    is_active: Optional[bool] = None
    priority: Optional[int] = Field(None, ge=0, le=100)


class EvaluateRulesRequest(BaseModel):
    context: Optional[Dict[str, Any]] = None


class ApplyActionsRequest(BaseModel):
    actions: List[RuleAction] = Field(..., min_length=1)


class RuleTestRequest(BaseModel):
    """Sample lead snapshot evaluated against a stored rule."""

    test_data: Dict[str, Any]


class BulkApplyRequest(BaseModel):
    lead_ids: List[UUID] = Field(..., min_length=1)
    context: Optional[Dict[str, Any]] = None


class TriggerRulesRequest(BaseModel):
    trigger_event: TriggerEvent
    context: Optional[Dict[str, Any]] = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BusinessRuleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rule_id: UUID
    name: str
    description: Optional[str] = None
    type: str
    conditions: List[RuleCondition]
    actions: List[RuleAction]
    is_active: bool
    priority: int
    created_by_id: Optional[UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RuleMatch(BaseModel):
    """One matching rule returned by ``evaluate_rules``."""

    rule_id: UUID
    rule_name: str
    matched: bool = True
    actions: List[RuleAction]
    conditions: List[RuleCondition]


class RuleTestResult(BaseModel):
    matched: bool
    actions: List[RuleAction] = Field(default_factory=list)
    conditions: List[RuleCondition]


class BulkApplyItem(BaseModel):
    """Per-lead outcome of a bulk rule application."""

    lead_id: UUID
    success: bool
    rules_matched: Optional[int] = None
    actions_applied: Optional[int] = None
    error: Optional[str] = None


class RuleExecutionResult(BaseModel):
    """Outcome of executing the rules relevant to one trigger event."""

    success: bool = True
    rules_executed: int = 0
    actions_applied: int = 0
    errors: List[str] = Field(default_factory=list)
    execution_time_ms: int = 0


class RuleTypeCount(BaseModel):
    type: str
    count: int


class RuleStats(BaseModel):
    total_rules: int
    active_rules: int
    inactive_rules: int
    rule_types: List[RuleTypeCount] = Field(default_factory=list)


class ApplyActionsResponse(SuccessResponse):
    lead_id: UUID
    actions_applied: int
