"""Pydantic schemas package – re-exports for convenience."""

# Common enums
from app.schemas.common import (
    RuleType as RuleType,
    ActionType as ActionType,
    ConditionOperator as ConditionOperator,
    LogicalOperator as LogicalOperator,
    StepType as StepType,
    ExecutionStatus as ExecutionStatus,
    TriggerEvent as TriggerEvent,
    ExecutionKind as ExecutionKind,
    SuccessResponse as SuccessResponse,
)

# Business rule schemas
from app.schemas.business_rule import (
    RuleCondition as RuleCondition,
    RuleAction as RuleAction,
    BusinessRuleCreate as BusinessRuleCreate,
    BusinessRuleUpdate as BusinessRuleUpdate,
    BusinessRuleOut as BusinessRuleOut,
    RuleMatch as RuleMatch,
    RuleTestResult as RuleTestResult,
    BulkApplyItem as BulkApplyItem,
    RuleExecutionResult as RuleExecutionResult,
    RuleStats as RuleStats,
    ApplyActionsResponse as ApplyActionsResponse,
)

# Workflow schemas
from app.schemas.workflow import (
    WorkflowStepIn as WorkflowStepIn,
    WorkflowCreate as WorkflowCreate,
    WorkflowUpdate as WorkflowUpdate,
    WorkflowOut as WorkflowOut,
    ExecutionContext as ExecutionContext,
    StepResultOut as StepResultOut,
    WorkflowExecutionResult as WorkflowExecutionResult,
    WorkflowTriggerResult as WorkflowTriggerResult,
    WorkflowStats as WorkflowStats,
)

# Execution log / statistics schemas
from app.schemas.execution import (
    ExecutionFilters as ExecutionFilters,
    ExecutionStats as ExecutionStats,
    ExecutionPage as ExecutionPage,
)
