"""Execution log / statistics schemas."""

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.common import ExecutionKind, ExecutionStatus


class ExecutionFilters(BaseModel):
    """Filters shared by execution listing and statistics.

    ``kind`` selects the audit trail: rule execution logs or workflow
    executions.  Filters that do not apply to the selected kind are
    ignored.
    """

    kind: ExecutionKind = ExecutionKind.rule
    rule_id: Optional[UUID] = None
    workflow_id: Optional[UUID] = None
    lead_id: Optional[UUID] = None
    trigger_event: Optional[str] = None
    status: Optional[ExecutionStatus] = None
    success: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class ExecutionStats(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0
    success_rate: float = 0.0


class RuleExecutionLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    log_id: UUID
    lead_id: Optional[UUID] = None
    rule_id: Optional[UUID] = None
    trigger_event: str
    success: bool
    error_message: Optional[str] = None
    executed_at: Optional[datetime] = None


class WorkflowExecutionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    execution_id: UUID
    workflow_id: UUID
    lead_id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    status: str
    trigger_data: Optional[Any] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    resume_at: Optional[datetime] = None


class StepResultRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    position: int
    step_id: Optional[UUID] = None
    step_name: str
    step_type: str
    success: bool
    result: Optional[Any] = None
    error: Optional[str] = None
    recorded_at: Optional[datetime] = None


class ExecutionPage(BaseModel):
    """Offset-paginated slice of an execution audit trail."""

    items: List[Any] = Field(default_factory=list)
    total_count: int = Field(0, description="Total number of matching rows")
    has_more: bool = False
