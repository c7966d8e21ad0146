"""Workflow Pydantic schemas (definitions, execution context and results)."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class WorkflowStepIn(BaseModel):
    """One step of a workflow definition.

    ``type`` is validated by the workflow service so that stored steps
    with an unknown type still load (and fail at execution time).
    """

    name: str = Field(..., min_length=1, max_length=100)
    type: str = Field(..., min_length=1)
    order: int = Field(..., ge=0)
    config: Dict[str, Any] = Field(default_factory=dict)


class WorkflowCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    trigger: str = Field(..., min_length=1, max_length=100)
    is_active: bool = True
    priority: int = Field(0, ge=0, le=100)
    steps: List[WorkflowStepIn] = Field(..., min_length=1)


class WorkflowUpdate(BaseModel):
    """Partial update; supplying ``steps`` replaces every existing step."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    trigger: Optional[str] = Field(None, min_length=1, max_length=100)
    is_active: Optional[bool] = None
    priority: Optional[int] = Field(None, ge=0, le=100)
    steps: Optional[List[WorkflowStepIn]] = Field(None, min_length=1)


class ExecutionContext(BaseModel):
    """Who and what a workflow run is about."""

    lead_id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    trigger_data: Optional[Dict[str, Any]] = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class WorkflowStepOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    step_id: UUID
    name: str
    type: str
    order: int
    config: Dict[str, Any] = Field(default_factory=dict)


class WorkflowOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    workflow_id: UUID
    name: str
    description: Optional[str] = None
    trigger: str
    is_active: bool
    priority: int
    created_by_id: Optional[UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    steps: List[WorkflowStepOut] = Field(default_factory=list)


class StepResultOut(BaseModel):
    step_id: Optional[UUID] = None
    step_name: str
    step_type: str
    success: bool
    result: Any = None
    error: Optional[str] = None


class WorkflowExecutionResult(BaseModel):
    """Returned by ``execute_workflow`` and ``resume_execution``.

    ``suspended`` is ``True`` when a long delay step parked the
    execution; it stays ``running`` until the delay scheduler resumes it
    at ``resume_at``.
    """

    execution_id: UUID
    success: bool
    step_results: List[StepResultOut] = Field(default_factory=list)
    error_message: Optional[str] = None
    suspended: bool = False
    resume_at: Optional[datetime] = None


class WorkflowTriggerResult(BaseModel):
    """Per-workflow outcome of ``trigger_workflows``."""

    workflow_id: UUID
    workflow_name: str
    success: bool
    execution_id: Optional[UUID] = None
    step_results: List[StepResultOut] = Field(default_factory=list)
    error_message: Optional[str] = None
    suspended: bool = False


class WorkflowPriorityBands(BaseModel):
    high: int = 0
    medium: int = 0
    low: int = 0


class WorkflowStats(BaseModel):
    total: int
    active: int
    inactive: int
    by_trigger: Dict[str, int] = Field(default_factory=dict)
    by_priority: WorkflowPriorityBands = Field(default_factory=WorkflowPriorityBands)
