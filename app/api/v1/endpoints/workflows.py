from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from app.api.deps import get_actor_id, get_workflow_service
from app.core.rate_limit import BULK_RATE_LIMIT, limiter
from app.schemas.common import SuccessResponse
from app.schemas.workflow import (
    ExecutionContext,
    WorkflowCreate,
    WorkflowExecutionResult,
    WorkflowOut,
    WorkflowStats,
    WorkflowTriggerResult,
    WorkflowUpdate,
)
from app.services.workflow_service import WorkflowService

router = APIRouter(prefix="/workflows", tags=["Workflows"])


@router.post("", response_model=WorkflowOut, status_code=201)
async def create_workflow(
    body: WorkflowCreate,
    actor_id: Optional[UUID] = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> WorkflowOut:
    workflow = await service.create_workflow(body, created_by_id=actor_id)
    return WorkflowOut.model_validate(workflow)


@router.get("", response_model=List[WorkflowOut])
async def list_workflows(
    is_active: Optional[bool] = Query(None),
    trigger: Optional[str] = Query(None),
    created_by_id: Optional[UUID] = Query(None),
    service: WorkflowService = Depends(get_workflow_service),
) -> List[WorkflowOut]:
    workflows = await service.get_workflows(
        is_active=is_active, trigger=trigger, created_by_id=created_by_id
    )
    return [WorkflowOut.model_validate(w) for w in workflows]


@router.get("/stats", response_model=WorkflowStats)
async def workflow_stats(
    service: WorkflowService = Depends(get_workflow_service),
) -> WorkflowStats:
    return await service.get_workflow_stats()


@router.post("/trigger/{event}", response_model=List[WorkflowTriggerResult])
@limiter.limit(BULK_RATE_LIMIT)
async def trigger_workflows(
    request: Request,
    event: str,
    body: Optional[ExecutionContext] = None,
    service: WorkflowService = Depends(get_workflow_service),
) -> List[WorkflowTriggerResult]:
    """Execute every active workflow whose trigger is *event*.

    One workflow failing does not stop the others; each gets its own
    result item.
    """
    return await service.trigger_workflows(event, body or ExecutionContext())


@router.post(
    "/executions/{execution_id}/resume", response_model=WorkflowExecutionResult
)
async def resume_execution(
    execution_id: UUID,
    service: WorkflowService = Depends(get_workflow_service),
) -> WorkflowExecutionResult:
    """Resume a delayed execution now instead of waiting for the scheduler."""
    return await service.resume_execution(execution_id)


@router.get("/{workflow_id}", response_model=WorkflowOut)
async def get_workflow(
    workflow_id: UUID,
    service: WorkflowService = Depends(get_workflow_service),
) -> WorkflowOut:
    return WorkflowOut.model_validate(await service.get_workflow_by_id(workflow_id))


@router.put("/{workflow_id}", response_model=WorkflowOut)
async def update_workflow(
    workflow_id: UUID,
    body: WorkflowUpdate,
    actor_id: Optional[UUID] = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> WorkflowOut:
    workflow = await service.update_workflow(workflow_id, body, actor_id=actor_id)
    return WorkflowOut.model_validate(workflow)


@router.delete("/{workflow_id}", response_model=SuccessResponse)
async def delete_workflow(
    workflow_id: UUID,
    actor_id: Optional[UUID] = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> SuccessResponse:
    await service.delete_workflow(workflow_id, actor_id=actor_id)
    return SuccessResponse()


@router.post("/{workflow_id}/execute", response_model=WorkflowExecutionResult)
async def execute_workflow(
    workflow_id: UUID,
    body: Optional[ExecutionContext] = None,
    service: WorkflowService = Depends(get_workflow_service),
) -> WorkflowExecutionResult:
    return await service.execute_workflow(workflow_id, body or ExecutionContext())
