from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_execution_stats_service
from app.core.config import settings
from app.schemas.execution import ExecutionFilters, ExecutionPage, ExecutionStats
from app.services.execution_stats import ExecutionStatsService

router = APIRouter(prefix="/executions", tags=["Executions"])


@router.get("", response_model=ExecutionPage)
async def list_executions(
    filters: ExecutionFilters = Depends(),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=settings.EXECUTIONS_MAX_PAGE_SIZE),
    service: ExecutionStatsService = Depends(get_execution_stats_service),
) -> ExecutionPage:
    """Page through rule execution logs (``kind=rule``) or workflow
    executions (``kind=workflow``), newest first."""
    return await service.get_executions(filters, skip=skip, limit=limit)


@router.get("/stats", response_model=ExecutionStats)
async def execution_stats(
    filters: ExecutionFilters = Depends(),
    service: ExecutionStatsService = Depends(get_execution_stats_service),
) -> ExecutionStats:
    return await service.get_execution_stats(filters)


@router.get("/{execution_id}/steps", response_model=ExecutionPage)
async def execution_steps(
    execution_id: UUID,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=settings.EXECUTIONS_MAX_PAGE_SIZE),
    service: ExecutionStatsService = Depends(get_execution_stats_service),
) -> ExecutionPage:
    return await service.get_execution_steps(execution_id, skip=skip, limit=limit)
