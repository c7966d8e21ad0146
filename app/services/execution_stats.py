import logging
from typing import Any, Dict
from uuid import UUID

from app.core.constants import TERMINAL_EXECUTION_STATUSES
from app.core.exceptions import ExecutionNotFoundError
from app.repositories.rule_execution_log_repository import RuleExecutionLogRepository
from app.repositories.workflow_execution_repository import WorkflowExecutionRepository
from app.schemas.common import ExecutionKind
from app.schemas.execution import (
    ExecutionFilters,
    ExecutionPage,
    ExecutionStats,
    RuleExecutionLogOut,
    StepResultRecordOut,
    WorkflowExecutionOut,
)

logger = logging.getLogger(__name__)


def success_rate(successful: int, total: int) -> float:
    """Percentage of successful attempts; 0 when nothing was attempted."""
    if total == 0:
        return 0.0
    return round(successful / total * 100, 2)


class ExecutionStatsService:
    """Read side of the execution audit trails.

    ``kind=rule`` reads the rule execution log; ``kind=workflow`` reads
    workflow executions, where only terminal (completed / failed)
    executions count towards the statistics.
    """

    def __init__(
        self,
        rule_log_repo: RuleExecutionLogRepository,
        execution_repo: WorkflowExecutionRepository,
    ) -> None:
        self._rule_log_repo = rule_log_repo
        self._execution_repo = execution_repo

    @staticmethod
    def _rule_filters(filters: ExecutionFilters) -> Dict[str, Any]:
        return {
            "rule_id": filters.rule_id,
            "lead_id": filters.lead_id,
            "trigger_event": filters.trigger_event,
            "success": filters.success,
            "start_date": filters.start_date,
            "end_date": filters.end_date,
        }

    @staticmethod
    def _workflow_filters(filters: ExecutionFilters) -> Dict[str, Any]:
        status = filters.status.value if filters.status is not None else None
        if status is None and filters.success is not None:
            status = "completed" if filters.success else "failed"
        return {
            "workflow_id": filters.workflow_id,
            "lead_id": filters.lead_id,
            "status": status,
            "start_date": filters.start_date,
            "end_date": filters.end_date,
        }

    async def get_execution_stats(self, filters: ExecutionFilters) -> ExecutionStats:
        if filters.kind == ExecutionKind.workflow:
            counts = await self._execution_repo.count_by_status(
                **self._workflow_filters(filters)
            )
            successful = counts.get("completed", 0)
            failed = counts.get("failed", 0)
            total = sum(
                count
                for status, count in counts.items()
                if status in TERMINAL_EXECUTION_STATUSES
            )
        else:
            total, successful = await self._rule_log_repo.count_outcomes(
                **self._rule_filters(filters)
            )
            failed = total - successful

        return ExecutionStats(
            total=total,
            successful=successful,
            failed=failed,
            success_rate=success_rate(successful, total),
        )

    async def get_executions(
        self, filters: ExecutionFilters, skip: int = 0, limit: int = 50
    ) -> ExecutionPage:
        if filters.kind == ExecutionKind.workflow:
            rows, total_count = await self._execution_repo.list_executions(
                skip=skip, limit=limit, **self._workflow_filters(filters)
            )
            items = [WorkflowExecutionOut.model_validate(row) for row in rows]
        else:
            rows, total_count = await self._rule_log_repo.list_logs(
                skip=skip, limit=limit, **self._rule_filters(filters)
            )
            items = [RuleExecutionLogOut.model_validate(row) for row in rows]

        return ExecutionPage(
            items=items,
            total_count=total_count,
            has_more=total_count > skip + len(items),
        )

    async def get_execution_steps(
        self, execution_id: UUID, skip: int = 0, limit: int = 50
    ) -> ExecutionPage:
        """Page through the step-result log of one workflow execution."""
        if await self._execution_repo.get_by_id(execution_id) is None:
            raise ExecutionNotFoundError(f"Workflow execution {execution_id} not found")

        rows, total_count = await self._execution_repo.list_step_results(
            execution_id, skip=skip, limit=limit
        )
        items = [StepResultRecordOut.model_validate(row) for row in rows]
        return ExecutionPage(
            items=items,
            total_count=total_count,
            has_more=total_count > skip + len(items),
        )
