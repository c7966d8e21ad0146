from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, func

from app.models.workflow_execution import WorkflowExecution, WorkflowStepResult
from app.repositories.base import BaseRepository


class WorkflowExecutionRepository(BaseRepository):
    """Encapsulates queries against ``workflow_executions`` and the
    append-only ``workflow_step_results`` log."""

    async def create(self, **kwargs: Any) -> WorkflowExecution:
        execution = WorkflowExecution(**kwargs)
        self._db.add(execution)
        await self._db.flush()
        return execution

    async def get_by_id(self, execution_id: UUID) -> Optional[WorkflowExecution]:
        result = await self._db.execute(
            select(WorkflowExecution).where(
                WorkflowExecution.execution_id == execution_id
            )
        )
        return result.scalar_one_or_none()

    async def append_step_result(
        self, execution_id: UUID, position: int, record: Dict[str, Any]
    ) -> WorkflowStepResult:
        """Append one step outcome at *position* (0-based)."""
        row = WorkflowStepResult(
            execution_id=execution_id,
            position=position,
            step_id=record.get("step_id"),
            step_name=record["step_name"],
            step_type=record["step_type"],
            success=record["success"],
            result=record.get("result"),
            error=record.get("error"),
        )
        self._db.add(row)
        await self._db.flush()
        return row

    async def count_step_results(self, execution_id: UUID) -> int:
        result = await self._db.execute(
            select(func.count(WorkflowStepResult.result_id)).where(
                WorkflowStepResult.execution_id == execution_id
            )
        )
        return result.scalar() or 0

    async def finalize(
        self,
        execution: WorkflowExecution,
        status: str,
        error_message: Optional[str] = None,
    ) -> None:
        """Move *execution* into a terminal status.

        ``completed_at`` is stamped by the session ``before_flush``
        listener, which also rejects leaving a terminal state.
        """
        execution.status = status
        execution.error_message = error_message
        await self._db.flush()

    async def suspend(
        self, execution: WorkflowExecution, resume_at: datetime, after_order: int
    ) -> None:
        execution.resume_at = resume_at
        execution.resume_after_order = after_order
        await self._db.flush()

    async def clear_suspension(self, execution: WorkflowExecution) -> None:
        execution.resume_at = None
        execution.resume_after_order = None
        await self._db.flush()

    async def find_due(self, now: datetime, limit: int) -> List[UUID]:
        """Return ids of suspended running executions whose delay elapsed."""
        result = await self._db.execute(
            select(WorkflowExecution.execution_id)
            .where(
                WorkflowExecution.status == "running",
                WorkflowExecution.resume_at.is_not(None),
                WorkflowExecution.resume_at <= now,
            )
            .order_by(WorkflowExecution.resume_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    def _filter(
        query,
        *,
        workflow_id: Optional[UUID] = None,
        lead_id: Optional[UUID] = None,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ):
        if workflow_id is not None:
            query = query.where(WorkflowExecution.workflow_id == workflow_id)
        if lead_id is not None:
            query = query.where(WorkflowExecution.lead_id == lead_id)
        if status is not None:
            query = query.where(WorkflowExecution.status == status)
        if start_date is not None:
            query = query.where(WorkflowExecution.started_at >= start_date)
        if end_date is not None:
            query = query.where(WorkflowExecution.started_at <= end_date)
        return query

    async def list_executions(
        self, *, skip: int = 0, limit: int = 50, **filters: Any
    ) -> Tuple[List[WorkflowExecution], int]:
        """Return one page of executions (newest first) and the full count.

        The total is computed with ``COUNT(*) OVER()`` in the same query;
        a page past the end therefore reports a total of ``0``.
        """
        query = self._filter(
            select(WorkflowExecution, func.count().over().label("total_count")),
            **filters,
        )
        query = (
            query.order_by(WorkflowExecution.started_at.desc())
            .offset(skip)
            .limit(limit)
        )
        rows = (await self._db.execute(query)).all()
        if not rows:
            return [], 0
        return [row[0] for row in rows], rows[0].total_count

    async def count_by_status(self, **filters: Any) -> Dict[str, int]:
        query = self._filter(
            select(WorkflowExecution.status, func.count(WorkflowExecution.execution_id)),
            **filters,
        ).group_by(WorkflowExecution.status)
        result = await self._db.execute(query)
        return {status: count for status, count in result.all()}

    async def list_step_results(
        self, execution_id: UUID, *, skip: int = 0, limit: int = 50
    ) -> Tuple[List[WorkflowStepResult], int]:
        result = await self._db.execute(
            select(WorkflowStepResult, func.count().over().label("total_count"))
            .where(WorkflowStepResult.execution_id == execution_id)
            .order_by(WorkflowStepResult.position)
            .offset(skip)
            .limit(limit)
        )
        rows = result.all()
        if not rows:
            return [], 0
        return [row[0] for row in rows], rows[0].total_count
