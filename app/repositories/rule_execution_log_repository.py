from datetime import datetime
from typing import Any, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, func

from app.models.rule_execution_log import RuleExecutionLog
from app.repositories.base import BaseRepository


class RuleExecutionLogRepository(BaseRepository):
    """Encapsulates queries against the append-only ``rule_execution_logs``."""

    async def create(self, **kwargs: Any) -> RuleExecutionLog:
        log = RuleExecutionLog(**kwargs)
        self._db.add(log)
        return log

    @staticmethod
    def _filter(
        query,
        *,
        rule_id: Optional[UUID] = None,
        lead_id: Optional[UUID] = None,
        trigger_event: Optional[str] = None,
        success: Optional[bool] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ):
        if rule_id is not None:
            query = query.where(RuleExecutionLog.rule_id == rule_id)
        if lead_id is not None:
            query = query.where(RuleExecutionLog.lead_id == lead_id)
        if trigger_event is not None:
            query = query.where(RuleExecutionLog.trigger_event == trigger_event)
        if success is not None:
            query = query.where(RuleExecutionLog.success == success)
        if start_date is not None:
            query = query.where(RuleExecutionLog.executed_at >= start_date)
        if end_date is not None:
            query = query.where(RuleExecutionLog.executed_at <= end_date)
        return query

    async def list_logs(
        self, *, skip: int = 0, limit: int = 50, **filters: Any
    ) -> Tuple[List[RuleExecutionLog], int]:
        """Return one page of log rows (newest first) and the full count."""
        query = self._filter(
            select(RuleExecutionLog, func.count().over().label("total_count")),
            **filters,
        )
        query = (
            query.order_by(RuleExecutionLog.executed_at.desc())
            .offset(skip)
            .limit(limit)
        )
        rows = (await self._db.execute(query)).all()
        if not rows:
            return [], 0
        return [row[0] for row in rows], rows[0].total_count

    async def count_outcomes(self, **filters: Any) -> Tuple[int, int]:
        """Return ``(total, successful)`` for the filtered log rows."""
        query = self._filter(
            select(
                func.count(RuleExecutionLog.log_id),
                func.count(RuleExecutionLog.log_id).filter(
                    RuleExecutionLog.success.is_(True)
                ),
            ),
            **filters,
        )
        total, successful = (await self._db.execute(query)).one()
        return total or 0, successful or 0
