from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select, delete, func, case
from sqlalchemy.orm import selectinload

from app.core.constants import HIGH_PRIORITY_THRESHOLD, MEDIUM_PRIORITY_THRESHOLD
from app.models.workflow import Workflow, WorkflowStep
from app.repositories.base import BaseRepository


class WorkflowRepository(BaseRepository):
    """Encapsulates queries against ``workflows`` and ``workflow_steps``."""

    async def create(
        self, steps: Sequence[Dict[str, Any]], **kwargs: Any
    ) -> Workflow:
        """Insert a workflow with its steps and return it with steps loaded."""
        workflow = Workflow(**kwargs)
        workflow.steps = [WorkflowStep(**step) for step in steps]
        self._db.add(workflow)
        await self._db.flush()
        return await self.get_with_steps(workflow.workflow_id)

    async def get_with_steps(self, workflow_id: UUID) -> Optional[Workflow]:
        """Return a workflow with its steps ordered by ``order``.

        ``populate_existing`` reloads server-generated columns of an
        instance already in the identity map (e.g. right after insert).
        """
        result = await self._db.execute(
            select(Workflow)
            .options(selectinload(Workflow.steps))
            .where(Workflow.workflow_id == workflow_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_workflows(
        self,
        *,
        is_active: Optional[bool] = None,
        trigger: Optional[str] = None,
        created_by_id: Optional[UUID] = None,
    ) -> List[Workflow]:
        query = select(Workflow).options(selectinload(Workflow.steps))
        if is_active is not None:
            query = query.where(Workflow.is_active == is_active)
        if trigger is not None:
            query = query.where(Workflow.trigger == trigger)
        if created_by_id is not None:
            query = query.where(Workflow.created_by_id == created_by_id)
        query = query.order_by(Workflow.priority.desc(), Workflow.created_at.desc())
        result = await self._db.execute(query)
        return list(result.scalars().all())

    async def list_active_for_trigger(self, trigger: str) -> List[Workflow]:
        """Return active workflows listening on *trigger*, priority desc."""
        return await self.list_workflows(is_active=True, trigger=trigger)

    async def replace_steps(
        self, workflow: Workflow, steps: Sequence[Dict[str, Any]]
    ) -> None:
        """Delete every step of *workflow* and insert *steps* in their place.

        The old rows are removed with a bulk DELETE before the new ones
        are flushed so the ``(workflow_id, order)`` unique constraint
        never sees both generations at once.
        """
        await self._db.execute(
            delete(WorkflowStep).where(WorkflowStep.workflow_id == workflow.workflow_id)
        )
        for step in steps:
            self._db.add(WorkflowStep(workflow_id=workflow.workflow_id, **step))
        await self._db.flush()

    async def delete(self, workflow: Workflow) -> None:
        await self._db.delete(workflow)

    async def count_by_status(self) -> Tuple[int, int]:
        """Return ``(total, active)`` workflow counts."""
        result = await self._db.execute(
            select(
                func.count(Workflow.workflow_id),
                func.count(Workflow.workflow_id).filter(Workflow.is_active.is_(True)),
            )
        )
        total, active = result.one()
        return total or 0, active or 0

    async def count_by_trigger(self) -> Dict[str, int]:
        result = await self._db.execute(
            select(Workflow.trigger, func.count(Workflow.workflow_id))
            .group_by(Workflow.trigger)
            .order_by(Workflow.trigger)
        )
        return {trigger: count for trigger, count in result.all()}

    async def count_by_priority_band(self) -> Dict[str, int]:
        """Bucket workflows into high / medium / low priority bands."""
        band = case(
            (Workflow.priority >= HIGH_PRIORITY_THRESHOLD, "high"),
            (Workflow.priority >= MEDIUM_PRIORITY_THRESHOLD, "medium"),
            else_="low",
        ).label("band")
        result = await self._db.execute(
            select(band, func.count(Workflow.workflow_id)).group_by(band)
        )
        counts = {"high": 0, "medium": 0, "low": 0}
        counts.update({name: count for name, count in result.all()})
        return counts
