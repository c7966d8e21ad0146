import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from pydantic_core import to_jsonable_python

from app.core.constants import STEP_TYPES
from app.core.exceptions import (
    DefinitionValidationError,
    ExecutionNotFoundError,
    UnsupportedOperationError,
    WorkflowNotFoundError,
)
from app.models.workflow import Workflow
from app.models.workflow_execution import WorkflowExecution
from app.repositories.workflow_execution_repository import WorkflowExecutionRepository
from app.repositories.workflow_repository import WorkflowRepository
from app.schemas.workflow import (
    ExecutionContext,
    StepResultOut,
    WorkflowCreate,
    WorkflowExecutionResult,
    WorkflowPriorityBands,
    WorkflowStats,
    WorkflowStepIn,
    WorkflowStepOut,
    WorkflowTriggerResult,
    WorkflowUpdate,
)
from app.services.bulk_runner import run_isolated
from app.services.execution_logger import ExecutionLogger
from app.services.workflow_steps import (
    StepOutcome,
    WorkflowStepExecutor,
    parse_delay_duration,
)

logger = logging.getLogger(__name__)

_ENTITY_TYPE = "WORKFLOW"

_REQUIRED_FIELDS = ("name", "trigger", "is_active", "priority", "steps")


def validate_steps(steps: Sequence[WorkflowStepIn]) -> None:
    if not steps:
        raise DefinitionValidationError("A workflow needs at least one step")

    seen_orders = set()
    for step in steps:
        if step.type not in STEP_TYPES:
            raise UnsupportedOperationError(f"Unsupported step type: {step.type}")
        if step.order in seen_orders:
            raise DefinitionValidationError(f"Duplicate step order: {step.order}")
        seen_orders.add(step.order)
        if step.type == "delay" and parse_delay_duration(step.config.get("duration")) is None:
            raise DefinitionValidationError(
                f"Step '{step.name}': delay duration must be a non-negative number of milliseconds"
            )


def _step_rows(steps: Sequence[WorkflowStepIn]) -> List[Dict]:
    return [
        {"name": s.name, "type": s.type, "order": s.order, "config": s.config}
        for s in sorted(steps, key=lambda s: s.order)
    ]


class WorkflowService:
    """Workflow definitions and their execution.

    An execution moves ``running`` → ``completed`` | ``failed``.  Steps
    run strictly in ascending ``order``; every outcome is appended to
    the step-result log and committed before the next step starts, and
    the first failing step ends the run.  A delay longer than the inline
    limit parks the execution (still ``running``, with ``resume_at``
    set) until ``resume_execution`` is called by the delay scheduler.
    """

    def __init__(
        self,
        workflow_repo: WorkflowRepository,
        execution_repo: WorkflowExecutionRepository,
        step_executor: WorkflowStepExecutor,
        execution_logger: ExecutionLogger,
    ) -> None:
        self._workflow_repo = workflow_repo
        self._execution_repo = execution_repo
        self._step_executor = step_executor
        self._execution_logger = execution_logger

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create_workflow(
        self, data: WorkflowCreate, created_by_id: Optional[UUID] = None
    ) -> Workflow:
        validate_steps(data.steps)

        workflow = await self._workflow_repo.create(
            steps=_step_rows(data.steps),
            name=data.name,
            description=data.description,
            trigger=data.trigger,
            is_active=data.is_active,
            priority=data.priority,
            created_by_id=created_by_id,
        )
        await self._workflow_repo.commit()

        logger.info(
            "Created workflow %s (%s, %d step(s))",
            workflow.workflow_id,
            workflow.name,
            len(data.steps),
        )
        await self._execution_logger.log_activity(
            "CREATE",
            _ENTITY_TYPE,
            workflow.workflow_id,
            created_by_id,
            f"Created workflow: {workflow.name}",
        )
        return workflow

    async def get_workflow_by_id(self, workflow_id: UUID) -> Workflow:
        workflow = await self._workflow_repo.get_with_steps(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")
        return workflow

    async def get_workflows(
        self,
        is_active: Optional[bool] = None,
        trigger: Optional[str] = None,
        created_by_id: Optional[UUID] = None,
    ) -> List[Workflow]:
        return await self._workflow_repo.list_workflows(
            is_active=is_active, trigger=trigger, created_by_id=created_by_id
        )

    async def update_workflow(
        self,
        workflow_id: UUID,
        patch: WorkflowUpdate,
        actor_id: Optional[UUID] = None,
    ) -> Workflow:
        workflow = await self.get_workflow_by_id(workflow_id)
        changes = patch.model_dump(exclude_unset=True)

        for field in _REQUIRED_FIELDS:
            if field in changes and changes[field] is None:
                raise DefinitionValidationError(f"'{field}' cannot be null")

        replace_steps = "steps" in changes
        changes.pop("steps", None)
        if replace_steps:
            validate_steps(patch.steps)

        for field, value in changes.items():
            setattr(workflow, field, value)

        if replace_steps:
            await self._workflow_repo.replace_steps(workflow, _step_rows(patch.steps))
        else:
            await self._workflow_repo.flush()
        await self._workflow_repo.commit()
        # the loaded steps collection still holds the replaced rows
        workflow = await self.get_workflow_by_id(workflow_id)

        logger.info("Updated workflow %s", workflow_id)
        await self._execution_logger.log_activity(
            "UPDATE",
            _ENTITY_TYPE,
            workflow_id,
            actor_id,
            f"Updated workflow: {workflow.name}",
        )
        return workflow

    async def delete_workflow(
        self, workflow_id: UUID, actor_id: Optional[UUID] = None
    ) -> None:
        workflow = await self.get_workflow_by_id(workflow_id)
        name = workflow.name

        await self._workflow_repo.delete(workflow)
        await self._workflow_repo.commit()

        logger.info("Deleted workflow %s (%s)", workflow_id, name)
        await self._execution_logger.log_activity(
            "DELETE",
            _ENTITY_TYPE,
            workflow_id,
            actor_id,
            f"Deleted workflow: {name}",
        )

    async def get_workflow_stats(self) -> WorkflowStats:
        total, active = await self._workflow_repo.count_by_status()
        by_trigger = await self._workflow_repo.count_by_trigger()
        bands = await self._workflow_repo.count_by_priority_band()
        return WorkflowStats(
            total=total,
            active=active,
            inactive=total - active,
            by_trigger=by_trigger,
            by_priority=WorkflowPriorityBands(**bands),
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute_workflow(
        self, workflow_id: UUID, context: Optional[ExecutionContext] = None
    ) -> WorkflowExecutionResult:
        context = context or ExecutionContext()
        workflow = await self._workflow_repo.get_with_steps(workflow_id)
        if workflow is None or not workflow.is_active:
            raise WorkflowNotFoundError(
                f"Workflow {workflow_id} not found or inactive"
            )

        steps = [WorkflowStepOut.model_validate(step) for step in workflow.steps]
        execution = await self._execution_repo.create(
            workflow_id=workflow_id,
            lead_id=context.lead_id,
            user_id=context.user_id,
            status="running",
            trigger_data=context.trigger_data,
        )
        await self._execution_repo.commit()
        logger.info(
            "Workflow %s started (execution %s, %d step(s))",
            workflow_id,
            execution.execution_id,
            len(steps),
        )
        return await self._run_steps(execution, steps, context, start_position=0)

    async def resume_execution(self, execution_id: UUID) -> WorkflowExecutionResult:
        """Continue a parked execution after its delay step.

        Only the steps ordered after the delay are executed; the returned
        ``step_results`` cover the resumed part of the run.
        """
        execution = await self._execution_repo.get_by_id(execution_id)
        if (
            execution is None
            or execution.status != "running"
            or execution.resume_after_order is None
        ):
            raise ExecutionNotFoundError(f"No suspended execution {execution_id}")

        after_order = execution.resume_after_order
        context = ExecutionContext(
            lead_id=execution.lead_id,
            user_id=execution.user_id,
            trigger_data=execution.trigger_data,
        )
        position = await self._execution_repo.count_step_results(execution_id)

        workflow = await self._workflow_repo.get_with_steps(execution.workflow_id)
        if workflow is None:
            message = "Workflow no longer exists"
            await self._execution_repo.finalize(execution, "failed", message)
            await self._execution_repo.commit()
            return WorkflowExecutionResult(
                execution_id=execution_id, success=False, error_message=message
            )

        remaining = [
            WorkflowStepOut.model_validate(step)
            for step in workflow.steps
            if step.order > after_order
        ]
        await self._execution_repo.clear_suspension(execution)
        await self._execution_repo.commit()
        logger.info(
            "Resuming execution %s after step order %d (%d step(s) left)",
            execution_id,
            after_order,
            len(remaining),
        )
        return await self._run_steps(execution, remaining, context, position)

    async def _run_steps(
        self,
        execution: WorkflowExecution,
        steps: Sequence[WorkflowStepOut],
        context: ExecutionContext,
        start_position: int,
    ) -> WorkflowExecutionResult:
        execution_id = execution.execution_id
        step_results: List[StepResultOut] = []
        position = start_position

        try:
            for step in steps:
                outcome = await self._execute_step(step, context)
                record = {
                    "step_id": step.step_id,
                    "step_name": step.name,
                    "step_type": step.type,
                    "success": outcome.success,
                    "result": to_jsonable_python(outcome.result),
                    "error": outcome.error,
                }
                await self._execution_repo.append_step_result(
                    execution_id, position, record
                )
                position += 1
                step_results.append(StepResultOut(**record))

                if not outcome.success:
                    await self._execution_repo.finalize(execution, "failed", outcome.error)
                    await self._execution_repo.commit()
                    logger.info(
                        "Execution %s failed at step %s: %s",
                        execution_id,
                        step.name,
                        outcome.error,
                    )
                    return WorkflowExecutionResult(
                        execution_id=execution_id,
                        success=False,
                        step_results=step_results,
                        error_message=outcome.error,
                    )

                if outcome.suspend_ms is not None:
                    resume_at = datetime.now(timezone.utc) + timedelta(
                        milliseconds=outcome.suspend_ms
                    )
                    await self._execution_repo.suspend(execution, resume_at, step.order)
                    await self._execution_repo.commit()
                    logger.info(
                        "Execution %s suspended until %s", execution_id, resume_at
                    )
                    return WorkflowExecutionResult(
                        execution_id=execution_id,
                        success=True,
                        step_results=step_results,
                        suspended=True,
                        resume_at=resume_at,
                    )

                await self._execution_repo.commit()

            await self._execution_repo.finalize(execution, "completed")
            await self._execution_repo.commit()
        except Exception as exc:
            await self._execution_repo.rollback()
            await self._mark_failed(execution_id, str(exc))
            raise

        logger.info("Execution %s completed", execution_id)
        return WorkflowExecutionResult(
            execution_id=execution_id, success=True, step_results=step_results
        )

    async def _execute_step(
        self, step: WorkflowStepOut, context: ExecutionContext
    ) -> StepOutcome:
        """Run one step inside a savepoint.

        A failed step rolls its savepoint back, so a database error raised
        by its handler does not abort the transaction that records the
        step result and finalizes the execution.
        """
        savepoint = await self._execution_repo.begin_savepoint()
        try:
            outcome = await self._step_executor.execute(step, context)
        except Exception:
            await savepoint.rollback()
            raise
        if outcome.success:
            await savepoint.commit()
        else:
            await savepoint.rollback()
        return outcome

    async def _mark_failed(self, execution_id: UUID, message: str) -> None:
        """Finalize an execution interrupted by an unexpected exception."""
        try:
            execution = await self._execution_repo.get_by_id(execution_id)
            if execution is not None and execution.status == "running":
                await self._execution_repo.finalize(execution, "failed", message)
                await self._execution_repo.commit()
        except Exception:
            logger.error(
                "Could not mark execution %s as failed", execution_id, exc_info=True
            )

    async def trigger_workflows(
        self, event: str, context: Optional[ExecutionContext] = None
    ) -> List[WorkflowTriggerResult]:
        """Execute every active workflow listening on *event*.

        Workflows run one after another, highest priority first; an
        exception in one is reported in its result and does not affect
        the others.
        """
        workflows = await self._workflow_repo.list_active_for_trigger(event)
        targets = [(w.workflow_id, w.name) for w in workflows]

        async def process(target) -> WorkflowTriggerResult:
            workflow_id, name = target
            result = await self.execute_workflow(workflow_id, context)
            return WorkflowTriggerResult(
                workflow_id=workflow_id,
                workflow_name=name,
                success=result.success,
                execution_id=result.execution_id,
                step_results=result.step_results,
                error_message=result.error_message,
                suspended=result.suspended,
            )

        def on_failure(target, exc: Exception) -> WorkflowTriggerResult:
            workflow_id, name = target
            return WorkflowTriggerResult(
                workflow_id=workflow_id,
                workflow_name=name,
                success=False,
                error_message=str(exc),
            )

        results = await run_isolated(targets, process, on_failure)
        logger.info(
            "Trigger %s ran %d workflow(s), %d succeeded",
            event,
            len(results),
            sum(1 for r in results if r.success),
        )
        return results
