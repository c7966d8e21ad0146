import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from app.core.config import settings
from app.core.constants import (
    CONDITION_OPERATORS,
    KNOWN_LEAD_FIELDS,
    WORKFLOW_STEP_ACTIONS,
)
from app.repositories.lead_repository import LeadRepository
from app.schemas.common import StepType
from app.schemas.workflow import ExecutionContext, WorkflowStepOut
from app.services.collaborators import IntegrationGateway, NotificationSink
from app.services.condition_evaluator import ConditionEvaluator, build_lead_snapshot

logger = logging.getLogger(__name__)


@dataclass
class StepOutcome:
    """Result of one step handler.

    ``suspend_ms`` is set by a delay too long to wait for inline; the
    workflow service then parks the execution instead of continuing.
    """

    success: bool
    result: Any = None
    error: Optional[str] = None
    suspend_ms: Optional[int] = None


def _failed(error: str) -> StepOutcome:
    return StepOutcome(success=False, error=error)


def parse_delay_duration(value: Any) -> Optional[int]:
    """Return a delay in whole milliseconds, or ``None`` if *value* is invalid."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value < 0:
        return None
    return int(value)


StepHandler = Callable[[Dict[str, Any], ExecutionContext], Awaitable[StepOutcome]]


class WorkflowStepExecutor:
    """Executes a single workflow step through the handler registered for
    its type.

    Handlers never raise: an exception inside a handler becomes a failed
    step carrying the exception message, and an unregistered step type
    fails with ``Unknown step type: <type>``.
    """

    def __init__(
        self,
        lead_repo: LeadRepository,
        notification_sink: NotificationSink,
        integration_gateway: IntegrationGateway,
        evaluator: Optional[ConditionEvaluator] = None,
        inline_delay_max_ms: Optional[int] = None,
    ) -> None:
        self._lead_repo = lead_repo
        self._sink = notification_sink
        self._gateway = integration_gateway
        self._evaluator = evaluator or ConditionEvaluator()
        self._inline_delay_max_ms = (
            inline_delay_max_ms
            if inline_delay_max_ms is not None
            else settings.WORKFLOW_INLINE_DELAY_MAX_MS
        )
        self._handlers: Dict[str, StepHandler] = {
            StepType.action.value: self._run_action,
            StepType.condition.value: self._run_condition,
            StepType.delay.value: self._run_delay,
            StepType.notification.value: self._run_notification,
            StepType.integration.value: self._run_integration,
        }

    @property
    def supported_types(self) -> frozenset:
        return frozenset(self._handlers)

    async def execute(
        self, step: WorkflowStepOut, context: ExecutionContext
    ) -> StepOutcome:
        handler = self._handlers.get(step.type)
        if handler is None:
            return _failed(f"Unknown step type: {step.type}")
        try:
            return await handler(step.config or {}, context)
        except Exception as exc:
            logger.warning(
                "Step %s (%s) raised: %s", step.name, step.type, exc, exc_info=True
            )
            return _failed(str(exc) or exc.__class__.__name__)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _run_action(
        self, config: Dict[str, Any], context: ExecutionContext
    ) -> StepOutcome:
        action = config.get("action")
        value = config.get("value")
        column = WORKFLOW_STEP_ACTIONS.get(action)
        if column is None:
            return _failed(f"Unknown action: {action}")
        if context.lead_id is None:
            return _failed("No lead context provided")
        if not await self._lead_repo.exists(context.lead_id):
            return _failed("Lead not found")

        await self._lead_repo.update_fields(context.lead_id, **{column: value})
        return StepOutcome(success=True, result={"action": action, "value": value})

    async def _run_condition(
        self, config: Dict[str, Any], context: ExecutionContext
    ) -> StepOutcome:
        field = config.get("field")
        operator = config.get("operator")
        expected = config.get("value")

        if context.lead_id is None:
            return _failed("No lead context provided")
        if field not in KNOWN_LEAD_FIELDS:
            return _failed(f"Unknown field: {field}")
        if operator not in CONDITION_OPERATORS:
            return _failed(f"Unknown operator: {operator}")

        lead = await self._lead_repo.get_with_relations(context.lead_id)
        if lead is None:
            return _failed("Lead not found")

        actual = build_lead_snapshot(lead).get(field)
        outcome = self._evaluator.compare(operator, actual, expected)
        return StepOutcome(
            success=True,
            result={
                "condition": config.get("condition"),
                "result": outcome,
                "actualValue": actual,
                "expectedValue": expected,
            },
        )

    async def _run_delay(
        self, config: Dict[str, Any], context: ExecutionContext
    ) -> StepOutcome:
        duration = parse_delay_duration(config.get("duration"))
        if duration is None:
            return _failed(f"Invalid delay duration: {config.get('duration')!r}")

        if duration > self._inline_delay_max_ms:
            return StepOutcome(
                success=True, result={"delay": duration}, suspend_ms=duration
            )

        await asyncio.sleep(duration / 1000)
        return StepOutcome(success=True, result={"delay": duration})

    async def _run_notification(
        self, config: Dict[str, Any], context: ExecutionContext
    ) -> StepOutcome:
        message = {
            "type": config.get("type"),
            "message": config.get("message"),
            "recipients": config.get("recipients") or [],
            "context": context.model_dump(mode="json"),
        }
        self._sink.emit(message)
        return StepOutcome(
            success=True,
            result={
                "type": message["type"],
                "message": message["message"],
                "recipients": message["recipients"],
            },
        )

    async def _run_integration(
        self, config: Dict[str, Any], context: ExecutionContext
    ) -> StepOutcome:
        response = await self._gateway.call(
            {
                "integration_id": config.get("integration_id")
                or config.get("integrationId"),
                "action": config.get("action"),
                "data": config.get("data"),
                "context": context.model_dump(mode="json"),
            }
        )
        return StepOutcome(success=True, result=response)
