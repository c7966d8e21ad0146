import logging
import time
from typing import Any, Dict, Optional
from uuid import UUID

from app.core.constants import TRIGGER_RULE_TYPES
from app.repositories.business_rule_repository import BusinessRuleRepository
from app.repositories.lead_repository import LeadRepository
from app.schemas.business_rule import RuleExecutionResult
from app.services.action_dispatcher import ActionDispatcher
from app.services.business_rule_service import serialize_rule
from app.services.condition_evaluator import ConditionEvaluator, build_lead_snapshot
from app.services.execution_logger import ExecutionLogger

logger = logging.getLogger(__name__)


class RuleExecutionService:
    """Run the rules relevant to a lead lifecycle event.

    ``created`` / ``updated`` select assignment, notification and
    status_change rules; ``scored`` adds scoring rules and ``enriched``
    adds enrichment rules; any other event selects no rules.  Rules run
    highest priority first and each one is isolated: a failing rule is
    rolled back, recorded in ``errors`` and logged, and the remaining
    rules still run.
    """

    def __init__(
        self,
        rule_repo: BusinessRuleRepository,
        lead_repo: LeadRepository,
        dispatcher: ActionDispatcher,
        execution_logger: ExecutionLogger,
        evaluator: Optional[ConditionEvaluator] = None,
    ) -> None:
        self._rule_repo = rule_repo
        self._lead_repo = lead_repo
        self._dispatcher = dispatcher
        self._execution_logger = execution_logger
        self._evaluator = evaluator or ConditionEvaluator()

    async def execute_rules_for_lead(
        self,
        lead_id: UUID,
        trigger_event: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> RuleExecutionResult:
        started = time.perf_counter()
        result = RuleExecutionResult()
        trigger_event = getattr(trigger_event, "value", trigger_event)

        def finish() -> RuleExecutionResult:
            result.execution_time_ms = int((time.perf_counter() - started) * 1000)
            return result

        rule_types = TRIGGER_RULE_TYPES.get(trigger_event)
        if rule_types is None:
            logger.debug("No rules listen on trigger event %s", trigger_event)
            return finish()

        try:
            rules = [
                serialize_rule(rule)
                for rule in await self._rule_repo.list_active_by_types(rule_types)
            ]
            if not rules:
                return finish()

            lead = await self._lead_repo.get_with_relations(lead_id)
            if lead is None:
                raise LookupError(f"Lead not found: {lead_id}")
            snapshot = build_lead_snapshot(lead)
        except Exception as exc:
            logger.error(
                "Rule execution failed for lead %s", lead_id, exc_info=True
            )
            result.success = False
            result.errors.append(f"Rule execution failed: {exc}")
            return finish()

        for rule in rules:
            try:
                if not self._evaluator.evaluate(rule["conditions"], snapshot, context):
                    continue
                for action in rule["actions"]:
                    await self._dispatcher.apply(lead_id, action)
                await self._lead_repo.commit()
            except Exception as exc:
                await self._lead_repo.rollback()
                message = f"Rule {rule['name']} failed: {exc}"
                logger.warning(
                    "Rule %s failed for lead %s: %s", rule["rule_id"], lead_id, exc
                )
                result.success = False
                result.errors.append(message)
                await self._execution_logger.log_rule_execution(
                    lead_id, UUID(rule["rule_id"]), trigger_event, False, message
                )
                continue

            result.rules_executed += 1
            result.actions_applied += len(rule["actions"])
            await self._execution_logger.log_rule_execution(
                lead_id, UUID(rule["rule_id"]), trigger_event, True
            )

        logger.info(
            "Trigger %s on lead %s: %d rule(s), %d action(s), %d error(s)",
            trigger_event,
            lead_id,
            result.rules_executed,
            result.actions_applied,
            len(result.errors),
        )
        return finish()
