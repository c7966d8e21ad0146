import logging
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from app.core.cache import CacheService
from app.core.config import settings
from app.core.constants import (
    ACTION_TYPES,
    BULK_APPLY_TRIGGER_EVENT,
    CONDITION_OPERATORS,
    LOGICAL_OPERATORS,
)
from app.core.exceptions import (
    DefinitionValidationError,
    LeadNotFoundError,
    RuleNotFoundError,
    UnsupportedOperationError,
)
from app.models.business_rule import BusinessRule
from app.repositories.business_rule_repository import BusinessRuleRepository
from app.repositories.lead_repository import LeadRepository
from app.schemas.business_rule import (
    BulkApplyItem,
    BusinessRuleCreate,
    BusinessRuleUpdate,
    RuleAction,
    RuleCondition,
    RuleMatch,
    RuleStats,
    RuleTestResult,
    RuleTypeCount,
)
from app.services.action_dispatcher import ActionDispatcher
from app.services.bulk_runner import run_isolated
from app.services.condition_evaluator import (
    ConditionEvaluator,
    build_lead_snapshot,
    normalize_sample_entity,
)
from app.services.execution_logger import ExecutionLogger

logger = logging.getLogger(__name__)

_ENTITY_TYPE = "BUSINESS_RULE"

# Columns a partial update may not set to null
_REQUIRED_FIELDS = ("name", "type", "conditions", "actions", "is_active", "priority")


def serialize_rule(rule: BusinessRule) -> Dict[str, Any]:
    """Detach the parts of a rule needed for evaluation into a plain dict.

    The result survives a session rollback and is JSON-serialisable, so
    it is also the format of the cached active-rule set.
    """
    return {
        "rule_id": str(rule.rule_id),
        "name": rule.name,
        "type": rule.type,
        "priority": rule.priority,
        "conditions": list(rule.conditions or []),
        "actions": list(rule.actions or []),
    }


def validate_conditions(conditions: Sequence[RuleCondition]) -> None:
    if not conditions:
        raise DefinitionValidationError("A rule needs at least one condition")
    for condition in conditions:
        if condition.operator not in CONDITION_OPERATORS:
            raise UnsupportedOperationError(
                f"Unsupported condition operator: {condition.operator}"
            )
        if (
            condition.logical_operator is not None
            and condition.logical_operator not in LOGICAL_OPERATORS
        ):
            raise DefinitionValidationError(
                f"Invalid logical operator: {condition.logical_operator}"
            )


def validate_actions(actions: Sequence[RuleAction]) -> None:
    if not actions:
        raise DefinitionValidationError("A rule needs at least one action")
    for action in actions:
        if action.type not in ACTION_TYPES:
            raise UnsupportedOperationError(f"Unsupported action type: {action.type}")


class BusinessRuleService:
    """CRUD, evaluation and application of declarative business rules.

    Rule definitions are validated when they are saved; evaluation is
    delegated to ``ConditionEvaluator`` and lead mutations to
    ``ActionDispatcher``.  The set of active rules is cached in Redis
    and invalidated by every write.
    """

    def __init__(
        self,
        rule_repo: BusinessRuleRepository,
        lead_repo: LeadRepository,
        dispatcher: ActionDispatcher,
        execution_logger: ExecutionLogger,
        cache: Optional[CacheService] = None,
        evaluator: Optional[ConditionEvaluator] = None,
    ) -> None:
        self._rule_repo = rule_repo
        self._lead_repo = lead_repo
        self._dispatcher = dispatcher
        self._execution_logger = execution_logger
        self._cache = cache or CacheService()
        self._evaluator = evaluator or ConditionEvaluator()

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create_rule(
        self, data: BusinessRuleCreate, created_by_id: Optional[UUID] = None
    ) -> BusinessRule:
        validate_conditions(data.conditions)
        validate_actions(data.actions)

        rule = await self._rule_repo.create(
            name=data.name,
            description=data.description,
            type=data.type.value,
            conditions=[c.model_dump(mode="json") for c in data.conditions],
            actions=[a.model_dump(mode="json") for a in data.actions],
            is_active=data.is_active,
            priority=data.priority,
            created_by_id=created_by_id,
        )
        await self._rule_repo.commit()
        await self._cache.invalidate_active_rules()

        logger.info("Created business rule %s (%s)", rule.rule_id, rule.name)
        await self._execution_logger.log_activity(
            "CREATE",
            _ENTITY_TYPE,
            rule.rule_id,
            created_by_id,
            f"Created business rule: {rule.name}",
        )
        return rule

    async def get_rules(
        self,
        is_active: Optional[bool] = None,
        rule_type: Optional[str] = None,
        created_by_id: Optional[UUID] = None,
    ) -> List[BusinessRule]:
        return await self._rule_repo.list_rules(
            is_active=is_active, rule_type=rule_type, created_by_id=created_by_id
        )

    async def get_rule_by_id(self, rule_id: UUID) -> BusinessRule:
        rule = await self._rule_repo.get_by_id(rule_id)
        if rule is None:
            raise RuleNotFoundError(f"Business rule {rule_id} not found")
        return rule

    async def get_rules_by_type(self, rule_type: str) -> List[BusinessRule]:
        """Active rules of one type, highest priority first."""
        return await self._rule_repo.list_rules(is_active=True, rule_type=rule_type)

    async def update_rule(
        self,
        rule_id: UUID,
        patch: BusinessRuleUpdate,
        actor_id: Optional[UUID] = None,
    ) -> BusinessRule:
        rule = await self.get_rule_by_id(rule_id)
        changes = patch.model_dump(exclude_unset=True)

        for field in _REQUIRED_FIELDS:
            if field in changes and changes[field] is None:
                raise DefinitionValidationError(f"'{field}' cannot be null")

        if "conditions" in changes:
            validate_conditions(patch.conditions)
            changes["conditions"] = [
                c.model_dump(mode="json") for c in patch.conditions
            ]
        if "actions" in changes:
            validate_actions(patch.actions)
            changes["actions"] = [a.model_dump(mode="json") for a in patch.actions]
        if "type" in changes:
            changes["type"] = patch.type.value

        for field, value in changes.items():
            setattr(rule, field, value)

        await self._rule_repo.flush()
        await self._rule_repo.commit()
        await self._cache.invalidate_active_rules()

        logger.info("Updated business rule %s (%s)", rule.rule_id, ", ".join(changes))
        await self._execution_logger.log_activity(
            "UPDATE",
            _ENTITY_TYPE,
            rule.rule_id,
            actor_id,
            f"Updated business rule: {rule.name}",
        )
        return rule

    async def delete_rule(self, rule_id: UUID, actor_id: Optional[UUID] = None) -> None:
        rule = await self.get_rule_by_id(rule_id)
        name = rule.name

        await self._rule_repo.delete(rule)
        await self._rule_repo.commit()
        await self._cache.invalidate_active_rules()

        logger.info("Deleted business rule %s (%s)", rule_id, name)
        await self._execution_logger.log_activity(
            "DELETE",
            _ENTITY_TYPE,
            rule_id,
            actor_id,
            f"Deleted business rule: {name}",
        )

    async def get_rule_stats(self) -> RuleStats:
        total, active = await self._rule_repo.count_by_status()
        by_type = await self._rule_repo.count_by_type()
        return RuleStats(
            total_rules=total,
            active_rules=active,
            inactive_rules=total - active,
            rule_types=[
                RuleTypeCount(type=rule_type, count=count)
                for rule_type, count in by_type.items()
            ],
        )

    # ------------------------------------------------------------------
    # Evaluation / application
    # ------------------------------------------------------------------

    async def _load_active_rules(self) -> List[Dict[str, Any]]:
        cached = await self._cache.get_active_rules()
        if cached is not None:
            return cached

        rules = [
            serialize_rule(rule)
            for rule in await self._rule_repo.list_rules(is_active=True)
        ]
        await self._cache.set_active_rules(rules, ttl=settings.ACTIVE_RULES_CACHE_TTL)
        return rules

    async def evaluate_rules(
        self, lead_id: UUID, context: Optional[Dict[str, Any]] = None
    ) -> List[RuleMatch]:
        """Return every active rule whose conditions hold for the lead.

        No priority filtering happens here: all matching rules are
        returned, in priority order.
        """
        lead = await self._lead_repo.get_with_relations(lead_id)
        if lead is None:
            raise LeadNotFoundError(f"Lead {lead_id} not found")

        snapshot = build_lead_snapshot(lead)
        matches: List[RuleMatch] = []
        for rule in await self._load_active_rules():
            if self._evaluator.evaluate(rule["conditions"], snapshot, context):
                matches.append(
                    RuleMatch(
                        rule_id=rule["rule_id"],
                        rule_name=rule["name"],
                        matched=True,
                        actions=rule["actions"],
                        conditions=rule["conditions"],
                    )
                )
        logger.debug("Lead %s matched %d rule(s)", lead_id, len(matches))
        return matches

    async def apply_rule_actions(
        self, lead_id: UUID, actions: Sequence[RuleAction]
    ) -> int:
        """Apply *actions* in order and commit; returns the number applied.

        The first failing action aborts the remaining ones and the
        partial changes are rolled back.
        """
        if not await self._lead_repo.exists(lead_id):
            raise LeadNotFoundError(f"Lead {lead_id} not found")

        try:
            for action in actions:
                await self._dispatcher.apply(lead_id, action)
            await self._lead_repo.commit()
        except Exception:
            await self._lead_repo.rollback()
            raise
        return len(actions)

    async def test_rule_evaluation(
        self, rule_id: UUID, sample_entity: Dict[str, Any]
    ) -> RuleTestResult:
        """Evaluate a stored rule against sample data; nothing is persisted."""
        rule = await self.get_rule_by_id(rule_id)
        matched = self._evaluator.evaluate(
            rule.conditions, normalize_sample_entity(sample_entity)
        )
        return RuleTestResult(
            matched=matched,
            actions=rule.actions if matched else [],
            conditions=rule.conditions,
        )

    async def bulk_apply_rules(
        self, lead_ids: Sequence[UUID], context: Optional[Dict[str, Any]] = None
    ) -> List[BulkApplyItem]:
        """Evaluate and apply rules for each lead independently.

        Leads are processed sequentially.  Each lead is its own unit of
        work: a failure rolls back only that lead and is reported in its
        result item.  Every attempt is written to the rule execution log.
        """
        if len(lead_ids) > settings.BULK_APPLY_MAX_LEADS:
            raise DefinitionValidationError(
                f"At most {settings.BULK_APPLY_MAX_LEADS} leads can be processed per request"
            )

        async def process(lead_id: UUID) -> BulkApplyItem:
            matches: List[RuleMatch] = []
            try:
                matches = await self.evaluate_rules(lead_id, context)
                actions = [action for match in matches for action in match.actions]
                for action in actions:
                    await self._dispatcher.apply(lead_id, action)
                await self._lead_repo.commit()
            except Exception as exc:
                await self._log_bulk_attempt(lead_id, matches, False, str(exc))
                raise
            await self._log_bulk_attempt(lead_id, matches, True)
            return BulkApplyItem(
                lead_id=lead_id,
                success=True,
                rules_matched=len(matches),
                actions_applied=len(actions),
            )

        async def rollback(_lead_id: UUID) -> None:
            await self._lead_repo.rollback()

        def on_failure(lead_id: UUID, exc: Exception) -> BulkApplyItem:
            return BulkApplyItem(lead_id=lead_id, success=False, error=str(exc))

        results = await run_isolated(lead_ids, process, on_failure, rollback)
        logger.info(
            "Bulk rule application: %d/%d lead(s) succeeded",
            sum(1 for item in results if item.success),
            len(results),
        )
        return results

    async def _log_bulk_attempt(
        self,
        lead_id: UUID,
        matches: Sequence[RuleMatch],
        success: bool,
        error_message: Optional[str] = None,
    ) -> None:
        if not matches:
            if not success:
                await self._execution_logger.log_rule_execution(
                    lead_id, None, BULK_APPLY_TRIGGER_EVENT, False, error_message
                )
            return
        for match in matches:
            await self._execution_logger.log_rule_execution(
                lead_id, match.rule_id, BULK_APPLY_TRIGGER_EVENT, success, error_message
            )
