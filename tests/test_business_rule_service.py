import json
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from app.core.cache import ACTIVE_RULES_KEY
from app.core.exceptions import (
    DefinitionValidationError,
    ExecutionError,
    LeadNotFoundError,
    RuleNotFoundError,
    UnsupportedOperationError,
)
from app.schemas.business_rule import (
    BusinessRuleCreate,
    BusinessRuleUpdate,
    RuleAction,
    RuleCondition,
)
from app.services.action_dispatcher import ActionDispatcher
from app.services.business_rule_service import BusinessRuleService, serialize_rule
from app.services.collaborators import RecordingNotificationSink

from conftest import make_lead, make_rule


@pytest.fixture
def rule_repo() -> AsyncMock:
    repo = AsyncMock()
    repo.list_rules = AsyncMock(return_value=[])
    return repo


@pytest.fixture
def dispatcher() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def service(rule_repo, mock_lead_repo, dispatcher, mock_execution_logger, mock_cache):
    return BusinessRuleService(
        rule_repo=rule_repo,
        lead_repo=mock_lead_repo,
        dispatcher=dispatcher,
        execution_logger=mock_execution_logger,
        cache=mock_cache,
    )


def _create_payload(**overrides) -> BusinessRuleCreate:
    data = {
        "name": "High score qualifies",
        "type": "status_change",
        "conditions": [{"field": "score", "operator": "greater_than", "value": 70}],
        "actions": [{"type": "status_change", "value": "QUALIFIED"}],
        "priority": 50,
    }
    data.update(overrides)
    return BusinessRuleCreate(**data)


class TestRuleCrud:
    @pytest.mark.asyncio
    async def test_create_rule_persists_and_audits(
        self, service, rule_repo, mock_execution_logger, mock_redis
    ):
        rule = make_rule()
        rule_repo.create = AsyncMock(return_value=rule)
        actor = uuid4()

        created = await service.create_rule(_create_payload(), created_by_id=actor)

        assert created is rule
        kwargs = rule_repo.create.await_args.kwargs
        assert kwargs["type"] == "status_change"
        assert kwargs["created_by_id"] == actor
        assert kwargs["conditions"][0]["operator"] == "greater_than"
        rule_repo.commit.assert_awaited_once()
        mock_redis.delete.assert_awaited_once_with(ACTIVE_RULES_KEY)
        mock_execution_logger.log_activity.assert_awaited_once_with(
            "CREATE",
            "BUSINESS_RULE",
            rule.rule_id,
            actor,
            f"Created business rule: {rule.name}",
        )

    @pytest.mark.asyncio
    async def test_create_rejects_unknown_operator(self, service, rule_repo):
        payload = _create_payload(
            conditions=[{"field": "score", "operator": "between", "value": [1, 2]}]
        )
        with pytest.raises(UnsupportedOperationError):
            await service.create_rule(payload)
        rule_repo.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_create_rejects_unknown_action_type(self, service, rule_repo):
        payload = _create_payload(actions=[{"type": "teleport", "value": 1}])
        with pytest.raises(UnsupportedOperationError):
            await service.create_rule(payload)
        rule_repo.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_create_rejects_bad_logical_operator(self, service):
        payload = _create_payload(
            conditions=[
                {"field": "score", "operator": "equals", "value": 1, "logical_operator": "XOR"}
            ]
        )
        with pytest.raises(DefinitionValidationError):
            await service.create_rule(payload)

    @pytest.mark.asyncio
    async def test_get_missing_rule_raises(self, service, rule_repo):
        rule_repo.get_by_id = AsyncMock(return_value=None)
        with pytest.raises(RuleNotFoundError):
            await service.get_rule_by_id(uuid4())

    @pytest.mark.asyncio
    async def test_created_rule_reads_back_unchanged(self, service, rule_repo):
        payload = _create_payload(
            conditions=[
                {"field": "score", "operator": "greater_than", "value": 70,
                 "logicalOperator": "OR"},
                {"field": "industry", "operator": "in", "value": ["Retail", "Finance"]},
            ],
            actions=[
                {"type": "assignment", "target": "team", "value": "t-1"},
                {"type": "notification", "value": "hot lead", "metadata": {"channel": "slack"}},
            ],
        )
        stored = {}

        async def create(**kwargs):
            stored["rule"] = make_rule(**kwargs)
            return stored["rule"]

        async def get_by_id(rule_id):
            rule = stored["rule"]
            return rule if rule.rule_id == rule_id else None

        rule_repo.create = AsyncMock(side_effect=create)
        rule_repo.get_by_id = AsyncMock(side_effect=get_by_id)

        created = await service.create_rule(payload)
        loaded = await service.get_rule_by_id(created.rule_id)

        assert [RuleCondition.model_validate(c) for c in loaded.conditions] == payload.conditions
        assert [RuleAction.model_validate(a) for a in loaded.actions] == payload.actions
        assert loaded.conditions[0]["logical_operator"] == "OR"
        assert loaded.actions[1]["metadata"] == {"channel": "slack"}

    @pytest.mark.asyncio
    async def test_get_rules_by_type_lists_active_only(self, service, rule_repo):
        await service.get_rules_by_type("scoring")
        rule_repo.list_rules.assert_awaited_once_with(
            is_active=True, rule_type="scoring"
        )

    @pytest.mark.asyncio
    async def test_update_applies_partial_changes(
        self, service, rule_repo, mock_execution_logger, mock_redis
    ):
        rule = make_rule(priority=10)
        rule_repo.get_by_id = AsyncMock(return_value=rule)

        updated = await service.update_rule(
            rule.rule_id, BusinessRuleUpdate(priority=90, is_active=False)
        )

        assert updated.priority == 90
        assert updated.is_active is False
        assert updated.name == "High score qualifies"
        rule_repo.commit.assert_awaited_once()
        mock_redis.delete.assert_awaited_once_with(ACTIVE_RULES_KEY)
        assert mock_execution_logger.log_activity.await_args.args[0] == "UPDATE"

    @pytest.mark.asyncio
    async def test_update_rejects_explicit_null(self, service, rule_repo):
        rule_repo.get_by_id = AsyncMock(return_value=make_rule())
        with pytest.raises(DefinitionValidationError):
            await service.update_rule(uuid4(), BusinessRuleUpdate(name=None))
        rule_repo.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_serialises_new_conditions(self, service, rule_repo):
        rule = make_rule()
        rule_repo.get_by_id = AsyncMock(return_value=rule)
        patch = BusinessRuleUpdate(
            conditions=[RuleCondition(field="industry", operator="equals", value="Retail")]
        )

        await service.update_rule(rule.rule_id, patch)

        assert rule.conditions == [
            {
                "field": "industry",
                "operator": "equals",
                "value": "Retail",
                "logical_operator": None,
            }
        ]

    @pytest.mark.asyncio
    async def test_delete_rule(self, service, rule_repo, mock_execution_logger):
        rule = make_rule()
        rule_repo.get_by_id = AsyncMock(return_value=rule)

        await service.delete_rule(rule.rule_id)

        rule_repo.delete.assert_awaited_once_with(rule)
        rule_repo.commit.assert_awaited_once()
        assert mock_execution_logger.log_activity.await_args.args[:3] == (
            "DELETE",
            "BUSINESS_RULE",
            rule.rule_id,
        )

    @pytest.mark.asyncio
    async def test_rule_stats(self, service, rule_repo):
        rule_repo.count_by_status = AsyncMock(return_value=(5, 3))
        rule_repo.count_by_type = AsyncMock(return_value={"scoring": 2, "assignment": 3})

        stats = await service.get_rule_stats()

        assert stats.total_rules == 5
        assert stats.active_rules == 3
        assert stats.inactive_rules == 2
        assert {t.type: t.count for t in stats.rule_types} == {
            "scoring": 2,
            "assignment": 3,
        }


class TestEvaluateRules:
    @pytest.mark.asyncio
    async def test_returns_every_matching_rule(self, service, rule_repo, mock_lead_repo):
        matching = make_rule(priority=90)
        also_matching = make_rule(
            name="Tech industry",
            priority=10,
            conditions=[{"field": "industry", "operator": "equals", "value": "Technology"}],
        )
        not_matching = make_rule(
            name="Low score",
            conditions=[{"field": "score", "operator": "less_than", "value": 20}],
        )
        rule_repo.list_rules = AsyncMock(
            return_value=[matching, also_matching, not_matching]
        )
        mock_lead_repo.get_with_relations = AsyncMock(return_value=make_lead(score=80))

        matches = await service.evaluate_rules(uuid4())

        assert [m.rule_id for m in matches] == [matching.rule_id, also_matching.rule_id]
        assert all(m.matched for m in matches)

    @pytest.mark.asyncio
    async def test_missing_lead_raises(self, service, mock_lead_repo):
        mock_lead_repo.get_with_relations = AsyncMock(return_value=None)
        with pytest.raises(LeadNotFoundError):
            await service.evaluate_rules(uuid4())

    @pytest.mark.asyncio
    async def test_active_rules_are_cached(
        self, service, rule_repo, mock_lead_repo, mock_redis
    ):
        rule_repo.list_rules = AsyncMock(return_value=[make_rule()])
        mock_lead_repo.get_with_relations = AsyncMock(return_value=make_lead(score=80))

        await service.evaluate_rules(uuid4())

        rule_repo.list_rules.assert_awaited_once_with(is_active=True)
        mock_redis.setex.assert_awaited_once()
        assert mock_redis.setex.await_args.args[0] == ACTIVE_RULES_KEY

    @pytest.mark.asyncio
    async def test_cached_rules_skip_the_database(
        self, service, rule_repo, mock_lead_repo, mock_redis
    ):
        rule = make_rule()
        mock_redis.get = AsyncMock(return_value=json.dumps([serialize_rule(rule)]))
        mock_lead_repo.get_with_relations = AsyncMock(return_value=make_lead(score=80))

        matches = await service.evaluate_rules(uuid4())

        assert [m.rule_id for m in matches] == [rule.rule_id]
        rule_repo.list_rules.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_context_fields_are_evaluated(self, service, rule_repo, mock_lead_repo):
        rule_repo.list_rules = AsyncMock(
            return_value=[
                make_rule(
                    conditions=[{"field": "channel", "operator": "equals", "value": "webinar"}]
                )
            ]
        )
        mock_lead_repo.get_with_relations = AsyncMock(return_value=make_lead())

        assert await service.evaluate_rules(uuid4(), {"channel": "webinar"})
        assert await service.evaluate_rules(uuid4(), {"channel": "ads"}) == []


class TestApplyRuleActions:
    @pytest.mark.asyncio
    async def test_applies_in_order_and_commits(self, service, dispatcher, mock_lead_repo):
        lead_id = uuid4()
        actions = [
            RuleAction(type="scoring", value=90),
            RuleAction(type="status_change", value="QUALIFIED"),
        ]

        applied = await service.apply_rule_actions(lead_id, actions)

        assert applied == 2
        assert [c.args[1] for c in dispatcher.apply.await_args_list] == actions
        mock_lead_repo.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_lead_raises(self, service, dispatcher, mock_lead_repo):
        mock_lead_repo.exists = AsyncMock(return_value=False)
        with pytest.raises(LeadNotFoundError):
            await service.apply_rule_actions(uuid4(), [RuleAction(type="scoring", value=1)])
        dispatcher.apply.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_rolls_back(self, service, dispatcher, mock_lead_repo):
        dispatcher.apply = AsyncMock(side_effect=ExecutionError("db down"))
        with pytest.raises(ExecutionError):
            await service.apply_rule_actions(uuid4(), [RuleAction(type="scoring", value=1)])
        mock_lead_repo.rollback.assert_awaited_once()
        mock_lead_repo.commit.assert_not_awaited()


class TestRuleEvaluationDryRun:
    @pytest.mark.asyncio
    async def test_matching_sample_returns_actions(self, service, rule_repo):
        rule = make_rule()
        rule_repo.get_by_id = AsyncMock(return_value=rule)

        result = await service.test_rule_evaluation(rule.rule_id, {"score": 85})

        assert result.matched is True
        assert result.actions[0].value == "QUALIFIED"

    @pytest.mark.asyncio
    async def test_non_matching_sample_returns_no_actions(
        self, service, rule_repo, dispatcher
    ):
        rule = make_rule()
        rule_repo.get_by_id = AsyncMock(return_value=rule)

        result = await service.test_rule_evaluation(rule.rule_id, {"score": 10})

        assert result.matched is False
        assert result.actions == []
        assert len(result.conditions) == 1
        dispatcher.apply.assert_not_awaited()


class TestBulkApply:
    @pytest.mark.asyncio
    async def test_one_failing_lead_does_not_stop_the_batch(
        self, service, rule_repo, mock_lead_repo, dispatcher, mock_execution_logger
    ):
        """Lead #3 is missing; the other four are still processed."""
        rule = make_rule()
        rule_repo.list_rules = AsyncMock(return_value=[rule])
        lead_ids = [uuid4() for _ in range(5)]
        failing = lead_ids[2]

        async def load(lead_id):
            return None if lead_id == failing else make_lead(lead_id=lead_id, score=90)

        mock_lead_repo.get_with_relations = AsyncMock(side_effect=load)

        results = await service.bulk_apply_rules(lead_ids)

        assert [r.lead_id for r in results] == lead_ids
        assert [r.success for r in results] == [True, True, False, True, True]
        assert "not found" in results[2].error
        assert results[0].rules_matched == 1
        assert results[0].actions_applied == 1
        assert dispatcher.apply.await_count == 4
        assert mock_lead_repo.commit.await_count == 4
        mock_lead_repo.rollback.assert_awaited_once()

        log_calls = mock_execution_logger.log_rule_execution.await_args_list
        assert len(log_calls) == 5
        failed_log = [c for c in log_calls if c.args[0] == failing][0]
        assert failed_log.args[1:4] == (None, "bulk_apply", False)

    @pytest.mark.asyncio
    async def test_write_failure_on_one_lead_does_not_stop_the_batch(
        self, service, rule_repo, mock_lead_repo, dispatcher, mock_execution_logger
    ):
        """Lead #3 matches like the others but its status write raises."""
        rule = make_rule()
        rule_repo.list_rules = AsyncMock(return_value=[rule])
        lead_ids = [uuid4() for _ in range(5)]
        failing = lead_ids[2]
        mock_lead_repo.get_with_relations = AsyncMock(
            side_effect=lambda lead_id: make_lead(lead_id=lead_id, score=90)
        )

        async def apply(lead_id, action):
            if lead_id == failing:
                raise ExecutionError("Failed to apply status_change action: disk full")

        dispatcher.apply = AsyncMock(side_effect=apply)

        results = await service.bulk_apply_rules(lead_ids)

        assert [r.success for r in results] == [True, True, False, True, True]
        assert results[2].error == "Failed to apply status_change action: disk full"
        assert all(r.rules_matched == 1 for i, r in enumerate(results) if i != 2)
        assert dispatcher.apply.await_count == 5
        assert mock_lead_repo.commit.await_count == 4
        mock_lead_repo.rollback.assert_awaited_once()

        failed_log = [
            c for c in mock_execution_logger.log_rule_execution.await_args_list
            if c.args[0] == failing
        ]
        assert len(failed_log) == 1
        assert failed_log[0].args[1:4] == (rule.rule_id, "bulk_apply", False)

    @pytest.mark.asyncio
    async def test_too_many_leads_rejected(self, service, mock_lead_repo):
        with pytest.raises(DefinitionValidationError):
            await service.bulk_apply_rules([uuid4() for _ in range(501)])
        mock_lead_repo.get_with_relations.assert_not_awaited()


class TestQualificationScenario:
    @pytest.mark.asyncio
    async def test_high_score_lead_becomes_qualified(
        self, rule_repo, mock_lead_repo, mock_execution_logger, mock_cache
    ):
        """A lead scoring 80 matches ``score > 70`` and is set to QUALIFIED."""
        sink = RecordingNotificationSink()
        service = BusinessRuleService(
            rule_repo=rule_repo,
            lead_repo=mock_lead_repo,
            dispatcher=ActionDispatcher(mock_lead_repo, sink),
            execution_logger=mock_execution_logger,
            cache=mock_cache,
        )
        lead = make_lead(score=80)
        rule_repo.list_rules = AsyncMock(return_value=[make_rule()])
        mock_lead_repo.get_with_relations = AsyncMock(return_value=lead)

        results = await service.bulk_apply_rules([lead.lead_id])

        assert results[0].success is True
        mock_lead_repo.update_fields.assert_awaited_once_with(
            lead.lead_id, status="QUALIFIED"
        )
