from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from app.schemas.workflow import ExecutionContext, WorkflowStepOut
from app.services.collaborators import IntegrationGateway, RecordingNotificationSink
from app.services.workflow_steps import WorkflowStepExecutor, parse_delay_duration

from conftest import make_lead


def _step(type_, config=None, name="step", order=0) -> WorkflowStepOut:
    return WorkflowStepOut(
        step_id=uuid4(), name=name, type=type_, order=order, config=config or {}
    )


@pytest.fixture
def sink() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def executor(mock_lead_repo, sink) -> WorkflowStepExecutor:
    return WorkflowStepExecutor(
        lead_repo=mock_lead_repo,
        notification_sink=sink,
        integration_gateway=IntegrationGateway(),
        inline_delay_max_ms=1_000,
    )


@pytest.fixture
def lead_context() -> ExecutionContext:
    return ExecutionContext(lead_id=uuid4())


class TestDispatch:
    @pytest.mark.asyncio
    async def test_unknown_step_type_fails(self, executor, lead_context):
        outcome = await executor.execute(_step("webhook"), lead_context)
        assert outcome.success is False
        assert outcome.error == "Unknown step type: webhook"

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_failed_step(
        self, executor, mock_lead_repo, lead_context
    ):
        mock_lead_repo.update_fields = AsyncMock(side_effect=RuntimeError("boom"))
        outcome = await executor.execute(
            _step("action", {"action": "update_lead_status", "value": "CONTACTED"}),
            lead_context,
        )
        assert outcome.success is False
        assert outcome.error == "boom"


class TestActionStep:
    @pytest.mark.asyncio
    async def test_updates_lead_status(self, executor, mock_lead_repo, lead_context):
        outcome = await executor.execute(
            _step("action", {"action": "update_lead_status", "value": "CONTACTED"}),
            lead_context,
        )
        assert outcome.success is True
        assert outcome.result == {"action": "update_lead_status", "value": "CONTACTED"}
        mock_lead_repo.update_fields.assert_awaited_once_with(
            lead_context.lead_id, status="CONTACTED"
        )

    @pytest.mark.asyncio
    async def test_assign_lead(self, executor, mock_lead_repo, lead_context):
        user_id = str(uuid4())
        await executor.execute(
            _step("action", {"action": "assign_lead", "value": user_id}), lead_context
        )
        mock_lead_repo.update_fields.assert_awaited_once_with(
            lead_context.lead_id, assigned_to_id=user_id
        )

    @pytest.mark.asyncio
    async def test_unknown_action(self, executor, lead_context):
        outcome = await executor.execute(_step("action", {"action": "archive"}), lead_context)
        assert outcome.error == "Unknown action: archive"

    @pytest.mark.asyncio
    async def test_requires_lead_context(self, executor):
        outcome = await executor.execute(
            _step("action", {"action": "update_lead_status", "value": "X"}),
            ExecutionContext(),
        )
        assert outcome.error == "No lead context provided"

    @pytest.mark.asyncio
    async def test_missing_lead(self, executor, mock_lead_repo, lead_context):
        mock_lead_repo.exists = AsyncMock(return_value=False)
        outcome = await executor.execute(
            _step("action", {"action": "update_lead_status", "value": "X"}),
            lead_context,
        )
        assert outcome.error == "Lead not found"
        mock_lead_repo.update_fields.assert_not_awaited()


class TestConditionStep:
    @pytest.mark.asyncio
    async def test_reports_comparison(self, executor, mock_lead_repo, lead_context):
        mock_lead_repo.get_with_relations = AsyncMock(return_value=make_lead(score=80))
        outcome = await executor.execute(
            _step(
                "condition",
                {
                    "condition": "hot lead",
                    "field": "score",
                    "operator": "greater_than",
                    "value": 70,
                },
            ),
            lead_context,
        )
        assert outcome.success is True
        assert outcome.result == {
            "condition": "hot lead",
            "result": True,
            "actualValue": 80,
            "expectedValue": 70,
        }

    @pytest.mark.asyncio
    async def test_false_comparison_is_still_a_success(
        self, executor, mock_lead_repo, lead_context
    ):
        mock_lead_repo.get_with_relations = AsyncMock(return_value=make_lead(score=10))
        outcome = await executor.execute(
            _step("condition", {"field": "score", "operator": "greater_than", "value": 70}),
            lead_context,
        )
        assert outcome.success is True
        assert outcome.result["result"] is False

    @pytest.mark.asyncio
    async def test_unknown_field(self, executor, lead_context):
        outcome = await executor.execute(
            _step("condition", {"field": "shoeSize", "operator": "equals", "value": 9}),
            lead_context,
        )
        assert outcome.error == "Unknown field: shoeSize"

    @pytest.mark.asyncio
    async def test_unknown_operator(self, executor, lead_context):
        outcome = await executor.execute(
            _step("condition", {"field": "score", "operator": "between", "value": 9}),
            lead_context,
        )
        assert outcome.error == "Unknown operator: between"


class TestDelayStep:
    @pytest.mark.asyncio
    async def test_short_delay_sleeps_inline(self, executor, lead_context):
        with patch(
            "app.services.workflow_steps.asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            outcome = await executor.execute(_step("delay", {"duration": 500}), lead_context)
        mock_sleep.assert_awaited_once_with(0.5)
        assert outcome.success is True
        assert outcome.result == {"delay": 500}
        assert outcome.suspend_ms is None

    @pytest.mark.asyncio
    async def test_long_delay_requests_suspension(self, executor, lead_context):
        with patch(
            "app.services.workflow_steps.asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            outcome = await executor.execute(
                _step("delay", {"duration": 3_600_000}), lead_context
            )
        mock_sleep.assert_not_awaited()
        assert outcome.success is True
        assert outcome.suspend_ms == 3_600_000

    @pytest.mark.asyncio
    async def test_invalid_duration_fails(self, executor, lead_context):
        outcome = await executor.execute(_step("delay", {"duration": "soon"}), lead_context)
        assert outcome.success is False
        assert outcome.error.startswith("Invalid delay duration")

    @pytest.mark.parametrize(
        "value, expected",
        [(0, 0), (1500, 1500), (2.7, 2), (-1, None), ("10", None), (True, None), (None, None)],
    )
    def test_parse_delay_duration(self, value, expected):
        assert parse_delay_duration(value) == expected


class TestOutboundSteps:
    @pytest.mark.asyncio
    async def test_notification_emits_message(self, executor, sink, lead_context):
        outcome = await executor.execute(
            _step(
                "notification",
                {"type": "email", "message": "Welcome", "recipients": ["a@example.com"]},
            ),
            lead_context,
        )
        assert outcome.result == {
            "type": "email",
            "message": "Welcome",
            "recipients": ["a@example.com"],
        }
        assert sink.messages[0]["context"]["lead_id"] == str(lead_context.lead_id)

    @pytest.mark.asyncio
    async def test_integration_calls_gateway(self, mock_lead_repo, sink, lead_context):
        gateway = AsyncMock()
        gateway.call = AsyncMock(return_value={"status": "synced"})
        executor = WorkflowStepExecutor(mock_lead_repo, sink, gateway)

        outcome = await executor.execute(
            _step(
                "integration",
                {"integrationId": "crm", "action": "sync", "data": {"x": 1}},
            ),
            lead_context,
        )

        assert outcome.success is True
        assert outcome.result == {"status": "synced"}
        request = gateway.call.await_args.args[0]
        assert request["integration_id"] == "crm"
        assert request["action"] == "sync"
