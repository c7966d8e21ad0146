from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest

from app.schemas.business_rule import RuleCondition
from app.services.condition_evaluator import (
    MISSING,
    ConditionEvaluator,
    build_lead_snapshot,
    normalize_sample_entity,
    strict_equals,
)

from conftest import make_lead


@pytest.fixture
def evaluator() -> ConditionEvaluator:
    return ConditionEvaluator()


def _cond(field, operator, value, logical_operator=None):
    condition = {"field": field, "operator": operator, "value": value}
    if logical_operator is not None:
        condition["logical_operator"] = logical_operator
    return condition


class TestEvaluateFold:
    """Conditions combine strictly left to right."""

    def test_empty_conditions_match(self, evaluator):
        assert evaluator.evaluate([], {"score": 0}) is True
        assert evaluator.evaluate(None, {}) is True

    def test_single_condition_ignores_its_logical_operator(self, evaluator):
        conditions = [_cond("score", "greater_than", 70, "OR")]
        assert evaluator.evaluate(conditions, {"score": 80}) is True
        assert evaluator.evaluate(conditions, {"score": 60}) is False

    def test_and_requires_both(self, evaluator):
        conditions = [
            _cond("score", "greater_than", 70, "AND"),
            _cond("industry", "equals", "Technology"),
        ]
        assert evaluator.evaluate(conditions, {"score": 80, "industry": "Technology"})
        assert not evaluator.evaluate(conditions, {"score": 80, "industry": "Retail"})

    def test_or_accepts_either(self, evaluator):
        conditions = [
            _cond("score", "greater_than", 70, "OR"),
            _cond("industry", "equals", "Technology"),
        ]
        assert evaluator.evaluate(conditions, {"score": 10, "industry": "Technology"})
        assert not evaluator.evaluate(conditions, {"score": 10, "industry": "Retail"})

    def test_no_precedence_grouping(self, evaluator):
        """``A OR B AND C`` is ``(A OR B) AND C``."""
        conditions = [
            _cond("score", "greater_than", 70, "OR"),
            _cond("industry", "equals", "Technology", "AND"),
            _cond("status", "equals", "QUALIFIED"),
        ]
        entity = {"score": 90, "industry": "Retail", "status": "RAW"}
        # A is true, C is false: grouped left to right the result is false
        assert evaluator.evaluate(conditions, entity) is False

    def test_missing_logical_operator_inherits_previous(self, evaluator):
        conditions = [
            _cond("score", "greater_than", 70, "OR"),
            _cond("industry", "equals", "Technology"),
            _cond("status", "equals", "QUALIFIED"),
        ]
        # combinator stays OR for the third condition
        entity = {"score": 10, "industry": "Retail", "status": "QUALIFIED"}
        assert evaluator.evaluate(conditions, entity) is True

    def test_camel_case_logical_operator_accepted(self, evaluator):
        conditions = [
            {"field": "score", "operator": "greater_than", "value": 70, "logicalOperator": "OR"},
            _cond("industry", "equals", "Technology"),
        ]
        assert evaluator.evaluate(conditions, {"score": 10, "industry": "Technology"})

    def test_pydantic_conditions_accepted(self, evaluator):
        conditions = [RuleCondition(field="score", operator="equals", value=5)]
        assert evaluator.evaluate(conditions, {"score": 5}) is True


class TestMalformedConditions:
    """A malformed condition never raises, it just does not match."""

    def test_unknown_operator(self, evaluator):
        assert evaluator.evaluate([_cond("score", "between", [1, 2])], {"score": 1}) is False

    def test_missing_field(self, evaluator):
        assert evaluator.evaluate([{"operator": "equals", "value": 1}], {"score": 1}) is False

    def test_non_mapping_condition(self, evaluator):
        assert evaluator.evaluate(["score > 1"], {"score": 5}) is False

    def test_malformed_condition_in_or_chain(self, evaluator):
        conditions = [
            _cond("score", "greater_than", 70, "OR"),
            {"operator": "equals"},
        ]
        assert evaluator.evaluate(conditions, {"score": 80}) is True


class TestOperators:
    def test_equals_is_strict_about_types(self, evaluator):
        assert evaluator.compare("equals", 1, 1.0) is True
        assert evaluator.compare("equals", "1", 1) is False
        assert evaluator.compare("equals", True, 1) is False
        assert evaluator.compare("equals", None, None) is True

    def test_not_equals(self, evaluator):
        assert evaluator.compare("not_equals", "RAW", "QUALIFIED") is True
        assert evaluator.compare("not_equals", 5, 5) is False

    def test_greater_and_less_than_coerce_numbers(self, evaluator):
        assert evaluator.compare("greater_than", "80", 70) is True
        assert evaluator.compare("less_than", Decimal("1.5"), 2) is True
        assert evaluator.compare("greater_than", 70, 70) is False

    def test_ordering_against_non_numbers_is_false(self, evaluator):
        assert evaluator.compare("greater_than", "abc", 1) is False
        assert evaluator.compare("less_than", "abc", 1) is False
        assert evaluator.compare("greater_than", MISSING, -1) is False
        assert evaluator.compare("less_than", MISSING, 50) is False

    def test_null_orders_as_zero(self, evaluator):
        assert evaluator.compare("less_than", None, 50) is True
        assert evaluator.compare("greater_than", None, -1) is True
        assert evaluator.compare("greater_than", None, 0) is False

    def test_ordering_compares_datetimes(self, evaluator):
        earlier = datetime(2024, 1, 1, tzinfo=timezone.utc)
        later = datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert evaluator.compare("less_than", earlier, later) is True

    def test_contains_is_case_insensitive(self, evaluator):
        assert evaluator.compare("contains", "Acme Technologies", "TECH") is True
        assert evaluator.compare("contains", None, "tech") is False

    def test_in_and_not_in(self, evaluator):
        assert evaluator.compare("in", "Retail", ["Retail", "Finance"]) is True
        assert evaluator.compare("in", "Energy", ["Retail", "Finance"]) is False
        assert evaluator.compare("not_in", "Energy", ["Retail", "Finance"]) is True

    def test_in_with_non_list_value_is_false(self, evaluator):
        assert evaluator.compare("in", "Retail", "Retail") is False
        assert evaluator.compare("not_in", "Retail", "Finance") is False

    def test_unknown_operator_is_false(self, evaluator):
        assert evaluator.compare("matches", "a", "a") is False


class TestStrictEquals:
    @pytest.mark.parametrize(
        "actual, expected, result",
        [
            (True, True, True),
            (True, 1, False),
            (0, False, False),
            (3, 3.0, True),
            (Decimal("2.5"), 2.5, True),
            ("a", "a", True),
            ("1", 1, False),
        ],
    )
    def test_strict_equals(self, actual, expected, result):
        assert strict_equals(actual, expected) is result


class TestFieldResolution:
    def test_known_fields_come_from_entity(self, evaluator):
        assert evaluator.resolve_field("score", {"score": 5}, {"score": 99}) == 5

    def test_unknown_fields_come_from_context(self, evaluator):
        assert evaluator.resolve_field("source", {"source": "x"}, {"source": "web"}) == "web"
        assert evaluator.resolve_field("source", {}, None) is MISSING
        assert evaluator.resolve_field("source", {}, {"other": 1}) is MISSING
        assert evaluator.resolve_field("source", {}, {"source": None}) is None

    def test_null_score_matches_less_than(self, evaluator):
        conditions = [_cond("score", "less_than", 50)]
        assert evaluator.evaluate(conditions, {"score": None}) is True

    def test_absent_field_never_orders(self, evaluator):
        assert evaluator.evaluate([_cond("score", "less_than", 50)], {}) is False
        assert evaluator.evaluate([_cond("budget", "greater_than", -1)], {}, {}) is False
        assert evaluator.evaluate(
            [_cond("budget", "greater_than", -1)], {}, {"budget": None}
        ) is True

    def test_context_condition_matches(self, evaluator):
        conditions = [_cond("channel", "equals", "webinar")]
        assert evaluator.evaluate(conditions, {}, {"channel": "webinar"}) is True


class TestLeadSnapshot:
    def test_ids_rendered_as_strings(self):
        user_id = uuid4()
        lead = make_lead(assigned_to_id=user_id)
        snapshot = build_lead_snapshot(lead)
        assert snapshot["assignedTo"] == str(user_id)
        assert snapshot["assignedTeam"] is None
        assert snapshot["companyName"] == "Acme Corp"

    def test_score_falls_back_to_scoring_details(self):
        lead = make_lead(
            score=None,
            scoring_details=SimpleNamespace(total_score=64, confidence=Decimal("0.8")),
            enrichment=SimpleNamespace(company_size="51-200", revenue=Decimal("1000000")),
        )
        snapshot = build_lead_snapshot(lead)
        assert snapshot["score"] == 64
        assert snapshot["confidence"] == 0.8
        assert snapshot["companySize"] == "51-200"
        assert snapshot["revenue"] == 1_000_000.0

    def test_normalize_sample_entity_reduces_references(self):
        sample = normalize_sample_entity(
            {"score": 80, "assignedTo": {"id": "u-1"}, "assignedTeam": "t-1"}
        )
        assert sample == {"score": 80, "assignedTo": "u-1", "assignedTeam": "t-1"}
        assert normalize_sample_entity(None) == {}
