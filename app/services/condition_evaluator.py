import logging
import math
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence

from pydantic import BaseModel

from app.core.constants import CONDITION_OPERATORS, KNOWN_LEAD_FIELDS

logger = logging.getLogger(__name__)


class _Missing:
    """Value of a field found neither on the lead nor in the context."""

    def __repr__(self) -> str:
        return "<missing>"


MISSING = _Missing()


def _plain(value: Any) -> Any:
    """Unwrap ``str`` enums so operators compare as plain strings."""
    return value.value if isinstance(value, Enum) else value


def _as_dict(condition: Any) -> Optional[Dict[str, Any]]:
    if isinstance(condition, BaseModel):
        return condition.model_dump()
    if isinstance(condition, Mapping):
        return dict(condition)
    return None


def _optional_str(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def _optional_float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


def build_lead_snapshot(lead) -> Dict[str, Any]:
    """Flatten an ORM ``Lead`` into the field map conditions are evaluated on.

    The lead must have been loaded with ``scoring_details`` and
    ``enrichment`` (see ``LeadRepository.get_with_relations``).  Ids are
    rendered as strings so they compare equal to the string values
    stored in rule definitions.
    """
    scoring = lead.scoring_details
    enrichment = lead.enrichment

    score = lead.score
    if score is None and scoring is not None:
        score = scoring.total_score

    return {
        "score": score,
        "status": lead.status,
        "industry": lead.industry,
        "companyName": lead.company_name,
        "domain": lead.domain,
        "assignedTo": _optional_str(lead.assigned_to_id),
        "assignedTeam": _optional_str(lead.assigned_team_id),
        "campaignId": _optional_str(lead.campaign_id),
        "createdAt": lead.created_at,
        "updatedAt": lead.updated_at,
        "confidence": _optional_float(scoring.confidence) if scoring else None,
        "companySize": enrichment.company_size if enrichment else None,
        "revenue": _optional_float(enrichment.revenue) if enrichment else None,
    }


def normalize_sample_entity(entity: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Prepare a caller-supplied sample lead for evaluation.

    Sample data is used as-is except that ``assignedTo`` / ``assignedTeam``
    given as ``{"id": ...}`` objects are reduced to the id.
    """
    snapshot = dict(entity or {})
    for key in ("assignedTo", "assignedTeam"):
        ref = snapshot.get(key)
        if isinstance(ref, Mapping):
            snapshot[key] = _optional_str(ref.get("id"))
    return snapshot


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _to_number(value: Any) -> float:
    """Coerce *value* for ordering comparisons; ``nan`` when impossible.

    An explicit ``None`` counts as 0, a missing field as ``nan``.
    """
    if value is MISSING:
        return math.nan
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if _is_number(value):
        return float(value)
    if isinstance(value, datetime):
        return value.timestamp() * 1000
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def _to_text(value: Any) -> str:
    if value is None or value is MISSING:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def strict_equals(actual: Any, expected: Any) -> bool:
    """Equality without cross-type coercion.

    Booleans only equal booleans; ints, floats and decimals compare by
    numeric value; everything else must share a type and be equal.
    """
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual == expected
    if _is_number(actual) and _is_number(expected):
        return actual == expected
    if type(actual) is not type(expected):
        return False
    return actual == expected


def _greater_than(actual: Any, expected: Any) -> bool:
    return _to_number(actual) > _to_number(expected)


def _less_than(actual: Any, expected: Any) -> bool:
    return _to_number(actual) < _to_number(expected)


def _contains(actual: Any, expected: Any) -> bool:
    return _to_text(expected).lower() in _to_text(actual).lower()


def _in(actual: Any, expected: Any) -> bool:
    if not isinstance(expected, (list, tuple)):
        return False
    return any(strict_equals(actual, item) for item in expected)


def _not_in(actual: Any, expected: Any) -> bool:
    if not isinstance(expected, (list, tuple)):
        return False
    return not any(strict_equals(actual, item) for item in expected)


_OPERATORS = {
    "equals": strict_equals,
    "not_equals": lambda actual, expected: not strict_equals(actual, expected),
    "greater_than": _greater_than,
    "less_than": _less_than,
    "contains": _contains,
    "in": _in,
    "not_in": _not_in,
}


class ConditionEvaluator:
    """Decide whether a list of conditions holds for a lead snapshot.

    Conditions are folded strictly left to right with no precedence
    grouping: the first condition seeds the result, and each condition's
    ``logical_operator`` decides how the running result combines with
    the *next* one (defaulting to the previous operator, initially
    ``AND``).  Any operator other than ``AND`` combines as ``OR``.

    Evaluation never raises: a malformed condition simply does not
    match.
    """

    def evaluate(
        self,
        conditions: Optional[Sequence[Any]],
        entity: Mapping[str, Any],
        context: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        if not conditions:
            return True

        result = False
        combinator = "AND"
        for index, raw in enumerate(conditions):
            condition = _as_dict(raw)
            outcome = (
                self.evaluate_condition(condition, entity, context)
                if condition is not None
                else False
            )

            if index == 0:
                result = outcome
            elif combinator == "AND":
                result = result and outcome
            else:
                result = result or outcome

            if condition is not None:
                combinator = (
                    _plain(
                        condition.get("logical_operator")
                        or condition.get("logicalOperator")
                    )
                    or combinator
                )
        return result

    def evaluate_condition(
        self,
        condition: Mapping[str, Any],
        entity: Mapping[str, Any],
        context: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        field = condition.get("field")
        operator = _plain(condition.get("operator"))
        if not field or operator not in CONDITION_OPERATORS:
            logger.debug("Skipping malformed condition %s", condition)
            return False
        actual = self.resolve_field(field, entity, context)
        return self.compare(operator, actual, condition.get("value"))

    @staticmethod
    def resolve_field(
        field: str,
        entity: Mapping[str, Any],
        context: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Known lead fields come from the lead; anything else from *context*.

        Returns ``MISSING`` when the field is absent, which ordering
        operators treat differently from an explicit ``None``.
        """
        if field in KNOWN_LEAD_FIELDS:
            return entity.get(field, MISSING)
        if context:
            return context.get(field, MISSING)
        return MISSING

    @staticmethod
    def compare(operator: str, actual: Any, expected: Any) -> bool:
        """Apply a single operator; unknown operators never match."""
        handler = _OPERATORS.get(_plain(operator))
        if handler is None:
            return False
        try:
            return bool(handler(actual, expected))
        except Exception:
            logger.warning(
                "Operator %s failed on %r / %r", operator, actual, expected,
                exc_info=True,
            )
            return False
