from __future__ import annotations

import pytest

from tenantrelay.domain.integrations import DeliveryTarget
from tenantrelay.services.conditions.evaluator import (
    ConditionInvalidError,
    ConditionTooComplexError,
    evaluate_condition,
    parse_condition,
    validate_condition,
)
from tenantrelay.services.integrations.conditions import ConditionEvaluator
from tenantrelay.services.telemetry import counters_snapshot
from tenantrelay.tests.utils.integrations import condition_json


def test_dsl_truth_table() -> None:
    context = {
        "user": {"locale": "de-DE", "tags": ["beta", "vip"], "score": 7},
        "topic": "orders/created",
        "sent_at": "2026-02-15T10:00:00Z",
    }
    cases = [
        ({"eq": [{"var": "user.locale"}, "de-DE"]}, True),
        ({"ne": [{"var": "user.locale"}, "en-US"]}, True),
        ({"in": [{"var": "user.locale"}, ["de-DE", "fr-FR"]]}, True),
        ({"not_in": [{"var": "user.locale"}, ["en-US"]]}, True),
        ({"gt": [{"var": "user.score"}, 5]}, True),
        ({"lte": [{"var": "user.score"}, 6]}, False),
        ({"contains": [{"var": "user.tags"}, "vip"]}, True),
        ({"starts_with": [{"var": "topic"}, "orders/"]}, True),
        ({"exists": {"var": "user.locale"}}, True),
        ({"exists": "user.phone"}, False),
        ({"not": {"exists": {"var": "user.phone"}}}, True),
        ({"eq": {"field": "topic", "value": "orders/created"}}, True),
        ({"time_between": [{"var": "sent_at"}, {"start": "09:00", "end": "18:00"}]}, True),
        ({"time_between": ["23:30", {"start": "22:00", "end": "06:00"}]}, True),
        ({"date_between": ["2026-02-15", {"start": "2026-02-01", "end": "2026-02-28"}]}, True),
        (
            {
                "all": [
                    {"eq": [{"var": "user.locale"}, "de-DE"]},
                    {"any": [{"contains": [{"var": "user.tags"}, "alpha"]}, {"not": {"eq": [1, 2]}}]},
                ]
            },
            True,
        ),
    ]
    for condition, expected in cases:
        assert evaluate_condition(condition, context) is expected, condition


def test_dsl_rejects_malformed_conditions() -> None:
    with pytest.raises(ConditionInvalidError):
        evaluate_condition({"eq": [1, 1], "ne": [1, 2]}, {})
    with pytest.raises(ConditionInvalidError):
        evaluate_condition({"regex": [1, 1]}, {})
    with pytest.raises(ConditionInvalidError):
        evaluate_condition({"all": {"eq": [1, 1]}}, {})
    with pytest.raises(ConditionInvalidError):
        parse_condition("{not json")
    with pytest.raises(ConditionInvalidError):
        evaluate_condition({"gt": [{"var": "user.missing"}, 5]}, {"user": {}})
    with pytest.raises(ConditionInvalidError):
        evaluate_condition({"gt": [{"var": "count"}, 5]}, {"count": "abc"})
    with pytest.raises(ConditionInvalidError):
        evaluate_condition({"contains": [{"var": "count"}, 5]}, {"count": 7})
    with pytest.raises(ConditionTooComplexError):
        validate_condition({"not": {"not": {"not": {"eq": [1, 1]}}}}, max_depth=3)
    assert parse_condition("   ") is None


def test_empty_conditions_always_match() -> None:
    evaluator = ConditionEvaluator()
    target = DeliveryTarget(test=False)
    for condition in (None, "", "   ", {}, "{}"):
        assert evaluator.evaluate(condition, target) is True


def test_evaluation_errors_fail_closed() -> None:
    evaluator = ConditionEvaluator()
    target = DeliveryTarget(test=False, properties={"locale": "de-DE"})

    assert evaluator.evaluate("{broken", target) is False
    assert evaluator.evaluate(condition_json({"unknown_op": [1, 2]}), target) is False
    assert evaluator.evaluate(condition_json({"all": "not-a-list"}), target) is False
    assert counters_snapshot()["integration_condition_errors_total"] == 3


def test_target_context_exposes_properties_and_test_flag() -> None:
    evaluator = ConditionEvaluator()
    target = DeliveryTarget(test=True, properties={"locale": "de-DE"})

    assert evaluator.evaluate(condition_json({"eq": [{"var": "locale"}, "de-DE"]}), target) is True
    assert evaluator.evaluate(condition_json({"eq": [{"var": "test"}, True]}), target) is True
    assert evaluator.evaluate({"eq": [{"var": "locale"}, "en-US"]}, target) is False


def test_validate_reports_configuration_errors() -> None:
    evaluator = ConditionEvaluator(max_depth=2)
    assert evaluator.validate(None) == []
    assert evaluator.validate(condition_json({"eq": [1, 1]})) == []
    assert evaluator.validate("{broken") != []
    assert evaluator.validate(condition_json({"all": [{"any": [{"eq": [1, 1]}]}]})) != []


def test_missing_properties_and_type_mismatches_fail_closed() -> None:
    evaluator = ConditionEvaluator()
    no_locale = DeliveryTarget(test=False, properties={})
    text_count = DeliveryTarget(test=False, properties={"count": "abc"})

    # Negating operators must not turn an unresolvable rule into a match.
    assert evaluator.evaluate(condition_json({"ne": [{"var": "locale"}, "de-DE"]}), no_locale) is False
    assert evaluator.evaluate(condition_json({"not_in": [{"var": "locale"}, ["de-DE"]]}), no_locale) is False
    assert evaluator.evaluate(condition_json({"not": {"eq": [{"var": "locale"}, "de-DE"]}}), no_locale) is False
    assert evaluator.evaluate(condition_json({"ne": {"field": "locale", "value": "de-DE"}}), no_locale) is False
    assert evaluator.evaluate(condition_json({"not": {"gt": [{"var": "count"}, 5]}}), text_count) is False
    assert evaluator.evaluate(condition_json({"not": {"starts_with": [{"var": "count"}, 5]}}), text_count) is False
    assert counters_snapshot()["integration_condition_errors_total"] == 6
