from __future__ import annotations

import logging
from typing import Any

from tenantrelay.core.config import get_settings
from tenantrelay.domain.integrations import IntegrationTarget
from tenantrelay.services.conditions.evaluator import (
    ConditionInvalidError,
    ConditionTooComplexError,
    evaluate_condition,
    is_empty_condition,
    parse_condition,
    validate_condition,
)
from tenantrelay.services.telemetry import increment_counter


logger = logging.getLogger(__name__)


class ConditionEvaluator:
    """Evaluate integration routing conditions against a delivery target.

    Empty conditions always match. Every evaluation failure is logged and
    treated as a non-match so a broken rule never causes unintended delivery.
    """

    def __init__(self, *, max_depth: int | None = None) -> None:
        self._max_depth = max_depth

    @property
    def max_depth(self) -> int:
        if self._max_depth is not None:
            return self._max_depth
        return get_settings().integration_condition_max_depth

    def evaluate(self, condition: Any, target: IntegrationTarget) -> bool:
        if is_empty_condition(condition):
            return True
        try:
            result = evaluate_condition(parse_condition(condition), target.condition_context())
        except Exception as exc:  # noqa: BLE001 - fail closed on any evaluation error.
            increment_counter("integration_condition_errors_total")
            logger.warning("integration_condition_failed condition=%r", condition, exc_info=exc)
            return False
        if not isinstance(result, bool):
            increment_counter("integration_condition_errors_total")
            logger.warning("integration_condition_non_boolean condition=%r", condition)
            return False
        return result

    def validate(self, condition: Any) -> list[str]:
        # Return configuration-time errors for a condition; empty means acceptable.
        if is_empty_condition(condition):
            return []
        try:
            validate_condition(parse_condition(condition), max_depth=self.max_depth)
        except (ConditionInvalidError, ConditionTooComplexError) as exc:
            return [exc.message]
        return []
