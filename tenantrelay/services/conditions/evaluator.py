from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
import json
from typing import Any, Callable


@dataclass(frozen=True)
class ConditionInvalidError(ValueError):
    # Raised for malformed routing conditions; callers decide whether to fail closed.
    message: str


@dataclass(frozen=True)
class ConditionTooComplexError(ValueError):
    message: str


_LOGICAL_OPERATORS = {"all", "any", "not"}
_MISSING = object()


def parse_condition(raw: Any) -> Any:
    # Accept stored JSON text or an already-decoded document.
    if raw is None:
        return None
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConditionInvalidError(f"Condition is not valid JSON: {exc.msg}") from exc
    return raw


def is_empty_condition(condition: Any) -> bool:
    return condition is None or condition == {} or (isinstance(condition, str) and not condition.strip())


def validate_condition(condition: Any, *, max_depth: int) -> None:
    # Enforce depth and operator constraints before a condition is stored.
    if is_empty_condition(condition):
        return
    depth = _condition_depth(condition)
    if depth > max_depth:
        raise ConditionTooComplexError(f"Condition depth {depth} exceeds max {max_depth}")
    _validate_structure(condition)


def evaluate_condition(condition: Any, context: dict[str, Any]) -> bool:
    # Evaluate the condition DSL against a delivery target context.
    if condition is None or condition == {}:
        return True
    if isinstance(condition, bool):
        return condition
    operator, payload = _split(condition)

    if operator == "all":
        return all(evaluate_condition(item, context) for item in _ensure_list(payload, operator))
    if operator == "any":
        return any(evaluate_condition(item, context) for item in _ensure_list(payload, operator))
    if operator == "not":
        return not evaluate_condition(payload, context)
    if operator == "exists":
        path = payload.get("var") if isinstance(payload, dict) else payload
        value = _resolve_path(context, str(path or ""))
        return value is not _MISSING and value is not None

    left, right = _resolve_operands(payload, context)
    return _COMPARATORS[operator](left, right)


def _split(condition: Any) -> tuple[str, Any]:
    if not isinstance(condition, dict):
        raise ConditionInvalidError("Condition must be an object")
    if len(condition) != 1:
        raise ConditionInvalidError("Condition must include a single operator")
    operator, payload = next(iter(condition.items()))
    if operator not in _LOGICAL_OPERATORS and operator != "exists" and operator not in _COMPARATORS:
        raise ConditionInvalidError(f"Unsupported operator: {operator}")
    return operator, payload


def _validate_structure(condition: Any) -> None:
    if condition is None or isinstance(condition, bool):
        return
    operator, payload = _split(condition)
    if operator in {"all", "any"}:
        for item in _ensure_list(payload, operator):
            _validate_structure(item)
    elif operator == "not":
        _validate_structure(payload)


def _condition_depth(condition: Any, depth: int = 1) -> int:
    if not isinstance(condition, dict) or len(condition) != 1:
        return depth
    operator, payload = next(iter(condition.items()))
    if operator in {"all", "any"}:
        items = payload if isinstance(payload, list) else []
        if not items:
            return depth + 1
        return max(_condition_depth(item, depth + 1) for item in items)
    if operator == "not":
        return _condition_depth(payload, depth + 1)
    return depth + 1


def _ensure_list(payload: Any, operator: str) -> list[Any]:
    if not isinstance(payload, list):
        raise ConditionInvalidError(f"{operator} expects a list")
    return payload


def _resolve_operands(payload: Any, context: dict[str, Any]) -> tuple[Any, Any]:
    if isinstance(payload, list) and len(payload) == 2:
        return _resolve_operand(payload[0], context), _resolve_operand(payload[1], context)
    if isinstance(payload, dict) and "field" in payload:
        return _lookup(context, str(payload.get("field"))), _resolve_operand(payload.get("value"), context)
    raise ConditionInvalidError("Comparator payload must be a pair or an object with field/value")


def _resolve_operand(value: Any, context: dict[str, Any]) -> Any:
    if isinstance(value, dict) and "var" in value:
        return _lookup(context, str(value.get("var")))
    return value


def _lookup(context: dict[str, Any], path: str) -> Any:
    # Referencing an absent property is an error, never an implicit None.
    value = _resolve_path(context, path)
    if value is _MISSING:
        raise ConditionInvalidError(f"Referenced property is missing: {path}")
    return value


def _resolve_path(context: dict[str, Any], path: str) -> Any:
    if not path:
        return _MISSING
    node: Any = context
    for part in path.split("."):
        if isinstance(node, dict) and part in node:
            node = node[part]
        else:
            return _MISSING
    return node


def _in(left: Any, right: Any) -> bool:
    if right is None:
        raise ConditionInvalidError("in expects a list or a value, got null")
    if isinstance(right, (list, tuple, set)):
        return left in right
    return left == right


def _ordered(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def compare(left: Any, right: Any) -> bool:
        try:
            return bool(op(left, right))
        except TypeError as exc:
            raise ConditionInvalidError(f"Cannot compare {type(left).__name__} with {type(right).__name__}") from exc

    return compare


def _contains(left: Any, right: Any) -> bool:
    if isinstance(left, str):
        return str(right) in left
    if isinstance(left, (list, set, tuple)):
        return right in left
    raise ConditionInvalidError(f"contains expects a string or list, got {type(left).__name__}")


def _starts_with(left: Any, right: Any) -> bool:
    if not isinstance(left, str) or not isinstance(right, str):
        raise ConditionInvalidError("starts_with expects string operands")
    return left.startswith(right)


def _time_between(left: Any, right: Any) -> bool:
    if not isinstance(right, dict):
        raise ConditionInvalidError("time_between expects an object with start/end")
    start = _parse_time(right.get("start"))
    end = _parse_time(right.get("end"))
    value = _parse_time(left)
    if value is None or start is None or end is None:
        raise ConditionInvalidError("time_between operands must be times")
    if start <= end:
        return start <= value <= end
    # Overnight windows such as 22:00-06:00.
    return value >= start or value <= end


def _date_between(left: Any, right: Any) -> bool:
    if not isinstance(right, dict):
        raise ConditionInvalidError("date_between expects an object with start/end")
    start = _parse_datetime(right.get("start"))
    end = _parse_datetime(right.get("end"))
    value = _parse_datetime(left)
    if value is None or start is None or end is None:
        raise ConditionInvalidError("date_between operands must be dates")
    return start <= value <= end


def _parse_time(value: Any) -> time | None:
    if isinstance(value, time):
        return value
    if isinstance(value, datetime):
        return value.time()
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).time()
        except ValueError:
            pass
        for fmt in ("%H:%M:%S", "%H:%M"):
            try:
                return datetime.strptime(value, fmt).time()
            except ValueError:
                continue
    return None


def _parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
        except ValueError:
            return None
    return None


_COMPARATORS: dict[str, Callable[[Any, Any], bool]] = {
    "eq": lambda left, right: left == right,
    "ne": lambda left, right: left != right,
    "in": _in,
    "not_in": lambda left, right: not _in(left, right),
    "gt": _ordered(lambda left, right: left > right),
    "gte": _ordered(lambda left, right: left >= right),
    "lt": _ordered(lambda left, right: left < right),
    "lte": _ordered(lambda left, right: left <= right),
    "contains": _contains,
    "starts_with": _starts_with,
    "time_between": _time_between,
    "date_between": _date_between,
}
