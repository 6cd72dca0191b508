"""
SafeCheck Inspections — Threshold Evaluator

Decides pass/fail for a single check item. Numeric input that cannot be
parsed never fails: operators are not blocked on partial data entry.
"""
import math
import re
from enum import Enum
from typing import Any, Optional

from .models import CheckDefinition, InputType, ThresholdMode

# Leading float literal, the way a lenient float parser reads "12.5kg" as 12.5
_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


class CheckOutcome(str, Enum):
    PASS = "pass"
    FAIL = "fail"


def parse_number(raw: Any) -> Optional[float]:
    """Return the numeric value of raw, or None if it has none."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
        return None if math.isnan(value) else value
    m = _FLOAT_PREFIX.match(str(raw))
    if not m:
        return None
    return float(m.group(1))


def _bound(value: Optional[float]) -> float:
    return value if value is not None else 0.0


def _violates(mode: ThresholdMode, value: float, val1: Optional[float], val2: Optional[float]) -> bool:
    lo = _bound(val1)
    if mode == ThresholdMode.RANGE:
        return value < lo or value > _bound(val2)
    if mode == ThresholdMode.GT:
        return value <= lo
    if mode == ThresholdMode.GTE:
        return value < lo
    if mode == ThresholdMode.LT:
        return value >= lo
    if mode == ThresholdMode.LTE:
        return value > lo
    return False


def evaluate(definition: CheckDefinition, raw: Any) -> CheckOutcome:
    """
    Evaluate one raw value against its check definition.

    Booleans fail only on an explicit False. Numbers fail only when they
    parse and break the configured threshold mode; missing bounds compare
    as 0.
    """
    if definition.input_type == InputType.BOOLEAN:
        return CheckOutcome.FAIL if raw is False else CheckOutcome.PASS

    if definition.input_type == InputType.NUMBER:
        value = parse_number(raw)
        if value is None or definition.threshold_mode is None:
            return CheckOutcome.PASS
        if _violates(definition.threshold_mode, value, definition.val1, definition.val2):
            return CheckOutcome.FAIL

    return CheckOutcome.PASS


def is_failure(definition: CheckDefinition, raw: Any) -> bool:
    return evaluate(definition, raw) == CheckOutcome.FAIL


def _fmt(value: Optional[float]) -> str:
    if value is None:
        return "0"
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def describe_threshold(definition: CheckDefinition) -> Optional[str]:
    """Human-readable threshold, e.g. 'range 10~50' or 'gt 5'."""
    if definition.input_type != InputType.NUMBER or definition.threshold_mode is None:
        return None
    mode = definition.threshold_mode
    if mode == ThresholdMode.RANGE:
        return f"range {_fmt(definition.val1)}~{_fmt(definition.val2)}"
    return f"{mode.value} {_fmt(definition.val1)}"
