"""Pure threshold evaluation — maps a reading onto a level label."""

from __future__ import annotations

import operator
from collections.abc import Callable, Sequence

from src.core.types import LEVEL_NORMAL, Comparison, IntensityReading, ThresholdRule

_OPERATORS: dict[Comparison, Callable[[float, float], bool]] = {
    Comparison.LT: operator.lt,
    Comparison.LE: operator.le,
    Comparison.GT: operator.gt,
    Comparison.GE: operator.ge,
}


def rule_matches(rule: ThresholdRule, value: float) -> bool:
    """Return True if *value* satisfies the rule's comparison."""
    return _OPERATORS[rule.op](value, rule.bound)


def evaluate(reading: IntensityReading, rules: Sequence[ThresholdRule]) -> str:
    """Return the level of the first matching rule, in declared order.

    Falls back to ``normal`` when nothing matches.
    """
    for rule in rules:
        if rule_matches(rule, reading.value):
            return rule.level
    return LEVEL_NORMAL
