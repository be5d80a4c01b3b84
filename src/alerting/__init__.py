"""Threshold evaluation and edge-triggered alert state."""

from src.alerting.evaluator import evaluate, rule_matches
from src.alerting.state_machine import AlertStateMachine

__all__ = [
    "AlertStateMachine",
    "evaluate",
    "rule_matches",
]
