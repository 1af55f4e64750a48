from __future__ import annotations

from typing import Any, Callable, Mapping

from ..contracts import EvaluationV1, IntentName
from .common import DECISION_HEADLINES, DECISION_STATUS, RuleOutcome
from .equipment import evaluate_equipment
from .expansion import evaluate_expansion
from .general import evaluate_general
from .hiring import evaluate_hiring
from .inventory import evaluate_inventory
from .loans import evaluate_loan
from .marketing import evaluate_marketing
from .savings import evaluate_savings

RULES: dict[str, Callable[[Mapping[str, Any]], RuleOutcome]] = {
    "hiring": evaluate_hiring,
    "inventory": evaluate_inventory,
    "equipment": evaluate_equipment,
    "marketing": evaluate_marketing,
    "savings": evaluate_savings,
    "loan_management": evaluate_loan,
    "business_expansion": evaluate_expansion,
    "general_advice": evaluate_general,
}


def evaluate(intent: IntentName, payload: Mapping[str, Any]) -> EvaluationV1:
    rule = RULES.get(intent)
    if rule is None:
        raise ValueError(f"no decision rules for intent {intent!r}")
    return rule(payload).to_evaluation(intent)


__all__ = [
    "DECISION_HEADLINES",
    "DECISION_STATUS",
    "RULES",
    "evaluate",
]
