from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping

from ..contracts import EvaluationV1, IntentName, RecommendationName
from ..slots import decision_type_for

DECISION_STATUS = {"APPROVE": "success", "WAIT": "warning", "REJECT": "danger"}
DECISION_HEADLINES = {
    "APPROVE": "Recommended: go ahead",
    "WAIT": "Not yet: wait and strengthen first",
    "REJECT": "Not recommended right now",
}


def number(payload: Mapping[str, Any], name: str, default: float = 0.0) -> float:
    value = payload.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value)


def flag(payload: Mapping[str, Any], name: str, default: bool = False) -> bool:
    value = payload.get(name)
    if isinstance(value, bool):
        return value
    return default


def ratio(numerator: float, denominator: float, default: float = 0.0) -> float:
    if denominator == 0:
        return default
    return numerator / denominator


def amount(value: float) -> str:
    return f"{value:.0f}"


@dataclass(frozen=True)
class Financials:
    revenue: float
    expenses: float
    savings: float
    withdrawals: float

    @property
    def net_income(self) -> float:
        return self.revenue - self.expenses - self.withdrawals

    @property
    def profit_margin_pct(self) -> float:
        return ratio(self.net_income, self.revenue) * 100

    @property
    def buffer_months(self) -> float:
        return ratio(self.savings, self.expenses)


def financials_from(payload: Mapping[str, Any]) -> Financials:
    return Financials(
        revenue=number(payload, "monthlyRevenue"),
        expenses=number(payload, "monthlyExpenses"),
        savings=number(payload, "currentSavings"),
        withdrawals=number(payload, "ownerWithdrawals"),
    )


def base_breakdown(fin: Financials) -> Dict[str, float]:
    return {
        "monthly_revenue": fin.revenue,
        "monthly_expenses": fin.expenses,
        "current_savings": fin.savings,
        "owner_withdrawals": fin.withdrawals,
        "net_income": fin.net_income,
        "profit_margin_pct": round(fin.profit_margin_pct, 2),
        "savings_buffer_months": round(fin.buffer_months, 2),
    }


def unique_steps(steps: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for step in steps:
        text = step.strip()
        if not text or text in seen:
            continue
        seen.add(text)
        ordered.append(text)
    return ordered


@dataclass
class RuleOutcome:
    recommendation: RecommendationName
    reasoning: str
    steps: list[str] = field(default_factory=list)
    breakdown: Dict[str, float] = field(default_factory=dict)

    def to_evaluation(self, intent: IntentName) -> EvaluationV1:
        steps = unique_steps(self.steps)
        if not steps and self.recommendation != "APPROVE":
            raise ValueError(f"{intent} {self.recommendation} produced no next steps")
        return EvaluationV1(
            intent=intent,
            decision_type=decision_type_for(intent),
            recommendation=self.recommendation,
            reasoning=self.reasoning,
            next_steps=steps,
            numeric_breakdown={key: float(value) for key, value in self.breakdown.items()},
        )
