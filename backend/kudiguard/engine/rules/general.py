from __future__ import annotations

from typing import Any, Mapping

from ..score import compute_health_score
from .common import RuleOutcome, base_breakdown, financials_from

_BAND_OUTCOMES = {
    "stable": (
        "APPROVE",
        [
            "Keep reviewing your numbers every month to stay on track.",
            "Consider putting surplus cash into growth you can measure, such as stock that sells fast.",
        ],
    ),
    "caution": (
        "WAIT",
        [
            "Identify your three largest expenses and look for savings in each.",
            "Build your emergency savings towards 3 months of expenses.",
            "Avoid new fixed costs until your margin improves.",
        ],
    ),
    "risky": (
        "REJECT",
        [
            "Cut or pause every non-essential expense this month.",
            "Reduce owner withdrawals until the business is profitable again.",
            "Chase unpaid customer balances to bring cash in faster.",
        ],
    ),
}


def evaluate_general(payload: Mapping[str, Any]) -> RuleOutcome:
    fin = financials_from(payload)
    health = compute_health_score(payload)
    recommendation, steps = _BAND_OUTCOMES[health.band]

    breakdown = base_breakdown(fin)
    breakdown.update(
        {
            "debt_exposure_ratio": health.breakdown["debt_exposure_ratio"],
            "health_score": float(health.score),
        }
    )
    reasoning = (
        f"Your profit margin is {fin.profit_margin_pct:.1f}% and your savings cover "
        f"{fin.buffer_months:.1f} months of expenses, giving a health score of {health.score}. "
        f"{health.interpretation}"
    )
    return RuleOutcome(
        recommendation=recommendation,
        reasoning=reasoning,
        steps=list(steps),
        breakdown=breakdown,
    )
