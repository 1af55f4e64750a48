from __future__ import annotations

from typing import Any, Mapping

from .common import RuleOutcome, amount, base_breakdown, financials_from, flag, number

CAPITAL_READY_PCT = 70.0


def evaluate_expansion(payload: Mapping[str, Any]) -> RuleOutcome:
    fin = financials_from(payload)
    net = fin.net_income
    cost = number(payload, "expansionCost")
    capital_pct = number(payload, "capitalAvailablePercentage")
    trend = str(payload.get("profitMarginTrend") or "")
    demand = flag(payload, "marketResearchValidatesDemand")

    breakdown = base_breakdown(fin)
    breakdown.update(
        {
            "expansion_cost": cost,
            "capital_available_pct": capital_pct,
            "funding_gap": max(0.0, cost * (1 - capital_pct / 100)),
        }
    )

    risks: list[str] = []
    if net <= 0:
        risks.append(f"The current business is not profitable (net income {amount(net)}).")
    if trend == "declining_unstable":
        risks.append("Your profit margin has been declining and unstable.")
    if risks:
        return RuleOutcome(
            recommendation="REJECT",
            reasoning="Expanding now would stretch a business that needs strengthening first. " + " ".join(risks),
            steps=[
                "Stabilize profits at your current location before expanding.",
                "Find out what is driving the margin decline and fix it.",
                "Revisit expansion after six months of steady profit.",
            ],
            breakdown=breakdown,
        )

    if capital_pct >= CAPITAL_READY_PCT and demand and trend == "consistent_growth":
        return RuleOutcome(
            recommendation="APPROVE",
            reasoning=(
                f"You already have {capital_pct:.0f}% of the expansion cost, profits are growing consistently "
                "and research confirms demand."
            ),
            steps=[
                "Write a simple budget and timeline for the new location.",
                "Keep a cash reserve for the first months while the new location builds customers.",
                "Track the new location's revenue and costs separately.",
            ],
            breakdown=breakdown,
        )

    concerns: list[str] = []
    steps: list[str] = []
    if capital_pct < CAPITAL_READY_PCT:
        concerns.append(f"You have {capital_pct:.0f}% of the cost available; at least 70% is recommended.")
        steps.append(f"Save towards the remaining {amount(breakdown['funding_gap'])} before committing.")
    if not demand:
        concerns.append("Demand at the new location has not been confirmed.")
        steps.append("Test demand with a pop-up stall, pre-orders or customer surveys.")
    if trend != "consistent_growth":
        concerns.append("Profit growth has not been consistent.")
        steps.append("Aim for steady month-on-month profit growth before expanding.")
    return RuleOutcome(
        recommendation="WAIT",
        reasoning="Expansion could work, but not yet. " + " ".join(concerns),
        steps=steps,
        breakdown=breakdown,
    )
