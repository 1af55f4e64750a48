from __future__ import annotations

from typing import Any, Mapping

from .common import RuleOutcome, amount, base_breakdown, financials_from, flag, number, ratio

BUDGET_SHARE_MAX = 0.10
CAMPAIGN_LIFT_MIN = 10.0


def _campaign_lift(payload: Mapping[str, Any]) -> float | None:
    lifts = [
        number(payload, name)
        for name in ("salesIncreaseLastCampaign1", "salesIncreaseLastCampaign2")
        if name in payload
    ]
    if not lifts:
        return None
    return sum(lifts) / len(lifts)


def evaluate_marketing(payload: Mapping[str, Any]) -> RuleOutcome:
    fin = financials_from(payload)
    net = fin.net_income
    budget = number(payload, "proposedMarketingBudget")
    budget_share = ratio(budget, fin.revenue)
    localized = flag(payload, "isLocalizedPromotion")
    foot_traffic = flag(payload, "historicFootTrafficIncrease")
    lift = _campaign_lift(payload)

    breakdown = base_breakdown(fin)
    breakdown.update(
        {
            "proposed_marketing_budget": budget,
            "budget_to_revenue_pct": round(budget_share * 100, 2),
        }
    )
    if lift is not None:
        breakdown["average_campaign_lift_pct"] = round(lift, 2)

    risks: list[str] = []
    if net <= 0:
        risks.append(f"Your business is not making a profit (net income {amount(net)}).")
    if budget > fin.savings:
        risks.append(f"The campaign budget ({amount(budget)}) is more than your savings ({amount(fin.savings)}).")
    if risks:
        return RuleOutcome(
            recommendation="REJECT",
            reasoning="Spending on marketing now would put the business under strain. " + " ".join(risks),
            steps=[
                "Fix the basics first: cut non-essential costs until the business is profitable.",
                "Use free channels such as word of mouth, social media posts and customer referrals.",
                "Set aside a small marketing fund from future profits.",
            ],
            breakdown=breakdown,
        )

    proven = (localized and foot_traffic) or (lift is not None and lift >= CAMPAIGN_LIFT_MIN)
    affordable = budget_share <= BUDGET_SHARE_MAX
    if affordable and proven:
        evidence = (
            "past local promotions brought in more customers"
            if localized and foot_traffic
            else f"previous campaigns lifted sales by {lift:.1f}% on average"
        )
        return RuleOutcome(
            recommendation="APPROVE",
            reasoning=(
                f"The budget is {budget_share * 100:.1f}% of monthly revenue, within the 10% guideline, "
                f"and {evidence}."
            ),
            steps=[
                "Set a clear goal for the campaign, such as a target number of new customers.",
                "Track sales before, during and after the campaign to measure its effect.",
                "Start with the channel that worked best for you before.",
            ],
            breakdown=breakdown,
        )

    concerns: list[str] = []
    steps: list[str] = []
    if not affordable:
        concerns.append(f"The budget is {budget_share * 100:.1f}% of monthly revenue, above the 10% guideline.")
        steps.append(f"Scale the campaign down to about {amount(fin.revenue * BUDGET_SHARE_MAX)} or less.")
    if not proven:
        concerns.append("There is no clear evidence yet that promotions like this grow your sales.")
        steps.append("Run a small, low-cost test promotion and measure the change in sales.")
    steps.append("Revisit the full campaign once you have results to compare.")
    return RuleOutcome(
        recommendation="WAIT",
        reasoning="Hold off on the full campaign for now. " + " ".join(concerns),
        steps=steps,
        breakdown=breakdown,
    )
