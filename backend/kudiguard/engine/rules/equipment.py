from __future__ import annotations

from typing import Any, Mapping

from .common import RuleOutcome, amount, base_breakdown, financials_from, flag, number, ratio

LARGE_PURCHASE_COST = 1_000_000
SMALL_PURCHASE_COST = 200_000
HEAVY_DEBT_SHARE = 0.30
MODERATE_DEBT_SHARE = 0.15
PAYBACK_MONTHS_MAX = 12
PRODUCTIVITY_GAIN_MIN = 20
HEALTHY_MARGIN_PCT = 15
BUFFER_MONTHS_MIN = 2
ENERGY_SHARE_MIN = 15
FINANCING_RATE_MAX = 25
FINANCING_TERM_MAX = 36


def evaluate_equipment(payload: Mapping[str, Any]) -> RuleOutcome:
    fin = financials_from(payload)
    net = fin.net_income
    cost = number(payload, "estimatedEquipmentCost")
    critical = flag(payload, "isCriticalReplacement")
    power_solution = flag(payload, "isPowerSolution")
    diversified = flag(payload, "hasDiversifiedRevenueStreams", default=cost <= LARGE_PURCHASE_COST)
    repayments = number(payload, "existingDebtRepaymentsMonthly")
    financing = flag(payload, "financingRequired")
    rate = number(payload, "financingInterestRateAnnual")
    term = number(payload, "financingTermMonths")

    monthly_gain = number(payload, "expectedRevenueIncreaseMonthly") + number(payload, "expectedExpenseDecreaseMonthly")
    # No gain never pays back; 0 is the sentinel and the payback checks require a positive gain.
    payback_months = ratio(cost, monthly_gain)
    productivity_gain_pct = ratio(monthly_gain, net) * 100 if net > 0 else 0.0
    energy_share_pct = ratio(number(payload, "currentEnergyCostMonthly"), fin.expenses) * 100
    debt_share = ratio(repayments, fin.revenue)
    margin = fin.profit_margin_pct
    buffer_months = fin.buffer_months

    breakdown = base_breakdown(fin)
    breakdown.update(
        {
            "estimated_equipment_cost": cost,
            "monthly_profit_increase": monthly_gain,
            "payback_months": round(payback_months, 2),
            "productivity_gain_pct": round(productivity_gain_pct, 2),
            "energy_cost_share_pct": round(energy_share_pct, 2),
            "debt_repayment_share_pct": round(debt_share * 100, 2),
        }
    )

    reasons: list[str] = []
    steps: list[str] = []

    if cost > LARGE_PURCHASE_COST and not diversified and not critical:
        reasons.append(
            f"Investing over {amount(LARGE_PURCHASE_COST)} without diversified revenue streams concentrates "
            "your financial exposure and could jeopardize stability if one stream falters."
        )
        steps.append(
            "Develop at least one additional stable revenue stream before a large, non-critical investment."
        )
    if net < 0 and not critical:
        reasons.append(
            f"Your business is currently unprofitable (net income {amount(net)}). New costs for non-critical "
            "equipment would worsen the situation."
        )
        steps.append(
            "Prioritize increasing revenue and cutting non-essential expenses to reach consistent profitability."
        )
    if debt_share > HEAVY_DEBT_SHARE and not critical:
        reasons.append(
            f"Your existing debt repayments ({amount(repayments)} monthly) exceed 30% of monthly revenue, "
            "so more commitments for non-critical equipment risk severe cash flow problems."
        )
        steps.append("Reduce your current debt load to free up cash flow for future investments.")
    if reasons:
        return RuleOutcome(
            recommendation="REJECT",
            reasoning="Based on critical financial indicators, this investment is currently too risky. " + " ".join(reasons),
            steps=steps,
            breakdown=breakdown,
        )

    if critical and (fin.savings >= cost or fin.savings + net * 2 >= cost):
        reasons.append(
            "This equipment is a critical replacement and your savings, with up to two months of net income, "
            "can cover it."
        )
        steps.append(
            "Proceed with the purchase and plan installation for minimal downtime. If cash is tight, "
            "look for short-term, low-interest financing."
        )
    if monthly_gain > 0 and (payback_months <= PAYBACK_MONTHS_MAX or productivity_gain_pct >= PRODUCTIVITY_GAIN_MIN):
        reasons.append(
            f"The equipment pays for itself in {payback_months:.1f} months and lifts monthly profit by "
            f"{productivity_gain_pct:.1f}%."
        )
        steps.extend(
            [
                "Confirm current market demand to ensure the expected revenue increase is realistic.",
                "Negotiate best possible terms with suppliers.",
            ]
        )
    if cost <= SMALL_PURCHASE_COST and margin >= HEALTHY_MARGIN_PCT and buffer_months >= BUFFER_MONTHS_MIN:
        reasons.append(
            f"This small investment ({amount(cost)}) fits comfortably within a {margin:.1f}% profit margin "
            f"and a {buffer_months:.1f}-month savings buffer."
        )
        steps.extend(
            [
                "Ensure the equipment aligns with your long-term business goals.",
                "Consider potential maintenance costs.",
            ]
        )
    if power_solution and energy_share_pct > ENERGY_SHARE_MIN:
        reasons.append(
            f"Energy takes {energy_share_pct:.1f}% of your monthly expenses, so a power solution should bring "
            "substantial operational savings."
        )
        steps.extend(
            [
                "Calculate the exact return from energy savings over the equipment's lifespan.",
                "Ensure proper installation and regular maintenance for longevity.",
            ]
        )
    if reasons:
        return RuleOutcome(
            recommendation="APPROVE",
            reasoning="This investment is supported by your numbers. " + " ".join(reasons),
            steps=steps,
            breakdown=breakdown,
        )

    if monthly_gain <= 0:
        reasons.append(
            "The expected revenue increase plus expense decrease is not positive, so the equipment may never pay for itself."
        )
        steps.append("Re-evaluate whether this equipment can truly increase revenue or decrease expenses.")
    elif payback_months > PAYBACK_MONTHS_MAX:
        reasons.append(f"The estimated payback period of {payback_months:.1f} months is longer than ideal.")
        steps.append("Look for ways to speed up the return, such as higher sales targets or cheaper equipment.")
    if margin < HEALTHY_MARGIN_PCT:
        reasons.append(f"Your profit margin ({margin:.1f}%) is below the 15% recommended for new investments.")
        steps.append("Focus on improving overall profitability before committing to new equipment.")
    if buffer_months < BUFFER_MONTHS_MIN:
        reasons.append(f"Your savings buffer ({buffer_months:.1f} months) is under the recommended 2 months of expenses.")
        steps.append("Build up your emergency savings to at least 2 months of operational expenses.")
    if MODERATE_DEBT_SHARE < debt_share <= HEAVY_DEBT_SHARE:
        reasons.append(f"Your existing debt repayments ({amount(repayments)} monthly) are already moderate.")
        steps.append("Consider reducing existing debts or finding financing with more favorable terms.")
    if financing and rate > FINANCING_RATE_MAX:
        reasons.append(f"The financing interest rate ({rate:.1f}% a year) significantly raises the total cost.")
        steps.append("Seek financing with a lower interest rate or delay the purchase until better terms are available.")
    if financing and term > FINANCING_TERM_MAX:
        reasons.append(f"A {term:.0f}-month financing term would tie up your cash flow for a long time.")
        steps.append("Explore a shorter loan term or a smaller, more affordable purchase.")
    if not reasons:
        reasons.append("Your finances are not at risk, but no strong case for this purchase stands out yet.")
        steps.append("Review your business plan and projections, and consider a phased approach to the investment.")

    return RuleOutcome(
        recommendation="WAIT",
        reasoning="It's advisable to hold off on this purchase for now. " + " ".join(reasons),
        steps=steps,
        breakdown=breakdown,
    )
