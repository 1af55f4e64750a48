from __future__ import annotations

from typing import Any, Mapping

from .common import RuleOutcome, amount, base_breakdown, financials_from, flag, number

STABLE_TARGET_MONTHS = 3.0
VOLATILE_TARGET_MONTHS = 6.0
NEGATIVE_STREAK_LIMIT = 2
HIGH_DEBT_APR = 20.0


def evaluate_savings(payload: Mapping[str, Any]) -> RuleOutcome:
    fin = financials_from(payload)
    net = fin.net_income
    volatile = flag(payload, "isVolatileIndustry")
    negative_months = number(payload, "consecutiveNegativeCashFlowMonths")
    target_months = VOLATILE_TARGET_MONTHS if volatile else STABLE_TARGET_MONTHS
    target_amount = target_months * fin.expenses
    gap = max(0.0, target_amount - fin.savings)
    apr = number(payload, "debtApr")

    breakdown = base_breakdown(fin)
    breakdown.update(
        {
            "target_buffer_months": target_months,
            "target_savings": target_amount,
            "savings_gap": gap,
            "consecutive_negative_months": negative_months,
        }
    )

    if net <= 0 and negative_months >= NEGATIVE_STREAK_LIMIT:
        return RuleOutcome(
            recommendation="REJECT",
            reasoning=(
                f"Expenses have exceeded revenue for {negative_months:.0f} months in a row and net income is "
                f"{amount(net)}, so there is no surplus to save from yet."
            ),
            steps=[
                "List every expense and cut or delay anything not essential to daily operations.",
                "Reduce owner withdrawals until monthly cash flow turns positive.",
                "Protect the savings you have and only use them for critical costs.",
            ],
            breakdown=breakdown,
        )

    if fin.buffer_months >= target_months and negative_months == 0:
        steps = [
            "Keep the reserve in a separate account you do not use for daily spending.",
            "Review the target buffer whenever your monthly expenses change.",
        ]
        if "outstandingDebts" in payload and apr > HIGH_DEBT_APR:
            steps.insert(0, f"Use surplus cash to pay down debt charging {apr:.1f}% APR.")
        return RuleOutcome(
            recommendation="APPROVE",
            reasoning=(
                f"Your savings cover {fin.buffer_months:.1f} months of expenses, meeting the "
                f"{target_months:.0f}-month buffer recommended for your business."
            ),
            steps=steps,
            breakdown=breakdown,
        )

    reasons: list[str] = []
    if fin.buffer_months < target_months:
        reasons.append(
            f"Your savings cover {fin.buffer_months:.1f} months of expenses, short of the "
            f"{target_months:.0f}-month target by {amount(gap)}."
        )
    if negative_months > 0:
        reasons.append(f"Cash flow has been negative for {negative_months:.0f} recent month(s).")
    steps = []
    if net > 0:
        monthly = min(net, gap / 6) if gap > 0 else net * 0.1
        steps.append(f"Set aside about {amount(monthly)} every month until you reach the target.")
    else:
        steps.append("Bring monthly revenue above expenses so there is a surplus to save.")
    steps.append("Automate transfers to a dedicated savings account right after sales come in.")
    if apr > HIGH_DEBT_APR:
        steps.append(f"Pay down debt charging {apr:.1f}% APR before building savings beyond one month of expenses.")
    return RuleOutcome(
        recommendation="WAIT",
        reasoning="Your business needs a stronger cash reserve. " + " ".join(reasons),
        steps=steps,
        breakdown=breakdown,
    )
