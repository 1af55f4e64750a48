from __future__ import annotations

from typing import Any, Mapping

from .common import RuleOutcome, amount, base_breakdown, financials_from, number, ratio

AFFORDABILITY_MULTIPLE = 3.0

APPROVE_STEPS = [
    "Start by hiring on a contract or part-time basis to test the impact.",
    "Create a clear job description with defined responsibilities.",
    "Ensure you have a process for payroll and tax compliance.",
]
WAIT_STEPS = [
    "Focus on increasing revenue or decreasing non-essential costs to improve net income.",
    "Build your emergency savings to cover at least 1-3 months of expenses.",
    "Re-evaluate your hiring needs in 1-2 months.",
]
REJECT_STEPS = [
    "Conduct a full review of your business expenses to find savings.",
    "Explore strategies to boost your monthly revenue.",
    "Focus on stabilizing the business before considering new fixed costs.",
]


def evaluate_hiring(payload: Mapping[str, Any]) -> RuleOutcome:
    fin = financials_from(payload)
    salary = number(payload, "staffPayroll")
    net = fin.net_income
    required = AFFORDABILITY_MULTIPLE * salary

    breakdown = base_breakdown(fin)
    breakdown.update(
        {
            "staff_payroll": salary,
            "required_net_income": required,
            "salary_coverage_multiple": round(ratio(net, salary), 2),
        }
    )

    if net <= 0:
        return RuleOutcome(
            recommendation="REJECT",
            reasoning=(
                f"Your business is not currently profitable: net income after owner withdrawals is "
                f"{amount(net)}. Adding a salary of {amount(salary)} would deepen the monthly shortfall."
            ),
            steps=list(REJECT_STEPS),
            breakdown=breakdown,
        )

    shortfalls: list[str] = []
    if net < required:
        shortfalls.append(
            f"net income of {amount(net)} is below 3x the proposed salary ({amount(required)})"
        )
    if fin.savings < salary:
        shortfalls.append(
            f"savings of {amount(fin.savings)} would not cover one month of the new salary ({amount(salary)})"
        )

    if not shortfalls:
        return RuleOutcome(
            recommendation="APPROVE",
            reasoning=(
                f"Net income of {amount(net)} covers at least 3x the proposed salary of {amount(salary)}, "
                f"and savings of {amount(fin.savings)} can absorb a month of payroll."
            ),
            steps=list(APPROVE_STEPS),
            breakdown=breakdown,
        )

    return RuleOutcome(
        recommendation="WAIT",
        reasoning="Your business is profitable, but " + " and ".join(shortfalls) + ".",
        steps=list(WAIT_STEPS),
        breakdown=breakdown,
    )
