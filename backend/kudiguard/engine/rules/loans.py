from __future__ import annotations

from typing import Any, Mapping

from .common import RuleOutcome, amount, base_breakdown, financials_from, flag, number, ratio

DSR_REJECT = 0.30
DSR_APPROVE = 0.15
DEBT_TO_ASSET_REJECT = 0.60
DEBT_TO_ASSET_APPROVE = 0.40
HIGH_APR = 30.0


def evaluate_loan(payload: Mapping[str, Any]) -> RuleOutcome:
    fin = financials_from(payload)
    net = fin.net_income
    liabilities = number(payload, "totalBusinessLiabilities")
    assets = number(payload, "totalBusinessAssets")
    repayments = number(payload, "totalMonthlyDebtRepayments")
    productive = flag(payload, "loanPurposeIsRevenueGenerating")
    apr = number(payload, "debtApr")
    debt_to_asset = ratio(liabilities, assets)
    dsr = ratio(repayments, fin.revenue)

    breakdown = base_breakdown(fin)
    breakdown.update(
        {
            "total_liabilities": liabilities,
            "total_assets": assets,
            "monthly_debt_repayments": repayments,
            "debt_to_asset_ratio": round(debt_to_asset, 4),
            "debt_service_ratio": round(dsr, 4),
        }
    )

    warnings: list[str] = []
    warning_steps: list[str] = []
    if apr > HIGH_APR:
        warnings.append(f"An APR of {apr:.1f}% is expensive borrowing.")
        warning_steps.append("Compare offers from other lenders or cooperatives for a lower rate.")

    risks: list[str] = []
    if net <= 0:
        risks.append(f"The business has no surplus to repay from (net income {amount(net)}).")
    if dsr > DSR_REJECT:
        risks.append(f"Debt repayments would take {dsr * 100:.1f}% of monthly revenue, above the 30% limit.")
    if debt_to_asset > DEBT_TO_ASSET_REJECT:
        risks.append(f"Debts would be {debt_to_asset * 100:.1f}% of business assets, above the 60% limit.")
    if risks:
        return RuleOutcome(
            recommendation="REJECT",
            reasoning="Taking on this debt is too risky right now. " + " ".join(risks + warnings),
            steps=[
                "Pay down existing debts, starting with the most expensive one.",
                "Increase monthly profit before applying for new credit.",
                "Talk to your lender about restructuring repayments if they are straining cash flow.",
                *warning_steps,
            ],
            breakdown=breakdown,
        )

    if dsr <= DSR_APPROVE and debt_to_asset <= DEBT_TO_ASSET_APPROVE and productive:
        return RuleOutcome(
            recommendation="APPROVE",
            reasoning=(
                f"Repayments would take {dsr * 100:.1f}% of revenue and debts are {debt_to_asset * 100:.1f}% of "
                "assets, both comfortable, and the loan funds something that earns revenue. " + " ".join(warnings)
            ).strip(),
            steps=[
                "Borrow only the amount the revenue-generating purpose needs.",
                "Match the repayment schedule to when the new revenue is expected.",
                *warning_steps,
            ],
            breakdown=breakdown,
        )

    concerns: list[str] = []
    steps: list[str] = []
    if dsr > DSR_APPROVE:
        concerns.append(f"Repayments would take {dsr * 100:.1f}% of revenue, above the comfortable 15%.")
        steps.append("Negotiate a longer term or smaller amount to bring repayments under 15% of revenue.")
    if debt_to_asset > DEBT_TO_ASSET_APPROVE:
        concerns.append(f"Debts would be {debt_to_asset * 100:.1f}% of assets, above the comfortable 40%.")
        steps.append("Reduce existing liabilities before adding new ones.")
    if not productive:
        concerns.append("The loan is not for something that will earn revenue to repay it.")
        steps.append("Fund non-revenue costs from profits or savings instead of borrowing.")
    return RuleOutcome(
        recommendation="WAIT",
        reasoning="Borrowing is possible but not yet advisable. " + " ".join(concerns + warnings),
        steps=[*steps, *warning_steps],
        breakdown=breakdown,
    )
