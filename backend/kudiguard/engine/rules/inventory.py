from __future__ import annotations

from typing import Any, Mapping

from .common import RuleOutcome, amount, base_breakdown, financials_from, flag, number, ratio

SUPPLIER_DEBT_CEILING = 0.40
FAST_TURNOVER_DAYS = 30
ORDER_COVER_MULTIPLE = 1.2
FMCG_CREDIT_TERMS_MAX = 30
FMCG_RECEIVABLES_MAX = 25
BULK_DISCOUNT_MIN = 15
BULK_STORAGE_MAX = 5


def evaluate_inventory(payload: Mapping[str, Any]) -> RuleOutcome:
    fin = financials_from(payload)
    net = fin.net_income
    cost = number(payload, "estimatedInventoryCost")
    turnover = number(payload, "inventoryTurnoverDays")
    supplier_debts = number(payload, "outstandingSupplierDebts")
    debt_ratio = ratio(supplier_debts, fin.revenue)

    breakdown = base_breakdown(fin)
    breakdown.update(
        {
            "estimated_inventory_cost": cost,
            "inventory_turnover_days": turnover,
            "outstanding_supplier_debts": supplier_debts,
            "supplier_debt_to_revenue_pct": round(debt_ratio * 100, 2),
            "required_cash_cover": ORDER_COVER_MULTIPLE * cost,
        }
    )

    risks: list[str] = []
    if debt_ratio > SUPPLIER_DEBT_CEILING:
        risks.append(
            f"Your outstanding supplier debts ({amount(supplier_debts)}) are more than 40% of your "
            f"monthly revenue ({amount(fin.revenue)})."
        )
    if net < 0:
        risks.append(f"Your business currently has a negative net income ({amount(net)}).")
    if risks:
        return RuleOutcome(
            recommendation="REJECT",
            reasoning="Purchasing new inventory now would be too risky for your business. " + " ".join(risks),
            steps=[
                "Prioritize paying down outstanding supplier debts.",
                "Focus on increasing revenue and reducing expenses to achieve positive net income.",
                "Review your current inventory to identify slow-moving items and clear them out.",
            ],
            breakdown=breakdown,
        )

    strengths: list[str] = []
    concerns: list[str] = []
    steps: list[str] = []

    covered = fin.savings >= ORDER_COVER_MULTIPLE * cost
    if turnover < FAST_TURNOVER_DAYS and covered:
        strengths.append(
            f"Your stock sells through in {turnover:.0f} days and your savings ({amount(fin.savings)}) "
            f"cover 120% of the order value ({amount(ORDER_COVER_MULTIPLE * cost)})."
        )
    else:
        if turnover >= FAST_TURNOVER_DAYS:
            concerns.append(f"Your inventory turnover is slow ({turnover:.0f} days).")
        if not covered:
            concerns.append(
                f"Your savings ({amount(fin.savings)}) do not cover 120% of the order value "
                f"({amount(ORDER_COVER_MULTIPLE * cost)})."
            )

    if flag(payload, "isFmcgVendor") and "supplierCreditTermsDays" in payload and "averageReceivablesTurnoverDays" in payload:
        terms = number(payload, "supplierCreditTermsDays")
        receivables = number(payload, "averageReceivablesTurnoverDays")
        breakdown["supplier_credit_terms_days"] = terms
        breakdown["receivables_turnover_days"] = receivables
        if terms <= FMCG_CREDIT_TERMS_MAX and receivables < FMCG_RECEIVABLES_MAX:
            strengths.append(
                f"As an FMCG vendor, your supplier credit terms ({terms:.0f} days) are favorable and "
                f"customers pay within {receivables:.0f} days."
            )
        else:
            if terms > FMCG_CREDIT_TERMS_MAX:
                concerns.append(f"As an FMCG vendor, your supplier credit terms ({terms:.0f} days) are longer than ideal.")
            if receivables >= FMCG_RECEIVABLES_MAX:
                concerns.append(
                    f"Your customers take {receivables:.0f} days to pay, slower than the recommended 25 days."
                )

    notes: list[str] = []
    if "supplierDiscountPercentage" in payload and "storageCostPercentageOfOrder" in payload:
        discount = number(payload, "supplierDiscountPercentage")
        storage = number(payload, "storageCostPercentageOfOrder")
        if discount >= BULK_DISCOUNT_MIN and storage <= BULK_STORAGE_MAX:
            notes.append(
                f"A bulk purchase is worth considering: the supplier discount is {discount:.0f}% and "
                f"storage costs only {storage:.0f}% of the order."
            )
            steps.append("Explore the possibility of a bulk purchase to maximize savings from the supplier discount.")
        elif discount < BULK_DISCOUNT_MIN:
            notes.append(f"The supplier discount ({discount:.0f}%) is too small to justify buying in bulk.")
        else:
            notes.append(f"Storage costs ({storage:.0f}% of the order) are too high to justify buying in bulk.")

    if strengths and not concerns:
        return RuleOutcome(
            recommendation="APPROVE",
            reasoning="Your business is in a strong position to restock. " + " ".join(strengths + notes),
            steps=[
                "Confirm current market demand to avoid overstocking.",
                "Negotiate best possible terms with suppliers.",
                *steps,
            ],
            breakdown=breakdown,
        )
    return RuleOutcome(
        recommendation="WAIT",
        reasoning="It's advisable to wait before restocking. " + " ".join(concerns + strengths + notes),
        steps=[
            "Review your sales data to understand demand fluctuations.",
            "Improve cash flow by collecting receivables faster or reducing non-essential expenses.",
            *steps,
        ],
        breakdown=breakdown,
    )
