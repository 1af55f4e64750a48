from __future__ import annotations

from typing import Any, Mapping

from .contracts import HealthScoreV1, ScoreBand

PROFITABILITY_WEIGHT = 40.0
SAVINGS_WEIGHT = 35.0
DEBT_WEIGHT = 25.0

TARGET_PROFIT_MARGIN = 0.25
TARGET_BUFFER_MONTHS = 3.0
DEBT_STOCK_REVENUE_MONTHS = 6.0
DEBT_SERVICE_CEILING = 0.40

STABLE_MIN = 80
CAUTION_MIN = 40

INTERPRETATIONS: dict[str, str] = {
    "stable": "Excellent financial health! Your business is well-managed and resilient.",
    "caution": "Your financial health is generally good, but there's always room for improvement.",
    "risky": (
        "Your business financial health requires attention. "
        "Focus on improving cash flow and reducing unnecessary expenses."
    ),
}

_DEBT_FIELDS = ("outstandingDebts", "totalBusinessLiabilities", "outstandingSupplierDebts")
_REPAYMENT_FIELDS = ("totalMonthlyDebtRepayments", "existingDebtRepaymentsMonthly")


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _number(financials: Mapping[str, Any], name: str) -> float:
    value = financials.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


def _first_number(financials: Mapping[str, Any], names: tuple[str, ...]) -> float:
    for name in names:
        if name in financials:
            return _number(financials, name)
    return 0.0


def band_for(score: int) -> ScoreBand:
    if score >= STABLE_MIN:
        return "stable"
    if score >= CAUTION_MIN:
        return "caution"
    return "risky"


def compute_health_score(financials: Mapping[str, Any]) -> HealthScoreV1:
    """Weighted 0-100 score over profitability, savings cover and debt exposure.

    Zero denominators resolve to fixed sentinels: no revenue scores zero
    profitability, no expenses gives full savings cover when any savings
    exist, and debt with no revenue counts as full exposure.
    """
    revenue = _number(financials, "monthlyRevenue")
    expenses = _number(financials, "monthlyExpenses")
    savings = _number(financials, "currentSavings")
    withdrawals = _number(financials, "ownerWithdrawals")
    debt = _first_number(financials, _DEBT_FIELDS)
    repayments = _first_number(financials, _REPAYMENT_FIELDS)

    net_income = revenue - expenses - withdrawals
    margin = net_income / revenue if revenue > 0 else 0.0
    profitability = _clamp(margin / TARGET_PROFIT_MARGIN)

    if expenses > 0:
        buffer_months = savings / expenses
        savings_cover = _clamp(buffer_months / TARGET_BUFFER_MONTHS)
    else:
        buffer_months = 0.0
        savings_cover = 1.0 if savings > 0 else 0.0

    if revenue > 0:
        exposure = max(
            _clamp(debt / (revenue * DEBT_STOCK_REVENUE_MONTHS)),
            _clamp((repayments / revenue) / DEBT_SERVICE_CEILING),
        )
    else:
        exposure = 1.0 if debt > 0 or repayments > 0 else 0.0
    debt_health = 1.0 - exposure

    raw = (
        PROFITABILITY_WEIGHT * profitability
        + SAVINGS_WEIGHT * savings_cover
        + DEBT_WEIGHT * debt_health
    )
    score = int(max(0, min(100, round(raw))))
    band = band_for(score)
    return HealthScoreV1(
        score=score,
        band=band,
        interpretation=INTERPRETATIONS[band],
        breakdown={
            "profit_margin_pct": round(margin * 100, 2),
            "savings_buffer_months": round(buffer_months, 2),
            "debt_exposure_ratio": round(exposure, 4),
            "profitability_points": round(PROFITABILITY_WEIGHT * profitability, 2),
            "savings_points": round(SAVINGS_WEIGHT * savings_cover, 2),
            "debt_points": round(DEBT_WEIGHT * debt_health, 2),
        },
    )
