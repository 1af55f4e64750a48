from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from kudiguard.services.auth import current_user
from kudiguard.services.common import success_body
from kudiguard.services.orchestrator import DecisionOrchestrator, get_orchestrator

router = APIRouter(tags=["financial-entries"])


class FinancialEntryPayload(BaseModel):
    monthly_revenue: float = Field(ge=0)
    monthly_expenses: float = Field(ge=0)
    current_savings: float = Field(default=0, ge=0)
    owner_withdrawals: float = Field(default=0, ge=0)
    outstanding_debts: float = Field(default=0, ge=0)


@router.post("/financial-entries")
def add_financial_entry(
    payload: FinancialEntryPayload,
    user=Depends(current_user),
    orchestrator: DecisionOrchestrator = Depends(get_orchestrator),
):
    record = orchestrator.record_financial_entry(user.get("sub"), payload.model_dump())
    return success_body({"financial_entry": record})


@router.get("/financial-entries/latest")
def latest_financial_entry(
    user=Depends(current_user),
    orchestrator: DecisionOrchestrator = Depends(get_orchestrator),
):
    return success_body({"financial_entry": orchestrator.latest_financial_entry(user.get("sub"))})


@router.get("/score")
def financial_health_score(
    user=Depends(current_user),
    orchestrator: DecisionOrchestrator = Depends(get_orchestrator),
):
    health = orchestrator.health_score(user.get("sub"))
    return success_body(
        {
            "financial_health_score": health.score,
            "band": health.band,
            "score_interpretation": health.interpretation,
            "breakdown": health.breakdown,
        }
    )
