from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from kudiguard.services.auth import current_user
from kudiguard.services.common import success_body
from kudiguard.services.orchestrator import DecisionOrchestrator, get_orchestrator

router = APIRouter(prefix="/feedback", tags=["feedback"])


class FeedbackPayload(BaseModel):
    recommendation_id: str = Field(min_length=1)
    accepted: bool
    comment: str | None = Field(default=None, max_length=1000)


@router.post("")
def submit_feedback(
    payload: FeedbackPayload,
    user=Depends(current_user),
    orchestrator: DecisionOrchestrator = Depends(get_orchestrator),
):
    record = orchestrator.record_feedback(
        user.get("sub"),
        payload.recommendation_id,
        payload.accepted,
        payload.comment,
    )
    return success_body({"feedback": record})
