from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from kudiguard.services.auth import current_user
from kudiguard.services.common import success_body
from kudiguard.services.orchestrator import DecisionOrchestrator, get_orchestrator

router = APIRouter(prefix="/chat", tags=["chat"])


class ChatTurnPayload(BaseModel):
    message: str = Field(min_length=1, max_length=2000)
    session_id: str | None = Field(default=None, max_length=128)


class ChatSessionPayload(BaseModel):
    session_id: str | None = Field(default=None, max_length=128)


@router.post("/turn")
def chat_turn(
    payload: ChatTurnPayload,
    user=Depends(current_user),
    orchestrator: DecisionOrchestrator = Depends(get_orchestrator),
):
    reply = orchestrator.handle_turn(user.get("sub"), payload.session_id, payload.message)
    return success_body(reply.model_dump(by_alias=True, exclude_none=True))


@router.post("/cancel")
def chat_cancel(
    payload: ChatSessionPayload,
    user=Depends(current_user),
    orchestrator: DecisionOrchestrator = Depends(get_orchestrator),
):
    reply = orchestrator.cancel(user.get("sub"), payload.session_id)
    return success_body(reply.model_dump(by_alias=True, exclude_none=True))


@router.post("/retry")
def chat_retry(
    payload: ChatSessionPayload,
    user=Depends(current_user),
    orchestrator: DecisionOrchestrator = Depends(get_orchestrator),
):
    reply = orchestrator.retry(user.get("sub"), payload.session_id)
    return success_body(reply.model_dump(by_alias=True, exclude_none=True))


@router.get("/state")
def chat_state(
    session_id: str | None = Query(default=None, max_length=128),
    user=Depends(current_user),
    orchestrator: DecisionOrchestrator = Depends(get_orchestrator),
):
    state = orchestrator.dialogue_state(user.get("sub"), session_id)
    return success_body(state.model_dump(mode="json"))
