from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from kudiguard.engine.contracts import DecisionEngineRequestV1, IntentName
from kudiguard.engine.dialogue import coerce_payload
from kudiguard.engine.intents import resolve_intent
from kudiguard.engine.slots import decision_type_for, missing_slots
from kudiguard.errors import InputValidationError
from kudiguard.services.auth import current_user
from kudiguard.services.common import redact_sensitive, success_body
from kudiguard.services.orchestrator import DecisionOrchestrator, get_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/decision-engine", tags=["decision-engine"])


class ValidateInputsPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    intent: IntentName | None = None
    question: str = ""
    payload: Dict[str, Any] = Field(default_factory=dict)


@router.post("")
def run_decision_engine(
    payload: DecisionEngineRequestV1,
    user=Depends(current_user),
    orchestrator: DecisionOrchestrator = Depends(get_orchestrator),
):
    logger.debug("decision_engine_request body=%s", redact_sensitive(payload.model_dump()))
    outcome = orchestrator.decide(user.get("sub"), payload)
    return success_body(outcome.response_data())


@router.post("/validate-inputs")
def validate_inputs(payload: ValidateInputsPayload, user=Depends(current_user)):
    intent = payload.intent if payload.intent and payload.intent != "unknown" else resolve_intent(payload.question)
    if intent == "unknown":
        raise InputValidationError("Provide an intent or a question that names a business decision.")
    coerced = coerce_payload(intent, payload.payload)
    missing = [slot.field_name for slot in missing_slots(intent, coerced.values)]
    return success_body(
        {
            "intent": intent,
            "decision_type": decision_type_for(intent),
            "valid": not coerced.failures and not missing,
            "normalized_inputs": coerced.values,
            "missing_fields": missing,
            "errors": coerced.failures,
            "ignored_fields": coerced.ignored,
        }
    )
