from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Literal

from .contracts import (
    ClarificationV1,
    DialogueStateV1,
    IntentName,
    ParseFailure,
    Payload,
    ResolvedFlowV1,
    SlotDefinitionV1,
)
from .intents import clarification_for, resolve_intent
from .parser import parse_boolean, parse_value
from .slots import DERIVED_FIELDS, missing_slots, slot_for

logger = logging.getLogger(__name__)

StepKind = Literal["need_slot", "reprompt", "clarify", "evaluate", "cancelled", "nothing_to_retry"]

CANCELLED_MESSAGE = "Okay, I've cancelled that. What would you like to ask next?"
NOTHING_TO_RETRY_MESSAGE = "There is no previous question to try again yet. Ask me a business question to get started."


@dataclass(frozen=True)
class DialogueStep:
    state: DialogueStateV1
    kind: StepKind
    slot: SlotDefinitionV1 | None = None
    message: str = ""
    clarification: ClarificationV1 | None = None


@dataclass
class CoercedPayload:
    values: Payload = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)
    ignored: list[str] = field(default_factory=list)


def new_state(session_key: str) -> DialogueStateV1:
    return DialogueStateV1(session_key=session_key)


def _cleared(state: DialogueStateV1, **updates: Any) -> DialogueStateV1:
    values: Dict[str, Any] = {
        "phase": "awaiting_question",
        "intent": None,
        "question": None,
        "payload": {},
        "pending_field": None,
        "decision_id": None,
    }
    values.update(updates)
    return state.model_copy(update=values)


def coerce_payload(intent: IntentName, raw: Payload | None) -> CoercedPayload:
    """Parse raw client values against the intent's slots."""
    result = CoercedPayload()
    for name, raw_value in (raw or {}).items():
        if raw_value is None:
            continue
        if name in DERIVED_FIELDS:
            parsed = parse_boolean(raw_value)
            if isinstance(parsed, ParseFailure):
                result.ignored.append(name)
            else:
                result.values[name] = parsed
            continue
        slot = slot_for(intent, name)
        if slot is None:
            result.ignored.append(name)
            continue
        parsed = parse_value(raw_value, slot)
        if isinstance(parsed, ParseFailure):
            result.failures[name] = parsed.reason
        else:
            result.values[name] = parsed
    if result.ignored:
        logger.info("payload_fields_ignored intent=%s fields=%s", intent, ",".join(sorted(result.ignored)))
    return result


def advance(state: DialogueStateV1) -> DialogueStep:
    if state.intent is None or state.question is None:
        raise ValueError("advance requires an active flow")
    missing = missing_slots(state.intent, state.payload)
    if missing:
        slot = missing[0]
        next_state = state.model_copy(update={"phase": "collecting_slot", "pending_field": slot})
        return DialogueStep(state=next_state, kind="need_slot", slot=slot, message=slot.prompt)

    resolved = ResolvedFlowV1(intent=state.intent, question=state.question, payload=dict(state.payload))
    next_state = state.model_copy(
        update={"phase": "evaluating", "pending_field": None, "last_resolved": resolved}
    )
    return DialogueStep(state=next_state, kind="evaluate")


def start(
    state: DialogueStateV1,
    question: str,
    *,
    intent: IntentName | None = None,
    payload: CoercedPayload | None = None,
    seed: Payload | None = None,
) -> DialogueStep:
    resolved_intent = intent or resolve_intent(question)
    if resolved_intent == "unknown":
        clarification = clarification_for(question)
        return DialogueStep(
            state=_cleared(state),
            kind="clarify",
            message=clarification.message,
            clarification=clarification,
        )

    incoming = payload or CoercedPayload()
    continuing = (
        state.phase == "collecting_slot"
        and state.intent == resolved_intent
        and state.question == question
    )
    merged: Payload = dict(state.payload) if continuing else {}
    merged.update(incoming.values)
    for name, value in (seed or {}).items():
        merged.setdefault(name, value)

    flow = state.model_copy(
        update={
            "phase": "collecting_slot",
            "intent": resolved_intent,
            "question": question,
            "payload": merged,
            "pending_field": None,
            "decision_id": state.decision_id if continuing else None,
        }
    )
    if incoming.failures:
        for slot in missing_slots(resolved_intent, merged):
            reason = incoming.failures.get(slot.field_name)
            if reason is None:
                continue
            next_state = flow.model_copy(update={"pending_field": slot})
            return DialogueStep(state=next_state, kind="reprompt", slot=slot, message=reason)
    return advance(flow)


def submit(state: DialogueStateV1, raw: Any) -> DialogueStep:
    slot = state.pending_field
    if state.phase != "collecting_slot" or slot is None:
        raise ValueError("no slot is pending")
    value = parse_value(raw, slot)
    if isinstance(value, ParseFailure):
        return DialogueStep(state=state, kind="reprompt", slot=slot, message=value.reason)
    payload = {**state.payload, slot.field_name: value}
    return advance(state.model_copy(update={"payload": payload}))


def cancel(state: DialogueStateV1) -> DialogueStep:
    return DialogueStep(state=_cleared(state), kind="cancelled", message=CANCELLED_MESSAGE)


def retry(state: DialogueStateV1) -> DialogueStep:
    resolved = state.last_resolved
    if resolved is None:
        return DialogueStep(state=state, kind="nothing_to_retry", message=NOTHING_TO_RETRY_MESSAGE)
    next_state = state.model_copy(
        update={
            "phase": "evaluating",
            "intent": resolved.intent,
            "question": resolved.question,
            "payload": dict(resolved.payload),
            "pending_field": None,
            "decision_id": None,
        }
    )
    return DialogueStep(state=next_state, kind="evaluate")


def complete(state: DialogueStateV1) -> DialogueStateV1:
    return _cleared(state, phase="completed")


def abandon(state: DialogueStateV1) -> DialogueStateV1:
    """Drop the active flow after a failed evaluation, keeping it available for retry."""
    return _cleared(state)
