from .contracts import (
    DataNeededV1,
    DecisionEngineRequestV1,
    DecisionResultV1,
    DialogueStateV1,
    EvaluationV1,
    HealthScoreV1,
    IntentName,
    ParseFailure,
    SlotDefinitionV1,
    TurnReplyV1,
)
from .intents import clarification_for, infer_question_hints, resolve_intent
from .parser import parse_value
from .rules import evaluate
from .score import compute_health_score
from .slots import decision_type_for, missing_slots, payload_schema, slots_for, validate_payload

__all__ = [
    "DataNeededV1",
    "DecisionEngineRequestV1",
    "DecisionResultV1",
    "DialogueStateV1",
    "EvaluationV1",
    "HealthScoreV1",
    "IntentName",
    "ParseFailure",
    "SlotDefinitionV1",
    "TurnReplyV1",
    "clarification_for",
    "compute_health_score",
    "decision_type_for",
    "evaluate",
    "infer_question_hints",
    "missing_slots",
    "parse_value",
    "payload_schema",
    "resolve_intent",
    "slots_for",
    "validate_payload",
]
