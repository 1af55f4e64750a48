from __future__ import annotations

from typing import Any, Dict, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

IntentName = Literal[
    "hiring",
    "inventory",
    "marketing",
    "savings",
    "equipment",
    "loan_management",
    "business_expansion",
    "general_advice",
    "unknown",
]
SlotValueType = Literal["number", "boolean", "enum"]
ConditionOperator = Literal["eq", "gt", "present"]
RecommendationName = Literal["APPROVE", "WAIT", "REJECT"]
DecisionStatus = Literal["pending", "processed", "error"]
DialoguePhase = Literal["awaiting_question", "collecting_slot", "evaluating", "completed"]
ScoreBand = Literal["stable", "caution", "risky"]

Payload = Dict[str, Any]


class SlotConditionV1(BaseModel):
    """Makes an optional slot required once another payload value satisfies it.

    ``ref_field`` compares against another payload value scaled by ``factor``
    instead of the literal ``value``.
    """

    model_config = ConfigDict(extra="forbid")

    field: str
    operator: ConditionOperator
    value: Any = None
    ref_field: str | None = None
    factor: float = 1.0


class SlotDefinitionV1(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    field_name: str
    value_type: SlotValueType
    prompt: str
    options: tuple[str, ...] = ()
    required: bool = True
    zero_allowed: bool = False
    required_if: SlotConditionV1 | None = None

    @field_validator("options")
    @classmethod
    def _validate_options(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if len(set(value)) != len(value):
            raise ValueError("options must be unique")
        return value


class ParseFailure(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reason: str


class ResolvedFlowV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    intent: IntentName
    question: str
    payload: Payload = Field(default_factory=dict)


class DialogueStateV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: str = "dialogue_state_v1"
    session_key: str
    phase: DialoguePhase = "awaiting_question"
    intent: IntentName | None = None
    question: str | None = None
    payload: Payload = Field(default_factory=dict)
    pending_field: SlotDefinitionV1 | None = None
    decision_id: str | None = None
    last_resolved: ResolvedFlowV1 | None = None
    version: int = Field(default=0, ge=0)


class EvaluationV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    intent: IntentName
    decision_type: str
    recommendation: RecommendationName
    reasoning: str
    next_steps: list[str] = Field(default_factory=list)
    numeric_breakdown: Dict[str, float] = Field(default_factory=dict)


class HealthScoreV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    score: int = Field(ge=0, le=100)
    band: ScoreBand
    interpretation: str
    breakdown: Dict[str, float] = Field(default_factory=dict)


class IntentContextV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    intent: IntentName
    decision_type: str
    current_payload: Payload = Field(default_factory=dict)


class DataNeededV1(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    field: str
    prompt: str
    type: Literal["number", "boolean", "text_enum"]
    options: list[str] | None = None
    can_be_zero_or_none: bool = Field(alias="canBeZeroOrNone")
    intent_context: IntentContextV1
    retry_reason: str | None = None


class DecisionResultV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    decision_id: str
    recommendation_id: str
    intent: IntentName
    recommendation: RecommendationName
    decision_result: str
    decision_status: Literal["success", "warning", "danger"]
    explanation: str
    next_steps: list[str] = Field(default_factory=list)
    financial_health_score: int = Field(ge=0, le=100)
    score_interpretation: str
    numeric_breakdown: Dict[str, float] = Field(default_factory=dict)


class ClarificationV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    message: str
    suggested_questions: list[str] = Field(default_factory=list)


class DecisionEngineRequestV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    intent: IntentName | None = None
    question: str = Field(min_length=1, max_length=2000)
    payload: Payload = Field(default_factory=dict)
    session_id: str | None = Field(default=None, max_length=128)


class TurnReplyV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["prompt", "reprompt", "clarify", "result", "cancelled", "info"]
    message: str
    quick_replies: list[str] = Field(default_factory=list)
    data_needed: DataNeededV1 | None = None
    result: DecisionResultV1 | None = None
