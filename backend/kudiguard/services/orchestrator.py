from __future__ import annotations

import logging
import re
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Literal, TypeVar

from kudiguard import config
from kudiguard.engine import dialogue
from kudiguard.engine.contracts import (
    ClarificationV1,
    DataNeededV1,
    DecisionEngineRequestV1,
    DecisionResultV1,
    DialogueStateV1,
    EvaluationV1,
    HealthScoreV1,
    IntentContextV1,
    IntentName,
    Payload,
    TurnReplyV1,
)
from kudiguard.engine.intents import SUGGESTED_QUESTIONS, infer_question_hints, normalize_question, resolve_intent
from kudiguard.engine.rules import DECISION_HEADLINES, DECISION_STATUS, evaluate
from kudiguard.engine.score import compute_health_score
from kudiguard.engine.slots import decision_type_for, slots_for, validate_payload
from kudiguard.errors import (
    ConcurrentTurnError,
    DecisionProcessingError,
    NoFinancialDataError,
    RecommendationNotFoundError,
    StoreUnavailableError,
)
from kudiguard.services.common import redact_sensitive
from kudiguard.services.store import DecisionRepository, InMemoryRepository, StaleDialogueError, StoreError
from kudiguard.services.supabase_rest import SupabaseRepository, get_supabase_client

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_SESSION_ID = "default"
CANCEL_TERMS = {"cancel", "stop", "start over", "never mind", "nevermind", "reset"}
RETRY_TERMS = {"try again", "retry", "try that again"}
RESULT_QUICK_REPLIES = ["Try again", "Ask another question"]
CANCEL_SAVE_ATTEMPTS = 3

# Financial entry columns that pre-fill slots of the same meaning.
BASELINE_FIELDS = {
    "monthly_revenue": "monthlyRevenue",
    "monthly_expenses": "monthlyExpenses",
    "current_savings": "currentSavings",
    "owner_withdrawals": "ownerWithdrawals",
    "outstanding_debts": "outstandingDebts",
}
_SLOT_TYPE_LABELS = {"number": "number", "boolean": "boolean", "enum": "text_enum"}
_PUNCTUATION = re.compile(r"[^\w\s]")

OutcomeKind = Literal["data_needed", "clarify", "result", "cancelled", "nothing_to_retry"]


@dataclass(frozen=True)
class EngineOutcome:
    kind: OutcomeKind
    message: str = ""
    reprompt: bool = False
    data_needed: DataNeededV1 | None = None
    clarification: ClarificationV1 | None = None
    result: DecisionResultV1 | None = None

    def response_data(self) -> Dict[str, Any]:
        if self.kind == "data_needed" and self.data_needed is not None:
            return {"data_needed": self.data_needed.model_dump(by_alias=True, exclude_none=True)}
        if self.kind == "result" and self.result is not None:
            return self.result.model_dump()
        if self.kind == "clarify" and self.clarification is not None:
            return {"clarification": self.clarification.model_dump()}
        return {"message": self.message}


class SessionTurnGuard:
    """Allows one in-flight turn per dialogue session; a second one is rejected, not queued."""

    def __init__(self) -> None:
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, session_key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(session_key, threading.Lock())
        if not lock.acquire(blocking=False):
            logger.info("turn_rejected_concurrent session=%s", session_key)
            raise ConcurrentTurnError()
        try:
            yield
        finally:
            lock.release()


def _control_text(message: str) -> str:
    return " ".join(_PUNCTUATION.sub(" ", normalize_question(message)).split())


def is_cancel_command(message: str) -> bool:
    return _control_text(message) in CANCEL_TERMS


def is_retry_command(message: str) -> bool:
    return _control_text(message) in RETRY_TERMS


def baseline_payload(entry: Dict[str, Any]) -> Payload:
    payload: Payload = {}
    for column, field_name in BASELINE_FIELDS.items():
        value = entry.get(column)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        payload[field_name] = float(value)
    return payload


class DecisionOrchestrator:
    def __init__(
        self,
        repository: DecisionRepository,
        *,
        retry_attempts: int | None = None,
        baseline_required_intents: set[str] | None = None,
        guard: SessionTurnGuard | None = None,
    ) -> None:
        self.repository = repository
        self.retry_attempts = config.PERSIST_RETRY_ATTEMPTS if retry_attempts is None else retry_attempts
        self.baseline_required_intents = (
            config.BASELINE_REQUIRED_INTENTS if baseline_required_intents is None else baseline_required_intents
        )
        self.guard = guard or SessionTurnGuard()

    @staticmethod
    def session_key(user_id: str, session_id: str | None) -> str:
        return f"{user_id}:{session_id or DEFAULT_SESSION_ID}"

    # -- store access -------------------------------------------------

    def _with_retry(self, op: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        attempts = 1 + self.retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                return func(*args, **kwargs)
            except StaleDialogueError:
                raise
            except StoreError as exc:
                logger.warning("store_call_failed op=%s attempt=%s error=%s", op, attempt, exc)
                if attempt >= attempts:
                    raise
        raise AssertionError("unreachable")

    def _store(self, op: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return self._with_retry(op, func, *args, **kwargs)
        except StaleDialogueError:
            raise
        except StoreError as exc:
            raise StoreUnavailableError() from exc

    def _load_state(self, session_key: str) -> DialogueStateV1:
        row = self._store("load_dialogue", self.repository.load_dialogue, session_key)
        if row is None:
            return dialogue.new_state(session_key)
        fields = {key: value for key, value in row.items() if key in DialogueStateV1.model_fields}
        fields["session_key"] = session_key
        return DialogueStateV1.model_validate(fields)

    def _save_state(self, state: DialogueStateV1) -> DialogueStateV1:
        try:
            version = self._store(
                "save_dialogue",
                self.repository.save_dialogue,
                state.session_key,
                state.model_dump(mode="json"),
                expected_version=state.version,
            )
        except StaleDialogueError as exc:
            logger.info("dialogue_save_stale session=%s version=%s", state.session_key, state.version)
            raise ConcurrentTurnError() from exc
        return state.model_copy(update={"version": version})

    # -- flow helpers -------------------------------------------------

    def _seed(self, user_id: str, intent: IntentName, question: str) -> Payload:
        seed: Payload = dict(infer_question_hints(intent, question))
        entry = self._store("latest_financial_entry", self.repository.latest_financial_entry, user_id)
        if entry is None:
            if intent in self.baseline_required_intents:
                raise NoFinancialDataError()
            return seed
        known = {slot.field_name for slot in slots_for(intent)}
        baseline = {name: value for name, value in baseline_payload(entry).items() if name in known}
        # Baseline values obey the same slot rules as answers; rejected ones are asked for instead.
        coerced = dialogue.coerce_payload(intent, baseline)
        for name, reason in coerced.failures.items():
            logger.info("baseline_value_skipped intent=%s field=%s reason=%s", intent, name, reason)
        seed.update(coerced.values)
        return seed

    def _ensure_decision(self, user_id: str, state: DialogueStateV1) -> DialogueStateV1:
        if state.decision_id is not None or state.intent is None or state.question is None:
            return state
        first_required = next((slot for slot in slots_for(state.intent) if slot.required), None)
        if first_required is None or first_required.field_name not in state.payload:
            return state
        try:
            record = self._with_retry(
                "create_decision",
                self.repository.create_decision,
                user_id=user_id,
                question=state.question,
                intent=state.intent,
                inputs=dict(state.payload),
            )
        except StoreError as exc:
            raise DecisionProcessingError() from exc
        logger.info("decision_created decision_id=%s intent=%s", record["id"], state.intent)
        return state.model_copy(update={"decision_id": record["id"]})

    def _data_needed(self, state: DialogueStateV1, step: dialogue.DialogueStep) -> DataNeededV1:
        slot = step.slot
        if slot is None or state.intent is None:
            raise ValueError("data_needed requires a pending slot")
        return DataNeededV1(
            field=slot.field_name,
            prompt=slot.prompt,
            type=_SLOT_TYPE_LABELS[slot.value_type],
            options=list(slot.options) or None,
            canBeZeroOrNone=slot.zero_allowed,
            intent_context=IntentContextV1(
                intent=state.intent,
                decision_type=decision_type_for(state.intent),
                current_payload=dict(state.payload),
            ),
            retry_reason=step.message if step.kind == "reprompt" else None,
        )

    def _persist_recommendation(self, decision_id: str, record: Dict[str, Any]) -> Dict[str, Any]:
        attempts = 1 + self.retry_attempts
        for attempt in range(1, attempts + 1):
            if attempt > 1:
                # The failed insert may still have landed; never write a second row.
                existing = self.repository.find_recommendation_for_decision(decision_id)
                if existing is not None:
                    return existing
            try:
                return self.repository.insert_recommendation(record)
            except StoreError as exc:
                logger.warning(
                    "recommendation_insert_failed decision_id=%s attempt=%s error=%s", decision_id, attempt, exc
                )
                if attempt >= attempts:
                    raise
        raise AssertionError("unreachable")

    def _discard_recommendation(self, decision_id: str) -> None:
        """Remove a recommendation written for a decision that is about to be marked error."""
        try:
            existing = self._with_retry(
                "find_recommendation", self.repository.find_recommendation_for_decision, decision_id
            )
            if existing is None:
                return
            self._with_retry("delete_recommendation", self.repository.delete_recommendation, str(existing["id"]))
        except StoreError as exc:
            logger.warning("recommendation_discard_failed decision_id=%s error=%s", decision_id, exc)
            return
        logger.info("recommendation_discarded decision_id=%s recommendation_id=%s", decision_id, existing["id"])

    def _record_failure(self, user_id: str, state: DialogueStateV1, exc: Exception) -> None:
        if state.decision_id is not None:
            try:
                self._with_retry("update_decision", self.repository.update_decision, state.decision_id, status="error")
            except StoreError as store_exc:
                logger.warning("decision_error_status_failed decision_id=%s error=%s", state.decision_id, store_exc)
        try:
            self.repository.add_audit(
                {
                    "user_id": user_id,
                    "decision_id": state.decision_id,
                    "event": "decision_processing_failed",
                    "intent": state.intent,
                    "error_type": type(exc).__name__,
                    "inputs": redact_sensitive(dict(state.payload)),
                }
            )
        except StoreError as audit_exc:
            logger.warning("audit_write_failed decision_id=%s error=%s", state.decision_id, audit_exc)

    def _evaluate(self, user_id: str, state: DialogueStateV1) -> tuple[DialogueStateV1, DecisionResultV1]:
        state = self._ensure_decision(user_id, state)
        intent = state.intent
        decision_id = state.decision_id
        if intent is None or decision_id is None:
            raise ValueError("evaluation requires an intent and a decision")
        payload = dict(state.payload)
        try:
            problems = validate_payload(intent, payload)
            if problems:
                raise ValueError("payload failed schema validation: " + "; ".join(problems))
            evaluation = evaluate(intent, payload)
            health = compute_health_score(payload)
            recommendation = self._persist_recommendation(
                decision_id,
                {
                    "decision_id": decision_id,
                    "user_id": user_id,
                    "recommendation": evaluation.recommendation,
                    "reasoning": evaluation.reasoning,
                    "actionable_steps": evaluation.next_steps,
                    "financial_health_score": health.score,
                    "score_interpretation": health.interpretation,
                    "numeric_breakdown": evaluation.numeric_breakdown,
                },
            )
            self._with_retry(
                "update_decision",
                self.repository.update_decision,
                decision_id,
                status="processed",
                inputs=payload,
            )
        except Exception as exc:
            logger.exception("decision_processing_failed decision_id=%s intent=%s", decision_id, intent)
            self._discard_recommendation(decision_id)
            self._record_failure(user_id, state, exc)
            try:
                self._save_state(dialogue.abandon(state))
            except (ConcurrentTurnError, StoreUnavailableError):
                logger.warning("dialogue_reset_failed session=%s", state.session_key)
            raise DecisionProcessingError() from exc

        logger.info(
            "decision_processed decision_id=%s intent=%s recommendation=%s score=%s",
            decision_id,
            intent,
            evaluation.recommendation,
            health.score,
        )
        return state, self._result(decision_id, str(recommendation["id"]), evaluation, health)

    @staticmethod
    def _result(
        decision_id: str, recommendation_id: str, evaluation: EvaluationV1, health: HealthScoreV1
    ) -> DecisionResultV1:
        return DecisionResultV1(
            decision_id=decision_id,
            recommendation_id=recommendation_id,
            intent=evaluation.intent,
            recommendation=evaluation.recommendation,
            decision_result=DECISION_HEADLINES[evaluation.recommendation],
            decision_status=DECISION_STATUS[evaluation.recommendation],
            explanation=evaluation.reasoning,
            next_steps=list(evaluation.next_steps),
            financial_health_score=health.score,
            score_interpretation=health.interpretation,
            numeric_breakdown=dict(evaluation.numeric_breakdown),
        )

    def _drive(self, user_id: str, step: dialogue.DialogueStep) -> EngineOutcome:
        state = step.state
        if step.kind in ("need_slot", "reprompt"):
            state = self._ensure_decision(user_id, state)
            self._save_state(state)
            return EngineOutcome(
                kind="data_needed",
                message=step.message,
                reprompt=step.kind == "reprompt",
                data_needed=self._data_needed(state, step),
            )
        if step.kind == "evaluate":
            state, result = self._evaluate(user_id, state)
            try:
                self._save_state(dialogue.complete(state))
            except ConcurrentTurnError:
                # A cancel landed mid-evaluation and already cleared the session.
                logger.info("dialogue_complete_skipped session=%s decision_id=%s", state.session_key, result.decision_id)
            return EngineOutcome(kind="result", message=result.explanation, result=result)
        self._save_state(state)
        if step.kind == "clarify":
            return EngineOutcome(kind="clarify", message=step.message, clarification=step.clarification)
        return EngineOutcome(kind=step.kind, message=step.message)

    def _start(self, user_id: str, state: DialogueStateV1, question: str, intent: IntentName | None, raw: Payload | None) -> dialogue.DialogueStep:
        resolved = intent if intent and intent != "unknown" else resolve_intent(question)
        if resolved == "unknown":
            return dialogue.start(state, question, intent=resolved)
        return dialogue.start(
            state,
            question,
            intent=resolved,
            payload=dialogue.coerce_payload(resolved, raw),
            seed=self._seed(user_id, resolved, question),
        )

    # -- public operations ---------------------------------------------

    def decide(self, user_id: str, request: DecisionEngineRequestV1) -> EngineOutcome:
        key = self.session_key(user_id, request.session_id)
        with self.guard.hold(key):
            state = self._load_state(key)
            step = self._start(user_id, state, request.question.strip(), request.intent, request.payload)
            outcome = self._drive(user_id, step)
        logger.info("decision_engine_call session=%s outcome=%s", key, outcome.kind)
        return outcome

    def handle_turn(self, user_id: str, session_id: str | None, message: str) -> TurnReplyV1:
        if is_cancel_command(message):
            return self.cancel(user_id, session_id)
        if is_retry_command(message):
            return self.retry(user_id, session_id)
        key = self.session_key(user_id, session_id)
        text = message.strip()
        with self.guard.hold(key):
            state = self._load_state(key)
            if state.phase == "collecting_slot" and state.pending_field is not None:
                step = dialogue.submit(state, text)
                if step.kind == "reprompt":
                    # An unparsable answer that reads as a different question starts that flow instead.
                    switched = resolve_intent(text)
                    if switched not in ("unknown", state.intent):
                        step = self._start(user_id, dialogue.cancel(state).state, text, switched, None)
            else:
                step = self._start(user_id, state, text, None, None)
            outcome = self._drive(user_id, step)
        return turn_reply(outcome)

    def cancel(self, user_id: str, session_id: str | None) -> TurnReplyV1:
        key = self.session_key(user_id, session_id)
        for attempt in range(1, CANCEL_SAVE_ATTEMPTS + 1):
            state = self._load_state(key)
            step = dialogue.cancel(state)
            try:
                self._save_state(step.state)
            except ConcurrentTurnError:
                if attempt >= CANCEL_SAVE_ATTEMPTS:
                    raise
                continue
            logger.info("dialogue_cancelled session=%s", key)
            return turn_reply(EngineOutcome(kind="cancelled", message=step.message))
        raise AssertionError("unreachable")

    def retry(self, user_id: str, session_id: str | None) -> TurnReplyV1:
        key = self.session_key(user_id, session_id)
        with self.guard.hold(key):
            state = self._load_state(key)
            outcome = self._drive(user_id, dialogue.retry(state))
        return turn_reply(outcome)

    def dialogue_state(self, user_id: str, session_id: str | None) -> DialogueStateV1:
        return self._load_state(self.session_key(user_id, session_id))

    def record_feedback(
        self, user_id: str, recommendation_id: str, accepted: bool, comment: str | None = None
    ) -> Dict[str, Any]:
        recommendation = self._store("get_recommendation", self.repository.get_recommendation, recommendation_id)
        if recommendation is None or str(recommendation.get("user_id")) != str(user_id):
            raise RecommendationNotFoundError()
        record = self._store(
            "add_feedback",
            self.repository.add_feedback,
            {
                "recommendation_id": recommendation_id,
                "user_id": user_id,
                "accepted": accepted,
                "comment": comment,
            },
        )
        logger.info("feedback_recorded recommendation_id=%s accepted=%s", recommendation_id, accepted)
        return record

    def record_financial_entry(self, user_id: str, entry: Dict[str, Any]) -> Dict[str, Any]:
        return self._store(
            "add_financial_entry",
            self.repository.add_financial_entry,
            {**entry, "user_id": user_id},
        )

    def latest_financial_entry(self, user_id: str) -> Dict[str, Any]:
        entry = self._store("latest_financial_entry", self.repository.latest_financial_entry, user_id)
        if entry is None:
            raise NoFinancialDataError()
        return entry

    def health_score(self, user_id: str) -> HealthScoreV1:
        return compute_health_score(baseline_payload(self.latest_financial_entry(user_id)))


def _quick_replies(data_needed: DataNeededV1) -> list[str]:
    if data_needed.type == "boolean":
        return ["Yes", "No"]
    if data_needed.options:
        return [option.replace("_", " ") for option in data_needed.options]
    return []


def turn_reply(outcome: EngineOutcome) -> TurnReplyV1:
    if outcome.kind == "data_needed" and outcome.data_needed is not None:
        needed = outcome.data_needed
        if outcome.reprompt:
            return TurnReplyV1(
                kind="reprompt",
                message=f"{outcome.message} {needed.prompt}".strip(),
                quick_replies=_quick_replies(needed),
                data_needed=needed,
            )
        return TurnReplyV1(kind="prompt", message=needed.prompt, quick_replies=_quick_replies(needed), data_needed=needed)
    if outcome.kind == "result" and outcome.result is not None:
        result = outcome.result
        return TurnReplyV1(
            kind="result",
            message=f"{result.decision_result}. {result.explanation}",
            quick_replies=list(RESULT_QUICK_REPLIES),
            result=result,
        )
    if outcome.kind == "clarify":
        suggestions = outcome.clarification.suggested_questions if outcome.clarification else list(SUGGESTED_QUESTIONS)
        return TurnReplyV1(kind="clarify", message=outcome.message, quick_replies=suggestions)
    if outcome.kind == "cancelled":
        return TurnReplyV1(kind="cancelled", message=outcome.message, quick_replies=SUGGESTED_QUESTIONS[:3])
    return TurnReplyV1(kind="info", message=outcome.message, quick_replies=SUGGESTED_QUESTIONS[:3])


def build_repository() -> DecisionRepository:
    if config.STORE_BACKEND == "supabase":
        return SupabaseRepository(get_supabase_client())
    return InMemoryRepository()


_orchestrator: DecisionOrchestrator | None = None


def get_orchestrator() -> DecisionOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = DecisionOrchestrator(build_repository())
        logger.info("orchestrator_ready store_backend=%s", config.STORE_BACKEND)
    return _orchestrator
