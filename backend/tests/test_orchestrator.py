from __future__ import annotations

import unittest
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from kudiguard.engine.contracts import DecisionEngineRequestV1  # noqa: E402
from kudiguard.errors import (  # noqa: E402
    ConcurrentTurnError,
    DecisionProcessingError,
    NoFinancialDataError,
    RecommendationNotFoundError,
)
from kudiguard.services.orchestrator import DecisionOrchestrator, is_cancel_command, is_retry_command  # noqa: E402
from kudiguard.services.store import InMemoryRepository, StaleDialogueError, StoreError  # noqa: E402

USER = "user-1"
SESSION = "chat-1"

HIRING_ANSWERS = ["150,000", "80k", "60000", "10k", "20k"]
HIRING_PAYLOAD = {
    "monthlyRevenue": 150000,
    "monthlyExpenses": 80000,
    "ownerWithdrawals": 10000,
    "staffPayroll": 20000,
    "currentSavings": 60000,
}


class FlakyRepository(InMemoryRepository):
    def __init__(self, *, insert_failures: int = 0, land_before_failing: bool = False) -> None:
        super().__init__()
        self.insert_failures = insert_failures
        self.land_before_failing = land_before_failing
        self.insert_calls = 0

    def insert_recommendation(self, payload):
        self.insert_calls += 1
        if self.insert_failures > 0:
            self.insert_failures -= 1
            if self.land_before_failing:
                super().insert_recommendation(payload)
            raise StoreError("connection reset by peer")
        return super().insert_recommendation(payload)


class StatusFailingRepository(InMemoryRepository):
    def __init__(self) -> None:
        super().__init__()
        self.fail_processed = True

    def update_decision(self, decision_id, *, status, inputs=None):
        if status == "processed" and self.fail_processed:
            raise StoreError("statement timeout")
        return super().update_decision(decision_id, status=status, inputs=inputs)


class InterruptingRepository(InMemoryRepository):
    def __init__(self) -> None:
        super().__init__()
        self.on_insert = None

    def insert_recommendation(self, payload):
        if self.on_insert is not None:
            callback, self.on_insert = self.on_insert, None
            callback()
        return super().insert_recommendation(payload)


def _orchestrator(repository=None) -> DecisionOrchestrator:
    return DecisionOrchestrator(
        repository or InMemoryRepository(),
        retry_attempts=1,
        baseline_required_intents={"general_advice"},
    )


def _hiring_dialogue(orchestrator: DecisionOrchestrator, session_id: str = SESSION):
    reply = orchestrator.handle_turn(USER, session_id, "Can I afford to hire a cashier?")
    prompts = [reply.data_needed.field]
    for answer in HIRING_ANSWERS:
        reply = orchestrator.handle_turn(USER, session_id, answer)
        if reply.data_needed is not None:
            prompts.append(reply.data_needed.field)
    return reply, prompts


class ChatFlowTests(unittest.TestCase):
    def test_hiring_dialogue_produces_one_recommendation(self) -> None:
        repository = InMemoryRepository()
        orchestrator = _orchestrator(repository)
        reply, prompts = _hiring_dialogue(orchestrator)

        self.assertEqual(
            prompts,
            ["monthlyRevenue", "monthlyExpenses", "currentSavings", "ownerWithdrawals", "staffPayroll"],
        )
        self.assertEqual(reply.kind, "result")
        self.assertEqual(reply.result.recommendation, "APPROVE")
        self.assertEqual(reply.result.decision_status, "success")
        self.assertEqual(reply.result.financial_health_score, 74)
        self.assertEqual(reply.result.numeric_breakdown["net_income"], 60000.0)

        self.assertEqual(len(repository.decisions), 1)
        decision = repository.decisions[reply.result.decision_id]
        self.assertEqual(decision["status"], "processed")
        self.assertEqual(decision["intent"], "hiring")
        self.assertEqual(len(repository.recommendations), 1)

        state = orchestrator.dialogue_state(USER, SESSION)
        self.assertEqual(state.phase, "completed")
        self.assertEqual(state.payload, {})
        self.assertEqual(state.last_resolved.intent, "hiring")

    def test_decision_created_after_first_required_slot(self) -> None:
        repository = InMemoryRepository()
        orchestrator = _orchestrator(repository)
        orchestrator.handle_turn(USER, SESSION, "Can I hire a cashier?")
        self.assertEqual(repository.decisions, {})
        orchestrator.handle_turn(USER, SESSION, "150k")
        self.assertEqual(len(repository.decisions), 1)
        self.assertEqual(next(iter(repository.decisions.values()))["status"], "pending")

    def test_invalid_answer_reprompts_same_field(self) -> None:
        orchestrator = _orchestrator()
        orchestrator.handle_turn(USER, SESSION, "Can I hire a cashier?")
        reply = orchestrator.handle_turn(USER, SESSION, "0")
        self.assertEqual(reply.kind, "reprompt")
        self.assertEqual(reply.data_needed.field, "monthlyRevenue")
        self.assertIn("greater than zero", reply.message)
        self.assertEqual(orchestrator.dialogue_state(USER, SESSION).payload, {})

    def test_boolean_prompt_offers_quick_replies(self) -> None:
        orchestrator = _orchestrator()
        orchestrator.handle_turn(USER, SESSION, "Should I buy a generator?")
        for answer in ["200k", "100k", "50k", "300k"]:
            reply = orchestrator.handle_turn(USER, SESSION, answer)
        self.assertEqual(reply.data_needed.field, "isCriticalReplacement")
        self.assertEqual(reply.quick_replies, ["Yes", "No"])
        self.assertTrue(orchestrator.dialogue_state(USER, SESSION).payload["isPowerSolution"])

    def test_unknown_question_asks_to_rephrase(self) -> None:
        reply = _orchestrator().handle_turn(USER, SESSION, "Tell me a joke")
        self.assertEqual(reply.kind, "clarify")
        self.assertTrue(reply.quick_replies)

    def test_cancel_clears_payload_without_leaking(self) -> None:
        orchestrator = _orchestrator()
        orchestrator.handle_turn(USER, SESSION, "Can I hire a cashier?")
        orchestrator.handle_turn(USER, SESSION, "150k")
        reply = orchestrator.handle_turn(USER, SESSION, "Cancel")
        self.assertEqual(reply.kind, "cancelled")
        self.assertEqual(orchestrator.dialogue_state(USER, SESSION).payload, {})

        reply = orchestrator.handle_turn(USER, SESSION, "Can I hire a cashier?")
        self.assertEqual(reply.data_needed.field, "monthlyRevenue")
        self.assertEqual(reply.data_needed.intent_context.current_payload, {})

    def test_new_question_mid_dialogue_switches_flow(self) -> None:
        orchestrator = _orchestrator()
        orchestrator.handle_turn(USER, SESSION, "Can I hire a cashier?")
        orchestrator.handle_turn(USER, SESSION, "150k")
        reply = orchestrator.handle_turn(USER, SESSION, "Actually, should I restock instead?")
        self.assertEqual(reply.kind, "prompt")
        self.assertEqual(reply.data_needed.intent_context.intent, "inventory")
        self.assertEqual(reply.data_needed.field, "monthlyRevenue")

    def test_try_again_reproduces_recommendation(self) -> None:
        repository = InMemoryRepository()
        orchestrator = _orchestrator(repository)
        first, _ = _hiring_dialogue(orchestrator)
        again = orchestrator.handle_turn(USER, SESSION, "try again")

        self.assertEqual(again.kind, "result")
        self.assertEqual(again.result.recommendation, first.result.recommendation)
        self.assertEqual(again.result.explanation, first.result.explanation)
        self.assertEqual(again.result.next_steps, first.result.next_steps)
        self.assertEqual(again.result.numeric_breakdown, first.result.numeric_breakdown)
        self.assertEqual(again.result.financial_health_score, first.result.financial_health_score)
        self.assertNotEqual(again.result.decision_id, first.result.decision_id)
        decision_ids = [record["decision_id"] for record in repository.recommendations.values()]
        self.assertEqual(len(decision_ids), len(set(decision_ids)))

    def test_retry_without_history_is_informational(self) -> None:
        reply = _orchestrator().retry(USER, SESSION)
        self.assertEqual(reply.kind, "info")

    def test_control_words(self) -> None:
        self.assertTrue(is_cancel_command("  Cancel! "))
        self.assertTrue(is_retry_command("Try again."))
        self.assertFalse(is_cancel_command("cancel the marketing campaign?"))


class DecisionProtocolTests(unittest.TestCase):
    def test_complete_payload_returns_decision(self) -> None:
        outcome = _orchestrator().decide(
            USER,
            DecisionEngineRequestV1(intent="hiring", question="Can I hire?", payload=HIRING_PAYLOAD),
        )
        self.assertEqual(outcome.kind, "result")
        data = outcome.response_data()
        self.assertEqual(data["decision_status"], "success")
        self.assertEqual(data["recommendation"], "APPROVE")
        self.assertEqual(data["numeric_breakdown"]["net_income"], 60000.0)

    def test_wait_scenario_has_next_steps(self) -> None:
        outcome = _orchestrator().decide(
            USER,
            DecisionEngineRequestV1(
                intent="hiring",
                question="Can I hire?",
                payload={**HIRING_PAYLOAD, "staffPayroll": 30000},
            ),
        )
        self.assertEqual(outcome.result.recommendation, "WAIT")
        self.assertEqual(outcome.result.decision_status, "warning")
        self.assertTrue(outcome.result.next_steps)

    def test_partial_payload_returns_data_needed(self) -> None:
        outcome = _orchestrator().decide(
            USER,
            DecisionEngineRequestV1(question="Can I hire a cashier?", payload={"monthlyRevenue": "150k"}),
        )
        data = outcome.response_data()["data_needed"]
        self.assertEqual(data["field"], "monthlyExpenses")
        self.assertEqual(data["type"], "number")
        self.assertFalse(data["canBeZeroOrNone"])
        self.assertEqual(data["intent_context"]["intent"], "hiring")
        self.assertEqual(data["intent_context"]["decision_type"], "hiring_affordability")
        self.assertEqual(data["intent_context"]["current_payload"], {"monthlyRevenue": 150000.0})

    def test_zero_for_non_zero_field_reprompts(self) -> None:
        outcome = _orchestrator().decide(
            USER,
            DecisionEngineRequestV1(intent="hiring", question="Can I hire?", payload={**HIRING_PAYLOAD, "staffPayroll": 0}),
        )
        self.assertEqual(outcome.kind, "data_needed")
        self.assertEqual(outcome.data_needed.field, "staffPayroll")
        self.assertIsNotNone(outcome.data_needed.retry_reason)
        self.assertNotIn("staffPayroll", outcome.data_needed.intent_context.current_payload)

    def test_enum_slot_reports_text_enum(self) -> None:
        outcome = _orchestrator().decide(
            USER,
            DecisionEngineRequestV1(
                intent="business_expansion",
                question="Should I expand?",
                payload={
                    "monthlyRevenue": 400000,
                    "monthlyExpenses": 250000,
                    "currentSavings": 500000,
                    "expansionCost": 1000000,
                    "capitalAvailablePercentage": 80,
                },
            ),
        )
        data = outcome.response_data()["data_needed"]
        self.assertEqual(data["type"], "text_enum")
        self.assertEqual(data["options"], ["consistent_growth", "positive_fluctuating", "declining_unstable"])

    def test_unknown_question_returns_clarification(self) -> None:
        outcome = _orchestrator().decide(USER, DecisionEngineRequestV1(question="Hello there"))
        self.assertEqual(outcome.kind, "clarify")
        self.assertIn("clarification", outcome.response_data())


class BaselineTests(unittest.TestCase):
    def test_general_advice_requires_baseline(self) -> None:
        with self.assertRaises(NoFinancialDataError):
            _orchestrator().handle_turn(USER, SESSION, "How is my cash flow?")

    def test_baseline_seeds_and_completes_general_advice(self) -> None:
        orchestrator = _orchestrator()
        orchestrator.record_financial_entry(
            USER,
            {"monthly_revenue": 400000, "monthly_expenses": 200000, "current_savings": 800000},
        )
        reply = orchestrator.handle_turn(USER, SESSION, "How is my cash flow?")
        self.assertEqual(reply.kind, "result")
        self.assertEqual(reply.result.recommendation, "APPROVE")

    def test_baseline_prefills_hiring_slots(self) -> None:
        orchestrator = _orchestrator()
        orchestrator.record_financial_entry(
            USER,
            {
                "monthly_revenue": 150000,
                "monthly_expenses": 80000,
                "current_savings": 60000,
                "owner_withdrawals": 10000,
                "outstanding_debts": 5000,
            },
        )
        reply = orchestrator.handle_turn(USER, SESSION, "Can I hire a cashier?")
        self.assertEqual(reply.data_needed.field, "staffPayroll")
        self.assertNotIn("outstandingDebts", reply.data_needed.intent_context.current_payload)

    def test_baseline_value_breaking_slot_rules_is_asked_for(self) -> None:
        repository = InMemoryRepository()
        orchestrator = _orchestrator(repository)
        orchestrator.record_financial_entry(
            USER,
            {"monthly_revenue": 0, "monthly_expenses": 50000, "current_savings": 60000, "owner_withdrawals": 10000},
        )
        reply = orchestrator.handle_turn(USER, SESSION, "Can I afford to hire a cashier?")
        self.assertEqual(reply.data_needed.field, "monthlyRevenue")
        self.assertNotIn("monthlyRevenue", reply.data_needed.intent_context.current_payload)
        self.assertEqual(reply.data_needed.intent_context.current_payload["monthlyExpenses"], 50000.0)

        reply = orchestrator.handle_turn(USER, SESSION, "150k")
        self.assertEqual(reply.data_needed.field, "staffPayroll")
        reply = orchestrator.handle_turn(USER, SESSION, "20k")
        self.assertEqual(reply.kind, "result")
        self.assertEqual(reply.result.recommendation, "APPROVE")
        self.assertEqual([record["status"] for record in repository.decisions.values()], ["processed"])

    def test_health_score_needs_entry(self) -> None:
        orchestrator = _orchestrator()
        with self.assertRaises(NoFinancialDataError):
            orchestrator.health_score(USER)
        orchestrator.record_financial_entry(
            USER,
            {"monthly_revenue": 150000, "monthly_expenses": 80000, "current_savings": 60000, "owner_withdrawals": 10000},
        )
        self.assertEqual(orchestrator.health_score(USER).score, 74)


class PersistenceFailureTests(unittest.TestCase):
    def _decide(self, orchestrator: DecisionOrchestrator):
        return orchestrator.decide(
            USER,
            DecisionEngineRequestV1(intent="hiring", question="Can I hire?", payload=HIRING_PAYLOAD, session_id=SESSION),
        )

    def test_single_store_failure_is_retried(self) -> None:
        repository = FlakyRepository(insert_failures=1)
        outcome = self._decide(_orchestrator(repository))
        self.assertEqual(outcome.kind, "result")
        self.assertEqual(repository.insert_calls, 2)
        self.assertEqual(len(repository.recommendations), 1)

    def test_landed_insert_is_not_duplicated(self) -> None:
        repository = FlakyRepository(insert_failures=1, land_before_failing=True)
        outcome = self._decide(_orchestrator(repository))
        self.assertEqual(outcome.kind, "result")
        self.assertEqual(repository.insert_calls, 1)
        self.assertEqual(len(repository.recommendations), 1)

    def test_repeated_failure_marks_error_and_allows_retry(self) -> None:
        repository = FlakyRepository(insert_failures=2)
        orchestrator = _orchestrator(repository)
        with self.assertRaises(DecisionProcessingError) as ctx:
            self._decide(orchestrator)
        self.assertIn("Try again", ctx.exception.suggested_actions)
        self.assertEqual(repository.insert_calls, 2)
        self.assertEqual(repository.recommendations, {})
        decision = next(iter(repository.decisions.values()))
        self.assertEqual(decision["status"], "error")
        self.assertEqual(repository.audit_events[-1]["event"], "decision_processing_failed")

        reply = orchestrator.retry(USER, SESSION)
        self.assertEqual(reply.kind, "result")
        self.assertEqual(reply.result.recommendation, "APPROVE")
        self.assertEqual(len(repository.recommendations), 1)


    def test_failed_status_update_leaves_no_recommendation(self) -> None:
        repository = StatusFailingRepository()
        orchestrator = _orchestrator(repository)
        with self.assertRaises(DecisionProcessingError):
            self._decide(orchestrator)
        self.assertEqual(repository.recommendations, {})
        self.assertEqual([record["status"] for record in repository.decisions.values()], ["error"])

        repository.fail_processed = False
        reply = orchestrator.retry(USER, SESSION)
        self.assertEqual(reply.kind, "result")
        self.assertEqual(len(repository.recommendations), 1)
        recommendation = next(iter(repository.recommendations.values()))
        self.assertEqual(repository.decisions[recommendation["decision_id"]]["status"], "processed")


class ConcurrencyTests(unittest.TestCase):
    def test_cancel_during_evaluation_still_returns_result(self) -> None:
        repository = InterruptingRepository()
        orchestrator = _orchestrator(repository)
        repository.on_insert = lambda: orchestrator.cancel(USER, SESSION)
        outcome = orchestrator.decide(
            USER,
            DecisionEngineRequestV1(intent="hiring", question="Can I hire?", payload=HIRING_PAYLOAD, session_id=SESSION),
        )
        self.assertEqual(outcome.kind, "result")
        self.assertEqual(outcome.result.recommendation, "APPROVE")
        self.assertEqual(repository.decisions[outcome.result.decision_id]["status"], "processed")
        state = orchestrator.dialogue_state(USER, SESSION)
        self.assertEqual(state.phase, "awaiting_question")
        self.assertEqual(state.payload, {})

    def test_second_turn_is_rejected_while_first_in_flight(self) -> None:
        orchestrator = _orchestrator()
        key = orchestrator.session_key(USER, SESSION)
        with orchestrator.guard.hold(key):
            with self.assertRaises(ConcurrentTurnError):
                orchestrator.handle_turn(USER, SESSION, "Can I hire a cashier?")
        reply = orchestrator.handle_turn(USER, SESSION, "Can I hire a cashier?")
        self.assertEqual(reply.kind, "prompt")

    def test_cancel_is_honored_while_turn_in_flight(self) -> None:
        orchestrator = _orchestrator()
        orchestrator.handle_turn(USER, SESSION, "Can I hire a cashier?")
        key = orchestrator.session_key(USER, SESSION)
        with orchestrator.guard.hold(key):
            reply = orchestrator.handle_turn(USER, SESSION, "cancel")
        self.assertEqual(reply.kind, "cancelled")

    def test_stale_version_is_rejected(self) -> None:
        repository = InMemoryRepository()
        orchestrator = _orchestrator(repository)
        orchestrator.handle_turn(USER, SESSION, "Can I hire a cashier?")
        key = orchestrator.session_key(USER, SESSION)
        with self.assertRaises(StaleDialogueError):
            repository.save_dialogue(key, {}, expected_version=0)

        stale = dict(repository.dialogues[key])
        stale["version"] = 0
        repository.load_dialogue = lambda session_key: dict(stale)
        with self.assertRaises(ConcurrentTurnError):
            orchestrator.handle_turn(USER, SESSION, "150k")


class FeedbackTests(unittest.TestCase):
    def test_feedback_is_keyed_by_recommendation(self) -> None:
        repository = InMemoryRepository()
        orchestrator = _orchestrator(repository)
        reply, _ = _hiring_dialogue(orchestrator)
        record = orchestrator.record_feedback(USER, reply.result.recommendation_id, True, "Helpful")
        self.assertEqual(record["recommendation_id"], reply.result.recommendation_id)
        self.assertTrue(record["accepted"])
        orchestrator.record_feedback(USER, reply.result.recommendation_id, False)
        self.assertEqual(len(repository.feedback), 2)

    def test_feedback_for_foreign_recommendation_is_rejected(self) -> None:
        orchestrator = _orchestrator()
        reply, _ = _hiring_dialogue(orchestrator)
        with self.assertRaises(RecommendationNotFoundError):
            orchestrator.record_feedback("someone-else", reply.result.recommendation_id, True)
        with self.assertRaises(RecommendationNotFoundError):
            orchestrator.record_feedback(USER, "rec_missing", True)


if __name__ == "__main__":
    unittest.main()
