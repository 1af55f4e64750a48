from __future__ import annotations

import unittest
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from kudiguard.engine import dialogue  # noqa: E402
from kudiguard.engine.slots import slots_for  # noqa: E402

DECISION_INTENTS = [
    "hiring",
    "inventory",
    "marketing",
    "savings",
    "equipment",
    "loan_management",
    "business_expansion",
    "general_advice",
]

QUESTIONS = {
    "hiring": "Can I hire a cashier?",
    "inventory": "Should I restock?",
    "marketing": "Should I run a promotion?",
    "savings": "How much should I save?",
    "equipment": "Should I buy a new oven?",
    "loan_management": "Should I take a loan?",
    "business_expansion": "Should I expand?",
    "general_advice": "How is my cash flow?",
}


def _answer_for(slot) -> str:
    if slot.value_type == "boolean":
        return "no"
    if slot.value_type == "enum":
        return slot.options[0]
    if slot.field_name == "currentSavings":
        return "100k"
    return "2000"


def _run_to_evaluation(intent: str):
    step = dialogue.start(dialogue.new_state("u1:s1"), QUESTIONS[intent], intent=intent)
    prompted = []
    guard = 0
    while step.kind == "need_slot":
        prompted.append(step.slot.field_name)
        step = dialogue.submit(step.state, _answer_for(step.slot))
        guard += 1
        if guard > 50:
            raise AssertionError("dialogue did not terminate")
    return step, prompted


class DialogueStateMachineTests(unittest.TestCase):
    def test_prompt_order_matches_required_slots(self) -> None:
        for intent in DECISION_INTENTS:
            with self.subTest(intent=intent):
                step, prompted = _run_to_evaluation(intent)
                expected = [slot.field_name for slot in slots_for(intent) if slot.required]
                self.assertEqual(prompted, expected)
                self.assertEqual(len(prompted), len(set(prompted)))
                self.assertEqual(step.kind, "evaluate")
                self.assertEqual(step.state.phase, "evaluating")

    def test_unknown_question_stays_awaiting_with_clarification(self) -> None:
        step = dialogue.start(dialogue.new_state("u1:s1"), "Tell me a joke")
        self.assertEqual(step.kind, "clarify")
        self.assertEqual(step.state.phase, "awaiting_question")
        self.assertIsNone(step.state.intent)
        self.assertTrue(step.clarification.suggested_questions)

    def test_parse_failure_reprompts_without_mutating_payload(self) -> None:
        step = dialogue.start(dialogue.new_state("u1:s1"), "Can I hire a cashier?")
        self.assertEqual(step.slot.field_name, "monthlyRevenue")
        retry = dialogue.submit(step.state, "0")
        self.assertEqual(retry.kind, "reprompt")
        self.assertEqual(retry.slot.field_name, "monthlyRevenue")
        self.assertEqual(retry.state.payload, {})
        self.assertEqual(retry.state.pending_field.field_name, "monthlyRevenue")
        garbage = dialogue.submit(retry.state, "lots of money")
        self.assertEqual(garbage.kind, "reprompt")
        self.assertEqual(garbage.state.payload, {})

    def test_supplied_payload_skips_known_slots(self) -> None:
        coerced = dialogue.coerce_payload(
            "hiring",
            {"monthlyRevenue": "150,000", "monthlyExpenses": 80000, "notAField": 1},
        )
        self.assertEqual(coerced.ignored, ["notAField"])
        step = dialogue.start(dialogue.new_state("u1:s1"), "Can I hire?", intent="hiring", payload=coerced)
        self.assertEqual(step.slot.field_name, "currentSavings")
        self.assertEqual(step.state.payload["monthlyRevenue"], 150000.0)

    def test_invalid_supplied_value_reprompts_that_field(self) -> None:
        coerced = dialogue.coerce_payload("hiring", {"monthlyRevenue": "0", "monthlyExpenses": "80k"})
        self.assertIn("monthlyRevenue", coerced.failures)
        step = dialogue.start(dialogue.new_state("u1:s1"), "Can I hire?", intent="hiring", payload=coerced)
        self.assertEqual(step.kind, "reprompt")
        self.assertEqual(step.slot.field_name, "monthlyRevenue")
        self.assertNotIn("monthlyRevenue", step.state.payload)
        self.assertEqual(step.state.payload["monthlyExpenses"], 80000.0)

    def test_seed_never_overrides_supplied_values(self) -> None:
        coerced = dialogue.coerce_payload("hiring", {"monthlyRevenue": 200000})
        step = dialogue.start(
            dialogue.new_state("u1:s1"),
            "Can I hire?",
            intent="hiring",
            payload=coerced,
            seed={"monthlyRevenue": 1.0, "monthlyExpenses": 90000.0},
        )
        self.assertEqual(step.state.payload["monthlyRevenue"], 200000.0)
        self.assertEqual(step.state.payload["monthlyExpenses"], 90000.0)

    def test_same_flow_merges_payload_monotonically(self) -> None:
        first = dialogue.start(
            dialogue.new_state("u1:s1"),
            "Can I hire?",
            intent="hiring",
            payload=dialogue.coerce_payload("hiring", {"monthlyRevenue": 150000}),
        )
        second = dialogue.start(
            first.state,
            "Can I hire?",
            intent="hiring",
            payload=dialogue.coerce_payload("hiring", {"monthlyExpenses": 80000}),
        )
        self.assertEqual(second.state.payload, {"monthlyRevenue": 150000.0, "monthlyExpenses": 80000.0})

    def test_cancel_clears_flow_and_new_question_starts_empty(self) -> None:
        step = dialogue.start(dialogue.new_state("u1:s1"), "Can I hire a cashier?")
        step = dialogue.submit(step.state, "150k")
        step = dialogue.submit(step.state, "80k")
        self.assertEqual(len(step.state.payload), 2)

        cancelled = dialogue.cancel(step.state)
        self.assertEqual(cancelled.kind, "cancelled")
        self.assertEqual(cancelled.state.phase, "awaiting_question")
        self.assertEqual(cancelled.state.payload, {})
        self.assertIsNone(cancelled.state.intent)
        self.assertIsNone(cancelled.state.pending_field)

        fresh = dialogue.start(cancelled.state, "Can I hire a cashier?")
        self.assertEqual(fresh.state.payload, {})
        self.assertEqual(fresh.slot.field_name, "monthlyRevenue")

    def test_retry_reenters_evaluation_with_last_payload(self) -> None:
        step, _ = _run_to_evaluation("hiring")
        resolved_payload = dict(step.state.payload)
        done = dialogue.complete(step.state)
        self.assertEqual(done.phase, "completed")
        self.assertEqual(done.payload, {})

        again = dialogue.retry(done)
        self.assertEqual(again.kind, "evaluate")
        self.assertEqual(again.state.intent, "hiring")
        self.assertEqual(again.state.payload, resolved_payload)

    def test_retry_without_history(self) -> None:
        step = dialogue.retry(dialogue.new_state("u1:s1"))
        self.assertEqual(step.kind, "nothing_to_retry")

    def test_submit_requires_pending_slot(self) -> None:
        with self.assertRaises(ValueError):
            dialogue.submit(dialogue.new_state("u1:s1"), "100")


if __name__ == "__main__":
    unittest.main()
