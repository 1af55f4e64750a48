from __future__ import annotations

import unicodedata

from .contracts import ClarificationV1, IntentName

# Ordered: the first rule with a matching term wins.
INTENT_RULES: tuple[tuple[IntentName, tuple[str, ...]], ...] = (
    ("hiring", ("hire", "hiring", "staff", "employee", "worker", "bonus", "salary", "salaries")),
    ("inventory", ("restock", "stock", "inventory", "buy more goods", "supplier order")),
    ("loan_management", ("loan", "borrow", "debt", "repay", "credit facility")),
    ("business_expansion", ("expand", "expansion", "second branch", "new branch", "new location", "open another")),
    ("equipment", ("equipment", "machine", "generator", "solar", "inverter", "freezer", "asset purchase")),
    ("marketing", ("marketing", "advert", "promotion", "promote", "campaign")),
    ("savings", ("save", "saving", "emergency fund", "slow season", "reserve")),
    (
        "general_advice",
        (
            "cash flow",
            "cashflow",
            "profit margin",
            "expenses",
            "withdraw",
            "receivable",
            "price",
            "pricing",
            "financial health",
            "how is my business",
        ),
    ),
)

POWER_SOLUTION_TERMS = ("generator", "solar", "inverter", "power")

SUGGESTED_QUESTIONS = [
    "Can I afford to hire a new staff member?",
    "Should I restock my inventory this month?",
    "Should I buy a new generator for my shop?",
    "Is it a good time to take a business loan?",
    "How much should I save for the slow season?",
    "Can I open a second branch?",
]


def normalize_question(question: str) -> str:
    stripped = "".join(
        ch for ch in unicodedata.normalize("NFD", str(question or "")) if unicodedata.category(ch) != "Mn"
    )
    return " ".join(stripped.lower().split())


def _contains_any(text: str, terms: tuple[str, ...]) -> bool:
    return any(term in text for term in terms)


def resolve_intent(question: str) -> IntentName:
    normalized = normalize_question(question)
    if not normalized:
        return "unknown"
    for intent, terms in INTENT_RULES:
        if _contains_any(normalized, terms):
            return intent
    return "unknown"


def infer_question_hints(intent: IntentName, question: str) -> dict[str, bool]:
    """Payload values implied by the question itself."""
    if intent != "equipment":
        return {}
    return {"isPowerSolution": _contains_any(normalize_question(question), POWER_SOLUTION_TERMS)}


def clarification_for(question: str) -> ClarificationV1:
    if not normalize_question(question):
        message = "Please type your business question so I can help."
    else:
        message = (
            "I couldn't tell which business decision you're asking about. "
            "Could you rephrase it, for example mentioning hiring, stock, equipment, a loan or savings?"
        )
    return ClarificationV1(message=message, suggested_questions=list(SUGGESTED_QUESTIONS))
