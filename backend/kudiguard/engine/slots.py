from __future__ import annotations

from typing import Any, Dict

from jsonschema import Draft202012Validator

from .contracts import IntentName, Payload, SlotConditionV1, SlotDefinitionV1

PROFIT_MARGIN_TRENDS = ("consistent_growth", "positive_fluctuating", "declining_unstable")


def _number(field_name: str, prompt: str, *, zero_allowed: bool = False, required: bool = True, **kwargs: Any) -> SlotDefinitionV1:
    return SlotDefinitionV1(
        field_name=field_name,
        value_type="number",
        prompt=prompt,
        zero_allowed=zero_allowed,
        required=required,
        **kwargs,
    )


def _boolean(field_name: str, prompt: str, *, required: bool = True, **kwargs: Any) -> SlotDefinitionV1:
    return SlotDefinitionV1(
        field_name=field_name,
        value_type="boolean",
        prompt=prompt,
        required=required,
        **kwargs,
    )


def _enum(field_name: str, prompt: str, options: tuple[str, ...], *, required: bool = True) -> SlotDefinitionV1:
    return SlotDefinitionV1(
        field_name=field_name,
        value_type="enum",
        prompt=prompt,
        options=options,
        required=required,
    )


BASELINE_SLOTS: tuple[SlotDefinitionV1, ...] = (
    _number("monthlyRevenue", "What is your average monthly revenue?"),
    _number("monthlyExpenses", "What are your average monthly business expenses?"),
    _number("currentSavings", "How much does the business currently have in savings?", zero_allowed=True),
)

_OWNER_WITHDRAWALS = _number(
    "ownerWithdrawals",
    "How much do you withdraw from the business for personal use each month?",
    zero_allowed=True,
)
_OUTSTANDING_DEBTS = _number(
    "outstandingDebts",
    "What is the total of your outstanding business debts?",
    zero_allowed=True,
    required=False,
)
_DEBT_APR = _number(
    "debtApr",
    "What is the annual interest rate (APR %) on your largest debt?",
    zero_allowed=True,
    required=False,
)

_INTENT_SLOTS: Dict[str, tuple[SlotDefinitionV1, ...]] = {
    "hiring": (
        _OWNER_WITHDRAWALS,
        _number("staffPayroll", "What monthly salary do you plan to pay the new hire?"),
    ),
    "inventory": (
        _number("estimatedInventoryCost", "What is the estimated cost of the inventory you want to buy?"),
        _number("inventoryTurnoverDays", "On average, how many days does it take to sell through your stock?"),
        _number(
            "outstandingSupplierDebts",
            "How much do you currently owe your suppliers?",
            zero_allowed=True,
        ),
        _boolean("isFmcgVendor", "Do you sell fast-moving consumer goods (FMCG)? (yes/no)"),
        _number(
            "supplierCreditTermsDays",
            "How many days of credit do your suppliers give you?",
            zero_allowed=True,
            required=False,
            required_if=SlotConditionV1(field="isFmcgVendor", operator="eq", value=True),
        ),
        _number(
            "averageReceivablesTurnoverDays",
            "On average, how many days do your customers take to pay you?",
            zero_allowed=True,
            required=False,
            required_if=SlotConditionV1(field="isFmcgVendor", operator="eq", value=True),
        ),
        _number(
            "supplierDiscountPercentage",
            "What bulk discount (%) is the supplier offering, if any?",
            zero_allowed=True,
            required=False,
        ),
        _number(
            "storageCostPercentageOfOrder",
            "What will storage cost you, as a percentage of the order value?",
            zero_allowed=True,
            required=False,
            required_if=SlotConditionV1(field="supplierDiscountPercentage", operator="present"),
        ),
    ),
    "equipment": (
        _number("estimatedEquipmentCost", "What is the estimated cost of the equipment?"),
        _boolean("isCriticalReplacement", "Is this replacing equipment your business cannot run without? (yes/no)"),
        _number(
            "expectedRevenueIncreaseMonthly",
            "How much extra monthly revenue do you expect the equipment to bring in?",
            zero_allowed=True,
        ),
        _number(
            "expectedExpenseDecreaseMonthly",
            "How much do you expect the equipment to cut your monthly expenses?",
            zero_allowed=True,
        ),
        _number(
            "existingDebtRepaymentsMonthly",
            "How much do you currently pay towards debts each month?",
            zero_allowed=True,
        ),
        _number(
            "currentEnergyCostMonthly",
            "How much do you spend on energy (fuel, electricity) each month?",
            zero_allowed=True,
            required=False,
            required_if=SlotConditionV1(field="isPowerSolution", operator="eq", value=True),
        ),
        _boolean(
            "hasDiversifiedRevenueStreams",
            "Does the business earn revenue from more than one product line or service? (yes/no)",
            required=False,
            required_if=SlotConditionV1(field="estimatedEquipmentCost", operator="gt", value=1_000_000),
        ),
        _boolean(
            "financingRequired",
            "Will you need a loan or credit to buy this equipment? (yes/no)",
            required=False,
            required_if=SlotConditionV1(
                field="estimatedEquipmentCost",
                operator="gt",
                ref_field="currentSavings",
                factor=0.5,
            ),
        ),
        _number(
            "financingInterestRateAnnual",
            "What annual interest rate (%) will the financing carry?",
            zero_allowed=True,
            required=False,
            required_if=SlotConditionV1(field="financingRequired", operator="eq", value=True),
        ),
        _number(
            "financingTermMonths",
            "Over how many months will you repay the financing?",
            required=False,
            required_if=SlotConditionV1(field="financingRequired", operator="eq", value=True),
        ),
    ),
    "marketing": (
        _OWNER_WITHDRAWALS.model_copy(update={"required": False}),
        _number("proposedMarketingBudget", "How much do you plan to spend on this marketing campaign?"),
        _boolean("isLocalizedPromotion", "Is this a local promotion targeting your immediate area? (yes/no)"),
        _boolean(
            "historicFootTrafficIncrease",
            "Have past promotions noticeably increased customer visits? (yes/no)",
        ),
        _number(
            "salesIncreaseLastCampaign1",
            "By what percentage did sales rise after your last campaign?",
            zero_allowed=True,
            required=False,
        ),
        _number(
            "salesIncreaseLastCampaign2",
            "By what percentage did sales rise after the campaign before that?",
            zero_allowed=True,
            required=False,
        ),
    ),
    "savings": (
        _OWNER_WITHDRAWALS.model_copy(update={"required": False}),
        _boolean("isVolatileIndustry", "Are your sales very seasonal or unpredictable? (yes/no)"),
        _number(
            "consecutiveNegativeCashFlowMonths",
            "How many months in a row have your expenses exceeded your revenue?",
            zero_allowed=True,
        ),
        _OUTSTANDING_DEBTS,
        _DEBT_APR,
    ),
    "loan_management": (
        _OWNER_WITHDRAWALS.model_copy(update={"required": False}),
        _number(
            "totalBusinessLiabilities",
            "What is the total amount the business owes, including the new loan?",
            zero_allowed=True,
        ),
        _number("totalBusinessAssets", "What is the total value of the business assets (cash, stock, equipment)?"),
        _number(
            "totalMonthlyDebtRepayments",
            "How much would you repay towards all debts each month?",
            zero_allowed=True,
        ),
        _boolean(
            "loanPurposeIsRevenueGenerating",
            "Will the borrowed money be used for something that earns revenue? (yes/no)",
        ),
        _DEBT_APR,
    ),
    "business_expansion": (
        _OWNER_WITHDRAWALS.model_copy(update={"required": False}),
        _number("expansionCost", "What is the total estimated cost of the expansion?"),
        _number(
            "capitalAvailablePercentage",
            "What percentage of that cost do you already have available?",
            zero_allowed=True,
        ),
        _enum(
            "profitMarginTrend",
            "How has your profit margin moved over the last 6 months? "
            "(consistent growth, positive fluctuating, declining unstable)",
            PROFIT_MARGIN_TRENDS,
        ),
        _boolean(
            "marketResearchValidatesDemand",
            "Has market research confirmed demand at the new location? (yes/no)",
        ),
    ),
    "general_advice": (
        _OWNER_WITHDRAWALS.model_copy(update={"required": False}),
        _OUTSTANDING_DEBTS,
    ),
}

DECISION_TYPES: Dict[str, str] = {
    "hiring": "hiring_affordability",
    "inventory": "inventory_purchase",
    "equipment": "equipment_purchase",
    "marketing": "marketing_campaign",
    "savings": "savings_strategy",
    "loan_management": "loan_assessment",
    "business_expansion": "expansion_readiness",
    "general_advice": "financial_health_review",
    "unknown": "unknown",
}

# Inferred from the question text rather than asked.
DERIVED_FIELDS = {"isPowerSolution"}


def slots_for(intent: IntentName | str) -> list[SlotDefinitionV1]:
    extra = _INTENT_SLOTS.get(intent)
    if extra is None:
        return []
    return [*BASELINE_SLOTS, *extra]


def slot_for(intent: IntentName | str, field_name: str) -> SlotDefinitionV1 | None:
    for slot in slots_for(intent):
        if slot.field_name == field_name:
            return slot
    return None


def decision_type_for(intent: IntentName | str) -> str:
    return DECISION_TYPES.get(intent, "unknown")


def _condition_met(condition: SlotConditionV1, payload: Payload) -> bool:
    if condition.field not in payload:
        return False
    actual = payload[condition.field]
    if condition.operator == "present":
        return actual is not None
    if condition.ref_field is not None:
        if condition.ref_field not in payload:
            return False
        expected: Any = float(payload[condition.ref_field]) * condition.factor
    else:
        expected = condition.value
    if condition.operator == "eq":
        return actual == expected
    if condition.operator == "gt":
        if isinstance(actual, bool) or not isinstance(actual, (int, float)):
            return False
        return float(actual) > float(expected)
    return False


def is_required(slot: SlotDefinitionV1, payload: Payload) -> bool:
    if slot.required:
        return True
    if slot.required_if is None:
        return False
    return _condition_met(slot.required_if, payload)


def missing_slots(intent: IntentName | str, payload: Payload) -> list[SlotDefinitionV1]:
    return [
        slot
        for slot in slots_for(intent)
        if slot.field_name not in payload and is_required(slot, payload)
    ]


def _slot_json_schema(slot: SlotDefinitionV1) -> Dict[str, Any]:
    if slot.value_type == "boolean":
        return {"type": "boolean"}
    if slot.value_type == "enum":
        return {"type": "string", "enum": list(slot.options)}
    if slot.zero_allowed:
        return {"type": "number", "minimum": 0}
    return {"type": "number", "exclusiveMinimum": 0}


def payload_schema(intent: IntentName | str) -> Dict[str, Any]:
    slots = slots_for(intent)
    properties: Dict[str, Any] = {slot.field_name: _slot_json_schema(slot) for slot in slots}
    for name in DERIVED_FIELDS:
        properties[name] = {"type": "boolean"}
    return {
        "$schema": "https://json-schema.org/draft/2020-12/schema",
        "title": f"{intent}_payload",
        "type": "object",
        "properties": properties,
        "required": [slot.field_name for slot in slots if slot.required],
    }


_validators: Dict[str, Draft202012Validator] = {}


def validate_payload(intent: IntentName | str, payload: Payload) -> list[str]:
    validator = _validators.get(intent)
    if validator is None:
        validator = Draft202012Validator(payload_schema(intent))
        _validators[intent] = validator
    errors = sorted(validator.iter_errors(payload), key=lambda item: list(item.path))
    messages: list[str] = []
    for item in errors:
        path = ".".join(str(part) for part in item.path)
        location = path if path else "$"
        messages.append(f"{location}: {item.message}")
    for slot in missing_slots(intent, payload):
        if not slot.required:
            messages.append(f"$: '{slot.field_name}' is required")
    return messages
