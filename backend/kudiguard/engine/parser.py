from __future__ import annotations

import re
from typing import Any

from .contracts import ParseFailure, SlotDefinitionV1

_NUMBER_TOKEN = re.compile(r"(-?\d+(?:\.\d+)?)\s*([km])?(?![a-z])", re.IGNORECASE)
_SUFFIX_MULTIPLIERS = {"k": 1_000.0, "m": 1_000_000.0}
_ZERO_WORDS = {"none", "nil", "zero", "nothing"}
_AFFIRMATIVE = {"yes", "y", "true"}
_NEGATIVE = {"no", "n", "false"}


def _zero_check(value: float, slot: SlotDefinitionV1) -> float | ParseFailure:
    if value < 0:
        return ParseFailure(reason="Please enter a positive number.")
    if value == 0 and not slot.zero_allowed:
        return ParseFailure(reason="This value must be greater than zero.")
    return value


def parse_number(raw: Any, slot: SlotDefinitionV1) -> float | ParseFailure:
    if isinstance(raw, bool):
        return ParseFailure(reason="Please enter a number.")
    if isinstance(raw, (int, float)):
        return _zero_check(float(raw), slot)

    text = str(raw or "").strip().lower()
    if not text:
        return ParseFailure(reason="Please enter a number.")
    if text in _ZERO_WORDS:
        return _zero_check(0.0, slot)

    match = _NUMBER_TOKEN.search(text.replace(",", ""))
    if match is None:
        return ParseFailure(reason="Please enter a number, for example 50000 or 50k.")
    value = float(match.group(1))
    suffix = (match.group(2) or "").lower()
    if suffix:
        value *= _SUFFIX_MULTIPLIERS[suffix]
    return _zero_check(value, slot)


def parse_boolean(raw: Any) -> bool | ParseFailure:
    if isinstance(raw, bool):
        return raw
    text = str(raw or "").strip().lower().rstrip(".!")
    if text in _AFFIRMATIVE:
        return True
    if text in _NEGATIVE:
        return False
    return ParseFailure(reason="Please answer yes or no.")


def _enum_text(value: str) -> str:
    return " ".join(value.replace("_", " ").lower().split())


def parse_enum(raw: Any, slot: SlotDefinitionV1) -> str | ParseFailure:
    text = _enum_text(str(raw or ""))
    if text:
        for option in slot.options:
            option_text = _enum_text(option)
            if option_text in text or (len(text) >= 4 and text in option_text):
                return option
    choices = ", ".join(_enum_text(option) for option in slot.options)
    return ParseFailure(reason=f"Please choose one of: {choices}.")


def parse_value(raw: Any, slot: SlotDefinitionV1) -> Any:
    """Convert a raw answer into the slot's typed value, or a ParseFailure."""
    if slot.value_type == "number":
        return parse_number(raw, slot)
    if slot.value_type == "boolean":
        return parse_boolean(raw)
    return parse_enum(raw, slot)
