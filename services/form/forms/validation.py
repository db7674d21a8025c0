"""Field kinds and submission value rules for dynamic forms."""
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Tuple

TEXT_FIELD = "text_field"
TEXT_AREA = "text_area"
SELECT = "select"
CHECK_BOX = "check_box"
CHECK_BOX_GROUP = "check_box_group"

FIELD_KINDS: Tuple[str, ...] = (TEXT_FIELD, TEXT_AREA, SELECT, CHECK_BOX, CHECK_BOX_GROUP)

REQUIRED = "required"
NUMBER = "number"
MAX_LENGTH = "max_length"
MIN_LENGTH = "min_length"

# Evaluation order of the rules; messages are appended in this order.
VALIDATION_TYPES: Tuple[str, ...] = (REQUIRED, NUMBER, MAX_LENGTH, MIN_LENGTH)

NUMBER_PATTERN = re.compile(r"[+-]?[\d,]+\.?\d*")


def is_blank(value: Any) -> bool:
    """Return ``True`` for ``None``, ``False``, whitespace and empty collections."""

    if value is None or value is False:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def is_number(value: Any) -> bool:
    return NUMBER_PATTERN.fullmatch(str(value)) is not None


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


def error_for_value(
    value: Any,
    validation: str,
    *,
    required: bool = False,
    number: bool = False,
    max_length: Optional[int] = None,
    min_length: Optional[int] = None,
) -> Optional[str]:
    """Return the message suffix for a violated rule, or ``None``.

    The suffix is meant to follow the field's display name, e.g.
    ``"Age" + " must be a number."``.
    """

    if validation == REQUIRED:
        if required and is_blank(value):
            return " cannot be blank."
    elif validation == NUMBER:
        if number and not is_blank(value) and not is_number(value):
            return " must be a number."
    elif validation == MAX_LENGTH:
        if max_length is not None and not is_blank(value) and len(_as_text(value)) > max_length:
            return f" must be less than {max_length} characters long."
    elif validation == MIN_LENGTH:
        if min_length is not None and len(_as_text(value)) < min_length:
            return f" must be greater than {min_length} characters long."
    else:
        raise ValueError(f"Unknown validation type: {validation}")
    return None


def rule_settings(field: Any) -> Dict[str, Any]:
    """Collect the rule toggles configured on a form field."""

    return {
        "required": bool(field.required),
        "number": bool(field.number),
        "max_length": field.max_length,
        "min_length": field.min_length,
    }


class SubmissionErrors(dict):
    """Field name to list of messages, filled while a submission is validated."""

    def add(self, name: str, message: str) -> None:
        self.setdefault(name, []).append(message)

    def extend(self, name: str, messages: List[str]) -> None:
        for message in messages:
            if message not in self.get(name, []):
                self.add(name, message)

    def full_messages(self) -> List[str]:
        return [message for messages in self.values() for message in messages]

    def as_dict(self) -> Dict[str, List[str]]:
        return {name: list(messages) for name, messages in self.items()}
