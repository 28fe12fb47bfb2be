"""Validation of entered values against field definitions."""
from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from app.core.errors import FormulaError
from app.schemas.field import FieldType, FormField, ValidationKind, ValidationRule
from app.schemas.form import FormSchema
from app.schemas.values import is_empty, plain_value, to_bool, to_field_value, to_number
from app.services import formula as formula_engine

REQUIRED_MESSAGE = "This field is required"
INVALID_NUMBER_MESSAGE = "Please enter a valid number"
INVALID_DATE_MESSAGE = "Please enter a valid date"
INVALID_OPTION_MESSAGE = "Please choose one of the available options"
INVALID_VALUE_MESSAGE = "Value is invalid"

TYPE_MESSAGES: dict[FieldType, str] = {
    FieldType.NUMBER: INVALID_NUMBER_MESSAGE,
    FieldType.DATE: INVALID_DATE_MESSAGE,
    FieldType.SELECT: INVALID_OPTION_MESSAGE,
    FieldType.RADIO: INVALID_OPTION_MESSAGE,
}

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PASSWORD_PATTERN = re.compile(r"^(?=.*[0-9])(?=.*[a-zA-Z]).{8,}$")


def is_missing(field: FormField, value: Any) -> bool:
    """Return whether ``value`` counts as nothing entered for ``field``."""

    if field.type is FieldType.CHECKBOX and not is_empty(value):
        try:
            return to_bool(value) is False
        except ValueError:
            # Present but malformed; the type check reports it.
            return False
    return is_empty(value)


def validate(field: FormField, raw_value: Any) -> str:
    """Return the first failing message for ``raw_value`` or an empty string."""

    if is_missing(field, raw_value):
        return REQUIRED_MESSAGE if field.required else ""

    for rule in field.validations:
        if not _passes(rule, field, raw_value):
            return rule.message

    try:
        to_field_value(field, raw_value)
    except ValueError:
        return TYPE_MESSAGES.get(field.type, INVALID_VALUE_MESSAGE)

    if field.type is FieldType.NUMBER:
        return _check_number_bounds(field, raw_value)
    return ""


def validate_all(schema: FormSchema, values: Mapping[str, Any]) -> dict[str, str]:
    """Validate every field and return the failing messages keyed by field id."""

    errors: dict[str, str] = {}
    for field in schema.fields:
        message = validate(field, values.get(field.id))
        if message:
            errors[field.id] = message
    return errors


def _passes(rule: ValidationRule, field: FormField, value: Any) -> bool:
    match rule.kind:
        case ValidationKind.REQUIRED:
            return True
        case ValidationKind.MIN_LENGTH:
            return _length(value) >= rule.value
        case ValidationKind.MAX_LENGTH:
            return _length(value) <= rule.value
        case ValidationKind.EMAIL:
            return bool(EMAIL_PATTERN.match(_text(value)))
        case ValidationKind.PASSWORD:
            return bool(PASSWORD_PATTERN.match(_text(value)))
        case ValidationKind.MIN:
            number = _number_or_none(value)
            return number is not None and number >= rule.value
        case ValidationKind.MAX:
            number = _number_or_none(value)
            return number is not None and number <= rule.value
        case ValidationKind.PATTERN:
            return re.search(rule.pattern or "", _text(value)) is not None
        case ValidationKind.CUSTOM:
            return _passes_custom(rule, field, value)
    raise ValueError(f"Unsupported validation kind: {rule.kind}")  # pragma: no cover


def _passes_custom(rule: ValidationRule, field: FormField, value: Any) -> bool:
    try:
        candidate = plain_value(to_field_value(field, value))
        return bool(formula_engine.evaluate(str(rule.value), [candidate]))
    except (FormulaError, ValueError):
        return False


def _check_number_bounds(field: FormField, value: Any) -> str:
    number = _number_or_none(value)
    if number is None:
        return INVALID_NUMBER_MESSAGE
    if field.min_value is not None and number < field.min_value:
        return f"Value must be at least {field.min_value}"
    if field.max_value is not None and number > field.max_value:
        return f"Value must not exceed {field.max_value}"
    return ""


def _number_or_none(value: Any) -> int | float | None:
    try:
        return to_number(value)
    except ValueError:
        return None


def _length(value: Any) -> int:
    if isinstance(value, (list, tuple)):
        return len(value)
    return len(_text(value))


def _text(value: Any) -> str:
    return value if isinstance(value, str) else str(value)
