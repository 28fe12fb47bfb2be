"""Typed field values keyed by the kind of input that produced them."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from app.schemas.field import FieldType, FormField


class TextValue(BaseModel):
    kind: Literal["text"] = "text"
    value: str


class NumberValue(BaseModel):
    kind: Literal["number"] = "number"
    value: int | float


class BoolValue(BaseModel):
    kind: Literal["bool"] = "bool"
    value: bool


class DateValue(BaseModel):
    kind: Literal["date"] = "date"
    value: date


class OptionValue(BaseModel):
    kind: Literal["option"] = "option"
    value: str


class OptionSetValue(BaseModel):
    kind: Literal["option_set"] = "option_set"
    value: list[str]


FieldValue = Annotated[
    Union[TextValue, NumberValue, BoolValue, DateValue, OptionValue, OptionSetValue],
    Field(discriminator="kind"),
]

TEXT_TYPES = frozenset(
    {FieldType.TEXT, FieldType.TEXTAREA, FieldType.EMAIL, FieldType.PASSWORD}
)


def is_empty(value: Any) -> bool:
    """Return whether a raw input counts as "nothing entered"."""

    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def to_number(value: Any) -> int | float:
    """Convert a raw numeric input, raising ``ValueError`` when not numeric."""

    if isinstance(value, bool):
        msg = "Number fields require numeric input"
        raise ValueError(msg)
    if isinstance(value, (int, float)):
        return value
    try:
        if isinstance(value, Decimal):
            decimal_value = value
        elif isinstance(value, str):
            decimal_value = Decimal(value.strip())
        else:
            msg = "Number fields require numeric input"
            raise ValueError(msg)
    except InvalidOperation as exc:
        msg = "Number fields require numeric input"
        raise ValueError(msg) from exc
    if not decimal_value.is_finite():
        msg = "Number fields require finite input"
        raise ValueError(msg)
    if decimal_value == decimal_value.to_integral_value():
        return int(decimal_value)
    return float(decimal_value)


def to_date(value: Any) -> date:
    """Convert a raw date input, raising ``ValueError`` when not an ISO date."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError as exc:
            msg = "Date fields require ISO 8601 date strings"
            raise ValueError(msg) from exc
    msg = "Date fields require ISO 8601 date strings"
    raise ValueError(msg)


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "false"}:
            return lowered == "true"
    msg = "Checkbox fields accept true/false"
    raise ValueError(msg)


def to_field_value(field: FormField, raw: Any) -> FieldValue | None:
    """Coerce a raw input into the typed value for ``field``.

    Returns ``None`` for empty input. Raises ``ValueError`` when the input
    cannot represent a value of the field's type.
    """

    if is_empty(raw) and field.type is not FieldType.CHECKBOX:
        return None

    match field.type:
        case FieldType.NUMBER:
            return NumberValue(value=to_number(raw))
        case FieldType.DATE:
            return DateValue(value=to_date(raw))
        case FieldType.CHECKBOX:
            return BoolValue(value=False if is_empty(raw) else to_bool(raw))
        case FieldType.SELECT | FieldType.RADIO:
            return _to_option_value(field, raw)
        case _ if field.type in TEXT_TYPES:
            if isinstance(raw, (list, dict)):
                msg = "Text fields require scalar input"
                raise ValueError(msg)
            if isinstance(raw, date):
                return TextValue(value=raw.isoformat())
            return TextValue(value=str(raw))
    raise ValueError(f"Unsupported field type: {field.type}")  # pragma: no cover


def _to_option_value(field: FormField, raw: Any) -> OptionValue | OptionSetValue:
    allowed = {option.value for option in field.options or []}
    if field.allows_multiple:
        items = raw if isinstance(raw, (list, tuple)) else [raw]
        selected: list[str] = []
        for item in items:
            if not isinstance(item, str) or item not in allowed:
                msg = "Value must be one of the available options"
                raise ValueError(msg)
            if item not in selected:
                selected.append(item)
        return OptionSetValue(value=selected)
    if not isinstance(raw, str) or raw not in allowed:
        msg = "Value must be one of the available options"
        raise ValueError(msg)
    return OptionValue(value=raw)


def plain_value(value: FieldValue | None) -> Any:
    """Unwrap a typed value to the plain value used by formulas and payloads."""

    return None if value is None else value.value
