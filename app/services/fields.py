"""Construction and editing helpers for single form fields."""
from __future__ import annotations

import uuid
from typing import Any

from app.core.errors import IndexOutOfRange
from app.schemas.field import (
    OPTION_TYPES,
    FieldType,
    FormField,
    Option,
    option_value,
)

TYPE_LABELS: dict[FieldType, str] = {
    FieldType.TEXT: "Text",
    FieldType.NUMBER: "Number",
    FieldType.TEXTAREA: "Textarea",
    FieldType.SELECT: "Select",
    FieldType.RADIO: "Radio",
    FieldType.CHECKBOX: "Checkbox",
    FieldType.DATE: "Date",
    FieldType.EMAIL: "Email",
    FieldType.PASSWORD: "Password",
}

# Attributes that only make sense for some field types.
TYPE_SPECIFIC_ATTRIBUTES: dict[str, frozenset[FieldType]] = {
    "options": OPTION_TYPES,
    "min_value": frozenset({FieldType.NUMBER}),
    "max_value": frozenset({FieldType.NUMBER}),
    "multiple": frozenset({FieldType.SELECT}),
}


def new_field_id() -> str:
    return str(uuid.uuid4())


def default_options() -> list[Option]:
    return [
        Option(label="Option 1", value="option1"),
        Option(label="Option 2", value="option2"),
    ]


def create_field(field_type: FieldType | str, position: int) -> FormField:
    """Create a field with the defaults for ``field_type`` at ``position``."""

    field_type = FieldType(field_type)
    data: dict[str, Any] = {
        "id": new_field_id(),
        "type": field_type,
        "label": f"New {TYPE_LABELS[field_type]} Field",
        "name": f"field_{position}",
        "required": False,
        "validations": [],
        "order": position,
    }
    if field_type in OPTION_TYPES:
        data["options"] = default_options()
    return FormField.model_validate(data)


def update_option(field: FormField, index: int, new_label: str) -> FormField:
    """Rename an option and recompute its value from the new label."""

    options = list(field.options or [])
    if not 0 <= index < len(options):
        raise IndexOutOfRange(index, len(options))
    options[index] = Option(label=new_label, value=option_value(new_label))
    return _with_options(field, options)


def add_option(field: FormField) -> FormField:
    """Append a numbered placeholder option."""

    options = list(field.options or [])
    number = len(options) + 1
    taken = {option.value for option in options}
    while f"option{number}" in taken:
        number += 1
    options.append(Option(label=f"Option {number}", value=f"option{number}"))
    return _with_options(field, options)


def remove_option(field: FormField, index: int) -> FormField:
    options = list(field.options or [])
    if not 0 <= index < len(options):
        raise IndexOutOfRange(index, len(options))
    del options[index]
    return _with_options(field, options)


def _with_options(field: FormField, options: list[Option]) -> FormField:
    data = field.model_dump()
    data["options"] = [option.model_dump() for option in options]
    return FormField.model_validate(data)


def retype_field(field: FormField, field_type: FieldType) -> dict[str, Any]:
    """Return the field's attributes adjusted for a new type.

    Attributes irrelevant to ``field_type`` are dropped and select/radio
    fields receive default options when they have none.
    """

    data = field.model_dump()
    data["type"] = field_type
    for attribute, types in TYPE_SPECIFIC_ATTRIBUTES.items():
        if field_type not in types:
            data[attribute] = None
    if field_type in OPTION_TYPES and not data.get("options"):
        data["options"] = [option.model_dump() for option in default_options()]
    return data
