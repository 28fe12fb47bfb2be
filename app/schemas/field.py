"""Pydantic schemas for form field definitions."""
from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

PLACEHOLDER_PATTERN = re.compile(r"\$(\d+)")


class FieldType(str, Enum):
    """Field types offered by the builder palette."""

    TEXT = "text"
    NUMBER = "number"
    TEXTAREA = "textarea"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    DATE = "date"
    EMAIL = "email"
    PASSWORD = "password"


OPTION_TYPES = frozenset({FieldType.SELECT, FieldType.RADIO})


class ValidationKind(str, Enum):
    """Checks a user can attach to a field."""

    REQUIRED = "required"
    MIN_LENGTH = "minLength"
    MAX_LENGTH = "maxLength"
    EMAIL = "email"
    PASSWORD = "password"
    MIN = "min"
    MAX = "max"
    PATTERN = "pattern"
    CUSTOM = "custom"


LENGTH_KINDS = frozenset({ValidationKind.MIN_LENGTH, ValidationKind.MAX_LENGTH})
BOUND_KINDS = frozenset({ValidationKind.MIN, ValidationKind.MAX})


def default_message(kind: ValidationKind, value: Any = None) -> str:
    """Return the user-facing message used when a rule carries none."""

    match kind:
        case ValidationKind.REQUIRED:
            return "This field is required"
        case ValidationKind.MIN_LENGTH:
            return f"Minimum length is {value} characters"
        case ValidationKind.MAX_LENGTH:
            return f"Maximum length is {value} characters"
        case ValidationKind.EMAIL:
            return "Please enter a valid email address"
        case ValidationKind.PASSWORD:
            return "Password must be at least 8 characters and contain both letters and numbers"
        case ValidationKind.MIN:
            return f"Value must be at least {value}"
        case ValidationKind.MAX:
            return f"Value must not exceed {value}"
        case ValidationKind.PATTERN:
            return "Value does not match the required pattern"
        case ValidationKind.CUSTOM:
            return "Value is invalid"
    raise ValueError(f"Unsupported validation kind: {kind}")  # pragma: no cover


class SchemaModel(BaseModel):
    """Base model serializing with the camelCase keys of stored forms."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ValidationRule(SchemaModel):
    kind: ValidationKind = Field(validation_alias=AliasChoices("kind", "type"))
    value: float | int | str | None = None
    pattern: str | None = None
    message: str = ""

    @model_validator(mode="before")
    @classmethod
    def fill_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        try:
            kind = ValidationKind(data.get("kind", data.get("type")))
        except ValueError:
            return data
        # Pattern sources may also arrive in ``value``.
        if kind is ValidationKind.PATTERN and not data.get("pattern") and isinstance(data.get("value"), str):
            data = {**data, "pattern": data["value"], "value": None}
        if not data.get("message"):
            data = {**data, "message": default_message(kind, data.get("value"))}
        return data

    @model_validator(mode="after")
    def validate_parameters(self) -> "ValidationRule":
        if self.kind is ValidationKind.PATTERN:
            if not self.pattern:
                msg = "Pattern rules require a pattern"
                raise ValueError(msg)
            try:
                re.compile(self.pattern)
            except re.error as exc:
                msg = f"Invalid pattern: {exc}"
                raise ValueError(msg) from exc
        elif self.kind in BOUND_KINDS:
            if isinstance(self.value, bool) or not isinstance(self.value, (int, float)):
                msg = f"{self.kind.value} rules require a numeric value"
                raise ValueError(msg)
        elif self.kind in LENGTH_KINDS:
            if (
                isinstance(self.value, bool)
                or not isinstance(self.value, (int, float))
                or self.value < 0
                or int(self.value) != self.value
            ):
                msg = f"{self.kind.value} rules require a non-negative whole number"
                raise ValueError(msg)
        elif self.kind is ValidationKind.CUSTOM:
            if not isinstance(self.value, str) or not self.value.strip():
                msg = "Custom rules require a formula"
                raise ValueError(msg)
        return self

    @field_validator("value", mode="before")
    @classmethod
    def coerce_numeric_string(cls, value: Any) -> Any:
        # Builder inputs arrive as text; keep regex and formula sources untouched.
        if isinstance(value, str):
            try:
                number = float(value)
            except ValueError:
                return value
            return int(number) if number.is_integer() else number
        return value


class Option(SchemaModel):
    label: Annotated[str, Field(min_length=1)]
    value: str = ""

    @model_validator(mode="before")
    @classmethod
    def derive_value(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("value") and data.get("label"):
            data = {**data, "value": option_value(data["label"])}
        return data


def option_value(label: str) -> str:
    """Derive an option value from its label."""

    return re.sub(r"\s+", "_", label.strip().lower())


class DerivedFieldConfig(SchemaModel):
    parent_fields: Annotated[list[str], Field(min_length=1)]
    formula: Annotated[str, Field(min_length=1)]
    description: str = ""

    @model_validator(mode="after")
    def validate_placeholders(self) -> "DerivedFieldConfig":
        if len(set(self.parent_fields)) != len(self.parent_fields):
            msg = "Parent fields must not repeat"
            raise ValueError(msg)
        for match in PLACEHOLDER_PATTERN.finditer(self.formula):
            index = int(match.group(1))
            if index >= len(self.parent_fields):
                msg = f"Formula references ${index} but only {len(self.parent_fields)} parent fields are selected"
                raise ValueError(msg)
        return self


class FormField(SchemaModel):
    id: Annotated[str, Field(min_length=1)]
    type: FieldType
    label: str
    name: str
    placeholder: str | None = None
    required: bool = False
    default_value: Any = None
    validations: list[ValidationRule] = Field(default_factory=list)
    options: list[Option] | None = None
    derived_field: DerivedFieldConfig | None = None
    order: Annotated[int, Field(ge=0)] = 0
    min_value: float | int | None = None
    max_value: float | int | None = None
    multiple: bool | None = None

    @model_validator(mode="before")
    @classmethod
    def apply_required_rule(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        rules = data.get("validations") or []
        for rule in rules:
            kind = rule.kind if isinstance(rule, ValidationRule) else (
                rule.get("kind", rule.get("type")) if isinstance(rule, dict) else None
            )
            if kind in (ValidationKind.REQUIRED, ValidationKind.REQUIRED.value):
                return {**data, "required": True}
        return data

    @model_validator(mode="after")
    def validate_type_attributes(self) -> "FormField":
        if self.type in OPTION_TYPES:
            if not self.options:
                msg = "Options are required for select and radio fields"
                raise ValueError(msg)
            values = [option.value for option in self.options]
            if len(set(values)) != len(values):
                msg = "Option values must be unique"
                raise ValueError(msg)
        elif self.options is not None:
            msg = "Options are only allowed for select and radio fields"
            raise ValueError(msg)

        if self.type is not FieldType.NUMBER and (
            self.min_value is not None or self.max_value is not None
        ):
            msg = "Minimum and maximum values are only allowed for number fields"
            raise ValueError(msg)
        if (
            self.min_value is not None
            and self.max_value is not None
            and self.min_value > self.max_value
        ):
            msg = "Minimum value must not exceed maximum value"
            raise ValueError(msg)

        if self.multiple is not None and self.type is not FieldType.SELECT:
            msg = "Multiple selection is only allowed for select fields"
            raise ValueError(msg)

        if self.derived_field is not None and self.id in self.derived_field.parent_fields:
            msg = "A derived field cannot reference itself"
            raise ValueError(msg)
        return self

    @property
    def is_derived(self) -> bool:
        return self.derived_field is not None

    @property
    def allows_multiple(self) -> bool:
        return self.type is FieldType.SELECT and bool(self.multiple)
