"""Pydantic schemas for the form builder service."""

from .field import (
    DerivedFieldConfig,
    FieldType,
    FormField,
    Option,
    ValidationKind,
    ValidationRule,
)
from .form import FormSave, FormSchema, FormulaCheckRequest, FormValuesRequest
from .values import (
    BoolValue,
    DateValue,
    FieldValue,
    NumberValue,
    OptionSetValue,
    OptionValue,
    TextValue,
)

__all__ = [
    "BoolValue",
    "DateValue",
    "DerivedFieldConfig",
    "FieldType",
    "FieldValue",
    "FormField",
    "FormSave",
    "FormSchema",
    "FormulaCheckRequest",
    "FormValuesRequest",
    "NumberValue",
    "Option",
    "OptionSetValue",
    "OptionValue",
    "TextValue",
    "ValidationKind",
    "ValidationRule",
]
