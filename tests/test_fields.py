from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.core.errors import IndexOutOfRange
from app.schemas.field import (
    DerivedFieldConfig,
    FieldType,
    FormField,
    Option,
    ValidationKind,
    ValidationRule,
)
from app.services.fields import add_option, create_field, remove_option, update_option


def test_create_field_defaults_per_type() -> None:
    text = create_field(FieldType.TEXT, 0)
    assert text.label == "New Text Field"
    assert text.name == "field_0"
    assert text.order == 0
    assert text.required is False
    assert text.validations == []
    assert text.options is None

    select = create_field("select", 3)
    assert select.order == 3
    assert [(option.label, option.value) for option in select.options] == [
        ("Option 1", "option1"),
        ("Option 2", "option2"),
    ]

    number = create_field(FieldType.NUMBER, 1)
    assert number.min_value is None and number.max_value is None

    checkbox = create_field(FieldType.CHECKBOX, 2)
    assert checkbox.placeholder is None

    assert create_field(FieldType.RADIO, 0).id != create_field(FieldType.RADIO, 0).id


def test_renaming_option_recomputes_value() -> None:
    field = FormField(
        id="colour",
        type=FieldType.SELECT,
        label="Colour",
        name="colour",
        options=[Option(label="Option 1", value="option1")],
    )

    renamed = update_option(field, 0, "Red")

    assert renamed.options == [Option(label="Red", value="red")]
    assert field.options[0].value == "option1"
    assert update_option(renamed, 0, "Dark  Blue").options[0].value == "dark_blue"


def test_update_option_rejects_bad_index() -> None:
    field = create_field(FieldType.RADIO, 0)
    with pytest.raises(IndexOutOfRange):
        update_option(field, 2, "Missing")
    with pytest.raises(IndexOutOfRange):
        update_option(field, -1, "Missing")


def test_option_values_must_stay_unique() -> None:
    field = create_field(FieldType.SELECT, 0)
    field = update_option(field, 0, "Red")
    with pytest.raises(ValidationError):
        update_option(field, 1, "red")


def test_add_and_remove_options() -> None:
    field = add_option(create_field(FieldType.SELECT, 0))
    assert [option.value for option in field.options] == ["option1", "option2", "option3"]

    field = remove_option(field, 0)
    assert [option.value for option in field.options] == ["option2", "option3"]

    field = remove_option(field, 0)
    with pytest.raises(ValidationError):
        remove_option(field, 0)


def test_type_specific_attributes_are_rejected_elsewhere() -> None:
    with pytest.raises(ValidationError):
        FormField(id="a", type=FieldType.TEXT, label="A", name="a", min_value=1)
    with pytest.raises(ValidationError):
        FormField(id="a", type=FieldType.RADIO, label="A", name="a", multiple=True)
    with pytest.raises(ValidationError):
        FormField(
            id="a",
            type=FieldType.TEXT,
            label="A",
            name="a",
            options=[Option(label="One")],
        )
    with pytest.raises(ValidationError):
        FormField(id="a", type=FieldType.NUMBER, label="A", name="a", min_value=5, max_value=1)


def test_validation_rule_parameters_and_default_messages() -> None:
    rule = ValidationRule(kind=ValidationKind.MIN_LENGTH, value="3")
    assert rule.value == 3
    assert rule.message == "Minimum length is 3 characters"

    legacy = ValidationRule.model_validate({"type": "email"})
    assert legacy.kind is ValidationKind.EMAIL
    assert legacy.message == "Please enter a valid email address"

    with pytest.raises(ValidationError):
        ValidationRule(kind=ValidationKind.PATTERN)
    with pytest.raises(ValidationError):
        ValidationRule(kind=ValidationKind.PATTERN, pattern="(")
    with pytest.raises(ValidationError):
        ValidationRule(kind=ValidationKind.MIN, value="abc")
    with pytest.raises(ValidationError):
        ValidationRule(kind=ValidationKind.MAX_LENGTH, value=-1)


def test_required_rule_marks_field_required() -> None:
    field = FormField.model_validate(
        {
            "id": "a",
            "type": "text",
            "label": "A",
            "name": "a",
            "validations": [{"kind": "required"}],
        }
    )
    assert field.required is True


def test_derived_config_placeholders_are_bounded() -> None:
    with pytest.raises(ValidationError):
        DerivedFieldConfig(parent_fields=["a"], formula="$0 + $1")
    with pytest.raises(ValidationError):
        DerivedFieldConfig(parent_fields=[], formula="1")
    with pytest.raises(ValidationError):
        FormField(
            id="a",
            type=FieldType.NUMBER,
            label="A",
            name="a",
            derived_field=DerivedFieldConfig(parent_fields=["a"], formula="$0"),
        )


def test_payload_uses_camel_case_keys_and_omits_absent_values() -> None:
    field = create_field(FieldType.NUMBER, 0).model_copy(update={"min_value": 1})

    payload = field.to_payload()

    assert payload["minValue"] == 1
    assert "maxValue" not in payload
    assert "derivedField" not in payload
    assert FormField.model_validate(payload) == field
