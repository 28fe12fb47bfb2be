from __future__ import annotations

import asyncio
from datetime import date

import pytest

from app.core.errors import FieldNotFound, ReadOnlyFieldError
from app.schemas.field import FieldType
from app.schemas.form import FormSchema
from app.schemas.values import BoolValue, NumberValue
from app.services import builder
from app.services.runtime import FormRuntime, RuntimeState
from app.services.validation import INVALID_DATE_MESSAGE, INVALID_OPTION_MESSAGE, REQUIRED_MESSAGE

TODAY = date(2026, 10, 17)


def _required_text_schema() -> FormSchema:
    schema = builder.add_field(builder.new_schema(), FieldType.TEXT)
    return builder.update_field(schema, schema.fields[0].id, {"required": True})


def test_value_change_updates_errors_and_derived_fields(age_schema: FormSchema) -> None:
    birth_year, age, adult = (field.id for field in age_schema.fields)
    runtime = FormRuntime(age_schema, today=TODAY)

    assert runtime.on_value_change(birth_year, "2000") == ""
    assert runtime.values[age] == 26
    assert runtime.values[adult] is True

    runtime.on_value_change(birth_year, "2015")
    assert runtime.values[age] == 11
    assert runtime.values[adult] is False

    assert runtime.on_value_change(birth_year, "") == REQUIRED_MESSAGE
    assert runtime.errors == {birth_year: REQUIRED_MESSAGE}
    assert runtime.values[age] is None


def test_derived_fields_are_read_only(age_schema: FormSchema) -> None:
    runtime = FormRuntime(age_schema, today=TODAY)
    age = age_schema.fields[1].id

    with pytest.raises(ReadOnlyFieldError):
        runtime.on_value_change(age, 40)
    with pytest.raises(FieldNotFound):
        runtime.on_value_change("missing", 1)

    runtime.load({age: 40})
    assert runtime.values.get(age) is None


def test_submit_reports_every_error_then_accepts_valid_values() -> None:
    schema = _required_text_schema()
    field_id = schema.fields[0].id
    received: list[dict] = []
    runtime = FormRuntime(schema, on_submitted=received.append)

    rejected = runtime.on_submit()
    assert not rejected.submitted
    assert rejected.errors == {field_id: REQUIRED_MESSAGE}
    assert runtime.state is RuntimeState.EDITING
    assert received == []

    runtime.on_value_change(field_id, "hello")
    assert runtime.errors == {}

    accepted = runtime.on_submit()
    assert accepted.submitted
    assert runtime.state is RuntimeState.SUBMITTED
    assert received == [{field_id: "hello"}]

    assert runtime.reset(accepted.reset_token) is True
    assert runtime.values == {}
    assert runtime.state is RuntimeState.EDITING


def test_stale_reset_is_ignored() -> None:
    schema = _required_text_schema()
    field_id = schema.fields[0].id
    runtime = FormRuntime(schema)
    runtime.on_value_change(field_id, "first")
    token = runtime.on_submit().reset_token

    runtime.on_value_change(field_id, "second")

    assert runtime.reset(token) is False
    assert runtime.values == {field_id: "second"}
    assert runtime.state is RuntimeState.EDITING


def test_defaults_seed_values() -> None:
    schema = builder.add_field(builder.new_schema(), FieldType.NUMBER)
    schema = builder.add_field(schema, FieldType.NUMBER)
    price, doubled = (field.id for field in schema.fields)
    schema = builder.update_field(schema, price, {"defaultValue": 5})
    schema = builder.set_derived_field(schema, doubled, {"parentFields": [price], "formula": "$0 * 2"})

    runtime = FormRuntime(schema)

    assert runtime.values == {price: 5, doubled: 10}
    assert runtime.typed_values() == {
        price: NumberValue(value=5),
        doubled: NumberValue(value=10),
    }
    assert runtime.submittable


def test_typed_values_follow_field_types(age_schema: FormSchema) -> None:
    birth_year, age, adult = (field.id for field in age_schema.fields)
    runtime = FormRuntime(age_schema, today=TODAY)
    runtime.on_value_change(birth_year, "1990")

    typed = runtime.typed_values()

    assert typed[birth_year] == NumberValue(value=1990)
    assert typed[age] == NumberValue(value=36)
    assert typed[adult] == BoolValue(value=True)


@pytest.mark.anyio("asyncio")
async def test_scheduled_reset_clears_submitted_form() -> None:
    schema = _required_text_schema()
    runtime = FormRuntime(schema, reset_delay=0.01)
    runtime.on_value_change(schema.fields[0].id, "done")
    result = runtime.on_submit()

    runtime.schedule_reset(result.reset_token)
    await asyncio.sleep(0.05)

    assert runtime.values == {}
    assert runtime.state is RuntimeState.EDITING


def test_submit_rejects_values_that_do_not_fit_their_field() -> None:
    schema = builder.add_field(builder.new_schema(), FieldType.DATE)
    schema = builder.add_field(schema, FieldType.SELECT)
    when, choice = (field.id for field in schema.fields)
    schema = builder.update_field(schema, when, {"required": True})
    received: list[dict] = []
    runtime = FormRuntime(schema, on_submitted=received.append)
    runtime.load({when: "not a date", choice: "bogus"})

    result = runtime.on_submit()

    assert not result.submitted
    assert result.errors == {when: INVALID_DATE_MESSAGE, choice: INVALID_OPTION_MESSAGE}
    assert received == []

    runtime.load({when: "2026-10-17", choice: "option2"})
    assert runtime.on_submit().submitted
    assert set(runtime.typed_values()) == {when, choice}
