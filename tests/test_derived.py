from __future__ import annotations

from datetime import date

import pytest

from app.core.errors import CyclicDerivationError, FormulaError, InvalidFormula
from app.schemas.field import DerivedFieldConfig, FieldType
from app.schemas.form import FormSchema
from app.services import builder
from app.services.derived import (
    check_formula,
    compute_derived,
    dependents_of,
    evaluation_order,
    recompute,
)

TODAY = date(2026, 10, 17)


def _ids(schema: FormSchema) -> list[str]:
    return [field.id for field in schema.fields]


def test_compute_derived_from_year_of_birth() -> None:
    config = DerivedFieldConfig(parent_fields=["birth_year"], formula="current_year - $0")

    assert compute_derived(config, [2000], today=TODAY) == 26
    assert compute_derived(config, [None], today=TODAY) is None

    with pytest.raises(FormulaError):
        compute_derived(config, [], today=TODAY)


def test_recompute_follows_dependency_chain(age_schema: FormSchema) -> None:
    birth_year, age, adult = _ids(age_schema)

    values = recompute(age_schema, {birth_year: "2000"}, birth_year, today=TODAY)
    assert values == {birth_year: "2000", age: 26, adult: True}

    values = recompute(age_schema, {**values, birth_year: "2015"}, birth_year, today=TODAY)
    assert values[age] == 11
    assert values[adult] is False


def test_recompute_is_idempotent(age_schema: FormSchema) -> None:
    birth_year = age_schema.fields[0].id

    once = recompute(age_schema, {birth_year: 1990}, today=TODAY)
    twice = recompute(age_schema, once, today=TODAY)

    assert once == twice


def test_failed_computation_keeps_previous_value(age_schema: FormSchema) -> None:
    birth_year, age, adult = _ids(age_schema)
    values = {birth_year: "not a year", age: 30, adult: True}

    assert recompute(age_schema, values, birth_year, today=TODAY) == values


def test_evaluation_order_puts_parents_first(age_schema: FormSchema) -> None:
    birth_year, age, adult = _ids(age_schema)
    reordered = builder.move_field(age_schema, 2, 0)

    assert [field.id for field in evaluation_order(reordered)] == [age, adult]
    assert [field.id for field in dependents_of(reordered, birth_year)] == [age, adult]
    assert [field.id for field in dependents_of(reordered, adult)] == []


def test_cycle_is_detected() -> None:
    schema = builder.add_field(builder.new_schema(), FieldType.NUMBER)
    schema = builder.add_field(schema, FieldType.NUMBER)
    first, second = _ids(schema)
    schema = builder.set_derived_field(schema, first, {"parentFields": [second], "formula": "$0 + 1"})

    with pytest.raises(CyclicDerivationError):
        builder.set_derived_field(schema, second, {"parentFields": [first], "formula": "$0 + 1"})

    data = schema.model_dump()
    data["fields"][1]["derived_field"] = {"parent_fields": [first], "formula": "$0 + 1"}
    cyclic = FormSchema.model_validate(data)
    with pytest.raises(CyclicDerivationError) as excinfo:
        evaluation_order(cyclic)
    assert set(excinfo.value.cycle) == {first, second}


def test_check_formula_uses_sample_values() -> None:
    numbers = DerivedFieldConfig(parent_fields=["a", "b"], formula="$0 + $1")
    assert check_formula(numbers) == 2

    dates = DerivedFieldConfig(parent_fields=["dob"], formula="years_between($0, today)")
    assert check_formula(dates, [FieldType.DATE]) == 0

    with pytest.raises(InvalidFormula):
        check_formula(DerivedFieldConfig(parent_fields=["a"], formula="$0 +"))
    with pytest.raises(InvalidFormula):
        check_formula(DerivedFieldConfig(parent_fields=["a"], formula="year($0)"))


def test_result_without_a_real_value_keeps_previous_value() -> None:
    schema = builder.add_field(builder.new_schema(), FieldType.NUMBER)
    schema = builder.add_field(schema, FieldType.NUMBER)
    balance, root = _ids(schema)
    schema = builder.set_derived_field(schema, root, {"parentFields": [balance], "formula": "$0 ** 0.5"})

    values = recompute(schema, {balance: 16}, balance, today=TODAY)
    assert values[root] == 4.0

    values = recompute(schema, {**values, balance: -16}, balance, today=TODAY)
    assert values[root] == 4.0
