"""Derived field computation and dependency ordering."""
from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import date
from typing import Any

from app.core.errors import CyclicDerivationError, FormulaError, InvalidFormula
from app.schemas.field import DerivedFieldConfig, FieldType, FormField
from app.schemas.form import FormSchema
from app.schemas.values import is_empty, plain_value, to_field_value
from app.services import formula as formula_engine

logger = logging.getLogger(__name__)


def compute_derived(
    config: DerivedFieldConfig,
    parent_values: Sequence[Any],
    *,
    today: date | None = None,
) -> Any:
    """Evaluate a derived field from its parents' values, in ``parent_fields`` order.

    Returns ``None`` when any parent is still empty. Raises ``FormulaError``
    when the formula is malformed or cannot be evaluated for these values.
    """

    if len(parent_values) != len(config.parent_fields):
        raise FormulaError(
            f"Expected {len(config.parent_fields)} parent values, got {len(parent_values)}"
        )
    if any(is_empty(value) for value in parent_values):
        return None
    return formula_engine.evaluate(config.formula, parent_values, today=today)


def evaluation_order(schema: FormSchema) -> list[FormField]:
    """Return derived fields so that every field follows the fields it derives from.

    Fields that do not depend on each other keep their schema order.
    """

    derived = {field.id: field for field in schema.fields if field.derived_field}
    visited: set[str] = set()
    in_progress: list[str] = []
    ordered: list[FormField] = []

    def visit(field: FormField) -> None:
        if field.id in visited:
            return
        if field.id in in_progress:
            start = in_progress.index(field.id)
            raise CyclicDerivationError(in_progress[start:] + [field.id])
        in_progress.append(field.id)
        parent_ids = field.derived_field.parent_fields if field.derived_field else []
        for parent_id in parent_ids:
            parent = derived.get(parent_id)
            if parent is not None:
                visit(parent)
        in_progress.pop()
        visited.add(field.id)
        ordered.append(field)

    for field in derived.values():
        visit(field)
    return ordered


def dependents_of(schema: FormSchema, field_id: str) -> list[FormField]:
    """Return derived fields depending on ``field_id`` directly or transitively."""

    affected = {field_id}
    dependents: list[FormField] = []
    for field in evaluation_order(schema):
        if field.derived_field and affected.intersection(field.derived_field.parent_fields):
            affected.add(field.id)
            dependents.append(field)
    return dependents


def direct_dependents(schema: FormSchema, field_id: str) -> list[str]:
    return [
        field.id
        for field in schema.fields
        if field.derived_field and field_id in field.derived_field.parent_fields
    ]


def parent_values_for(
    schema: FormSchema, config: DerivedFieldConfig, values: Mapping[str, Any]
) -> list[Any]:
    """Resolve typed parent values for a derived field.

    Raises ``FormulaError`` when a parent is missing or holds a value its
    type cannot represent.
    """

    resolved: list[Any] = []
    for index, parent_id in enumerate(config.parent_fields):
        try:
            parent = schema.get_field(parent_id)
        except LookupError as exc:
            raise FormulaError(f"${index} refers to unknown field '{parent_id}'") from exc
        raw = values.get(parent_id)
        try:
            resolved.append(plain_value(to_field_value(parent, raw)))
        except ValueError as exc:
            raise FormulaError(f"${index} has an unusable value: {exc}") from exc
    return resolved


def recompute(
    schema: FormSchema,
    values: Mapping[str, Any],
    changed: str | None = None,
    *,
    today: date | None = None,
) -> dict[str, Any]:
    """Return a new value map with derived fields recomputed.

    With ``changed`` set, only fields depending on it (directly or
    transitively) are recomputed; otherwise every derived field is. A field
    whose formula fails keeps its previous value.
    """

    targets = dependents_of(schema, changed) if changed is not None else evaluation_order(schema)
    updated = dict(values)
    for field in targets:
        config = field.derived_field
        if config is None:
            continue
        try:
            parents = parent_values_for(schema, config, updated)
            updated[field.id] = compute_derived(config, parents, today=today)
        except FormulaError as exc:
            logger.warning(
                "Derived field could not be computed",
                extra={"field_id": field.id, "form_id": schema.id, "reason": exc.message},
            )
    return updated


def sample_value(field_type: FieldType | None) -> Any:
    """Return the stand-in value used for authoring-time formula checks."""

    if field_type is FieldType.DATE:
        return date.today()
    if field_type is FieldType.CHECKBOX:
        return True
    return 1


def check_formula(
    config: DerivedFieldConfig,
    parent_types: Sequence[FieldType | None] | None = None,
) -> Any:
    """Evaluate a formula once against sample parent values.

    Catches most typos while a derived field is being authored; it does not
    guarantee the formula succeeds for every real input. Raises
    ``InvalidFormula`` on failure and returns the sample result otherwise.
    """

    types = list(parent_types or [])
    types += [None] * (len(config.parent_fields) - len(types))
    samples = [sample_value(field_type) for field_type in types[: len(config.parent_fields)]]
    try:
        return formula_engine.evaluate(config.formula, samples)
    except FormulaError as exc:
        raise InvalidFormula(
            f"Invalid formula. Please check your formula and try again. ({exc.message})"
        ) from exc


def parent_types_in(schema: FormSchema, config: DerivedFieldConfig) -> list[FieldType | None]:
    types: list[FieldType | None] = []
    for parent_id in config.parent_fields:
        try:
            types.append(schema.get_field(parent_id).type)
        except LookupError:
            types.append(None)
    return types
