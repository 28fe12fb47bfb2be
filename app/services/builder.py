"""Builder session operations over form schemas.

Every operation takes a ``FormSchema`` snapshot and returns a new one; the
input is never modified. ``BuilderSession`` keeps the working snapshot for
one editing session and persists it only when ``save`` is called.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from pydantic.alias_generators import to_snake

from app.core.errors import (
    EmptyFormError,
    FieldInUseError,
    FormulaError,
    IndexOutOfRange,
    InvalidFormula,
)
from app.schemas.field import DerivedFieldConfig, FieldType, FormField, ValidationKind
from app.schemas.form import FormSchema, utcnow
from app.services import derived
from app.services import formula as formula_engine
from app.services.fields import create_field, new_field_id, retype_field

if TYPE_CHECKING:  # pragma: no cover - import only needed for annotations
    from app.services.store import SchemaStore

logger = logging.getLogger(__name__)

IMMUTABLE_ATTRIBUTES = frozenset({"id", "order"})


def new_schema(schema_id: str | None = None) -> FormSchema:
    """Return an empty working schema."""

    return FormSchema(id=schema_id or new_field_id(), name="", fields=[], created_at=utcnow())


def with_fields(schema: FormSchema, fields: list[FormField]) -> FormSchema:
    """Return ``schema`` holding ``fields`` renumbered to their positions."""

    renumbered = [
        field if field.order == index else field.model_copy(update={"order": index})
        for index, field in enumerate(fields)
    ]
    data = schema.model_dump()
    data["fields"] = [field.model_dump() for field in renumbered]
    return FormSchema.model_validate(data)


def from_fields(fields: list[FormField], schema_id: str | None = None) -> FormSchema:
    """Build a working schema from fields, keeping their relative order."""

    ordered = sorted(fields, key=lambda field: field.order)
    return with_fields(new_schema(schema_id), ordered)


def check_schema(schema: FormSchema) -> None:
    """Run the authoring-time checks on every derived field and custom rule."""

    for field in schema.fields:
        _check_custom_rules(field)
        if field.derived_field is not None:
            _check_derived(schema, field.derived_field)


def add_field(schema: FormSchema, field_type: FieldType | str) -> FormSchema:
    """Append a default field of ``field_type``."""

    field = create_field(field_type, len(schema.fields))
    return with_fields(schema, [*schema.fields, field])


def update_field(schema: FormSchema, field_id: str, updates: Mapping[str, Any]) -> FormSchema:
    """Merge partial ``updates`` (snake_case or camelCase keys) into a field."""

    index = schema.index_of(field_id)
    current = schema.fields[index]
    changes = {to_snake(key): value for key, value in updates.items()}

    locked = IMMUTABLE_ATTRIBUTES.intersection(changes)
    if locked:
        msg = f"Cannot change {', '.join(sorted(locked))} through a field update"
        raise ValueError(msg)

    if "type" in changes and FieldType(changes["type"]) is not current.type:
        data = retype_field(current, FieldType(changes["type"]))
    else:
        data = current.model_dump()
    data.update(changes)
    field = FormField.model_validate(data)

    _check_custom_rules(field)
    fields = list(schema.fields)
    fields[index] = field
    updated = with_fields(schema, fields)
    if field.derived_field is not None and field.derived_field != current.derived_field:
        _check_derived(updated, field.derived_field)
    return updated


def delete_field(schema: FormSchema, field_id: str) -> FormSchema:
    """Remove a field and renumber the remaining ones contiguously."""

    index = schema.index_of(field_id)
    dependents = derived.direct_dependents(schema, field_id)
    if dependents:
        raise FieldInUseError(field_id, dependents)
    fields = [field for position, field in enumerate(schema.fields) if position != index]
    return with_fields(schema, fields)


def move_field(schema: FormSchema, from_index: int, to_index: int) -> FormSchema:
    """Move the field at ``from_index`` to ``to_index`` in display order."""

    size = len(schema.fields)
    for index in (from_index, to_index):
        if not 0 <= index < size:
            raise IndexOutOfRange(index, size)
    fields = list(schema.fields)
    moved = fields.pop(from_index)
    fields.insert(to_index, moved)
    return with_fields(schema, fields)


def set_derived_field(
    schema: FormSchema, field_id: str, config: DerivedFieldConfig | Mapping[str, Any]
) -> FormSchema:
    """Attach a derived field configuration after checking its formula."""

    if not isinstance(config, DerivedFieldConfig):
        config = DerivedFieldConfig.model_validate(config)
    return update_field(schema, field_id, {"derived_field": config.model_dump()})


def clear_derived_field(schema: FormSchema, field_id: str) -> FormSchema:
    return update_field(schema, field_id, {"derived_field": None})


def finalize(schema: FormSchema, name: str) -> FormSchema:
    """Name the schema and stamp it with a fresh creation time."""

    if not schema.fields:
        raise EmptyFormError()
    if not name or not name.strip():
        msg = "Form name must not be empty"
        raise ValueError(msg)
    check_schema(schema)
    return schema.model_copy(update={"name": name.strip(), "created_at": utcnow()})


def _check_derived(schema: FormSchema, config: DerivedFieldConfig) -> None:
    derived.evaluation_order(schema)
    derived.check_formula(config, derived.parent_types_in(schema, config))


def _check_custom_rules(field: FormField) -> None:
    for rule in field.validations:
        if rule.kind is not ValidationKind.CUSTOM:
            continue
        try:
            formula_engine.parse_formula(str(rule.value), 1)
        except FormulaError as exc:
            raise InvalidFormula(f"Invalid custom rule: {exc.message}") from exc


class BuilderSession:
    """Mutable holder of the working schema for one editing session."""

    def __init__(self, schema: FormSchema | None = None) -> None:
        self.schema = schema or new_schema()

    @property
    def fields(self) -> list[FormField]:
        return self.schema.fields

    def add_field(self, field_type: FieldType | str) -> FormField:
        self.schema = add_field(self.schema, field_type)
        return self.schema.fields[-1]

    def update_field(self, field_id: str, updates: Mapping[str, Any]) -> FormField:
        self.schema = update_field(self.schema, field_id, updates)
        return self.schema.get_field(field_id)

    def delete_field(self, field_id: str) -> None:
        self.schema = delete_field(self.schema, field_id)

    def move_field(self, from_index: int, to_index: int) -> None:
        self.schema = move_field(self.schema, from_index, to_index)

    def set_derived_field(
        self, field_id: str, config: DerivedFieldConfig | Mapping[str, Any]
    ) -> FormField:
        self.schema = set_derived_field(self.schema, field_id, config)
        return self.schema.get_field(field_id)

    def clear_derived_field(self, field_id: str) -> FormField:
        self.schema = clear_derived_field(self.schema, field_id)
        return self.schema.get_field(field_id)

    async def save(self, store: "SchemaStore", name: str) -> FormSchema:
        """Finalize the working schema and persist it as a new snapshot.

        The session keeps editing a copy of the saved schema under a fresh id,
        so later edits and saves never touch what was stored.
        """

        finalized = finalize(self.schema, name)
        await store.save(finalized)
        logger.info(
            "Form saved",
            extra={"form_id": finalized.id, "field_count": len(finalized.fields)},
        )
        self.schema = finalized.model_copy(update={"id": new_field_id()}, deep=True)
        return finalized
