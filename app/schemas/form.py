"""Pydantic schemas for whole form definitions."""
from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, Field, model_validator

from app.core.errors import FieldNotFound
from app.schemas.field import DerivedFieldConfig, FieldType, FormField, SchemaModel


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


class FormSchema(SchemaModel):
    """An ordered, named collection of fields."""

    id: Annotated[str, Field(min_length=1)]
    name: str = ""
    fields: list[FormField] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def validate_fields(self) -> "FormSchema":
        ids = [field.id for field in self.fields]
        if len(set(ids)) != len(ids):
            msg = "Field ids must be unique within a form"
            raise ValueError(msg)

        orders = [field.order for field in self.fields]
        if orders != list(range(len(self.fields))):
            msg = "Field order values must be 0..n-1 in field sequence"
            raise ValueError(msg)

        known = set(ids)
        for field in self.fields:
            if field.derived_field is None:
                continue
            missing = [parent for parent in field.derived_field.parent_fields if parent not in known]
            if missing:
                msg = f"Derived field '{field.id}' references unknown fields: {', '.join(missing)}"
                raise ValueError(msg)
        return self

    @model_validator(mode="before")
    @classmethod
    def sort_fields(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("fields"), list):
            fields = data["fields"]
            if all(isinstance(field, dict) and "order" in field for field in fields):
                data = {**data, "fields": sorted(fields, key=lambda field: field["order"])}
        return data

    def get_field(self, field_id: str) -> FormField:
        for field in self.fields:
            if field.id == field_id:
                return field
        raise FieldNotFound(field_id)

    def index_of(self, field_id: str) -> int:
        for index, field in enumerate(self.fields):
            if field.id == field_id:
                return index
        raise FieldNotFound(field_id)


class FormSave(BaseModel):
    """Payload for finalizing and storing a form."""

    id: str | None = None
    name: Annotated[str, Field(min_length=1, max_length=255)]
    fields: list[FormField]


class FormValuesRequest(BaseModel):
    values: dict[str, Any] = Field(default_factory=dict)


class FormulaCheckRequest(SchemaModel):
    derived_field: DerivedFieldConfig
    parent_types: list[FieldType] = Field(default_factory=list)
