"""Persistence of form schemas."""
from __future__ import annotations

import logging
from typing import Protocol

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import FormNotFound, StoreError
from app.models import StoredForm
from app.schemas.form import FormSchema

logger = logging.getLogger(__name__)


class SchemaStore(Protocol):
    """Durable storage for saved form schemas."""

    async def save(self, schema: FormSchema) -> None: ...

    async def load_all(self) -> list[FormSchema]: ...

    async def get(self, form_id: str) -> FormSchema: ...


class SqlAlchemySchemaStore:
    """Store schemas as JSON documents in the ``forms`` table.

    Saving a schema whose id is already stored replaces that snapshot.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def save(self, schema: FormSchema) -> None:
        payload = schema.to_payload()
        try:
            stored = await self.session.get(StoredForm, schema.id)
            if stored is None:
                stored = StoredForm(id=schema.id)
                self.session.add(stored)
            stored.name = schema.name
            stored.field_count = len(schema.fields)
            stored.definition = payload
            stored.created_at = schema.created_at
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.exception("Could not save form", extra={"form_id": schema.id})
            raise StoreError("Could not save the form") from exc

    async def load_all(self) -> list[FormSchema]:
        try:
            result = await self.session.execute(
                select(StoredForm).order_by(StoredForm.created_at, StoredForm.id)
            )
            rows = result.scalars().all()
        except SQLAlchemyError as exc:
            logger.exception("Could not load forms")
            raise StoreError("Could not load forms") from exc
        return [_to_schema(row) for row in rows]

    async def get(self, form_id: str) -> FormSchema:
        try:
            row = await self.session.get(StoredForm, form_id)
        except SQLAlchemyError as exc:
            logger.exception("Could not load form", extra={"form_id": form_id})
            raise StoreError("Could not load the form") from exc
        if row is None:
            raise FormNotFound(form_id)
        return _to_schema(row)


def _to_schema(row: StoredForm) -> FormSchema:
    try:
        return FormSchema.model_validate(row.definition)
    except ValidationError as exc:
        logger.error("Stored form is corrupt", extra={"form_id": row.id})
        raise StoreError("Stored form could not be read") from exc
