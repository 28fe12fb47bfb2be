"""Form definition and form filling API routes."""
from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.encoders import jsonable_encoder

from app.api.v1.common import data_response, get_store
from app.core.config import Settings, get_settings
from app.core.errors import FieldNotFound, FormBuilderError
from app.schemas.form import FormSave, FormSchema, FormValuesRequest
from app.services import builder
from app.services.runtime import FormRuntime
from app.services.store import SqlAlchemySchemaStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/forms", tags=["forms"])


@router.get("")
async def list_forms(
    store: SqlAlchemySchemaStore = Depends(get_store),
) -> dict[str, list[dict[str, Any]]]:
    """Return all saved forms, oldest first."""

    schemas = await store.load_all()
    return data_response([schema.to_payload() for schema in schemas])


@router.post("", status_code=status.HTTP_201_CREATED)
async def save_form(
    payload: FormSave, store: SqlAlchemySchemaStore = Depends(get_store)
) -> dict[str, dict[str, Any]]:
    """Finalize a form definition and store it."""

    try:
        schema = builder.from_fields(payload.fields, schema_id=payload.id or str(uuid.uuid4()))
        finalized = builder.finalize(schema, payload.name)
    except FormBuilderError:
        raise
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc

    await store.save(finalized)
    logger.info(
        "Form saved",
        extra={"form_id": finalized.id, "field_count": len(finalized.fields)},
    )
    return data_response(finalized.to_payload())


@router.get("/{form_id}")
async def get_form(
    form_id: str, store: SqlAlchemySchemaStore = Depends(get_store)
) -> dict[str, dict[str, Any]]:
    """Return one saved form."""

    schema = await store.get(form_id)
    return data_response(schema.to_payload())


@router.post("/{form_id}/evaluate")
async def evaluate_form(
    form_id: str,
    payload: FormValuesRequest,
    store: SqlAlchemySchemaStore = Depends(get_store),
) -> dict[str, dict[str, Any]]:
    """Apply entered values and report derived values and errors."""

    schema = await store.get(form_id)
    runtime = _load_runtime(schema, payload.values)
    return data_response(
        {
            "values": jsonable_encoder(runtime.values),
            "errors": runtime.errors,
            "submittable": runtime.submittable,
        }
    )


@router.post("/{form_id}/submissions", status_code=status.HTTP_201_CREATED)
async def submit_form(
    form_id: str,
    payload: FormValuesRequest,
    store: SqlAlchemySchemaStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> dict[str, dict[str, Any]]:
    """Validate every field and accept the submission when nothing fails."""

    schema = await store.get(form_id)
    runtime = _load_runtime(schema, payload.values, reset_delay=settings.submit_reset_delay)
    result = runtime.on_submit()
    if not result.submitted:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "code": "FORM_INVALID",
                "message": "Please correct the highlighted fields",
                "errors": result.errors,
            },
        )

    typed = {
        field_id: value.model_dump(mode="json")
        for field_id, value in runtime.typed_values().items()
    }
    return data_response(
        {
            "formId": schema.id,
            "values": typed,
            "resetAfterSeconds": runtime.reset_delay,
        }
    )


def _load_runtime(
    schema: FormSchema, values: dict[str, Any], **options: Any
) -> FormRuntime:
    runtime = FormRuntime(schema, **options)
    try:
        runtime.load(values)
    except FieldNotFound as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown field '{exc.field_id}'",
        ) from exc
    return runtime
