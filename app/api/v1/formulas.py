"""Authoring-time formula checks."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from fastapi.encoders import jsonable_encoder

from app.api.v1.common import data_response
from app.schemas.form import FormulaCheckRequest
from app.services.derived import check_formula

router = APIRouter(prefix="/formulas", tags=["formulas"])


@router.post("/check")
async def check(payload: FormulaCheckRequest) -> dict[str, dict[str, Any]]:
    """Evaluate a derived field formula against sample parent values."""

    sample = check_formula(payload.derived_field, payload.parent_types)
    return data_response({"valid": True, "sample": jsonable_encoder(sample)})
