"""Version 1 API routes for the form builder service."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.v1.formulas import router as formulas_router
from app.api.v1.forms import router as forms_router
from app.core.config import Settings, get_settings

router = APIRouter()
router.include_router(forms_router)
router.include_router(formulas_router)


@router.get("/health", tags=["health"])
async def health_check(settings: Settings = Depends(get_settings)) -> dict[str, dict[str, str]]:
    """Report the service health information."""
    return {"data": {"status": "ok", "version": settings.version}}
