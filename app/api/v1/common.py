"""Common helpers for API routes."""
from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import TypeVar

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_session
from app.services.store import SqlAlchemySchemaStore

T = TypeVar("T")


def data_response(payload: T) -> dict[str, T]:
    """Wrap a payload in the standard data envelope."""

    return {"data": payload}


async def get_store(
    session: AsyncSession = Depends(get_session),
) -> AsyncGenerator[SqlAlchemySchemaStore, None]:
    """Yield a schema store bound to the request's database session."""

    yield SqlAlchemySchemaStore(session)
