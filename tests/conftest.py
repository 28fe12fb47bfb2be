from __future__ import annotations

import os
import sys
from collections.abc import AsyncIterator
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from app.core.config import get_settings  # noqa: E402
from app.schemas.field import FieldType  # noqa: E402
from app.schemas.form import FormSchema  # noqa: E402
from app.services import builder  # noqa: E402

TEST_DB_PATH = ROOT / "test.db"
if TEST_DB_PATH.exists():
    TEST_DB_PATH.unlink()
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
get_settings.cache_clear()


@pytest.fixture()
async def client() -> AsyncIterator[AsyncClient]:
    from app.core.db import engine
    from app.main import app
    from app.models import Base

    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)
        await connection.run_sync(Base.metadata.create_all)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture()
async def store():
    from app.core.db import AsyncSessionLocal, engine
    from app.models import Base
    from app.services.store import SqlAlchemySchemaStore

    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)
        await connection.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        yield SqlAlchemySchemaStore(session)


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def age_schema() -> FormSchema:
    """A birth year field feeding an age field, which feeds an "is adult" flag."""

    schema = builder.add_field(builder.new_schema(), FieldType.NUMBER)
    schema = builder.add_field(schema, FieldType.NUMBER)
    schema = builder.add_field(schema, FieldType.CHECKBOX)
    birth_year, age, adult = (field.id for field in schema.fields)
    schema = builder.update_field(schema, birth_year, {"label": "Year of birth", "required": True})
    schema = builder.update_field(schema, age, {"label": "Age"})
    schema = builder.set_derived_field(
        schema, age, {"parentFields": [birth_year], "formula": "current_year - $0"}
    )
    schema = builder.update_field(schema, adult, {"label": "Adult"})
    schema = builder.set_derived_field(
        schema, adult, {"parentFields": [age], "formula": "$0 >= 18"}
    )
    return schema
