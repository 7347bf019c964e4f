# tests/conftest.py

import gc
import os
from collections.abc import AsyncIterator

import pytest
import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

# Point the app at a process-local in-memory DB before any app module creates
# an engine. StaticPool keeps a single connection so the schema persists.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("PLAYLOG_SQLITE_STATIC_POOL", "1")

# TOML/.env may carry a different URL; override the module-level constant too.
import Playlog.db as _db  # noqa: E402

_db.DATABASE_URL = os.environ["DATABASE_URL"]
_db._engine = None
_db._sessionmaker = None
_db._schema_initialized = False

# Import models so all ORM tables are registered on Base.metadata before create_all
from Playlog import models as _models  # noqa: F401,E402
from Playlog.db import Base, get_engine, get_sessionmaker  # noqa: E402
from Playlog.metrics import reset_counters  # noqa: E402


@pytest.fixture(autouse=True)
async def _fresh_db_per_test() -> AsyncIterator[None]:
    """Give every test its own engine (bound to the test's loop) and schema."""
    _db._engine = None
    _db._sessionmaker = None
    _db._schema_initialized = False
    engine = get_engine()
    async with engine.begin() as conn:
        if conn.dialect.name == "sqlite":
            await conn.execute(sa.text("PRAGMA foreign_keys=ON"))
        await conn.run_sync(Base.metadata.create_all)
    _db._schema_initialized = True
    try:
        yield None
    finally:
        await engine.dispose()
        _db._engine = None
        _db._sessionmaker = None
        gc.collect()


@pytest.fixture(autouse=True)
def _reset_metrics() -> None:
    reset_counters()


@pytest.fixture
async def db() -> AsyncIterator[AsyncSession]:
    sm = get_sessionmaker()
    async with sm() as s:
        try:
            yield s
        finally:
            await s.rollback()
            await s.close()


@pytest.fixture
async def server() -> _models.Server:
    """A committed target server with no users or items."""
    sm = get_sessionmaker()
    async with sm() as s:
        obj = _models.Server(name="Living Room")
        s.add(obj)
        await s.commit()
        return obj
