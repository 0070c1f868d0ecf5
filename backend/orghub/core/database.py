"""
Database access for the organization manager.

Organizations, members and authorization policies are persisted by stored
procedures in PostgreSQL. The manager only needs two primitives, exec for
mutations and query_row for single-value reads, so this module exposes them
over an async SQLAlchemy engine using the driver's native positional
parameters ($1, $2, ...).
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Protocol

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from orghub.core.config import settings
from orghub.core.errors import DBInsufficientPrivilegeError

logger = logging.getLogger(__name__)

INSUFFICIENT_PRIVILEGE_SQLSTATE = "42501"


class DB(Protocol):
    """Storage capability consumed by the organization manager."""

    async def exec(self, query: str, *args: Any) -> None: ...

    async def query_row(self, query: str, *args: Any) -> Any: ...


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return code
    return None


@asynccontextmanager
async def _translate_errors() -> AsyncIterator[None]:
    try:
        yield
    except DBAPIError as exc:
        if _sqlstate(exc) == INSUFFICIENT_PRIVILEGE_SQLSTATE:
            logger.info("Database rejected call: insufficient privilege")
            raise DBInsufficientPrivilegeError() from exc
        raise


class Database:
    """DB implementation backed by an async SQLAlchemy engine."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine

    async def exec(self, query: str, *args: Any) -> None:
        """Run a mutation in its own transaction."""
        async with _translate_errors():
            async with self.engine.begin() as conn:
                await conn.exec_driver_sql(query, args)

    async def query_row(self, query: str, *args: Any) -> Any:
        """Run a query returning exactly one row and return its first column."""
        async with _translate_errors():
            async with self.engine.connect() as conn:
                result = await conn.exec_driver_sql(query, args)
                return result.scalar_one()


# ---------------------------------------------------------------------------
# Engine + FastAPI dependency
# ---------------------------------------------------------------------------

async_engine = create_async_engine(
    str(settings.DATABASE_URL),
    pool_size=settings.DATABASE_POOL_SIZE,
    pool_pre_ping=True,
    echo=False,
)

_database = Database(async_engine)


def get_db() -> Database:
    """Return the shared Database."""
    return _database
