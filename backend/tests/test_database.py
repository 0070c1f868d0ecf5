"""
Database adapter tests.

The engine is faked; what matters is how driver errors are surfaced.
"""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import DBAPIError

from orghub.core.database import Database
from orghub.core.errors import DBInsufficientPrivilegeError


class DriverError(Exception):
    def __init__(self, sqlstate: str) -> None:
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


def make_engine(conn: MagicMock) -> MagicMock:
    @asynccontextmanager
    async def connection():
        yield conn

    engine = MagicMock()
    engine.begin = connection
    engine.connect = connection
    return engine


@pytest.fixture
def conn() -> MagicMock:
    fake = MagicMock()
    fake.exec_driver_sql = AsyncMock()
    return fake


async def test_exec_passes_positional_args(conn):
    db = Database(make_engine(conn))
    await db.exec("select add_organization($1::uuid, $2::jsonb)", "userID", "{}")
    conn.exec_driver_sql.assert_awaited_once_with(
        "select add_organization($1::uuid, $2::jsonb)", ("userID", "{}")
    )


async def test_query_row_returns_first_column(conn):
    result = MagicMock()
    result.scalar_one.return_value = '{"name": "org1"}'
    conn.exec_driver_sql.return_value = result
    db = Database(make_engine(conn))

    assert await db.query_row("select get_organization($1::text)", "org1") == '{"name": "org1"}'


@pytest.mark.parametrize("method", ["exec", "query_row"])
async def test_insufficient_privilege_translated(conn, method):
    conn.exec_driver_sql.side_effect = DBAPIError("select 1", (), DriverError("42501"))
    db = Database(make_engine(conn))

    with pytest.raises(DBInsufficientPrivilegeError):
        await getattr(db, method)("select 1")


async def test_driver_error_chained_through_cause(conn):
    orig = Exception("adapted")
    orig.__cause__ = DriverError("42501")
    conn.exec_driver_sql.side_effect = DBAPIError("select 1", (), orig)
    db = Database(make_engine(conn))

    with pytest.raises(DBInsufficientPrivilegeError):
        await db.exec("select 1")


async def test_other_errors_pass_through(conn):
    err = DBAPIError("select 1", (), DriverError("23505"))
    conn.exec_driver_sql.side_effect = err
    db = Database(make_engine(conn))

    with pytest.raises(DBAPIError) as exc_info:
        await db.exec("select 1")
    assert exc_info.value is err
