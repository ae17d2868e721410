"""SessionRepository statement tests.

No database is involved: ``db.execute`` is an AsyncMock and the captured
statement is compiled against the PostgreSQL dialect.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from leadflow_db.repository import SessionRepository


def _db(rows=None):
    result = MagicMock()
    result.scalar_one_or_none.return_value = None
    result.scalars.return_value.all.return_value = rows or []
    db = AsyncMock()
    db.execute.return_value = result
    return db


def _sql(db) -> str:
    stmt = db.execute.call_args.args[0]
    return str(stmt.compile(dialect=postgresql.dialect())).upper()


@pytest.fixture
def repo():
    return SessionRepository()


# =====================================================================
# Row locking
# =====================================================================


class TestRowLocking:

    @pytest.mark.asyncio
    async def test_plain_load_does_not_lock(self, repo):
        db = _db()
        assert await repo.get_by_client_and_session(db, "c1", "s1") is None
        assert "FOR UPDATE" not in _sql(db)

    @pytest.mark.asyncio
    async def test_turn_load_locks_row(self, repo):
        db = _db()
        await repo.get_by_client_and_session(db, "c1", "s1", for_update=True)
        assert "FOR UPDATE" in _sql(db), "turn loads must hold the row until commit"

    @pytest.mark.asyncio
    async def test_idle_sweep_skips_locked_rows(self, repo):
        db = _db()
        rows = await repo.list_idle_active(db, datetime(2026, 10, 1, tzinfo=timezone.utc))
        assert rows == []
        assert "FOR UPDATE SKIP LOCKED" in _sql(db)
