from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from devkit.db import AsyncDatabaseManager, is_transient_db_error, normalize_postgres_dsn
from devkit.timezone import ensure_utc


def test_normalize_postgres_dsn() -> None:
    assert normalize_postgres_dsn("postgresql://u:p@h:5432/db") == "postgresql+psycopg://u:p@h:5432/db"
    assert normalize_postgres_dsn("postgresql+psycopg://u:p@h:5432/db") == "postgresql+psycopg://u:p@h:5432/db"
    assert normalize_postgres_dsn("sqlite+aiosqlite:///x.db") == "sqlite+aiosqlite:///x.db"


def test_transient_error_detection() -> None:
    assert is_transient_db_error(OperationalError("stmt", {}, Exception("down")))
    assert not is_transient_db_error(ValueError("nope"))


def test_ensure_utc_handles_naive_and_offset_values() -> None:
    naive = datetime(2026, 1, 1, 12, 0, 0)
    offset = datetime(2026, 1, 1, 21, 0, 0, tzinfo=timezone(timedelta(hours=9)))

    assert ensure_utc(naive) == datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    assert ensure_utc(offset) == datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_session_rolls_back_and_reraises(tmp_path) -> None:
    manager = AsyncDatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'devkit.db'}")

    async def _fail(_session):
        raise ValueError("not transient")

    with pytest.raises(ValueError):
        await manager.run_with_session(_fail)
    assert manager.dialect_name == "sqlite"
    await manager.disconnect()
