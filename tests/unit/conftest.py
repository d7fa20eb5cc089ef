"""Unit-test conftest: DB isolation safety net.

Provides an ``autouse`` fixture that prevents any unit test from
accidentally opening a real Postgres connection. Engines may be built
(that never connects), but connectivity checks and table creation
raise immediately.

SQL repository tests use mocked sessions instead.
"""

from __future__ import annotations

import pytest

import passkey_auth.api.main as _api_main
import passkey_auth.storage as _storage_mod


@pytest.fixture(autouse=True)
def _isolate_db(monkeypatch: pytest.MonkeyPatch) -> None:
    """Replace connecting storage helpers with guards that raise."""

    async def _guarded_init_db(engine=None):
        raise RuntimeError(
            "Unit test attempted a real DB connection via init_db(). "
            "Mock the database dependency instead."
        )

    async def _guarded_create_tables(engine=None):
        raise RuntimeError(
            "Unit test attempted a real DB connection via create_tables(). "
            "Mock the database dependency instead."
        )

    monkeypatch.setattr(_storage_mod, "init_db", _guarded_init_db)
    monkeypatch.setattr(_storage_mod, "create_tables", _guarded_create_tables)
    monkeypatch.setattr(_api_main, "init_db", _guarded_init_db)
