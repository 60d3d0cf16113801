"""Fixtures for MCP server tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest

from cardflow.lists import TtlCache
from tests._db_factory import SeededProject, make_engine, make_store, seed_project


@pytest.fixture
def mcp_db(tmp_path: Path) -> Generator[SeededProject, None, None]:
    """Seed project PLN and patch the MCP module globals to use it."""
    store = make_store(tmp_path)
    seeded = seed_project(store, make_engine(store))

    import cardflow.mcp_server as mcp_mod

    original = (mcp_mod.db, mcp_mod._config, mcp_mod._list_cache)
    mcp_mod.db = store
    mcp_mod._config = {"version": 1, "actor": "cardflow", "default_project": "PLN"}
    mcp_mod._list_cache = TtlCache()

    yield seeded

    mcp_mod.db, mcp_mod._config, mcp_mod._list_cache = original
    store.close()
