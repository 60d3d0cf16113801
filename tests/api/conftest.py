"""Fixtures for HTTP API tests (FastAPI)."""

from __future__ import annotations

from collections.abc import AsyncIterator, Generator
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

import cardflow.api as api_module
from cardflow.api import create_app
from cardflow.lists import TtlCache
from tests._db_factory import SeededProject, make_engine, make_store, seed_project


@pytest.fixture
def api_project(tmp_path: Path) -> Generator[SeededProject, None, None]:
    """Seeded project on a store opened with check_same_thread=False."""
    store = make_store(tmp_path, check_same_thread=False)
    yield seed_project(store, make_engine(store))
    store.close()


@pytest.fixture
async def client(api_project: SeededProject) -> AsyncIterator[AsyncClient]:
    """Test client bound to the seeded store through the module globals."""
    original = (api_module._store, api_module._config, api_module._list_cache)
    api_module._store = api_project.store
    api_module._config = {"version": 1, "default_project": "PLN"}
    api_module._list_cache = TtlCache()
    transport = ASGITransport(app=create_app())
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    api_module._store, api_module._config, api_module._list_cache = original
