"""Shared pytest fixtures for cardflow tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from cardflow.core import DocumentStore
from cardflow.engine import CardEngine
from tests._db_factory import SeededProject, make_engine, make_store, seed_project


@pytest.fixture
def store(tmp_path: Path) -> Generator[DocumentStore, None, None]:
    """Fresh DocumentStore with the default vocabularies seeded."""
    s = make_store(tmp_path)
    yield s
    s.close()


@pytest.fixture
def engine(store: DocumentStore) -> CardEngine:
    """CardEngine whose clock is pinned to 2026-10-18."""
    return make_engine(store)


@pytest.fixture
def seeded(store: DocumentStore, engine: CardEngine) -> SeededProject:
    """Project PLN with dev_ana, stk_ana, stk_bob, epic PLN-EPC-0001 and active sprint PLN-SPR-0001."""
    return seed_project(store, engine)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()
