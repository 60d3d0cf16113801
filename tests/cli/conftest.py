"""Fixtures for CLI interface tests."""

from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from cardflow.cli import cli


@pytest.fixture
def cli_in_project(tmp_path: Path, cli_runner: CliRunner) -> Generator[tuple[CliRunner, Path], None, None]:
    """Initialize .cardflow/ with project PLN in tmp_path and return (runner, project_root)."""
    original_cwd = os.getcwd()
    os.chdir(str(tmp_path))
    result = cli_runner.invoke(cli, ["init", "--project", "PLN", "--name", "Planning", "--abbreviation", "PLN"])
    assert result.exit_code == 0, result.output
    yield cli_runner, tmp_path
    os.chdir(original_cwd)


@pytest.fixture
def cli_seeded(cli_in_project: tuple[CliRunner, Path]) -> tuple[CliRunner, Path]:
    """Project PLN with dev_ana, stk_ana (same email), stk_bob, epic PLN-EPC-0001 and active sprint PLN-SPR-0001."""
    runner, root = cli_in_project
    commands = [
        ["developer", "add", "dev_ana", "--name", "Ana", "--email", "ana@example.com", "--project", "PLN"],
        ["stakeholder", "add", "stk_ana", "--name", "Ana", "--email", "ana@example.com", "--project", "PLN"],
        ["stakeholder", "add", "stk_bob", "--name", "Bob", "--email", "bob@example.com", "--project", "PLN"],
        ["project", "set-validator", "stk_bob"],
        ["create", "epic", "--title", "Reporting"],
        ["create", "sprint", "--title", "Sprint 42", "-f", "status=Active", "-f", "startDate=2026-10-12", "-f", "endDate=2026-10-25"],
    ]
    for args in commands:
        result = runner.invoke(cli, args)
        assert result.exit_code == 0, result.output
    return runner, root


def _extract_id(create_output: str) -> str:
    """Extract the card ID from 'Created PLN-TSK-0001: Title' output."""
    return create_output.splitlines()[0].split(":")[0].replace("Created ", "").strip()


def _extract_record_key(create_output: str) -> str:
    """Extract the storage key from the '  Record key: ...' line."""
    for line in create_output.splitlines():
        if line.strip().startswith("Record key:"):
            return line.split(":", 1)[1].strip()
    msg = f"no record key in output: {create_output!r}"
    raise AssertionError(msg)
