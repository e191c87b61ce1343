"""
nodekb — unit tests for the process entrypoint

File: tests/unit/test_main.py

Purpose
- Pin the exit-code contract of `cli_entrypoint` without spawning a subprocess.

What this test file should cover
- 0 success, 1 validation failed, 2 config/usage error, 3 node not found, 4 internal error.
- Exceptions are routed by walking their cause chain.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from nodekb.main import ExitCode, _normalize_exit_code, _route_exception, cli_entrypoint
from nodekb.persistence.repositories import NodeNotFoundError

FIXTURE_PATH = Path(__file__).resolve().parents[1] / "fixtures" / "nodes.json"


@pytest.fixture
def db_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    monkeypatch.chdir(tmp_path)
    for key in [key for key in os.environ if key.startswith("NODEKB_")]:
        monkeypatch.delenv(key)
    path = str(tmp_path / "nodes.db")
    assert cli_entrypoint(["import", str(FIXTURE_PATH), "--db", path, "--json"]) == 0
    return path


def test_search_succeeds(db_path: str, capsys: pytest.CaptureFixture[str]) -> None:
    capsys.readouterr()

    code = cli_entrypoint(["search", "slack", "--db", db_path, "--json"])

    assert code == ExitCode.SUCCESS
    payload = json.loads(capsys.readouterr().out)
    assert payload["results"][0]["display_name"] == "Slack"


def test_invalid_configuration_exits_one(db_path: str) -> None:
    assert cli_entrypoint(["validate", "httpRequest", "{}", "--db", db_path, "--json"]) == 1


def test_unknown_node_exits_three(db_path: str, capsys: pytest.CaptureFixture[str]) -> None:
    capsys.readouterr()

    code = cli_entrypoint(["node", "nodes-base.nope", "--db", db_path])

    assert code == ExitCode.NODE_NOT_FOUND
    assert "Node nodes-base.nope not found" in capsys.readouterr().err


def test_missing_import_file_exits_two(tmp_path: Path) -> None:
    code = cli_entrypoint(["import", str(tmp_path / "missing.json"), "--db", str(tmp_path / "x")])

    assert code == ExitCode.CONFIG_ERROR


def test_malformed_node_config_exits_two(db_path: str) -> None:
    assert cli_entrypoint(["validate", "slack", "{not json", "--db", db_path]) == 2


def test_dependencies_report_config_impact(
    db_path: str, capsys: pytest.CaptureFixture[str]
) -> None:
    capsys.readouterr()

    code = cli_entrypoint(
        ["dependencies", "httpRequest", '{"sendBody": true}', "--db", db_path, "--json"]
    )

    assert code == ExitCode.SUCCESS
    payload = json.loads(capsys.readouterr().out)
    assert payload["controlling_properties"] == {"sendBody": ["jsonBody"]}
    impact = payload["current_config"]["visibility_impact"]
    assert impact["newly_visible"] == ["jsonBody"]


def test_versions_breaking_between_versions(
    db_path: str, capsys: pytest.CaptureFixture[str]
) -> None:
    capsys.readouterr()

    code = cli_entrypoint(
        ["versions", "webhook", "--from", "1", "--breaking", "--db", db_path, "--json"]
    )

    assert code == ExitCode.SUCCESS
    payload = json.loads(capsys.readouterr().out)
    assert (payload["to_version"], payload["total_breaking_changes"]) == ("2", 1)
    assert payload["upgrade_safe"] is False


def test_versions_usage_errors_exit_two(db_path: str) -> None:
    assert cli_entrypoint(["versions", "webhook", "--breaking", "--db", db_path]) == 2
    assert cli_entrypoint(["versions", "webhook", "--from", "v1", "--db", db_path]) == 2


@pytest.mark.parametrize("command", ["docs", "ai-tool", "versions", "dependencies"])
def test_lookup_commands_render_text(db_path: str, command: str) -> None:
    assert cli_entrypoint([command, "webhook", "--db", db_path, "--no-color"]) == 0


def test_usage_errors_exit_two(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint(["search"]) == 2
    assert "usage:" in capsys.readouterr().err


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(0, 0), (1, 1), (3, 3), (None, 0), (9, 4), ("boom", 4), ("", 4)],
)
def test_normalize_exit_code(raw: object, expected: int) -> None:
    assert _normalize_exit_code(raw) == expected


def test_exceptions_route_through_cause_chain() -> None:
    try:
        try:
            raise NodeNotFoundError("nodes-base.x")
        except NodeNotFoundError as inner:
            raise RuntimeError("lookup failed") from inner
    except RuntimeError as outer:
        wrapped = outer

    assert _route_exception(wrapped) is ExitCode.NODE_NOT_FOUND
    assert _route_exception(ValueError("bad")) is ExitCode.CONFIG_ERROR
    assert _route_exception(RuntimeError("boom")) is ExitCode.INTERNAL_ERROR
