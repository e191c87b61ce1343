"""
nodekb — CLI subprocess smoke contracts

File: tests/integration/test_cli_smoke.py

Purpose
- Exercise `python -m nodekb` end to end against a freshly imported database.
- Verify exit codes and machine-readable output of the main commands.

What this test file should cover
- import -> search -> node -> validate on the shared fixture catalog.
- Invalid configurations exit 1; unknown nodes exit 3; missing import files exit 2.
- stdout stays parseable JSON under --json while logs go to stderr.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = PROJECT_ROOT / "src"
FIXTURE_PATH = PROJECT_ROOT / "tests" / "fixtures" / "nodes.json"


def _run_cli(workdir: Path, *args: str) -> subprocess.CompletedProcess[str]:
    env = os.environ.copy()
    existing_pythonpath = env.get("PYTHONPATH")
    src_pythonpath = str(SRC_PATH)
    env["PYTHONPATH"] = (
        src_pythonpath if not existing_pythonpath else f"{src_pythonpath}:{existing_pythonpath}"
    )
    env["NO_COLOR"] = "1"
    for key in list(env):
        if key.startswith("NODEKB_"):
            del env[key]
    return subprocess.run(
        [sys.executable, "-m", "nodekb", *args],
        cwd=workdir,
        text=True,
        capture_output=True,
        check=False,
        env=env,
    )


def _json_stdout(completed: subprocess.CompletedProcess[str]) -> dict[str, object]:
    assert completed.stdout.strip(), completed.stderr
    payload = json.loads(completed.stdout)
    assert isinstance(payload, dict)
    return payload


@pytest.fixture(scope="module")
def workspace(tmp_path_factory: pytest.TempPathFactory) -> tuple[Path, str]:
    workdir = tmp_path_factory.mktemp("cli")
    db_path = str(workdir / "nodes.db")
    completed = _run_cli(workdir, "import", str(FIXTURE_PATH), "--db", db_path, "--json")
    assert completed.returncode == 0, completed.stderr
    report = _json_stdout(completed)
    assert report["command"] == "import"
    assert report["nodes"] == 7
    return workdir, db_path


@pytest.mark.integration
def test_search_json_lists_exact_match_first(workspace: tuple[Path, str]) -> None:
    workdir, db_path = workspace

    completed = _run_cli(workdir, "search", "webhook", "--db", db_path, "--json")

    assert completed.returncode == 0, completed.stderr
    payload = _json_stdout(completed)
    assert payload["command"] == "search"
    results = payload["results"]
    assert isinstance(results, list) and results
    assert results[0]["display_name"] == "Webhook"


@pytest.mark.integration
def test_node_accepts_short_identifier(workspace: tuple[Path, str]) -> None:
    workdir, db_path = workspace

    completed = _run_cli(workdir, "node", "webhook", "--db", db_path, "--json")

    assert completed.returncode == 0, completed.stderr
    payload = _json_stdout(completed)
    node = payload["node"]
    assert isinstance(node, dict)
    assert node["node_type"] == "nodes-base.webhook"
    assert node["workflow_node_type"] == "n8n-nodes-base.webhook"


@pytest.mark.integration
def test_node_text_output_renders(workspace: tuple[Path, str]) -> None:
    workdir, db_path = workspace

    completed = _run_cli(workdir, "node", "nodes-base.httpRequest", "--db", db_path)

    assert completed.returncode == 0, completed.stderr
    assert "HTTP Request" in completed.stdout
    assert "\x1b[" not in completed.stdout


@pytest.mark.integration
def test_validate_exit_codes(workspace: tuple[Path, str]) -> None:
    workdir, db_path = workspace

    invalid = _run_cli(
        workdir, "validate", "nodes-base.httpRequest", "{}", "--db", db_path, "--json"
    )
    valid = _run_cli(
        workdir,
        "validate",
        "nodes-base.httpRequest",
        '{"url": "https://example.com"}',
        "--db",
        db_path,
        "--json",
    )

    assert invalid.returncode == 1, invalid.stderr
    assert _json_stdout(invalid)["valid"] is False
    assert valid.returncode == 0, valid.stderr
    assert _json_stdout(valid)["valid"] is True


@pytest.mark.integration
def test_unknown_node_exits_with_not_found(workspace: tuple[Path, str]) -> None:
    workdir, db_path = workspace

    completed = _run_cli(workdir, "node", "nodes-base.doesNotExist", "--db", db_path)

    assert completed.returncode == 3
    assert "not found" in completed.stderr


@pytest.mark.integration
def test_missing_import_file_is_a_config_error(tmp_path: Path) -> None:
    completed = _run_cli(
        tmp_path, "import", str(tmp_path / "missing.json"), "--db", str(tmp_path / "n.db")
    )

    assert completed.returncode == 2
    assert "import file not found" in completed.stderr


@pytest.mark.integration
def test_doctor_json_reports_checks(workspace: tuple[Path, str]) -> None:
    workdir, db_path = workspace

    completed = _run_cli(workdir, "doctor", "--db", db_path, "--json")

    assert completed.returncode == 0, completed.stderr
    payload = _json_stdout(completed)
    entries = payload["checks"]
    assert isinstance(entries, list)
    checks = {item["name"]: item["status"] for item in entries}
    assert checks["config"] == "ok"
    assert checks["node_db"] == "ok"
