"""
nodekb — unit tests for observability logging

File: tests/unit/observability/test_logging.py

Purpose
- Validate structured JSON logging with redaction, correlation metadata and queue-backed
  reliability, and the structlog routing used by component loggers.

What this test file should cover
- JSON line validity and redaction guarantees.
- Correlation field propagation.
- structlog keyword fields arrive as structured ``fields``.
- Text format rendering.
- Queue drain/shutdown behavior.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import threading
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest
import structlog

from nodekb.observability.logging import (
    LoggingConfig,
    configure_structlog,
    correlation_scope,
    default_log_redactor,
    get_correlation_context,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()
    structlog.reset_defaults()


def _logger_name() -> str:
    return f"nodekb.tests.logging.{uuid4().hex}"


def _file_config(tmp_path: Path, session_id: str, **overrides: object) -> LoggingConfig:
    return LoggingConfig(
        session_id=session_id,
        base_log_dir=tmp_path,
        logger_name=overrides.pop("logger_name", _logger_name()),  # type: ignore[arg-type]
        log_to_file=True,
        log_to_stderr=False,
        **overrides,  # type: ignore[arg-type]
    )


def _read_json_lines(path: Path) -> list[dict[str, object]]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


def test_json_logging_redacts_secrets_and_preserves_correlation_fields(tmp_path: Path) -> None:
    handle = setup_structured_logging(_file_config(tmp_path, "session-redaction"))
    logger = handle.logger

    with correlation_scope(request_id="req-123", command="search"):
        logger.info(
            "payload api_key=sk-FAKE123456789012345",
            extra={"nested": {"password": "hunter2", "safe": "ok"}},
        )

    shutdown_logging(handle)

    assert handle.log_path is not None and handle.log_path.exists()
    parsed = _read_json_lines(handle.log_path)
    assert len(parsed) == 1
    first = parsed[0]
    assert first["session_id"] == "session-redaction"
    assert first["request_id"] == "req-123"
    assert first["command"] == "search"
    assert first["fields"] == {"nested": {"password": "***REDACTED***", "safe": "ok"}}

    line = handle.log_path.read_text(encoding="utf-8")
    assert "sk-FAKE" not in line
    assert "hunter2" not in line


def test_structlog_events_carry_keyword_fields(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        _file_config(tmp_path, "session-structlog", logger_name=logger_name)
    )
    configure_structlog("INFO")

    log = structlog.get_logger(logger_name)
    log.info("node_search_completed", query="webhook", total=2, strategy="indexed")
    log.debug("config_validation_completed", node_type="nodes-base.webhook")

    shutdown_logging(handle)

    assert handle.log_path is not None
    parsed = _read_json_lines(handle.log_path)
    assert [entry["event"] for entry in parsed] == ["node_search_completed"]
    assert parsed[0]["fields"] == {"query": "webhook", "total": 2, "strategy": "indexed"}
    assert parsed[0]["level"] == "INFO"


def test_setup_logging_wrapper_uses_observability_config(tmp_path: Path) -> None:
    handle = setup_logging(
        {
            "log_level": "INFO",
            "log_dir": str(tmp_path),
            "log_to_file": True,
            "redact_secrets": True,
        },
        session_id="session-wrapper",
        logger_name=_logger_name(),
    )

    handle.logger.info("hello", extra={"token": "t-123"})
    shutdown_logging()

    files = list((tmp_path / "session-wrapper").glob("*.jsonl"))
    assert files
    content = files[0].read_text(encoding="utf-8")
    assert "t-123" not in content


def test_redaction_can_be_disabled(tmp_path: Path) -> None:
    handle = setup_logging(
        {"log_dir": str(tmp_path), "log_to_file": True, "redact_secrets": False},
        session_id="session-plain",
        logger_name=_logger_name(),
    )

    handle.logger.info("hello", extra={"token": "t-123"})
    shutdown_logging()

    assert handle.log_path is not None
    assert "t-123" in handle.log_path.read_text(encoding="utf-8")


def test_text_format_renders_key_value_fields(tmp_path: Path) -> None:
    handle = setup_structured_logging(
        _file_config(tmp_path, "session-text", log_format="text")
    )

    handle.logger.warning("node_search_exhausted", extra={"query": "slack", "attempts": 2})
    shutdown_logging(handle)

    assert handle.log_path is not None
    (line,) = handle.log_path.read_text(encoding="utf-8").splitlines()
    assert "WARNING" in line
    assert line.endswith('node_search_exhausted attempts=2 query="slack"')


def test_multithreaded_logging_produces_valid_json_lines(tmp_path: Path) -> None:
    handle = setup_structured_logging(
        _file_config(tmp_path, "session-threaded", queue_size=4096)
    )
    logger = handle.logger

    total_threads = 8
    per_thread = 40

    def worker(thread_idx: int) -> None:
        for i in range(per_thread):
            logger.info(
                f"thread={thread_idx} index={i}",
                extra={"api_key": f"sk-FAKE-{thread_idx}-{i}"},
            )

    threads = [threading.Thread(target=worker, args=(idx,)) for idx in range(total_threads)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    shutdown_logging(handle)

    assert handle.log_path is not None
    lines = handle.log_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == total_threads * per_thread
    for line in lines:
        parsed = json.loads(line)
        assert isinstance(parsed, dict)
        assert "event" in parsed
        assert "sk-FAKE" not in line


def test_queue_handler_non_blocking_and_shutdown_flushes(tmp_path: Path) -> None:
    handle = setup_structured_logging(
        _file_config(tmp_path, "session-flush", queue_size=10_000)
    )
    logger = handle.logger

    queue_handlers = [h for h in logger.handlers if isinstance(h, logging.handlers.QueueHandler)]
    assert queue_handlers, "expected queue-backed non-blocking logging"

    expected = 300
    for i in range(expected):
        logger.info("message %s", i)

    shutdown_logging(handle)
    shutdown_logging(handle)

    assert handle.log_path is not None
    lines = handle.log_path.read_text(encoding="utf-8").splitlines()
    assert handle.dropped_records == 0
    assert len(lines) == expected
    assert handle.is_shutdown is True


def test_correlation_scope_restores_previous_context() -> None:
    with correlation_scope(session_id="outer"):
        with correlation_scope(request_id="inner", session_id=None):
            assert get_correlation_context() == {"request_id": "inner"}
        assert get_correlation_context() == {"session_id": "outer"}
    assert get_correlation_context() == {}


def test_default_redactor_masks_keys_and_text() -> None:
    redacted = default_log_redactor(
        {"clientSecret": "abc", "note": "Bearer abcdefghijklmnop1234", "count": 3}
    )

    assert redacted == {
        "clientSecret": "***REDACTED***",
        "note": "Bearer ***REDACTED***",
        "count": 3,
    }


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"queue_size": 0}, "queue_size"),
        ({"log_filename": "nested/out.jsonl"}, "path separators"),
        ({"level": "LOUD"}, "unsupported logging level"),
    ],
)
def test_invalid_logging_config_is_rejected(
    tmp_path: Path, overrides: dict[str, object], message: str
) -> None:
    with pytest.raises(ValueError, match=message):
        setup_structured_logging(_file_config(tmp_path, "session-bad", **overrides))
