"""Builders for service-level tests over the shared node fixture."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Final

from nodekb.persistence.node_db import NodeDB
from nodekb.service import NodeKnowledgeService
from nodekb.utils.cache import TTLCache

FIXTURE_PATH: Final[Path] = Path(__file__).resolve().parents[2] / "fixtures" / "nodes.json"


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class EventRecorder:
    """Stand-in for a structlog logger that keeps (level, event, fields) tuples."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict[str, Any]]] = []

    def _record(self, level: str, event: str, **fields: Any) -> None:
        self.events.append((level, event, fields))

    def debug(self, event: str, **fields: Any) -> None:
        self._record("debug", event, **fields)

    def info(self, event: str, **fields: Any) -> None:
        self._record("info", event, **fields)

    def warning(self, event: str, **fields: Any) -> None:
        self._record("warning", event, **fields)

    def names(self) -> list[str]:
        return [event for _, event, _ in self.events]


def make_service(
    tmp_path: Path,
    *,
    cache: TTLCache[Any] | None = None,
    config: dict[str, Any] | None = None,
    logger: EventRecorder | None = None,
    seed: bool = True,
) -> NodeKnowledgeService:
    service = NodeKnowledgeService(
        NodeDB(tmp_path / "nodes.db"), cache=cache, config=config, logger=logger
    )
    if seed:
        service.import_nodes(FIXTURE_PATH)
    return service


__all__ = ["FIXTURE_PATH", "EventRecorder", "FakeClock", "make_service"]
