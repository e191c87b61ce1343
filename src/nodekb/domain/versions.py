"""
nodekb — node version comparison

File: src/nodekb/domain/versions.py

Purpose
- Summarize what changes when a workflow moves a node from one type version to another:
  breaking changes, deprecated properties and added properties, in release order.

Functional requirements
- Only versions strictly newer than ``from`` and up to and including ``to`` contribute.
- ``to`` defaults to the current maximum version in the history.
- Downgrades are rejected; comparing a version with itself yields no changes.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Final

from nodekb.domain.models import JSONValue, NodeVersion

_HINT_KEYS: Final[tuple[str, ...]] = ("migrationHint", "migration_hint")


@dataclass(frozen=True, slots=True)
class VersionChange:
    version: str
    change: dict[str, JSONValue]

    @property
    def migration_hint(self) -> str | None:
        for key in _HINT_KEYS:
            hint = self.change.get(key)
            if isinstance(hint, str) and hint.strip():
                return hint.strip()
        return None

    def to_dict(self) -> dict[str, JSONValue]:
        return {"version": self.version, **self.change}


@dataclass(frozen=True, slots=True)
class VersionComparison:
    node_type: str
    from_version: str
    to_version: str
    crossed_versions: tuple[str, ...] = ()
    breaking_changes: tuple[VersionChange, ...] = ()
    deprecated_properties: tuple[str, ...] = ()
    added_properties: tuple[str, ...] = ()

    @property
    def upgrade_safe(self) -> bool:
        return not self.breaking_changes

    def migration_hints(self) -> list[str]:
        hints = [change.migration_hint for change in self.breaking_changes]
        hints.extend(f"Remove {name}; it is deprecated" for name in self.deprecated_properties)
        return list(dict.fromkeys(hint for hint in hints if hint))

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "node_type": self.node_type,
            "from_version": self.from_version,
            "to_version": self.to_version,
            "crossed_versions": list(self.crossed_versions),
            "total_breaking_changes": len(self.breaking_changes),
            "breaking_changes": [change.to_dict() for change in self.breaking_changes],
            "deprecated_properties": list(self.deprecated_properties),
            "added_properties": list(self.added_properties),
            "migration_hints": [hint for hint in self.migration_hints()],
            "upgrade_safe": self.upgrade_safe,
        }


def parse_version(raw: str) -> int | float:
    """Strictly parse a type version such as ``"2"`` or ``"4.2"``."""

    text = raw.strip()
    try:
        number = float(text)
    except ValueError as exc:
        raise ValueError(f"invalid version {raw!r}") from exc
    if not math.isfinite(number) or number < 0:
        raise ValueError(f"invalid version {raw!r}")
    return int(number) if number.is_integer() else number


def current_version(history: Sequence[NodeVersion]) -> NodeVersion | None:
    flagged = [item for item in history if item.is_current_max]
    pool = flagged or list(history)
    if not pool:
        return None
    return max(pool, key=lambda item: item.number)


def compare_versions(
    node_type: str,
    history: Sequence[NodeVersion],
    from_version: str,
    to_version: str | None = None,
) -> VersionComparison:
    lower = parse_version(from_version)
    if to_version is None:
        latest = current_version(history)
        if latest is None:
            raise ValueError(f"no version history for {node_type}; pass to_version")
        to_version = latest.version
    upper = parse_version(to_version)
    if upper < lower:
        raise ValueError(f"cannot compare downgrade {from_version} -> {to_version}")

    crossed = sorted(
        (item for item in history if lower < item.number <= upper),
        key=lambda item: item.number,
    )
    deprecated: list[str] = []
    added: list[str] = []
    for item in crossed:
        deprecated.extend(name for name in item.deprecated_properties if name not in deprecated)
        added.extend(name for name in item.added_properties if name not in added)
    return VersionComparison(
        node_type=node_type,
        from_version=from_version.strip(),
        to_version=to_version.strip(),
        crossed_versions=tuple(item.version for item in crossed),
        breaking_changes=tuple(
            VersionChange(item.version, dict(change))
            for item in crossed
            for change in item.breaking_changes
        ),
        deprecated_properties=tuple(deprecated),
        added_properties=tuple(added),
    )


__all__ = [
    "VersionChange",
    "VersionComparison",
    "compare_versions",
    "current_version",
    "parse_version",
]
