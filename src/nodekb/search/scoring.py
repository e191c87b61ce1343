"""
nodekb — relevance scorer

File: src/nodekb/search/scoring.py

Purpose
- Deterministic 0..1000 relevance score for a node against a cleaned query, used by
  the indexed and substring strategies.
- Coarse high/medium/low relevance label for result payloads.

Functional requirements
- Base tiers: exact display name 1000, exact prefix-stripped type 950, pinned boosts
  (850..920, loaded from ``pinned_boosts.yaml``), display-name prefix 800, whole-word
  display-name match 700, display-name substring 600, type substring 500, description
  substring 400, else 0.
- Multi-word queries add +200 when every word is in the display name, otherwise +100
  when every word is in the description. The total is capped at 1000.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Final, cast

import yaml

from nodekb.domain.models import NodeSummary, Relevance
from nodekb.domain.node_types import normalize_node_type

DEFAULT_PINNED_BOOSTS_PATH: Final[Path] = Path(__file__).resolve().with_name(
    "pinned_boosts.yaml"
)
MAX_SCORE: Final[int] = 1000
PINNED_MIN_SCORE: Final[int] = 850
PINNED_MAX_SCORE: Final[int] = 920

_EXACT_NAME: Final[int] = 1000
_EXACT_TYPE: Final[int] = 950
_NAME_PREFIX: Final[int] = 800
_WHOLE_WORD: Final[int] = 700
_NAME_SUBSTRING: Final[int] = 600
_TYPE_SUBSTRING: Final[int] = 500
_DESCRIPTION_SUBSTRING: Final[int] = 400
_ALL_WORDS_IN_NAME_BONUS: Final[int] = 200
_ALL_WORDS_IN_DESCRIPTION_BONUS: Final[int] = 100
_BOOST_FIELDS: Final[frozenset[str]] = frozenset({"node_type", "score", "phrases", "contains_all"})


@dataclass(frozen=True, slots=True)
class PinnedBoost:
    node_type: str
    score: int
    phrases: frozenset[str] = frozenset()
    contains_all: tuple[str, ...] = ()

    def matches(self, node_type: str, query: str) -> bool:
        if node_type != self.node_type:
            return False
        if query in self.phrases:
            return True
        return bool(self.contains_all) and all(part in query for part in self.contains_all)


def load_pinned_boosts(path: Path = DEFAULT_PINNED_BOOSTS_PATH) -> tuple[PinnedBoost, ...]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = cast("object", yaml.safe_load(handle))
    except yaml.YAMLError as exc:
        raise ValueError(f"{path}: invalid YAML ({exc})") from exc

    if not isinstance(loaded, Mapping):
        raise ValueError(f"{path}: expected top-level YAML mapping, got {type(loaded).__name__}")
    entries = loaded.get("boosts")
    if not isinstance(entries, list):
        raise ValueError(f"{path}.boosts: expected list")

    boosts: list[PinnedBoost] = []
    for index, entry in enumerate(entries):
        location = f"{path.name}.boosts[{index}]"
        if not isinstance(entry, Mapping):
            raise ValueError(f"{location}: expected mapping")
        unknown = sorted(str(key) for key in entry if key not in _BOOST_FIELDS)
        if unknown:
            raise ValueError(f"{location}: unexpected fields: {unknown}")

        node_type = entry.get("node_type")
        if not isinstance(node_type, str) or not node_type.strip():
            raise ValueError(f"{location}.node_type: expected non-empty string")
        score = entry.get("score")
        if isinstance(score, bool) or not isinstance(score, int):
            raise ValueError(f"{location}.score: expected integer")
        if not PINNED_MIN_SCORE <= score <= PINNED_MAX_SCORE:
            raise ValueError(
                f"{location}.score: must be within {PINNED_MIN_SCORE}..{PINNED_MAX_SCORE}"
            )
        phrases = _as_fragments(entry.get("phrases", []), f"{location}.phrases")
        contains_all = _as_fragments(entry.get("contains_all", []), f"{location}.contains_all")
        if not phrases and not contains_all:
            raise ValueError(f"{location}: needs phrases or contains_all")

        boosts.append(
            PinnedBoost(
                node_type=normalize_node_type(node_type),
                score=score,
                phrases=frozenset(phrases),
                contains_all=contains_all,
            )
        )
    return tuple(boosts)


@lru_cache(maxsize=1)
def default_pinned_boosts() -> tuple[PinnedBoost, ...]:
    return load_pinned_boosts()


class RelevanceScorer:
    """Scores nodes against one query; pure and safe to share."""

    def __init__(self, boosts: Sequence[PinnedBoost] | None = None) -> None:
        self._boosts = tuple(boosts) if boosts is not None else default_pinned_boosts()

    @property
    def boosts(self) -> tuple[PinnedBoost, ...]:
        return self._boosts

    def score(self, node: NodeSummary, query: str) -> int:
        needle = query.strip().casefold()
        if not needle:
            return 0
        name = node.display_name.casefold()
        clean_type = node.clean_type.casefold()
        description = (node.description or "").casefold()

        score = self._base_score(node, needle, name, clean_type, description)
        words = needle.split()
        if len(words) > 1:
            if all(word in name for word in words):
                score += _ALL_WORDS_IN_NAME_BONUS
            elif all(word in description for word in words):
                score += _ALL_WORDS_IN_DESCRIPTION_BONUS
        return min(score, MAX_SCORE)

    def _base_score(
        self,
        node: NodeSummary,
        needle: str,
        name: str,
        clean_type: str,
        description: str,
    ) -> int:
        if name == needle:
            return _EXACT_NAME
        if needle in (clean_type, node.node_type.casefold()):
            return _EXACT_TYPE
        for boost in self._boosts:
            if boost.matches(node.node_type, needle):
                return boost.score
        if name.startswith(needle):
            return _NAME_PREFIX
        if re.search(rf"\b{re.escape(needle)}\b", name):
            return _WHOLE_WORD
        if needle in name:
            return _NAME_SUBSTRING
        if needle in clean_type or needle in node.node_type.casefold():
            return _TYPE_SUBSTRING
        if needle in description:
            return _DESCRIPTION_SUBSTRING
        return 0


def relevance_label(node: NodeSummary, query: str) -> Relevance:
    needle = query.strip().casefold()
    if needle in node.node_type.casefold() or needle in node.display_name.casefold():
        return Relevance.HIGH
    if needle in (node.description or "").casefold():
        return Relevance.MEDIUM
    return Relevance.LOW


def _as_fragments(value: object, path: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ValueError(f"{path}: expected list")
    fragments: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str) or not item.strip():
            raise ValueError(f"{path}[{index}]: expected non-empty string")
        fragments.append(" ".join(item.casefold().split()))
    return tuple(fragments)


__all__ = [
    "DEFAULT_PINNED_BOOSTS_PATH",
    "MAX_SCORE",
    "PinnedBoost",
    "RelevanceScorer",
    "default_pinned_boosts",
    "load_pinned_boosts",
    "relevance_label",
]
