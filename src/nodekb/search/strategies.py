"""
nodekb — search strategies

File: src/nodekb/search/strategies.py

Purpose
- The ordered fallback chain of the search engine, expressed as plain callables
  ``SearchRequest -> StrategyResult | StrategyFailure`` plus a combinator.

Functional requirements
- Indexed: full-text query with prefix wildcards; results re-ranked by the relevance
  scorer with the native index rank only as a tie-break.
- Indexed results that miss the HTTP Request node for an ``http`` query are rejected so
  the substring strategy can take over.
- Substring: bounded LIKE scan over node type, display name and description.
- Fuzzy: Levenshtein scan over every (source-filtered) node, floor-filtered.
- Backend errors become ``StrategyFailure`` values; strategies never raise them.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Final, Protocol

import structlog

from nodekb.constants import HTTP_REQUEST_NODE_TYPE
from nodekb.domain.models import (
    NodeSummary,
    SearchCandidate,
    SearchMode,
    SearchSource,
)
from nodekb.persistence.node_db import NodeDBError
from nodekb.persistence.repositories import IndexedRow
from nodekb.search.fuzzy import DEFAULT_FUZZY_MIN_SCORE, fuzzy_score
from nodekb.search.query import build_index_query, substring_terms, unquote
from nodekb.search.scoring import RelevanceScorer, relevance_label

DEFAULT_CANDIDATE_MULTIPLIER: Final[int] = 3
DEFAULT_SUBSTRING_CANDIDATE_LIMIT: Final[int] = 1_000
_MAX_INDEX_ROWS: Final[int] = 1_000


class SearchBackend(Protocol):
    """Row access the strategies need; ``NodeRepo`` satisfies it."""

    def has_search_index(self) -> bool: ...

    def search_index(
        self,
        index_query: str,
        *,
        source: SearchSource = ...,
        limit: int = ...,
        text: str | None = ...,
    ) -> list[IndexedRow]: ...

    def search_substring(
        self,
        terms: Sequence[str],
        *,
        match_all: bool = ...,
        source: SearchSource = ...,
        limit: int = ...,
    ) -> list[NodeSummary]: ...

    def list_summaries(self, *, source: SearchSource = ...) -> list[NodeSummary]: ...


@dataclass(frozen=True, slots=True)
class SearchRequest:
    """A cleaned, non-empty query plus the caller's limit and options."""

    query: str
    limit: int
    mode: SearchMode = SearchMode.OR
    source: SearchSource = SearchSource.ALL

    def __post_init__(self) -> None:
        if not self.query.strip():
            raise ValueError("SearchRequest.query: must not be empty")
        if self.limit <= 0:
            raise ValueError("SearchRequest.limit: must be > 0")


@dataclass(frozen=True, slots=True)
class StrategyResult:
    strategy: str
    candidates: tuple[SearchCandidate, ...]


@dataclass(frozen=True, slots=True)
class StrategyFailure:
    strategy: str
    reason: str

    def describe(self) -> str:
        return f"{self.strategy}: {self.reason}"


SearchStrategy = Callable[[SearchRequest], "StrategyResult | StrategyFailure"]


@dataclass(frozen=True, slots=True)
class StrategyOutcome:
    """What ``run_strategies`` produced: the winning result (if any) and every failure."""

    result: StrategyResult | None
    failures: tuple[StrategyFailure, ...]


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class IndexedStrategy:
    name = "indexed"

    def __init__(
        self,
        backend: SearchBackend,
        *,
        scorer: RelevanceScorer | None = None,
        candidate_multiplier: int = DEFAULT_CANDIDATE_MULTIPLIER,
    ) -> None:
        if candidate_multiplier < 1:
            raise ValueError("candidate_multiplier must be >= 1")
        self._backend = backend
        self._scorer = scorer or RelevanceScorer()
        self._multiplier = candidate_multiplier

    def __call__(self, request: SearchRequest) -> StrategyResult | StrategyFailure:
        try:
            if not self._backend.has_search_index():
                return StrategyFailure(self.name, "search index unavailable")
            rows = self._backend.search_index(
                build_index_query(request.query, request.mode),
                source=request.source,
                limit=min(request.limit * self._multiplier, _MAX_INDEX_ROWS),
                text=unquote(request.query),
            )
        except (sqlite3.Error, NodeDBError, ValueError) as exc:
            return StrategyFailure(self.name, f"index query failed ({exc})")

        if "http" in request.query.casefold() and not any(
            row.node.node_type == HTTP_REQUEST_NODE_TYPE for row in rows
        ):
            return StrategyFailure(self.name, "http_guard")

        text = unquote(request.query)
        scored = [
            (self._scorer.score(row.node, text), row.rank, row.node) for row in rows
        ]
        scored.sort(
            key=lambda item: (-item[0], item[2].display_name.casefold(), item[1], item[2].node_type)
        )
        candidates = tuple(
            SearchCandidate(
                node=node,
                relevance_score=score,
                relevance=relevance_label(node, text),
                rank=rank,
            )
            for score, rank, node in scored[: request.limit]
        )
        return StrategyResult(self.name, candidates)


class SubstringStrategy:
    name = "substring"

    def __init__(
        self,
        backend: SearchBackend,
        *,
        scorer: RelevanceScorer | None = None,
        candidate_limit: int = DEFAULT_SUBSTRING_CANDIDATE_LIMIT,
    ) -> None:
        if candidate_limit < 1:
            raise ValueError("candidate_limit must be >= 1")
        self._backend = backend
        self._scorer = scorer or RelevanceScorer()
        self._candidate_limit = candidate_limit

    def __call__(self, request: SearchRequest) -> StrategyResult | StrategyFailure:
        terms = substring_terms(request.query)
        if not terms:
            return StrategyResult(self.name, ())
        try:
            rows = self._backend.search_substring(
                terms,
                match_all=request.mode is SearchMode.AND,
                source=request.source,
                limit=max(self._candidate_limit, request.limit),
            )
        except (sqlite3.Error, NodeDBError) as exc:
            return StrategyFailure(self.name, f"substring query failed ({exc})")

        text = unquote(request.query)
        scored = [(self._scorer.score(node, text), node) for node in rows]
        scored.sort(key=lambda item: (-item[0], item[1].display_name.casefold(), item[1].node_type))
        candidates = tuple(
            SearchCandidate(
                node=node,
                relevance_score=score,
                relevance=relevance_label(node, text),
            )
            for score, node in scored[: request.limit]
        )
        return StrategyResult(self.name, candidates)


class FuzzyStrategy:
    name = "fuzzy"

    def __init__(
        self,
        backend: SearchBackend,
        *,
        min_score: int = DEFAULT_FUZZY_MIN_SCORE,
        logger: Any | None = None,
    ) -> None:
        self._backend = backend
        self._min_score = min_score
        self._logger = logger or structlog.get_logger(__name__)

    def __call__(self, request: SearchRequest) -> StrategyResult | StrategyFailure:
        text = unquote(request.query)
        try:
            rows = self._backend.list_summaries(source=request.source)
        except (sqlite3.Error, NodeDBError) as exc:
            return StrategyFailure(self.name, f"node scan failed ({exc})")

        scored = [(fuzzy_score(node, text), node) for node in rows]
        kept = [item for item in scored if item[0] >= self._min_score]
        if not kept and scored:
            best = sorted(scored, key=lambda item: -item[0])[:5]
            self._logger.debug(
                "fuzzy_search_below_floor",
                query=text,
                floor=self._min_score,
                top=[(node.display_name, round(score)) for score, node in best],
            )
        kept.sort(key=lambda item: (-item[0], item[1].display_name.casefold(), item[1].node_type))
        candidates = tuple(
            SearchCandidate(
                node=node,
                relevance_score=min(round(score), 1000),
                relevance=relevance_label(node, text),
            )
            for score, node in kept[: request.limit]
        )
        return StrategyResult(self.name, candidates)


# ---------------------------------------------------------------------------
# Combinator
# ---------------------------------------------------------------------------


def run_strategies(
    strategies: Sequence[SearchStrategy],
    request: SearchRequest,
    *,
    on_failure: Callable[[StrategyFailure], None] | None = None,
) -> StrategyOutcome:
    """Try each strategy in order; the first ``StrategyResult`` wins."""

    failures: list[StrategyFailure] = []
    for strategy in strategies:
        outcome = strategy(request)
        if isinstance(outcome, StrategyResult):
            return StrategyOutcome(result=outcome, failures=tuple(failures))
        failures.append(outcome)
        if on_failure is not None:
            on_failure(outcome)
    return StrategyOutcome(result=None, failures=tuple(failures))


__all__ = [
    "DEFAULT_CANDIDATE_MULTIPLIER",
    "DEFAULT_SUBSTRING_CANDIDATE_LIMIT",
    "FuzzyStrategy",
    "IndexedStrategy",
    "SearchBackend",
    "SearchRequest",
    "SearchStrategy",
    "StrategyFailure",
    "StrategyOutcome",
    "StrategyResult",
    "SubstringStrategy",
    "run_strategies",
]
