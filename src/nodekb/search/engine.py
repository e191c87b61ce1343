"""
nodekb — search engine

File: src/nodekb/search/engine.py

Purpose
- Entry point for node search: normalizes the query, picks the strategy chain for the
  requested mode, runs it and enriches the winning candidates.

Functional requirements
- Empty or whitespace-only queries return an empty response without touching storage.
- OR/AND run indexed then substring; FUZZY runs the fuzzy strategy only.
- Strategy failures are logged and reported as fallback reasons, never raised.
- Template examples are attached on request; failures to load them are logged and
  skipped.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Final

import structlog

from nodekb.domain.models import SearchCandidate, SearchMode, SearchOptions, SearchResponse
from nodekb.persistence.node_db import NodeDBError
from nodekb.persistence.repositories import TemplateExampleRepo
from nodekb.search.fuzzy import DEFAULT_FUZZY_MIN_SCORE
from nodekb.search.query import clean_query
from nodekb.search.scoring import RelevanceScorer, load_pinned_boosts
from nodekb.search.strategies import (
    DEFAULT_CANDIDATE_MULTIPLIER,
    DEFAULT_SUBSTRING_CANDIDATE_LIMIT,
    FuzzyStrategy,
    IndexedStrategy,
    SearchBackend,
    SearchRequest,
    SearchStrategy,
    StrategyFailure,
    SubstringStrategy,
    run_strategies,
)

DEFAULT_EXAMPLES_PER_RESULT: Final[int] = 2
DEFAULT_MAX_LIMIT: Final[int] = 100


class SearchEngine:
    """Runs the strategy chain for one query at a time; holds no per-query state."""

    def __init__(
        self,
        backend: SearchBackend,
        examples: TemplateExampleRepo | None = None,
        *,
        scorer: RelevanceScorer | None = None,
        candidate_multiplier: int = DEFAULT_CANDIDATE_MULTIPLIER,
        substring_candidate_limit: int = DEFAULT_SUBSTRING_CANDIDATE_LIMIT,
        fuzzy_min_score: int = DEFAULT_FUZZY_MIN_SCORE,
        examples_per_result: int = DEFAULT_EXAMPLES_PER_RESULT,
        max_limit: int = DEFAULT_MAX_LIMIT,
        logger: Any | None = None,
    ) -> None:
        if max_limit < 1:
            raise ValueError("max_limit must be >= 1")
        self._examples = examples
        self._examples_per_result = examples_per_result
        self._max_limit = max_limit
        self._logger = logger or structlog.get_logger(__name__)

        scorer = scorer or RelevanceScorer()
        self._keyword_chain: tuple[SearchStrategy, ...] = (
            IndexedStrategy(backend, scorer=scorer, candidate_multiplier=candidate_multiplier),
            SubstringStrategy(backend, scorer=scorer, candidate_limit=substring_candidate_limit),
        )
        self._fuzzy_chain: tuple[SearchStrategy, ...] = (
            FuzzyStrategy(backend, min_score=fuzzy_min_score, logger=self._logger),
        )

    @classmethod
    def from_config(
        cls,
        backend: SearchBackend,
        examples: TemplateExampleRepo | None,
        search_config: Mapping[str, Any],
        *,
        logger: Any | None = None,
    ) -> SearchEngine:
        """Build an engine from the ``[search]`` section of a loaded config."""

        boosts_path = str(search_config.get("pinned_boosts_path") or "")
        scorer = RelevanceScorer(load_pinned_boosts(Path(boosts_path))) if boosts_path else None
        return cls(
            backend,
            examples,
            scorer=scorer,
            candidate_multiplier=int(search_config["candidate_multiplier"]),
            substring_candidate_limit=int(search_config["substring_candidate_limit"]),
            fuzzy_min_score=int(search_config["fuzzy_min_score"]),
            examples_per_result=int(search_config["examples_per_result"]),
            max_limit=int(search_config["max_limit"]),
            logger=logger,
        )

    def strategies_for(self, mode: SearchMode) -> tuple[SearchStrategy, ...]:
        if mode is SearchMode.FUZZY:
            return self._fuzzy_chain
        return self._keyword_chain

    def search(
        self,
        query: str,
        limit: int = 20,
        options: SearchOptions | None = None,
    ) -> SearchResponse:
        options = options or SearchOptions()
        cleaned = clean_query(query)
        if not cleaned:
            return SearchResponse.empty(query, options.mode)
        if limit < 1 or limit > self._max_limit:
            raise ValueError(f"limit must be in [1, {self._max_limit}]")

        request = SearchRequest(
            query=cleaned, limit=limit, mode=options.mode, source=options.source
        )
        outcome = run_strategies(
            self.strategies_for(options.mode), request, on_failure=self._log_failure
        )
        reasons = tuple(failure.describe() for failure in outcome.failures)
        if outcome.result is None:
            self._logger.warning(
                "node_search_exhausted",
                query=cleaned,
                mode=options.mode.value,
                reasons=list(reasons),
            )
            return SearchResponse(query=query, mode=options.mode, fallback_reasons=reasons)

        candidates = outcome.result.candidates
        if options.include_examples:
            candidates = self._attach_examples(candidates)

        self._logger.info(
            "node_search_completed",
            query=cleaned,
            mode=options.mode.value,
            source=options.source.value,
            strategy=outcome.result.strategy,
            count=len(candidates),
        )
        return SearchResponse(
            query=query,
            results=candidates,
            total_count=len(candidates),
            mode=options.mode,
            strategy=outcome.result.strategy,
            fallback_reasons=reasons,
        )

    def _log_failure(self, failure: StrategyFailure) -> None:
        self._logger.warning(
            "node_search_strategy_failed", strategy=failure.strategy, reason=failure.reason
        )

    def _attach_examples(
        self, candidates: Sequence[SearchCandidate]
    ) -> tuple[SearchCandidate, ...]:
        if self._examples is None or self._examples_per_result <= 0:
            return tuple(candidates)
        enriched: list[SearchCandidate] = []
        for candidate in candidates:
            try:
                examples = self._examples.for_node(
                    candidate.node.node_type, limit=self._examples_per_result
                )
            except (sqlite3.Error, NodeDBError, ValueError) as exc:
                self._logger.warning(
                    "node_search_examples_failed",
                    node_type=candidate.node.node_type,
                    error=str(exc),
                )
                enriched.append(candidate)
                continue
            enriched.append(candidate.with_examples(examples) if examples else candidate)
        return tuple(enriched)


__all__ = ["DEFAULT_EXAMPLES_PER_RESULT", "DEFAULT_MAX_LIMIT", "SearchEngine"]
