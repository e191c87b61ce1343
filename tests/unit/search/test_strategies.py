"""
nodekb — unit tests for search strategies

File: tests/unit/search/test_strategies.py

Purpose
- Validate the indexed -> substring fallback chain and the fuzzy strategy against an
  in-memory backend.

What this test file should cover
- A failing or unavailable index falls back to substring matching with identical results.
- The HTTP guard rejects index results that miss the HTTP Request node.
- Deterministic tie-breaking.
- The fuzzy floor.
"""

from __future__ import annotations

import sqlite3

from nodekb.domain.models import SearchMode, SearchSource
from nodekb.search.strategies import (
    FuzzyStrategy,
    IndexedStrategy,
    SearchRequest,
    StrategyFailure,
    StrategyResult,
    SubstringStrategy,
    run_strategies,
)

from . import FakeBackend, broken_index, catalog, make_summary


def _names(result: StrategyResult) -> list[str]:
    return [candidate.node.display_name for candidate in result.candidates]


def _chain(backend: FakeBackend) -> tuple[IndexedStrategy, SubstringStrategy]:
    return IndexedStrategy(backend), SubstringStrategy(backend)


def test_indexed_strategy_scores_and_orders() -> None:
    outcome = IndexedStrategy(FakeBackend())(SearchRequest(query="webhook", limit=10))

    assert isinstance(outcome, StrategyResult)
    assert _names(outcome) == ["Webhook", "Wait"]
    assert [candidate.relevance_score for candidate in outcome.candidates] == [1000, 400]
    assert outcome.candidates[0].rank is not None


def test_raising_index_yields_same_results_as_substring() -> None:
    request = SearchRequest(query="webhook", limit=10)
    backend = broken_index()

    chained = run_strategies(_chain(backend), request)
    direct = SubstringStrategy(FakeBackend())(request)

    assert chained.result is not None
    assert chained.result.strategy == "substring"
    assert isinstance(direct, StrategyResult)
    assert _names(chained.result) == _names(direct)
    assert [failure.strategy for failure in chained.failures] == ["indexed"]
    assert "syntax error" in chained.failures[0].reason


def test_missing_index_is_a_failure_not_an_exception() -> None:
    outcome = IndexedStrategy(FakeBackend(index_available=False))(
        SearchRequest(query="slack", limit=5)
    )

    assert isinstance(outcome, StrategyFailure)
    assert outcome.describe() == "indexed: search index unavailable"


def test_http_guard_falls_back_when_http_node_missing() -> None:
    webhook_only = [node for node in catalog() if node.node_type == "nodes-base.webhook"]
    backend = FakeBackend(index_rows=webhook_only)

    outcome = run_strategies(_chain(backend), SearchRequest(query="http", limit=5))

    assert outcome.result is not None
    assert outcome.result.strategy == "substring"
    assert [failure.reason for failure in outcome.failures] == ["http_guard"]
    assert _names(outcome.result)[0] == "HTTP Request"


def test_substring_or_and_modes() -> None:
    backend = FakeBackend()
    strategy = SubstringStrategy(backend)

    any_term = strategy(SearchRequest(query="slack sheets", limit=10))
    all_terms = strategy(SearchRequest(query="slack sheets", limit=10, mode=SearchMode.AND))

    assert isinstance(any_term, StrategyResult) and isinstance(all_terms, StrategyResult)
    assert sorted(_names(any_term)) == ["Google Sheets", "Slack"]
    assert _names(all_terms) == []
    assert backend.substring_calls[-1] == (("slack", "sheets"), True)


def test_substring_phrase_is_one_term() -> None:
    backend = FakeBackend()

    outcome = SubstringStrategy(backend)(SearchRequest(query='"google sheets"', limit=5))

    assert isinstance(outcome, StrategyResult)
    assert _names(outcome) == ["Google Sheets"]
    assert backend.substring_calls == [(("google sheets",), False)]


def test_substring_failure_is_reported() -> None:
    class _Broken(FakeBackend):
        def search_substring(  # type: ignore[override]
            self, *args: object, **kwargs: object
        ) -> list:
            raise sqlite3.OperationalError("disk I/O error")

    outcome = SubstringStrategy(_Broken())(SearchRequest(query="slack", limit=5))

    assert isinstance(outcome, StrategyFailure)
    assert "disk I/O error" in outcome.reason


def test_ties_break_by_display_name_then_type() -> None:
    nodes = [
        make_summary("nodes-base.b", "Beta", "mail sender"),
        make_summary("nodes-base.a2", "Alpha", "mail sender"),
        make_summary("nodes-base.a1", "alpha", "mail sender"),
    ]

    outcome = SubstringStrategy(FakeBackend(nodes))(SearchRequest(query="mail", limit=10))

    assert isinstance(outcome, StrategyResult)
    assert [candidate.node.node_type for candidate in outcome.candidates] == [
        "nodes-base.a1",
        "nodes-base.a2",
        "nodes-base.b",
    ]


def test_source_filter_is_forwarded() -> None:
    outcome = SubstringStrategy(FakeBackend())(
        SearchRequest(query="trigger", limit=10, source=SearchSource.VERIFIED)
    )

    assert isinstance(outcome, StrategyResult)
    assert _names(outcome) == ["Discord Trigger"]


def test_fuzzy_finds_typos_and_rejects_noise() -> None:
    strategy = FuzzyStrategy(FakeBackend())

    typo = strategy(SearchRequest(query="slak", limit=3, mode=SearchMode.FUZZY))
    noise = strategy(SearchRequest(query="zzzzz", limit=3, mode=SearchMode.FUZZY))

    assert isinstance(typo, StrategyResult) and isinstance(noise, StrategyResult)
    assert "Slack" in _names(typo)
    assert noise.candidates == ()


def test_run_strategies_reports_every_failure() -> None:
    backend = FakeBackend(index_available=False)

    class _AlwaysFails:
        name = "never"

        def __call__(self, request: SearchRequest) -> StrategyFailure:
            return StrategyFailure(self.name, "nope")

    seen: list[str] = []
    outcome = run_strategies(
        (IndexedStrategy(backend), _AlwaysFails()),
        SearchRequest(query="x", limit=1),
        on_failure=lambda failure: seen.append(failure.strategy),
    )

    assert outcome.result is None
    assert seen == ["indexed", "never"]
