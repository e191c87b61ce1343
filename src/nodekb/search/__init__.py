"""Node search: query building, relevance scoring, fallback strategies and the engine."""

from nodekb.search.engine import SearchEngine
from nodekb.search.fuzzy import fuzzy_score, levenshtein
from nodekb.search.query import build_index_query, clean_query
from nodekb.search.scoring import PinnedBoost, RelevanceScorer, relevance_label
from nodekb.search.strategies import (
    FuzzyStrategy,
    IndexedStrategy,
    SearchRequest,
    StrategyFailure,
    StrategyResult,
    SubstringStrategy,
    run_strategies,
)

__all__ = [
    "FuzzyStrategy",
    "IndexedStrategy",
    "PinnedBoost",
    "RelevanceScorer",
    "SearchEngine",
    "SearchRequest",
    "StrategyFailure",
    "StrategyResult",
    "SubstringStrategy",
    "build_index_query",
    "clean_query",
    "fuzzy_score",
    "levenshtein",
    "relevance_label",
    "run_strategies",
]
