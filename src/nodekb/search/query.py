"""Query text handling shared by the search strategies."""

from __future__ import annotations

from nodekb.domain.models import SearchMode
from nodekb.domain.node_types import normalize_query_text


def clean_query(query: str) -> str:
    """Trim and rewrite package prefixes to the stored short form."""

    return normalize_query_text(query)


def is_quoted_phrase(query: str) -> bool:
    return len(query) >= 2 and query.startswith('"') and query.endswith('"')


def unquote(query: str) -> str:
    """Strip one pair of surrounding double quotes, if present."""

    if is_quoted_phrase(query):
        return query[1:-1].strip()
    return query


def query_terms(query: str) -> tuple[str, ...]:
    return tuple(term for term in query.split() if term)


def build_index_query(query: str, mode: SearchMode = SearchMode.OR) -> str:
    """Translate a cleaned query into FTS5 MATCH syntax.

    A fully quoted query is passed through verbatim as a phrase. Otherwise every
    whitespace term gets a prefix wildcard and terms are joined with ``OR`` (or
    ``AND`` in AND mode).
    """

    if is_quoted_phrase(query):
        return query
    terms = query_terms(query)
    if not terms:
        raise ValueError("query must contain at least one term")
    joiner = " AND " if mode is SearchMode.AND else " OR "
    return joiner.join(f"{term}*" for term in terms)


def substring_terms(query: str) -> tuple[str, ...]:
    """Terms matched by the substring strategy; a quoted phrase stays one term."""

    if is_quoted_phrase(query):
        phrase = unquote(query)
        return (phrase,) if phrase else ()
    return query_terms(query)


__all__ = [
    "build_index_query",
    "clean_query",
    "is_quoted_phrase",
    "query_terms",
    "substring_terms",
    "unquote",
]
