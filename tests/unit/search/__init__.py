"""Shared deterministic builders and an in-memory backend for search tests."""

from __future__ import annotations

import sqlite3
from collections.abc import Sequence

from nodekb.domain.models import NodeSummary, SearchSource
from nodekb.persistence.repositories import IndexedRow


def make_summary(
    node_type: str,
    display_name: str,
    description: str = "",
    *,
    category: str | None = None,
    package_name: str = "n8n-nodes-base",
    is_community: bool = False,
    is_verified: bool = False,
) -> NodeSummary:
    return NodeSummary(
        node_type=node_type,
        package_name=package_name,
        display_name=display_name,
        description=description,
        category=category,
        is_community=is_community,
        is_verified=is_verified,
    )


def catalog() -> list[NodeSummary]:
    return [
        make_summary(
            "nodes-base.webhook", "Webhook", "Starts the workflow when a webhook is called"
        ),
        make_summary(
            "nodes-base.wait",
            "Wait",
            "Pauses execution until a webhook call is received or a time has passed",
        ),
        make_summary(
            "nodes-base.httpRequest", "HTTP Request", "Makes an HTTP request and returns data"
        ),
        make_summary("nodes-base.slack", "Slack", "Consume the Slack API"),
        make_summary("nodes-base.set", "Edit Fields (Set)", "Modify, add, or remove item fields"),
        make_summary("nodes-base.googleSheets", "Google Sheets", "Read and write spreadsheets"),
        make_summary(
            "n8n-nodes-discord-trigger.discordTrigger",
            "Discord Trigger",
            "Starts a workflow on Discord events",
            package_name="n8n-nodes-discord-trigger",
            is_community=True,
            is_verified=True,
        ),
    ]


def _matches_source(node: NodeSummary, source: SearchSource) -> bool:
    if source is SearchSource.CORE:
        return not node.is_community
    if source is SearchSource.COMMUNITY:
        return node.is_community
    if source is SearchSource.VERIFIED:
        return node.is_community and node.is_verified
    return True


class FakeBackend:
    """In-memory ``SearchBackend``; the index half can be disabled or made to raise."""

    def __init__(
        self,
        nodes: Sequence[NodeSummary] | None = None,
        *,
        index_available: bool = True,
        index_error: Exception | None = None,
        index_rows: Sequence[NodeSummary] | None = None,
    ) -> None:
        self.nodes = list(nodes if nodes is not None else catalog())
        self.index_available = index_available
        self.index_error = index_error
        self.index_rows = list(index_rows) if index_rows is not None else None
        self.index_queries: list[str] = []
        self.index_texts: list[str | None] = []
        self.substring_calls: list[tuple[tuple[str, ...], bool]] = []

    def has_search_index(self) -> bool:
        return self.index_available

    def search_index(
        self,
        index_query: str,
        *,
        source: SearchSource = SearchSource.ALL,
        limit: int = 60,
        text: str | None = None,
    ) -> list[IndexedRow]:
        self.index_queries.append(index_query)
        self.index_texts.append(text)
        if self.index_error is not None:
            raise self.index_error
        if self.index_rows is not None:
            rows = self.index_rows
        else:
            terms = [term.rstrip("*").casefold() for term in index_query.split(" OR ")]
            rows = [node for node in self.nodes if any(_contains(node, term) for term in terms)]
        picked = [node for node in rows if _matches_source(node, source)][:limit]
        return [IndexedRow(node=node, rank=-float(index)) for index, node in enumerate(picked)]

    def search_substring(
        self,
        terms: Sequence[str],
        *,
        match_all: bool = False,
        source: SearchSource = SearchSource.ALL,
        limit: int = 1_000,
    ) -> list[NodeSummary]:
        self.substring_calls.append((tuple(terms), match_all))
        check = all if match_all else any
        rows = [
            node
            for node in self.nodes
            if _matches_source(node, source)
            and check(_contains(node, term.casefold()) for term in terms)
        ]
        rows.sort(key=lambda node: (node.display_name.casefold(), node.node_type))
        return rows[:limit]

    def list_summaries(self, *, source: SearchSource = SearchSource.ALL) -> list[NodeSummary]:
        return [node for node in self.nodes if _matches_source(node, source)]


def _contains(node: NodeSummary, term: str) -> bool:
    return (
        term in node.node_type.casefold()
        or term in node.display_name.casefold()
        or term in node.description.casefold()
    )


def broken_index() -> FakeBackend:
    return FakeBackend(index_error=sqlite3.OperationalError("fts5: syntax error near '.'"))


__all__ = ["FakeBackend", "broken_index", "catalog", "make_summary"]
