"""Node type identifier normalization.

Nodes are stored under a short form (``nodes-base.slack``) while workflows reference
them with the full package prefix (``n8n-nodes-base.slack``). Callers and AI agents use
either form interchangeably, plus the occasional casing slip, so lookups go through
``node_type_alternatives`` before giving up.
"""

from __future__ import annotations

from typing import Final

from nodekb.constants import (
    CORE_PACKAGE,
    CORE_SHORT_PREFIX,
    CORE_WORKFLOW_PREFIX,
    LANGCHAIN_PACKAGE,
    LANGCHAIN_SHORT_PREFIX,
    LANGCHAIN_WORKFLOW_PREFIX,
)

_PREFIX_REWRITES: Final[tuple[tuple[str, str], ...]] = (
    (LANGCHAIN_WORKFLOW_PREFIX, LANGCHAIN_SHORT_PREFIX),
    ("n8n-nodes-langchain.", LANGCHAIN_SHORT_PREFIX),
    (CORE_WORKFLOW_PREFIX, CORE_SHORT_PREFIX),
)
_SHORT_PREFIXES: Final[tuple[str, ...]] = (CORE_SHORT_PREFIX, LANGCHAIN_SHORT_PREFIX)


def normalize_node_type(node_type: str) -> str:
    """Rewrite package-prefixed identifiers to the short stored form."""

    text = node_type.strip()
    for prefix, replacement in _PREFIX_REWRITES:
        if text.startswith(prefix):
            return replacement + text[len(prefix) :]
    return text


def normalize_query_text(query: str) -> str:
    """Rewrite package prefixes anywhere in free text (search queries)."""

    text = query.strip()
    for prefix, replacement in _PREFIX_REWRITES:
        text = text.replace(prefix, replacement)
    return text


def strip_package_prefix(node_type: str) -> str:
    normalized = normalize_node_type(node_type)
    for prefix in _SHORT_PREFIXES:
        if normalized.startswith(prefix):
            return normalized[len(prefix) :]
    return normalized


def package_for_node_type(node_type: str) -> str:
    if normalize_node_type(node_type).startswith(LANGCHAIN_SHORT_PREFIX):
        return LANGCHAIN_PACKAGE
    return CORE_PACKAGE


def workflow_node_type(package_name: str, node_type: str) -> str:
    """Return the identifier a workflow JSON uses for this node."""

    normalized = normalize_node_type(node_type)
    if normalized.startswith(CORE_SHORT_PREFIX):
        return CORE_WORKFLOW_PREFIX + normalized[len(CORE_SHORT_PREFIX) :]
    if normalized.startswith(LANGCHAIN_SHORT_PREFIX):
        return LANGCHAIN_WORKFLOW_PREFIX + normalized[len(LANGCHAIN_SHORT_PREFIX) :]
    # Community packages keep their own package name as the prefix.
    if "." in normalized or not package_name:
        return normalized
    return f"{package_name}.{normalized}"


def node_type_alternatives(node_type: str) -> tuple[str, ...]:
    """Candidate stored identifiers for a caller-supplied node type, most likely first."""

    raw = node_type.strip()
    normalized = normalize_node_type(raw)
    candidates: list[str] = [normalized, raw]

    bare = strip_package_prefix(normalized)
    if "." not in normalized:
        candidates.extend(prefix + bare for prefix in _SHORT_PREFIXES)
    lowered = bare.lower()
    if lowered != bare:
        candidates.extend(prefix + lowered for prefix in _SHORT_PREFIXES)
    if bare:
        # "httprequest" -> "httpRequest" style casing slips are resolved case-insensitively
        # by the repository; keep the lowercase forms last.
        candidates.extend(prefix + bare[:1].lower() + bare[1:] for prefix in _SHORT_PREFIXES)

    ordered: list[str] = []
    seen: set[str] = set()
    for candidate in candidates:
        if candidate and candidate not in seen:
            seen.add(candidate)
            ordered.append(candidate)
    return tuple(ordered)


__all__ = [
    "node_type_alternatives",
    "normalize_node_type",
    "normalize_query_text",
    "package_for_node_type",
    "strip_package_prefix",
    "workflow_node_type",
]
