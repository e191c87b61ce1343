"""
nodekb — repositories

File: src/nodekb/persistence/repositories.py

Purpose
- Repository classes for reading/writing node records, template example
  configurations and node versions in the node database.

Functional requirements
- Node lookups accept both package-prefixed and short identifiers and resolve
  common casing slips before reporting "not found".
- Search queries expose the raw index error to the caller so the search engine can
  fall back to a weaker strategy.

Non-functional requirements
- Substring scans are bounded by an explicit candidate limit.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Final, cast

from nodekb.domain.models import (
    JSONValue,
    NodeRecord,
    NodeSummary,
    NodeVersion,
    SearchSource,
    TemplateExample,
    canonical_json,
    parse_properties,
)
from nodekb.domain.node_types import (
    node_type_alternatives,
    normalize_node_type,
    package_for_node_type,
    workflow_node_type,
)
from nodekb.persistence.node_db import FTS_TABLE, NodeDB, RowValue, SQLParams

_MAX_PAGE_SIZE: Final[int] = 1_000

_SUMMARY_COLUMNS: Final[str] = (
    "node_type, package_name, display_name, description, category, "
    "is_community, is_verified, author_name, npm_downloads"
)

_SOURCE_CLAUSES: Final[dict[SearchSource, str]] = {
    SearchSource.ALL: "",
    SearchSource.CORE: " AND n.is_community = 0",
    SearchSource.COMMUNITY: " AND n.is_community = 1",
    SearchSource.VERIFIED: " AND n.is_community = 1 AND n.is_verified = 1",
}


class NodeNotFoundError(LookupError):
    """Raised when a node type cannot be resolved under any alternate identifier."""

    def __init__(self, node_type: str) -> None:
        super().__init__(f"Node {node_type} not found")
        self.node_type = node_type

    def __str__(self) -> str:
        return str(self.args[0])


@dataclass(frozen=True, slots=True)
class IndexedRow:
    """A node summary with the full-text index's native rank (lower is better)."""

    node: NodeSummary
    rank: float


class _BaseRepo:
    def __init__(self, db: NodeDB) -> None:
        self._db = db
        self._db.migrate()

    @staticmethod
    def _validate_limit(limit: int) -> None:
        if limit <= 0 or limit > _MAX_PAGE_SIZE:
            raise ValueError(f"limit must be in [1, {_MAX_PAGE_SIZE}]")


class NodeRepo(_BaseRepo):
    """Repository for node records and the row/index queries used by search."""

    def upsert(self, record: NodeRecord) -> NodeRecord:
        self.upsert_many((record,))
        return record

    def upsert_many(self, records: Iterable[NodeRecord]) -> int:
        rows = [_node_params(record) for record in records]
        if not rows:
            return 0
        with self._db.transaction(immediate=True) as tx:
            self._db.executemany(
                """
                INSERT INTO nodes (
                    node_type,
                    package_name,
                    display_name,
                    description,
                    category,
                    development_style,
                    is_ai_tool,
                    is_trigger,
                    is_webhook,
                    is_versioned,
                    version,
                    documentation,
                    properties_schema,
                    operations,
                    credentials_required,
                    outputs,
                    output_names,
                    is_community,
                    is_verified,
                    author_name,
                    npm_downloads,
                    updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(node_type) DO UPDATE SET
                    package_name=excluded.package_name,
                    display_name=excluded.display_name,
                    description=excluded.description,
                    category=excluded.category,
                    development_style=excluded.development_style,
                    is_ai_tool=excluded.is_ai_tool,
                    is_trigger=excluded.is_trigger,
                    is_webhook=excluded.is_webhook,
                    is_versioned=excluded.is_versioned,
                    version=excluded.version,
                    documentation=excluded.documentation,
                    properties_schema=excluded.properties_schema,
                    operations=excluded.operations,
                    credentials_required=excluded.credentials_required,
                    outputs=excluded.outputs,
                    output_names=excluded.output_names,
                    is_community=excluded.is_community,
                    is_verified=excluded.is_verified,
                    author_name=excluded.author_name,
                    npm_downloads=excluded.npm_downloads,
                    updated_at=excluded.updated_at
                """,
                rows,
                conn=tx,
            )
        return len(rows)

    def get(self, node_type: str) -> NodeRecord | None:
        """Exact lookup by stored (short-form) identifier."""

        row = self._db.query_one("SELECT * FROM nodes WHERE node_type = ?", (node_type,))
        return None if row is None else _record_from_row(row)

    def find(self, node_type: str) -> NodeRecord | None:
        """Lookup trying every alternate identifier, then a case-insensitive match."""

        with self._db.connection() as conn:
            for candidate in node_type_alternatives(node_type):
                row = self._db.query_one(
                    "SELECT * FROM nodes WHERE node_type = ?", (candidate,), conn=conn
                )
                if row is not None:
                    return _record_from_row(row)
            row = self._db.query_one(
                "SELECT * FROM nodes WHERE lower(node_type) = lower(?) ORDER BY node_type LIMIT 1",
                (normalize_node_type(node_type),),
                conn=conn,
            )
        return None if row is None else _record_from_row(row)

    def require(self, node_type: str) -> NodeRecord:
        record = self.find(node_type)
        if record is None:
            raise NodeNotFoundError(node_type)
        return record

    def has_search_index(self) -> bool:
        return self._db.has_search_index()

    def search_index(
        self,
        index_query: str,
        *,
        source: SearchSource = SearchSource.ALL,
        limit: int = 60,
        text: str | None = None,
    ) -> list[IndexedRow]:
        """Run a full-text query. ``sqlite3.Error`` propagates untranslated.

        When ``text`` is given, rows whose name or type matches it are ordered ahead of
        the native rank, so the candidate window is never cut before exact and prefix
        name matches.
        """

        self._validate_limit(limit)
        tier_sql, tier_params = _name_match_order(text)
        rows = self._db.query_raw(
            f"""
            SELECT {_prefixed_summary_columns()}, {FTS_TABLE}.rank AS rank
            FROM nodes n
            JOIN {FTS_TABLE} ON n.rowid = {FTS_TABLE}.rowid
            WHERE {FTS_TABLE} MATCH ?{_SOURCE_CLAUSES[source]}
            ORDER BY {tier_sql}{FTS_TABLE}.rank, n.display_name
            LIMIT ?
            """,
            (index_query, *tier_params, limit),
        )
        out: list[IndexedRow] = []
        for row in rows:
            rank = row.get("rank")
            out.append(
                IndexedRow(
                    node=_summary_from_row(row),
                    rank=float(rank) if isinstance(rank, (int, float)) else 0.0,
                )
            )
        return out

    def search_substring(
        self,
        terms: Sequence[str],
        *,
        match_all: bool = False,
        source: SearchSource = SearchSource.ALL,
        limit: int = 1_000,
    ) -> list[NodeSummary]:
        """Case-insensitive LIKE match of each term against type, name and description."""

        if not terms:
            return []
        if limit <= 0:
            raise ValueError("limit must be > 0")
        predicate = (
            "(n.node_type LIKE ? ESCAPE '\\' OR n.display_name LIKE ? ESCAPE '\\' "
            "OR n.description LIKE ? ESCAPE '\\')"
        )
        joiner = " AND " if match_all else " OR "
        conditions = joiner.join(predicate for _ in terms)
        params: list[RowValue] = []
        for term in terms:
            pattern = f"%{_escape_like(term)}%"
            params.extend((pattern, pattern, pattern))
        params.append(limit)
        rows = self._db.query_all(
            f"""
            SELECT {_prefixed_summary_columns()}
            FROM nodes n
            WHERE ({conditions}){_SOURCE_CLAUSES[source]}
            ORDER BY n.display_name COLLATE NOCASE, n.node_type
            LIMIT ?
            """,
            cast("SQLParams", tuple(params)),
        )
        return [_summary_from_row(row) for row in rows]

    def list_summaries(self, *, source: SearchSource = SearchSource.ALL) -> list[NodeSummary]:
        rows = self._db.query_all(
            f"""
            SELECT {_prefixed_summary_columns()}
            FROM nodes n
            WHERE 1 = 1{_SOURCE_CLAUSES[source]}
            ORDER BY n.display_name COLLATE NOCASE, n.node_type
            """
        )
        return [_summary_from_row(row) for row in rows]

    def list_nodes(
        self,
        *,
        package: str | None = None,
        category: str | None = None,
        development_style: str | None = None,
        is_ai_tool: bool | None = None,
        limit: int = 50,
    ) -> list[NodeRecord]:
        self._validate_limit(limit)
        sql = "SELECT * FROM nodes WHERE 1 = 1"
        params: list[RowValue] = []
        if package is not None:
            variants = _package_variants(package)
            sql += f" AND package_name IN ({', '.join('?' for _ in variants)})"
            params.extend(variants)
        if category is not None:
            sql += " AND category = ?"
            params.append(category)
        if development_style is not None:
            sql += " AND development_style = ?"
            params.append(development_style)
        if is_ai_tool is not None:
            sql += " AND is_ai_tool = ?"
            params.append(1 if is_ai_tool else 0)
        sql += " ORDER BY display_name COLLATE NOCASE, node_type LIMIT ?"
        params.append(limit)
        rows = self._db.query_all(sql, cast("SQLParams", tuple(params)))
        return [_record_from_row(row) for row in rows]

    def count(self) -> int:
        row = self._db.query_one("SELECT COUNT(*) AS total FROM nodes")
        return _as_count(row, "total")

    def statistics(self) -> dict[str, JSONValue]:
        with self._db.connection() as conn:
            totals = self._db.query_one(
                """
                SELECT
                    COUNT(*) AS total,
                    COALESCE(SUM(is_ai_tool), 0) AS ai_tools,
                    COALESCE(SUM(is_trigger), 0) AS triggers,
                    COALESCE(SUM(is_webhook), 0) AS webhooks,
                    COALESCE(SUM(is_versioned), 0) AS versioned,
                    COALESCE(SUM(is_community), 0) AS community,
                    COALESCE(SUM(is_community * is_verified), 0) AS verified,
                    COALESCE(SUM(CASE WHEN documentation IS NOT NULL THEN 1 ELSE 0 END), 0)
                        AS with_docs,
                    COUNT(DISTINCT package_name) AS packages,
                    COUNT(DISTINCT category) AS categories
                FROM nodes
                """,
                conn=conn,
            )
            packages = self._db.query_all(
                """
                SELECT package_name, COUNT(*) AS node_count
                FROM nodes
                GROUP BY package_name
                ORDER BY node_count DESC, package_name
                """,
                conn=conn,
            )
            templates = self._db.query_one(
                """
                SELECT
                    COUNT(*) AS total,
                    COUNT(DISTINCT node_type) AS node_types,
                    COALESCE(MAX(template_views), 0) AS max_views
                FROM template_node_configs
                """,
                conn=conn,
            )
            search_index = self._db.has_search_index(conn=conn)

        total = _as_count(totals, "total")
        with_docs = _as_count(totals, "with_docs")
        coverage = round((with_docs / total) * 100) if total else 0
        return {
            "total_nodes": total,
            "ai_tools": _as_count(totals, "ai_tools"),
            "triggers": _as_count(totals, "triggers"),
            "webhooks": _as_count(totals, "webhooks"),
            "versioned_nodes": _as_count(totals, "versioned"),
            "community_nodes": _as_count(totals, "community"),
            "verified_community_nodes": _as_count(totals, "verified"),
            "nodes_with_documentation": with_docs,
            "documentation_coverage": f"{coverage}%",
            "unique_packages": _as_count(totals, "packages"),
            "unique_categories": _as_count(totals, "categories"),
            "template_examples": {
                "total": _as_count(templates, "total"),
                "node_types": _as_count(templates, "node_types"),
                "max_views": _as_count(templates, "max_views"),
            },
            "package_breakdown": [
                {"package": str(row["package_name"]), "node_count": _as_count(row, "node_count")}
                for row in packages
            ],
            "search_index": search_index,
        }


class TemplateExampleRepo(_BaseRepo):
    """Repository for real node configurations extracted from workflow templates."""

    def upsert(self, example: TemplateExample) -> TemplateExample:
        self.upsert_many((example,))
        return example

    def upsert_many(self, examples: Iterable[TemplateExample]) -> int:
        now = _utc_now_iso()
        rows = [
            (
                _as_workflow_type(example.node_type),
                example.template_name,
                example.template_views,
                example.rank,
                canonical_json(example.configuration),
                now,
            )
            for example in examples
        ]
        if not rows:
            return 0
        self._db.executemany(
            """
            INSERT INTO template_node_configs (
                node_type,
                template_name,
                template_views,
                rank,
                parameters_json,
                created_at
            ) VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(node_type, template_name) DO UPDATE SET
                template_views=excluded.template_views,
                rank=excluded.rank,
                parameters_json=excluded.parameters_json
            """,
            rows,
        )
        return len(rows)

    def for_node(self, node_type: str, *, limit: int = 2) -> list[TemplateExample]:
        """Most popular examples first; ``node_type`` may be short or workflow form."""

        self._validate_limit(limit)
        rows = self._db.query_all(
            """
            SELECT node_type, template_name, template_views, rank, parameters_json
            FROM template_node_configs
            WHERE node_type = ?
            ORDER BY rank ASC, template_views DESC, template_name ASC
            LIMIT ?
            """,
            (_as_workflow_type(node_type), limit),
        )
        return [
            TemplateExample(
                node_type=str(row["node_type"]),
                template_name=str(row["template_name"]),
                template_views=_as_count(row, "template_views"),
                rank=_as_count(row, "rank"),
                configuration=_load_json_object(
                    row["parameters_json"], "template_node_configs.parameters_json"
                ),
            )
            for row in rows
        ]


class NodeVersionRepo(_BaseRepo):
    """Repository for per-node version history."""

    def upsert(self, version: NodeVersion) -> NodeVersion:
        self.upsert_many((version,))
        return version

    def upsert_many(self, versions: Iterable[NodeVersion]) -> int:
        rows = [
            (
                version.node_type,
                version.version,
                1 if version.is_current_max else 0,
                version.released_at,
                canonical_json(list(version.breaking_changes)),
                canonical_json(list(version.deprecated_properties)),
                canonical_json(list(version.added_properties)),
            )
            for version in versions
        ]
        if not rows:
            return 0
        self._db.executemany(
            """
            INSERT INTO node_versions (
                node_type,
                version,
                is_current_max,
                released_at,
                breaking_changes_json,
                deprecated_properties_json,
                added_properties_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(node_type, version) DO UPDATE SET
                is_current_max=excluded.is_current_max,
                released_at=excluded.released_at,
                breaking_changes_json=excluded.breaking_changes_json,
                deprecated_properties_json=excluded.deprecated_properties_json,
                added_properties_json=excluded.added_properties_json
            """,
            rows,
        )
        return len(rows)

    def list_for(self, node_type: str) -> list[NodeVersion]:
        rows = self._db.query_all(
            """
            SELECT *
            FROM node_versions
            WHERE node_type = ?
            ORDER BY is_current_max DESC, CAST(version AS REAL) DESC, version DESC
            """,
            (normalize_node_type(node_type),),
        )
        return [_version_from_row(row) for row in rows]

    def latest(self, node_type: str) -> NodeVersion | None:
        versions = self.list_for(node_type)
        return versions[0] if versions else None


def _node_params(record: NodeRecord) -> tuple[RowValue, ...]:
    return (
        record.node_type,
        record.package_name,
        record.display_name,
        record.description,
        record.category,
        record.development_style,
        int(record.is_ai_tool),
        int(record.is_trigger),
        int(record.is_webhook),
        int(record.is_versioned),
        record.version,
        record.documentation,
        canonical_json([prop.to_dict() for prop in record.properties]),
        canonical_json(list(record.operations)),
        canonical_json(list(record.credentials_required)),
        canonical_json(list(record.outputs)),
        canonical_json(list(record.output_names)),
        int(record.is_community),
        int(record.is_verified),
        record.author_name,
        record.npm_downloads,
        _utc_now_iso(),
    )


def _record_from_row(row: Mapping[str, RowValue]) -> NodeRecord:
    node_type = _row_text(row, "node_type", "nodes.node_type")
    path = f"nodes[{node_type}]"
    return NodeRecord(
        node_type=node_type,
        package_name=_row_text(row, "package_name", f"{path}.package_name"),
        display_name=_row_text(row, "display_name", f"{path}.display_name"),
        description=str(row.get("description") or ""),
        category=_optional_text(row.get("category")),
        development_style=str(row.get("development_style") or "programmatic"),
        is_ai_tool=bool(row.get("is_ai_tool")),
        is_trigger=bool(row.get("is_trigger")),
        is_webhook=bool(row.get("is_webhook")),
        is_versioned=bool(row.get("is_versioned")),
        version=str(row.get("version") or "1"),
        documentation=_optional_text(row.get("documentation")),
        properties=parse_properties(
            _load_json_list(row.get("properties_schema"), f"{path}.properties_schema"),
            f"{path}.properties",
        ),
        operations=tuple(
            cast("dict[str, JSONValue]", item)
            for item in _load_json_list(row.get("operations"), f"{path}.operations")
            if isinstance(item, dict)
        ),
        credentials_required=tuple(
            cast("dict[str, JSONValue]", item)
            for item in _load_json_list(
                row.get("credentials_required"), f"{path}.credentials_required"
            )
            if isinstance(item, dict)
        ),
        outputs=tuple(
            cast("list[JSONValue]", _load_json_list(row.get("outputs"), f"{path}.outputs"))
        ),
        output_names=tuple(
            str(item)
            for item in _load_json_list(row.get("output_names"), f"{path}.output_names")
        ),
        is_community=bool(row.get("is_community")),
        is_verified=bool(row.get("is_verified")),
        author_name=_optional_text(row.get("author_name")),
        npm_downloads=_as_count(row, "npm_downloads"),
    )


def _summary_from_row(row: Mapping[str, RowValue]) -> NodeSummary:
    return NodeSummary(
        node_type=_row_text(row, "node_type", "nodes.node_type"),
        package_name=_row_text(row, "package_name", "nodes.package_name"),
        display_name=_row_text(row, "display_name", "nodes.display_name"),
        description=str(row.get("description") or ""),
        category=_optional_text(row.get("category")),
        is_community=bool(row.get("is_community")),
        is_verified=bool(row.get("is_verified")),
        author_name=_optional_text(row.get("author_name")),
        npm_downloads=_as_count(row, "npm_downloads"),
    )


def _version_from_row(row: Mapping[str, RowValue]) -> NodeVersion:
    node_type = _row_text(row, "node_type", "node_versions.node_type")
    path = f"node_versions[{node_type}]"
    return NodeVersion(
        node_type=node_type,
        version=_row_text(row, "version", f"{path}.version"),
        is_current_max=bool(row.get("is_current_max")),
        released_at=_optional_text(row.get("released_at")),
        breaking_changes=tuple(
            cast("dict[str, JSONValue]", item)
            for item in _load_json_list(
                row.get("breaking_changes_json"), f"{path}.breaking_changes_json"
            )
            if isinstance(item, dict)
        ),
        deprecated_properties=tuple(
            str(item)
            for item in _load_json_list(
                row.get("deprecated_properties_json"), f"{path}.deprecated_properties_json"
            )
        ),
        added_properties=tuple(
            str(item)
            for item in _load_json_list(
                row.get("added_properties_json"), f"{path}.added_properties_json"
            )
        ),
    )


def _prefixed_summary_columns() -> str:
    return ", ".join(f"n.{column.strip()}" for column in _SUMMARY_COLUMNS.split(","))


def _package_variants(package: str) -> tuple[str, ...]:
    stripped = package.removeprefix("@n8n/")
    variants = [package, f"@n8n/{stripped}", stripped]
    return tuple(dict.fromkeys(variants))


def _as_workflow_type(node_type: str) -> str:
    normalized = normalize_node_type(node_type)
    return workflow_node_type(package_for_node_type(normalized), normalized)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _name_match_order(text: str | None) -> tuple[str, tuple[RowValue, ...]]:
    """``ORDER BY`` prefix tiering exact name/type, name prefix, name and type substrings."""

    cleaned = (text or "").strip()
    if not cleaned:
        return "", ()
    escaped = _escape_like(cleaned)
    sql = """
            CASE
                WHEN n.display_name = ? COLLATE NOCASE THEN 0
                WHEN n.node_type LIKE ? ESCAPE '\\' THEN 0
                WHEN n.display_name LIKE ? ESCAPE '\\' THEN 1
                WHEN n.display_name LIKE ? ESCAPE '\\' THEN 2
                WHEN n.node_type LIKE ? ESCAPE '\\' THEN 3
                ELSE 4
            END,
            """
    params: tuple[RowValue, ...] = (
        cleaned,
        f"%.{escaped}",
        f"{escaped}%",
        f"%{escaped}%",
        f"%{escaped}%",
    )
    return sql, params


def _row_text(row: Mapping[str, RowValue], key: str, path: str) -> str:
    value = row.get(key)
    if not isinstance(value, str):
        raise ValueError(f"{path}: expected text value")
    return value


def _optional_text(value: RowValue) -> str | None:
    if value is None:
        return None
    return str(value)


def _as_count(row: Mapping[str, RowValue] | None, key: str) -> int:
    if row is None:
        return 0
    value = row.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def _load_json_list(payload: RowValue, path: str) -> list[object]:
    if payload is None:
        return []
    if not isinstance(payload, str):
        raise ValueError(f"{path}: expected JSON string")
    try:
        loaded = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path}: invalid JSON ({exc})") from exc
    if not isinstance(loaded, list):
        raise ValueError(f"{path}: JSON root must be array")
    return loaded


def _load_json_object(payload: RowValue, path: str) -> dict[str, JSONValue]:
    if not isinstance(payload, str):
        raise ValueError(f"{path}: expected JSON string")
    try:
        loaded = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path}: invalid JSON ({exc})") from exc
    if not isinstance(loaded, dict):
        raise ValueError(f"{path}: JSON root must be object")
    return cast("dict[str, JSONValue]", loaded)


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


__all__ = [
    "IndexedRow",
    "NodeNotFoundError",
    "NodeRepo",
    "NodeVersionRepo",
    "TemplateExampleRepo",
]
