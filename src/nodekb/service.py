"""
nodekb — knowledge service

File: src/nodekb/service.py

Purpose
- Caller-facing facade over the node database, the configuration validator, the search
  engine and the property filter. Every operation returns a JSON-ready payload.
- Version comparison and property dependency analysis over the same records.

Functional requirements
- Reject malformed requests (empty node types, non-object configs, out-of-range limits)
  with ``InvalidRequestError`` before any core component runs.
- Lookup misses surface as ``NodeNotFoundError`` with message ``Node <type> not found``.
- Essentials and version summaries are cached in a caller-owned ``TTLCache``; importing
  nodes invalidates the cache.

Non-functional requirements
- Holds no mutable state besides the optional cache.
"""

from __future__ import annotations

import copy
import json
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any, Final, cast

import structlog

from nodekb.constants import CORE_PACKAGE
from nodekb.domain.models import (
    JSONValue,
    NodeRecord,
    NodeVersion,
    SearchMode,
    SearchOptions,
    SearchResponse,
    SearchSource,
    TemplateExample,
    ValidationMode,
    ValidationProfile,
    ValidationResult,
)
from nodekb.domain.versions import compare_versions
from nodekb.persistence.node_db import NodeDB
from nodekb.persistence.repositories import NodeRepo, NodeVersionRepo, TemplateExampleRepo
from nodekb.properties.dependencies import analyze_dependencies, visibility_impact
from nodekb.properties.filter import (
    DEFAULT_MAX_COMMON_PROPERTIES,
    DEFAULT_MAX_SEARCH_RESULTS,
    get_essentials,
    search_properties,
    simplify_property,
)
from nodekb.properties.type_info import describe_properties, type_info
from nodekb.search.engine import SearchEngine
from nodekb.utils.cache import TTLCache
from nodekb.validation.config_validator import ConfigValidator
from nodekb.validation.type_structures import TypeStructureRegistry

DEFAULT_SEARCH_LIMIT: Final[int] = 20
DEFAULT_LIST_LIMIT: Final[int] = 50
DEFAULT_ESSENTIAL_EXAMPLES: Final[int] = 3

_BREAKING_CHANGE_KEYS: Final[tuple[str, ...]] = (
    "node_type",
    "from_version",
    "to_version",
    "total_breaking_changes",
    "breaking_changes",
    "migration_hints",
    "upgrade_safe",
)
_AI_TOOL_BUILTIN_ENV: Final[str] = "No special environment variables needed for built-in nodes"
_AI_TOOL_COMMUNITY_ENV: Final[str] = (
    "Set N8N_COMMUNITY_PACKAGES_ALLOW_TOOL_USAGE=true for community nodes"
)


class InvalidRequestError(ValueError):
    """Raised when a caller request is malformed before reaching the core."""


class DetailLevel(StrEnum):
    MINIMAL = "minimal"
    STANDARD = "standard"
    FULL = "full"


@dataclass(frozen=True, slots=True)
class ImportReport:
    source: str
    nodes: int
    template_examples: int
    versions: int
    search_index: bool

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "source": self.source,
            "nodes": self.nodes,
            "template_examples": self.template_examples,
            "versions": self.versions,
            "search_index": self.search_index,
        }


class NodeKnowledgeService:
    """Node lookup, essentials, validation and search over one node database."""

    def __init__(
        self,
        db: NodeDB,
        *,
        validator: ConfigValidator | None = None,
        engine: SearchEngine | None = None,
        cache: TTLCache[dict[str, JSONValue]] | None = None,
        config: Mapping[str, Any] | None = None,
        logger: Any | None = None,
    ) -> None:
        self._db = db
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._nodes = NodeRepo(db)
        self._examples = TemplateExampleRepo(db)
        self._versions = NodeVersionRepo(db)
        self._validator = validator if validator is not None else ConfigValidator()
        self._engine = (
            engine if engine is not None else SearchEngine(self._nodes, self._examples)
        )
        self._cache = cache

        settings = config or {}
        search = cast("Mapping[str, Any]", settings.get("search", {}))
        properties = cast("Mapping[str, Any]", settings.get("properties", {}))
        validation = cast("Mapping[str, Any]", settings.get("validation", {}))
        self._default_limit = int(search.get("default_limit", DEFAULT_SEARCH_LIMIT))
        self._max_common = int(
            properties.get("max_common_properties", DEFAULT_MAX_COMMON_PROPERTIES)
        )
        self._max_property_results = int(
            properties.get("max_search_results", DEFAULT_MAX_SEARCH_RESULTS)
        )
        self._default_mode = ValidationMode(validation.get("default_mode", "full"))
        self._default_profile = ValidationProfile(
            validation.get("default_profile", "ai-friendly")
        )

    @classmethod
    def from_config(
        cls, config: Mapping[str, Any], *, logger: Any | None = None
    ) -> NodeKnowledgeService:
        """Wire database, engine and cache from a validated config mapping."""

        database = cast("Mapping[str, Any]", config["database"])
        db = NodeDB(
            database["path"],
            busy_timeout_ms=int(database["busy_timeout_ms"]),
            busy_retry_limit=int(database["busy_retry_limit"]),
            logger=logger,
        )
        nodes = NodeRepo(db)
        examples = TemplateExampleRepo(db)
        engine = SearchEngine.from_config(
            nodes, examples, cast("Mapping[str, Any]", config["search"]), logger=logger
        )
        cache_config = cast("Mapping[str, Any]", config.get("cache", {}))
        cache: TTLCache[dict[str, JSONValue]] | None = None
        if cache_config.get("enabled", False):
            cache = TTLCache(
                ttl_seconds=float(cache_config["ttl_seconds"]),
                max_entries=int(cache_config["max_entries"]),
            )
        return cls(db, engine=engine, cache=cache, config=config, logger=logger)

    @property
    def db(self) -> NodeDB:
        return self._db

    @property
    def default_limit(self) -> int:
        return self._default_limit

    # ------------------------------------------------------------------
    # Node information
    # ------------------------------------------------------------------

    def get_node_info(
        self,
        node_type: str,
        detail: DetailLevel | str = DetailLevel.STANDARD,
        *,
        include_type_info: bool = False,
        include_examples: bool = False,
    ) -> dict[str, JSONValue]:
        level = _as_detail(detail)
        record = self._nodes.require(_require_node_type(node_type))

        if level is DetailLevel.MINIMAL:
            return _minimal_payload(record)

        if level is DetailLevel.STANDARD:
            payload = self.get_node_essentials(
                record.node_type, include_examples=include_examples
            )
            if include_type_info:
                essentials = get_essentials(
                    record.properties,
                    record.node_type,
                    node_version=record.type_version,
                    max_common=self._max_common,
                )
                payload["required_properties"] = describe_properties(
                    essentials.required, include_type_info=True, registry=self._registry()
                )
                payload["common_properties"] = describe_properties(
                    essentials.common, include_type_info=True, registry=self._registry()
                )
            payload["version_info"] = self.version_summary(record.node_type)
            return payload

        payload = record.to_dict()
        payload["workflow_node_type"] = record.workflow_node_type
        payload["version_info"] = self.version_summary(record.node_type)
        if include_type_info:
            payload["property_types"] = {
                prop.name: type_info(prop, self._registry()) for prop in record.properties
            }
        if include_examples:
            payload["examples"] = self._example_payloads(
                record.node_type, DEFAULT_ESSENTIAL_EXAMPLES
            )
        return payload

    def get_node_essentials(
        self, node_type: str, *, include_examples: bool = False
    ) -> dict[str, JSONValue]:
        record = self._nodes.require(_require_node_type(node_type))
        key = ("essentials", record.node_type, include_examples)
        return self._cached(key, lambda: self._essentials_payload(record, include_examples))

    def search_node_properties(
        self, node_type: str, query: str, max_results: int | None = None
    ) -> dict[str, JSONValue]:
        limit = self._max_property_results if max_results is None else max_results
        if limit < 1:
            raise InvalidRequestError("max_results must be >= 1")
        record = self._nodes.require(_require_node_type(node_type))
        matches = search_properties(record.properties, query, limit)
        return {
            "node_type": record.node_type,
            "query": query,
            "matches": [match.to_dict() for match in matches],
            "total_matches": len(matches),
            "searched_in": f"{len(record.properties)} properties",
        }

    def version_summary(self, node_type: str) -> dict[str, JSONValue]:
        normalized = _require_node_type(node_type)
        return self._cached(("versions", normalized), lambda: self._version_payload(normalized))

    # ------------------------------------------------------------------
    # Versions and property dependencies
    # ------------------------------------------------------------------

    def compare_node_versions(
        self, node_type: str, from_version: str, to_version: str | None = None
    ) -> dict[str, JSONValue]:
        """Changes crossed when upgrading from ``from_version`` (default target: latest)."""

        record = self._nodes.require(_require_node_type(node_type))
        history = self._versions.list_for(record.node_type)
        if to_version is None and not history:
            to_version = record.version
        try:
            comparison = compare_versions(
                record.node_type, history, str(from_version), to_version
            )
        except ValueError as exc:
            raise InvalidRequestError(str(exc)) from exc
        payload = comparison.to_dict()
        payload["has_version_history"] = bool(history)
        return payload

    def get_breaking_changes(
        self, node_type: str, from_version: str, to_version: str | None = None
    ) -> dict[str, JSONValue]:
        comparison = self.compare_node_versions(node_type, from_version, to_version)
        return {key: comparison[key] for key in _BREAKING_CHANGE_KEYS}

    def get_property_dependencies(
        self, node_type: str, config: object | None = None
    ) -> dict[str, JSONValue]:
        """Fields controlling the visibility of others, plus what ``config`` changes."""

        parsed = None if config is None else _require_config(config)
        record = self._nodes.require(_require_node_type(node_type))
        payload = _validation_header(record)
        payload.update(analyze_dependencies(record.properties).to_dict())
        if parsed is not None:
            impact = visibility_impact(
                record.properties, parsed, node_version=record.type_version
            )
            payload["current_config"] = {
                "provided_values": dict(parsed),
                "visibility_impact": impact.to_dict(),
            }
        return payload

    def get_node_documentation(self, node_type: str) -> dict[str, JSONValue]:
        record = self._nodes.require(_require_node_type(node_type))
        payload = _validation_header(record)
        if record.documentation:
            payload["documentation"] = record.documentation
            payload["has_documentation"] = True
            return payload
        payload["documentation"] = (
            f"# {record.display_name}\n\n{record.description}\n\n"
            "No documentation is stored for this node. "
            f"Use the essentials view of {record.node_type} for configuration help."
        )
        payload["has_documentation"] = False
        return payload

    def get_ai_tool_info(self, node_type: str) -> dict[str, JSONValue]:
        """How a node can be attached to an AI Agent as a tool."""

        record = self._nodes.require(_require_node_type(node_type))
        core = record.package_name == CORE_PACKAGE
        payload = _validation_header(record)
        payload.update(
            {
                "description": record.description,
                "package": record.package_name,
                "is_marked_as_ai_tool": record.is_ai_tool,
                "ai_tool_capabilities": {
                    "can_be_used_as_tool": True,
                    "has_usable_as_tool_property": record.is_ai_tool,
                    "requires_environment_variable": not record.is_ai_tool and not core,
                    "connection_type": "ai_tool",
                    "requirements": {
                        "connection": 'Connect to the "ai_tool" port of an AI Agent node',
                        "environment": _AI_TOOL_BUILTIN_ENV
                        if core
                        else _AI_TOOL_COMMUNITY_ENV,
                    },
                    "tips": [
                        "Give the tool a clear, descriptive name in the AI Agent settings",
                        "Describe when the agent should call the tool",
                        "This node is optimized for AI tool usage"
                        if record.is_ai_tool
                        else "This is a regular node that can be used as an AI tool",
                    ],
                },
            }
        )
        return payload

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_node(
        self,
        node_type: str,
        config: object,
        mode: ValidationMode | str | None = None,
        profile: ValidationProfile | str | None = None,
    ) -> dict[str, JSONValue]:
        parsed = _require_config(config)
        validation_mode = self._default_mode if mode is None else _as_mode(mode)
        validation_profile = self._default_profile if profile is None else _as_profile(profile)
        record = self._nodes.require(_require_node_type(node_type))

        result = self._validator.validate_with_mode(
            record.node_type,
            parsed,
            record.properties,
            validation_mode,
            validation_profile,
            node_version=record.type_version,
        )
        payload = _validation_header(record)
        payload["mode"] = validation_mode.value
        payload["profile"] = validation_profile.value
        payload.update(result.to_dict())
        payload["summary"] = _validation_summary(result)
        return payload

    def validate_node_minimal(self, node_type: str, config: object) -> dict[str, JSONValue]:
        parsed = _require_config(config)
        record = self._nodes.require(_require_node_type(node_type))
        result = self._validator.validate_with_mode(
            record.node_type,
            parsed,
            record.properties,
            ValidationMode.MINIMAL,
            ValidationProfile.RUNTIME,
            node_version=record.type_version,
        )
        payload = _validation_header(record)
        payload.update(result.to_dict())
        payload["missing_required_fields"] = list(result.missing_required_fields)
        return payload

    # ------------------------------------------------------------------
    # Search and listing
    # ------------------------------------------------------------------

    def search_nodes(
        self,
        query: str,
        limit: int | None = None,
        *,
        mode: SearchMode | str = SearchMode.OR,
        source: SearchSource | str = SearchSource.ALL,
        include_examples: bool = False,
    ) -> SearchResponse:
        try:
            options = SearchOptions(
                mode=SearchMode(mode.upper() if isinstance(mode, str) else mode),
                source=SearchSource(source),
                include_examples=include_examples,
            )
            return self._engine.search(
                query, self._default_limit if limit is None else limit, options
            )
        except ValueError as exc:
            raise InvalidRequestError(str(exc)) from exc

    def list_nodes(
        self,
        *,
        package: str | None = None,
        category: str | None = None,
        development_style: str | None = None,
        is_ai_tool: bool | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> dict[str, JSONValue]:
        try:
            records = self._nodes.list_nodes(
                package=package,
                category=category,
                development_style=development_style,
                is_ai_tool=is_ai_tool,
                limit=limit,
            )
        except ValueError as exc:
            raise InvalidRequestError(str(exc)) from exc
        nodes: list[JSONValue] = [_minimal_payload(record) for record in records]
        return {"nodes": nodes, "total_count": len(nodes)}

    def database_statistics(self) -> dict[str, JSONValue]:
        stats = self._nodes.statistics()
        stats["schema_version"] = self._db.schema_version()
        return stats

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_nodes(self, path: str | Path) -> ImportReport:
        """Load nodes (and optional examples and versions) from a JSON file."""

        source = Path(path).expanduser()
        nodes, examples, versions = load_import_file(source)
        node_count = self._nodes.upsert_many(nodes)
        example_count = self._examples.upsert_many(examples)
        version_count = self._versions.upsert_many(versions)
        indexed = self._db.ensure_search_index()
        if self._cache is not None:
            self._cache.invalidate()

        report = ImportReport(
            source=str(source),
            nodes=node_count,
            template_examples=example_count,
            versions=version_count,
            search_index=indexed,
        )
        self._logger.info("node_import_completed", **report.to_dict())
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _registry(self) -> TypeStructureRegistry:
        return self._validator.registry

    def _cached(
        self, key: tuple[object, ...], factory: Callable[[], dict[str, JSONValue]]
    ) -> dict[str, JSONValue]:
        if self._cache is None:
            return factory()
        return copy.deepcopy(self._cache.get_or_set(key, factory))

    def _essentials_payload(
        self, record: NodeRecord, include_examples: bool
    ) -> dict[str, JSONValue]:
        essentials = get_essentials(
            record.properties,
            record.node_type,
            node_version=record.type_version,
            max_common=self._max_common,
        )
        payload: dict[str, JSONValue] = {
            "node_type": record.node_type,
            "workflow_node_type": record.workflow_node_type,
            "display_name": record.display_name,
            "description": record.description,
            "category": record.category,
            "version": record.version,
            "is_versioned": record.is_versioned,
            "version_notice": f"Use typeVersion {record.version} when creating this node",
            "required_properties": [simplify_property(prop) for prop in essentials.required],
            "common_properties": [simplify_property(prop) for prop in essentials.common],
            "operations": [dict(operation) for operation in record.operations],
            "metadata": {
                "total_properties": len(record.properties),
                "is_ai_tool": record.is_ai_tool,
                "is_trigger": record.is_trigger,
                "is_webhook": record.is_webhook,
                "has_credentials": bool(record.credentials_required),
                "package": record.package_name,
                "development_style": record.development_style,
            },
        }
        if include_examples:
            examples = self._example_payloads(record.node_type, DEFAULT_ESSENTIAL_EXAMPLES)
            payload["examples"] = examples
            payload["examples_count"] = len(examples)
        return payload

    def _example_payloads(self, node_type: str, limit: int) -> list[JSONValue]:
        examples: Sequence[TemplateExample] = self._examples.for_node(node_type, limit=limit)
        return [example.to_dict() for example in examples]

    def _version_payload(self, node_type: str) -> dict[str, JSONValue]:
        record = self._nodes.require(node_type)
        history = self._versions.list_for(record.node_type)
        current = next((item for item in history if item.is_current_max), None)
        payload: dict[str, JSONValue] = {
            "current_version": current.version if current is not None else record.version,
            "total_versions": len(history),
            "has_version_history": bool(history),
            "is_versioned": record.is_versioned,
        }
        if history:
            payload["versions"] = [_version_entry(item) for item in history]
        return payload


# ---------------------------------------------------------------------------
# Import files
# ---------------------------------------------------------------------------


def load_import_file(
    path: Path,
) -> tuple[list[NodeRecord], list[TemplateExample], list[NodeVersion]]:
    """Parse a node import file.

    Accepted shapes: a JSON list of node objects, or an object with ``nodes`` and
    optional ``templateExamples`` and ``versions`` lists.
    """

    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = cast("object", json.load(handle))
    except FileNotFoundError as exc:
        raise ValueError(f"{path}: file not found") from exc
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path}: invalid JSON ({exc})") from exc

    if isinstance(loaded, list):
        sections: Mapping[str, object] = {"nodes": loaded}
    elif isinstance(loaded, Mapping):
        sections = loaded
        unknown = sorted(
            str(key) for key in sections if key not in {"nodes", "templateExamples", "versions"}
        )
        if unknown:
            raise ValueError(f"{path.name}: unexpected fields: {unknown}")
    else:
        raise ValueError(f"{path.name}: expected a list or object, got {type(loaded).__name__}")

    nodes = [
        NodeRecord.from_dict(_as_object(item, f"{path.name}.nodes[{index}]"), f"nodes[{index}]")
        for index, item in enumerate(_as_list(sections.get("nodes", []), f"{path.name}.nodes"))
    ]
    examples = [
        TemplateExample.from_dict(
            _as_object(item, f"{path.name}.templateExamples[{index}]"),
            f"templateExamples[{index}]",
        )
        for index, item in enumerate(
            _as_list(sections.get("templateExamples", []), f"{path.name}.templateExamples")
        )
    ]
    versions = [
        NodeVersion.from_dict(
            _as_object(item, f"{path.name}.versions[{index}]"), f"versions[{index}]"
        )
        for index, item in enumerate(
            _as_list(sections.get("versions", []), f"{path.name}.versions")
        )
    ]
    return nodes, examples, versions


def _as_list(value: object, path: str) -> list[object]:
    if not isinstance(value, list):
        raise ValueError(f"{path}: expected list")
    return value


def _as_object(value: object, path: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{path}: expected object")
    return value


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------


def _minimal_payload(record: NodeRecord) -> dict[str, JSONValue]:
    return {
        "node_type": record.node_type,
        "workflow_node_type": record.workflow_node_type,
        "display_name": record.display_name,
        "description": record.description,
        "category": record.category,
        "package": record.package_name,
        "is_ai_tool": record.is_ai_tool,
        "is_trigger": record.is_trigger,
        "is_webhook": record.is_webhook,
    }


def _validation_header(record: NodeRecord) -> dict[str, JSONValue]:
    return {
        "node_type": record.node_type,
        "workflow_node_type": record.workflow_node_type,
        "display_name": record.display_name,
    }


def _validation_summary(result: ValidationResult) -> dict[str, JSONValue]:
    return {
        "has_errors": not result.valid,
        "error_count": len(result.errors),
        "warning_count": len(result.warnings),
        "suggestion_count": len(result.suggestions),
    }


def _version_entry(version: NodeVersion) -> dict[str, JSONValue]:
    return {
        "version": version.version,
        "is_current_max": version.is_current_max,
        "released_at": version.released_at,
        "breaking_changes": [dict(change) for change in version.breaking_changes],
        "deprecated_properties": list(version.deprecated_properties),
        "added_properties": list(version.added_properties),
    }


def _require_node_type(node_type: object) -> str:
    if not isinstance(node_type, str) or not node_type.strip():
        raise InvalidRequestError("node_type must be a non-empty string")
    return node_type.strip()


def _require_config(config: object) -> dict[str, JSONValue]:
    if not isinstance(config, Mapping):
        raise InvalidRequestError(
            f"config must be an object, got {type(config).__name__}"
        )
    return {str(key): cast("JSONValue", value) for key, value in config.items()}


def _as_detail(detail: DetailLevel | str) -> DetailLevel:
    try:
        return DetailLevel(detail)
    except ValueError as exc:
        allowed = ", ".join(level.value for level in DetailLevel)
        raise InvalidRequestError(f"detail must be one of: {allowed}") from exc


def _as_mode(mode: ValidationMode | str) -> ValidationMode:
    try:
        return ValidationMode(mode)
    except ValueError as exc:
        allowed = ", ".join(item.value for item in ValidationMode)
        raise InvalidRequestError(f"mode must be one of: {allowed}") from exc


def _as_profile(profile: ValidationProfile | str) -> ValidationProfile:
    try:
        return ValidationProfile(profile)
    except ValueError as exc:
        allowed = ", ".join(item.value for item in ValidationProfile)
        raise InvalidRequestError(f"profile must be one of: {allowed}") from exc


__all__ = [
    "DEFAULT_LIST_LIMIT",
    "DEFAULT_SEARCH_LIMIT",
    "DetailLevel",
    "ImportReport",
    "InvalidRequestError",
    "NodeKnowledgeService",
    "load_import_file",
]
