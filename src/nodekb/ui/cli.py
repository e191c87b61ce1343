"""Command-line interface router for nodekb."""

from __future__ import annotations

import argparse
import importlib.util
import json
import sqlite3
import sys
import uuid
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

from nodekb.config import (
    ConfigLoadError,
    ConfigValidationError,
    load_config,
    redact_config,
)
from nodekb.domain.models import (
    JSONValue,
    SearchMode,
    SearchResponse,
    SearchSource,
    ValidationMode,
    ValidationProfile,
)
from nodekb.observability.logging import correlation_scope, setup_logging, shutdown_logging
from nodekb.persistence.node_db import NodeDB, NodeDBError
from nodekb.service import DetailLevel, NodeKnowledgeService
from nodekb.ui.render import CLIRenderer, create_renderer

_DESCRIPTION_WIDTH: Final[int] = 60


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="nodekb",
        description=(
            "nodekb: node knowledge base. Search, inspect and validate workflow nodes.\n\n"
            "Common workflows:\n"
            "  nodekb import nodes.json        Load node definitions into the database\n"
            "  nodekb search webhook           Find nodes by keyword\n"
            "  nodekb node nodes-base.slack    Show a node's essential properties\n"
            "  nodekb validate <type> '{...}'  Validate a node configuration\n"
            "  nodekb versions <type> --from 1 Show what an upgrade changes\n"
            "  nodekb doctor                   Check environment health\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to nodekb TOML config (default: ./nodekb.toml if present).",
    )
    common.add_argument(
        "--profile",
        default=None,
        help="Optional config profile overlay name.",
    )
    common.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Node database path (overrides database.path).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output and debug logs.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )
    common.add_argument("--json", action="store_true", help="Emit deterministic JSON output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # search --------------------------------------------------------------
    search_parser = subparsers.add_parser(
        "search",
        parents=[common],
        help="Search nodes by keyword",
        description=(
            "Rank nodes against a keyword query.\n\n"
            "Examples:\n"
            "  nodekb search webhook\n"
            "  nodekb search 'send message' --mode and\n"
            "  nodekb search slak --mode fuzzy\n"
            '  nodekb search \'"http request"\' --json\n'
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    search_parser.add_argument("query", help="Search query; quote it for an exact phrase")
    search_parser.add_argument(
        "--limit", type=int, default=None, help="Maximum results (default: search.default_limit)"
    )
    search_parser.add_argument(
        "--mode",
        choices=tuple(mode.value.lower() for mode in SearchMode),
        default="or",
        help="Term combination mode (default: or)",
    )
    search_parser.add_argument(
        "--source",
        choices=tuple(source.value for source in SearchSource),
        default=SearchSource.ALL.value,
        help="Restrict to core or community nodes (default: all)",
    )
    search_parser.add_argument(
        "--examples", action="store_true", help="Attach template example configurations"
    )
    search_parser.set_defaults(handler=_cmd_search)

    # node ----------------------------------------------------------------
    node_parser = subparsers.add_parser(
        "node",
        parents=[common],
        help="Show information about one node",
        description=(
            "Show a node at the requested detail level.\n\n"
            "Examples:\n"
            "  nodekb node nodes-base.httpRequest\n"
            "  nodekb node n8n-nodes-base.slack --detail full --json\n"
            "  nodekb node nodes-base.webhook --type-info\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    node_parser.add_argument("node_type", help="Node type in short or workflow form")
    node_parser.add_argument(
        "--detail",
        choices=tuple(level.value for level in DetailLevel),
        default=DetailLevel.STANDARD.value,
        help="Detail level (default: standard)",
    )
    node_parser.add_argument(
        "--type-info", action="store_true", help="Include property type structure hints"
    )
    node_parser.add_argument(
        "--examples", action="store_true", help="Include template example configurations"
    )
    node_parser.set_defaults(handler=_cmd_node)

    # properties ----------------------------------------------------------
    properties_parser = subparsers.add_parser(
        "properties",
        parents=[common],
        help="Search a node's properties",
        description=(
            "Find properties of one node by name, label or description.\n\n"
            "Examples:\n"
            "  nodekb properties nodes-base.httpRequest auth\n"
            "  nodekb properties nodes-base.slack channel --max-results 5\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    properties_parser.add_argument("node_type", help="Node type in short or workflow form")
    properties_parser.add_argument("query", help="Text to look for")
    properties_parser.add_argument(
        "--max-results",
        type=int,
        default=None,
        help="Maximum matches (default: properties.max_search_results)",
    )
    properties_parser.set_defaults(handler=_cmd_properties)

    # validate ------------------------------------------------------------
    validate_parser = subparsers.add_parser(
        "validate",
        parents=[common],
        help="Validate a node configuration",
        description=(
            "Validate a configuration object against a node's property schema.\n"
            "Exits 1 when the configuration has errors.\n\n"
            "Examples:\n"
            "  nodekb validate nodes-base.slack '{\"resource\": \"message\"}'\n"
            "  nodekb validate nodes-base.httpRequest @config.json --mode operation\n"
            "  nodekb validate nodes-base.webhook '{}' --minimal\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    validate_parser.add_argument("node_type", help="Node type in short or workflow form")
    validate_parser.add_argument(
        "node_config", help="Configuration as a JSON object, or @path to a JSON file"
    )
    validate_parser.add_argument(
        "--mode",
        choices=tuple(mode.value for mode in ValidationMode),
        default=None,
        help="Validation scope (default: validation.default_mode)",
    )
    validate_parser.add_argument(
        "--rules",
        dest="validation_profile",
        choices=tuple(profile.value for profile in ValidationProfile),
        default=None,
        help="Validation profile (default: validation.default_profile)",
    )
    validate_parser.add_argument(
        "--minimal",
        action="store_true",
        help="Only check required fields (reports missing_required_fields)",
    )
    validate_parser.set_defaults(handler=_cmd_validate)

    # import --------------------------------------------------------------
    import_parser = subparsers.add_parser(
        "import",
        parents=[common],
        help="Import node definitions from JSON",
        description=(
            "Upsert nodes, template examples and version history from a JSON file and\n"
            "rebuild the search index.\n\n"
            "Examples:\n"
            "  nodekb import nodes.json\n"
            "  nodekb import catalog.json --db data/nodes.db --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    import_parser.add_argument("source", help="JSON file to import")
    import_parser.set_defaults(handler=_cmd_import)

    # stats ---------------------------------------------------------------
    stats_parser = subparsers.add_parser(
        "stats",
        parents=[common],
        help="Show database statistics",
    )
    stats_parser.set_defaults(handler=_cmd_stats)

    # list ----------------------------------------------------------------
    list_parser = subparsers.add_parser(
        "list",
        parents=[common],
        help="List nodes with optional filters",
        description=(
            "List nodes ordered by display name.\n\n"
            "Examples:\n"
            "  nodekb list --category trigger\n"
            "  nodekb list --package n8n-nodes-base --limit 200\n"
            "  nodekb list --ai-tools --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    list_parser.add_argument("--package", default=None, help="Filter by package name")
    list_parser.add_argument("--category", default=None, help="Filter by category")
    list_parser.add_argument(
        "--style",
        dest="development_style",
        choices=("declarative", "programmatic"),
        default=None,
        help="Filter by development style",
    )
    list_parser.add_argument(
        "--ai-tools", action="store_true", help="Only nodes usable as AI tools"
    )
    list_parser.add_argument("--limit", type=int, default=50, help="Maximum rows (default: 50)")
    list_parser.set_defaults(handler=_cmd_list)

    # dependencies --------------------------------------------------------
    dependencies_parser = subparsers.add_parser(
        "dependencies",
        parents=[common],
        help="Show which properties control the visibility of others",
        description=(
            "Map controlling fields to the properties they show or hide. With a\n"
            "configuration, also report what it makes visible or hidden.\n\n"
            "Examples:\n"
            "  nodekb dependencies nodes-base.slack\n"
            "  nodekb dependencies nodes-base.httpRequest '{\"sendBody\": true}' --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    dependencies_parser.add_argument("node_type", help="Node type in short or workflow form")
    dependencies_parser.add_argument(
        "node_config",
        nargs="?",
        default=None,
        help="Optional configuration as a JSON object, or @path to a JSON file",
    )
    dependencies_parser.set_defaults(handler=_cmd_dependencies)

    # versions ------------------------------------------------------------
    versions_parser = subparsers.add_parser(
        "versions",
        parents=[common],
        help="Show version history or compare two type versions",
        description=(
            "Without --from, list the version history. With --from, report the changes\n"
            "crossed when upgrading (default target: the current version).\n\n"
            "Examples:\n"
            "  nodekb versions nodes-base.webhook\n"
            "  nodekb versions nodes-base.webhook --from 1 --to 2\n"
            "  nodekb versions nodes-base.webhook --from 1 --breaking --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    versions_parser.add_argument("node_type", help="Node type in short or workflow form")
    versions_parser.add_argument(
        "--from", dest="from_version", default=None, help="Version being upgraded from"
    )
    versions_parser.add_argument(
        "--to", dest="to_version", default=None, help="Target version (default: current)"
    )
    versions_parser.add_argument(
        "--breaking", action="store_true", help="Only report breaking changes"
    )
    versions_parser.set_defaults(handler=_cmd_versions)

    # docs ----------------------------------------------------------------
    docs_parser = subparsers.add_parser(
        "docs",
        parents=[common],
        help="Show a node's stored documentation",
    )
    docs_parser.add_argument("node_type", help="Node type in short or workflow form")
    docs_parser.set_defaults(handler=_cmd_docs)

    # ai-tool -------------------------------------------------------------
    ai_tool_parser = subparsers.add_parser(
        "ai-tool",
        parents=[common],
        help="Explain how to attach a node to an AI Agent as a tool",
    )
    ai_tool_parser.add_argument("node_type", help="Node type in short or workflow form")
    ai_tool_parser.set_defaults(handler=_cmd_ai_tool)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show the effective (redacted) configuration",
    )
    config_parser.set_defaults(handler=_cmd_config)

    # doctor --------------------------------------------------------------
    doctor_parser = subparsers.add_parser(
        "doctor",
        parents=[common],
        help="Check environment health",
        description=(
            "Check config, database, search index and dependencies.\n\n"
            "Examples:\n"
            "  nodekb doctor\n"
            "  nodekb doctor --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    doctor_parser.set_defaults(handler=_cmd_doctor)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_search(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    with _session(args, config) as service:
        response = service.search_nodes(
            _require_str(args.query, "query"),
            args.limit,
            mode=str(args.mode),
            source=str(args.source),
            include_examples=_flag(args, "examples"),
        )

    payload: dict[str, object] = {"command": "search", **response.to_dict()}
    if _flag(args, "json"):
        _emit_json(payload)
        return 0

    renderer = _get_renderer(args)
    _render_search(renderer, response)
    return 0


def _cmd_node(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    with _session(args, config) as service:
        payload = service.get_node_info(
            _require_str(args.node_type, "node_type"),
            str(args.detail),
            include_type_info=_flag(args, "type_info"),
            include_examples=_flag(args, "examples"),
        )

    if _flag(args, "json"):
        _emit_json({"command": "node", "detail": args.detail, "node": payload})
        return 0

    renderer = _get_renderer(args)
    renderer.heading(f"{payload['display_name']} ({payload['workflow_node_type']})")
    if payload.get("description"):
        renderer.text(str(payload["description"]))
    renderer.kv("Category", payload.get("category") or "-")
    if "version" in payload:
        renderer.kv("Version", payload["version"])
    for key in ("required_properties", "common_properties"):
        entries = payload.get(key)
        if isinstance(entries, list) and entries:
            renderer.table(
                ("Name", "Type", "Default", "Description"),
                [_property_row(entry) for entry in entries if isinstance(entry, Mapping)],
                title=key.replace("_", " ").capitalize() + ":",
            )
    properties = payload.get("properties")
    if isinstance(properties, list) and properties:
        renderer.table(
            ("Name", "Type", "Default", "Description"),
            [_property_row(entry) for entry in properties if isinstance(entry, Mapping)],
            title="Properties:",
        )
    examples = payload.get("examples")
    if isinstance(examples, list) and examples:
        renderer.section("Template examples:")
        for example in examples:
            if isinstance(example, Mapping):
                renderer.text(f"- {example.get('template')} ({example.get('views')} views)")
                if renderer.verbose:
                    renderer.text(json.dumps(example.get("configuration"), indent=2))
    renderer.next_steps([f"nodekb validate {payload['node_type']} '{{}}'"])
    return 0


def _cmd_properties(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    with _session(args, config) as service:
        payload = service.search_node_properties(
            _require_str(args.node_type, "node_type"),
            _require_str(args.query, "query"),
            args.max_results,
        )

    if _flag(args, "json"):
        _emit_json({"command": "properties", **payload})
        return 0

    renderer = _get_renderer(args)
    matches = payload.get("matches")
    if not isinstance(matches, list) or not matches:
        renderer.text(f"No properties of {payload['node_type']} match {args.query!r}")
        return 0
    renderer.table(
        ("Path", "Type", "Shown when", "Description"),
        [
            (
                str(match.get("path", "")),
                str(match.get("type", "")),
                _compact_json(match.get("show_when")) if match.get("show_when") else "",
                _truncate(str(match.get("description", "")), _DESCRIPTION_WIDTH),
            )
            for match in matches
            if isinstance(match, Mapping)
        ],
        title=f"{payload['total_matches']} match(es) in {payload['searched_in']}:",
    )
    return 0


def _cmd_validate(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    node_config = _parse_node_config(_require_str(args.node_config, "node_config"))
    with _session(args, config) as service:
        if _flag(args, "minimal"):
            payload = service.validate_node_minimal(
                _require_str(args.node_type, "node_type"), node_config
            )
        else:
            payload = service.validate_node(
                _require_str(args.node_type, "node_type"),
                node_config,
                args.mode,
                args.validation_profile,
            )

    exit_code = 0 if payload.get("valid") is True else 1
    if _flag(args, "json"):
        _emit_json({"command": "validate", **payload})
        return exit_code

    renderer = _get_renderer(args)
    renderer.heading(f"{payload['display_name']} ({payload['workflow_node_type']})")
    renderer.kv("Valid", "yes" if exit_code == 0 else "no")
    for key, emit in (("errors", renderer.error), ("warnings", renderer.warning)):
        findings = payload.get(key)
        if isinstance(findings, list) and findings:
            renderer.section(f"{key.capitalize()}:")
            for finding in findings:
                if isinstance(finding, Mapping):
                    emit(f"{finding.get('property')}: {finding.get('message')}")
                    if finding.get("fix"):
                        renderer.text(f"    fix: {finding['fix']}")
    suggestions = payload.get("suggestions")
    if isinstance(suggestions, list) and suggestions:
        renderer.section("Suggestions:")
        renderer.items([str(item) for item in suggestions])
    return exit_code


def _cmd_import(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    source = Path(_require_str(args.source, "source")).expanduser()
    if not source.is_file():
        raise CLIError(f"import file not found: {source}", exit_code=2)
    with _session(args, config) as service:
        report = service.import_nodes(source)

    payload: dict[str, object] = {"command": "import", **report.to_dict()}
    if _flag(args, "json"):
        _emit_json(payload)
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Nodes", report.nodes)
    renderer.kv("Template examples", report.template_examples)
    renderer.kv("Versions", report.versions)
    renderer.kv("Search index", "ready" if report.search_index else "unavailable (no FTS5)")
    renderer.next_steps(["nodekb stats", "nodekb search webhook"])
    return 0


def _cmd_stats(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    with _session(args, config) as service:
        stats = service.database_statistics()

    if _flag(args, "json"):
        _emit_json({"command": "stats", "statistics": stats})
        return 0

    renderer = _get_renderer(args)
    renderer.heading("Node database")
    for key in (
        "total_nodes",
        "ai_tools",
        "triggers",
        "webhooks",
        "versioned_nodes",
        "community_nodes",
        "documentation_coverage",
        "unique_packages",
        "unique_categories",
        "search_index",
        "schema_version",
    ):
        renderer.kv(key.replace("_", " ").capitalize(), stats.get(key))
    breakdown = stats.get("package_breakdown")
    if isinstance(breakdown, list):
        renderer.table(
            ("Package", "Nodes"),
            [
                (str(item.get("package")), str(item.get("node_count")))
                for item in breakdown
                if isinstance(item, Mapping)
            ],
            title="Packages:",
        )
    return 0


def _cmd_list(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    with _session(args, config) as service:
        payload = service.list_nodes(
            package=_optional_str(args.package),
            category=_optional_str(args.category),
            development_style=args.development_style,
            is_ai_tool=True if _flag(args, "ai_tools") else None,
            limit=int(args.limit),
        )

    if _flag(args, "json"):
        _emit_json({"command": "list", **payload})
        return 0

    renderer = _get_renderer(args)
    nodes = payload.get("nodes")
    if not isinstance(nodes, list) or not nodes:
        renderer.text("No nodes found.")
        renderer.next_steps(["nodekb import nodes.json"])
        return 0
    renderer.table(
        ("Node type", "Name", "Category"),
        [
            (
                str(node.get("workflow_node_type")),
                str(node.get("display_name")),
                str(node.get("category") or "-"),
            )
            for node in nodes
            if isinstance(node, Mapping)
        ],
    )
    renderer.text(f"\n{payload['total_count']} node(s)")
    return 0


def _cmd_dependencies(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    raw_config = _optional_str(getattr(args, "node_config", None))
    node_config = _parse_node_config(raw_config) if raw_config is not None else None
    with _session(args, config) as service:
        payload = service.get_property_dependencies(
            _require_str(args.node_type, "node_type"), node_config
        )

    if _flag(args, "json"):
        _emit_json({"command": "dependencies", **payload})
        return 0

    renderer = _get_renderer(args)
    renderer.heading(f"{payload['display_name']} ({payload['workflow_node_type']})")
    renderer.kv(
        "Properties",
        f"{payload['total_properties']} ({payload['with_dependencies']} with dependencies)",
    )
    controllers = payload.get("controlling_properties")
    if isinstance(controllers, Mapping) and controllers:
        renderer.table(
            ("Field", "Controls"),
            [(str(name), ", ".join(map(str, names))) for name, names in controllers.items()],
            title="Controlling fields:",
        )
    else:
        renderer.text("No property depends on another.")
    current = payload.get("current_config")
    if isinstance(current, Mapping):
        impact = current.get("visibility_impact")
        if isinstance(impact, Mapping):
            renderer.section("With this configuration:")
            for key, label in (("newly_visible", "Shown"), ("newly_hidden", "Hidden")):
                names = impact.get(key)
                if isinstance(names, list) and names:
                    renderer.kv(label, ", ".join(map(str, names)))
            hidden = impact.get("hidden_properties")
            if renderer.verbose and isinstance(hidden, Mapping):
                renderer.items([f"{name}: {reason}" for name, reason in hidden.items()])
    return 0


def _cmd_versions(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    node_type = _require_str(args.node_type, "node_type")
    from_version = _optional_str(getattr(args, "from_version", None))
    to_version = _optional_str(getattr(args, "to_version", None))
    if from_version is None and (to_version is not None or _flag(args, "breaking")):
        raise CLIError("--to and --breaking require --from", exit_code=2)

    with _session(args, config) as service:
        if from_version is None:
            payload = service.version_summary(node_type)
        elif _flag(args, "breaking"):
            payload = service.get_breaking_changes(node_type, from_version, to_version)
        else:
            payload = service.compare_node_versions(node_type, from_version, to_version)

    if _flag(args, "json"):
        _emit_json({"command": "versions", **payload})
        return 0

    renderer = _get_renderer(args)
    if from_version is None:
        renderer.kv("Current version", payload.get("current_version"))
        versions = payload.get("versions")
        if not isinstance(versions, list) or not versions:
            renderer.text("No version history recorded.")
            return 0
        renderer.table(
            ("Version", "Current", "Breaking changes"),
            [
                (
                    str(entry.get("version")),
                    "yes" if entry.get("is_current_max") else "",
                    str(len(entry.get("breaking_changes") or [])),
                )
                for entry in versions
                if isinstance(entry, Mapping)
            ],
        )
        return 0

    renderer.heading(f"{node_type}: {payload['from_version']} -> {payload['to_version']}")
    renderer.kv("Upgrade safe", "yes" if payload.get("upgrade_safe") else "no")
    changes = payload.get("breaking_changes")
    if isinstance(changes, list) and changes:
        renderer.section("Breaking changes:")
        for change in changes:
            if isinstance(change, Mapping):
                renderer.warning(
                    f"v{change.get('version')} {change.get('property', '-')}: "
                    f"{change.get('change', _compact_json(change))}"
                )
    for key, label in (("added_properties", "Added"), ("deprecated_properties", "Deprecated")):
        names = payload.get(key)
        if isinstance(names, list) and names:
            renderer.kv(label, ", ".join(map(str, names)))
    hints = payload.get("migration_hints")
    if isinstance(hints, list) and hints:
        renderer.section("Migration:")
        renderer.items([str(hint) for hint in hints])
    return 0


def _cmd_docs(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    with _session(args, config) as service:
        payload = service.get_node_documentation(_require_str(args.node_type, "node_type"))

    if _flag(args, "json"):
        _emit_json({"command": "docs", **payload})
        return 0

    renderer = _get_renderer(args)
    renderer.heading(f"{payload['display_name']} ({payload['workflow_node_type']})")
    renderer.text(str(payload["documentation"]))
    return 0


def _cmd_ai_tool(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    with _session(args, config) as service:
        payload = service.get_ai_tool_info(_require_str(args.node_type, "node_type"))

    if _flag(args, "json"):
        _emit_json({"command": "ai-tool", **payload})
        return 0

    renderer = _get_renderer(args)
    renderer.heading(f"{payload['display_name']} ({payload['workflow_node_type']})")
    renderer.kv("Marked as AI tool", "yes" if payload.get("is_marked_as_ai_tool") else "no")
    capabilities = payload.get("ai_tool_capabilities")
    if isinstance(capabilities, Mapping):
        requirements = capabilities.get("requirements")
        if isinstance(requirements, Mapping):
            renderer.kv("Connection", requirements.get("connection"))
            renderer.kv("Environment", requirements.get("environment"))
        tips = capabilities.get("tips")
        if isinstance(tips, list):
            renderer.section("Tips:")
            renderer.items([str(tip) for tip in tips])
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    profile = _optional_str(getattr(args, "profile", None))
    redacted = redact_config(config)

    payload: dict[str, object] = {
        "command": "config",
        "active_profile": profile,
        "config": redacted,
    }

    if _flag(args, "json"):
        _emit_json(payload)
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Active profile", profile or "(default)")
    renderer.text(json.dumps(redacted, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


def _cmd_doctor(args: argparse.Namespace) -> int:
    checks: list[tuple[str, bool, str]] = []

    # 1. Config check
    config: dict[str, Any] | None = None
    try:
        config = _load_effective_config(args)
        checks.append(("config", True, "loaded successfully"))
    except CLIError as exc:
        checks.append(("config", False, str(exc)))

    # 2. Node DB check
    if config is not None:
        db_path = Path(str(config["database"]["path"]))
        if db_path.exists():
            try:
                db = NodeDB(db_path)
                problems = db.integrity_check()
                indexed = db.has_search_index()
                if problems:
                    checks.append(("node_db", False, "; ".join(problems)))
                else:
                    checks.append(
                        ("node_db", True, f"schema v{db.schema_version()} at {db_path}")
                    )
                checks.append(
                    (
                        "search_index",
                        True,
                        "present" if indexed else "missing (substring search only)",
                    )
                )
            except (NodeDBError, sqlite3.Error) as exc:
                checks.append(("node_db", False, str(exc)))
        else:
            checks.append(("node_db", True, "not yet created (run `nodekb import`)"))
    else:
        checks.append(("node_db", False, "skipped (config failed)"))

    # 3. Dependencies
    for dep_name in ("structlog", "yaml", "rich"):
        spec = importlib.util.find_spec(dep_name)
        if spec is not None:
            checks.append((f"dependency:{dep_name}", True, "installed"))
        else:
            checks.append((f"dependency:{dep_name}", False, "not installed"))

    checks_payload: list[dict[str, object]] = [
        {"name": name, "status": "ok" if passed else "fail", "detail": detail}
        for name, passed, detail in checks
    ]
    payload: dict[str, object] = {"command": "doctor", "checks": checks_payload}

    if _flag(args, "json"):
        _emit_json(payload)
        return 0

    renderer = _get_renderer(args)
    renderer.heading("nodekb doctor")
    for name, passed, detail in checks:
        if passed:
            renderer.ok(f"{name}: {detail}")
        else:
            renderer.fail(f"{name}: {detail}")

    all_passed = all(passed for _, passed, _ in checks)
    if all_passed:
        renderer.text("\nAll checks passed.")
    else:
        renderer.text("\nSome checks failed. See details above.")
    return 0


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    """Retrieve or create a CLI renderer from the parsed namespace."""

    no_color = _flag(args, "no_color")
    verbose = _flag(args, "verbose")
    return create_renderer(no_color=no_color, verbose=verbose)


def _render_search(renderer: CLIRenderer, response: SearchResponse) -> None:
    if not response.results:
        renderer.text(f"No nodes match {response.query!r}")
        if response.mode is not SearchMode.FUZZY:
            renderer.next_steps([f"nodekb search {response.query!r} --mode fuzzy"])
        return
    renderer.table(
        ("Node type", "Name", "Score", "Description"),
        [
            (
                candidate.node.workflow_node_type,
                candidate.node.display_name,
                str(candidate.relevance_score),
                _truncate(candidate.node.description, _DESCRIPTION_WIDTH),
            )
            for candidate in response.results
        ],
    )
    renderer.text(f"\n{response.total_count} result(s) via {response.strategy}")
    if renderer.verbose and response.fallback_reasons:
        renderer.section("Fallbacks:")
        renderer.items(list(response.fallback_reasons))


def _property_row(entry: Mapping[str, object]) -> tuple[str, str, str, str]:
    default = entry.get("default")
    return (
        str(entry.get("name", "")),
        str(entry.get("type", "")),
        "" if default is None else _compact_json(default),
        _truncate(str(entry.get("description", "")), _DESCRIPTION_WIDTH),
    )


def _compact_json(value: object) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    if max_len <= 3:
        return text[:max_len]
    return text[: max_len - 3] + "..."


# ---------------------------------------------------------------------------
# Config and service wiring
# ---------------------------------------------------------------------------


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    config_path = _optional_str(getattr(args, "config_path", None))
    profile = _optional_str(getattr(args, "profile", None))
    overrides: dict[str, object] = {}
    db_path = _optional_str(getattr(args, "db_path", None))
    if db_path is not None:
        overrides["database.path"] = str(Path(db_path).expanduser().resolve())

    try:
        return load_config(config_path, profile=profile, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


@contextmanager
def _session(
    args: argparse.Namespace, config: Mapping[str, Any]
) -> Iterator[NodeKnowledgeService]:
    """Logging plus a wired service for the lifetime of one command."""

    observability = dict(config["observability"])
    if _flag(args, "verbose"):
        observability["log_level"] = "DEBUG"
    session_id = uuid.uuid4().hex
    handle = setup_logging(observability, session_id=session_id)
    try:
        with correlation_scope(session_id=session_id, command=str(args.command)):
            yield NodeKnowledgeService.from_config(config)
    finally:
        shutdown_logging(handle)


def _parse_node_config(raw: str) -> dict[str, JSONValue]:
    if raw.startswith("@"):
        path = Path(raw[1:]).expanduser()
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise CLIError(f"unable to read config file {path}: {exc}", exit_code=2) from exc
    else:
        text = raw
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise CLIError(f"node config is not valid JSON: {exc}", exit_code=2) from exc
    if not isinstance(parsed, dict):
        raise CLIError("node config must be a JSON object", exit_code=2)
    return parsed


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _require_str(value: object, name: str) -> str:
    if not isinstance(value, str):
        raise CLIError(f"invalid {name}: expected string", exit_code=2)
    cleaned = value.strip()
    if not cleaned:
        raise CLIError(f"invalid {name}: value cannot be empty", exit_code=2)
    return cleaned


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise CLIError("invalid optional string argument", exit_code=2)
    cleaned = value.strip()
    return cleaned or None


def _flag(args: argparse.Namespace, name: str) -> bool:
    value = getattr(args, name, False)
    return bool(value)


__all__ = [
    "CLIError",
    "build_parser",
    "run_cli",
]
