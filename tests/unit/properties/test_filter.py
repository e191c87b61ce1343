"""
nodekb — unit tests for the property filter

File: tests/unit/properties/test_filter.py

Purpose
- Validate essentials selection (heuristic and curated) and nested property search.

What this test file should cover
- Only properties visible under the defaults (or a supplied configuration) are essentials.
- Curated lists fall back to declared properties and drop names the node lacks.
- Search paths, match strength ordering and inherited visibility conditions.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from nodekb.properties.filter import (
    CuratedEssentials,
    default_config,
    get_essentials,
    load_curated_essentials,
    search_properties,
    simplify_property,
)

from . import build, http_request_schema, prop


def _names(props: object) -> list[str]:
    return [item.name for item in props]  # type: ignore[attr-defined]


def test_default_config_collects_visible_defaults() -> None:
    config = default_config(http_request_schema(), node_version=4.2)

    assert config["@version"] == 4.2
    assert config["method"] == "GET"
    assert config["sendBody"] is False
    assert "jsonBody" not in config
    assert "headerParameters" not in config


def test_heuristic_essentials_skip_internal_and_container_properties() -> None:
    essentials = get_essentials(http_request_schema(), curated={})

    assert _names(essentials.required) == ["url"]
    assert _names(essentials.common) == ["method", "authentication", "sendBody"]


def test_configuration_changes_visible_essentials() -> None:
    essentials = get_essentials(http_request_schema(), config={"sendBody": True}, curated={})

    assert "jsonBody" in _names(essentials.common)


def test_curated_essentials_for_known_node() -> None:
    essentials = get_essentials(http_request_schema(), "n8n-nodes-base.httpRequest")

    assert _names(essentials.required) == ["url"]
    assert _names(essentials.common) == [
        "method",
        "authentication",
        "sendBody",
        "jsonBody",
        "options",
    ]


def test_curated_required_overrides_heuristic() -> None:
    curated = {"nodes-base.demo": CuratedEssentials(common=("url", "method"), required=("method",))}

    essentials = get_essentials(http_request_schema(), "nodes-base.demo", curated=curated)

    assert _names(essentials.required) == ["method"]
    assert _names(essentials.common) == ["url"]


def test_max_common_truncates() -> None:
    essentials = get_essentials(http_request_schema(), curated={}, max_common=2)

    assert _names(essentials.common) == ["method", "authentication"]


def test_duplicate_names_keep_first_visible_declaration() -> None:
    props = build(
        prop("operation", "options", default="send", displayOptions={"show": {"resource": ["a"]}}),
        prop("operation", "options", default="get", displayOptions={"show": {"resource": ["b"]}}),
        prop("resource", "options", default="b"),
    )

    essentials = get_essentials(props, config={"resource": "b"}, curated={})

    assert [item.default for item in essentials.common if item.name == "operation"] == ["get"]


def test_essentials_to_dict_uses_simplified_views() -> None:
    payload = get_essentials(http_request_schema(), curated={}).to_dict()

    assert payload["required"] == [
        {
            "name": "url",
            "display_name": "Url",
            "type": "string",
            "description": "The URL to make the request to",
            "required": True,
            "default": "",
        }
    ]


def test_simplify_property_lists_options_and_visibility() -> None:
    schema = {item.name: item for item in http_request_schema()}

    method = simplify_property(schema["method"])
    body = simplify_property(schema["jsonBody"])

    assert method["options"] == [
        {"value": "GET", "label": "GET"},
        {"value": "POST", "label": "POST"},
    ]
    assert body["show_when"] == {"sendBody": [True]}


def test_search_finds_nested_properties_with_paths() -> None:
    matches = search_properties(http_request_schema(), "timeout")

    assert [(match.path, match.strength, match.depth) for match in matches] == [
        ("options.timeout", 4, 1)
    ]


def test_search_orders_by_strength_then_depth() -> None:
    matches = search_properties(http_request_schema(), "header")

    assert [match.path for match in matches] == [
        "headerParameters",
        "headerParameters.parameters.name",
    ]
    assert matches[1].show_when == {"sendHeaders": [True]}
    assert matches[1].to_dict()["show_when"] == {"sendHeaders": [True]}


def test_search_matches_description_text() -> None:
    matches = search_properties(http_request_schema(), "proxy to")

    assert [match.path for match in matches] == ["options.proxy"]
    assert matches[0].strength == 1


def test_search_limits_and_blank_queries() -> None:
    assert search_properties(http_request_schema(), "  ") == []
    assert search_properties(http_request_schema(), "e", max_results=0) == []
    assert len(search_properties(http_request_schema(), "e", max_results=3)) == 3


def test_default_curated_catalog_loads() -> None:
    curated = load_curated_essentials()

    assert "nodes-base.webhook" in curated
    assert curated["nodes-base.httpRequest"].required == ("url",)
    assert curated["nodes-base.webhook"].required is None


def test_curated_loader_rejects_unknown_fields(tmp_path: Path) -> None:
    path = tmp_path / "essentials.yaml"
    path.write_text("nodes-base.x:\n  common: [a]\n  optional: [b]\n", encoding="utf-8")

    with pytest.raises(ValueError, match="unexpected fields"):
        load_curated_essentials(path)
