"""Shared schema builders for property filter tests."""

from __future__ import annotations

from typing import Any

from nodekb.domain.models import NodeProperty, parse_properties


def prop(name: str, type_: str = "string", **fields: Any) -> dict[str, Any]:
    data: dict[str, Any] = {"name": name, "displayName": name.title(), "type": type_}
    data.update(fields)
    return data


def build(*entries: dict[str, Any]) -> tuple[NodeProperty, ...]:
    return parse_properties(list(entries))


def http_request_schema() -> tuple[NodeProperty, ...]:
    return build(
        prop(
            "method",
            "options",
            default="GET",
            options=[{"name": "GET", "value": "GET"}, {"name": "POST", "value": "POST"}],
        ),
        prop("url", required=True, default="", description="The URL to make the request to"),
        prop(
            "authentication",
            "options",
            default="none",
            options=[{"name": "None", "value": "none"}],
        ),
        prop("sendBody", "boolean", default=False),
        prop("jsonBody", "json", default="", displayOptions={"show": {"sendBody": [True]}}),
        prop("notice", "notice", displayName="Heads up", default=""),
        prop(
            "options",
            "collection",
            default={},
            options=[
                prop("timeout", "number", default=10000, description="Request timeout in ms"),
                prop("proxy", default="", description="HTTP proxy to use"),
            ],
        ),
        prop(
            "headerParameters",
            "fixedCollection",
            default={},
            typeOptions={"multipleValues": True},
            displayOptions={"show": {"sendHeaders": [True]}},
            options=[
                {
                    "name": "parameters",
                    "displayName": "Parameter",
                    "values": [
                        prop("name", default="", description="Header name"),
                        prop("value", default=""),
                    ],
                }
            ],
        ),
    )


__all__ = ["build", "http_request_schema", "prop"]
