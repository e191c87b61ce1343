"""Shared deterministic builders for validation tests."""

from __future__ import annotations

from typing import Any

from nodekb.domain.models import NodeProperty


def make_property(
    name: str,
    type_: str = "string",
    *,
    display_name: str | None = None,
    required: bool = False,
    default: Any = None,
    options: list[dict[str, Any]] | None = None,
    show: dict[str, Any] | None = None,
    hide: dict[str, Any] | None = None,
    type_options: dict[str, Any] | None = None,
    description: str | None = None,
) -> NodeProperty:
    data: dict[str, Any] = {
        "name": name,
        "displayName": display_name if display_name is not None else name.title(),
        "type": type_,
        "default": default,
        "required": required,
    }
    if options is not None:
        data["options"] = options
    if show is not None or hide is not None:
        display: dict[str, Any] = {}
        if show is not None:
            display["show"] = show
        if hide is not None:
            display["hide"] = hide
        data["displayOptions"] = display
    if type_options is not None:
        data["typeOptions"] = type_options
    if description is not None:
        data["description"] = description
    return NodeProperty.from_dict(data)


def choice(*values: str) -> list[dict[str, Any]]:
    return [{"name": value.title(), "value": value} for value in values]


def slack_like_properties() -> tuple[NodeProperty, ...]:
    """resource/operation branching schema with required fields on one branch."""

    return (
        make_property("resource", "options", default="message", options=choice("message", "user")),
        make_property(
            "operation",
            "options",
            default="post",
            options=choice("post", "update"),
            show={"resource": ["message"]},
        ),
        make_property("channel", required=True, show={"resource": ["message"]}),
        make_property(
            "text",
            required=True,
            show={"resource": ["message"], "operation": ["post"]},
            description="Message body",
        ),
        make_property("userId", required=True, show={"resource": ["user"]}),
    )


def http_like_properties() -> tuple[NodeProperty, ...]:
    return (
        make_property("method", "options", default="GET", options=choice("GET", "POST", "PUT")),
        make_property("url", required=True, display_name="URL"),
        make_property("sendBody", "boolean", default=False),
        make_property("jsonBody", "json", default="", show={"sendBody": [True]}),
        make_property(
            "timeout",
            "number",
            default=10000,
            type_options={"minValue": 1, "maxValue": 600000},
        ),
    )


__all__ = ["choice", "http_like_properties", "make_property", "slack_like_properties"]
