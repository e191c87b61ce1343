"""Type-structure hints attached to property payloads."""

from __future__ import annotations

from nodekb.properties.type_info import describe_properties, type_info

from . import build, http_request_schema, prop


def test_fixed_collection_hints() -> None:
    schema = {item.name: item for item in http_request_schema()}

    info = type_info(schema["headerParameters"])

    assert info["category"] == "collection"
    assert info["is_complex"] is True
    hints = info["structure_hints"]
    assert isinstance(hints, dict)
    assert hints["groups"] == ["parameters"]
    assert hints["multiple_values"] is True


def test_collection_hints_list_fields() -> None:
    schema = {item.name: item for item in http_request_schema()}

    hints = type_info(schema["options"])["structure_hints"]

    assert isinstance(hints, dict)
    assert hints["fields"] == ["timeout", "proxy"]


def test_primitive_type_info() -> None:
    schema = {item.name: item for item in http_request_schema()}

    info = type_info(schema["url"])

    assert info["is_primitive"] is True
    assert info["js_type"] == "string"


def test_extension_types_are_described_as_unknown() -> None:
    (custom,) = build(prop("widget", "someExtensionType"))

    info = type_info(custom)

    assert info["category"] == "unknown"
    assert info["allows_expressions"] is True


def test_describe_properties_optionally_adds_type_info() -> None:
    schema = http_request_schema()[:2]

    plain = describe_properties(schema)
    rich = describe_properties(schema, include_type_info=True)

    assert all("type_info" not in item for item in plain)  # type: ignore[operator]
    assert [item["name"] for item in rich] == ["method", "url"]  # type: ignore[index]
    assert all("type_info" in item for item in rich)  # type: ignore[operator]
