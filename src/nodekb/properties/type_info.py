"""Attach type-structure hints to simplified property payloads."""

from __future__ import annotations

from collections.abc import Sequence

from nodekb.domain.models import JSONValue, NodeProperty
from nodekb.properties.filter import simplify_property
from nodekb.validation.type_structures import TypeStructureRegistry, default_registry


def type_info(
    prop: NodeProperty, registry: TypeStructureRegistry | None = None
) -> dict[str, JSONValue]:
    registry = registry if registry is not None else default_registry()
    descriptor = registry.get(prop.type)
    if descriptor is None:
        return {
            "category": "unknown",
            "js_type": "any",
            "description": f"Extension type '{prop.raw_type}'; values are not checked.",
            "is_complex": False,
            "is_primitive": False,
            "allows_expressions": True,
            "allows_empty": True,
            "structure_hints": {},
            "notes": [],
        }

    hints: dict[str, JSONValue] = {}
    if descriptor.required_fields:
        hints["required_fields"] = list(descriptor.required_fields)
    if descriptor.is_complex:
        hints["flexible"] = descriptor.flexible
    if descriptor.example is not None:
        hints["example"] = descriptor.example
    if prop.multiple_values:
        hints["multiple_values"] = True
    if prop.groups:
        hints["groups"] = [group.name for group in prop.groups]
    elif prop.children:
        hints["fields"] = [child.name for child in prop.children]

    return {
        "category": descriptor.category.value,
        "js_type": descriptor.js_type,
        "description": descriptor.description,
        "is_complex": descriptor.is_complex,
        "is_primitive": descriptor.is_primitive,
        "allows_expressions": descriptor.allows_expressions,
        "allows_empty": descriptor.allows_empty,
        "structure_hints": hints,
        "notes": list(descriptor.notes),
    }


def describe_properties(
    properties: Sequence[NodeProperty],
    *,
    include_type_info: bool = False,
    registry: TypeStructureRegistry | None = None,
) -> list[JSONValue]:
    described: list[JSONValue] = []
    for prop in properties:
        payload = simplify_property(prop)
        if include_type_info:
            payload["type_info"] = type_info(prop, registry)
        described.append(payload)
    return described


__all__ = ["describe_properties", "type_info"]
