"""
nodekb — type structure registry

File: src/nodekb/validation/type_structures.py

Purpose
- Catalog of the value shape expected by every property type, loaded from
  ``type_structures.yaml``.
- Structural validators for the complex types (filter, resourceMapper,
  resourceLocator, fixedCollection, collection, json, assignmentCollection).

Functional requirements
- Unknown/extension types have no descriptor and are treated as opaque and valid.
- Structural findings are ``type_mismatch`` errors naming the exact sub-field path.
- Expression strings bypass structural checks when the type allows expressions.

Non-functional requirements
- The shipped catalog is immutable and loaded once per process.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from functools import lru_cache
from pathlib import Path
from typing import Final, cast

import yaml

from nodekb.domain.models import (
    FindingType,
    JSONValue,
    NodeProperty,
    PropertyType,
    ValidationFinding,
    ValueKind,
    canonical_json,
    value_kind,
)

DEFAULT_TYPE_STRUCTURES_PATH: Final[Path] = Path(__file__).resolve().with_name(
    "type_structures.yaml"
)

_ALLOWED_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "type",
        "js_type",
        "category",
        "accepts",
        "description",
        "required_fields",
        "flexible",
        "allows_expressions",
        "allows_empty",
        "notes",
        "example",
    }
)
_FILTER_COMBINATORS: Final[frozenset[str]] = frozenset({"and", "or"})
_MAPPING_MODES: Final[frozenset[str]] = frozenset({"defineBelow", "autoMapInputData"})


class StructureCategory(StrEnum):
    PRIMITIVE = "primitive"
    ENUM = "enum"
    COLLECTION = "collection"
    SPECIAL = "special"
    OPAQUE = "opaque"


_COMPLEX_CATEGORIES: Final[frozenset[StructureCategory]] = frozenset(
    {StructureCategory.COLLECTION, StructureCategory.SPECIAL}
)


@dataclass(frozen=True, slots=True)
class TypeStructureDescriptor:
    type: PropertyType
    js_type: str
    category: StructureCategory
    description: str
    accepts: frozenset[ValueKind] = frozenset()
    required_fields: tuple[str, ...] = ()
    flexible: bool = True
    allows_expressions: bool = True
    allows_empty: bool = True
    notes: tuple[str, ...] = ()
    example: JSONValue = None

    @property
    def is_complex(self) -> bool:
        return self.category in _COMPLEX_CATEGORIES

    @property
    def is_primitive(self) -> bool:
        return self.category is StructureCategory.PRIMITIVE

    def accepts_kind(self, kind: ValueKind) -> bool:
        return not self.accepts or kind in self.accepts

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {
            "type": self.type.value,
            "js_type": self.js_type,
            "category": self.category.value,
            "description": self.description,
            "accepts": sorted(kind.value for kind in self.accepts),
            "required_fields": list(self.required_fields),
            "flexible": self.flexible,
            "allows_expressions": self.allows_expressions,
            "allows_empty": self.allows_empty,
            "notes": list(self.notes),
        }
        if self.example is not None:
            out["example"] = self.example
        return out


StructureValidator = Callable[
    [TypeStructureDescriptor, NodeProperty, JSONValue, str], list[ValidationFinding]
]


def is_expression(value: object) -> bool:
    """True for template expressions such as ``={{ $json.id }}``."""

    return isinstance(value, str) and "{{" in value and "}}" in value


@dataclass(frozen=True, slots=True)
class TypeStructureRegistry:
    """Read-only lookup over type descriptors plus the structural validators."""

    descriptors: Mapping[PropertyType, TypeStructureDescriptor] = field(default_factory=dict)

    def get(self, property_type: PropertyType | str) -> TypeStructureDescriptor | None:
        parsed = (
            property_type
            if isinstance(property_type, PropertyType)
            else PropertyType.parse(property_type)
        )
        return self.descriptors.get(parsed)

    def is_complex_type(self, property_type: PropertyType | str) -> bool:
        descriptor = self.get(property_type)
        return descriptor is not None and descriptor.is_complex

    def is_primitive_type(self, property_type: PropertyType | str) -> bool:
        descriptor = self.get(property_type)
        return descriptor is not None and descriptor.is_primitive

    def known_types(self) -> tuple[str, ...]:
        return tuple(sorted(item.value for item in self.descriptors))

    def has_structure_validator(self, property_type: PropertyType) -> bool:
        return property_type in _STRUCTURE_VALIDATORS

    def validate_structure(
        self, prop: NodeProperty, value: JSONValue, path: str
    ) -> list[ValidationFinding]:
        """Run the shape validator for ``prop.type``; no-op for types without one."""

        descriptor = self.get(prop.type)
        if descriptor is None:
            return []
        if descriptor.allows_expressions and is_expression(value):
            return []
        validator = _STRUCTURE_VALIDATORS.get(prop.type)
        if validator is None:
            return []
        return validator(descriptor, prop, value, path)

    def nested_values(
        self, prop: NodeProperty, value: JSONValue, path: str
    ) -> Iterator[tuple[NodeProperty, JSONValue, str]]:
        """Yield ``(child property, child value, child path)`` for container values."""

        if prop.type is PropertyType.COLLECTION:
            children = {child.name: child for child in prop.children}
            for entry, entry_path in _container_entries(value, path):
                for key, item in entry.items():
                    child = children.get(key)
                    if child is not None:
                        yield child, item, f"{entry_path}.{key}"
        elif prop.type is PropertyType.FIXED_COLLECTION and isinstance(value, Mapping):
            groups = {group.name: group for group in prop.groups}
            for group_name, group_value in value.items():
                group = groups.get(group_name)
                if group is None:
                    continue
                members = {member.name: member for member in group.values}
                for entry, entry_path in _container_entries(group_value, f"{path}.{group_name}"):
                    for key, item in entry.items():
                        member = members.get(key)
                        if member is not None:
                            yield member, item, f"{entry_path}.{key}"


def load_type_structures(path: Path = DEFAULT_TYPE_STRUCTURES_PATH) -> TypeStructureRegistry:
    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = cast("object", yaml.safe_load(handle))
    except yaml.YAMLError as exc:
        raise ValueError(f"{path}: invalid YAML ({exc})") from exc

    if not isinstance(loaded, list):
        raise ValueError(f"{path}: expected top-level YAML sequence, got {type(loaded).__name__}")

    descriptors: dict[PropertyType, TypeStructureDescriptor] = {}
    for index, item in enumerate(loaded):
        location = f"{path.name}[{index}]"
        descriptor = _parse_descriptor(item, location)
        if descriptor.type in descriptors:
            raise ValueError(f"{location}.type: duplicate type {descriptor.type.value!r}")
        descriptors[descriptor.type] = descriptor
    return TypeStructureRegistry(descriptors=descriptors)


@lru_cache(maxsize=1)
def default_registry() -> TypeStructureRegistry:
    return load_type_structures()


def get_structure(property_type: PropertyType | str) -> TypeStructureDescriptor | None:
    return default_registry().get(property_type)


def is_complex_type(property_type: PropertyType | str) -> bool:
    return default_registry().is_complex_type(property_type)


def is_primitive_type(property_type: PropertyType | str) -> bool:
    return default_registry().is_primitive_type(property_type)


def known_types() -> tuple[str, ...]:
    return default_registry().known_types()


# ---------------------------------------------------------------------------
# Catalog parsing
# ---------------------------------------------------------------------------


def _parse_descriptor(value: object, location: str) -> TypeStructureDescriptor:
    if not isinstance(value, Mapping):
        raise ValueError(f"{location}: expected mapping, got {type(value).__name__}")
    parsed = {str(key): item for key, item in value.items()}
    unknown = sorted(set(parsed) - _ALLOWED_FIELDS)
    if unknown:
        raise ValueError(f"{location}: unexpected fields: {unknown}")

    raw_type = _coerce_non_empty_str(parsed.get("type"), f"{location}.type")
    property_type = PropertyType.parse(raw_type)
    if property_type is PropertyType.UNKNOWN:
        raise ValueError(f"{location}.type: {raw_type!r} is not a known property type")

    category_raw = _coerce_non_empty_str(parsed.get("category"), f"{location}.category")
    try:
        category = StructureCategory(category_raw)
    except ValueError as exc:
        raise ValueError(f"{location}.category: invalid value {category_raw!r}") from exc

    accepts: set[ValueKind] = set()
    accepted_kinds = _coerce_str_list(parsed.get("accepts", []), f"{location}.accepts")
    for index, kind in enumerate(accepted_kinds):
        try:
            accepts.add(ValueKind(kind))
        except ValueError as exc:
            raise ValueError(f"{location}.accepts[{index}]: invalid value kind {kind!r}") from exc

    return TypeStructureDescriptor(
        type=property_type,
        js_type=_coerce_non_empty_str(parsed.get("js_type"), f"{location}.js_type"),
        category=category,
        description=_coerce_non_empty_str(parsed.get("description"), f"{location}.description"),
        accepts=frozenset(accepts),
        required_fields=tuple(
            _coerce_str_list(parsed.get("required_fields", []), f"{location}.required_fields")
        ),
        flexible=_coerce_bool(parsed.get("flexible", True), f"{location}.flexible"),
        allows_expressions=_coerce_bool(
            parsed.get("allows_expressions", True), f"{location}.allows_expressions"
        ),
        allows_empty=_coerce_bool(parsed.get("allows_empty", True), f"{location}.allows_empty"),
        notes=tuple(_coerce_str_list(parsed.get("notes", []), f"{location}.notes")),
        example=cast("JSONValue", parsed.get("example")),
    )


def _coerce_non_empty_str(value: object, path: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{path}: expected non-empty string")
    return value.strip()


def _coerce_bool(value: object, path: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{path}: expected boolean")
    return value


def _coerce_str_list(value: object, path: str) -> list[str]:
    if not isinstance(value, list):
        raise ValueError(f"{path}: expected list")
    return [_coerce_non_empty_str(item, f"{path}[{index}]") for index, item in enumerate(value)]


# ---------------------------------------------------------------------------
# Structural validators
# ---------------------------------------------------------------------------


def _mismatch(
    prop: NodeProperty, path: str, message: str, fix: str | None = None
) -> ValidationFinding:
    return ValidationFinding(
        type=FindingType.TYPE_MISMATCH,
        property=path,
        message=f"{prop.display_name}: {message}",
        fix=fix,
    )


def _shape_fix(descriptor: TypeStructureDescriptor) -> str | None:
    if descriptor.example is None:
        return None
    return f"Expected shape: {canonical_json(descriptor.example)}"


def _kind_name(value: object) -> str:
    try:
        return value_kind(value).value
    except TypeError:
        return type(value).__name__


def _require_object(
    descriptor: TypeStructureDescriptor,
    prop: NodeProperty,
    value: JSONValue,
    path: str,
) -> tuple[dict[str, JSONValue] | None, list[ValidationFinding]]:
    if not isinstance(value, dict):
        return None, [
            _mismatch(
                prop,
                path,
                f"expected object, got {_kind_name(value)}",
                _shape_fix(descriptor),
            )
        ]
    findings = [
        _mismatch(
            prop,
            f"{path}.{name}",
            f"missing required field '{name}'",
            _shape_fix(descriptor),
        )
        for name in descriptor.required_fields
        if name not in value
    ]
    return value, findings


def _container_entries(
    value: JSONValue, path: str
) -> Iterator[tuple[dict[str, JSONValue], str]]:
    if isinstance(value, dict):
        yield value, path
    elif isinstance(value, list):
        for index, entry in enumerate(value):
            if isinstance(entry, dict):
                yield entry, f"{path}[{index}]"


def _validate_filter(
    descriptor: TypeStructureDescriptor, prop: NodeProperty, value: JSONValue, path: str
) -> list[ValidationFinding]:
    body, findings = _require_object(descriptor, prop, value, path)
    if body is None:
        return findings

    combinator = body.get("combinator")
    if combinator is not None and combinator not in _FILTER_COMBINATORS:
        findings.append(
            _mismatch(
                prop,
                f"{path}.combinator",
                f"combinator must be 'and' or 'or', got {canonical_json(combinator)}",
            )
        )
    options = body.get("options")
    if options is not None and not isinstance(options, dict):
        findings.append(_mismatch(prop, f"{path}.options", "options must be an object"))

    conditions = body.get("conditions")
    if "conditions" not in body:
        return findings
    if not isinstance(conditions, list):
        findings.append(
            _mismatch(prop, f"{path}.conditions", f"expected array, got {_kind_name(conditions)}")
        )
        return findings
    for index, condition in enumerate(conditions):
        condition_path = f"{path}.conditions[{index}]"
        if not isinstance(condition, dict):
            findings.append(_mismatch(prop, condition_path, "condition must be an object"))
            continue
        operator = condition.get("operator")
        if not isinstance(operator, dict):
            findings.append(
                _mismatch(
                    prop,
                    f"{condition_path}.operator",
                    "missing required field 'operator'"
                    if operator is None
                    else "operator must be an object",
                    _shape_fix(descriptor),
                )
            )
            continue
        for key in ("type", "operation"):
            if not isinstance(operator.get(key), str) or not operator.get(key):
                findings.append(
                    _mismatch(
                        prop,
                        f"{condition_path}.operator.{key}",
                        f"missing required field 'operator.{key}'",
                    )
                )
    return findings


def _validate_resource_mapper(
    descriptor: TypeStructureDescriptor, prop: NodeProperty, value: JSONValue, path: str
) -> list[ValidationFinding]:
    body, findings = _require_object(descriptor, prop, value, path)
    if body is None:
        return findings
    mode = body.get("mappingMode")
    if "mappingMode" in body and mode not in _MAPPING_MODES:
        findings.append(
            _mismatch(
                prop,
                f"{path}.mappingMode",
                f"mappingMode must be one of {sorted(_MAPPING_MODES)}, got {canonical_json(mode)}",
            )
        )
    mapped = body.get("value")
    if mode == "defineBelow" and mapped is not None and not isinstance(mapped, dict):
        findings.append(
            _mismatch(prop, f"{path}.value", f"expected object, got {_kind_name(mapped)}")
        )
    return findings


def _validate_resource_locator(
    descriptor: TypeStructureDescriptor, prop: NodeProperty, value: JSONValue, path: str
) -> list[ValidationFinding]:
    if isinstance(value, str):
        return []
    body, findings = _require_object(descriptor, prop, value, path)
    if body is None:
        return findings
    mode = body.get("mode")
    if "mode" in body and (not isinstance(mode, str) or not mode):
        findings.append(_mismatch(prop, f"{path}.mode", "mode must be a non-empty string"))
    if "__rl" in body and body["__rl"] is not True:
        findings.append(_mismatch(prop, f"{path}.__rl", "__rl must be true"))
    locator_value = body.get("value")
    if isinstance(locator_value, (dict, list)):
        findings.append(
            _mismatch(
                prop,
                f"{path}.value",
                f"value must be a string or number, got {_kind_name(locator_value)}",
            )
        )
    return findings


def _validate_assignment_collection(
    descriptor: TypeStructureDescriptor, prop: NodeProperty, value: JSONValue, path: str
) -> list[ValidationFinding]:
    body, findings = _require_object(descriptor, prop, value, path)
    if body is None or "assignments" not in body:
        return findings
    assignments = body["assignments"]
    if not isinstance(assignments, list):
        findings.append(
            _mismatch(
                prop, f"{path}.assignments", f"expected array, got {_kind_name(assignments)}"
            )
        )
        return findings
    for index, assignment in enumerate(assignments):
        assignment_path = f"{path}.assignments[{index}]"
        if not isinstance(assignment, dict):
            findings.append(_mismatch(prop, assignment_path, "assignment must be an object"))
            continue
        name = assignment.get("name")
        if not isinstance(name, str) or not name:
            findings.append(
                _mismatch(prop, f"{assignment_path}.name", "missing required field 'name'")
            )
        kind = assignment.get("type")
        if kind is not None and not isinstance(kind, str):
            findings.append(_mismatch(prop, f"{assignment_path}.type", "type must be a string"))
    return findings


def _validate_json(
    descriptor: TypeStructureDescriptor, prop: NodeProperty, value: JSONValue, path: str
) -> list[ValidationFinding]:
    if isinstance(value, (dict, list)) or value is None:
        return []
    if not isinstance(value, str):
        return [_mismatch(prop, path, f"expected JSON text or object, got {_kind_name(value)}")]
    if not value.strip():
        return []
    try:
        json.loads(value)
    except json.JSONDecodeError as exc:
        return [
            _mismatch(
                prop,
                path,
                f"invalid JSON ({exc.msg} at line {exc.lineno} column {exc.colno})",
                _shape_fix(descriptor),
            )
        ]
    return []


def _validate_collection(
    descriptor: TypeStructureDescriptor, prop: NodeProperty, value: JSONValue, path: str
) -> list[ValidationFinding]:
    if prop.multiple_values and isinstance(value, list):
        entries: Sequence[JSONValue] = value
        paths = [f"{path}[{index}]" for index in range(len(value))]
    else:
        entries = [value]
        paths = [path]

    findings: list[ValidationFinding] = []
    declared = {child.name for child in prop.children}
    for entry, entry_path in zip(entries, paths, strict=True):
        if not isinstance(entry, dict):
            findings.append(
                _mismatch(prop, entry_path, f"expected object, got {_kind_name(entry)}")
            )
            continue
        if descriptor.flexible or not declared:
            continue
        for key in entry:
            if key not in declared:
                findings.append(
                    _mismatch(
                        prop,
                        f"{entry_path}.{key}",
                        f"unknown field '{key}'",
                        f"Known fields: {', '.join(sorted(declared))}",
                    )
                )
    return findings


def _validate_fixed_collection(
    descriptor: TypeStructureDescriptor, prop: NodeProperty, value: JSONValue, path: str
) -> list[ValidationFinding]:
    if not isinstance(value, dict):
        return [
            _mismatch(
                prop,
                path,
                f"expected object, got {_kind_name(value)}",
                _shape_fix(descriptor),
            )
        ]

    findings: list[ValidationFinding] = []
    groups = {group.name for group in prop.groups}
    for group_name, group_value in value.items():
        group_path = f"{path}.{group_name}"
        if groups and group_name not in groups and not descriptor.flexible:
            findings.append(
                _mismatch(
                    prop,
                    group_path,
                    f"unknown group '{group_name}'",
                    f"Known groups: {', '.join(sorted(groups))}",
                )
            )
            continue
        if prop.multiple_values:
            if not isinstance(group_value, list):
                findings.append(
                    _mismatch(
                        prop,
                        group_path,
                        f"expected array of entries, got {_kind_name(group_value)}",
                        _shape_fix(descriptor),
                    )
                )
                continue
            for index, entry in enumerate(group_value):
                if not isinstance(entry, dict):
                    findings.append(
                        _mismatch(
                            prop,
                            f"{group_path}[{index}]",
                            f"expected object, got {_kind_name(entry)}",
                        )
                    )
        elif not isinstance(group_value, dict):
            findings.append(
                _mismatch(
                    prop,
                    group_path,
                    f"expected object, got {_kind_name(group_value)}",
                )
            )
    return findings


_STRUCTURE_VALIDATORS: Final[dict[PropertyType, StructureValidator]] = {
    PropertyType.FILTER: _validate_filter,
    PropertyType.RESOURCE_MAPPER: _validate_resource_mapper,
    PropertyType.RESOURCE_LOCATOR: _validate_resource_locator,
    PropertyType.ASSIGNMENT_COLLECTION: _validate_assignment_collection,
    PropertyType.JSON: _validate_json,
    PropertyType.COLLECTION: _validate_collection,
    PropertyType.FIXED_COLLECTION: _validate_fixed_collection,
}


__all__ = [
    "DEFAULT_TYPE_STRUCTURES_PATH",
    "StructureCategory",
    "TypeStructureDescriptor",
    "TypeStructureRegistry",
    "default_registry",
    "get_structure",
    "is_complex_type",
    "is_expression",
    "is_primitive_type",
    "known_types",
    "load_type_structures",
]
