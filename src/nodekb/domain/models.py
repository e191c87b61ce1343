"""Dataclass domain models for node schemas, validation results and search results.

Every parser receives the raw value and a dotted path that ends up in ``ValueError``
messages, so a malformed node file reports exactly where it went wrong, for example
``slack.properties[3].options[1]: expected object, got str``.

Property schemas keep the upstream camelCase layout when serialized (``displayName``,
``displayOptions``, ``typeOptions``) because that is the format node definitions are
imported from and stored in. Everything produced by this package for callers
(validation results, search results) uses snake_case keys.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, fields, is_dataclass, replace
from enum import Enum, StrEnum
from typing import NoReturn, TypeAlias, TypeVar, cast

from nodekb.constants import VERSION_CONFIG_KEY
from nodekb.domain.node_types import (
    normalize_node_type,
    package_for_node_type,
    strip_package_prefix,
    workflow_node_type,
)

JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
NodeConfig: TypeAlias = dict[str, JSONValue]

TEnum = TypeVar("TEnum", bound=Enum)

_MAX_JSON_DEPTH = 32
_MAX_JSON_COLLECTION = 4096

_KNOWN_PROPERTY_KEYS = frozenset(
    {
        "name",
        "displayName",
        "type",
        "default",
        "required",
        "description",
        "placeholder",
        "options",
        "displayOptions",
        "typeOptions",
    }
)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ValueKind(StrEnum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    NULL = "null"


class PropertyType(StrEnum):
    BOOLEAN = "boolean"
    BUTTON = "button"
    COLLECTION = "collection"
    COLOR = "color"
    DATE_TIME = "dateTime"
    FIXED_COLLECTION = "fixedCollection"
    HIDDEN = "hidden"
    JSON = "json"
    CALLOUT = "callout"
    NOTICE = "notice"
    MULTI_OPTIONS = "multiOptions"
    NUMBER = "number"
    OPTIONS = "options"
    STRING = "string"
    CREDENTIALS_SELECT = "credentialsSelect"
    RESOURCE_LOCATOR = "resourceLocator"
    CURL_IMPORT = "curlImport"
    RESOURCE_MAPPER = "resourceMapper"
    FILTER = "filter"
    ASSIGNMENT_COLLECTION = "assignmentCollection"
    CREDENTIALS = "credentials"
    WORKFLOW_SELECTOR = "workflowSelector"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: str) -> PropertyType:
        """Map an upstream type string onto the closed set; extension types become UNKNOWN."""

        try:
            return cls(raw)
        except ValueError:
            return cls.UNKNOWN


class ValidationMode(StrEnum):
    FULL = "full"
    OPERATION = "operation"
    MINIMAL = "minimal"


class ValidationProfile(StrEnum):
    MINIMAL = "minimal"
    RUNTIME = "runtime"
    AI_FRIENDLY = "ai-friendly"
    STRICT = "strict"


class FindingType(StrEnum):
    REQUIRED = "required"
    TYPE_MISMATCH = "type_mismatch"
    INVALID_VALUE = "invalid_value"
    DEPRECATED = "deprecated"
    SECURITY = "security"
    BEST_PRACTICE = "best_practice"
    INEFFICIENT = "inefficient"

    @property
    def is_error(self) -> bool:
        return self in _ERROR_FINDING_TYPES


_ERROR_FINDING_TYPES = frozenset(
    {FindingType.REQUIRED, FindingType.TYPE_MISMATCH, FindingType.INVALID_VALUE}
)


class SearchMode(StrEnum):
    OR = "OR"
    AND = "AND"
    FUZZY = "FUZZY"


class SearchSource(StrEnum):
    ALL = "all"
    CORE = "core"
    COMMUNITY = "community"
    VERIFIED = "verified"


class Relevance(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


class CanonicalModel:
    """Mixin for canonical dict/json serialization."""

    def to_dict(self) -> dict[str, JSONValue]:
        serialized = _serialize_value(self, self.__class__.__name__)
        if not isinstance(serialized, dict):
            _fail(self.__class__.__name__, "serialized model must be an object")
        return serialized

    def to_json(self) -> str:
        return canonical_json(self.to_dict())


def canonical_json(value: object) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def value_kind(value: object) -> ValueKind:
    """Classify a JSON value; booleans are never numbers."""

    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, (list, tuple)):
        return ValueKind.ARRAY
    if isinstance(value, Mapping):
        return ValueKind.OBJECT
    raise TypeError(f"not a JSON value: {type(value).__name__}")


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _serialize_value(value: object, path: str) -> JSONValue:
    if value is None or isinstance(value, bool):
        return cast("JSONValue", value)
    if isinstance(value, (int, str)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            _fail(path, "float values must be finite")
        return value
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (tuple, list)):
        return [_serialize_value(item, f"{path}[]") for item in value]
    if isinstance(value, Mapping):
        out: dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                _fail(path, "dict keys must be strings")
            out[key] = _serialize_value(item, f"{path}.{key}")
        return out
    if isinstance(value, CanonicalModel) and type(value).to_dict is not CanonicalModel.to_dict:
        return value.to_dict()
    if is_dataclass(value):
        out_obj: dict[str, JSONValue] = {}
        for dataclass_field in fields(value):
            out_obj[dataclass_field.name] = _serialize_value(
                getattr(value, dataclass_field.name),
                f"{path}.{dataclass_field.name}",
            )
        return out_obj

    _fail(path, f"cannot serialize value of type {type(value).__name__}")


def _expect_mapping(value: object, path: str) -> dict[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")
    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"object keys must be strings, got {type(key).__name__}")
        parsed[key] = item
    return parsed


def _as_str(value: object, path: str, *, min_len: int = 1) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip()
    if len(normalized) < min_len:
        _fail(path, f"must be at least {min_len} character(s)")
    return normalized


def _as_optional_str(value: object, path: str) -> str | None:
    if value is None:
        return None
    return _as_str(value, path, min_len=0)


def _as_bool(value: object, path: str) -> bool:
    if isinstance(value, bool):
        return value
    # SQLite hands flags back as 0/1.
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    _fail(path, f"expected boolean, got {type(value).__name__}")


def _as_int(value: object, path: str, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        _fail(path, f"must be >= {minimum}")
    return value


def _as_sequence(value: object, path: str) -> list[object]:
    if isinstance(value, (list, tuple)):
        return list(value)
    _fail(path, f"expected array, got {type(value).__name__}")


def _as_str_tuple(value: object, path: str) -> tuple[str, ...]:
    return tuple(
        _as_str(item, f"{path}[{index}]") for index, item in enumerate(_as_sequence(value, path))
    )


def _as_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected string enum value, got {type(value).__name__}")
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(sorted(str(item.value) for item in enum_type))
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}")


def _as_json_value(value: object, path: str, *, depth: int = 0) -> JSONValue:
    if depth > _MAX_JSON_DEPTH:
        _fail(path, f"JSON nesting exceeds max depth {_MAX_JSON_DEPTH}")

    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            _fail(path, "float values must be finite")
        return value
    if isinstance(value, (list, tuple)):
        if len(value) > _MAX_JSON_COLLECTION:
            _fail(path, f"list length exceeds {_MAX_JSON_COLLECTION}")
        return [
            _as_json_value(item, f"{path}[{idx}]", depth=depth + 1)
            for idx, item in enumerate(value)
        ]
    if isinstance(value, Mapping):
        if len(value) > _MAX_JSON_COLLECTION:
            _fail(path, f"object size exceeds {_MAX_JSON_COLLECTION}")
        parsed: dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                _fail(path, f"object key must be string, got {type(key).__name__}")
            parsed[key] = _as_json_value(item, f"{path}.{key}", depth=depth + 1)
        return parsed

    _fail(path, f"value is not JSON-serializable ({type(value).__name__})")


def _as_json_object(value: object, path: str) -> dict[str, JSONValue]:
    parsed = _as_json_value(value, path)
    if not isinstance(parsed, dict):
        _fail(path, "expected JSON object")
    return parsed


def _as_json_object_tuple(value: object, path: str) -> tuple[dict[str, JSONValue], ...]:
    return tuple(
        _as_json_object(item, f"{path}[{index}]")
        for index, item in enumerate(_as_sequence(value, path))
    )


def _as_json_list(value: object, path: str) -> tuple[JSONValue, ...]:
    return tuple(
        _as_json_value(item, f"{path}[{index}]")
        for index, item in enumerate(_as_sequence(value, path))
    )


def _parse_version_number(raw: str | None) -> int | float:
    if raw is None:
        return 1
    text = raw.strip()
    # Versioned nodes sometimes list every supported version; the last is current.
    if "," in text:
        text = text.split(",")[-1].strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        parsed = float(text)
    except ValueError:
        return 1
    return parsed if math.isfinite(parsed) else 1


# ---------------------------------------------------------------------------
# Property schema
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PropertyOption:
    """One selectable value of an ``options``/``multiOptions`` property."""

    name: str
    value: JSONScalar
    description: str | None = None
    action: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, object], path: str) -> PropertyOption:
        parsed = _expect_mapping(data, path)
        raw_value = parsed.get("value", parsed.get("name"))
        value = _as_json_value(raw_value, f"{path}.value")
        if isinstance(value, (list, dict)):
            _fail(f"{path}.value", "option values must be JSON scalars")
        name = parsed.get("name")
        return cls(
            name=_as_str(name, f"{path}.name") if name is not None else str(value),
            value=value,
            description=_as_optional_str(parsed.get("description"), f"{path}.description"),
            action=_as_optional_str(parsed.get("action"), f"{path}.action"),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {"name": self.name, "value": self.value}
        if self.description is not None:
            out["description"] = self.description
        if self.action is not None:
            out["action"] = self.action
        return out


@dataclass(frozen=True, slots=True)
class Comparator:
    """A ``{"_cnd": {operator: operand}}`` visibility condition."""

    operator: str
    operand: JSONValue

    @classmethod
    def from_dict(cls, data: Mapping[str, object], path: str) -> Comparator:
        body = _expect_mapping(data.get("_cnd"), f"{path}._cnd")
        if len(body) != 1:
            _fail(f"{path}._cnd", "comparator must hold exactly one operator")
        ((operator, operand),) = body.items()
        return cls(operator=operator, operand=_as_json_value(operand, f"{path}._cnd.{operator}"))

    def to_dict(self) -> dict[str, JSONValue]:
        return {"_cnd": {self.operator: self.operand}}


Condition: TypeAlias = Comparator | JSONValue


def _parse_conditions(value: object, path: str) -> dict[str, tuple[Condition, ...]]:
    parsed = _expect_mapping(value, path)
    out: dict[str, tuple[Condition, ...]] = {}
    for key, accepted in parsed.items():
        key_path = f"{path}.{key}"
        items = accepted if isinstance(accepted, (list, tuple)) else [accepted]
        conditions: list[Condition] = []
        for index, item in enumerate(items):
            item_path = f"{key_path}[{index}]"
            if isinstance(item, Mapping) and set(item) == {"_cnd"}:
                conditions.append(Comparator.from_dict(item, item_path))
            else:
                conditions.append(_as_json_value(item, item_path))
        out[key] = tuple(conditions)
    return out


def _conditions_to_dict(conditions: Mapping[str, tuple[Condition, ...]]) -> dict[str, JSONValue]:
    return {
        key: [item.to_dict() if isinstance(item, Comparator) else item for item in values]
        for key, values in conditions.items()
    }


@dataclass(frozen=True, slots=True)
class DisplayOptions:
    show: Mapping[str, tuple[Condition, ...]] = field(default_factory=dict)
    hide: Mapping[str, tuple[Condition, ...]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, object], path: str) -> DisplayOptions:
        parsed = _expect_mapping(data, path)
        return cls(
            show=_parse_conditions(parsed.get("show", {}), f"{path}.show"),
            hide=_parse_conditions(parsed.get("hide", {}), f"{path}.hide"),
        )

    @property
    def is_empty(self) -> bool:
        return not self.show and not self.hide

    def referenced_keys(self) -> tuple[str, ...]:
        keys = {key.lstrip("/") for key in (*self.show.keys(), *self.hide.keys())}
        return tuple(sorted(keys))

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {}
        if self.show:
            out["show"] = _conditions_to_dict(self.show)
        if self.hide:
            out["hide"] = _conditions_to_dict(self.hide)
        return out


@dataclass(frozen=True, slots=True)
class PropertyGroup:
    """A named group inside a ``fixedCollection`` property."""

    name: str
    display_name: str
    values: tuple[NodeProperty, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, object], path: str) -> PropertyGroup:
        parsed = _expect_mapping(data, path)
        name = _as_str(parsed.get("name"), f"{path}.name")
        display_name = parsed.get("displayName")
        return cls(
            name=name,
            display_name=_as_str(display_name, f"{path}.displayName", min_len=0)
            if display_name is not None
            else name,
            values=parse_properties(parsed.get("values", []), f"{path}.values"),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "name": self.name,
            "displayName": self.display_name,
            "values": [item.to_dict() for item in self.values],
        }


@dataclass(frozen=True, slots=True)
class NodeProperty:
    name: str
    display_name: str
    type: PropertyType
    raw_type: str
    default: JSONValue = None
    required: bool = False
    description: str | None = None
    placeholder: str | None = None
    options: tuple[PropertyOption | PropertyGroup | NodeProperty, ...] = ()
    display_options: DisplayOptions | None = None
    type_options: Mapping[str, JSONValue] = field(default_factory=dict)
    extras: Mapping[str, JSONValue] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name:
            _fail("NodeProperty.name", "must not be empty")
        if self.type is not PropertyType.UNKNOWN and self.raw_type != self.type.value:
            _fail(f"{self.name}.type", f"raw type {self.raw_type!r} disagrees with {self.type}")

    @classmethod
    def from_dict(cls, data: Mapping[str, object], path: str = "property") -> NodeProperty:
        parsed = _expect_mapping(data, path)
        name = _as_str(parsed.get("name"), f"{path}.name")
        raw_type = _as_str(parsed.get("type"), f"{path}.type")
        property_type = PropertyType.parse(raw_type)
        display_name = parsed.get("displayName")

        display_options: DisplayOptions | None = None
        if parsed.get("displayOptions") is not None:
            display_options = DisplayOptions.from_dict(
                cast("Mapping[str, object]", parsed["displayOptions"]), f"{path}.displayOptions"
            )
            if display_options.is_empty:
                display_options = None

        extras = {
            key: _as_json_value(item, f"{path}.{key}")
            for key, item in parsed.items()
            if key not in _KNOWN_PROPERTY_KEYS
        }
        return cls(
            name=name,
            display_name=_as_str(display_name, f"{path}.displayName", min_len=0)
            if display_name is not None
            else name,
            type=property_type,
            raw_type=raw_type,
            default=_as_json_value(parsed.get("default"), f"{path}.default"),
            required=_as_bool(parsed.get("required", False), f"{path}.required"),
            description=_as_optional_str(parsed.get("description"), f"{path}.description"),
            placeholder=_as_optional_str(parsed.get("placeholder"), f"{path}.placeholder"),
            options=_parse_options(parsed.get("options", []), f"{path}.options", property_type),
            display_options=display_options,
            type_options=_as_json_object(parsed.get("typeOptions", {}), f"{path}.typeOptions"),
            extras=extras,
        )

    @property
    def option_values(self) -> tuple[JSONScalar, ...]:
        return tuple(item.value for item in self.options if isinstance(item, PropertyOption))

    @property
    def children(self) -> tuple[NodeProperty, ...]:
        """Nested properties of a ``collection``."""

        return tuple(item for item in self.options if isinstance(item, NodeProperty))

    @property
    def groups(self) -> tuple[PropertyGroup, ...]:
        """Named groups of a ``fixedCollection``."""

        return tuple(item for item in self.options if isinstance(item, PropertyGroup))

    @property
    def multiple_values(self) -> bool:
        return self.type_options.get("multipleValues") is True

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {
            "name": self.name,
            "displayName": self.display_name,
            "type": self.raw_type,
            "default": self.default,
        }
        if self.required:
            out["required"] = True
        if self.description is not None:
            out["description"] = self.description
        if self.placeholder is not None:
            out["placeholder"] = self.placeholder
        if self.options:
            out["options"] = [item.to_dict() for item in self.options]
        if self.display_options is not None:
            out["displayOptions"] = self.display_options.to_dict()
        if self.type_options:
            out["typeOptions"] = dict(self.type_options)
        for key, value in self.extras.items():
            out.setdefault(key, value)
        return out


def _parse_options(
    value: object,
    path: str,
    property_type: PropertyType,
) -> tuple[PropertyOption | PropertyGroup | NodeProperty, ...]:
    parsed: list[PropertyOption | PropertyGroup | NodeProperty] = []
    for index, item in enumerate(_as_sequence(value, path)):
        item_path = f"{path}[{index}]"
        entry = _expect_mapping(item, item_path)
        if property_type is PropertyType.FIXED_COLLECTION or "values" in entry:
            parsed.append(PropertyGroup.from_dict(entry, item_path))
        elif property_type is PropertyType.COLLECTION or ("type" in entry and "value" not in entry):
            parsed.append(NodeProperty.from_dict(entry, item_path))
        else:
            parsed.append(PropertyOption.from_dict(entry, item_path))
    return tuple(parsed)


def parse_properties(value: object, path: str = "properties") -> tuple[NodeProperty, ...]:
    properties = tuple(
        NodeProperty.from_dict(_expect_mapping(item, f"{path}[{index}]"), f"{path}[{index}]")
        for index, item in enumerate(_as_sequence(value, path))
    )
    return properties


def undeclared_references(properties: Sequence[NodeProperty]) -> tuple[str, ...]:
    """Return ``property -> key`` pairs whose visibility rule names an unknown key.

    Upstream schemas occasionally reference keys that only exist in other node
    versions; these are reported for diagnostics but never rejected.
    """

    declared = {prop.name for prop in properties} | {VERSION_CONFIG_KEY}
    issues: list[str] = []
    for prop in properties:
        if prop.display_options is None:
            continue
        for key in prop.display_options.referenced_keys():
            if key not in declared:
                issues.append(f"{prop.name} -> {key}")
    return tuple(issues)


# ---------------------------------------------------------------------------
# Node records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class NodeSummary:
    """The subset of a node row that search ranks and presents."""

    node_type: str
    package_name: str
    display_name: str
    description: str = ""
    category: str | None = None
    is_community: bool = False
    is_verified: bool = False
    author_name: str | None = None
    npm_downloads: int = 0

    @property
    def clean_type(self) -> str:
        return strip_package_prefix(self.node_type)

    @property
    def workflow_node_type(self) -> str:
        return workflow_node_type(self.package_name, self.node_type)


@dataclass(frozen=True, slots=True)
class NodeRecord(CanonicalModel):
    node_type: str
    package_name: str
    display_name: str
    description: str = ""
    category: str | None = None
    development_style: str = "programmatic"
    is_ai_tool: bool = False
    is_trigger: bool = False
    is_webhook: bool = False
    is_versioned: bool = False
    version: str = "1"
    documentation: str | None = None
    properties: tuple[NodeProperty, ...] = ()
    operations: tuple[dict[str, JSONValue], ...] = ()
    credentials_required: tuple[dict[str, JSONValue], ...] = ()
    outputs: tuple[JSONValue, ...] = ()
    output_names: tuple[str, ...] = ()
    is_community: bool = False
    is_verified: bool = False
    author_name: str | None = None
    npm_downloads: int = 0

    def __post_init__(self) -> None:
        if normalize_node_type(self.node_type) != self.node_type:
            _fail("NodeRecord.node_type", f"expected short form, got {self.node_type!r}")
        if self.npm_downloads < 0:
            _fail("NodeRecord.npm_downloads", "must be >= 0")

    @classmethod
    def from_dict(cls, data: Mapping[str, object], path: str = "node") -> NodeRecord:
        parsed = _expect_mapping(data, path)
        node_type = normalize_node_type(_as_str(parsed.get("nodeType"), f"{path}.nodeType"))
        path = f"{path}({node_type})"
        package = parsed.get("package", parsed.get("packageName"))
        raw_version = parsed.get("version", "1")
        if isinstance(raw_version, (int, float)) and not isinstance(raw_version, bool):
            raw_version = str(raw_version)
        return cls(
            node_type=node_type,
            package_name=_as_str(package, f"{path}.package")
            if package is not None
            else package_for_node_type(node_type),
            display_name=_as_str(parsed.get("displayName"), f"{path}.displayName"),
            description=_as_str(parsed.get("description", ""), f"{path}.description", min_len=0),
            category=_as_optional_str(parsed.get("category"), f"{path}.category"),
            development_style=_as_str(
                parsed.get("developmentStyle", "programmatic"), f"{path}.developmentStyle"
            ),
            is_ai_tool=_as_bool(parsed.get("isAITool", False), f"{path}.isAITool"),
            is_trigger=_as_bool(parsed.get("isTrigger", False), f"{path}.isTrigger"),
            is_webhook=_as_bool(parsed.get("isWebhook", False), f"{path}.isWebhook"),
            is_versioned=_as_bool(parsed.get("isVersioned", False), f"{path}.isVersioned"),
            version=_as_str(raw_version, f"{path}.version"),
            documentation=_as_optional_str(parsed.get("documentation"), f"{path}.documentation"),
            properties=parse_properties(parsed.get("properties", []), f"{path}.properties"),
            operations=_as_json_object_tuple(parsed.get("operations", []), f"{path}.operations"),
            credentials_required=_as_json_object_tuple(
                parsed.get("credentials", []), f"{path}.credentials"
            ),
            outputs=_as_json_list(parsed.get("outputs", []), f"{path}.outputs"),
            output_names=_as_str_tuple(parsed.get("outputNames", []), f"{path}.outputNames"),
            is_community=_as_bool(parsed.get("isCommunity", False), f"{path}.isCommunity"),
            is_verified=_as_bool(parsed.get("isVerified", False), f"{path}.isVerified"),
            author_name=_as_optional_str(parsed.get("authorName"), f"{path}.authorName"),
            npm_downloads=_as_int(parsed.get("npmDownloads", 0), f"{path}.npmDownloads", minimum=0),
        )

    @property
    def type_version(self) -> int | float:
        """Numeric type version injected as ``@version`` during validation."""

        return _parse_version_number(self.version)

    @property
    def workflow_node_type(self) -> str:
        return workflow_node_type(self.package_name, self.node_type)

    def summary(self) -> NodeSummary:
        return NodeSummary(
            node_type=self.node_type,
            package_name=self.package_name,
            display_name=self.display_name,
            description=self.description,
            category=self.category,
            is_community=self.is_community,
            is_verified=self.is_verified,
            author_name=self.author_name,
            npm_downloads=self.npm_downloads,
        )

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {}
        for dataclass_field in fields(self):
            value = getattr(self, dataclass_field.name)
            if dataclass_field.name == "properties":
                out["properties"] = [prop.to_dict() for prop in self.properties]
            else:
                out[dataclass_field.name] = _serialize_value(
                    value, f"NodeRecord.{dataclass_field.name}"
                )
        return out


@dataclass(frozen=True, slots=True)
class TemplateExample(CanonicalModel):
    """A real configuration of a node taken from a published workflow template."""

    node_type: str
    template_name: str
    template_views: int
    configuration: dict[str, JSONValue]
    rank: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, object], path: str = "example") -> TemplateExample:
        parsed = _expect_mapping(data, path)
        configuration = parsed.get("configuration", parsed.get("parameters", {}))
        return cls(
            node_type=_as_str(parsed.get("nodeType"), f"{path}.nodeType"),
            template_name=_as_str(parsed.get("templateName"), f"{path}.templateName"),
            template_views=_as_int(
                parsed.get("templateViews", 0), f"{path}.templateViews", minimum=0
            ),
            configuration=_as_json_object(configuration, f"{path}.configuration"),
            rank=_as_int(parsed.get("rank", 0), f"{path}.rank", minimum=0),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "configuration": self.configuration,
            "template": self.template_name,
            "views": self.template_views,
        }


@dataclass(frozen=True, slots=True)
class NodeVersion(CanonicalModel):
    node_type: str
    version: str
    is_current_max: bool = False
    released_at: str | None = None
    breaking_changes: tuple[dict[str, JSONValue], ...] = ()
    deprecated_properties: tuple[str, ...] = ()
    added_properties: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, object], path: str = "version") -> NodeVersion:
        parsed = _expect_mapping(data, path)
        raw_version = parsed.get("version")
        if isinstance(raw_version, (int, float)) and not isinstance(raw_version, bool):
            raw_version = str(raw_version)
        return cls(
            node_type=normalize_node_type(_as_str(parsed.get("nodeType"), f"{path}.nodeType")),
            version=_as_str(raw_version, f"{path}.version"),
            is_current_max=_as_bool(parsed.get("isCurrentMax", False), f"{path}.isCurrentMax"),
            released_at=_as_optional_str(parsed.get("releasedAt"), f"{path}.releasedAt"),
            breaking_changes=_as_json_object_tuple(
                parsed.get("breakingChanges", []), f"{path}.breakingChanges"
            ),
            deprecated_properties=_as_str_tuple(
                parsed.get("deprecatedProperties", []), f"{path}.deprecatedProperties"
            ),
            added_properties=_as_str_tuple(
                parsed.get("addedProperties", []), f"{path}.addedProperties"
            ),
        )

    @property
    def number(self) -> int | float:
        return _parse_version_number(self.version)


# ---------------------------------------------------------------------------
# Validation results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ValidationFinding:
    type: FindingType
    property: str
    message: str
    fix: str | None = None

    def without_fix(self) -> ValidationFinding:
        return self if self.fix is None else replace(self, fix=None)

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {
            "type": self.type.value,
            "property": self.property,
            "message": self.message,
        }
        if self.fix is not None:
            out["fix"] = self.fix
        return out


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of validating one node configuration.

    ``valid`` is derived from ``errors`` so it cannot drift: warnings and suggestions
    never affect it.
    """

    errors: tuple[ValidationFinding, ...] = ()
    warnings: tuple[ValidationFinding, ...] = ()
    suggestions: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        for finding in self.errors:
            if not finding.type.is_error:
                _fail("ValidationResult.errors", f"{finding.type} is not an error-severity finding")
        for finding in self.warnings:
            if finding.type.is_error:
                _fail("ValidationResult.warnings", f"{finding.type} is an error-severity finding")

    @property
    def valid(self) -> bool:
        return len(self.errors) == 0

    @property
    def missing_required_fields(self) -> tuple[str, ...]:
        return tuple(
            finding.property for finding in self.errors if finding.type is FindingType.REQUIRED
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "valid": self.valid,
            "errors": [finding.to_dict() for finding in self.errors],
            "warnings": [finding.to_dict() for finding in self.warnings],
            "suggestions": list(self.suggestions),
        }


# ---------------------------------------------------------------------------
# Search results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SearchOptions:
    mode: SearchMode = SearchMode.OR
    source: SearchSource = SearchSource.ALL
    include_examples: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, object], path: str = "options") -> SearchOptions:
        parsed = _expect_mapping(data, path)
        mode = parsed.get("mode", SearchMode.OR.value)
        if isinstance(mode, str):
            mode = mode.upper()
        return cls(
            mode=_as_enum(SearchMode, mode, f"{path}.mode"),
            source=_as_enum(SearchSource, parsed.get("source", "all"), f"{path}.source"),
            include_examples=_as_bool(
                parsed.get("include_examples", False), f"{path}.include_examples"
            ),
        )


@dataclass(frozen=True, slots=True)
class SearchCandidate:
    node: NodeSummary
    relevance_score: int
    relevance: Relevance
    rank: float | None = None
    examples: tuple[TemplateExample, ...] = ()

    def __post_init__(self) -> None:
        if not 0 <= self.relevance_score <= 1000:
            _fail("SearchCandidate.relevance_score", "must be within 0..1000")

    def with_examples(self, examples: Sequence[TemplateExample]) -> SearchCandidate:
        return replace(self, examples=tuple(examples))

    def to_dict(self) -> dict[str, JSONValue]:
        node = self.node
        out: dict[str, JSONValue] = {
            "node_type": node.node_type,
            "workflow_node_type": node.workflow_node_type,
            "display_name": node.display_name,
            "description": node.description,
            "category": node.category,
            "package": node.package_name,
            "relevance": self.relevance.value,
            "relevance_score": self.relevance_score,
        }
        if node.is_community:
            out["is_community"] = True
            out["is_verified"] = node.is_verified
            if node.author_name:
                out["author_name"] = node.author_name
            if node.npm_downloads:
                out["npm_downloads"] = node.npm_downloads
        if self.examples:
            out["examples"] = [example.to_dict() for example in self.examples]
        return out


@dataclass(frozen=True, slots=True)
class SearchResponse:
    query: str
    results: tuple[SearchCandidate, ...] = ()
    total_count: int = 0
    mode: SearchMode | None = None
    strategy: str | None = None
    fallback_reasons: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.total_count != len(self.results):
            _fail("SearchResponse.total_count", "must equal the number of results")

    @classmethod
    def empty(cls, query: str, mode: SearchMode | None = None) -> SearchResponse:
        return cls(query=query, mode=mode)

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {
            "query": self.query,
            "results": [candidate.to_dict() for candidate in self.results],
            "total_count": self.total_count,
        }
        if self.mode is not None and self.mode is not SearchMode.OR:
            out["mode"] = self.mode.value
        if self.strategy is not None:
            out["strategy"] = self.strategy
        if self.fallback_reasons:
            out["fallback_reasons"] = list(self.fallback_reasons)
        return out


__all__ = [
    "CanonicalModel",
    "Comparator",
    "Condition",
    "DisplayOptions",
    "FindingType",
    "JSONScalar",
    "JSONValue",
    "NodeConfig",
    "NodeProperty",
    "NodeRecord",
    "NodeSummary",
    "NodeVersion",
    "PropertyGroup",
    "PropertyOption",
    "PropertyType",
    "Relevance",
    "SearchCandidate",
    "SearchMode",
    "SearchOptions",
    "SearchResponse",
    "SearchSource",
    "TemplateExample",
    "ValidationFinding",
    "ValidationMode",
    "ValidationProfile",
    "ValidationResult",
    "ValueKind",
    "canonical_json",
    "parse_properties",
    "undeclared_references",
    "value_kind",
]
