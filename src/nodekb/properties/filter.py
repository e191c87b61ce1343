"""
nodekb — property filter

File: src/nodekb/properties/filter.py

Purpose
- Reduce a node's property schema to its essentials (required + commonly used)
  for compact presentation.
- Search nested property structures by name, display name and description.

Functional requirements
- Essentials only consider top-level properties visible under the given
  configuration, or under the schema defaults when none is given.
- Search paths are dotted names relative to the root property set, for example
  ``options.timeout`` or ``headerParameters.parameters.name``.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Final, cast

import yaml

from nodekb.constants import VERSION_CONFIG_KEY
from nodekb.domain.models import JSONValue, NodeProperty, PropertyOption, PropertyType
from nodekb.domain.node_types import normalize_node_type
from nodekb.validation.visibility import is_visible

DEFAULT_ESSENTIALS_PATH: Final[Path] = Path(__file__).resolve().with_name("essentials.yaml")
DEFAULT_MAX_COMMON_PROPERTIES: Final[int] = 10
DEFAULT_MAX_SEARCH_RESULTS: Final[int] = 20

_INTERNAL_TYPES: Final[frozenset[PropertyType]] = frozenset(
    {PropertyType.HIDDEN, PropertyType.NOTICE, PropertyType.CALLOUT, PropertyType.BUTTON}
)
_ADVANCED_CONTAINERS: Final[frozenset[str]] = frozenset(
    {"options", "additionalFields", "additionalOptions"}
)


@dataclass(frozen=True, slots=True)
class CuratedEssentials:
    common: tuple[str, ...]
    required: tuple[str, ...] | None = None


@dataclass(frozen=True, slots=True)
class Essentials:
    required: tuple[NodeProperty, ...] = ()
    common: tuple[NodeProperty, ...] = ()

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "required": [simplify_property(prop) for prop in self.required],
            "common": [simplify_property(prop) for prop in self.common],
        }


@dataclass(frozen=True, slots=True)
class PropertyMatch:
    path: str
    property: NodeProperty
    strength: int
    depth: int
    show_when: Mapping[str, JSONValue] = field(default_factory=dict)

    def to_dict(self) -> dict[str, JSONValue]:
        prop = self.property
        out: dict[str, JSONValue] = {
            "path": self.path,
            "name": prop.name,
            "display_name": prop.display_name,
            "type": prop.raw_type,
            "description": prop.description or "",
            "required": prop.required,
            "default": prop.default,
        }
        options = _option_values(prop)
        if options:
            out["options"] = options
        if self.show_when:
            out["show_when"] = dict(self.show_when)
        return out


def load_curated_essentials(
    path: Path = DEFAULT_ESSENTIALS_PATH,
) -> dict[str, CuratedEssentials]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = cast("object", yaml.safe_load(handle))
    except yaml.YAMLError as exc:
        raise ValueError(f"{path}: invalid YAML ({exc})") from exc

    if not isinstance(loaded, Mapping):
        raise ValueError(f"{path}: expected top-level YAML mapping, got {type(loaded).__name__}")

    curated: dict[str, CuratedEssentials] = {}
    for node_type, entry in loaded.items():
        location = f"{path.name}.{node_type}"
        if not isinstance(entry, Mapping):
            raise ValueError(f"{location}: expected mapping")
        unknown = sorted(str(key) for key in entry if key not in {"required", "common"})
        if unknown:
            raise ValueError(f"{location}: unexpected fields: {unknown}")
        required = entry.get("required")
        curated[normalize_node_type(str(node_type))] = CuratedEssentials(
            common=_as_names(entry.get("common", []), f"{location}.common"),
            required=None if required is None else _as_names(required, f"{location}.required"),
        )
    return curated


@lru_cache(maxsize=1)
def default_curated_essentials() -> Mapping[str, CuratedEssentials]:
    return load_curated_essentials()


def default_config(
    properties: Sequence[NodeProperty], *, node_version: int | float | None = None
) -> dict[str, JSONValue]:
    """Configuration a fresh node would start with: every visible default, in order."""

    config: dict[str, JSONValue] = {
        VERSION_CONFIG_KEY: 1 if node_version is None else node_version
    }
    for prop in properties:
        if prop.name in config or prop.default is None:
            continue
        if is_visible(prop, config):
            config[prop.name] = prop.default
    return config


def get_essentials(
    properties: Sequence[NodeProperty],
    node_type: str | None = None,
    *,
    config: Mapping[str, JSONValue] | None = None,
    node_version: int | float | None = None,
    max_common: int = DEFAULT_MAX_COMMON_PROPERTIES,
    curated: Mapping[str, CuratedEssentials] | None = None,
) -> Essentials:
    if config is None:
        working = default_config(properties, node_version=node_version)
    else:
        working = dict(config)
        working.setdefault(VERSION_CONFIG_KEY, 1 if node_version is None else node_version)
    visible = _unique_by_name(prop for prop in properties if is_visible(prop, working))

    catalog = curated if curated is not None else default_curated_essentials()
    entry = catalog.get(normalize_node_type(node_type)) if node_type else None

    heuristic_required = tuple(prop for prop in visible if prop.required)
    if entry is None:
        common = tuple(
            prop for prop in visible if not prop.required and _is_common_candidate(prop)
        )
        return Essentials(required=heuristic_required, common=common[:max_common])

    by_name = {prop.name: prop for prop in visible}
    declared = {prop.name: prop for prop in _unique_by_name(properties)}
    required = (
        heuristic_required
        if entry.required is None
        else _pick(entry.required, by_name, declared)
    )
    required_names = {prop.name for prop in required}
    common = tuple(
        prop
        for prop in _pick(entry.common, by_name, declared)
        if prop.name not in required_names
    )
    return Essentials(required=required, common=common[:max_common])


def search_properties(
    properties: Sequence[NodeProperty],
    query: str,
    max_results: int = DEFAULT_MAX_SEARCH_RESULTS,
) -> list[PropertyMatch]:
    needle = query.strip().casefold()
    if not needle or max_results <= 0:
        return []

    matches: list[PropertyMatch] = []
    for path, prop, depth, show_when in _walk(properties, prefix="", depth=0, show_when={}):
        strength = _match_strength(prop, needle)
        if strength:
            matches.append(
                PropertyMatch(
                    path=path,
                    property=prop,
                    strength=strength,
                    depth=depth,
                    show_when=show_when,
                )
            )
    matches.sort(key=lambda item: (-item.strength, item.depth, item.path))
    return matches[:max_results]


def simplify_property(prop: NodeProperty) -> dict[str, JSONValue]:
    """Compact caller-facing view of a property (snake_case keys)."""

    out: dict[str, JSONValue] = {
        "name": prop.name,
        "display_name": prop.display_name,
        "type": prop.raw_type,
        "description": prop.description or "",
        "required": prop.required,
    }
    if prop.default is not None:
        out["default"] = prop.default
    if prop.placeholder:
        out["placeholder"] = prop.placeholder
    options = _option_values(prop)
    if options:
        out["options"] = options
    if prop.display_options is not None and prop.display_options.show:
        out["show_when"] = prop.display_options.to_dict()["show"]
    return out


def _option_values(prop: NodeProperty) -> list[JSONValue]:
    out: list[JSONValue] = []
    for item in prop.options:
        if isinstance(item, PropertyOption):
            entry: dict[str, JSONValue] = {"value": item.value, "label": item.name}
            if item.description:
                entry["description"] = item.description
            out.append(entry)
    return out


def _is_common_candidate(prop: NodeProperty) -> bool:
    if not prop.display_name.strip():
        return False
    if prop.name.startswith("_") or prop.type in _INTERNAL_TYPES:
        return False
    return prop.name not in _ADVANCED_CONTAINERS


def _unique_by_name(properties: Iterable[NodeProperty]) -> list[NodeProperty]:
    seen: set[str] = set()
    out: list[NodeProperty] = []
    for prop in properties:
        if prop.name not in seen:
            seen.add(prop.name)
            out.append(prop)
    return out


def _pick(
    names: Sequence[str],
    visible: Mapping[str, NodeProperty],
    declared: Mapping[str, NodeProperty],
) -> tuple[NodeProperty, ...]:
    picked: list[NodeProperty] = []
    for name in names:
        prop = visible.get(name) or declared.get(name)
        if prop is not None:
            picked.append(prop)
    return tuple(picked)


def _walk(
    properties: Sequence[NodeProperty],
    *,
    prefix: str,
    depth: int,
    show_when: Mapping[str, JSONValue],
) -> Iterator[tuple[str, NodeProperty, int, Mapping[str, JSONValue]]]:
    for prop in properties:
        path = f"{prefix}{prop.name}"
        own_show = show_when
        if depth == 0 and prop.display_options is not None and prop.display_options.show:
            own_show = cast("Mapping[str, JSONValue]", prop.display_options.to_dict()["show"])
        yield path, prop, depth, own_show
        if prop.type is PropertyType.COLLECTION:
            yield from _walk(prop.children, prefix=f"{path}.", depth=depth + 1, show_when=own_show)
        elif prop.type is PropertyType.FIXED_COLLECTION:
            for group in prop.groups:
                yield from _walk(
                    group.values,
                    prefix=f"{path}.{group.name}.",
                    depth=depth + 1,
                    show_when=own_show,
                )


def _match_strength(prop: NodeProperty, needle: str) -> int:
    name = prop.name.casefold()
    if name == needle:
        return 4
    if needle in name:
        return 3
    if needle in prop.display_name.casefold():
        return 2
    if prop.description and needle in prop.description.casefold():
        return 1
    return 0


def _as_names(value: object, path: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ValueError(f"{path}: expected list")
    names: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str) or not item.strip():
            raise ValueError(f"{path}[{index}]: expected non-empty string")
        names.append(item.strip())
    return tuple(names)


__all__ = [
    "DEFAULT_MAX_COMMON_PROPERTIES",
    "DEFAULT_MAX_SEARCH_RESULTS",
    "CuratedEssentials",
    "Essentials",
    "PropertyMatch",
    "default_config",
    "default_curated_essentials",
    "get_essentials",
    "load_curated_essentials",
    "search_properties",
    "simplify_property",
]
