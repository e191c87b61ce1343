"""
nodekb — property dependency analysis

File: src/nodekb/properties/dependencies.py

Purpose
- Map which top-level fields control the visibility of others through their
  ``displayOptions``.
- Report how a submitted configuration changes what is visible compared with a fresh
  node's defaults.

Functional requirements
- A controller is any key referenced by another property's ``show`` or ``hide``
  conditions; ``@version`` is reported like any other controller.
- Visibility under a configuration is evaluated against the schema defaults overlaid
  with the submitted values, the way the editor presents a node.
- Hidden properties carry the reason produced by the visibility evaluator.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from nodekb.constants import VERSION_CONFIG_KEY
from nodekb.domain.models import Comparator, Condition, JSONValue, NodeProperty
from nodekb.properties.filter import default_config
from nodekb.validation.visibility import is_visible, visibility_reason


@dataclass(frozen=True, slots=True)
class PropertyDependency:
    """One property whose visibility depends on other fields."""

    name: str
    display_name: str
    depends_on: tuple[str, ...]
    show_when: Mapping[str, tuple[Condition, ...]]
    hide_when: Mapping[str, tuple[Condition, ...]]

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {
            "name": self.name,
            "display_name": self.display_name,
            "depends_on": list(self.depends_on),
        }
        if self.show_when:
            out["show_when"] = _conditions_payload(self.show_when)
        if self.hide_when:
            out["hide_when"] = _conditions_payload(self.hide_when)
        return out


@dataclass(frozen=True, slots=True)
class DependencyAnalysis:
    total_properties: int
    dependencies: tuple[PropertyDependency, ...]
    controllers: Mapping[str, tuple[str, ...]]

    @property
    def independent(self) -> int:
        return self.total_properties - len(self.dependencies)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "total_properties": self.total_properties,
            "with_dependencies": len(self.dependencies),
            "independent_properties": self.independent,
            "controlling_properties": {
                name: list(dependents) for name, dependents in self.controllers.items()
            },
            "dependencies": [item.to_dict() for item in self.dependencies],
        }


@dataclass(frozen=True, slots=True)
class VisibilityImpact:
    visible: tuple[str, ...]
    hidden: Mapping[str, str]
    newly_visible: tuple[str, ...]
    newly_hidden: tuple[str, ...]

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "visible_properties": list(self.visible),
            "hidden_properties": dict(self.hidden),
            "newly_visible": list(self.newly_visible),
            "newly_hidden": list(self.newly_hidden),
        }


def analyze_dependencies(properties: Sequence[NodeProperty]) -> DependencyAnalysis:
    dependencies: list[PropertyDependency] = []
    dependents: dict[str, list[str]] = {}
    for prop in properties:
        options = prop.display_options
        if options is None or options.is_empty:
            continue
        keys = options.referenced_keys()
        dependencies.append(
            PropertyDependency(
                name=prop.name,
                display_name=prop.display_name,
                depends_on=keys,
                show_when={key.lstrip("/"): value for key, value in options.show.items()},
                hide_when={key.lstrip("/"): value for key, value in options.hide.items()},
            )
        )
        for key in keys:
            names = dependents.setdefault(key, [])
            if prop.name not in names:
                names.append(prop.name)

    # Most influential controllers first.
    ordered = sorted(dependents.items(), key=lambda item: (-len(item[1]), item[0]))
    return DependencyAnalysis(
        total_properties=len(properties),
        dependencies=tuple(dependencies),
        controllers={name: tuple(names) for name, names in ordered},
    )


def visibility_impact(
    properties: Sequence[NodeProperty],
    config: Mapping[str, JSONValue],
    *,
    node_version: int | float | None = None,
) -> VisibilityImpact:
    baseline = default_config(properties, node_version=node_version)
    applied = {**baseline, **config}
    applied[VERSION_CONFIG_KEY] = baseline[VERSION_CONFIG_KEY]

    now: dict[str, bool] = {}
    before: dict[str, bool] = {}
    reasons: dict[str, str] = {}
    for prop in properties:
        # A name shown by any of its variants is visible.
        shown = is_visible(prop, applied)
        now[prop.name] = now.get(prop.name, False) or shown
        before[prop.name] = before.get(prop.name, False) or is_visible(prop, baseline)
        if not shown and prop.name not in reasons:
            reasons[prop.name] = visibility_reason(prop, applied) or "hidden"

    return VisibilityImpact(
        visible=tuple(name for name, shown in now.items() if shown),
        hidden={name: reasons[name] for name, shown in now.items() if not shown},
        newly_visible=tuple(name for name, shown in now.items() if shown and not before[name]),
        newly_hidden=tuple(name for name, shown in now.items() if not shown and before[name]),
    )


def _conditions_payload(
    conditions: Mapping[str, tuple[Condition, ...]],
) -> dict[str, JSONValue]:
    return {
        key: [item.to_dict() if isinstance(item, Comparator) else item for item in values]
        for key, values in conditions.items()
    }


__all__ = [
    "DependencyAnalysis",
    "PropertyDependency",
    "VisibilityImpact",
    "analyze_dependencies",
    "visibility_impact",
]
