"""
nodekb — configuration validator

File: src/nodekb/validation/config_validator.py

Purpose
- Validate a (possibly partial) node configuration against the node's property
  schema and assemble a ``ValidationResult``.

Functional requirements
- Invisible properties are never reported as missing.
- ``mode`` controls which checks run:
  - minimal: required-field presence only.
  - operation: presence plus guidance for the selected resource/operation branch.
  - full: presence, value type/shape, hidden or undeclared keys, full guidance.
- ``profile`` controls which finding types surface and whether warnings keep fixes.
- ``valid`` is exactly "no errors"; warnings and suggestions never affect it.

Failure semantics
- Never raises for malformed values or unknown property types; those degrade to
  findings or no-ops.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Final

import structlog

from nodekb.constants import VERSION_CONFIG_KEY
from nodekb.domain.models import (
    FindingType,
    JSONValue,
    NodeProperty,
    PropertyType,
    ValidationFinding,
    ValidationMode,
    ValidationProfile,
    ValidationResult,
    ValueKind,
    canonical_json,
    value_kind,
)
from nodekb.validation.rules import RuleCatalog, default_rule_catalog
from nodekb.validation.type_structures import (
    StructureCategory,
    TypeStructureRegistry,
    default_registry,
    is_expression,
)
from nodekb.validation.visibility import is_visible, json_equal, visibility_reason

_SELECTOR_NAMES: Final[tuple[str, ...]] = ("resource", "operation")
_MAX_SUGGESTIONS: Final[int] = 10
_MAX_LISTED_OPTIONS: Final[int] = 8

# Node-level settings that may travel with parameters without being declared.
_NODE_SETTINGS: Final[frozenset[str]] = frozenset(
    {
        VERSION_CONFIG_KEY,
        "alwaysOutputData",
        "continueOnFail",
        "disabled",
        "executeOnce",
        "maxTries",
        "notes",
        "notesInFlow",
        "onError",
        "retryOnFail",
        "waitBetweenTries",
    }
)
_NON_VALUE_TYPES: Final[frozenset[PropertyType]] = frozenset(
    {PropertyType.NOTICE, PropertyType.CALLOUT, PropertyType.BUTTON, PropertyType.HIDDEN}
)


@dataclass(frozen=True, slots=True)
class ProfilePolicy:
    """Which findings a profile surfaces and how they are phrased."""

    error_types: frozenset[FindingType]
    warning_types: frozenset[FindingType]
    suggestions: bool
    explanatory: bool


_ALL_ERRORS: Final[frozenset[FindingType]] = frozenset(
    item for item in FindingType if item.is_error
)

PROFILE_POLICIES: Final[Mapping[ValidationProfile, ProfilePolicy]] = {
    ValidationProfile.MINIMAL: ProfilePolicy(
        error_types=frozenset({FindingType.REQUIRED}),
        warning_types=frozenset({FindingType.SECURITY}),
        suggestions=False,
        explanatory=False,
    ),
    ValidationProfile.RUNTIME: ProfilePolicy(
        error_types=_ALL_ERRORS,
        warning_types=frozenset({FindingType.SECURITY, FindingType.DEPRECATED}),
        suggestions=False,
        explanatory=False,
    ),
    ValidationProfile.AI_FRIENDLY: ProfilePolicy(
        error_types=_ALL_ERRORS,
        warning_types=frozenset(
            {FindingType.SECURITY, FindingType.DEPRECATED, FindingType.BEST_PRACTICE}
        ),
        suggestions=True,
        explanatory=True,
    ),
    ValidationProfile.STRICT: ProfilePolicy(
        error_types=_ALL_ERRORS,
        warning_types=frozenset(item for item in FindingType if not item.is_error),
        suggestions=True,
        explanatory=True,
    ),
}


class ConfigValidator:
    """Stateless validator; safe to share between threads and requests."""

    def __init__(
        self,
        *,
        registry: TypeStructureRegistry | None = None,
        rules: RuleCatalog | None = None,
        logger: Any | None = None,
    ) -> None:
        self._registry = registry if registry is not None else default_registry()
        self._rules = rules if rules is not None else default_rule_catalog()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def registry(self) -> TypeStructureRegistry:
        return self._registry

    def validate_minimal(
        self,
        node_type: str,
        config: Mapping[str, JSONValue],
        properties: Sequence[NodeProperty],
        *,
        node_version: int | float | None = None,
    ) -> ValidationResult:
        """Required-field presence only; identical to ``mode=minimal``."""

        working = _working_config(config, node_version)
        errors = _required_errors(properties, config, working)
        return ValidationResult(errors=tuple(errors))

    def validate_with_mode(
        self,
        node_type: str,
        config: Mapping[str, JSONValue],
        properties: Sequence[NodeProperty],
        mode: ValidationMode = ValidationMode.FULL,
        profile: ValidationProfile = ValidationProfile.AI_FRIENDLY,
        *,
        node_version: int | float | None = None,
    ) -> ValidationResult:
        if mode is ValidationMode.MINIMAL:
            result = self.validate_minimal(
                node_type, config, properties, node_version=node_version
            )
            self._log_completed(node_type, mode, profile, result)
            return result

        version = 1 if node_version is None else node_version
        working = _working_config(config, node_version)
        visible = [prop for prop in properties if is_visible(prop, working)]

        errors: list[ValidationFinding] = _required_errors(properties, config, working)
        warnings: list[ValidationFinding] = []
        suggestions: list[str] = _selector_suggestions(visible, config)

        if mode is ValidationMode.OPERATION:
            suggestions.extend(_unset_suggestions(visible, config, branch_only=True))
        else:
            for prop in _first_by_name(visible):
                if prop.name in config:
                    errors.extend(self.check_value(prop, config[prop.name], prop.name))
            warnings.extend(_placement_warnings(properties, visible, config, working))
            suggestions.extend(_unset_suggestions(visible, config, branch_only=False))

        warnings.extend(
            self._rules.deprecated_findings(node_type, config, type_version=float(version))
        )
        suggestions.extend(
            self._rules.deprecation_suggestions(node_type, config, type_version=float(version))
        )
        warnings.extend(self._rules.security_findings(node_type, config))
        warnings.extend(self._rules.best_practice_findings(node_type, config))

        result = _apply_profile(PROFILE_POLICIES[profile], errors, warnings, suggestions)
        self._log_completed(node_type, mode, profile, result)
        return result

    def check_value(
        self, prop: NodeProperty, value: JSONValue, path: str
    ) -> list[ValidationFinding]:
        """Type/shape check one configured value, recursing into containers."""

        descriptor = self._registry.get(prop.type)
        if descriptor is None or descriptor.category is StructureCategory.OPAQUE:
            return []
        if value is None:
            return []
        if descriptor.allows_expressions and is_expression(value):
            return []

        kind = _safe_kind(value)
        if kind is None:
            return [
                ValidationFinding(
                    type=FindingType.TYPE_MISMATCH,
                    property=path,
                    message=f"{prop.display_name}: value is not valid JSON data",
                )
            ]

        if descriptor.category is StructureCategory.ENUM:
            return _check_enum(prop, value, kind, path)

        if self._registry.has_structure_validator(prop.type):
            findings = self._registry.validate_structure(prop, value, path)
            if findings:
                return findings
            nested: list[ValidationFinding] = []
            for child, child_value, child_path in self._registry.nested_values(prop, value, path):
                nested.extend(self.check_value(child, child_value, child_path))
            return nested

        if not descriptor.accepts_kind(kind):
            expected = " or ".join(sorted(item.value for item in descriptor.accepts))
            fix = f"Provide a {descriptor.js_type} value"
            if descriptor.example is not None:
                fix += f", for example {canonical_json(descriptor.example)}"
            return [
                ValidationFinding(
                    type=FindingType.TYPE_MISMATCH,
                    property=path,
                    message=f"{prop.display_name}: expected {expected}, got {kind.value}",
                    fix=fix,
                )
            ]
        if prop.type is PropertyType.NUMBER and isinstance(value, (int, float)):
            return _check_number_range(prop, value, path)
        return []

    def _log_completed(
        self,
        node_type: str,
        mode: ValidationMode,
        profile: ValidationProfile,
        result: ValidationResult,
    ) -> None:
        self._logger.debug(
            "config_validation_completed",
            node_type=node_type,
            mode=mode.value,
            profile=profile.value,
            valid=result.valid,
            errors=len(result.errors),
            warnings=len(result.warnings),
            suggestions=len(result.suggestions),
        )


# ---------------------------------------------------------------------------
# Module-level entry points
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _default_validator() -> ConfigValidator:
    return ConfigValidator()


def validate_with_mode(
    node_type: str,
    config: Mapping[str, JSONValue],
    properties: Sequence[NodeProperty],
    mode: ValidationMode = ValidationMode.FULL,
    profile: ValidationProfile = ValidationProfile.AI_FRIENDLY,
    *,
    node_version: int | float | None = None,
) -> ValidationResult:
    return _default_validator().validate_with_mode(
        node_type, config, properties, mode, profile, node_version=node_version
    )


def validate_minimal(
    node_type: str,
    config: Mapping[str, JSONValue],
    properties: Sequence[NodeProperty],
    *,
    node_version: int | float | None = None,
) -> ValidationResult:
    return _default_validator().validate_minimal(
        node_type, config, properties, node_version=node_version
    )


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def _working_config(
    config: Mapping[str, JSONValue], node_version: int | float | None
) -> dict[str, JSONValue]:
    working: dict[str, JSONValue] = dict(config)
    working[VERSION_CONFIG_KEY] = 1 if node_version is None else node_version
    return working


def _required_errors(
    properties: Iterable[NodeProperty],
    config: Mapping[str, JSONValue],
    working: Mapping[str, JSONValue],
) -> list[ValidationFinding]:
    errors: list[ValidationFinding] = []
    reported: set[str] = set()
    for prop in properties:
        if not prop.required or prop.name in reported or prop.name in config:
            continue
        if not is_visible(prop, working):
            continue
        reported.add(prop.name)
        errors.append(
            ValidationFinding(
                type=FindingType.REQUIRED,
                property=prop.name,
                message=f"Required property '{prop.display_name}' is missing",
                fix=f"Provide a value for {prop.display_name}",
            )
        )
    return errors


def _check_enum(
    prop: NodeProperty, value: JSONValue, kind: ValueKind, path: str
) -> list[ValidationFinding]:
    allowed = prop.option_values
    if prop.type is PropertyType.MULTI_OPTIONS:
        if kind is not ValueKind.ARRAY or not isinstance(value, list):
            return [
                ValidationFinding(
                    type=FindingType.TYPE_MISMATCH,
                    property=path,
                    message=f"{prop.display_name}: expected array, got {kind.value}",
                    fix="Provide a list of option values",
                )
            ]
        findings: list[ValidationFinding] = []
        for index, item in enumerate(value):
            if allowed and not is_expression(item) and not _is_allowed(item, allowed):
                findings.append(_invalid_option(prop, item, f"{path}[{index}]", allowed))
        return findings

    if kind in (ValueKind.ARRAY, ValueKind.OBJECT):
        return [
            ValidationFinding(
                type=FindingType.TYPE_MISMATCH,
                property=path,
                message=f"{prop.display_name}: expected a single option value, got {kind.value}",
                fix=_allowed_fix(allowed) if allowed else None,
            )
        ]
    if allowed and not _is_allowed(value, allowed):
        return [_invalid_option(prop, value, path, allowed)]
    return []


def _is_allowed(value: JSONValue, allowed: Sequence[JSONValue]) -> bool:
    return any(json_equal(value, item) for item in allowed)


def _invalid_option(
    prop: NodeProperty, value: JSONValue, path: str, allowed: Sequence[JSONValue]
) -> ValidationFinding:
    return ValidationFinding(
        type=FindingType.INVALID_VALUE,
        property=path,
        message=f"{prop.display_name}: invalid value {canonical_json(value)}",
        fix=_allowed_fix(allowed),
    )


def _allowed_fix(allowed: Sequence[JSONValue]) -> str:
    return "Use one of: " + ", ".join(canonical_json(item) for item in allowed)


def _check_number_range(
    prop: NodeProperty, value: int | float, path: str
) -> list[ValidationFinding]:
    minimum = _as_number(prop.type_options.get("minValue"))
    maximum = _as_number(prop.type_options.get("maxValue"))
    if minimum is not None and value < minimum:
        return [
            ValidationFinding(
                type=FindingType.INVALID_VALUE,
                property=path,
                message=f"{prop.display_name}: {value} is below the minimum {minimum}",
                fix=f"Use a value >= {minimum}",
            )
        ]
    if maximum is not None and value > maximum:
        return [
            ValidationFinding(
                type=FindingType.INVALID_VALUE,
                property=path,
                message=f"{prop.display_name}: {value} is above the maximum {maximum}",
                fix=f"Use a value <= {maximum}",
            )
        ]
    return []


def _as_number(value: object) -> int | float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _safe_kind(value: object) -> ValueKind | None:
    try:
        return value_kind(value)
    except TypeError:
        return None


def _first_by_name(properties: Iterable[NodeProperty]) -> list[NodeProperty]:
    """Schemas may declare one name several times for different branches."""

    seen: set[str] = set()
    out: list[NodeProperty] = []
    for prop in properties:
        if prop.name not in seen:
            seen.add(prop.name)
            out.append(prop)
    return out


def _placement_warnings(
    properties: Sequence[NodeProperty],
    visible: Sequence[NodeProperty],
    config: Mapping[str, JSONValue],
    working: Mapping[str, JSONValue],
) -> list[ValidationFinding]:
    visible_names = {prop.name for prop in visible}
    declared: dict[str, NodeProperty] = {}
    for prop in properties:
        declared.setdefault(prop.name, prop)

    warnings: list[ValidationFinding] = []
    for key in config:
        if key in visible_names or key in _NODE_SETTINGS:
            continue
        prop = declared.get(key)
        if prop is None:
            warnings.append(
                ValidationFinding(
                    type=FindingType.INEFFICIENT,
                    property=key,
                    message=f"'{key}' is not a property of this node and will be ignored",
                    fix=f"Remove {key}",
                )
            )
            continue
        reason = visibility_reason(prop, working) or "hidden by the current configuration"
        warnings.append(
            ValidationFinding(
                type=FindingType.INEFFICIENT,
                property=key,
                message=f"'{prop.display_name}' is set but not used: {reason}",
                fix=f"Remove {key} or change the fields that control its visibility",
            )
        )
    return warnings


def _selector_suggestions(
    visible: Sequence[NodeProperty], config: Mapping[str, JSONValue]
) -> list[str]:
    suggestions: list[str] = []
    for prop in _first_by_name(visible):
        if prop.name not in _SELECTOR_NAMES or prop.name in config:
            continue
        choices = [canonical_json(item) for item in prop.option_values]
        if not choices:
            continue
        listed = ", ".join(choices[:_MAX_LISTED_OPTIONS])
        if len(choices) > _MAX_LISTED_OPTIONS:
            listed += f", ... ({len(choices)} total)"
        default = ""
        if prop.default not in (None, ""):
            default = f" (defaults to {canonical_json(prop.default)})"
        suggestions.append(f"Set {prop.name} to one of: {listed}{default}")
    return suggestions


def _unset_suggestions(
    visible: Sequence[NodeProperty],
    config: Mapping[str, JSONValue],
    *,
    branch_only: bool,
) -> list[str]:
    suggestions: list[str] = []
    for prop in _first_by_name(visible):
        if prop.required or prop.name in config or prop.name in _SELECTOR_NAMES:
            continue
        if prop.type in _NON_VALUE_TYPES or prop.name.startswith("_"):
            continue
        show_keys = (
            {key.lstrip("/") for key in prop.display_options.show}
            if prop.display_options is not None
            else set()
        )
        on_branch = bool(show_keys & set(_SELECTOR_NAMES))
        if branch_only and not on_branch:
            continue
        if not branch_only and prop.default not in (None, "", [], {}):
            continue
        hint = f": {prop.description}" if prop.description else ""
        suggestions.append(f"Consider setting '{prop.display_name}' ({prop.name}){hint}")
        if len(suggestions) >= _MAX_SUGGESTIONS:
            break
    return suggestions


def _apply_profile(
    policy: ProfilePolicy,
    errors: Sequence[ValidationFinding],
    warnings: Sequence[ValidationFinding],
    suggestions: Sequence[str],
) -> ValidationResult:
    kept_errors = tuple(item for item in errors if item.type in policy.error_types)
    kept_warnings = tuple(
        item if policy.explanatory else item.without_fix()
        for item in warnings
        if item.type in policy.warning_types
    )
    kept_suggestions = tuple(dict.fromkeys(suggestions)) if policy.suggestions else ()
    return ValidationResult(
        errors=kept_errors,
        warnings=kept_warnings,
        suggestions=kept_suggestions,
    )


__all__ = [
    "PROFILE_POLICIES",
    "ConfigValidator",
    "ProfilePolicy",
    "validate_minimal",
    "validate_with_mode",
]
