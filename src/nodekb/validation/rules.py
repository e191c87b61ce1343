"""
nodekb — validation rule catalog

File: src/nodekb/validation/rules.py

Purpose
- Deprecated properties/values, security patterns and node-specific best
  practices, loaded from ``validation_rules.yaml``.
- Embedded-secret detection over every string in a node configuration.

Functional requirements
- Rules never raise on malformed configuration values; a value of an unexpected
  kind simply does not match.
- Expressions are skipped by secret detection.

Non-functional requirements
- Rule order in the catalog is the order findings are reported in.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Final, cast

import yaml

from nodekb.domain.models import FindingType, JSONValue, ValidationFinding
from nodekb.domain.node_types import normalize_node_type
from nodekb.security.secrets import is_sensitive_key, scan_for_secrets
from nodekb.validation.type_structures import is_expression
from nodekb.validation.visibility import json_equal

DEFAULT_RULES_PATH: Final[Path] = Path(__file__).resolve().with_name("validation_rules.yaml")

_ANY_NODE: Final[str] = "*"
_SECRET_FIX: Final[str] = "Store the secret in an n8n credential and reference it instead."
_SECTIONS: Final[frozenset[str]] = frozenset({"deprecated", "security", "best_practices"})


@dataclass(frozen=True, slots=True)
class DeprecationRule:
    id: str
    node_types: frozenset[str]
    property: str
    message: str
    replacement: str
    fix: str
    values: tuple[JSONValue, ...] = ()
    min_version: float | None = None

    def applies(self, config: Mapping[str, JSONValue], type_version: float) -> bool:
        if self.property not in config:
            return False
        if self.min_version is not None and type_version < self.min_version:
            return False
        if not self.values:
            return True
        value = config[self.property]
        return any(json_equal(value, candidate) for candidate in self.values)


@dataclass(frozen=True, slots=True)
class PatternRule:
    id: str
    node_types: frozenset[str]
    properties: tuple[str, ...]
    pattern: re.Pattern[str]
    message: str
    fix: str


@dataclass(frozen=True, slots=True)
class BestPracticeRule:
    id: str
    node_types: frozenset[str]
    message: str
    fix: str
    when: Mapping[str, tuple[JSONValue, ...]] = field(default_factory=dict)
    expect_present: tuple[str, ...] = ()
    expect_pattern: tuple[str, re.Pattern[str]] | None = None

    def matches_when(self, config: Mapping[str, JSONValue]) -> bool:
        for key, accepted in self.when.items():
            if key not in config:
                return False
            if not any(json_equal(config[key], item) for item in accepted):
                return False
        return True


@dataclass(frozen=True, slots=True)
class RuleCatalog:
    deprecated: tuple[DeprecationRule, ...] = ()
    security: tuple[PatternRule, ...] = ()
    best_practices: tuple[BestPracticeRule, ...] = ()

    def applicable_deprecations(
        self,
        node_type: str,
        config: Mapping[str, JSONValue],
        *,
        type_version: float = 1,
    ) -> list[DeprecationRule]:
        normalized = normalize_node_type(node_type)
        return [
            rule
            for rule in self.deprecated
            if _node_matches(rule.node_types, normalized) and rule.applies(config, type_version)
        ]

    def deprecated_findings(
        self,
        node_type: str,
        config: Mapping[str, JSONValue],
        *,
        type_version: float = 1,
    ) -> list[ValidationFinding]:
        return [
            ValidationFinding(
                type=FindingType.DEPRECATED,
                property=rule.property,
                message=f"{rule.message} Use {rule.replacement} instead.",
                fix=rule.fix,
            )
            for rule in self.applicable_deprecations(node_type, config, type_version=type_version)
        ]

    def deprecation_suggestions(
        self,
        node_type: str,
        config: Mapping[str, JSONValue],
        *,
        type_version: float = 1,
    ) -> list[str]:
        """One "Use X instead of Y" hint per deprecated setting found in ``config``."""

        return [
            f"Use {rule.replacement} instead of {rule.property}"
            for rule in self.applicable_deprecations(node_type, config, type_version=type_version)
            if rule.replacement
        ]

    def security_findings(
        self, node_type: str, config: Mapping[str, JSONValue]
    ) -> list[ValidationFinding]:
        normalized = normalize_node_type(node_type)
        findings: list[ValidationFinding] = []
        for path, key, text in _iter_strings(dict(config), ""):
            if is_expression(text):
                continue
            secrets = scan_for_secrets(text)
            if secrets:
                rules = ", ".join(sorted({item.rule for item in secrets}))
                findings.append(
                    ValidationFinding(
                        type=FindingType.SECURITY,
                        property=path,
                        message=f"Possible secret embedded in {path} ({rules}).",
                        fix=_SECRET_FIX,
                    )
                )
            elif key is not None and text.strip() and is_sensitive_key(key):
                findings.append(
                    ValidationFinding(
                        type=FindingType.SECURITY,
                        property=path,
                        message=f"{path} holds a literal value for a sensitive field.",
                        fix=_SECRET_FIX,
                    )
                )

        for rule in self.security:
            if not _node_matches(rule.node_types, normalized):
                continue
            for name in rule.properties:
                value = config.get(name)
                if not isinstance(value, str):
                    continue
                if rule.pattern.search(value):
                    findings.append(
                        ValidationFinding(
                            type=FindingType.SECURITY,
                            property=name,
                            message=rule.message,
                            fix=rule.fix,
                        )
                    )
        return findings

    def best_practice_findings(
        self, node_type: str, config: Mapping[str, JSONValue]
    ) -> list[ValidationFinding]:
        normalized = normalize_node_type(node_type)
        findings: list[ValidationFinding] = []
        for rule in self.best_practices:
            if not _node_matches(rule.node_types, normalized) or not rule.matches_when(config):
                continue
            target = _best_practice_violation(rule, config)
            if target is None:
                continue
            findings.append(
                ValidationFinding(
                    type=FindingType.BEST_PRACTICE,
                    property=target,
                    message=rule.message,
                    fix=rule.fix,
                )
            )
        return findings


def _best_practice_violation(
    rule: BestPracticeRule, config: Mapping[str, JSONValue]
) -> str | None:
    """Return the offending property name, or None when the rule is satisfied."""

    for name in rule.expect_present:
        if name not in config:
            return name
    if rule.expect_pattern is not None:
        name, pattern = rule.expect_pattern
        value = config.get(name)
        if isinstance(value, str) and not is_expression(value) and not pattern.search(value):
            return name
        return None
    if rule.expect_present:
        return None
    # A rule with only a ``when`` clause warns whenever it matches.
    return next(iter(rule.when), "")


def _node_matches(node_types: frozenset[str], normalized: str) -> bool:
    return _ANY_NODE in node_types or normalized in node_types


def _iter_strings(
    value: JSONValue, path: str, key: str | None = None
) -> Iterator[tuple[str, str | None, str]]:
    if isinstance(value, str):
        yield path, key, value
    elif isinstance(value, dict):
        for child_key, item in value.items():
            child_path = f"{path}.{child_key}" if path else child_key
            yield from _iter_strings(item, child_path, child_key)
    elif isinstance(value, list):
        for index, item in enumerate(value):
            yield from _iter_strings(item, f"{path}[{index}]", key)


def load_rule_catalog(path: Path = DEFAULT_RULES_PATH) -> RuleCatalog:
    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = cast("object", yaml.safe_load(handle))
    except yaml.YAMLError as exc:
        raise ValueError(f"{path}: invalid YAML ({exc})") from exc

    if not isinstance(loaded, Mapping):
        raise ValueError(f"{path}: expected top-level YAML mapping, got {type(loaded).__name__}")
    unknown = sorted(str(key) for key in loaded if key not in _SECTIONS)
    if unknown:
        raise ValueError(f"{path}: unexpected sections: {unknown}")

    return RuleCatalog(
        deprecated=tuple(
            _parse_deprecation(item, f"{path.name}.deprecated[{index}]")
            for index, item in enumerate(_as_list(loaded.get("deprecated", []), "deprecated"))
        ),
        security=tuple(
            _parse_pattern_rule(item, f"{path.name}.security[{index}]")
            for index, item in enumerate(_as_list(loaded.get("security", []), "security"))
        ),
        best_practices=tuple(
            _parse_best_practice(item, f"{path.name}.best_practices[{index}]")
            for index, item in enumerate(
                _as_list(loaded.get("best_practices", []), "best_practices")
            )
        ),
    )


@lru_cache(maxsize=1)
def default_rule_catalog() -> RuleCatalog:
    return load_rule_catalog()


# ---------------------------------------------------------------------------
# Catalog parsing
# ---------------------------------------------------------------------------


def _parse_deprecation(value: object, location: str) -> DeprecationRule:
    parsed = _as_mapping(value, location)
    min_version = parsed.get("min_version")
    if min_version is not None and (
        isinstance(min_version, bool) or not isinstance(min_version, (int, float))
    ):
        raise ValueError(f"{location}.min_version: expected number")
    return DeprecationRule(
        id=_as_non_empty_str(parsed.get("id"), f"{location}.id"),
        node_types=_as_node_types(parsed.get("node_types"), f"{location}.node_types"),
        property=_as_non_empty_str(parsed.get("property"), f"{location}.property"),
        message=_as_non_empty_str(parsed.get("message"), f"{location}.message"),
        replacement=_as_non_empty_str(parsed.get("replacement"), f"{location}.replacement"),
        fix=_as_non_empty_str(parsed.get("fix"), f"{location}.fix"),
        values=tuple(
            cast("JSONValue", item)
            for item in _as_list(parsed.get("values", []), f"{location}.values")
        ),
        min_version=float(min_version) if min_version is not None else None,
    )


def _parse_pattern_rule(value: object, location: str) -> PatternRule:
    parsed = _as_mapping(value, location)
    return PatternRule(
        id=_as_non_empty_str(parsed.get("id"), f"{location}.id"),
        node_types=_as_node_types(parsed.get("node_types"), f"{location}.node_types"),
        properties=tuple(
            _as_non_empty_str(item, f"{location}.properties[{index}]")
            for index, item in enumerate(
                _as_list(parsed.get("properties"), f"{location}.properties")
            )
        ),
        pattern=_as_pattern(parsed.get("pattern"), f"{location}.pattern"),
        message=_as_non_empty_str(parsed.get("message"), f"{location}.message"),
        fix=_as_non_empty_str(parsed.get("fix"), f"{location}.fix"),
    )


def _parse_best_practice(value: object, location: str) -> BestPracticeRule:
    parsed = _as_mapping(value, location)
    when_raw = _as_mapping(parsed.get("when", {}), f"{location}.when")
    when = {
        key: tuple(
            cast("JSONValue", item) for item in _as_list(accepted, f"{location}.when.{key}")
        )
        for key, accepted in when_raw.items()
    }
    expect_pattern: tuple[str, re.Pattern[str]] | None = None
    if parsed.get("expect_pattern") is not None:
        pattern_spec = _as_mapping(parsed["expect_pattern"], f"{location}.expect_pattern")
        expect_pattern = (
            _as_non_empty_str(pattern_spec.get("property"), f"{location}.expect_pattern.property"),
            _as_pattern(pattern_spec.get("pattern"), f"{location}.expect_pattern.pattern"),
        )
    return BestPracticeRule(
        id=_as_non_empty_str(parsed.get("id"), f"{location}.id"),
        node_types=_as_node_types(parsed.get("node_types"), f"{location}.node_types"),
        message=_as_non_empty_str(parsed.get("message"), f"{location}.message"),
        fix=_as_non_empty_str(parsed.get("fix"), f"{location}.fix"),
        when=when,
        expect_present=tuple(
            _as_non_empty_str(item, f"{location}.expect_present[{index}]")
            for index, item in enumerate(
                _as_list(parsed.get("expect_present", []), f"{location}.expect_present")
            )
        ),
        expect_pattern=expect_pattern,
    )


def _as_mapping(value: object, path: str) -> dict[str, object]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{path}: expected mapping, got {type(value).__name__}")
    return {str(key): item for key, item in value.items()}


def _as_list(value: object, path: str) -> list[object]:
    if not isinstance(value, list):
        raise ValueError(f"{path}: expected list, got {type(value).__name__}")
    return value


def _as_non_empty_str(value: object, path: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{path}: expected non-empty string")
    return value.strip()


def _as_node_types(value: object, path: str) -> frozenset[str]:
    items = _as_list(value, path)
    if not items:
        raise ValueError(f"{path}: must list at least one node type")
    out: set[str] = set()
    for index, item in enumerate(items):
        text = _as_non_empty_str(item, f"{path}[{index}]")
        out.add(text if text == _ANY_NODE else normalize_node_type(text))
    return frozenset(out)


def _as_pattern(value: object, path: str) -> re.Pattern[str]:
    text = _as_non_empty_str(value, path)
    try:
        return re.compile(text)
    except re.error as exc:
        raise ValueError(f"{path}: invalid regex ({exc})") from exc


__all__ = [
    "DEFAULT_RULES_PATH",
    "BestPracticeRule",
    "DeprecationRule",
    "PatternRule",
    "RuleCatalog",
    "default_rule_catalog",
    "load_rule_catalog",
]
