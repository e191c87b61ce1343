"""
nodekb — configuration schema and validation.

File: src/nodekb/config/schema.py

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Schema versioning and migration guidance.
- Validation rules for required fields, types, enums, and numeric constraints.
- Profile overlay validation and deterministic deep-merge helpers.
- Redaction rules for sensitive fields.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Support profile overlays (built-ins: interactive, batch).

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from nodekb.constants import CONFIG_SCHEMA_VERSION, DEFAULT_DB_PATH, DEFAULT_LOG_DIR
from nodekb.domain.models import ValidationMode, ValidationProfile
from nodekb.security.secrets import REDACTED_VALUE, is_sensitive_key

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("interactive", "batch")

_PROFILE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")
_SECTIONS: Final[tuple[str, ...]] = (
    "database",
    "search",
    "validation",
    "properties",
    "cache",
    "observability",
)

# Config paths that should be normalized relative to config file location.
PATH_FIELDS: Final[tuple[tuple[str, str], ...]] = (
    ("database", "path"),
    ("search", "pinned_boosts_path"),
    ("observability", "log_dir"),
)


class MetaConfig(TypedDict):
    schema_version: int


class DatabaseConfig(TypedDict):
    path: str
    busy_timeout_ms: int
    busy_retry_limit: int


class SearchConfig(TypedDict):
    default_limit: int
    max_limit: int
    candidate_multiplier: int
    substring_candidate_limit: int
    fuzzy_min_score: int
    examples_per_result: int
    pinned_boosts_path: str


class ValidationConfig(TypedDict):
    default_mode: str
    default_profile: str


class PropertiesConfig(TypedDict):
    max_common_properties: int
    max_search_results: int


class CacheConfig(TypedDict):
    enabled: bool
    ttl_seconds: float
    max_entries: int


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_format: Literal["json", "text"]
    log_dir: str
    log_to_file: bool
    redact_secrets: bool


class ProfileOverlay(TypedDict, total=False):
    database: dict[str, object]
    search: dict[str, object]
    validation: dict[str, object]
    properties: dict[str, object]
    cache: dict[str, object]
    observability: dict[str, object]


class NodeKBConfig(TypedDict):
    meta: MetaConfig
    database: DatabaseConfig
    search: SearchConfig
    validation: ValidationConfig
    properties: PropertiesConfig
    cache: CacheConfig
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


# Empty pinned_boosts_path selects the bundled pinned_boosts.yaml.
DEFAULT_CONFIG: Final[NodeKBConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "database": {
        "path": str(DEFAULT_DB_PATH),
        "busy_timeout_ms": 5_000,
        "busy_retry_limit": 5,
    },
    "search": {
        "default_limit": 20,
        "max_limit": 100,
        "candidate_multiplier": 3,
        "substring_candidate_limit": 1_000,
        "fuzzy_min_score": 200,
        "examples_per_result": 2,
        "pinned_boosts_path": "",
    },
    "validation": {
        "default_mode": ValidationMode.FULL.value,
        "default_profile": ValidationProfile.AI_FRIENDLY.value,
    },
    "properties": {
        "max_common_properties": 10,
        "max_search_results": 20,
    },
    "cache": {
        "enabled": True,
        "ttl_seconds": 300.0,
        "max_entries": 256,
    },
    "observability": {
        "log_level": "INFO",
        "log_format": "json",
        "log_dir": str(DEFAULT_LOG_DIR),
        "log_to_file": False,
        "redact_secrets": True,
    },
    "profiles": {
        "interactive": {
            "observability": {"log_format": "text"},
        },
        "batch": {
            "cache": {"enabled": False},
            "observability": {"log_to_file": True},
            "validation": {"default_profile": ValidationProfile.STRICT.value},
        },
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


_FieldParser = Callable[[object, str, _IssueCollector], object | None]


def default_config() -> NodeKBConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade nodekb.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the nodekb package"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Apply a named profile overlay and re-validate the resulting config."""

    materialized = _deep_copy_mapping(config)
    selected = profile.strip() if profile is not None else ""
    if not selected:
        return materialized

    profiles_raw = materialized.get("profiles")
    if not isinstance(profiles_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", "profiles section is required"),)
        )
    overlay_raw = profiles_raw.get(selected)
    if overlay_raw is None:
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    if not isinstance(overlay_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue(f"profiles.{selected}", "profile overlay must be an object"),)
        )

    merged = merge_config(materialized, overlay_raw)
    return assert_valid_config(merged, active_profile=selected)


def validate_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, issues)

    selected_profile = active_profile.strip() if isinstance(active_profile, str) else None
    if selected_profile:
        profiles = normalized.get("profiles")
        if not isinstance(profiles, Mapping) or selected_profile not in profiles:
            issues.add("profiles", f"profile {selected_profile!r} is not defined")

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config, active_profile=active_profile)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return deterministic redacted representation for logs and ``nodekb config``."""

    if not isinstance(config, Mapping):
        return {}
    redacted = _redact_value(config)
    if isinstance(redacted, dict):
        return redacted
    return {}


# ---------------------------------------------------------------------------
# Section validators
# ---------------------------------------------------------------------------


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"meta", "profiles", *_SECTIONS}, "", issues)
    _require_keys(payload, {"meta", *_SECTIONS}, "", issues)

    out: dict[str, Any] = {}
    meta = payload.get("meta")
    if meta is not None:
        meta_obj = _as_object(meta, "meta", issues)
        if meta_obj is not None:
            out["meta"] = _validate_meta(meta_obj, "meta", issues)

    for section in _SECTIONS:
        raw = payload.get(section)
        if raw is None:
            continue
        section_obj = _as_object(raw, section, issues)
        if section_obj is not None:
            out[section] = _validate_section(section, section_obj, section, issues, partial=False)

    if "search" in out:
        _validate_search_cross_fields(out["search"], "search", issues)

    profiles_raw = payload.get("profiles")
    if profiles_raw is not None:
        profiles_obj = _as_object(profiles_raw, "profiles", issues)
        if profiles_obj is not None:
            out["profiles"] = _validate_profiles(profiles_obj, "profiles", issues)
    return out


def _validate_meta(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    _require_keys(payload, {"schema_version"}, path, issues)
    out: dict[str, Any] = {}
    if "schema_version" in payload:
        field_path = _join(path, "schema_version")
        parsed = _as_int(payload["schema_version"], field_path, issues, minimum=1)
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(field_path, migration_guidance(parsed))
    return out


def _validate_section(
    section: str,
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    fields = _SECTION_FIELDS[section]
    _reject_unknown_keys(payload, set(fields), path, issues)
    if not partial:
        _require_keys(payload, set(fields), path, issues)

    out: dict[str, Any] = {}
    for key, parser in fields.items():
        if key not in payload:
            continue
        parsed = parser(payload[key], _join(path, key), issues)
        if parsed is not None:
            out[key] = parsed
    return out


def _validate_search_cross_fields(
    search: Mapping[str, object], path: str, issues: _IssueCollector
) -> None:
    default_limit = search.get("default_limit")
    max_limit = search.get("max_limit")
    if isinstance(default_limit, int) and isinstance(max_limit, int) and default_limit > max_limit:
        issues.add(_join(path, "default_limit"), "must be <= search.max_limit")


def _validate_profiles(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for profile_name in sorted(payload):
        profile_path = _join(path, profile_name)
        if not _PROFILE_NAME_PATTERN.fullmatch(profile_name):
            issues.add(profile_path, "profile name must match ^[a-z][a-z0-9_-]*$")
            continue
        profile_obj = _as_object(payload[profile_name], profile_path, issues)
        if profile_obj is None:
            continue
        _reject_unknown_keys(profile_obj, set(_SECTIONS), profile_path, issues)
        overlay: dict[str, Any] = {}
        for section in _SECTIONS:
            raw = profile_obj.get(section)
            if raw is None:
                continue
            section_path = _join(profile_path, section)
            section_obj = _as_object(raw, section_path, issues)
            if section_obj is not None:
                overlay[section] = _validate_section(
                    section, section_obj, section_path, issues, partial=True
                )
        out[profile_name] = overlay
    return out


# ---------------------------------------------------------------------------
# Field parsers
# ---------------------------------------------------------------------------


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(
    value: object, path: str, issues: _IssueCollector, *, allow_empty: bool = False
) -> str | None:
    if allow_empty and isinstance(value, str) and not value.strip():
        return ""
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    if maximum is not None and value > maximum:
        issues.add(path, f"must be <= {maximum}")
        return None
    return value


def _as_float(
    value: object, path: str, issues: _IssueCollector, *, minimum: float | None = None
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _int_field(*, minimum: int, maximum: int | None = None) -> _FieldParser:
    return lambda value, path, issues: _as_int(
        value, path, issues, minimum=minimum, maximum=maximum
    )


def _enum_field(allowed_values: tuple[str, ...]) -> _FieldParser:
    return lambda value, path, issues: _as_enum(
        value, path, issues, allowed_values=allowed_values
    )


_SECTION_FIELDS: Final[dict[str, dict[str, _FieldParser]]] = {
    "database": {
        "path": _as_path_text,
        "busy_timeout_ms": _int_field(minimum=0),
        "busy_retry_limit": _int_field(minimum=0, maximum=20),
    },
    "search": {
        "default_limit": _int_field(minimum=1),
        "max_limit": _int_field(minimum=1, maximum=1_000),
        "candidate_multiplier": _int_field(minimum=1, maximum=20),
        "substring_candidate_limit": _int_field(minimum=1, maximum=10_000),
        "fuzzy_min_score": _int_field(minimum=0, maximum=1_000),
        "examples_per_result": _int_field(minimum=0, maximum=10),
        "pinned_boosts_path": lambda value, path, issues: _as_path_text(
            value, path, issues, allow_empty=True
        ),
    },
    "validation": {
        "default_mode": _enum_field(tuple(item.value for item in ValidationMode)),
        "default_profile": _enum_field(tuple(item.value for item in ValidationProfile)),
    },
    "properties": {
        "max_common_properties": _int_field(minimum=1, maximum=100),
        "max_search_results": _int_field(minimum=1, maximum=500),
    },
    "cache": {
        "enabled": _as_bool,
        "ttl_seconds": lambda value, path, issues: _as_float(value, path, issues, minimum=0.0),
        "max_entries": _int_field(minimum=1),
    },
    "observability": {
        "log_level": _enum_field(("DEBUG", "INFO", "WARNING", "ERROR")),
        "log_format": _enum_field(("json", "text")),
        "log_dir": _as_path_text,
        "log_to_file": _as_bool,
        "redact_secrets": _as_bool,
    },
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key in allowed:
            continue
        key_path = _join(path, key)
        if is_sensitive_key(key):
            issues.add(key_path, "embedded secret values are forbidden in nodekb config")
        else:
            issues.add(key_path, "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            else:
                nested: dict[str, Any] = {}
                _merge_into(nested, value)
                target[key] = nested
        else:
            target[key] = _deep_copy_value(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    return {key: _deep_copy_value(value[key]) for key in sorted(value)}


def _deep_copy_value(value: object) -> Any:
    if isinstance(value, Mapping):
        return {key: _deep_copy_value(item) for key, item in value.items() if isinstance(key, str)}
    if isinstance(value, list):
        return [_deep_copy_value(item) for item in value]
    return copy.deepcopy(value)


def _redact_value(value: object) -> object:
    if isinstance(value, Mapping):
        return {
            key: REDACTED_VALUE if is_sensitive_key(key) else _redact_value(value[key])
            for key in sorted(value)
        }
    if isinstance(value, (list, tuple)):
        return [_redact_value(item) for item in value]
    return value


__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "DEFAULT_CONFIG",
    "PATH_FIELDS",
    "CacheConfig",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DatabaseConfig",
    "NodeKBConfig",
    "ObservabilityConfig",
    "ProfileOverlay",
    "PropertiesConfig",
    "SearchConfig",
    "ValidationConfig",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]
