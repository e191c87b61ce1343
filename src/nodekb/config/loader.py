"""
nodekb — config loader

File: src/nodekb/config/loader.py

Purpose
- Build the effective config for one process. Layers, lowest first: built-in defaults,
  ``nodekb.toml`` with an optional profile overlay, ``NODEKB_*`` environment variables,
  CLI overrides.

Functional requirements
- Every ``[section] key`` setting has one environment variable,
  ``NODEKB_<SECTION>_<KEY>``, coerced to the type of its built-in default.
- CLI overrides address settings as ``section.key``; ``profile`` selects an overlay.
- Relative path settings resolve against the directory holding the config file.
- The merged result is validated before it is returned.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from typing import Any, Final, cast

from nodekb.config.schema import (
    DEFAULT_CONFIG,
    PATH_FIELDS,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "nodekb.toml"
ENV_PREFIX: Final[str] = "NODEKB_"
PROFILE_ENV_VAR: Final[str] = f"{ENV_PREFIX}PROFILE"

_NOT_SETTINGS: Final[frozenset[str]] = frozenset({"meta", "profiles"})
_TRUE_WORDS: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})
_FALSE_WORDS: Final[frozenset[str]] = frozenset({"0", "false", "no", "off"})

Layer = dict[str, dict[str, object]]


class ConfigLoadError(ValueError):
    """Raised when a config file cannot be read or an override cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Effective config with precedence CLI > env > file (+ profile) > defaults."""

    path = _config_file(config_path)
    env = os.environ if environ is None else environ
    overrides = dict(cli_overrides or {})
    selected = _select_profile(profile, overrides.pop("profile", None), env)

    config = merge_config(default_config(), _read_toml(path, required=config_path is not None))
    config = assert_valid_config(config)
    if selected is not None:
        config = apply_profile_overlay(config, selected)
    config = merge_config(config, env_overrides(env))
    config = merge_config(config, _cli_layer(overrides))
    return assert_valid_config(
        normalize_paths(config, base_dir=path.parent), active_profile=selected
    )


@lru_cache(maxsize=1)
def env_bindings() -> Mapping[str, tuple[str, str, type]]:
    """``NODEKB_*`` name -> (section, key, type of the built-in default)."""

    bindings: dict[str, tuple[str, str, type]] = {}
    for section, settings in DEFAULT_CONFIG.items():
        if section in _NOT_SETTINGS:
            continue
        for key, default in cast("Mapping[str, object]", settings).items():
            bindings[f"{ENV_PREFIX}{section}_{key}".upper()] = (section, key, type(default))
    return bindings


def env_overrides(environ: Mapping[str, str]) -> Layer:
    layer: Layer = {}
    for name, (section, key, kind) in sorted(env_bindings().items()):
        raw = environ.get(name)
        if raw is not None:
            layer.setdefault(section, {})[key] = _coerce(raw.strip(), kind, name)
    return layer


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Resolve relative path settings, top level and profile overlays, against ``base_dir``."""

    normalized = merge_config({}, config)
    targets: list[dict[str, Any]] = [normalized]
    profiles = normalized.get("profiles")
    if isinstance(profiles, dict):
        targets.extend(overlay for overlay in profiles.values() if isinstance(overlay, dict))

    for target in targets:
        for section, key in PATH_FIELDS:
            settings = target.get(section)
            if not isinstance(settings, dict):
                continue
            raw = settings.get(key)
            # Empty means "not configured".
            if isinstance(raw, str) and raw:
                settings[key] = _resolve_path(raw, base_dir)
    return normalized


def dump_effective_config(config: Mapping[str, object]) -> str:
    return json.dumps(redact_config(config), sort_keys=True, indent=2, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Layers
# ---------------------------------------------------------------------------


def _config_file(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError as exc:
        if required:
            raise ConfigLoadError(f"config file not found: {path}") from exc
        return {}
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"cannot read config file {path}: {exc}") from exc


def _select_profile(
    explicit: str | None, from_cli: object, environ: Mapping[str, str]
) -> str | None:
    for candidate in (explicit, from_cli, environ.get(PROFILE_ENV_VAR)):
        if candidate is None:
            continue
        if not isinstance(candidate, str):
            raise ConfigLoadError(f"profile must be a string, got {candidate!r}")
        if candidate.strip():
            return candidate.strip()
    return None


def _cli_layer(overrides: Mapping[str, object]) -> Layer:
    layer: Layer = {}
    for dotted in sorted(overrides):
        section, _, key = dotted.partition(".")
        if not section or not key or "." in key:
            raise ConfigLoadError(f"CLI override {dotted!r} must be written as section.key")
        layer.setdefault(section, {})[key] = overrides[dotted]
    return layer


def _coerce(raw: str, kind: type, name: str) -> object:
    if kind is bool:
        word = raw.lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        raise ConfigLoadError(f"{name} must be one of true/false/yes/no/on/off/1/0, got {raw!r}")
    if kind in (int, float):
        try:
            return kind(raw)
        except ValueError as exc:
            raise ConfigLoadError(f"{name} must be {kind.__name__}, got {raw!r}") from exc
    return raw


def _resolve_path(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "PROFILE_ENV_VAR",
    "ConfigLoadError",
    "dump_effective_config",
    "env_bindings",
    "env_overrides",
    "load_config",
    "normalize_paths",
]
