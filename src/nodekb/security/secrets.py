"""
nodekb — secret detection and redaction

File: src/nodekb/security/secrets.py

Purpose
- Detect credentials pasted directly into node parameters (the validator reports
  them as ``security`` warnings).
- Redact secret-looking keys and text before they reach log files.

Functional requirements
- Rules run in a fixed order so findings are deterministic.
- Template expressions are never reported: they reference data, they do not hold it.

Non-functional requirements
- Prefer missing an exotic token shape over flagging ordinary parameter text.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

REDACTED_VALUE: Final[str] = "***REDACTED***"

SENSITIVE_KEYS: Final[frozenset[str]] = frozenset(
    {
        "access_token",
        "api_key",
        "apikey",
        "api_secret",
        "auth_token",
        "authorization",
        "bearer_token",
        "client_secret",
        "id_token",
        "password",
        "passwd",
        "private_key",
        "refresh_token",
        "secret",
        "secret_key",
        "session_token",
        "token",
        "webhook_secret",
    }
)

_SENSITIVE_KEY_SUFFIXES: Final[tuple[str, ...]] = (
    "_api_key",
    "_access_token",
    "_refresh_token",
    "_auth_token",
    "_client_secret",
    "_private_key",
    "_password",
    "_secret",
    "_token",
)

_CAMEL_CASE_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True, slots=True)
class SecretFinding:
    """One secret-like match discovered during scanning."""

    rule: str
    start: int
    end: int
    sample: str

    @property
    def masked_sample(self) -> str:
        if len(self.sample) <= 8:
            return "****"
        return f"{self.sample[:4]}...{self.sample[-2:]}"


@dataclass(frozen=True, slots=True)
class _TextRule:
    name: str
    pattern: re.Pattern[str]
    sensitive_group: int | None = None


_TEXT_RULES: Final[tuple[_TextRule, ...]] = (
    _TextRule(
        name="private_key_block",
        pattern=re.compile(
            r"-----BEGIN(?: [A-Z0-9]+)* PRIVATE KEY-----"
            r"[\s\S]+?"
            r"-----END(?: [A-Z0-9]+)* PRIVATE KEY-----"
        ),
    ),
    _TextRule(
        name="bearer_token",
        pattern=re.compile(r"(?i)(\bbearer\s+)([A-Za-z0-9\-._~+/=]{16,})"),
        sensitive_group=2,
    ),
    _TextRule(
        name="explicit_secret_assignment",
        pattern=re.compile(
            r"(?i)(\b(?:password|passwd|secret|api[_-]?key|client[_-]?secret|"
            r"access[_-]?token|refresh[_-]?token)\b\s*[:=]\s*[\"']?)"
            r"([A-Za-z0-9._~+/=-]{8,})"
        ),
        sensitive_group=2,
    ),
    _TextRule(
        name="url_credentials",
        pattern=re.compile(r"(?i)(\b[a-z][a-z0-9+.-]*://[^\s:/@]+:)([^\s@/]{4,})(@)"),
        sensitive_group=2,
    ),
    _TextRule(name="anthropic_api_key", pattern=re.compile(r"\bsk-ant-[A-Za-z0-9_-]{20,255}\b")),
    _TextRule(name="openai_api_key", pattern=re.compile(r"\bsk-(?:proj-)?[A-Za-z0-9]{20,255}\b")),
    _TextRule(name="stripe_secret_key", pattern=re.compile(r"\b[sr]k_live_[A-Za-z0-9]{16,255}\b")),
    _TextRule(name="aws_access_key", pattern=re.compile(r"\b(?:AKIA|ASIA)[A-Z0-9]{16}\b")),
    _TextRule(name="github_token", pattern=re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,255}\b")),
    _TextRule(name="slack_token", pattern=re.compile(r"\bxox[baprs]-[A-Za-z0-9-]{16,255}\b")),
    _TextRule(
        name="jwt",
        pattern=re.compile(r"\beyJ[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}\b"),
    ),
)

TEXT_RULE_NAMES: Final[tuple[str, ...]] = tuple(rule.name for rule in _TEXT_RULES)


def scan_for_secrets(text: str) -> tuple[SecretFinding, ...]:
    """Scan text for secret-like patterns in deterministic rule order."""

    if not isinstance(text, str):
        raise TypeError(f"text must be a string, got {type(text).__name__}")

    findings: list[SecretFinding] = []
    for rule in _TEXT_RULES:
        for match in rule.pattern.finditer(text):
            group = rule.sensitive_group or 0
            start, end = match.span(group)
            findings.append(
                SecretFinding(rule=rule.name, start=start, end=end, sample=match.group(group))
            )
    findings.sort(key=lambda item: (item.start, item.end, item.rule))
    return tuple(findings)


def is_sensitive_key(key: str) -> bool:
    """Return whether a camelCase or snake_case key names a secret."""

    normalized = normalize_key(key)
    if not normalized:
        return False
    if normalized in SENSITIVE_KEYS:
        return True
    return any(normalized.endswith(suffix) for suffix in _SENSITIVE_KEY_SUFFIXES)


def normalize_key(key: str) -> str:
    with_boundaries = _CAMEL_CASE_BOUNDARY.sub(r"\1_\2", key.strip())
    return _NON_ALNUM.sub("_", with_boundaries.lower()).strip("_")


def redact_text(text: str, *, replacement: str = REDACTED_VALUE) -> str:
    """Redact secret-like text. Idempotent for stable inputs."""

    if not isinstance(text, str):
        raise TypeError(f"text must be a string, got {type(text).__name__}")

    redacted = text
    for rule in _TEXT_RULES:
        redacted = rule.pattern.sub(
            lambda match, rule=rule: _replace_sensitive_group(
                match, replacement=replacement, group=rule.sensitive_group
            ),
            redacted,
        )
    return redacted


def redact_structure(value: object, *, replacement: str = REDACTED_VALUE) -> object:
    """Return a deep-redacted copy: sensitive keys are masked, strings are scrubbed."""

    return _redact(value, replacement=replacement, seen=set())


def _redact(value: object, *, replacement: str, seen: set[int]) -> object:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return redact_text(value, replacement=replacement)
    if isinstance(value, (Mapping, list, tuple)):
        value_id = id(value)
        if value_id in seen:
            return replacement
        seen.add(value_id)
        try:
            if isinstance(value, Mapping):
                out: dict[object, object] = {}
                for key in sorted(value, key=str):
                    item = value[key]
                    if isinstance(key, str) and is_sensitive_key(key) and item is not None:
                        out[key] = replacement
                    else:
                        out[key] = _redact(item, replacement=replacement, seen=seen)
                return out
            items = [_redact(item, replacement=replacement, seen=seen) for item in value]
            return items if isinstance(value, list) else tuple(items)
        finally:
            seen.discard(value_id)
    return repr(value)


def _replace_sensitive_group(
    match: re.Match[str],
    *,
    replacement: str,
    group: int | None,
) -> str:
    if group is None:
        return replacement

    full = match.group(0)
    start, end = match.span(group)
    offset_start = start - match.start(0)
    offset_end = end - match.start(0)
    return f"{full[:offset_start]}{replacement}{full[offset_end:]}"


__all__ = [
    "REDACTED_VALUE",
    "SENSITIVE_KEYS",
    "SecretFinding",
    "TEXT_RULE_NAMES",
    "is_sensitive_key",
    "normalize_key",
    "redact_structure",
    "redact_text",
    "scan_for_secrets",
]
