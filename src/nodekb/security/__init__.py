"""Security helpers: secret detection for node parameters and log redaction."""

from nodekb.security.secrets import (
    REDACTED_VALUE,
    SecretFinding,
    is_sensitive_key,
    redact_structure,
    redact_text,
    scan_for_secrets,
)

__all__ = [
    "REDACTED_VALUE",
    "SecretFinding",
    "is_sensitive_key",
    "redact_structure",
    "redact_text",
    "scan_for_secrets",
]
