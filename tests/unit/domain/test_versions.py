"""
nodekb — unit tests for node version comparison

File: tests/unit/domain/test_versions.py

Purpose
- Validate which history entries an upgrade crosses and what they contribute.

What this test file should cover
- Range bounds: exclusive lower, inclusive upper, numeric rather than lexical ordering.
- Default target is the flagged current maximum.
- Migration hints from breaking changes and deprecated properties.
- Invalid versions, downgrades and missing history.
"""

from __future__ import annotations

import pytest

from nodekb.domain.models import NodeVersion
from nodekb.domain.versions import compare_versions, current_version, parse_version

NODE = "nodes-base.webhook"


def _version(version: str, **fields: object) -> NodeVersion:
    data: dict[str, object] = {"nodeType": "n8n-nodes-base.webhook", "version": version}
    data.update(fields)
    return NodeVersion.from_dict(data)


def _history() -> list[NodeVersion]:
    return [
        _version("10", deprecatedProperties=["rawBody"]),
        _version(
            "2",
            isCurrentMax=True,
            breakingChanges=[{"property": "path", "migration_hint": "Set a path"}],
            deprecatedProperties=["responseCode"],
        ),
        _version("1.1", addedProperties=["responseMode"], deprecatedProperties=["responseCode"]),
        _version("1"),
    ]


def test_upgrade_to_current_collects_changes_in_release_order() -> None:
    comparison = compare_versions(NODE, _history(), "1")

    assert comparison.to_version == "2"
    assert comparison.crossed_versions == ("1.1", "2")
    assert comparison.added_properties == ("responseMode",)
    assert comparison.deprecated_properties == ("responseCode",)
    assert [change.version for change in comparison.breaking_changes] == ["2"]
    assert comparison.migration_hints() == [
        "Set a path",
        "Remove responseCode; it is deprecated",
    ]
    assert comparison.upgrade_safe is False


def test_explicit_target_uses_numeric_order() -> None:
    comparison = compare_versions(NODE, _history(), "2", "10")

    assert comparison.crossed_versions == ("10",)
    assert comparison.deprecated_properties == ("rawBody",)
    assert comparison.upgrade_safe is True


def test_same_version_has_no_changes() -> None:
    payload = compare_versions(NODE, _history(), "2", "2").to_dict()

    assert payload["crossed_versions"] == []
    assert payload["total_breaking_changes"] == 0
    assert payload["migration_hints"] == []
    assert payload["upgrade_safe"] is True


def test_breaking_change_payload_carries_its_version() -> None:
    payload = compare_versions(NODE, _history(), "1.1").to_dict()

    assert payload["breaking_changes"] == [
        {"version": "2", "property": "path", "migration_hint": "Set a path"}
    ]


@pytest.mark.parametrize(
    ("from_version", "to_version", "message"),
    [
        ("2", "1", "downgrade"),
        ("v2", "3", "invalid version"),
        ("1", "nan", "invalid version"),
        ("-1", "2", "invalid version"),
    ],
)
def test_bad_ranges_are_rejected(from_version: str, to_version: str, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        compare_versions(NODE, _history(), from_version, to_version)


def test_missing_history_requires_explicit_target() -> None:
    with pytest.raises(ValueError, match="no version history"):
        compare_versions(NODE, [], "1")

    assert compare_versions(NODE, [], "1", "2").crossed_versions == ()


def test_parse_version_and_current_version() -> None:
    unflagged = [_version("1"), _version("1.5"), _version("1.10")]

    assert parse_version(" 4.2 ") == 4.2
    assert parse_version("2.0") == 2
    assert current_version(unflagged) is not None
    assert current_version(unflagged).version == "1.5"  # type: ignore[union-attr]
    assert current_version([]) is None
