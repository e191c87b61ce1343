"""
nodekb — unit tests for the configuration validator

File: tests/unit/validation/test_config_validator.py

Purpose
- Validate required-field, type, placement and rule findings across validation modes and
  profiles.

What this test file should cover
- Required properties only count when visible under the submitted configuration.
- Mode layering: minimal < operation < full.
- Profile filtering of errors, warnings, suggestions and fixes.
- Properties: ``valid`` tracks errors exactly, validation is idempotent, and minimal
  errors are a subset of full errors.
"""

from __future__ import annotations

from typing import Any

from hypothesis import given, settings
from hypothesis import strategies as st

from nodekb.domain.models import (
    FindingType,
    ValidationMode,
    ValidationProfile,
    ValidationResult,
)
from nodekb.validation.config_validator import (
    PROFILE_POLICIES,
    ConfigValidator,
    validate_minimal,
    validate_with_mode,
)

from . import http_like_properties, make_property, slack_like_properties

HTTP = "nodes-base.httpRequest"
SLACK = "nodes-base.slack"


def _types(findings: Any) -> list[FindingType]:
    return [finding.type for finding in findings]


def _by_type(result: ValidationResult, kind: FindingType) -> list[str]:
    return [item.property for item in (*result.errors, *result.warnings) if item.type is kind]


# ---------------------------------------------------------------------------
# Required fields
# ---------------------------------------------------------------------------


def test_minimal_reports_missing_required_only() -> None:
    result = validate_minimal(HTTP, {"method": "FETCH", "timeout": "soon"}, http_like_properties())

    assert not result.valid
    assert [(item.type, item.property) for item in result.errors] == [
        (FindingType.REQUIRED, "url")
    ]
    assert result.warnings == ()
    assert result.suggestions == ()
    assert result.missing_required_fields == ("url",)


def test_required_fields_follow_selected_branch() -> None:
    props = slack_like_properties()

    message = validate_minimal(SLACK, {"resource": "message", "operation": "post"}, props)
    user = validate_minimal(SLACK, {"resource": "user"}, props)

    assert [item.property for item in message.errors] == ["channel", "text"]
    assert [item.property for item in user.errors] == ["userId"]


def test_empty_string_counts_as_present() -> None:
    result = validate_minimal(HTTP, {"url": ""}, http_like_properties())

    assert result.valid


def test_required_shown_by_version_uses_node_version() -> None:
    props = (make_property("modelId", required=True, show={"@version": [{"_cnd": {"gte": 4}}]}),)

    assert not validate_minimal("nodes-base.x", {}, props, node_version=4).valid
    assert validate_minimal("nodes-base.x", {}, props, node_version=3).valid
    assert validate_minimal("nodes-base.x", {}, props).valid


def test_duplicate_property_names_report_once() -> None:
    props = (
        make_property("channel", required=True, show={"resource": ["message"]}),
        make_property("channel", required=True, show={"resource": ["message"]}),
    )

    result = validate_minimal(SLACK, {"resource": "message"}, props)

    assert [item.property for item in result.errors] == ["channel"]


# ---------------------------------------------------------------------------
# Full mode checks
# ---------------------------------------------------------------------------


def test_full_mode_reports_type_mismatch_and_invalid_values() -> None:
    config = {"url": "https://example.com", "method": "FETCH", "timeout": "soon", "onError": "x"}

    result = validate_with_mode(HTTP, config, http_like_properties())

    assert ("method", FindingType.INVALID_VALUE) in [
        (item.property, item.type) for item in result.errors
    ]
    assert ("timeout", FindingType.TYPE_MISMATCH) in [
        (item.property, item.type) for item in result.errors
    ]
    invalid = next(item for item in result.errors if item.property == "method")
    assert invalid.fix is not None and '"POST"' in invalid.fix


def test_number_range_is_enforced() -> None:
    config = {"url": "https://example.com", "timeout": 0, "onError": "stopWorkflow"}

    result = validate_with_mode(HTTP, config, http_like_properties())

    assert _by_type(result, FindingType.INVALID_VALUE) == ["timeout"]


def test_booleans_are_not_numbers() -> None:
    config = {"url": "https://example.com", "timeout": True, "onError": "stopWorkflow"}

    result = validate_with_mode(HTTP, config, http_like_properties())

    assert _by_type(result, FindingType.TYPE_MISMATCH) == ["timeout"]


def test_expressions_skip_type_checks() -> None:
    config = {
        "url": "={{ $json.url }}",
        "method": "={{ $json.method }}",
        "timeout": "={{ $json.timeout }}",
        "onError": "continueRegularOutput",
    }

    result = validate_with_mode(HTTP, config, http_like_properties())

    assert result.valid


def test_hidden_and_undeclared_keys_are_inefficient_under_strict() -> None:
    config = {"url": "https://example.com", "jsonBody": "{}", "foo": 1, "onError": "x"}

    strict = validate_with_mode(
        HTTP, config, http_like_properties(), profile=ValidationProfile.STRICT
    )
    runtime = validate_with_mode(
        HTTP, config, http_like_properties(), profile=ValidationProfile.RUNTIME
    )

    assert sorted(_by_type(strict, FindingType.INEFFICIENT)) == ["foo", "jsonBody"]
    hidden = next(item for item in strict.warnings if item.property == "jsonBody")
    assert "sendBody" in hidden.message
    assert _by_type(runtime, FindingType.INEFFICIENT) == []
    assert strict.valid and runtime.valid


def test_node_settings_are_not_flagged() -> None:
    config = {"url": "https://example.com", "onError": "continueRegularOutput", "retryOnFail": True}

    result = validate_with_mode(
        HTTP, config, http_like_properties(), profile=ValidationProfile.STRICT
    )

    assert _by_type(result, FindingType.INEFFICIENT) == []


def test_nested_collection_values_are_checked() -> None:
    props = (
        make_property(
            "options",
            "collection",
            default={},
            options=[
                {
                    "name": "timeout",
                    "displayName": "Timeout",
                    "type": "number",
                    "default": 10,
                    "typeOptions": {"minValue": 1},
                }
            ],
        ),
    )

    result = validate_with_mode("nodes-base.x", {"options": {"timeout": "later"}}, props)

    assert [item.property for item in result.errors] == ["options.timeout"]


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def test_post_without_body_is_a_best_practice_warning() -> None:
    config = {"url": "https://example.com", "method": "POST", "onError": "continueRegularOutput"}

    result = validate_with_mode(HTTP, config, http_like_properties())

    assert result.valid
    assert _by_type(result, FindingType.BEST_PRACTICE) == ["sendBody"]


def test_plain_http_url_is_a_security_warning() -> None:
    config = {"url": "http://example.com/api", "onError": "continueRegularOutput"}

    result = validate_with_mode(HTTP, config, http_like_properties())

    assert _by_type(result, FindingType.SECURITY) == ["url"]
    assert result.valid


def test_localhost_http_url_is_allowed() -> None:
    config = {"url": "http://localhost:5678/hook", "onError": "continueRegularOutput"}

    result = validate_with_mode(HTTP, config, http_like_properties())

    assert _by_type(result, FindingType.SECURITY) == []


def test_hardcoded_secret_is_flagged_even_in_minimal_profile() -> None:
    config = {
        "url": "https://example.com",
        "headerValue": "Bearer abcdefghijklmnopqrstuvwxyz012345",
    }

    result = validate_with_mode(
        HTTP, config, http_like_properties(), profile=ValidationProfile.MINIMAL
    )

    assert _by_type(result, FindingType.SECURITY) == ["headerValue"]
    assert all(item.fix is None for item in result.warnings)


def test_continue_on_fail_is_deprecated() -> None:
    config = {"url": "https://example.com", "continueOnFail": True}

    result = validate_with_mode(
        HTTP, config, http_like_properties(), profile=ValidationProfile.RUNTIME
    )

    assert _by_type(result, FindingType.DEPRECATED) == ["continueOnFail"]
    assert _by_type(result, FindingType.BEST_PRACTICE) == []


def test_deprecated_setting_adds_replacement_suggestion() -> None:
    config = {"url": "https://example.com", "continueOnFail": True}

    friendly = validate_with_mode(
        HTTP, config, http_like_properties(), profile=ValidationProfile.AI_FRIENDLY
    )
    runtime = validate_with_mode(
        HTTP, config, http_like_properties(), profile=ValidationProfile.RUNTIME
    )

    assert "Use onError instead of continueOnFail" in friendly.suggestions
    assert _by_type(friendly, FindingType.DEPRECATED) == ["continueOnFail"]
    assert runtime.suggestions == ()


def test_code_eval_is_flagged() -> None:
    props = (make_property("jsCode", default=""),)

    result = validate_with_mode(
        "n8n-nodes-base.code", {"jsCode": "return eval(items[0].json.src);"}, props
    )

    assert _by_type(result, FindingType.SECURITY) == ["jsCode"]


# ---------------------------------------------------------------------------
# Modes and profiles
# ---------------------------------------------------------------------------


def test_operation_mode_suggests_selector_values_without_type_checks() -> None:
    result = validate_with_mode(
        SLACK,
        {"resource": "message", "channel": 42},
        slack_like_properties(),
        mode=ValidationMode.OPERATION,
    )

    assert result.valid
    assert any(item.startswith("Set operation to one of") for item in result.suggestions)
    assert any('(defaults to "post")' in item for item in result.suggestions)


def test_minimal_mode_emits_no_warnings() -> None:
    config = {"url": "http://example.com", "method": "POST"}

    result = validate_with_mode(
        HTTP, config, http_like_properties(), mode=ValidationMode.MINIMAL
    )

    assert result.warnings == ()
    assert result.suggestions == ()


def test_profiles_filter_findings() -> None:
    config = {"method": "FETCH", "url": "http://example.com"}
    props = http_like_properties()

    minimal = validate_with_mode(HTTP, config, props, profile=ValidationProfile.MINIMAL)
    runtime = validate_with_mode(HTTP, config, props, profile=ValidationProfile.RUNTIME)
    friendly = validate_with_mode(HTTP, config, props, profile=ValidationProfile.AI_FRIENDLY)

    assert minimal.valid
    assert not runtime.valid and not friendly.valid
    assert runtime.suggestions == ()
    assert all(item.fix is None for item in runtime.warnings)
    assert FindingType.BEST_PRACTICE not in _types(runtime.warnings)
    assert FindingType.BEST_PRACTICE in _types(friendly.warnings)
    assert all(item.fix is not None for item in friendly.warnings)


def test_every_profile_has_a_policy() -> None:
    assert set(PROFILE_POLICIES) == set(ValidationProfile)
    for policy in PROFILE_POLICIES.values():
        assert FindingType.REQUIRED in policy.error_types
        assert FindingType.SECURITY in policy.warning_types


def test_result_to_dict_shape() -> None:
    result = validate_minimal(HTTP, {}, http_like_properties())

    payload = result.to_dict()

    assert payload["valid"] is False
    errors = payload["errors"]
    assert isinstance(errors, list) and errors[0]["type"] == "required"


def test_validator_logs_completion() -> None:
    events: list[tuple[str, dict[str, Any]]] = []

    class _Recorder:
        def debug(self, event: str, **fields: Any) -> None:
            events.append((event, fields))

    validator = ConfigValidator(logger=_Recorder())
    validator.validate_with_mode(HTTP, {"url": "https://x.test"}, http_like_properties())

    assert events[0][0] == "config_validation_completed"
    assert events[0][1]["node_type"] == HTTP


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------

_values = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(-10, 700_000),
    st.sampled_from(["GET", "POST", "", "https://a.test", "{}", "={{ $json.x }}", "nope"]),
    st.lists(st.integers(0, 3), max_size=2),
)
_configs = st.dictionaries(
    st.sampled_from(["method", "url", "sendBody", "jsonBody", "timeout", "extra", "onError"]),
    _values,
    max_size=6,
)


@settings(max_examples=25, derandomize=True, deadline=None)
@given(
    config=_configs,
    mode=st.sampled_from(list(ValidationMode)),
    profile=st.sampled_from(list(ValidationProfile)),
)
def test_valid_iff_no_errors_and_idempotent(
    config: dict[str, Any], mode: ValidationMode, profile: ValidationProfile
) -> None:
    props = http_like_properties()

    first = validate_with_mode(HTTP, config, props, mode, profile)
    second = validate_with_mode(HTTP, config, props, mode, profile)

    assert first == second
    assert first.valid == (len(first.errors) == 0)
    assert all(item.type.is_error for item in first.errors)
    assert not any(item.type.is_error for item in first.warnings)


@settings(max_examples=25, derandomize=True, deadline=None)
@given(config=_configs)
def test_minimal_errors_are_subset_of_full_errors(config: dict[str, Any]) -> None:
    props = http_like_properties()

    minimal = validate_minimal(HTTP, config, props)
    full = validate_with_mode(HTTP, config, props, profile=ValidationProfile.STRICT)

    minimal_keys = {(item.type, item.property) for item in minimal.errors}
    full_keys = {(item.type, item.property) for item in full.errors}
    assert minimal_keys <= full_keys
