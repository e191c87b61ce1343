"""
nodekb — unit tests for property visibility

File: tests/unit/validation/test_visibility.py

Purpose
- Validate displayOptions evaluation: show/hide precedence, list values, missing keys and
  ``_cnd`` comparators.

What this test file should cover
- A property shown for one selector value is hidden for every other value.
- ``hide`` wins over ``show`` when both match.
- ``@version`` comparisons against the injected type version.
- Visibility explanations used by validation warnings.
"""

from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st

from nodekb.validation.visibility import (
    is_visible,
    json_equal,
    visibility_reason,
    visible_properties,
)

from . import make_property


def test_property_without_display_options_is_always_visible() -> None:
    prop = make_property("url")

    assert is_visible(prop, {})
    assert is_visible(prop, {"anything": 1})


def test_method_shown_only_for_http_resource() -> None:
    method = make_property("method", "options", show={"resource": ["http"]})

    assert is_visible(method, {"resource": "http"})
    assert not is_visible(method, {"resource": "ftp"})
    assert not is_visible(method, {})


def test_show_requires_every_listed_key() -> None:
    text = make_property("text", show={"resource": ["message"], "operation": ["post"]})

    assert is_visible(text, {"resource": "message", "operation": "post"})
    assert not is_visible(text, {"resource": "message", "operation": "update"})
    assert not is_visible(text, {"resource": "message"})


def test_hide_wins_over_show() -> None:
    prop = make_property(
        "body",
        show={"method": ["POST"]},
        hide={"sendBody": [False]},
    )

    assert is_visible(prop, {"method": "POST", "sendBody": True})
    assert not is_visible(prop, {"method": "POST", "sendBody": False})


def test_hide_with_missing_key_does_not_hide() -> None:
    prop = make_property("body", hide={"sendBody": [False]})

    assert is_visible(prop, {})


def test_list_value_matches_when_any_element_matches() -> None:
    prop = make_property("fields", show={"operations": ["update"]})

    assert is_visible(prop, {"operations": ["create", "update"]})
    assert not is_visible(prop, {"operations": ["create", "delete"]})


def test_booleans_never_equal_numbers() -> None:
    prop = make_property("jsonBody", show={"sendBody": [True]})

    assert is_visible(prop, {"sendBody": True})
    assert not is_visible(prop, {"sendBody": 1})
    assert not json_equal(True, 1)
    assert json_equal(1, 1.0)


def test_version_comparators() -> None:
    newer = make_property("options", "collection", show={"@version": [{"_cnd": {"gte": 4}}]})
    legacy = make_property("jsonParameters", "boolean", show={"@version": [1, 2]})

    assert is_visible(newer, {"@version": 4.2})
    assert not is_visible(newer, {"@version": 3})
    assert is_visible(legacy, {"@version": 2})
    assert not is_visible(legacy, {"@version": 4.2})


def test_string_comparators() -> None:
    prop = make_property(
        "model",
        show={"modelId": [{"_cnd": {"startsWith": "gpt-"}}, {"_cnd": {"includes": "mistral"}}]},
    )

    assert is_visible(prop, {"modelId": "gpt-4o"})
    assert is_visible(prop, {"modelId": "my-mistral-model"})
    assert not is_visible(prop, {"modelId": "llama"})
    assert not is_visible(prop, {"modelId": 3})


def test_exists_and_between_comparators() -> None:
    exists = make_property("extra", show={"token": [{"_cnd": {"exists": True}}]})
    between = make_property("batch", show={"size": [{"_cnd": {"between": {"from": 1, "to": 10}}}]})

    assert is_visible(exists, {"token": "abc"})
    assert not is_visible(exists, {"token": None})
    assert not is_visible(exists, {})
    assert is_visible(between, {"size": 5})
    assert not is_visible(between, {"size": 11})


def test_unknown_comparator_never_matches() -> None:
    prop = make_property("x", show={"mode": [{"_cnd": {"someday": "maybe"}}]})

    assert not is_visible(prop, {"mode": "maybe"})


def test_visible_properties_preserves_order() -> None:
    props = (
        make_property("resource", "options"),
        make_property("channel", show={"resource": ["message"]}),
        make_property("userId", show={"resource": ["user"]}),
    )

    names = [prop.name for prop in visible_properties(props, {"resource": "user"})]

    assert names == ["resource", "userId"]


def test_visibility_reason_explains_hidden_property() -> None:
    prop = make_property("channel", show={"resource": ["message"]})

    assert visibility_reason(prop, {"resource": "message"}) is None
    unset = visibility_reason(prop, {})
    other = visibility_reason(prop, {"resource": "user"})

    assert unset is not None and "not set" in unset
    assert other is not None and '"user"' in other


_scalars = st.one_of(st.booleans(), st.integers(-5, 5), st.sampled_from(["a", "b", "c"]))


@settings(max_examples=25, derandomize=True, deadline=None)
@given(
    accepted=st.lists(_scalars, min_size=1, max_size=3),
    selector=_scalars,
    noise=st.dictionaries(st.sampled_from(["x", "y", "z"]), _scalars, max_size=3),
)
def test_show_only_visibility_ignores_unrelated_keys(
    accepted: list[object], selector: object, noise: dict[str, object]
) -> None:
    prop = make_property("target", show={"selector": accepted})
    base = {"selector": selector}

    assert is_visible(prop, base) == is_visible(prop, {**noise, **base})
    assert is_visible(prop, base) == any(json_equal(item, selector) for item in accepted)
