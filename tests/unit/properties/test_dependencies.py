"""Property dependency analysis and visibility impact tests."""

from __future__ import annotations

from nodekb.domain.models import NodeProperty
from nodekb.properties.dependencies import analyze_dependencies, visibility_impact

from . import build, http_request_schema, prop


def _mode_schema() -> tuple[NodeProperty, ...]:
    return build(
        prop(
            "mode",
            "options",
            default="a",
            options=[{"name": "A", "value": "a"}, {"name": "B", "value": "b"}],
        ),
        prop("legacy", displayOptions={"show": {"@version": [1]}}),
        prop("extra", displayOptions={"hide": {"mode": ["b"]}}),
        prop("limit", "number", displayOptions={"show": {"/mode": [{"_cnd": {"eq": "a"}}]}}),
    )


def test_controllers_map_to_their_dependents() -> None:
    analysis = analyze_dependencies(http_request_schema())

    assert dict(analysis.controllers) == {
        "sendBody": ("jsonBody",),
        "sendHeaders": ("headerParameters",),
    }
    assert analysis.total_properties == 8
    assert analysis.independent == 6


def test_hide_version_and_comparator_conditions_are_reported() -> None:
    payload = analyze_dependencies(_mode_schema()).to_dict()

    assert payload["controlling_properties"] == {
        "mode": ["extra", "limit"],
        "@version": ["legacy"],
    }
    dependencies = payload["dependencies"]
    assert isinstance(dependencies, list)
    assert dependencies[1] == {
        "name": "extra",
        "display_name": "Extra",
        "depends_on": ["mode"],
        "hide_when": {"mode": ["b"]},
    }
    assert dependencies[2]["show_when"] == {"mode": [{"_cnd": {"eq": "a"}}]}


def test_impact_compares_config_against_defaults() -> None:
    impact = visibility_impact(http_request_schema(), {"sendBody": True}, node_version=4.2)

    assert impact.newly_visible == ("jsonBody",)
    assert impact.newly_hidden == ()
    assert "jsonBody" in impact.visible
    assert impact.hidden == {
        "headerParameters": "only shown when sendHeaders is true (sendHeaders is not set)"
    }


def test_switching_a_selector_hides_dependents() -> None:
    impact = visibility_impact(_mode_schema(), {"mode": "b"})

    assert impact.newly_hidden == ("extra", "limit")
    assert impact.hidden["extra"] == 'hidden when mode is "b"'
    assert "legacy" in impact.visible


def test_node_version_is_not_overridden_by_config() -> None:
    impact = visibility_impact(_mode_schema(), {"@version": 1}, node_version=2)

    assert "legacy" in impact.hidden
    assert "legacy" not in impact.newly_hidden


def test_name_shown_by_any_variant_counts_as_visible() -> None:
    schema = build(
        prop("mode", "options", default="a", options=[{"name": "A", "value": "a"}]),
        prop("value", displayOptions={"show": {"mode": ["a"]}}),
        prop("value", "number", displayOptions={"show": {"mode": ["b"]}}),
    )

    impact = visibility_impact(schema, {"mode": "b"})

    assert impact.visible == ("mode", "value")
    assert impact.hidden == {}
    assert (impact.newly_visible, impact.newly_hidden) == ((), ())
