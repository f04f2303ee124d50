"""Tests for the tool registry, request builders and response shapers."""

import pytest

from sonarcloud_mcp.errors import InvalidArgument
from sonarcloud_mcp.tools import (
    DEFAULT_METRIC_KEYS,
    TOOL_REGISTRY,
    UpstreamRequest,
    tool_definitions,
)


def _build(name, arguments):
    return TOOL_REGISTRY[name].build_request(arguments)


def _shape(name, data, request=None):
    request = request or UpstreamRequest("/unused", {"ps": 100})
    return TOOL_REGISTRY[name].shape(data, request)


def test_registry_lists_every_tool():
    assert list(TOOL_REGISTRY) == [
        "search_issues",
        "get_measures",
        "list_projects",
        "get_pull_requests",
        "change_issue_status",
        "list_languages",
        "search_metrics",
        "get_quality_gate_status",
        "list_quality_gates",
        "show_rule",
        "list_rule_repositories",
        "get_raw_source",
    ]


def test_registry_cannot_be_mutated():
    with pytest.raises(TypeError):
        TOOL_REGISTRY["extra"] = TOOL_REGISTRY["show_rule"]  # type: ignore[index]


def test_tool_definitions_expose_input_schema():
    definitions = {item["name"]: item for item in tool_definitions()}
    measures = definitions["get_measures"]
    assert measures["description"] == "Get component measures/metrics"
    assert measures["inputSchema"]["required"] == ["component"]
    assert measures["inputSchema"]["properties"]["strategy"]["default"] == "leaves"
    assert "required" not in definitions["list_quality_gates"]["inputSchema"]


def test_search_issues_maps_arguments():
    request = _build(
        "search_issues",
        {
            "project": "my_project",
            "pullRequest": "42",
            "resolved": False,
            "severities": "MAJOR,CRITICAL",
            "types": "BUG",
            "pageSize": 50,
        },
    )
    assert request.endpoint == "/issues/search"
    assert request.params == {
        "componentKeys": "my_project",
        "pullRequest": "42",
        "resolved": False,
        "severities": "MAJOR,CRITICAL",
        "types": "BUG",
        "ps": 50,
    }


def test_search_issues_omits_absent_optional_fields():
    request = _build("search_issues", {"project": "p", "types": None})
    assert request.params == {"componentKeys": "p", "ps": 100}


@pytest.mark.parametrize("tool", ["search_issues", "list_projects", "search_metrics"])
def test_page_size_is_capped(tool):
    assert _build(tool, {"pageSize": 10000}).params["ps"] == 500
    assert _build(tool, {}).params["ps"] == 100


def test_page_size_must_be_positive():
    with pytest.raises(InvalidArgument) as excinfo:
        _build("search_issues", {"pageSize": 0})
    assert excinfo.value.field == "pageSize"


def test_page_size_must_be_a_number():
    with pytest.raises(InvalidArgument) as excinfo:
        _build("list_projects", {"pageSize": "lots"})
    assert "pageSize must be a number" in str(excinfo.value)

    with pytest.raises(InvalidArgument):
        _build("list_projects", {"pageSize": True})


def test_numeric_page_size_strings_are_accepted():
    assert _build("list_projects", {"pageSize": "50"}).params["ps"] == 50
    assert _build("search_metrics", {"pageSize": " 900 "}).params["ps"] == 500


def test_numeric_pull_request_ids_become_strings():
    request = _build("get_raw_source", {"key": "proj:a.py", "pullRequest": 42})
    assert request.params["pullRequest"] == "42"

    request = _build("search_issues", {"pullRequest": 7.0})
    assert request.params["pullRequest"] == "7"


def test_booleans_are_not_converted_to_strings():
    with pytest.raises(InvalidArgument) as excinfo:
        _build("show_rule", {"key": True})
    assert "key must be a string" in str(excinfo.value)


def test_get_measures_defaults():
    request = _build("get_measures", {"component": "my_project"})
    assert request.endpoint == "/measures/component_tree"
    assert request.params == {
        "component": "my_project",
        "metricKeys": DEFAULT_METRIC_KEYS,
        "strategy": "leaves",
        "ps": 500,
    }


def test_get_measures_overrides_and_pull_request():
    request = _build(
        "get_measures",
        {
            "component": "c",
            "metricKeys": "coverage",
            "strategy": "children",
            "pullRequest": "7",
        },
    )
    assert request.params["metricKeys"] == "coverage"
    assert request.params["strategy"] == "children"
    assert request.params["pullRequest"] == "7"


@pytest.mark.parametrize(
    "tool,arguments,missing",
    [
        ("get_measures", {}, "component"),
        ("change_issue_status", {"key": "AX-1"}, "transition"),
        ("get_quality_gate_status", {"branch": "main"}, "projectKey"),
        ("get_pull_requests", {}, "project"),
        ("show_rule", {"key": None}, "key"),
        ("get_raw_source", {}, "key"),
    ],
)
def test_missing_required_field(tool, arguments, missing):
    with pytest.raises(InvalidArgument) as excinfo:
        _build(tool, arguments)
    assert excinfo.value.field == missing
    assert missing in str(excinfo.value)


def test_blank_required_field_is_rejected():
    with pytest.raises(InvalidArgument) as excinfo:
        _build("show_rule", {"key": "   "})
    assert "non-empty" in str(excinfo.value)


def test_change_issue_status_maps_key_to_issue():
    request = _build(
        "change_issue_status", {"key": "AX-1", "transition": "falsepositive"}
    )
    assert request.endpoint == "/issues/do_transition"
    assert request.params == {"issue": "AX-1", "transition": "falsepositive"}


def test_quality_gate_status_optional_fields():
    request = _build("get_quality_gate_status", {"projectKey": "p", "branch": "dev"})
    assert request.endpoint == "/qualitygates/project_status"
    assert request.params == {"projectKey": "p", "branch": "dev"}


def test_list_quality_gates_sends_no_parameters():
    request = _build("list_quality_gates", {})
    assert request == UpstreamRequest("/qualitygates/list", {})


def test_list_rule_repositories_and_languages():
    assert _build("list_rule_repositories", {"language": "py"}).params == {
        "language": "py"
    }
    assert _build("list_languages", {"q": "java"}).params == {"q": "java"}
    assert _build("list_languages", {}).params == {}


def test_raw_source_request():
    request = _build("get_raw_source", {"key": "proj:src/a.py", "pullRequest": "3"})
    assert request.endpoint == "/sources/raw"
    assert request.params == {"key": "proj:src/a.py", "pullRequest": "3"}


def test_shape_search_issues_computes_pages():
    result = _shape(
        "search_issues",
        {"total": 250, "issues": [{"key": "i1"}], "components": [], "effortTotal": 30},
        UpstreamRequest("/issues/search", {"ps": 100}),
    )
    assert result["summary"] == {"total": 250, "pages": 3, "effortTotal": 30}
    assert result["issues"] == [{"key": "i1"}]
    assert result["components"] == []


def test_shape_search_issues_falls_back_to_paging_total():
    result = _shape(
        "search_issues",
        {"paging": {"total": 5}, "issues": []},
        UpstreamRequest("/issues/search", {"ps": 2}),
    )
    assert result["summary"]["total"] == 5
    assert result["summary"]["pages"] == 3


def test_shape_measures_defaults_total():
    result = _shape("get_measures", {"baseComponent": {"key": "p"}, "components": []})
    assert result == {
        "summary": {"total": 0, "baseComponent": {"key": "p"}},
        "components": [],
    }


def test_shape_list_projects_without_paging():
    result = _shape("list_projects", {"components": [{"key": "p"}]})
    assert result == {"summary": {"total": 0, "pageSize": 0}, "projects": [{"key": "p"}]}


def test_shape_search_metrics_reads_top_level_paging():
    result = _shape("search_metrics", {"metrics": [], "total": 12, "ps": 100})
    assert result == {"summary": {"total": 12, "pageSize": 100}, "metrics": []}


def test_shape_quality_gates_renames_field():
    result = _shape("list_quality_gates", {"qualitygates": [{"id": 1}], "default": 1})
    assert result == {"qualityGates": [{"id": 1}], "default": 1}


def test_shape_change_issue_status():
    result = _shape(
        "change_issue_status", {"issue": {"key": "AX-1"}, "transitions": ["reopen"]}
    )
    assert result == {
        "success": True,
        "issue": {"key": "AX-1"},
        "transitions": ["reopen"],
    }


@pytest.mark.parametrize(
    "tool,field",
    [
        ("get_quality_gate_status", "projectStatus"),
        ("show_rule", "rule"),
        ("list_languages", "languages"),
        ("list_rule_repositories", "repositories"),
        ("get_pull_requests", "pullRequests"),
    ],
)
def test_pass_through_shapers_select_one_field(tool, field):
    payload = {field: {"value": 1}, "unrelated": True}
    assert _shape(tool, payload) == {field: {"value": 1}}


def test_raw_source_shaper_keeps_text():
    assert _shape("get_raw_source", "print('hi')\n") == "print('hi')\n"
