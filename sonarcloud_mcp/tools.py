"""SonarCloud tool catalogue.

Each tool is a :class:`ToolDescriptor` pairing an input schema with two plain
functions: one that turns validated arguments into an :class:`UpstreamRequest`
and one that trims the upstream payload down to what the caller needs.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import InvalidArgument

MAX_PAGE_SIZE = 500
DEFAULT_PAGE_SIZE = 100
DEFAULT_METRIC_KEYS = (
    "sqale_index,coverage,ncloc,reliability_rating,security_rating,"
    "bugs,vulnerabilities,code_smells"
)
DEFAULT_STRATEGY = "leaves"


@dataclass(frozen=True)
class UpstreamRequest:
    """One API call: endpoint path below ``/api`` and its query parameters."""

    endpoint: str
    params: Dict[str, Any] = field(default_factory=dict)


Builder = Callable[[Dict[str, Any]], UpstreamRequest]
Shaper = Callable[[Any, UpstreamRequest], Any]

_JSON_TYPES: Dict[str, Tuple[type, ...]] = {
    "string": (str,),
    "boolean": (bool,),
    "number": (int, float),
}


@dataclass(frozen=True)
class ToolDescriptor:
    """Static description of a tool and the functions bound to it."""

    name: str
    description: str
    input_schema: Dict[str, Any]
    build: Builder
    shape: Shaper

    def definition(self) -> Dict[str, Any]:
        """Return the entry advertised through ``tools/list``."""

        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }

    def validate(self, arguments: Mapping[str, Any]) -> Dict[str, Any]:
        """Check ``arguments`` against the schema, dropping ``null`` values and
        converting numeric values to the declared type.

        Raises:
            InvalidArgument: A required field is missing or a field has the
                wrong type
        """

        present = {key: value for key, value in arguments.items() if value is not None}
        properties = self.input_schema.get("properties", {})

        for name in self.input_schema.get("required", []):
            if name not in present:
                raise InvalidArgument(name, f"Missing required argument: {name}")
            value = present[name]
            if isinstance(value, str) and not value.strip():
                raise InvalidArgument(name, f"{name} must be a non-empty string")

        for name, value in list(present.items()):
            expected = properties.get(name, {}).get("type")
            if expected in _JSON_TYPES:
                present[name] = _coerce(name, expected, value)

        return present

    def build_request(self, arguments: Mapping[str, Any]) -> UpstreamRequest:
        return self.build(self.validate(arguments))


def _coerce(name: str, expected: str, value: Any) -> Any:
    """Return ``value`` as the schema type, converting numbers and numeric strings.

    Numbers are accepted for string fields (pull request ids) and numeric
    strings for number fields. Booleans never stand in for another type.
    """

    if isinstance(value, _JSON_TYPES[expected]) and not (
        expected == "number" and isinstance(value, bool)
    ):
        return value
    if isinstance(value, bool):
        raise InvalidArgument(name, f"{name} must be a {expected}")

    if expected == "string" and isinstance(value, (int, float)):
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return str(value)
    if expected == "number" and isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            number = math.nan
        if math.isfinite(number):
            return int(number) if number.is_integer() else number

    raise InvalidArgument(name, f"{name} must be a {expected}")


# Schema helpers


def _string(description: str, default: Optional[str] = None) -> Dict[str, Any]:
    prop: Dict[str, Any] = {"type": "string", "description": description}
    if default is not None:
        prop["default"] = default
    return prop


def _schema(
    properties: Dict[str, Any], required: Iterable[str] = ()
) -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": "object", "properties": properties}
    required = list(required)
    if required:
        schema["required"] = required
    return schema


_PAGE_SIZE_PROPERTY = {
    "type": "number",
    "description": f"Number of results per page (max {MAX_PAGE_SIZE})",
    "default": DEFAULT_PAGE_SIZE,
}


# Request building helpers


def _copy_present(
    arguments: Mapping[str, Any],
    params: Dict[str, Any],
    names: Iterable[Tuple[str, str]],
) -> Dict[str, Any]:
    """Copy ``argument -> parameter`` pairs only for arguments that were given."""

    for argument, parameter in names:
        if argument in arguments:
            params[parameter] = arguments[argument]
    return params


def page_size(arguments: Mapping[str, Any]) -> int:
    """Effective page size: the tool default when omitted, capped at 500."""

    requested = arguments.get("pageSize", DEFAULT_PAGE_SIZE)
    size = int(requested)
    if size < 1:
        raise InvalidArgument("pageSize", "pageSize must be a positive number")
    return min(size, MAX_PAGE_SIZE)


# Response shaping helpers


def _as_dict(data: Any) -> Dict[str, Any]:
    return data if isinstance(data, dict) else {}


def _pick(data: Mapping[str, Any], *keys: str) -> Dict[str, Any]:
    """Select ``keys`` present in ``data``; absent keys are left out."""

    return {key: data[key] for key in keys if key in data}


def _paging(data: Mapping[str, Any]) -> Dict[str, Any]:
    paging = data.get("paging")
    return paging if isinstance(paging, dict) else {}


def _number_or_zero(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value


# search_issues


def build_search_issues(arguments: Dict[str, Any]) -> UpstreamRequest:
    params = _copy_present(
        arguments,
        {},
        [
            ("project", "componentKeys"),
            ("pullRequest", "pullRequest"),
            ("resolved", "resolved"),
            ("severities", "severities"),
            ("types", "types"),
        ],
    )
    params["ps"] = page_size(arguments)
    return UpstreamRequest("/issues/search", params)


def shape_search_issues(data: Any, request: UpstreamRequest) -> Dict[str, Any]:
    body = _as_dict(data)
    total = body.get("total")
    if total is None:
        total = _paging(body).get("total")
    total = _number_or_zero(total)

    summary: Dict[str, Any] = {
        "total": total,
        "pages": math.ceil(total / request.params["ps"]),
    }
    summary.update(_pick(body, "effortTotal", "debtTotal"))

    result: Dict[str, Any] = {"summary": summary}
    result.update(_pick(body, "issues", "components"))
    return result


# get_measures


def build_get_measures(arguments: Dict[str, Any]) -> UpstreamRequest:
    params: Dict[str, Any] = {
        "component": arguments["component"],
        "metricKeys": arguments.get("metricKeys", DEFAULT_METRIC_KEYS),
        "strategy": arguments.get("strategy", DEFAULT_STRATEGY),
        "ps": MAX_PAGE_SIZE,
    }
    _copy_present(arguments, params, [("pullRequest", "pullRequest")])
    return UpstreamRequest("/measures/component_tree", params)


def shape_get_measures(data: Any, _request: UpstreamRequest) -> Dict[str, Any]:
    body = _as_dict(data)
    summary: Dict[str, Any] = {"total": _number_or_zero(_paging(body).get("total"))}
    summary.update(_pick(body, "baseComponent"))

    result: Dict[str, Any] = {"summary": summary}
    result.update(_pick(body, "components"))
    return result


# list_projects


def build_list_projects(arguments: Dict[str, Any]) -> UpstreamRequest:
    params: Dict[str, Any] = {"ps": page_size(arguments)}
    _copy_present(arguments, params, [("q", "q")])
    return UpstreamRequest("/projects/search", params)


def shape_list_projects(data: Any, _request: UpstreamRequest) -> Dict[str, Any]:
    body = _as_dict(data)
    paging = _paging(body)
    result: Dict[str, Any] = {
        "summary": {
            "total": _number_or_zero(paging.get("total")),
            "pageSize": _number_or_zero(paging.get("pageSize")),
        }
    }
    if "components" in body:
        result["projects"] = body["components"]
    return result


# get_pull_requests


def build_get_pull_requests(arguments: Dict[str, Any]) -> UpstreamRequest:
    return UpstreamRequest(
        "/project_pull_requests/list", {"project": arguments["project"]}
    )


def shape_get_pull_requests(data: Any, _request: UpstreamRequest) -> Dict[str, Any]:
    return _pick(_as_dict(data), "pullRequests")


# change_issue_status


def build_change_issue_status(arguments: Dict[str, Any]) -> UpstreamRequest:
    return UpstreamRequest(
        "/issues/do_transition",
        {"issue": arguments["key"], "transition": arguments["transition"]},
    )


def shape_change_issue_status(
    data: Any, _request: UpstreamRequest
) -> Dict[str, Any]:
    result: Dict[str, Any] = {"success": True}
    result.update(_pick(_as_dict(data), "issue", "transitions"))
    return result


# list_languages


def build_list_languages(arguments: Dict[str, Any]) -> UpstreamRequest:
    return UpstreamRequest("/languages/list", _copy_present(arguments, {}, [("q", "q")]))


def shape_list_languages(data: Any, _request: UpstreamRequest) -> Dict[str, Any]:
    return _pick(_as_dict(data), "languages")


# search_metrics


def build_search_metrics(arguments: Dict[str, Any]) -> UpstreamRequest:
    params: Dict[str, Any] = {"ps": page_size(arguments)}
    _copy_present(arguments, params, [("q", "q")])
    return UpstreamRequest("/metrics/search", params)


def shape_search_metrics(data: Any, _request: UpstreamRequest) -> Dict[str, Any]:
    # /metrics/search reports paging at the top level rather than under "paging"
    body = _as_dict(data)
    result: Dict[str, Any] = {
        "summary": {
            "total": _number_or_zero(body.get("total")),
            "pageSize": _number_or_zero(body.get("ps")),
        }
    }
    result.update(_pick(body, "metrics"))
    return result


# get_quality_gate_status


def build_get_quality_gate_status(arguments: Dict[str, Any]) -> UpstreamRequest:
    params: Dict[str, Any] = {"projectKey": arguments["projectKey"]}
    _copy_present(
        arguments, params, [("branch", "branch"), ("pullRequest", "pullRequest")]
    )
    return UpstreamRequest("/qualitygates/project_status", params)


def shape_get_quality_gate_status(
    data: Any, _request: UpstreamRequest
) -> Dict[str, Any]:
    return _pick(_as_dict(data), "projectStatus")


# list_quality_gates


def build_list_quality_gates(_arguments: Dict[str, Any]) -> UpstreamRequest:
    return UpstreamRequest("/qualitygates/list")


def shape_list_quality_gates(data: Any, _request: UpstreamRequest) -> Dict[str, Any]:
    body = _as_dict(data)
    result: Dict[str, Any] = {}
    if "qualitygates" in body:
        result["qualityGates"] = body["qualitygates"]
    result.update(_pick(body, "default"))
    return result


# show_rule


def build_show_rule(arguments: Dict[str, Any]) -> UpstreamRequest:
    return UpstreamRequest("/rules/show", {"key": arguments["key"]})


def shape_show_rule(data: Any, _request: UpstreamRequest) -> Dict[str, Any]:
    return _pick(_as_dict(data), "rule")


# list_rule_repositories


def build_list_rule_repositories(arguments: Dict[str, Any]) -> UpstreamRequest:
    params = _copy_present(arguments, {}, [("language", "language"), ("q", "q")])
    return UpstreamRequest("/rules/repositories", params)


def shape_list_rule_repositories(
    data: Any, _request: UpstreamRequest
) -> Dict[str, Any]:
    return _pick(_as_dict(data), "repositories")


# get_raw_source


def build_get_raw_source(arguments: Dict[str, Any]) -> UpstreamRequest:
    params: Dict[str, Any] = {"key": arguments["key"]}
    _copy_present(
        arguments, params, [("branch", "branch"), ("pullRequest", "pullRequest")]
    )
    return UpstreamRequest("/sources/raw", params)


def shape_get_raw_source(data: Any, _request: UpstreamRequest) -> Any:
    """Return text bodies untouched so source formatting survives."""

    return data


TOOLS: Tuple[ToolDescriptor, ...] = (
    ToolDescriptor(
        name="search_issues",
        description="Search for issues in SonarCloud projects",
        input_schema=_schema(
            {
                "project": _string("Project key to search in"),
                "pullRequest": _string("Pull request ID to filter issues"),
                "resolved": {
                    "type": "boolean",
                    "description": "Filter by resolved status",
                },
                "severities": _string(
                    "Comma-separated list of severities (MAJOR, MINOR, etc.)"
                ),
                "types": _string(
                    "Comma-separated list of types (BUG, VULNERABILITY, CODE_SMELL)"
                ),
                "pageSize": _PAGE_SIZE_PROPERTY,
            }
        ),
        build=build_search_issues,
        shape=shape_search_issues,
    ),
    ToolDescriptor(
        name="get_measures",
        description="Get component measures/metrics",
        input_schema=_schema(
            {
                "component": _string("Component key (project, file, etc.)"),
                "pullRequest": _string("Pull request ID"),
                "metricKeys": _string(
                    "Comma-separated metric keys (sqale_index, coverage, ncloc, etc.)",
                    default=DEFAULT_METRIC_KEYS,
                ),
                "strategy": _string(
                    "Component tree strategy (leaves, children)",
                    default=DEFAULT_STRATEGY,
                ),
            },
            required=["component"],
        ),
        build=build_get_measures,
        shape=shape_get_measures,
    ),
    ToolDescriptor(
        name="list_projects",
        description="List projects in the organization",
        input_schema=_schema(
            {
                "q": _string("Search query for project names"),
                "pageSize": _PAGE_SIZE_PROPERTY,
            }
        ),
        build=build_list_projects,
        shape=shape_list_projects,
    ),
    ToolDescriptor(
        name="get_pull_requests",
        description="List pull requests for a project",
        input_schema=_schema({"project": _string("Project key")}, required=["project"]),
        build=build_get_pull_requests,
        shape=shape_get_pull_requests,
    ),
    ToolDescriptor(
        name="change_issue_status",
        description="Change the status of a SonarQube issue",
        input_schema=_schema(
            {
                "key": _string("Issue key"),
                "transition": _string(
                    "Transition to apply (confirm, falsepositive, wontfix, reopen)"
                ),
            },
            required=["key", "transition"],
        ),
        build=build_change_issue_status,
        shape=shape_change_issue_status,
    ),
    ToolDescriptor(
        name="list_languages",
        description="List all programming languages supported",
        input_schema=_schema({"q": _string("Pattern to match language keys/names")}),
        build=build_list_languages,
        shape=shape_list_languages,
    ),
    ToolDescriptor(
        name="search_metrics",
        description="Search for available metrics",
        input_schema=_schema(
            {
                "q": _string("Search query for metric names"),
                "pageSize": _PAGE_SIZE_PROPERTY,
            }
        ),
        build=build_search_metrics,
        shape=shape_search_metrics,
    ),
    ToolDescriptor(
        name="get_quality_gate_status",
        description="Get Quality Gate status for a project",
        input_schema=_schema(
            {
                "projectKey": _string("Project key"),
                "branch": _string("Branch name"),
                "pullRequest": _string("Pull request ID"),
            },
            required=["projectKey"],
        ),
        build=build_get_quality_gate_status,
        shape=shape_get_quality_gate_status,
    ),
    ToolDescriptor(
        name="list_quality_gates",
        description="List all quality gates",
        input_schema=_schema({}),
        build=build_list_quality_gates,
        shape=shape_list_quality_gates,
    ),
    ToolDescriptor(
        name="show_rule",
        description="Show detailed information about a rule",
        input_schema=_schema(
            {"key": _string("Rule key (e.g. typescript:S1481)")}, required=["key"]
        ),
        build=build_show_rule,
        shape=shape_show_rule,
    ),
    ToolDescriptor(
        name="list_rule_repositories",
        description="List rule repositories",
        input_schema=_schema(
            {
                "language": _string("Language key to filter by"),
                "q": _string("Search query"),
            }
        ),
        build=build_list_rule_repositories,
        shape=shape_list_rule_repositories,
    ),
    ToolDescriptor(
        name="get_raw_source",
        description="Get source code as raw text",
        input_schema=_schema(
            {
                "key": _string("File key"),
                "branch": _string("Branch name"),
                "pullRequest": _string("Pull request ID"),
            },
            required=["key"],
        ),
        build=build_get_raw_source,
        shape=shape_get_raw_source,
    ),
)

TOOL_REGISTRY: Mapping[str, ToolDescriptor] = MappingProxyType(
    {tool.name: tool for tool in TOOLS}
)


def tool_definitions() -> List[Dict[str, Any]]:
    """Return the catalogue published to clients at startup."""

    return [tool.definition() for tool in TOOLS]
