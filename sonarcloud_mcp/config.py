"""Configuration handling for the SonarCloud MCP server.

Settings come from four places, highest priority first: command line flags,
environment variables, a JSON or YAML config file, and interactive prompts.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, TextIO

import yaml

from .errors import ConfigurationMissing

logger = logging.getLogger(__name__)

DEFAULT_URL = "https://sonarcloud.io"

FIELDS = ("token", "organization", "url")
REQUIRED_FIELDS = ("token", "organization")

# Primary name first, legacy alias second.
ENV_VARS = {
    "token": ("SONARCLOUD_TOKEN", "SONARQUBE_TOKEN"),
    "organization": ("SONARCLOUD_ORGANIZATION", "SONARQUBE_ORG"),
    "url": ("SONARCLOUD_URL", "SONARQUBE_URL"),
}

FILE_KEYS = {
    "token": ("token",),
    "organization": ("organization", "org"),
    "url": ("url", "baseUrl"),
}

PROMPTS = {
    "token": "SonarCloud Token: ",
    "organization": "SonarCloud Organization: ",
}

MISSING_HINTS = {
    "token": "set SONARCLOUD_TOKEN or pass --token",
    "organization": "set SONARCLOUD_ORGANIZATION or pass --org",
}


@dataclass(frozen=True)
class Configuration:
    """Resolved connection settings, immutable once built."""

    token: str
    organization: str
    url: str = DEFAULT_URL


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def read_environment(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Collect settings from environment variables, preferring primary names."""

    environ = os.environ if environ is None else environ
    values: Dict[str, str] = {}
    for field, names in ENV_VARS.items():
        for name in names:
            value = _clean(environ.get(name))
            if value:
                values[field] = value
                break
    return values


def load_config_file(path: str) -> Dict[str, str]:
    """Read settings from ``path``.

    Errors are logged and yield an empty mapping so the remaining sources
    are still consulted.
    """

    try:
        with open(path, "r", encoding="utf-8") as handle:
            if path.lower().endswith((".yml", ".yaml")):
                raw = yaml.safe_load(handle)
            else:
                raw = json.load(handle)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        logger.error("Failed to read config file %s: %s", path, exc)
        return {}

    if not isinstance(raw, dict):
        logger.error("Failed to read config file %s: expected an object", path)
        return {}

    values: Dict[str, str] = {}
    for field, keys in FILE_KEYS.items():
        for key in keys:
            value = _clean(raw.get(key))
            if value:
                values[field] = value
                break
    logger.debug("Loaded config file %s (fields=%s)", path, sorted(values))
    return values


def merge_sources(*sources: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """Merge partial settings; earlier sources win field by field."""

    merged: Dict[str, str] = {}
    for source in sources:
        if not source:
            continue
        for field in FIELDS:
            if field in merged:
                continue
            value = _clean(source.get(field))
            if value:
                merged[field] = value
    return merged


def missing_fields(values: Mapping[str, Any]) -> List[str]:
    return [field for field in REQUIRED_FIELDS if not _clean(values.get(field))]


def prompt_for_missing(
    values: Mapping[str, str],
    *,
    stdin: TextIO,
    stderr: TextIO,
) -> Dict[str, str]:
    """Ask for each missing required field.

    Prompts go to ``stderr`` because stdout carries the protocol stream.
    """

    completed = dict(values)
    for field in missing_fields(values):
        stderr.write(PROMPTS[field])
        stderr.flush()
        answer = _clean(stdin.readline())
        if answer:
            completed[field] = answer
    return completed


def build_configuration(values: Mapping[str, str]) -> Configuration:
    """Turn merged settings into a Configuration or raise ConfigurationMissing."""

    missing = missing_fields(values)
    if missing:
        raise ConfigurationMissing(missing, MISSING_HINTS)

    url = (_clean(values.get("url")) or DEFAULT_URL).rstrip("/")
    return Configuration(
        token=values["token"].strip(),
        organization=values["organization"].strip(),
        url=url or DEFAULT_URL,
    )


def resolve_config(
    cli_values: Optional[Mapping[str, Any]] = None,
    config_path: Optional[str] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
    stdin: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
) -> Configuration:
    """Resolve the effective configuration from every available source."""

    file_values = load_config_file(config_path) if config_path else {}
    merged = merge_sources(cli_values, read_environment(environ), file_values)

    stdin = stdin or sys.stdin
    if missing_fields(merged) and stdin.isatty():
        logger.debug("Prompting for missing settings: %s", missing_fields(merged))
        merged = prompt_for_missing(merged, stdin=stdin, stderr=stderr or sys.stderr)

    return build_configuration(merged)
