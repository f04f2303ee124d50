"""Exception types raised by the SonarCloud MCP server."""

from __future__ import annotations

from typing import Iterable, List, Optional


class SonarCloudError(Exception):
    """Base class for failures reported back to the MCP client."""


class ConfigurationMissing(SonarCloudError):
    """Required connection settings could not be resolved from any source."""

    def __init__(self, fields: Iterable[str], hints: Optional[dict] = None):
        self.fields: List[str] = list(fields)
        hints = hints or {}
        described = ", ".join(
            f"{name} ({hints[name]})" if name in hints else name for name in self.fields
        )
        super().__init__(f"Missing required configuration: {described}")


class UnknownTool(SonarCloudError):
    """The requested tool name is not in the registry."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class InvalidArgument(SonarCloudError):
    """A tool argument is missing or has the wrong type."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class UpstreamHttpError(SonarCloudError):
    """SonarCloud answered with a non-2xx status."""

    def __init__(self, status: int, message: str):
        self.status = status
        self.message = message
        super().__init__(f"SonarCloud API Error: {status} - {message}")


class TransportError(SonarCloudError):
    """No response was received from SonarCloud."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"SonarCloud API Error: Unknown - {message}")
