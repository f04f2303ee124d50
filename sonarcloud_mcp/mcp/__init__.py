"""Model Context Protocol transport for the SonarCloud tools."""

from .server import MCPError, MCPServer

__all__ = ["MCPError", "MCPServer"]
