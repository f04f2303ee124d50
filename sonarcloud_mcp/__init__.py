"""SonarCloud Model Context Protocol server."""

__version__ = "1.0.0"
