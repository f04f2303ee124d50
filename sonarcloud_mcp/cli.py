"""Command-line interface for the SonarCloud MCP server."""

import argparse
import asyncio
import logging
import sys
from typing import List, Mapping, Optional, TextIO

from . import __version__ as PACKAGE_VERSION
from .config import Configuration, resolve_config
from .dispatcher import Dispatcher
from .errors import ConfigurationMissing
from .gateway import UpstreamGateway
from .mcp import MCPServer

# stdout carries the protocol, so logs stay on stderr
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


class CLI:
    """Parses arguments, resolves configuration and runs the stdio server."""

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        stdin: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ):
        """Initialize the CLI.

        Args:
            environ: Environment mapping, defaults to ``os.environ``
            stdin: Stream used for interactive prompts
            stderr: Stream used for prompts and diagnostics
        """
        self.environ = environ
        self.stdin = stdin
        self.stderr = stderr or sys.stderr

    def parse_args(self, args: List[str]) -> argparse.Namespace:
        """Parse command line arguments.

        Args:
            args: Command line arguments

        Returns:
            Parsed arguments
        """
        parser = self._build_parser()
        return parser.parse_args(args)

    @staticmethod
    def _build_parser() -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="sonarcloud-mcp",
            description="SonarCloud MCP server - exposes SonarCloud to AI agents",
        )
        parser.add_argument(
            "--token", help="SonarCloud token (defaults to SONARCLOUD_TOKEN)"
        )
        parser.add_argument(
            "--org",
            "--organization",
            dest="organization",
            help="SonarCloud organization (defaults to SONARCLOUD_ORGANIZATION)",
        )
        parser.add_argument(
            "--url",
            help="SonarCloud/SonarQube base URL (defaults to https://sonarcloud.io)",
        )
        parser.add_argument(
            "--config",
            dest="config_path",
            help="Path to a JSON or YAML file with token/organization/url",
        )
        parser.add_argument(
            "--log-level",
            default="INFO",
            help="Log level written to stderr (e.g., DEBUG, INFO)",
        )
        parser.add_argument(
            "--version", action="version", version=f"%(prog)s {PACKAGE_VERSION}"
        )
        return parser

    def resolve_config(self, args: argparse.Namespace) -> Configuration:
        cli_values = {
            "token": args.token,
            "organization": args.organization,
            "url": args.url,
        }
        return resolve_config(
            cli_values,
            args.config_path,
            environ=self.environ,
            stdin=self.stdin,
            stderr=self.stderr,
        )

    @staticmethod
    def build_server(config: Configuration) -> MCPServer:
        return MCPServer(Dispatcher(UpstreamGateway(config)))

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI with the given arguments.

        Args:
            args: Command line arguments, defaults to sys.argv[1:]

        Returns:
            Exit code
        """
        if args is None:
            args = sys.argv[1:]

        try:
            parsed_args = self.parse_args(args)
        except SystemExit as exc:
            return exc.code if isinstance(exc.code, int) else 1

        try:
            log_level = self._resolve_log_level(parsed_args.log_level)
        except ValueError as exc:
            print(f"Error: {exc}", file=self.stderr)
            return 1
        logging.getLogger().setLevel(log_level)

        try:
            config = self.resolve_config(parsed_args)
        except ConfigurationMissing as exc:
            print(f"Error: {exc}", file=self.stderr)
            return 1

        server = self.build_server(config)
        logger.info("SonarCloud MCP server %s running on stdio", PACKAGE_VERSION)
        logger.info("Connected to organization: %s", config.organization)
        logger.info("Using URL: %s", config.url)

        try:
            asyncio.run(server.serve_stdio())
        except KeyboardInterrupt:
            logger.info("MCP server stopped")
        except (OSError, ValueError) as exc:
            print(f"Failed to start SonarCloud MCP server: {exc}", file=self.stderr)
            return 1
        return 0

    @staticmethod
    def _resolve_log_level(value: str) -> int:
        if not value:
            raise ValueError("Log level cannot be empty")

        normalized = value.upper()
        if normalized == "WARN":
            normalized = "WARNING"

        level = logging.getLevelName(normalized)
        if isinstance(level, str):  # logging returns level name when unknown
            raise ValueError(
                "Invalid log level. Choose from CRITICAL, ERROR, WARNING, INFO, DEBUG, or NOTSET."
            )

        return level


def main() -> int:
    """Entry point for the CLI."""
    cli = CLI()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
