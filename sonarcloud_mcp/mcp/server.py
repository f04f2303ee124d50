"""Model Context Protocol server for the SonarCloud tools.

JSON-RPC 2.0 messages arrive on stdin either one per line or behind a
``Content-Length`` header; each answer is written back to stdout in the framing
its request used. Requests are answered one at a time in arrival order.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import sys
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from .. import __version__ as PACKAGE_VERSION
from ..dispatcher import Dispatcher

logger = logging.getLogger(__name__)

SERVER_NAME = "sonarcloud-mcp-server"

NEWLINE = "newline"
CONTENT_LENGTH = "content-length"
_CONTENT_LENGTH_PREFIX = b"content-length:"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32000

SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2025-03-26", "2024-11-05")

# RFC 5424 severities used by MCP logging/setLevel
_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "notice": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "alert": logging.CRITICAL,
    "emergency": logging.CRITICAL,
}

Handler = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


@dataclass
class MCPError(Exception):
    """A JSON-RPC failure reported back to the client as an ``error`` member."""

    code: int
    message: str
    data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        return payload


class MCPServer:
    """Answers MCP requests, delegating every tool call to a :class:`Dispatcher`."""

    def __init__(self, dispatcher: Dispatcher):
        self.dispatcher = dispatcher
        self._shutdown_event: asyncio.Event | None = None
        self._handlers: Dict[str, Handler] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "logging/setLevel": self._set_log_level,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
            "prompts/list": self._list_prompts,
            "shutdown": self._shutdown,
        }

    async def handle_message(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Answer one decoded JSON-RPC message.

        Returns ``None`` for notifications. Protocol violations raise
        :class:`MCPError`; the caller turns them into error responses.
        """

        if message.get("jsonrpc") != "2.0":
            raise MCPError(INVALID_REQUEST, "Invalid JSON-RPC version")
        method = message.get("method")
        if not isinstance(method, str):
            raise MCPError(INVALID_REQUEST, "Method must be a string")

        message_id = message.get("id")
        handler = self._handlers.get(method)
        if handler is None:
            if message_id is None:
                logger.debug("Ignoring notification %s", method)
                return None
            raise MCPError(METHOD_NOT_FOUND, f"Method not found: {method}")

        params = message.get("params") or {}
        if not isinstance(params, dict):
            raise MCPError(INVALID_PARAMS, "Params must be an object")

        logger.info("MCP request %s (id=%s)", method, message_id)
        try:
            result = await handler(params)
        except MCPError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("MCP handler for %s failed", method)
            raise MCPError(INTERNAL_ERROR, str(exc)) from exc

        if message_id is None:
            return None
        return {"jsonrpc": "2.0", "id": message_id, "result": result}

    async def _initialize(self, params: Dict[str, Any]) -> Dict[str, Any]:
        requested = params.get("protocolVersion")
        if requested is None:
            version = SUPPORTED_PROTOCOL_VERSIONS[0]
        elif requested in SUPPORTED_PROTOCOL_VERSIONS:
            version = requested
        else:
            logger.warning("Client requested unsupported protocol %r", requested)
            raise MCPError(
                INVALID_PARAMS,
                "Unsupported protocol version",
                {"supportedVersions": list(SUPPORTED_PROTOCOL_VERSIONS)},
            )

        client = params.get("clientInfo")
        if isinstance(client, dict):
            logger.info("MCP client %s %s", client.get("name"), client.get("version"))

        return {
            "protocolVersion": version,
            "serverInfo": {"name": SERVER_NAME, "version": PACKAGE_VERSION},
            "capabilities": {
                "tools": {"listChanged": False},
                "prompts": {"listChanged": False},
                "logging": {},
            },
            "instructions": (
                "Query SonarCloud issues, measures, quality gates, rules and "
                "source files. Call tools/list for the available tools."
            ),
        }

    async def _ping(self, _params: Dict[str, Any]) -> Dict[str, Any]:
        return {}

    async def _set_log_level(self, params: Dict[str, Any]) -> Dict[str, Any]:
        level = params.get("level")
        resolved = None
        if isinstance(level, str):
            resolved = _LOG_LEVELS.get(level.strip().lower())
        if resolved is None:
            raise MCPError(
                INVALID_PARAMS,
                f"Unsupported log level: {level}",
                {"levels": list(_LOG_LEVELS)},
            )
        logging.getLogger().setLevel(resolved)
        return {}

    async def _list_tools(self, _params: Dict[str, Any]) -> Dict[str, Any]:
        return {"tools": self.dispatcher.tool_definitions()}

    async def _call_tool(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Run a tool. Tool failures are content, not JSON-RPC errors."""

        name = params.get("name")
        if not isinstance(name, str) or not name.strip():
            raise MCPError(INVALID_PARAMS, "name must be a non-empty string")
        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        elif not isinstance(arguments, dict):
            raise MCPError(INVALID_PARAMS, "arguments must be an object")
        return await self.dispatcher.dispatch(name.strip(), arguments)

    async def _list_prompts(self, _params: Dict[str, Any]) -> Dict[str, Any]:
        return {"prompts": []}

    async def _shutdown(self, _params: Dict[str, Any]) -> Dict[str, Any]:
        event = self._shutdown_event
        if event is None or event.is_set():
            logger.warning("Shutdown requested outside a running session")
            return {"shuttingDown": False}
        logger.info("Shutdown requested by client")
        event.set()
        return {"shuttingDown": True}

    async def serve_stdio(self, *, shutdown_event: asyncio.Event | None = None) -> None:
        """Serve requests from this process's stdin until EOF or shutdown."""

        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        await loop.connect_read_pipe(
            lambda: asyncio.StreamReaderProtocol(reader), sys.stdin
        )
        transport, protocol = await loop.connect_write_pipe(
            lambda: asyncio.StreamReaderProtocol(asyncio.StreamReader()), sys.stdout
        )
        writer = asyncio.StreamWriter(transport, protocol, reader, loop)

        logger.info("SonarCloud MCP server %s listening on stdio", PACKAGE_VERSION)
        await self.serve_streams(reader, writer, shutdown_event=shutdown_event)

    async def serve_streams(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        shutdown_event: asyncio.Event | None = None,
    ) -> None:
        """Answer requests from ``reader`` until EOF or a shutdown request."""

        self._shutdown_event = shutdown_event or asyncio.Event()
        answering = asyncio.ensure_future(self._answer_requests(reader, writer))
        stopping = asyncio.ensure_future(self._shutdown_event.wait())
        try:
            done, _pending = await asyncio.wait(
                {answering, stopping}, return_when=asyncio.FIRST_COMPLETED
            )
            if answering in done:
                answering.result()
        finally:
            for task in (answering, stopping):
                task.cancel()
            await asyncio.gather(answering, stopping, return_exceptions=True)
            writer.close()
            with contextlib.suppress(OSError):
                await writer.wait_closed()
            self._shutdown_event = None
            logger.info("SonarCloud MCP server stopped")

    async def _answer_requests(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        while True:
            try:
                raw, framing = await self._read_transport_message(reader)
            except MCPError as exc:
                logger.warning("Rejected client frame: %s", exc.message)
                await self._send(writer, _error_response(None, exc), NEWLINE)
                continue
            if raw is None:
                logger.info("Client closed the stream")
                return

            response = await self._answer(raw)
            if response is not None:
                await self._send(writer, response, framing)
            if self._shutdown_event is not None and self._shutdown_event.is_set():
                return

    async def _answer(self, raw: str) -> Optional[Dict[str, Any]]:
        logger.debug("Received %s", raw)
        try:
            message = json.loads(raw)
        except json.JSONDecodeError as exc:
            error = MCPError(PARSE_ERROR, "Parse error", {"detail": str(exc)})
            return _error_response(None, error)
        if not isinstance(message, dict):
            error = MCPError(INVALID_REQUEST, "Request must be an object")
            return _error_response(None, error)

        try:
            return await self.handle_message(message)
        except MCPError as exc:
            return _error_response(message.get("id"), exc)

    async def _send(
        self, writer: asyncio.StreamWriter, message: Dict[str, Any], framing: str
    ) -> None:
        writer.write(self._encode_message(message, framing))
        await writer.drain()

    @staticmethod
    async def _read_transport_message(
        reader: asyncio.StreamReader,
    ) -> Tuple[Optional[str], str]:
        """Read the next message and report the framing it arrived in.

        ``(None, framing)`` means the client is gone, including when the stream
        ends inside a ``Content-Length`` body. A frame that is not UTF-8 is
        consumed whole and reported as a parse error.
        """

        line = await reader.readline()
        while not line.strip():
            if not line:
                return None, NEWLINE
            line = await reader.readline()

        if not line.lower().startswith(_CONTENT_LENGTH_PREFIX):
            return _decode_frame(line), NEWLINE

        try:
            length = int(line[len(_CONTENT_LENGTH_PREFIX):].strip())
        except ValueError:
            length = -1
        if length < 0:
            raise MCPError(
                INVALID_REQUEST,
                "Invalid Content-Length header",
                {"detail": line.decode("utf-8", errors="replace").strip()},
            )

        # remaining headers end at the first blank line
        header = await reader.readline()
        while header.strip():
            header = await reader.readline()
        if not header:
            return None, CONTENT_LENGTH

        try:
            body = await reader.readexactly(length)
        except asyncio.IncompleteReadError as exc:
            logger.warning(
                "Stream ended after %d of %d body bytes", len(exc.partial), length
            )
            return None, CONTENT_LENGTH
        return _decode_frame(body), CONTENT_LENGTH

    @staticmethod
    def _encode_message(message: Dict[str, Any], framing: str) -> bytes:
        body = json.dumps(message, ensure_ascii=False).encode("utf-8")
        if framing == CONTENT_LENGTH:
            return b"Content-Length: %d\r\n\r\n" % len(body) + body
        return body + b"\n"


def _decode_frame(frame: bytes) -> str:
    try:
        return frame.decode("utf-8").strip()
    except UnicodeDecodeError as exc:
        raise MCPError(PARSE_ERROR, "Parse error", {"detail": str(exc)}) from exc


def _error_response(message_id: Any, error: MCPError) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": message_id, "error": error.to_dict()}
