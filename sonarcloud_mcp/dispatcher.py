"""Routes tool calls to SonarCloud and wraps every outcome in a result envelope."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional, Protocol

from .errors import SonarCloudError, UnknownTool
from .tools import TOOL_REGISTRY, ToolDescriptor, UpstreamRequest

logger = logging.getLogger(__name__)

ERROR_PREFIX = "Error: "


class Gateway(Protocol):  # pylint: disable=too-few-public-methods
    """Anything able to execute an :class:`UpstreamRequest`."""

    async def fetch(self, request: UpstreamRequest) -> Any:
        ...


def text_envelope(text: str) -> Dict[str, Any]:
    return {"content": [{"type": "text", "text": text}]}


def error_envelope(message: str) -> Dict[str, Any]:
    return text_envelope(f"{ERROR_PREFIX}{message}")


def render_result(result: Any) -> str:
    """Plain strings pass through untouched; everything else becomes JSON."""

    if isinstance(result, str):
        return result
    return json.dumps(result, indent=2, ensure_ascii=False)


class Dispatcher:
    """Single entry point for tool invocations.

    Holds no per-call state, so concurrent ``dispatch`` calls never interfere.
    """

    def __init__(
        self,
        gateway: Gateway,
        registry: Optional[Mapping[str, ToolDescriptor]] = None,
    ):
        self.gateway = gateway
        self.registry = TOOL_REGISTRY if registry is None else registry

    def tool_definitions(self):
        return [tool.definition() for tool in self.registry.values()]

    async def dispatch(
        self, name: str, arguments: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        """Run tool ``name`` and return its envelope.

        Never raises: failures come back as an envelope whose text starts
        with ``"Error: "``.
        """

        logger.info("Tool call %s", name)
        try:
            result = await self._invoke(name, arguments or {})
        except SonarCloudError as exc:
            logger.info("Tool call %s failed: %s", name, exc)
            return error_envelope(str(exc))
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unhandled exception in tool %s", name)
            return error_envelope(str(exc) or type(exc).__name__)

        return text_envelope(render_result(result))

    async def _invoke(self, name: str, arguments: Mapping[str, Any]) -> Any:
        tool = self.registry.get(name)
        if tool is None:
            raise UnknownTool(name)

        request = tool.build_request(arguments)
        logger.debug("Tool %s -> %s %s", name, request.endpoint, request.params)
        data = await self.gateway.fetch(request)
        return tool.shape(data, request)
