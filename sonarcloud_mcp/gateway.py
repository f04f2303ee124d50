"""Authenticated access to the SonarCloud Web API."""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, Optional

import httpx

from .config import Configuration
from .errors import TransportError, UpstreamHttpError
from .tools import UpstreamRequest

logger = logging.getLogger(__name__)


class UpstreamGateway:
    """Performs exactly one GET per request; nothing is retried.

    Args:
        config: Resolved connection settings
        transport: Optional httpx transport, mainly for tests
    """

    def __init__(
        self,
        config: Configuration,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._transport = transport

    def endpoint_url(self, endpoint: str) -> str:
        return f"{self.config.url.rstrip('/')}/api{endpoint}"

    def auth_headers(self) -> Dict[str, str]:
        credentials = base64.b64encode(f"{self.config.token}:".encode("utf-8"))
        return {"Authorization": f"Basic {credentials.decode('ascii')}"}

    def query_params(self, request: UpstreamRequest) -> Dict[str, Any]:
        params = dict(request.params)
        if self.config.organization:
            params["organization"] = self.config.organization
        return params

    async def fetch(self, request: UpstreamRequest) -> Any:
        """Call the API and return decoded JSON, or text for non-JSON bodies.

        Raises:
            UpstreamHttpError: SonarCloud returned a non-2xx status
            TransportError: No response was received
        """

        url = self.endpoint_url(request.endpoint)
        params = self.query_params(request)
        logger.debug("GET %s params=%s", url, params)

        async with httpx.AsyncClient(transport=self._transport) as client:
            try:
                response = await client.get(
                    url, params=params, headers=self.auth_headers()
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                message = _error_message(exc.response) or _first_line(exc)
                logger.warning("SonarCloud returned %s for %s: %s", status, url, message)
                raise UpstreamHttpError(status, message) from exc
            except httpx.RequestError as exc:
                message = _first_line(exc) or type(exc).__name__
                logger.warning("SonarCloud request to %s failed: %s", url, message)
                raise TransportError(message) from exc

        return _decode_body(response)


def _decode_body(response: httpx.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    if "json" in content_type.lower():
        try:
            return response.json()
        except ValueError:
            logger.debug("Response declared JSON but did not parse; returning text")
    return response.text


def _error_message(response: httpx.Response) -> Optional[str]:
    """Return ``errors[0].msg`` from a SonarCloud error body, if any."""

    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    errors = body.get("errors")
    if not isinstance(errors, list) or not errors:
        return None
    first = errors[0]
    if isinstance(first, dict) and first.get("msg"):
        return str(first["msg"])
    return None


def _first_line(exc: Exception) -> str:
    text = str(exc).strip()
    return text.splitlines()[0] if text else ""
