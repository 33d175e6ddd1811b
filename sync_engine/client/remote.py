"""HTTP client for the remote record API."""

import asyncio
from typing import Dict, Any, List, Optional

import aiohttp
import structlog

from ..framework.config import RemoteApiConfig, EndpointConfig
from ..utils.errors import TransportError, RemoteError

RETRYABLE_STATUSES = {429, 502, 503, 504}


class RemoteDataClient:
    """aiohttp client speaking the ``{success, records, hasMore, cursor?}`` protocol."""

    def __init__(self, config: RemoteApiConfig, session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self.logger = structlog.get_logger("remote-client")
        self.session = session
        self._owns_session = session is None

    async def start(self) -> None:
        """Open the HTTP session."""
        if self.session:
            return

        connector = aiohttp.TCPConnector(limit=self.config.max_connections)
        self.session = aiohttp.ClientSession(
            connector=connector,
            timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds)
        )
        self._owns_session = True
        self.logger.info("Remote client started", base_url=self.config.base_url)

    async def stop(self) -> None:
        """Close the HTTP session if this client opened it."""
        if self.session and self._owns_session:
            await self.session.close()
            self.logger.info("Remote client stopped")
        self.session = None

    def _url(self, path: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _timeout(self, endpoint: EndpointConfig) -> aiohttp.ClientTimeout:
        seconds = self.config.aggregate_timeout_seconds if endpoint.aggregate else self.config.timeout_seconds
        return aiohttp.ClientTimeout(total=seconds)

    async def fetch_page(self, endpoint: EndpointConfig, params: Dict[str, Any]) -> Dict[str, Any]:
        """GET one page of an endpoint."""
        query = {k: _query_value(v) for k, v in params.items() if v is not None}
        return await self._request("GET", endpoint, endpoint.path, params=query)

    async def publish(self, endpoint: EndpointConfig, updates: List[Dict[str, Any]]) -> Dict[str, Any]:
        """POST a batch of status updates."""
        if not endpoint.publish_path:
            raise RemoteError(f"Endpoint '{endpoint.name}' does not accept updates", endpoint=endpoint.name)
        return await self._request("POST", endpoint, endpoint.publish_path, json={"updates": updates})

    async def _request(self, method: str, endpoint: EndpointConfig, path: str, **kwargs) -> Dict[str, Any]:
        if not self.session:
            await self.start()

        url = self._url(path)
        try:
            async with self.session.request(method, url, timeout=self._timeout(endpoint), **kwargs) as response:
                payload = await _read_payload(response, endpoint.records_key)
                status = response.status
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"{method} {endpoint.name} timed out",
                transport_code="timeout",
                endpoint=endpoint.name,
            ) from e
        except aiohttp.ClientError as e:
            raise TransportError(
                f"{method} {endpoint.name} failed: {e}",
                transport_code="network",
                endpoint=endpoint.name,
            ) from e

        if status in RETRYABLE_STATUSES:
            raise TransportError(
                _error_message(payload, f"HTTP {status}"),
                transport_code="throttled" if status == 429 else "unavailable",
                endpoint=endpoint.name,
                status=status,
            )

        if status >= 400 or payload.get("error") or payload.get("success") is False:
            self.logger.error(
                "Remote API returned an error",
                endpoint=endpoint.name,
                status=status,
                error=payload.get("error"),
            )
            raise RemoteError(
                _error_message(payload, f"HTTP {status}"),
                status=status,
                endpoint=endpoint.name,
                details={"payload": payload},
            )

        return payload


async def _read_payload(response: aiohttp.ClientResponse, records_key: str) -> Dict[str, Any]:
    try:
        payload = await response.json(content_type=None)
    except ValueError:
        text = await response.text()
        return {"error": text or f"HTTP {response.status}"} if response.status >= 400 else {}
    if isinstance(payload, dict):
        return payload
    return {records_key: payload} if isinstance(payload, list) else {}


def _error_message(payload: Dict[str, Any], fallback: str) -> str:
    return payload.get("error") or payload.get("message") or fallback


def _query_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple, set)):
        return ",".join(str(v) for v in value)
    return value
