"""Async HTTP client for the calculator Thing."""

import base64
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from wotcalc.core.errors import (
    RepresentationDecodeError,
    RepresentationEncodeError,
    UnknownRepresentation,
    WotCalcError,
)
from wotcalc.core.representations import JSON, RepresentationRegistry

logger = logging.getLogger(__name__)


def _get_default_url() -> str:
    """Get the Thing URL from config, with fallback to the stock defaults."""
    try:
        from wotcalc.config.loader import load_config
        config = load_config()
        return f"http://127.0.0.1:{config.server.port}/{config.thing.name}"
    except WotCalcError:
        return "http://127.0.0.1:3000/http-calculator-content-negotiation"


class ClientError(WotCalcError):
    """Exception for client-side errors (connection, timeout, HTTP status, decoding).

    Attributes:
        status: HTTP status code if the server answered with an error.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ThingClient:
    """Async HTTP client for a content-negotiating calculator Thing.

    Usage:
        async with ThingClient("http://127.0.0.1:3000/calc") as client:
            td = await client.get_description(accept="application/cbor")
            await client.invoke_action("add", 10, content_type="application/json",
                                       accept="application/cbor")
            async for value in client.observe_property("result"):
                print(value)
    """

    def __init__(
        self,
        url: str | None = None,
        timeout: float = 30.0,
        registry: RepresentationRegistry | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            url: Thing root URL (http://host:port/<thing name>). If None, uses config default.
            timeout: Request timeout in seconds (observation streams have none).
            registry: Representations the client can decode. Defaults to JSON and CBOR.
        """
        self._url = (url or _get_default_url()).rstrip("/")
        self._timeout = timeout
        self._registry = registry or RepresentationRegistry.default()
        self._client: httpx.AsyncClient | None = None
        logger.debug("ThingClient initialized: url=%s, timeout=%s", self._url, timeout)

    @property
    def url(self) -> str:
        return self._url

    async def __aenter__(self) -> "ThingClient":
        """Enter async context, create httpx client."""
        self._client = httpx.AsyncClient(timeout=self._timeout)
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context, close httpx client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise ClientError("Client not initialized. Use 'async with' context manager.")
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        headers: dict[str, str],
        content: bytes | None = None,
    ) -> Any:
        """Send one request and decode the response in its declared representation.

        Raises:
            ClientError: On connection error, timeout, error status, or undecodable body.
        """
        client = self._require_client()
        url = f"{self._url}/{path}" if path else self._url
        logger.debug("%s %s headers=%s", method, url, headers)
        try:
            response = await client.request(method, url, headers=headers, content=content)
        except httpx.ConnectError as e:
            logger.warning("Connection failed to %s: %s", url, e)
            raise ClientError(f"Connection failed: {e}") from e
        except httpx.TimeoutException as e:
            logger.warning("Request timed out: %s %s", method, url)
            raise ClientError(f"Request timed out: {e}") from e

        if response.status_code != 200:
            raise ClientError(
                f"{method} {path or '/'} failed: {response.status_code} {response.text[:200]}",
                status=response.status_code,
            )
        return self._decode(response.headers.get("content-type"), response.content)

    def _decode(self, content_type: str | None, payload: bytes) -> Any:
        try:
            return self._registry.decode(content_type, payload)
        except (UnknownRepresentation, RepresentationDecodeError) as e:
            raise ClientError(f"Cannot decode response: {e.message}") from e

    async def get_description(self, accept: str = JSON) -> dict[str, Any]:
        """Fetch the Thing Description."""
        return await self._request("GET", "", {"Accept": accept})

    async def read_property(self, name: str, accept: str = JSON) -> Any:
        """Read a property value once."""
        return await self._request("GET", f"properties/{name}", {"Accept": accept})

    async def invoke_action(
        self,
        name: str,
        operand: int | float,
        content_type: str = JSON,
        accept: str = JSON,
    ) -> Any:
        """Invoke an action with a numeric operand and return the new accumulator value."""
        try:
            payload = self._registry.encode(content_type, operand)
        except (UnknownRepresentation, RepresentationEncodeError) as e:
            raise ClientError(f"Cannot encode operand: {e.message}") from e
        return await self._request(
            "POST",
            f"actions/{name}",
            {"Content-Type": content_type, "Accept": accept},
            content=payload,
        )

    async def add(self, operand: int | float, content_type: str = JSON, accept: str = JSON) -> Any:
        return await self.invoke_action("add", operand, content_type, accept)

    async def subtract(
        self, operand: int | float, content_type: str = JSON, accept: str = JSON
    ) -> Any:
        return await self.invoke_action("subtract", operand, content_type, accept)

    def observe_property(self, name: str, accept: str = JSON) -> AsyncIterator[Any]:
        """Yield each new value of an observable property."""
        return self._observe(f"properties/{name}", accept)

    def subscribe_event(self, name: str, accept: str = JSON) -> AsyncIterator[Any]:
        """Yield the data of each emitted event."""
        return self._observe(f"events/{name}", accept)

    async def _observe(self, path: str, accept: str) -> AsyncIterator[Any]:
        """Open an observation stream and yield decoded notifications.

        Raises:
            ClientError: On connection error or non-200 response.
        """
        client = self._require_client()
        url = f"{self._url}/{path}"
        headers = {"Accept": accept, "Observe": "0"}
        logger.debug("Opening observation stream: url=%s", url)

        try:
            # Use timeout=None for long-lived SSE stream
            async with client.stream("GET", url, headers=headers, timeout=None) as response:
                if response.status_code != 200:
                    body = await response.aread()
                    raise ClientError(
                        f"Observation failed: {response.status_code} "
                        f"{body.decode('utf-8', errors='replace')[:200]}",
                        status=response.status_code,
                    )

                try:
                    representation = self._registry.get(response.headers.get("x-content-type"))
                except UnknownRepresentation as e:
                    raise ClientError(f"Cannot decode notifications: {e.message}") from e

                # Parse SSE format: data: fields, blank line delimiter
                data_lines: list[str] = []
                async for line in response.aiter_lines():
                    if not line:
                        if data_lines:
                            data = "\n".join(data_lines)
                            if representation.textual:
                                payload = data.encode("utf-8")
                            else:
                                payload = base64.b64decode(data)
                            yield self._decode(representation.content_type, payload)
                        data_lines = []
                        continue

                    if line.startswith("data:"):
                        data_lines.append(line[5:].strip())
                    # id:, event: and comment lines (heartbeats) carry nothing to decode

        except httpx.ConnectError as e:
            raise ClientError(f"Connection failed: {e}") from e
        except httpx.ReadError as e:
            raise ClientError(f"Observation stream closed: {e}") from e
