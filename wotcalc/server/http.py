"""Pure asyncio HTTP server for the calculator Thing.

This module frames HTTP/1.1 requests for the Dispatcher and writes its
results back. It uses only asyncio streams.

Request pipeline:
    1. Read request line and headers (bounded sizes)
    2. Acquire the connection semaphore, read the body
    3. Dispatch; ThingError becomes its mapped status
    4. One-shot result -> response, connection closed
       Observation grant -> semaphore released, Server-Sent Events stream

Observation streams:
    Each change is sent as one SSE event named after the affordance. The
    payload is the encoded value itself for textual representations (JSON)
    and base64 of the encoded value for binary ones (CBOR); the negotiated
    media type is announced once in the X-Content-Type response header.
    The stream ends when the client closes its side of the connection.

Example usage:
    server = ThingServer(dispatcher, watcher, port=3000)
    await server.start()
    try:
        await server.serve_forever()
    finally:
        await server.close()
"""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any

from wotcalc.core.errors import (
    HTTP_STATUS,
    MethodNotAllowedError,
    RepresentationEncodeError,
    ThingError,
    WotCalcError,
)
from wotcalc.core.representations import Representation
from wotcalc.server.dispatcher import Dispatcher, ObservationGrant, ThingRequest
from wotcalc.server.watch import StateWatcher

logger = logging.getLogger(__name__)

# Constants
DEFAULT_PORT = 3000
BIND_HOST = "127.0.0.1"
MAX_BODY_SIZE = 65_536  # Operands are single numbers
READ_TIMEOUT = 30.0

# HTTP header limits (DoS protection)
MAX_HEADERS_COUNT = 128
MAX_HEADER_NAME_LEN = 1024
MAX_HEADER_VALUE_LEN = 8192
MAX_TOTAL_HEADERS_SIZE = 32 * 1024
MAX_REQUEST_LINE_LEN = 8192

STATUS_MESSAGES = {
    200: "OK",
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
    406: "Not Acceptable",
    415: "Unsupported Media Type",
    500: "Internal Server Error",
}


class HttpParseError(WotCalcError):
    """Raised when HTTP request parsing fails."""


async def _readline(reader: asyncio.StreamReader, what: str) -> bytes:
    try:
        return await asyncio.wait_for(reader.readline(), timeout=READ_TIMEOUT)
    except TimeoutError:
        raise HttpParseError(f"{what} timeout") from None


async def read_http_request_headers(
    reader: asyncio.StreamReader,
) -> tuple[str, str, dict[str, str]]:
    """Read only request line and headers (not body).

    Args:
        reader: The asyncio StreamReader to read from.

    Returns:
        Tuple of (method, path, headers) with lowercase header names.

    Raises:
        HttpParseError: If the request line or headers are malformed.
    """
    request_line = await _readline(reader, "Request")
    if not request_line:
        raise HttpParseError("Empty request")

    if len(request_line) > MAX_REQUEST_LINE_LEN:
        raise HttpParseError(f"Request line too long: {len(request_line)} > {MAX_REQUEST_LINE_LEN}")

    # Parse request line: "GET /calc/properties/result HTTP/1.1\r\n"
    try:
        request_line_str = request_line.decode("utf-8").strip()
    except UnicodeDecodeError as e:
        raise HttpParseError(f"Invalid request encoding: {e}") from e
    parts = request_line_str.split(" ")
    if len(parts) != 3:
        raise HttpParseError(f"Invalid request line: {request_line_str}")
    method, path, _version = parts

    headers: dict[str, str] = {}
    total_headers_size = 0

    while True:
        header_line = await _readline(reader, "Header read")
        if not header_line or header_line in (b"\r\n", b"\n"):
            break  # End of headers

        total_headers_size += len(header_line)
        if total_headers_size > MAX_TOTAL_HEADERS_SIZE:
            raise HttpParseError(
                f"Total headers size exceeds limit: {total_headers_size} > {MAX_TOTAL_HEADERS_SIZE}"
            )

        try:
            header_str = header_line.decode("utf-8").strip()
        except UnicodeDecodeError as e:
            raise HttpParseError(f"Invalid header encoding: {e}") from e

        if ":" not in header_str:
            continue  # Skip malformed headers

        name, value = header_str.split(":", 1)
        name = name.strip()
        value = value.strip()

        if len(name) > MAX_HEADER_NAME_LEN:
            raise HttpParseError(f"Header name too long: {len(name)} > {MAX_HEADER_NAME_LEN}")
        if len(value) > MAX_HEADER_VALUE_LEN:
            raise HttpParseError(f"Header value too long: {len(value)} > {MAX_HEADER_VALUE_LEN}")
        if len(headers) >= MAX_HEADERS_COUNT:
            raise HttpParseError(f"Too many headers: exceeds limit of {MAX_HEADERS_COUNT}")

        headers[name.lower()] = value

    return method, path, headers


async def read_http_body(
    reader: asyncio.StreamReader,
    headers: dict[str, str],
) -> bytes:
    """Read the raw request body based on the Content-Length header.

    Raises:
        HttpParseError: If the body is too large, incomplete, or the length invalid.
    """
    content_length_str = headers.get("content-length", "0")
    try:
        content_length = int(content_length_str)
    except ValueError as e:
        raise HttpParseError(f"Invalid Content-Length: {content_length_str}") from e

    if content_length < 0 or content_length > MAX_BODY_SIZE:
        raise HttpParseError(f"Invalid body size: {content_length} (max {MAX_BODY_SIZE})")

    if content_length == 0:
        return b""

    try:
        return await asyncio.wait_for(reader.readexactly(content_length), timeout=READ_TIMEOUT)
    except TimeoutError:
        raise HttpParseError("Body read timeout") from None
    except asyncio.IncompleteReadError as e:
        raise HttpParseError(
            f"Incomplete body: expected {content_length}, got {len(e.partial)}"
        ) from e


async def send_http_response(
    writer: asyncio.StreamWriter,
    status: int,
    body: bytes = b"",
    content_type: str | None = None,
    extra_headers: dict[str, str] | None = None,
) -> None:
    """Send a complete HTTP response and mark the connection for closing."""
    status_message = STATUS_MESSAGES.get(status, "Unknown")
    headers = [f"HTTP/1.1 {status} {status_message}"]
    if content_type is not None:
        headers.append(f"Content-Type: {content_type}")
    for name, value in (extra_headers or {}).items():
        headers.append(f"{name}: {value}")
    headers += [
        f"Content-Length: {len(body)}",
        "Connection: close",
        "",
        "",
    ]
    writer.write("\r\n".join(headers).encode("utf-8") + body)
    await writer.drain()


async def _send_error(
    writer: asyncio.StreamWriter,
    status: int,
    message: str,
    extra_headers: dict[str, str] | None = None,
) -> None:
    await send_http_response(
        writer, status, message.encode("utf-8"), "text/plain; charset=utf-8", extra_headers
    )


# =============================================================================
# SSE (Server-Sent Events) Functions
# =============================================================================


def encode_notification(representation: Representation, value: Any) -> str:
    """Encode an observed value as SSE data text.

    Raises:
        RepresentationEncodeError: If the value cannot be encoded.
    """
    payload = representation.encode(value)
    if representation.textual:
        return payload.decode("utf-8")
    return base64.b64encode(payload).decode("ascii")


async def write_sse_event(
    writer: asyncio.StreamWriter,
    event_type: str,
    data: str,
    seq: int,
) -> None:
    """Write a single SSE event (id, event name, data lines, blank line)."""
    lines = [f"id: {seq}", f"event: {event_type}"]
    lines += [f"data: {line}" for line in data.split("\n")]
    lines += ["", ""]
    writer.write("\n".join(lines).encode("utf-8"))
    await writer.drain()


async def _wait_for_disconnect(reader: asyncio.StreamReader) -> None:
    """Return once the peer has closed its side of the connection."""
    try:
        while await reader.read(1024):
            pass
    except (ConnectionResetError, OSError):
        pass


async def handle_observation(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    grant: ObservationGrant,
    watcher: StateWatcher,
    heartbeat: float = 15.0,
) -> None:
    """Stream changes of an observed value until the client disconnects.

    The baseline is captured before the response headers are sent. Idle
    streams receive an SSE comment every `heartbeat` seconds. A value that
    fails to encode is logged and skipped; the stream stays open.

    The connection is NOT held under the request semaphore (it is long-lived).
    """
    representation = grant.representation
    subscription = watcher.subscribe(grant.key)
    disconnected = asyncio.ensure_future(_wait_for_disconnect(reader))
    seq = 0

    try:
        sse_headers = [
            "HTTP/1.1 200 OK",
            "Content-Type: text/event-stream; charset=utf-8",
            f"X-Content-Type: {representation.content_type}",
            "Cache-Control: no-cache",
            "Connection: keep-alive",
            "X-Accel-Buffering: no",  # Disable proxy buffering
            "",
            "",
        ]
        writer.write("\r\n".join(sse_headers).encode("utf-8"))
        await writer.drain()

        while True:
            getter = asyncio.ensure_future(subscription.next())
            done, _ = await asyncio.wait(
                {getter, disconnected},
                timeout=heartbeat,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if disconnected in done:
                getter.cancel()
                break
            if getter not in done:
                getter.cancel()
                writer.write(b": ping\n\n")
                await writer.drain()
                continue

            value = getter.result()
            try:
                data = encode_notification(representation, value)
            except RepresentationEncodeError as e:
                logger.warning("Skipping '%s' notification: %s", grant.key, e.message)
                continue
            seq += 1
            await write_sse_event(writer, grant.key, data, seq)
    except (ConnectionResetError, BrokenPipeError, OSError):
        pass  # Client disconnected
    finally:
        watcher.unsubscribe(subscription)
        disconnected.cancel()
        try:
            writer.close()
            await writer.wait_closed()
        except Exception as close_err:
            logger.debug("Stream close failed (already closed?): %s", close_err)


# =============================================================================
# Server
# =============================================================================


class ThingServer:
    """HTTP front end for a Dispatcher.

    Attributes:
        host: Bind address.
        port: Bind port; 0 picks a free port, readable from `address` after start().
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        watcher: StateWatcher,
        host: str = BIND_HOST,
        port: int = DEFAULT_PORT,
        max_concurrent: int = 32,
        heartbeat: float = 15.0,
    ) -> None:
        self.host = host
        self.port = port
        self._dispatcher = dispatcher
        self._watcher = watcher
        self._heartbeat = heartbeat
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._server: asyncio.Server | None = None
        self._connections: set[asyncio.Task[Any]] = set()

    @property
    def address(self) -> tuple[str, int]:
        """Bound (host, port)."""
        if self._server is None or not self._server.sockets:
            return (self.host, self.port)
        sockname = self._server.sockets[0].getsockname()
        return (sockname[0], sockname[1])

    @property
    def url(self) -> str:
        host, port = self.address
        return f"http://{host}:{port}/{self._dispatcher.thing_name}"

    async def start(self) -> None:
        """Bind and start accepting connections."""
        self._server = await asyncio.start_server(
            self._client_handler,
            host=self.host,
            port=self.port,
        )
        logger.info("Thing server running at %s", self.url)

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        assert self._server is not None
        await self._server.serve_forever()

    async def close(self) -> None:
        """Stop accepting, end open streams, and stop observation polling."""
        if self._server is not None:
            self._server.close()
        for task in list(self._connections):
            task.cancel()
        if self._connections:
            await asyncio.gather(*self._connections, return_exceptions=True)
        await self._watcher.close()
        if self._server is not None:
            await self._server.wait_closed()
            self._server = None
        logger.info("Thing server stopped")

    async def _client_handler(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._connections.add(task)
        try:
            await self._handle_connection(reader, writer)
        finally:
            if task is not None:
                self._connections.discard(task)

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        grant: ObservationGrant | None = None
        try:
            # Stage 1: request line + headers (bounded, outside the semaphore)
            method, path, headers = await read_http_request_headers(reader)

            # Stage 2: body and dispatch under the semaphore
            async with self._semaphore:
                body = await read_http_body(reader, headers)
                request = ThingRequest(method=method, path=path, headers=headers, body=body)
                try:
                    result = await self._dispatcher.dispatch(request)
                except ThingError as e:
                    logger.debug("%s %s -> %d %s", method, path, e.http_status, e.message)
                    extra = None
                    if isinstance(e, MethodNotAllowedError):
                        extra = {"Allow": e.allowed}
                    await _send_error(writer, e.http_status, e.message, extra)
                    return

                if isinstance(result, ObservationGrant):
                    grant = result
                else:
                    await send_http_response(
                        writer,
                        HTTP_STATUS[result.status],
                        result.payload,
                        result.representation.content_type,
                    )

        except HttpParseError as e:
            await _send_error(writer, 400, e.message)
        except (ConnectionResetError, BrokenPipeError):
            logger.debug("Client disconnected before the response was sent")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Unexpected error handling connection: %s", e, exc_info=True)
            try:
                await _send_error(writer, 500, f"Server error: {type(e).__name__}")
            except Exception as send_err:
                logger.debug("Failed to send error response (client disconnected?): %s", send_err)
        finally:
            if grant is None:
                try:
                    writer.close()
                    await writer.wait_closed()
                except Exception as close_err:
                    logger.debug("Connection close failed (already closed?): %s", close_err)

        if grant is not None:
            await handle_observation(reader, writer, grant, self._watcher, self._heartbeat)


async def run_http_server(
    server: ThingServer,
    started_event: asyncio.Event | None = None,
) -> None:
    """Run the server until cancelled.

    Args:
        server: The configured server.
        started_event: Set once the server is bound and listening.
    """
    await server.start()
    if started_event:
        started_event.set()
    try:
        await server.serve_forever()
    finally:
        await server.close()
