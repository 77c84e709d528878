"""Tests for the HTTP server, run on an ephemeral port and driven over real sockets.

Tests for:
- Negotiated one-shot requests through ThingClient
- Status codes for routing, method, negotiation and payload errors
- Observation streams (SSE framing, base64 for CBOR, heartbeats, teardown)
- Request framing limits
"""

import asyncio
import base64
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import cbor2
import httpx
import pytest

from wotcalc.client import ClientError, ThingClient
from wotcalc.config.schema import Config, ObservationConfig, ServerConfig, ThingConfig
from wotcalc.core.representations import CBOR, JSON
from wotcalc.server.bootstrap import ThingComponents, bootstrap_thing
from wotcalc.server.http import MAX_BODY_SIZE

INTERVAL = 0.05


@asynccontextmanager
async def running_thing(
    heartbeat: float = 15.0,
    max_concurrent: int = 32,
) -> AsyncIterator[ThingComponents]:
    """Start a Thing server on a free port and stop it afterwards."""
    config = Config(
        server=ServerConfig(port=0, max_concurrent=max_concurrent),
        thing=ThingConfig(description_path=None),
        observation=ObservationConfig(interval=INTERVAL, heartbeat=heartbeat),
    )
    components = bootstrap_thing(config, persist=False)
    await components.server.start()
    try:
        yield components
    finally:
        await asyncio.wait_for(components.server.close(), timeout=5.0)


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    elapsed = 0.0
    while not predicate():
        if elapsed >= timeout:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)
        elapsed += 0.01


class TestOneShot:
    """Tests for negotiated reads and invocations through ThingClient."""

    @pytest.mark.asyncio
    async def test_description_in_both_representations(self):
        async with running_thing() as thing:
            async with ThingClient(thing.server.url) as client:
                as_json = await client.get_description(accept=JSON)
                as_cbor = await client.get_description(accept=CBOR)

        assert as_json == as_cbor
        assert any(
            form["contentType"] == CBOR and form["response"]["contentType"] == JSON
            for form in as_json["actions"]["add"]["forms"]
        )

    @pytest.mark.asyncio
    async def test_add_json_accept_cbor_then_read_cbor(self):
        async with running_thing() as thing:
            async with ThingClient(thing.server.url) as client:
                added = await client.invoke_action("add", 10, content_type=JSON, accept=CBOR)
                result = await client.read_property("result", accept=CBOR)

        assert added == 10
        assert result == 10

    @pytest.mark.asyncio
    async def test_add_subtract_mixed_representations(self):
        async with running_thing() as thing:
            async with ThingClient(thing.server.url) as client:
                assert await client.read_property("lastChange") == ""
                await client.add(10, content_type=CBOR, accept=JSON)
                first_change = await client.read_property("lastChange", accept=CBOR)
                assert await client.subtract(5, content_type=JSON, accept=CBOR) == 5
                second_change = await client.read_property("lastChange", accept=JSON)

        assert second_change > first_change
        assert first_change.endswith("Z")

    @pytest.mark.asyncio
    async def test_zero_operand(self):
        async with running_thing() as thing:
            async with ThingClient(thing.server.url) as client:
                assert await client.add(0) == 0
                assert await client.read_property("lastChange") != ""


class TestErrorStatus:
    """Tests for error status codes on the wire."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("method", "path", "headers", "body", "status"),
        [
            ("GET", "/nope", {}, b"", 404),
            ("GET", "/{thing}/properties/unknown", {}, b"", 404),
            ("POST", "/{thing}/properties/result", {}, b"", 405),
            ("GET", "/{thing}/properties/result", {"Accept": "application/xml"}, b"", 406),
            ("POST", "/{thing}/actions/add", {"Content-Type": "text/plain"}, b"10", 415),
            (
                "POST",
                "/{thing}/actions/add",
                {"Content-Type": "text/plain", "Accept": "text/plain"},
                b"10",
                415,
            ),
            ("POST", "/{thing}/actions/add", {"Content-Type": JSON}, b"not json", 400),
            ("POST", "/{thing}/actions/add", {"Content-Type": JSON}, b"", 400),
            ("GET", "/{thing}/events/update", {}, b"", 400),
        ],
    )
    async def test_status(self, method, path, headers, body, status):
        async with running_thing() as thing:
            host, port = thing.server.address
            url = f"http://{host}:{port}" + path.format(thing=thing.config.thing.name)
            async with httpx.AsyncClient() as client:
                response = await client.request(method, url, headers=headers, content=body)

            assert response.status_code == status
            assert thing.store.snapshot().value == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("method", "path", "allowed"),
        [
            ("POST", "/{thing}", "GET"),
            ("POST", "/{thing}/properties/result", "GET"),
            ("GET", "/{thing}/actions/add", "POST"),
        ],
    )
    async def test_method_not_allowed_names_allowed_method(self, method, path, allowed):
        async with running_thing() as thing:
            host, port = thing.server.address
            url = f"http://{host}:{port}" + path.format(thing=thing.config.thing.name)
            async with httpx.AsyncClient() as client:
                response = await client.request(method, url)

        assert response.status_code == 405
        assert response.headers["allow"] == allowed

    @pytest.mark.asyncio
    async def test_out_of_range_operand_keeps_json_reads_working(self):
        async with running_thing() as thing:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{thing.server.url}/actions/add",
                    headers={"Content-Type": CBOR, "Accept": CBOR},
                    content=cbor2.dumps(10**5000),
                )
                read = await client.get(
                    f"{thing.server.url}/properties/result", headers={"Accept": JSON}
                )

        assert response.status_code == 400
        assert "out of range" in response.text
        assert read.status_code == 200
        assert read.json() == 0

    @pytest.mark.asyncio
    async def test_observation_required_message(self):
        async with running_thing() as thing:
            async with httpx.AsyncClient() as client:
                response = await client.get(f"{thing.server.url}/events/update")

        assert response.status_code == 400
        assert "observation required" in response.text.lower()

    @pytest.mark.asyncio
    async def test_client_error_carries_status(self):
        async with running_thing() as thing:
            async with ThingClient(thing.server.url) as client:
                with pytest.raises(ClientError) as exc_info:
                    await client.read_property("result", accept="application/xml")

        assert exc_info.value.status == 406

    @pytest.mark.asyncio
    async def test_malformed_request_line(self):
        async with running_thing() as thing:
            host, port = thing.server.address
            reader, writer = await asyncio.open_connection(host, port)
            writer.write(b"garbage\r\n\r\n")
            await writer.drain()
            response = await reader.read()
            writer.close()

        assert response.startswith(b"HTTP/1.1 400")

    @pytest.mark.asyncio
    async def test_body_too_large(self):
        async with running_thing() as thing:
            host, port = thing.server.address
            reader, writer = await asyncio.open_connection(host, port)
            path = f"/{thing.config.thing.name}/actions/add"
            writer.write(
                f"POST {path} HTTP/1.1\r\nContent-Type: application/json\r\n"
                f"Content-Length: {MAX_BODY_SIZE + 1}\r\n\r\n".encode()
            )
            await writer.drain()
            response = await reader.read()
            writer.close()

        assert response.startswith(b"HTTP/1.1 400")
        assert thing.store.snapshot().value == 0


class TestObservation:
    """Tests for observation streams."""

    @pytest.mark.asyncio
    async def test_observe_result_cbor(self):
        async with running_thing() as thing:
            async with ThingClient(thing.server.url) as client:
                stream = client.observe_property("result", accept=CBOR)
                first = asyncio.ensure_future(stream.__anext__())
                await _wait_until(lambda: thing.watcher.subscriber_count() == 1)

                await client.add(10)
                assert await asyncio.wait_for(first, timeout=2.0) == 10

                await client.subtract(5)
                assert await asyncio.wait_for(stream.__anext__(), timeout=2.0) == 5
                await stream.aclose()

            # Closing the stream ends the subscription and the shared polling
            await _wait_until(lambda: thing.watcher.subscriber_count() == 0)
            assert not thing.watcher.polling

    @pytest.mark.asyncio
    async def test_subscribe_update_event_json(self):
        async with running_thing() as thing:
            async with ThingClient(thing.server.url) as client:
                stream = client.subscribe_event("update", accept=JSON)
                first = asyncio.ensure_future(stream.__anext__())
                await _wait_until(lambda: thing.watcher.subscriber_count() == 1)

                await client.add(2.5, content_type=CBOR)
                assert await asyncio.wait_for(first, timeout=2.0) == 2.5
                await stream.aclose()

    @pytest.mark.asyncio
    async def test_observe_last_change(self):
        async with running_thing() as thing:
            async with ThingClient(thing.server.url) as client:
                stream = client.observe_property("lastChange", accept=JSON)
                first = asyncio.ensure_future(stream.__anext__())
                await _wait_until(lambda: thing.watcher.subscriber_count() == 1)

                await client.add(1)
                value = await asyncio.wait_for(first, timeout=2.0)
                assert value == thing.store.snapshot().last_change_text
                await stream.aclose()

    @pytest.mark.asyncio
    async def test_sse_framing(self):
        """Raw stream: headers, id/event/data fields, base64 CBOR payload."""
        async with running_thing() as thing:
            url = f"{thing.server.url}/properties/result/observe"
            async with httpx.AsyncClient() as client:
                async with client.stream("GET", url, headers={"Accept": CBOR}) as response:
                    assert response.status_code == 200
                    assert response.headers["content-type"].startswith("text/event-stream")
                    assert response.headers["x-content-type"] == CBOR

                    await _wait_until(lambda: thing.watcher.subscriber_count() == 1)
                    await thing.store.apply(10)

                    lines: list[str] = []
                    async for line in response.aiter_lines():
                        if not line and lines:
                            break
                        if line:
                            lines.append(line)

        assert lines[0] == "id: 1"
        assert lines[1] == "event: result"
        assert cbor2.loads(base64.b64decode(lines[2].removeprefix("data: "))) == 10

    @pytest.mark.asyncio
    async def test_heartbeat_when_idle(self):
        async with running_thing(heartbeat=0.05) as thing:
            url = f"{thing.server.url}/events/update"
            headers = {"Accept": JSON, "Observe": "0"}
            async with httpx.AsyncClient() as client:
                async with client.stream("GET", url, headers=headers) as response:
                    async for line in response.aiter_lines():
                        if line.startswith(":"):
                            assert line == ": ping"
                            break

    @pytest.mark.asyncio
    async def test_unchanged_state_sends_nothing(self):
        async with running_thing() as thing:
            async with ThingClient(thing.server.url) as client:
                stream = client.observe_property("result")
                pending = asyncio.ensure_future(stream.__anext__())
                await _wait_until(lambda: thing.watcher.subscriber_count() == 1)

                await asyncio.sleep(INTERVAL * 4)
                assert not pending.done()

                pending.cancel()
                try:
                    await pending
                except asyncio.CancelledError:
                    pass
                await stream.aclose()

    @pytest.mark.asyncio
    async def test_streams_do_not_hold_request_slots(self):
        """With one request slot, an open stream still leaves room for reads."""
        async with running_thing(max_concurrent=1) as thing:
            async with ThingClient(thing.server.url) as client:
                stream = client.observe_property("result")
                pending = asyncio.ensure_future(stream.__anext__())
                await _wait_until(lambda: thing.watcher.subscriber_count() == 1)

                assert await asyncio.wait_for(client.read_property("result"), timeout=2.0) == 0

                pending.cancel()
                try:
                    await pending
                except asyncio.CancelledError:
                    pass
                await stream.aclose()

    @pytest.mark.asyncio
    async def test_close_with_open_stream(self):
        """Server shutdown ends open streams instead of waiting for them."""
        async with running_thing() as thing:
            reader, writer = await asyncio.open_connection(*thing.server.address)
            path = f"/{thing.config.thing.name}/events/update"
            writer.write(f"GET {path} HTTP/1.1\r\nObserve: 0\r\n\r\n".encode())
            await writer.drain()
            await _wait_until(lambda: thing.watcher.subscriber_count() == 1)

        # running_thing() closed the server within its timeout
        assert thing.watcher.subscriber_count() == 0
        writer.close()
