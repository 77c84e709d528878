"""Tests for CLI argument parsing and the client commands."""

import asyncio
import io
import json
from unittest.mock import AsyncMock, patch

import pytest
from rich.console import Console

from wotcalc.cli.arg_parser import parse_args, parse_number
from wotcalc.cli.client_commands import (
    cmd_describe,
    cmd_detect,
    cmd_invoke,
    cmd_observe,
    cmd_read,
)
from wotcalc.config.schema import Config, ObservationConfig, ServerConfig, ThingConfig
from wotcalc.display import console as console_module
from wotcalc.server.bootstrap import bootstrap_thing
from wotcalc.server.detection import DetectionResult


@pytest.fixture
def output():
    """Capture the shared console into a buffer."""
    buffer = io.StringIO()
    console_module.set_console(Console(file=buffer, width=200))
    yield buffer
    console_module._console = None


def _start_components():
    config = Config(
        server=ServerConfig(port=0),
        thing=ThingConfig(description_path=None),
        observation=ObservationConfig(interval=0.05),
    )
    return bootstrap_thing(config, persist=False)


class TestParseArgs:
    """Tests for parse_args()."""

    def test_serve_flags(self, tmp_path):
        args = parse_args([
            "serve", "-p", "4000", "--config", str(tmp_path / "c.json"),
            "--verbose", "--log-dir", str(tmp_path),
        ])
        assert args.command == "serve"
        assert args.port == 4000
        assert args.config == tmp_path / "c.json"
        assert args.verbose is True
        assert args.log_dir == tmp_path

    def test_invoke_defaults(self):
        args = parse_args(["invoke", "add", "10"])
        assert args.name == "add"
        assert args.operand == 10
        assert isinstance(args.operand, int)
        assert args.content_type == "json"
        assert args.accept == "json"
        assert args.port is None
        assert args.thing is None

    def test_invoke_negative_float_and_cbor(self):
        args = parse_args(["invoke", "subtract", "-2.5", "-c", "cbor", "-a", "cbor"])
        assert args.operand == -2.5
        assert args.content_type == "cbor"
        assert args.accept == "cbor"

    def test_invalid_accept_rejected(self):
        with pytest.raises(SystemExit):
            parse_args(["read", "result", "--accept", "xml"])

    def test_observe_count(self):
        args = parse_args(["observe", "update", "-n", "3"])
        assert args.count == 3

    def test_no_command(self):
        assert parse_args([]).command is None

    def test_parse_number(self):
        assert parse_number("7") == 7
        assert parse_number("0.5") == 0.5
        with pytest.raises(Exception):
            parse_number("ten")


class TestClientCommands:
    """Tests for the client commands against a running server."""

    @pytest.mark.asyncio
    async def test_describe_read_invoke(self, output):
        components = _start_components()
        await components.server.start()
        try:
            _, port = components.server.address
            target = {"port": port, "thing": components.config.thing.name}

            assert await cmd_invoke("add", 10, "json", "cbor", **target) == 0
            assert await cmd_read("result", "cbor", **target) == 0
            assert await cmd_describe("cbor", **target) == 0
        finally:
            await components.server.close()

        text = output.getvalue()
        decoder = json.JSONDecoder()
        values = []
        index = 0
        while index < len(text):
            if text[index].isspace():
                index += 1
                continue
            value, index = decoder.raw_decode(text, index)
            values.append(value)

        assert values[0] == 10
        assert values[1] == 10
        assert values[2]["title"] == components.config.thing.name

    @pytest.mark.asyncio
    async def test_observe_count(self, output):
        components = _start_components()
        await components.server.start()
        try:
            _, port = components.server.address
            task = asyncio.ensure_future(cmd_observe(
                "update", "cbor", count=1, port=port, thing=components.config.thing.name,
            ))
            for _ in range(200):
                if components.watcher.subscriber_count():
                    break
                await asyncio.sleep(0.01)
            await components.store.apply(4)

            assert await asyncio.wait_for(task, timeout=2.0) == 0
        finally:
            await components.server.close()

        assert output.getvalue().strip() == "4"

    @pytest.mark.asyncio
    async def test_observe_unknown_name(self, output):
        components = _start_components()
        await components.server.start()
        try:
            _, port = components.server.address
            code = await cmd_observe("nope", port=port, thing=components.config.thing.name)
        finally:
            await components.server.close()

        assert code == 1
        assert "Unknown property or event" in output.getvalue()

    @pytest.mark.asyncio
    async def test_error_printed(self, output):
        components = _start_components()
        await components.server.start()
        try:
            _, port = components.server.address
            code = await cmd_read("missing", port=port, thing=components.config.thing.name)
        finally:
            await components.server.close()

        assert code == 1
        assert "Error:" in output.getvalue()
        assert "404" in output.getvalue()

    @pytest.mark.asyncio
    async def test_detect(self, output):
        with patch(
            "wotcalc.cli.client_commands.detect_server",
            AsyncMock(return_value=DetectionResult.NO_SERVER),
        ):
            code = await cmd_detect(port=3999, thing="calc")

        assert code == 1
        assert json.loads(output.getvalue()) == {
            "port": 3999,
            "thing": "calc",
            "result": "no_server",
            "running": False,
        }
