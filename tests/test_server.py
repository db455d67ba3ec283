"""
Tests for the stdio transport and the server loop, driven through an
in-memory StreamReader and a BytesIO stdout.

Covers: full session over the wire, out-of-order responses for slow tools,
malformed frames, EOF shutdown with in-flight work, and writes after close.
"""

import asyncio
import io
import json

import pytest

from universal_mcp.registry import tool
from universal_mcp.router import SessionState
from universal_mcp.server import MCPServer
from universal_mcp.transport import StdioTransport

from conftest import echo_tool


# -- Helpers ------------------------------------------------------------------


def frame(method, params=None, id=None):
    msg = {"jsonrpc": "2.0", "method": method}
    if id is not None:
        msg["id"] = id
    if params is not None:
        msg["params"] = params
    return json.dumps(msg) + "\n"


HANDSHAKE = frame("initialize", {"protocolVersion": "2024-11-05"}, id=0) + frame("notifications/initialized")


def make_transport(text: str):
    reader = asyncio.StreamReader()
    reader.feed_data(text.encode("utf-8"))
    reader.feed_eof()
    stdout = io.BytesIO()
    return StdioTransport(reader=reader, stdout=stdout), stdout


def responses(stdout: io.BytesIO):
    return [json.loads(line) for line in stdout.getvalue().splitlines() if line.strip()]


async def serve(ctx, text, **kwargs):
    transport, stdout = make_transport(text)
    server = MCPServer(ctx, transport=transport, **kwargs)
    await server.run()
    return server, responses(stdout)


# -- Server loop --------------------------------------------------------------


class TestSession:
    @pytest.mark.asyncio
    async def test_full_session(self, ctx):
        ctx.registry.register(echo_tool())
        text = (
            HANDSHAKE
            + frame("tools/list", id=1)
            + frame("tools/call", {"name": "echo", "arguments": {"message": "hi"}}, id=2)
        )
        server, out = await serve(ctx, text)

        by_id = {r["id"]: r for r in out}
        assert set(by_id) == {0, 1, 2}
        assert by_id[0]["result"]["serverInfo"]["name"]
        assert [t["name"] for t in by_id[1]["result"]["tools"]] == ["echo"]
        assert by_id[2]["result"]["content"][0]["text"] == "Echo: hi"
        assert server.router.state == SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_call_before_initialize(self, ctx):
        ctx.registry.register(echo_tool())
        _, out = await serve(ctx, frame("tools/list", id=1) + frame("ping", id=2))
        by_id = {r["id"]: r for r in out}
        assert by_id[1]["error"]["code"] == -32002
        assert by_id[2]["result"]["status"] == "ok"

    @pytest.mark.asyncio
    async def test_notifications_get_no_response(self, ctx):
        _, out = await serve(ctx, HANDSHAKE + frame("notifications/cancelled", {"requestId": 1}))
        assert [r["id"] for r in out] == [0]


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_slow_tool_does_not_block_fast_one(self, ctx):
        async def slow(args):
            await asyncio.sleep(0.05)
            return "slow done"

        ctx.registry.register(tool("slow", "", {}, slow))
        ctx.registry.register(echo_tool())
        text = (
            HANDSHAKE
            + frame("tools/call", {"name": "slow"}, id="a")
            + frame("tools/call", {"name": "echo", "arguments": {"message": "fast"}}, id="b")
        )
        _, out = await serve(ctx, text)

        call_ids = [r["id"] for r in out if r["id"] in ("a", "b")]
        assert call_ids == ["b", "a"]
        by_id = {r["id"]: r for r in out}
        assert by_id["a"]["result"]["content"][0]["text"] == "slow done"
        assert by_id["b"]["result"]["content"][0]["text"] == "Echo: fast"

    @pytest.mark.asyncio
    async def test_in_flight_work_finishes_after_eof(self, ctx):
        async def slow(args):
            await asyncio.sleep(0.02)
            return "finished"

        ctx.registry.register(tool("slow", "", {}, slow))
        _, out = await serve(ctx, HANDSHAKE + frame("tools/call", {"name": "slow"}, id=5))
        assert out[-1]["id"] == 5
        assert out[-1]["result"]["content"][0]["text"] == "finished"

    @pytest.mark.asyncio
    async def test_grace_period_cancels_stragglers(self, ctx):
        async def hang(args):
            await asyncio.sleep(10)

        ctx.registry.register(tool("hang", "", {}, hang))
        server, out = await serve(ctx, HANDSHAKE + frame("tools/call", {"name": "hang"}, id=9), grace_s=0.05)
        assert [r["id"] for r in out] == [0]
        assert server.in_flight == 0


class TestMalformed:
    @pytest.mark.asyncio
    async def test_malformed_with_recoverable_id(self, ctx):
        _, out = await serve(ctx, '{"jsonrpc": "2.0", "id": 12, "method": oops}\n' + frame("ping", id=13))
        by_id = {r["id"]: r for r in out}
        assert by_id[12]["error"]["code"] == -32600
        assert by_id[13]["result"]["status"] == "ok"

    @pytest.mark.asyncio
    async def test_garbage_without_id_dropped(self, ctx):
        _, out = await serve(ctx, "not json at all\n" + frame("ping", id=1))
        assert [r["id"] for r in out] == [1]

    @pytest.mark.asyncio
    async def test_multi_line_message(self, ctx):
        text = '{"jsonrpc": "2.0",\n "id": 3,\n "method": "ping"}\n'
        _, out = await serve(ctx, text)
        assert out[0]["id"] == 3

    @pytest.mark.asyncio
    async def test_invalid_utf8_with_id_gets_reply(self, ctx):
        reader = asyncio.StreamReader()
        reader.feed_data(b'{"jsonrpc": "2.0", "id": 7, "method": "ping", "x": "\xff"}\n')
        reader.feed_data(frame("ping", id=8).encode("utf-8"))
        reader.feed_eof()
        stdout = io.BytesIO()
        await MCPServer(ctx, transport=StdioTransport(reader=reader, stdout=stdout)).run()

        by_id = {r["id"]: r for r in responses(stdout)}
        assert by_id[7]["error"]["code"] == -32600
        assert by_id[8]["result"]["status"] == "ok"

    @pytest.mark.asyncio
    async def test_truncated_message_at_eof(self, ctx):
        _, out = await serve(ctx, '{"jsonrpc": "2.0", "id": 21, "method": "ping"')
        assert out[0]["id"] == 21
        assert out[0]["error"]["code"] == -32600


# -- Transport ----------------------------------------------------------------


class TestTransport:
    @pytest.mark.asyncio
    async def test_write_after_close_is_discarded(self):
        transport, stdout = make_transport("")
        await transport.start()
        assert await transport.write_message({"jsonrpc": "2.0", "id": 1, "result": {}}) is True
        await transport.close()
        assert await transport.write_message({"jsonrpc": "2.0", "id": 2, "result": {}}) is False
        assert [r["id"] for r in responses(stdout)] == [1]
        assert transport.discarded == 1

    @pytest.mark.asyncio
    async def test_broken_pipe_is_swallowed(self):
        class BrokenStdout:
            def write(self, data):
                raise BrokenPipeError("gone")

            def flush(self):
                pass

        reader = asyncio.StreamReader()
        reader.feed_eof()
        transport = StdioTransport(reader=reader, stdout=BrokenStdout())
        await transport.start()
        assert await transport.write_message({"jsonrpc": "2.0", "id": 1, "result": {}}) is False
        assert transport.running is False

    @pytest.mark.asyncio
    async def test_read_counts(self):
        transport, _ = make_transport(frame("ping", id=1) + "junk\n")
        await transport.start()
        assert (await transport.read_message())["id"] == 1
        assert (await transport.read_message()).reason
        assert await transport.read_message() is None
        assert transport.messages_in == 1
        assert transport.malformed == 1

    @pytest.mark.asyncio
    async def test_invalid_utf8(self):
        reader = asyncio.StreamReader()
        reader.feed_data(b'{"id": 1, "x": "\xff"}\n')
        reader.feed_eof()
        transport = StdioTransport(reader=reader, stdout=io.BytesIO())
        await transport.start()
        frame_ = await transport.read_message()
        assert "UTF-8" in frame_.reason
        assert frame_.request_id == 1
        assert transport.malformed == 1
