"""
Tests for the invocation dispatcher.

Covers: successful invocation, rejection paths that never reach the handler,
handler failures wrapped as ToolExecutionFailed, counters, concurrency and
closing.
"""

import asyncio
import threading
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from universal_mcp.dispatcher import Dispatcher, InvocationCounters
from universal_mcp.errors import (
    DispatcherClosed,
    InvalidArguments,
    StoreUnavailable,
    ToolDisabled,
    ToolExecutionFailed,
    ToolNotFound,
)
from universal_mcp.registry import ToolDescriptor, tool

from conftest import echo_tool


def _spy_tool(name="spy", schema=None, result="ok"):
    handler = MagicMock()
    handler.execute = AsyncMock(return_value=result)
    descriptor = ToolDescriptor(
        name=name,
        description="",
        input_schema=schema or {"type": "object", "properties": {}},
        handler=handler,
    )
    return descriptor, handler


class TestInvoke:
    @pytest.mark.asyncio
    async def test_echo(self, registry):
        registry.register(echo_tool())
        dispatcher = Dispatcher(registry)
        assert await dispatcher.invoke("echo", {"message": "hi"}) == "Echo: hi"

    @pytest.mark.asyncio
    async def test_result_returned_unchanged(self, registry):
        payload = {"rows": [1, 2, 3]}
        descriptor, _ = _spy_tool(result=payload)
        registry.register(descriptor)
        assert await Dispatcher(registry).invoke("spy", {}) is payload

    @pytest.mark.asyncio
    async def test_absent_arguments_become_empty_object(self, registry):
        descriptor, handler = _spy_tool()
        registry.register(descriptor)
        await Dispatcher(registry).invoke("spy", None)
        handler.execute.assert_awaited_once_with({})

    @pytest.mark.asyncio
    async def test_arguments_passed_through_exactly(self, registry):
        descriptor, handler = _spy_tool()
        registry.register(descriptor)
        args = {"a": 1, "undeclared": [1, 2]}
        await Dispatcher(registry).invoke("spy", args)
        handler.execute.assert_awaited_once_with(args)


class TestRejections:
    @pytest.mark.asyncio
    async def test_unknown_tool(self, registry):
        descriptor, handler = _spy_tool()
        registry.register(descriptor)
        dispatcher = Dispatcher(registry)

        with pytest.raises(ToolNotFound) as exc_info:
            await dispatcher.invoke("nope", {})
        assert exc_info.value.kind == "ToolNotFound"
        handler.execute.assert_not_awaited()
        assert dispatcher.counters.snapshot() == {
            "calls": 1, "executions": 0, "errors": 0, "rejected": 1,
        }

    @pytest.mark.asyncio
    async def test_unhashable_name_rejected(self, registry):
        descriptor, handler = _spy_tool()
        registry.register(descriptor)
        dispatcher = Dispatcher(registry)

        with pytest.raises(ToolNotFound):
            await dispatcher.invoke(["echo"], {})
        handler.execute.assert_not_awaited()
        assert dispatcher.counters.snapshot()["rejected"] == 1

    @pytest.mark.asyncio
    async def test_missing_required_field_never_reaches_handler(self, registry):
        schema = {"type": "object", "properties": {"message": {"type": "string"}}, "required": ["message"]}
        descriptor, handler = _spy_tool(schema=schema)
        registry.register(descriptor)

        with pytest.raises(InvalidArguments) as exc_info:
            await Dispatcher(registry).invoke("spy", {})
        assert exc_info.value.field == "message"
        handler.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_disabled_tool(self, registry):
        descriptor, handler = _spy_tool()
        registry.register(descriptor)
        registry.set_enabled("spy", False)

        with pytest.raises(ToolDisabled):
            await Dispatcher(registry).invoke("spy", {})
        handler.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_closed_dispatcher(self, registry):
        registry.register(echo_tool())
        dispatcher = Dispatcher(registry)
        dispatcher.close()
        assert dispatcher.accepting is False
        with pytest.raises(DispatcherClosed):
            await dispatcher.invoke("echo", {"message": "hi"})


class TestFailures:
    @pytest.mark.asyncio
    async def test_handler_failure_wrapped_with_original_message(self, registry):
        async def unreachable(args):
            raise StoreUnavailable("connection refused")

        registry.register(tool("db_find", "", {}, unreachable))
        dispatcher = Dispatcher(registry)

        with pytest.raises(ToolExecutionFailed) as exc_info:
            await dispatcher.invoke("db_find", {})

        err = exc_info.value
        assert err.data == "connection refused"
        assert "connection refused" in err.message
        assert isinstance(err.original, StoreUnavailable)
        assert dispatcher.counters.errors == 1

    @pytest.mark.asyncio
    async def test_error_counter_increments_once_per_failure(self, registry):
        def boom(args):
            raise RuntimeError("boom")

        registry.register(tool("boom", "", {}, boom))
        dispatcher = Dispatcher(registry)
        for _ in range(3):
            with pytest.raises(ToolExecutionFailed):
                await dispatcher.invoke("boom", {})
        assert dispatcher.counters.errors == 3
        assert dispatcher.in_flight == 0

    @pytest.mark.asyncio
    async def test_invocation_logged(self, registry):
        registry.register(echo_tool())
        with patch("universal_mcp.dispatcher.log_invocation") as log_invocation:
            await Dispatcher(registry).invoke("echo", {"message": "hi"})
        entry = log_invocation.call_args[0][0]
        assert entry["tool_name"] == "echo"
        assert entry["outcome"] == "success"
        assert entry["duration_ms"] >= 0


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_two_tools_concurrently_keep_their_own_results(self, registry):
        async def slow_upper(args):
            await asyncio.sleep(0.02)
            return args["text"].upper()

        async def fast_reverse(args):
            await asyncio.sleep(0)
            return args["text"][::-1]

        registry.register(tool("upper", "", {}, slow_upper))
        registry.register(tool("reverse", "", {}, fast_reverse))
        dispatcher = Dispatcher(registry)

        upper, reverse = await asyncio.gather(
            dispatcher.invoke("upper", {"text": "abc"}),
            dispatcher.invoke("reverse", {"text": "xyz"}),
        )
        assert upper == "ABC"
        assert reverse == "zyx"
        assert dispatcher.counters.executions == 2

    def test_counters_never_lose_updates(self):
        counters = InvocationCounters()

        def bump():
            for _ in range(1000):
                counters.increment("calls")

        threads = [threading.Thread(target=bump) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert counters.calls == 8000


class TestStats:
    @pytest.mark.asyncio
    async def test_stats_shape(self, registry):
        registry.register(echo_tool())
        dispatcher = Dispatcher(registry)
        await dispatcher.invoke("echo", {"message": "a"})
        with pytest.raises(ToolNotFound):
            await dispatcher.invoke("nope")

        stats = dispatcher.stats()
        assert stats["totalCalls"] == 2
        assert stats["totalExecutions"] == 1
        assert stats["totalRejected"] == 1
        assert stats["successRate"] == 1.0
        assert stats["toolsByCategory"] == {"basic": 1}
