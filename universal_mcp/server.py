"""
MCP Server — Main Orchestrator

Ties together:
  Transport → Protocol → Router → Dispatcher → Handlers

Flow:
  1. Transport reads one frame from stdin
  2. Router validates JSON-RPC 2.0 and applies the session state machine
  3. tools/call and resources/read run as tasks; everything else inline
  4. Transport writes the response to stdout (possibly out of arrival order)

Shutdown (EOF or signal):
  stop reading → close dispatcher → wait for in-flight tasks (grace period)
  → close transport → release collaborators
"""

import asyncio
import signal
from typing import Any, Optional, Set

from .config import Config
from .context import ServerContext
from .logger import get_logger
from .protocol import Malformed
from .router import SLOW_METHODS, Router
from .transport import StdioTransport

log = get_logger("server")


class MCPServer:
    """
    Main server orchestrator.

    Usage:
        ctx = build_context()
        load_tools(ctx)
        server = MCPServer(ctx)
        await server.run()
    """

    def __init__(
        self,
        ctx: ServerContext,
        transport: Optional[StdioTransport] = None,
        grace_s: float = Config.SHUTDOWN_GRACE_S,
    ):
        self._ctx = ctx
        self._transport = transport or StdioTransport()
        self._router = Router(ctx.dispatcher, resources=ctx.resources, prompts=ctx.prompts)
        self._grace_s = grace_s
        self._tasks: Set[asyncio.Task] = set()
        self._read_task: Optional[asyncio.Task] = None
        self._running = False
        self._stopped = False
        self._signals: list = []

    @property
    def router(self) -> Router:
        return self._router

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    # ── main loop ────────────────────────────────────────────────

    async def run(self):
        """Start the server and process messages until EOF or signal."""
        log.info(f"Starting {Config.SERVER_NAME} v{Config.SERVER_VERSION}")
        await self._transport.start()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
                self._signals.append(sig)
            except (NotImplementedError, RuntimeError):
                pass  # Windows, or not the main thread

        self._running = True
        log.info(
            f"Server ready — tools={self._ctx.registry.count()} "
            f"capabilities={sorted(self._router.capabilities)}"
        )

        try:
            while self._running:
                self._read_task = asyncio.ensure_future(self._transport.read_message())
                try:
                    frame = await self._read_task
                except asyncio.CancelledError:
                    if self._running:
                        raise
                    break
                if frame is None:
                    log.info("EOF on stdin — shutting down")
                    break
                await self._handle_frame(frame)

        except asyncio.CancelledError:
            log.info("Server cancelled")
        except Exception as exc:
            log.error(f"Server error: {exc}", exc_info=True)
        finally:
            await self.shutdown()

    def stop(self):
        """Stop reading new frames; run() then shuts down."""
        if not self._running:
            return
        log.info("Stop requested")
        self._running = False
        if self._read_task is not None and not self._read_task.done():
            self._read_task.cancel()

    async def _handle_frame(self, frame: Any):
        if isinstance(frame, Malformed):
            response = self._router.handle_malformed(frame)
            if response is not None:
                await self._transport.write_message(response)
            return

        method = frame.get("method") if isinstance(frame, dict) else None
        if method in SLOW_METHODS and "id" in frame:
            task = asyncio.create_task(self._process(frame))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            await self._process(frame)

    async def _process(self, msg: Any):
        response = await self._router.handle(msg)
        if response is not None:
            await self._transport.write_message(response)

    # ── shutdown ─────────────────────────────────────────────────

    async def shutdown(self):
        """Graceful shutdown — drain in-flight work, then release everything."""
        if self._stopped:
            return
        self._stopped = True
        self._running = False
        # Requests spawned just before EOF get one step to pass admission
        await asyncio.sleep(0)
        self._router.begin_shutdown()

        pending = set(self._tasks)
        if pending:
            log.info(f"Waiting up to {self._grace_s}s for {len(pending)} in-flight request(s)")
            _, still_running = await asyncio.wait(pending, timeout=self._grace_s)
            for task in still_running:
                task.cancel()
            if still_running:
                log.warning(f"Cancelled {len(still_running)} request(s) after grace period")
                await asyncio.gather(*still_running, return_exceptions=True)

        await self._transport.close()
        self._router.mark_closed()

        loop = asyncio.get_running_loop()
        for sig in self._signals:
            loop.remove_signal_handler(sig)
        self._signals = []

        stats = self._ctx.dispatcher.stats()
        await self._ctx.close()
        log.info(
            f"Server stopped — calls={stats['totalCalls']} errors={stats['totalErrors']} "
            f"rejected={stats['totalRejected']}"
        )
