"""
Invocation Dispatcher — validate, execute, time, normalize

Per invocation:
  Received → Validating → {Rejected | Executing} → {Succeeded | Failed}

Rejections (unknown tool, disabled tool, bad arguments) never reach the
handler. Handler failures are logged, counted once and re-raised as
ToolExecutionFailed. No retries happen here; retry policy belongs to the
collaborators.
"""

import asyncio
import threading
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .errors import (
    DispatchError,
    DispatcherClosed,
    ToolDisabled,
    ToolExecutionFailed,
    ToolNotFound,
)
from .logger import get_logger, log_invocation
from .registry import ToolRegistry
from .validation import validate_arguments

log = get_logger("dispatcher")


@dataclass
class InvocationRecord:
    """One call's audit trail; lives only long enough to be logged."""
    tool_name: str
    arguments: Any
    started_at: datetime
    duration_ms: float = 0.0
    outcome: str = "pending"
    error: Optional[str] = None
    error_kind: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        entry = asdict(self)
        entry["started_at"] = self.started_at.isoformat()
        entry["duration_ms"] = round(self.duration_ms, 3)
        return entry


@dataclass
class InvocationCounters:
    """Process-lifetime counters; increments are serialized by a lock."""
    calls: int = 0
    executions: int = 0
    errors: int = 0
    rejected: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def increment(self, name: str) -> int:
        with self._lock:
            value = getattr(self, name) + 1
            setattr(self, name, value)
            return value

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return {
                "calls": self.calls,
                "executions": self.executions,
                "errors": self.errors,
                "rejected": self.rejected,
            }


class Dispatcher:
    """Routes tool invocations through the registry to their handlers."""

    def __init__(self, registry: ToolRegistry):
        self._registry = registry
        self._counters = InvocationCounters()
        self._accepting = True
        self._in_flight = 0

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def counters(self) -> InvocationCounters:
        return self._counters

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def accepting(self) -> bool:
        return self._accepting

    def close(self):
        """Stop accepting new invocations; in-flight ones run to completion."""
        if self._accepting:
            self._accepting = False
            log.info(f"Dispatcher closed — {self._in_flight} invocation(s) in flight")

    async def invoke(self, name: str, arguments: Any = None) -> Any:
        call_no = self._counters.increment("calls")
        if arguments is None:
            arguments = {}

        record = InvocationRecord(
            tool_name=name,
            arguments=arguments,
            started_at=datetime.now(timezone.utc),
        )

        try:
            descriptor = self._admit(name, arguments)
        except DispatchError as exc:
            self._counters.increment("rejected")
            record.outcome = "rejected"
            record.error = exc.message
            record.error_kind = exc.kind
            log.info(f"Call #{call_no} {name} rejected: {exc.kind}: {exc.message}")
            log_invocation(record.to_dict())
            raise

        self._counters.increment("executions")
        self._in_flight += 1
        start = time.perf_counter()
        try:
            result = await descriptor.handler.execute(arguments)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            record.duration_ms = (time.perf_counter() - start) * 1000
            record.outcome = "error"
            record.error = str(exc) or type(exc).__name__
            record.error_kind = getattr(exc, "kind", type(exc).__name__)
            self._counters.increment("errors")
            log.error(
                f"Call #{call_no} {name} failed after {record.duration_ms:.1f}ms: {record.error}",
                exc_info=not isinstance(exc, DispatchError),
            )
            log_invocation(record.to_dict())
            raise ToolExecutionFailed(name, exc) from exc
        finally:
            self._in_flight -= 1

        record.duration_ms = (time.perf_counter() - start) * 1000
        record.outcome = "success"
        log.info(f"Call #{call_no} {name} ok in {record.duration_ms:.1f}ms")
        log_invocation(record.to_dict())
        return result

    def _admit(self, name: str, arguments: Any):
        if not self._accepting:
            raise DispatcherClosed()
        if not isinstance(name, str):
            raise ToolNotFound(str(name))
        descriptor = self._registry.lookup(name)
        if descriptor is None:
            raise ToolNotFound(name)
        if not descriptor.enabled:
            raise ToolDisabled(name)
        validate_arguments(arguments, descriptor.input_schema)
        return descriptor

    def stats(self) -> Dict[str, Any]:
        counts = self._counters.snapshot()
        executions = counts["executions"]
        success_rate = (executions - counts["errors"]) / executions if executions else 0.0
        return {
            "totalCalls": counts["calls"],
            "totalExecutions": executions,
            "totalErrors": counts["errors"],
            "totalRejected": counts["rejected"],
            "successRate": round(success_rate, 4),
            "inFlight": self._in_flight,
            "enabledTools": self._registry.count(),
            "totalTools": self._registry.total_count(),
            "toolsByCategory": {
                category: len(self._registry.names_by_category(category))
                for category in sorted(self._registry.categories())
            },
        }
