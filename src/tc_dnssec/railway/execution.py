"""
Execution contexts — separate WHAT (pure logic) from HOW (side effects).

A context receives a zero-argument computation returning Result[T] and runs
it inside some wrapper: timing and logging here, a database transaction in
tc_dnssec.adapters.database.

    ctx = LoggingExecutionContext(operation="GenerateDNSSECKeys")
    result = ctx.execute(lambda: rotator.rotate(...))
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol, TypeVar, runtime_checkable

import structlog

from tc_dnssec.railway.failure import ErrorCode, FailureDescription
from tc_dnssec.railway.result import Failure, Result

T = TypeVar("T")
log = structlog.get_logger()


@runtime_checkable
class ExecutionContext(Protocol):
    """Anything with execute(computation) -> Result[T]."""

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]: ...


class NoOpExecutionContext:
    """Passthrough context — runs the computation without any wrapper."""

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        return computation()


class LoggingExecutionContext:
    """
    Logs start, duration and outcome of the wrapped computation.

    Wraps another context (decorator pattern). An exception escaping the
    computation is converted into an INTERNAL_ERROR failure so callers only
    ever see a Result.
    """

    def __init__(
        self,
        inner: ExecutionContext | None = None,
        operation: str = "unknown",
    ) -> None:
        self._inner = inner or NoOpExecutionContext()
        self._operation = operation

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        log.debug("execution.started", operation=self._operation)
        start = time.monotonic()

        try:
            result = self._inner.execute(computation)
        except Exception as e:
            log.exception(
                "execution.crashed",
                operation=self._operation,
                elapsed_seconds=round(time.monotonic() - start, 3),
            )
            return Failure(
                FailureDescription(ErrorCode.INTERNAL_ERROR, f"{self._operation}: {e}", e)
            )

        elapsed = round(time.monotonic() - start, 3)
        if result.is_success():
            log.info("execution.completed", operation=self._operation, elapsed_seconds=elapsed)
        else:
            failure = result.error()
            log.error(
                "execution.failed",
                operation=self._operation,
                elapsed_seconds=elapsed,
                error_code=failure.code.value,
                error=failure.full_stack_trace(),
            )
        return result
