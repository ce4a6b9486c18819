"""
Execution contexts: separate WHAT (pure builders) from HOW (observability).

Builders describe what should happen and return Result[T]; an
ExecutionContext decides how the computation runs around them. mkrpki uses
one for each subcommand so every run logs its start, duration and outcome
with the same structlog events:

    result = LoggingExecutionContext(operation="roa").execute(
        lambda: pipeline.build_roa(request)
    )
"""

from __future__ import annotations

import time
from typing import Callable, Protocol, TypeVar, runtime_checkable

import structlog

from railway.failure import ErrorCode, FailureDescription
from railway.result import Failure, Result

T = TypeVar("T")
log = structlog.get_logger()


@runtime_checkable
class ExecutionContext(Protocol):
    """Anything with execute(computation) satisfies this protocol structurally."""

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        ...


class NoOpExecutionContext:
    """Passthrough execution context, used as the innermost layer and in tests."""

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        return computation()


class LoggingExecutionContext:
    """
    Logs start, outcome and duration of one subcommand run.

    Wraps another context (decorator pattern). An exception escaping the
    computation is a defect; it is logged and turned into an
    ENCODING_INVARIANT_VIOLATION failure so the CLI still exits cleanly.
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
                elapsed_s=round(time.monotonic() - start, 3),
            )
            return Failure(
                FailureDescription(
                    ErrorCode.ENCODING_INVARIANT_VIOLATION,
                    f"{self._operation} crashed: {e}",
                    e,
                )
            )

        elapsed = round(time.monotonic() - start, 3)
        if result.is_success():
            log.info("execution.completed", operation=self._operation, elapsed_s=elapsed)
        else:
            log.warning(
                "execution.failed",
                operation=self._operation,
                elapsed_s=elapsed,
                code=result.error().code.value,
                error=result.error().message,
            )
        return result
