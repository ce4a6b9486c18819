"""
Railway-Oriented Programming (ROP) support for mkrpki.

Explicit, composable error handling: builders return Result instead of
raising, and failures short-circuit through .flat_map().

    from railway import Result, ErrorCode

    def check_serial(serial: int) -> Result[int]:
        if serial <= 0:
            return Result.failure(ErrorCode.INVALID_SERIAL, f"serial must be positive: {serial}")
        return Result.success(serial)

    result = check_serial(1).map(lambda s: s.to_bytes(20, "big"))
"""

from railway.result import Result, Success, Failure
from railway.failure import ErrorCode, FailureDescription
from railway.execution import (
    ExecutionContext,
    NoOpExecutionContext,
    LoggingExecutionContext,
)
from railway.result_failures import ResultFailures
from railway.assertions import ResultAssertions

__all__ = [
    "Result",
    "Success",
    "Failure",
    "ErrorCode",
    "FailureDescription",
    "ExecutionContext",
    "NoOpExecutionContext",
    "LoggingExecutionContext",
    "ResultFailures",
    "ResultAssertions",
]

__version__ = "1.0.0"
