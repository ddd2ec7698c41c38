"""
Railway-Oriented Programming (ROP) primitives used across tc_dnssec.

Every component returns a Result instead of raising across a boundary:

    from tc_dnssec.railway import Result, ErrorCode

    def require_cdn(name: str) -> Result[str]:
        if not name:
            return Result.failure(ErrorCode.BAD_REQUEST, "missing CDN name")
        return Result.success(name)

Exceptions are captured at adapter edges with Result.from_computation().
"""

from tc_dnssec.railway.result import Result, Success, Failure
from tc_dnssec.railway.failure import ErrorCode, FailureDescription
from tc_dnssec.railway.execution import (
    ExecutionContext,
    NoOpExecutionContext,
    LoggingExecutionContext,
)
from tc_dnssec.railway.assertions import ResultAssertions

__all__ = [
    "Result",
    "Success",
    "Failure",
    "ErrorCode",
    "FailureDescription",
    "ExecutionContext",
    "NoOpExecutionContext",
    "LoggingExecutionContext",
    "ResultAssertions",
]
