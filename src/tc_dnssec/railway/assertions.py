"""
pytest helpers for Result values.

    bundle = ResultAssertions.assert_success(rotator.rotate(tx, request))
    ResultAssertions.assert_failure(result, ErrorCode.MATCH_LIST_ERROR)
"""

from __future__ import annotations

from typing import TypeVar

from tc_dnssec.railway.failure import ErrorCode, FailureDescription
from tc_dnssec.railway.result import Result

T = TypeVar("T")


def _describe(result: Result[T]) -> str:
    return result.either(
        lambda value: f"Success({value!r})",
        lambda err: f"Failure({err.code.value}: {err.message!r})",
    )


class ResultAssertions:
    @staticmethod
    def assert_success(result: Result[T]) -> T:
        """Fail the test unless `result` is a Success; returns the value."""
        assert result.is_success(), f"expected a Success, got {_describe(result)}"
        return result.value()

    @staticmethod
    def assert_failure(
        result: Result[T], expected_code: ErrorCode | None = None
    ) -> FailureDescription:
        """Fail the test unless `result` is a Failure (with `expected_code`, if given)."""
        assert result.is_failure(), f"expected a Failure, got {_describe(result)}"
        error = result.error()
        if expected_code is not None:
            assert error.code is expected_code, (
                f"expected {expected_code.value}, got {_describe(result)}"
            )
        return error

    @staticmethod
    def assert_failure_message_contains(result: Result[T], fragment: str) -> None:
        """Case-insensitive check on the failure message, context prefixes included."""
        message = ResultAssertions.assert_failure(result).message
        assert fragment.lower() in message.lower(), f"{fragment!r} not in {message!r}"
