"""
Result — a value on the success track or a FailureDescription on the failure track.

Every stage of a rotation returns a Result and the stages are chained with
flat_map; the first failure skips all later stages:

    KeyStore.get ──Success──▶ mint keys ──Success──▶ KeyStore.put ──▶ Result[T]
         │ Failure                │ Failure               │ Failure
         └────────────────────────┴───────────────────────┴──────────▶ Result[T]

A Success may wrap None. Lookups return Result[T | None], where None means
"not there", which is not an error.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from tc_dnssec.railway.failure import ErrorCode, FailureDescription

T = TypeVar("T")
U = TypeVar("U")
R = TypeVar("R")


class Result(ABC, Generic[T]):
    """
    Base of Success and Failure; the factories live here.

        >>> Result.success(3).map(lambda n: n + 1).value()
        4
        >>> Result.failure(ErrorCode.NOT_FOUND, "no keys").map(len).is_failure()
        True
    """

    @abstractmethod
    def is_success(self) -> bool:
        ...

    def is_failure(self) -> bool:
        return not self.is_success()

    @abstractmethod
    def value(self) -> T:
        ...

    @abstractmethod
    def error(self) -> FailureDescription:
        ...

    @abstractmethod
    def either(
        self,
        on_success: Callable[[T], R],
        on_failure: Callable[[FailureDescription], R],
    ) -> R:
        ...

    def map(self, mapper: Callable[[T], U]) -> Result[U]:
        return self.flat_map(lambda v: Success(mapper(v)))

    @abstractmethod
    def flat_map(self, mapper: Callable[[T], Result[U]]) -> Result[U]:
        ...

    @abstractmethod
    def map_failure(
        self, mapper: Callable[[FailureDescription], FailureDescription]
    ) -> Result[T]:
        ...

    def with_context(self, prefix: str) -> Result[T]:
        """Prefix a failure message with what was being done; successes pass through."""
        return self.map_failure(lambda err: err.with_context(prefix))

    def peek(self, action: Callable[[T], Any]) -> Result[T]:
        """Run `action` on a success value (logging, metrics) and return self."""
        if self.is_success():
            action(self.value())
        return self

    # ─────────────────────── Factories ───────────────────────

    @staticmethod
    def success(value: T) -> Result[T]:
        return Success(value)

    @staticmethod
    def failure(
        code: ErrorCode,
        message: str,
        exception: BaseException | None = None,
    ) -> Result[T]:
        return Failure(FailureDescription(code=code, message=message, exception=exception))

    @staticmethod
    def failure_from(error: FailureDescription) -> Result[T]:
        return Failure(error)

    @staticmethod
    def from_computation(
        computation: Callable[[], T],
        error_code: ErrorCode,
        error_message: str,
    ) -> Result[T]:
        """
        Run `computation`, turning any exception into a failure.

        The exception text is appended to `error_message` and the exception is
        kept as the cause:

            Result.from_computation(
                lambda: cur.fetchall(),
                ErrorCode.DATABASE_ERROR,
                "querying delivery services",
            )
        """
        try:
            return Success(computation())
        except Exception as e:
            return Result.failure(error_code, f"{error_message}: {e}", e)

    @staticmethod
    def from_optional(
        value: T | None,
        error_message: str,
        error_code: ErrorCode = ErrorCode.NOT_FOUND,
    ) -> Result[T]:
        if value is None:
            return Result.failure(error_code, error_message)
        return Success(value)

    @staticmethod
    def all_of(results: Iterable[Result[T]]) -> Result[list[T]]:
        """
        Success with every value, or the first failure.

        `results` may be a generator; nothing after the first failure is pulled.
        """
        values: list[T] = []
        for result in results:
            if result.is_failure():
                return Failure(result.error())
            values.append(result.value())
        return Success(values)


@dataclass(frozen=True, slots=True)
class Success(Result[T]):
    _value: T

    def is_success(self) -> bool:
        return True

    def value(self) -> T:
        return self._value

    def error(self) -> FailureDescription:
        raise ValueError(f"Cannot get error from a Success: {self._value!r}")

    def either(self, on_success, on_failure):  # type: ignore[no-untyped-def]
        return on_success(self._value)

    def flat_map(self, mapper):  # type: ignore[no-untyped-def]
        return mapper(self._value)

    def map_failure(self, mapper):  # type: ignore[no-untyped-def]
        return self

    def __repr__(self) -> str:
        return f"Success({self._value!r})"


@dataclass(frozen=True, slots=True)
class Failure(Result[T]):
    _error: FailureDescription

    def __post_init__(self) -> None:
        if self._error is None:
            raise TypeError("Failure error must not be None")

    def is_success(self) -> bool:
        return False

    def value(self) -> T:
        raise ValueError(f"Cannot get value from a Failure: {self._error.message}")

    def error(self) -> FailureDescription:
        return self._error

    def either(self, on_success, on_failure):  # type: ignore[no-untyped-def]
        return on_failure(self._error)

    def flat_map(self, mapper):  # type: ignore[no-untyped-def]
        return self

    def map_failure(self, mapper):  # type: ignore[no-untyped-def]
        return Failure(mapper(self._error))

    def __eq__(self, other: object) -> bool:
        # Timestamps differ between otherwise identical failures.
        if not isinstance(other, Failure):
            return NotImplemented
        return (self._error.code, self._error.message) == (other._error.code, other._error.message)

    def __hash__(self) -> int:
        return hash((self._error.code, self._error.message))

    def __repr__(self) -> str:
        return f"Failure({self._error.code.value}: {self._error.message!r})"
