"""
PostgreSQL transaction scope — one Traffic Ops transaction per request via psycopg (v3).

The handler describes its work as a function of the open connection that
returns a Result. The scope commits only when that Result is a success and
the request deadline has not passed; a failure, an exception or an expired
deadline rolls everything back. Whatever happens, the connection is closed
when the `with` blocks exit.

    runner.run(lambda tx: rotator.rotate(tx, request, deadline), deadline)

Statement time is capped with a transaction-local statement_timeout derived
from the deadline.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import psycopg
import structlog

from tc_dnssec.domain.models import Deadline
from tc_dnssec.railway import ErrorCode
from tc_dnssec.railway.result import Result

T = TypeVar("T")
log = structlog.get_logger()


class PsycopgTransactionRunner:
    """Run Result-returning work inside a single PostgreSQL transaction."""

    def __init__(self, dsn: str, connect_timeout: int = 10) -> None:
        self._dsn = dsn
        self._connect_timeout = connect_timeout

    def run(
        self,
        work: Callable[[psycopg.Connection[Any]], Result[T]],
        deadline: Deadline | None = None,
    ) -> Result[T]:
        if deadline is not None and deadline.expired:
            return Result.failure(
                ErrorCode.REQUEST_CANCELLED, "deadline passed before opening a transaction"
            )
        try:
            return self._run(work, deadline)
        except psycopg.errors.QueryCanceled as e:
            return Result.failure(
                ErrorCode.REQUEST_CANCELLED, f"database statement cancelled: {e}", e
            )
        except psycopg.Error as e:
            return Result.failure(ErrorCode.DATABASE_ERROR, f"database transaction: {e}", e)

    def _run(
        self,
        work: Callable[[psycopg.Connection[Any]], Result[T]],
        deadline: Deadline | None,
    ) -> Result[T]:
        connect_timeout = self._connect_timeout
        if deadline is not None:
            connect_timeout = max(1, min(connect_timeout, int(deadline.remaining())))

        with psycopg.connect(self._dsn, connect_timeout=connect_timeout) as conn:
            result: Result[T]
            with conn.transaction():
                if deadline is not None:
                    self._limit_statement_time(conn, deadline)
                result = work(conn)
                if result.is_failure() and isinstance(
                    result.error().exception, psycopg.errors.QueryCanceled
                ):
                    failure = result.error()
                    result = Result.failure(
                        ErrorCode.REQUEST_CANCELLED, failure.message, failure.exception
                    )
                if result.is_success() and deadline is not None and deadline.expired:
                    result = Result.failure(
                        ErrorCode.REQUEST_CANCELLED,
                        "deadline passed before the transaction could commit",
                    )
                if result.is_failure():
                    log.debug("transaction.rollback", error_code=result.error().code.value)
                    raise psycopg.Rollback()
            return result

    @staticmethod
    def _limit_statement_time(conn: psycopg.Connection[Any], deadline: Deadline) -> None:
        millis = max(1, int(deadline.remaining() * 1000))
        conn.execute("SELECT set_config('statement_timeout', %s, true)", (f"{millis}ms",))
