"""
Change-log adapter — appends Traffic Ops "APICHANGE" entries via psycopg.

Implements the AuditLog port. The insert runs in the caller's transaction,
so the entry only becomes visible if the whole request commits.
"""

from __future__ import annotations

from typing import Any

import psycopg
import structlog

from tc_dnssec.railway import ErrorCode
from tc_dnssec.railway.result import Result

log = structlog.get_logger()

API_CHANGE = "APICHANGE"

_INSERT_LOG = """
INSERT INTO log (level, message, tm_user)
VALUES (%s, %s, (SELECT id FROM tm_user WHERE username = %s))
"""


class PsycopgAuditLog:
    """Write change-log rows attributed to the requesting user (if known)."""

    def append(
        self, tx: psycopg.Connection[Any], message: str, user: str | None = None
    ) -> Result[str]:
        def _insert() -> str:
            tx.execute(_INSERT_LOG, (API_CHANGE, message, user))
            log.info("audit.appended", message=message, user=user)
            return message

        return Result.from_computation(_insert, ErrorCode.DATABASE_ERROR, "writing change log")
