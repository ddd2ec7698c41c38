"""
Failure description — structured error information for the failure track.

ErrorCode enumerates the error kinds of the DNSSEC key manager. Each kind
maps to exactly one HTTP status (see tc_dnssec.railway.http_support).
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum, unique


@unique
class ErrorCode(Enum):
    """
    Error kinds of the key manager.

    Only BAD_REQUEST and NOT_FOUND are client errors; everything else
    is reported to the caller as a 500.
    """

    BAD_REQUEST = "BAD_REQUEST"
    """Malformed request body or missing parameter (→ 400)."""

    NOT_FOUND = "NOT_FOUND"
    """Requested bundle or delivery service does not exist (→ 404)."""

    BUNDLE_MISSING = "BUNDLE_MISSING"
    """Rotation requested for a CDN that has no keys yet (→ 500, with hint)."""

    MATCH_LIST_ERROR = "MATCH_LIST_ERROR"
    """Eligible delivery service without a usable HOST_REGEXP match list."""

    CRYPTO_ERROR = "CRYPTO_ERROR"
    """Key generation failed or the algorithm is unsupported."""

    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    """Riak transport or cluster failure."""

    STORE_SERIALIZATION = "STORE_SERIALIZATION"
    """Stored bundle could not be decoded."""

    STORE_CONFLICT = "STORE_CONFLICT"
    """Conditional write rejected by the cluster."""

    DATABASE_ERROR = "DATABASE_ERROR"
    """Traffic Ops database connectivity or query failure."""

    REQUEST_CANCELLED = "REQUEST_CANCELLED"
    """The request deadline expired before the work finished."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    """Unexpected/unclassified failure."""


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """
    Immutable failure descriptor carrying error code, message, optional cause and timestamp.

    >>> desc = FailureDescription(ErrorCode.BAD_REQUEST, "missing key")
    >>> desc.with_context("parsing request").message
    'parsing request: missing key'
    """

    code: ErrorCode
    message: str
    exception: BaseException | None = field(default=None, repr=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def with_context(self, prefix: str) -> FailureDescription:
        """Prepend a one-line context to the message, keeping code and cause."""
        return replace(self, message=f"{prefix}: {self.message}")

    def full_stack_trace(self) -> str:
        """Message followed by the formatted exception chain, if any."""
        if self.exception is None:
            return self.message
        tb = "".join(
            traceback.format_exception(
                type(self.exception), self.exception, self.exception.__traceback__
            )
        )
        return f"{self.message}\n{tb}"
