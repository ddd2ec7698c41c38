"""
HTTP integration — ErrorCode → HTTP status mapping and Traffic Ops envelopes.

Success bodies use the Traffic Ops shape {"response": ...}; failures use the
alert shape {"alerts": [{"level": "error", "text": ...}], "error_code": ...}.

Only client errors echo their message back. Server-side failures answer with a
generic text; the full chain goes to the error log instead. BUNDLE_MISSING is
the exception: the caller has to initialise the CDN first, so it gets a hint.
"""

from __future__ import annotations

from typing import Any, TypeVar

from fastapi.responses import JSONResponse

from tc_dnssec.railway.failure import ErrorCode, FailureDescription
from tc_dnssec.railway.result import Result

T = TypeVar("T")

GENERIC_SERVER_ERROR = "Internal Server Error"


class HttpStatusMapper:
    """Maps ErrorCode enum values to HTTP status codes."""

    _CODE_TO_STATUS: dict[ErrorCode, int] = {
        ErrorCode.BAD_REQUEST: 400,
        ErrorCode.NOT_FOUND: 404,
    }

    @classmethod
    def map_error_code(cls, code: ErrorCode) -> int:
        return cls._CODE_TO_STATUS.get(code, 500)


def user_text(failure: FailureDescription) -> str:
    """The text shown to the API caller for a failure."""
    match failure.code:
        case ErrorCode.BAD_REQUEST | ErrorCode.NOT_FOUND:
            return failure.message
        case ErrorCode.BUNDLE_MISSING:
            return (
                f"{failure.message}; generate the CDN's DNSSEC keys "
                "before refreshing them"
            )
        case _:
            return GENERIC_SERVER_ERROR


def error_body(failure: FailureDescription) -> dict[str, Any]:
    return {
        "alerts": [{"level": "error", "text": user_text(failure)}],
        "error_code": failure.code.value,
    }


def build_response(result: Result[T], success_status: int = 200) -> JSONResponse:
    """
    Build a FastAPI JSONResponse from a Result.

        return build_response(handler.delete(name))
    """
    return result.either(
        on_success=lambda value: JSONResponse(
            content={"response": value}, status_code=success_status
        ),
        on_failure=lambda error: JSONResponse(
            content=error_body(error),
            status_code=HttpStatusMapper.map_error_code(error.code),
        ),
    )
