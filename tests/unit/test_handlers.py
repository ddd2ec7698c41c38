"""
Unit tests for the handlers — request parsing, transaction scope and change log.

The transaction runner double simply hands a sentinel connection to the
work function, so the tests observe exactly what each handler runs inside
its transaction.
"""

from __future__ import annotations

import json
import time
from unittest.mock import ANY, MagicMock

import pytest

from tc_dnssec.domain.models import DeliveryServiceRef, RotationRequest
from tc_dnssec.handlers import DNSSECHandlers, parse_generate_request
from tc_dnssec.railway import ErrorCode, ResultAssertions
from tc_dnssec.railway.result import Result
from tests.conftest import make_key_set

TX = object()

GENERATE_BODY = {
    "key": "cdn1",
    "ttl": 3600,
    "kskExpirationDays": 365,
    "zskExpirationDays": 30,
    "effectiveDateUnix": 1_700_000_000,
}


def _body(**overrides) -> bytes:
    return json.dumps({**GENERATE_BODY, **overrides}).encode()


@pytest.fixture()
def transactions() -> MagicMock:
    runner = MagicMock()
    runner.run.side_effect = lambda work, deadline=None: work(TX)
    return runner


@pytest.fixture()
def rotator() -> MagicMock:
    mock = MagicMock()
    mock.rotate.return_value = Result.success({"cdn1": make_key_set()})
    return mock


@pytest.fixture()
def key_store() -> MagicMock:
    store = MagicMock()
    store.delete.return_value = Result.success("cdn1")
    store.get.return_value = Result.success(
        {"cdn1": make_key_set(), "ds1": make_key_set("ds1.mycdn.example.com.")}
    )
    return store


@pytest.fixture()
def metadata() -> MagicMock:
    reader = MagicMock()
    reader.get_delivery_service_name_and_cdn.return_value = Result.success(
        DeliveryServiceRef(xml_id="ds1", cdn_name="cdn1")
    )
    return reader


@pytest.fixture()
def audit_log() -> MagicMock:
    log = MagicMock()
    log.append.side_effect = lambda tx, message, user=None: Result.success(message)
    return log


@pytest.fixture()
def handlers(transactions, rotator, key_store, metadata, audit_log) -> DNSSECHandlers:
    return DNSSECHandlers(
        transactions=transactions,
        rotator=rotator,
        key_store=key_store,
        metadata=metadata,
        audit_log=audit_log,
        request_timeout_seconds=30,
        clock=lambda: 1_800_000_000.7,
    )


class TestParseGenerateRequest:
    def test_parses_full_body(self) -> None:
        request = ResultAssertions.assert_success(parse_generate_request(_body()))
        assert request == RotationRequest(
            cdn_name="cdn1",
            ttl_seconds=3600,
            ksk_expiration_days=365,
            zsk_expiration_days=30,
            effective_date=1_700_000_000,
        )

    def test_accepts_numbers_as_strings(self) -> None:
        raw = _body(ttl="60", kskExpirationDays="10", zskExpirationDays="5")
        request = parse_generate_request(raw).value()
        assert (request.ttl_seconds, request.ksk_expiration_days) == (60, 10)

    def test_accepts_effective_date_alias(self) -> None:
        body = {k: v for k, v in GENERATE_BODY.items() if k != "effectiveDateUnix"}
        body["effectiveDate"] = 42
        assert parse_generate_request(json.dumps(body).encode()).value().effective_date == 42

    def test_effective_date_defaults_to_now(self) -> None:
        """
        GIVEN a body without effectiveDateUnix, sent at wall-clock time T
        WHEN it is parsed
        THEN the effective date is within a few seconds of T.
        """
        body = {k: v for k, v in GENERATE_BODY.items() if k != "effectiveDateUnix"}
        now = time.time()
        request = parse_generate_request(json.dumps(body).encode()).value()
        assert now - 5 <= request.effective_date <= now + 5

    @pytest.mark.parametrize(
        "raw",
        [
            b"not json",
            b"[]",
            _body(key=""),
            _body(ttl=0),
            _body(ttl="soon"),
            _body(kskExpirationDays=-1),
            json.dumps({"key": "cdn1"}).encode(),
        ],
    )
    def test_malformed_bodies_are_bad_requests(self, raw: bytes) -> None:
        result = parse_generate_request(raw)
        ResultAssertions.assert_failure(result, ErrorCode.BAD_REQUEST)
        ResultAssertions.assert_failure_message_contains(result, "parsing request")


class TestGenerate:
    def test_success_message_and_audit(
        self, handlers: DNSSECHandlers, rotator: MagicMock, audit_log: MagicMock
    ) -> None:
        """
        GIVEN a valid generate body from user "alice"
        WHEN generate is called
        THEN the rotation and the change-log entry run in the same transaction
             and the answer is "Successfully created dnssec keys for cdn1".
        """
        result = handlers.generate(_body(), user="alice")

        assert ResultAssertions.assert_success(result) == "Successfully created dnssec keys for cdn1"
        request = rotator.rotate.call_args.args[1]
        assert rotator.rotate.call_args.args[0] is TX
        assert request.cdn_name == "cdn1"
        audit_log.append.assert_called_once_with(TX, "Generated DNSSEC keys for CDN cdn1", "alice")

    def test_default_effective_date_comes_from_clock(
        self, handlers: DNSSECHandlers, rotator: MagicMock
    ) -> None:
        body = {k: v for k, v in GENERATE_BODY.items() if k != "effectiveDateUnix"}
        handlers.generate(json.dumps(body).encode())
        assert rotator.rotate.call_args.args[1].effective_date == 1_800_000_000

    def test_bad_body_never_opens_a_transaction(
        self, handlers: DNSSECHandlers, transactions: MagicMock
    ) -> None:
        result = handlers.generate(b"{}")
        ResultAssertions.assert_failure(result, ErrorCode.BAD_REQUEST)
        transactions.run.assert_not_called()

    def test_rotation_failure_skips_audit(
        self, handlers: DNSSECHandlers, rotator: MagicMock, audit_log: MagicMock
    ) -> None:
        rotator.rotate.return_value = Result.failure(
            ErrorCode.BUNDLE_MISSING, "no DNSSec keys for CDN 'cdn1'"
        )

        result = handlers.generate(_body())

        error = ResultAssertions.assert_failure(result, ErrorCode.BUNDLE_MISSING)
        assert error.message.startswith("generating and storing DNSSEC CDN keys: ")
        audit_log.append.assert_not_called()

    def test_passes_a_deadline_to_the_transaction(
        self, handlers: DNSSECHandlers, transactions: MagicMock
    ) -> None:
        handlers.generate(_body())
        deadline = transactions.run.call_args.args[1]
        assert 0 < deadline.remaining() <= 30

    def test_crash_becomes_internal_error(
        self, handlers: DNSSECHandlers, rotator: MagicMock
    ) -> None:
        rotator.rotate.side_effect = RuntimeError("unexpected")
        result = handlers.generate(_body())
        ResultAssertions.assert_failure(result, ErrorCode.INTERNAL_ERROR)


class TestDelete:
    def test_deletes_and_audits(
        self, handlers: DNSSECHandlers, key_store: MagicMock, audit_log: MagicMock
    ) -> None:
        result = handlers.delete("cdn1", user="bob")

        assert ResultAssertions.assert_success(result) == "Successfully deleted dnssec for cdn1"
        key_store.delete.assert_called_once_with("cdn1", ANY)
        audit_log.append.assert_called_once_with(TX, "Deleted DNSSEC keys for CDN cdn1", "bob")

    def test_repeated_delete_succeeds(self, handlers: DNSSECHandlers) -> None:
        ResultAssertions.assert_success(handlers.delete("cdn1"))
        ResultAssertions.assert_success(handlers.delete("cdn1"))

    @pytest.mark.parametrize("name", ["", None])
    def test_missing_name_is_bad_request(self, handlers: DNSSECHandlers, name) -> None:
        ResultAssertions.assert_failure(handlers.delete(name), ErrorCode.BAD_REQUEST)

    def test_store_failure_skips_audit(
        self, handlers: DNSSECHandlers, key_store: MagicMock, audit_log: MagicMock
    ) -> None:
        key_store.delete.return_value = Result.failure(ErrorCode.STORE_UNAVAILABLE, "down")

        result = handlers.delete("cdn1")

        ResultAssertions.assert_failure(result, ErrorCode.STORE_UNAVAILABLE)
        audit_log.append.assert_not_called()


class TestReads:
    def test_get_cdn_keys_returns_wire_document(self, handlers: DNSSECHandlers) -> None:
        document = ResultAssertions.assert_success(handlers.get_cdn_keys("cdn1"))
        assert set(document) == {"cdn1", "ds1"}
        assert document["cdn1"]["ksk"][0]["status"] == "new"

    def test_get_cdn_keys_absent_is_not_found(
        self, handlers: DNSSECHandlers, key_store: MagicMock
    ) -> None:
        key_store.get.return_value = Result.success(None)
        ResultAssertions.assert_failure(handlers.get_cdn_keys("cdn1"), ErrorCode.NOT_FOUND)

    def test_get_delivery_service_keys(self, handlers: DNSSECHandlers, key_store: MagicMock) -> None:
        document = ResultAssertions.assert_success(handlers.get_delivery_service_keys(7))
        assert set(document) == {"ksk", "zsk"}
        assert document["ksk"][0]["name"] == "ds1.mycdn.example.com."
        key_store.get.assert_called_once_with("cdn1", ANY)

    def test_unknown_delivery_service_is_not_found(
        self, handlers: DNSSECHandlers, metadata: MagicMock
    ) -> None:
        metadata.get_delivery_service_name_and_cdn.return_value = Result.success(None)
        result = handlers.get_delivery_service_keys(99)
        ResultAssertions.assert_failure(result, ErrorCode.NOT_FOUND)

    def test_delivery_service_without_keys_is_not_found(
        self, handlers: DNSSECHandlers, key_store: MagicMock
    ) -> None:
        key_store.get.return_value = Result.success({"cdn1": make_key_set()})
        result = handlers.get_delivery_service_keys(7)
        ResultAssertions.assert_failure_message_contains(result, "no DNSSEC keys for delivery service")
