"""
Handlers — the DNSSEC key operations exposed over HTTP, independent of the web framework.

Each handler:
  1. parses and validates its input (BAD_REQUEST on malformed input)
  2. creates the request deadline
  3. runs its work inside one Traffic Ops transaction that commits only
     on success (see tc_dnssec.adapters.database)
  4. appends a change-log entry inside that same transaction
  5. returns Result[...] — the web layer only maps it to a response

Handlers never raise; LoggingExecutionContext converts anything unexpected
into an INTERNAL_ERROR failure and logs the full chain.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from tc_dnssec.adapters.bundle_codec import bundle_to_document, key_set_to_document
from tc_dnssec.domain.models import (
    CDNDNSSECBundle,
    Deadline,
    DeliveryServiceRef,
    RotationRequest,
)
from tc_dnssec.domain.ports import AuditLog, KeyStore, MetadataReader, Transaction
from tc_dnssec.railway import ErrorCode, LoggingExecutionContext
from tc_dnssec.railway.result import Result
from tc_dnssec.rotation import Rotator

T = TypeVar("T")


class TransactionRunner(Protocol):
    """Runs Result-returning work in a transaction committed only on success."""

    def run(
        self, work: Callable[[Transaction], Result[T]], deadline: Deadline | None = None
    ) -> Result[T]: ...


class GenerateRequest(BaseModel):
    """
    Body of POST /cdns/dnssecks/generate.

    Numbers may arrive as JSON strings, as older Traffic Ops clients send them.
    """

    model_config = ConfigDict(extra="ignore")

    key: str = Field(min_length=1, description="CDN name")
    ttl: int = Field(ge=1, description="DNSKEY TTL in seconds")
    ksk_expiration_days: int = Field(ge=1, alias="kskExpirationDays")
    zsk_expiration_days: int = Field(ge=1, alias="zskExpirationDays")
    effective_date_unix: int | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("effectiveDateUnix", "effectiveDate"),
    )


def parse_generate_request(
    raw_body: bytes, clock: Callable[[], float] = time.time
) -> Result[RotationRequest]:
    """Validate a generate body; a missing effective date defaults to now."""
    try:
        body = GenerateRequest.model_validate_json(raw_body)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}" for err in e.errors()
        )
        return Result.failure(ErrorCode.BAD_REQUEST, f"parsing request: {errors}", e)
    effective_date = (
        body.effective_date_unix if body.effective_date_unix is not None else int(clock())
    )
    return Result.success(
        RotationRequest(
            cdn_name=body.key,
            ttl_seconds=body.ttl,
            ksk_expiration_days=body.ksk_expiration_days,
            zsk_expiration_days=body.zsk_expiration_days,
            effective_date=effective_date,
        )
    )


class DNSSECHandlers:
    """Generate/refresh, delete and read the DNSSEC keys of a CDN."""

    def __init__(
        self,
        transactions: TransactionRunner,
        rotator: Rotator,
        key_store: KeyStore,
        metadata: MetadataReader,
        audit_log: AuditLog,
        request_timeout_seconds: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._transactions = transactions
        self._rotator = rotator
        self._key_store = key_store
        self._metadata = metadata
        self._audit_log = audit_log
        self._request_timeout = request_timeout_seconds
        self._clock = clock

    def new_deadline(self) -> Deadline:
        return Deadline.after(self._request_timeout)

    # ─────────────────────── Generate / refresh ───────────────────────

    def generate(self, raw_body: bytes, user: str | None = None) -> Result[str]:
        """Rotate a CDN's keys; answers "Successfully created dnssec keys for <cdn>"."""
        return LoggingExecutionContext(operation="GenerateDNSSECKeys").execute(
            lambda: parse_generate_request(raw_body, self._clock).flat_map(
                lambda request: self.rotate(request, user)
            )
        )

    def rotate(
        self,
        request: RotationRequest,
        user: str | None = None,
        deadline: Deadline | None = None,
    ) -> Result[str]:
        """Run one rotation in its own transaction (shared by the API and the refresh job)."""
        deadline = deadline or self.new_deadline()
        cdn_name = request.cdn_name
        structlog.contextvars.bind_contextvars(cdn=cdn_name)
        try:
            return self._transactions.run(
                lambda tx: self._rotator.rotate(tx, request, deadline)
                .with_context("generating and storing DNSSEC CDN keys")
                .flat_map(
                    lambda _: self._audit_log.append(
                        tx, f"Generated DNSSEC keys for CDN {cdn_name}", user
                    )
                )
                .map(lambda _: f"Successfully created dnssec keys for {cdn_name}"),
                deadline,
            )
        finally:
            structlog.contextvars.unbind_contextvars("cdn")

    # ─────────────────────── Delete ───────────────────────

    def delete(self, name: str | None, user: str | None = None) -> Result[str]:
        """Delete a CDN's bundle. Idempotent: deleting an absent bundle succeeds."""
        if not name:
            return Result.failure(ErrorCode.BAD_REQUEST, "missing required parameter: name")
        deadline = self.new_deadline()
        return LoggingExecutionContext(operation="DeleteDNSSECKeys").execute(
            lambda: self._transactions.run(
                lambda tx: self._key_store.delete(name, deadline)
                .with_context("deleting cdn dnssec keys")
                .flat_map(
                    lambda _: self._audit_log.append(
                        tx, f"Deleted DNSSEC keys for CDN {name}", user
                    )
                )
                .map(lambda _: f"Successfully deleted dnssec for {name}"),
                deadline,
            )
        )

    # ─────────────────────── Reads ───────────────────────

    def get_cdn_keys(self, name: str) -> Result[dict[str, Any]]:
        """The stored bundle of a CDN in wire form; NOT_FOUND if there is none."""
        return LoggingExecutionContext(operation="GetCDNDNSSECKeys").execute(
            lambda: self._key_store.get(name, self.new_deadline())
            .flat_map(
                lambda bundle: Result.from_optional(bundle, f"no DNSSEC keys for CDN '{name}'")
            )
            .map(bundle_to_document)
        )

    def get_delivery_service_keys(self, ds_id: int) -> Result[dict[str, Any]]:
        """The key set of one delivery service, looked up in its CDN's bundle."""
        deadline = self.new_deadline()
        return LoggingExecutionContext(operation="GetDeliveryServiceDNSSECKeys").execute(
            lambda: self._transactions.run(
                lambda tx: self._metadata.get_delivery_service_name_and_cdn(tx, ds_id), deadline
            )
            .flat_map(
                lambda ref: Result.from_optional(ref, f"no delivery service with id {ds_id}")
            )
            .flat_map(lambda ref: self._delivery_service_key_set(ref, deadline))
        )

    def _delivery_service_key_set(
        self, ref: DeliveryServiceRef, deadline: Deadline
    ) -> Result[dict[str, Any]]:
        def _pick(bundle: CDNDNSSECBundle | None) -> Result[dict[str, Any]]:
            key_set = (bundle or {}).get(ref.xml_id)
            if key_set is None:
                return Result.failure(
                    ErrorCode.NOT_FOUND, f"no DNSSEC keys for delivery service '{ref.xml_id}'"
                )
            return Result.success(key_set_to_document(key_set))

        return self._key_store.get(ref.cdn_name, deadline).flat_map(_pick)
