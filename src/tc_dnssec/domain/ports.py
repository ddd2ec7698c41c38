"""
Ports — Protocol-based interfaces for infrastructure adapters.

These define WHAT the rotation needs without specifying HOW:

  Domain ← Ports (protocols) ← Adapters (implementations)

Each port is a Protocol (structural typing) so adapters satisfy the contract
simply by implementing the methods — no inheritance.

Database-facing ports take the caller's open transaction and never begin,
commit or roll back themselves; the handler owns the transaction.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from tc_dnssec.domain.models import (
    CDNDeliveryServices,
    CDNDNSSECBundle,
    Deadline,
    DeliveryServiceRef,
    DNSSECKeyRecord,
    KeyKind,
    MatchList,
)
from tc_dnssec.railway.result import Result

if TYPE_CHECKING:
    import psycopg

    type Transaction = psycopg.Connection[Any]
else:
    type Transaction = Any


@runtime_checkable
class KeyMaterialFactory(Protocol):
    """
    Port: mint one DNSSEC key for a zone.

    The returned record always has status "new". KSKs carry a DS record.
    Fails with CRYPTO_ERROR, or REQUEST_CANCELLED when the deadline passes.
    """

    def mint(
        self,
        zone: str,
        kind: KeyKind,
        inception: int,
        expiration: int,
        ttl_seconds: int,
        deadline: Deadline | None = None,
    ) -> Result[DNSSECKeyRecord]: ...


@runtime_checkable
class KeyStore(Protocol):
    """
    Port: whole-bundle persistence of a CDN's keys under (dnssec, cdn name).

    get() succeeds with None when the CDN has no bundle; delete() succeeds
    when there is nothing to delete.
    """

    def get(
        self, cdn_name: str, deadline: Deadline | None = None
    ) -> Result[CDNDNSSECBundle | None]: ...

    def put(
        self, cdn_name: str, bundle: CDNDNSSECBundle, deadline: Deadline | None = None
    ) -> Result[str]: ...

    def delete(self, cdn_name: str, deadline: Deadline | None = None) -> Result[str]: ...


@runtime_checkable
class MetadataReader(Protocol):
    """Port: read-only Traffic Ops queries. Missing rows are None, never failures."""

    def list_cdn_delivery_services(
        self, tx: Transaction, cdn_name: str
    ) -> Result[CDNDeliveryServices | None]: ...

    def get_match_lists(
        self, tx: Transaction, ds_names: list[str]
    ) -> Result[dict[str, MatchList]]: ...

    def get_delivery_service_name_and_cdn(
        self, tx: Transaction, ds_id: int
    ) -> Result[DeliveryServiceRef | None]: ...


@runtime_checkable
class AuditLog(Protocol):
    """Port: append a change-log entry inside the caller's transaction."""

    def append(self, tx: Transaction, message: str, user: str | None = None) -> Result[str]: ...
