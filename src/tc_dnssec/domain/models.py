"""
Domain models — value objects for DNSSEC keys, delivery services and match lists.

Key material lives only in the per-CDN bundle stored in Riak:

  CDNDNSSECBundle = {zone name → DNSSECKeySet}
  DNSSECKeySet    = KSK list + ZSK list, index 0 is the active key,
                    later indexes are earlier generations kept for rollover.

Delivery-service descriptors and match lists are read from the Traffic Ops
database for the duration of one rotation and never persisted by this package.

All models are frozen dataclasses; "changing" a key means building a new one
with dataclasses.replace().
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import Enum, unique


@unique
class KeyKind(Enum):
    """The two tiers of the DNSSEC signing hierarchy."""

    KSK = "ksk"
    ZSK = "zsk"

    @property
    def dnskey_flags(self) -> int:
        """DNSKEY flags field: 257 (SEP + zone key) for KSKs, 256 for ZSKs."""
        return 257 if self is KeyKind.KSK else 256


@unique
class KeyStatus(Enum):
    NEW = "new"
    EXISTING = "existing"


@dataclass(frozen=True, slots=True)
class DSRecord:
    """Delegation-signer data published at the parent zone for a KSK."""

    algorithm: int
    digest_type: int
    digest: str


@dataclass(frozen=True, slots=True)
class DNSSECKeyRecord:
    """
    One DNSSEC key.

    `public` holds the DNSKEY resource record in presentation form and
    `private` the BIND Private-key-format text; both are base64-encoded on the
    wire. Times are UTC unix seconds. `ds_record` is set for KSKs only.
    """

    name: str
    status: KeyStatus
    inception: int
    expiration: int
    effective_date: int
    ttl_seconds: int
    public: bytes = field(repr=False)
    private: bytes = field(repr=False)
    ds_record: DSRecord | None = None

    def demoted(self, ttl_seconds: int, expiration: int) -> DNSSECKeyRecord:
        """Copy of this key marked as the previous generation, expiring at `expiration`."""
        return replace(
            self,
            status=KeyStatus.EXISTING,
            ttl_seconds=ttl_seconds,
            expiration=expiration,
        )


@dataclass(frozen=True, slots=True)
class DNSSECKeySet:
    """KSKs and ZSKs of one zone. Order is significant: index 0 is the active key."""

    ksk: list[DNSSECKeyRecord] = field(default_factory=list)
    zsk: list[DNSSECKeyRecord] = field(default_factory=list)

    @property
    def head_ksk(self) -> DNSSECKeyRecord | None:
        return self.ksk[0] if self.ksk else None

    @property
    def head_zsk(self) -> DNSSECKeyRecord | None:
        return self.zsk[0] if self.zsk else None

    def keys(self, kind: KeyKind) -> list[DNSSECKeyRecord]:
        return self.ksk if kind is KeyKind.KSK else self.zsk


# Keyed by the CDN name (apex keys) plus one entry per delivery service xml_id.
type CDNDNSSECBundle = dict[str, DNSSECKeySet]


# ─────────────────────── Delivery services ───────────────────────


@unique
class DSType(Enum):
    """Traffic Ops delivery-service types."""

    HTTP = "HTTP"
    HTTP_NO_CACHE = "HTTP_NO_CACHE"
    HTTP_LIVE = "HTTP_LIVE"
    HTTP_LIVE_NATNL = "HTTP_LIVE_NATNL"
    DNS = "DNS"
    DNS_LIVE = "DNS_LIVE"
    DNS_LIVE_NATNL = "DNS_LIVE_NATNL"
    ANY_MAP = "ANY_MAP"
    STEERING = "STEERING"
    CLIENT_STEERING = "CLIENT_STEERING"

    @classmethod
    def from_string(cls, name: str) -> DSType | None:
        """Case-insensitive lookup; None for names Traffic Ops doesn't define."""
        try:
            return cls(name.upper())
        except ValueError:
            return None

    def is_http(self) -> bool:
        return self in _HTTP_TYPES

    def is_dns(self) -> bool:
        return self in _DNS_TYPES

    def uses_dnssec(self) -> bool:
        """Only HTTP- and DNS-routed delivery services get their own keys."""
        return self.is_http() or self.is_dns()


_HTTP_TYPES = frozenset({
    DSType.HTTP,
    DSType.HTTP_NO_CACHE,
    DSType.HTTP_LIVE,
    DSType.HTTP_LIVE_NATNL,
    DSType.STEERING,
    DSType.CLIENT_STEERING,
})
_DNS_TYPES = frozenset({DSType.DNS, DSType.DNS_LIVE, DSType.DNS_LIVE_NATNL})


@dataclass(frozen=True, slots=True)
class DeliveryServiceDescriptor:
    """
    A delivery service as needed for key generation.

    `protocol` uses the Traffic Ops enumeration: 0 HTTP, 1 HTTPS,
    2 HTTP and HTTPS, 3 HTTP to HTTPS redirect; None behaves like HTTP.
    """

    xml_id: str
    protocol: int | None
    ds_type: DSType
    routing_name: str


@dataclass(frozen=True, slots=True)
class CDNDeliveryServices:
    """Delivery services of one CDN together with the CDN's DNS domain."""

    cdn_domain: str
    delivery_services: list[DeliveryServiceDescriptor] = field(default_factory=list)

    @property
    def names(self) -> list[str]:
        return [ds.xml_id for ds in self.delivery_services]


@dataclass(frozen=True, slots=True)
class DeliveryServiceRef:
    """Name of a delivery service and of the CDN it belongs to."""

    xml_id: str
    cdn_name: str


# ─────────────────────── Match lists ───────────────────────


@unique
class MatchType(Enum):
    HOST_REGEXP = "HOST_REGEXP"
    PATH_REGEXP = "PATH_REGEXP"
    HEADER_REGEXP = "HEADER_REGEXP"

    @classmethod
    def from_string(cls, name: str) -> MatchType | None:
        try:
            return cls(name.upper())
        except ValueError:
            return None


@dataclass(frozen=True, slots=True)
class MatchEntry:
    """
    One regex of a delivery service's match list.

    Set number 0 holds the canonical host regex; higher set numbers carry
    literal host names.
    """

    match_type: MatchType
    pattern: str
    set_number: int = 0


type MatchList = list[MatchEntry]


# ─────────────────────── Requests ───────────────────────


@dataclass(frozen=True, slots=True)
class RotationRequest:
    """A parsed generate/refresh request."""

    cdn_name: str
    ttl_seconds: int
    ksk_expiration_days: int
    zsk_expiration_days: int
    effective_date: int


@dataclass(frozen=True, slots=True)
class Deadline:
    """
    Point in (monotonic) time by which a request has to finish.

    Every blocking call derives its own timeout from remaining().
    """

    expires_at: float

    @staticmethod
    def after(seconds: float) -> Deadline:
        return Deadline(expires_at=time.monotonic() + seconds)

    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0
