"""
Shared test fixtures and builders for the tc-dnssec test suite.

Builders create domain objects with sensible defaults so each test only
spells out what it cares about. `fake_key_factory` mints deterministic keys
without any cryptography, keeping rotation tests fast.
"""

from __future__ import annotations

import itertools
from unittest.mock import MagicMock

import pytest

from tc_dnssec.domain.models import (
    CDNDeliveryServices,
    DeliveryServiceDescriptor,
    DNSSECKeyRecord,
    DNSSECKeySet,
    DSRecord,
    DSType,
    KeyKind,
    KeyStatus,
    MatchEntry,
    MatchType,
)
from tc_dnssec.railway.result import Result

CDN_NAME = "cdn1"
CDN_DOMAIN = "mycdn.example.com"
EFFECTIVE_DATE = 1_700_000_000


def make_key(
    name: str = "mycdn.example.com.",
    status: KeyStatus = KeyStatus.NEW,
    inception: int = EFFECTIVE_DATE - 86400,
    expiration: int = EFFECTIVE_DATE + 30 * 86400,
    ttl_seconds: int = 60,
    tag: str = "k",
    ds: bool = False,
) -> DNSSECKeyRecord:
    """Build a key record; `tag` ends up in the key material so keys can be told apart."""
    return DNSSECKeyRecord(
        name=name,
        status=status,
        inception=inception,
        expiration=expiration,
        effective_date=inception,
        ttl_seconds=ttl_seconds,
        public=f"{name} {ttl_seconds} IN DNSKEY 257 3 8 {tag}".encode(),
        private=f"Private-key-format: v1.3\n{tag}\n".encode(),
        ds_record=DSRecord(algorithm=8, digest_type=2, digest="ABCDEF") if ds else None,
    )


def make_key_set(zone: str = "mycdn.example.com.", tag: str = "old") -> DNSSECKeySet:
    return DNSSECKeySet(
        ksk=[make_key(zone, tag=f"{tag}-ksk", ds=True)],
        zsk=[make_key(zone, tag=f"{tag}-zsk")],
    )


def make_ds(
    xml_id: str,
    ds_type: DSType = DSType.HTTP,
    protocol: int | None = 0,
    routing_name: str = "cdn",
) -> DeliveryServiceDescriptor:
    return DeliveryServiceDescriptor(
        xml_id=xml_id, protocol=protocol, ds_type=ds_type, routing_name=routing_name
    )


def host_regex(pattern: str, set_number: int = 0) -> MatchEntry:
    return MatchEntry(match_type=MatchType.HOST_REGEXP, pattern=pattern, set_number=set_number)


def make_cdn(*delivery_services: DeliveryServiceDescriptor) -> CDNDeliveryServices:
    return CDNDeliveryServices(cdn_domain=CDN_DOMAIN, delivery_services=list(delivery_services))


@pytest.fixture()
def fake_key_factory() -> MagicMock:
    """
    A KeyMaterialFactory double that mints numbered keys.

    Every minted key carries "minted-<n>" in its material, n counting from 1.
    """
    counter = itertools.count(1)
    factory = MagicMock()

    def _mint(zone, kind, inception, expiration, ttl_seconds, deadline=None):  # type: ignore[no-untyped-def]
        return Result.success(
            DNSSECKeyRecord(
                name=zone,
                status=KeyStatus.NEW,
                inception=inception,
                expiration=expiration,
                effective_date=inception,
                ttl_seconds=ttl_seconds,
                public=f"minted-{next(counter)}".encode(),
                private=b"private",
                ds_record=(
                    DSRecord(algorithm=8, digest_type=2, digest="00FF")
                    if kind is KeyKind.KSK
                    else None
                ),
            )
        )

    factory.mint.side_effect = _mint
    return factory
