"""
Rotation — produce a new generation of DNSSEC keys for a CDN and its delivery services.

Domain layer — all I/O is injected via ports (Protocol interfaces).

The rotation connects its stages via flat_map, forming a railway:

  KeyStore.get(cdn)                       no bundle → BUNDLE_MISSING
    → MetadataReader.list_cdn_delivery_services(tx, cdn)
      → MetadataReader.get_match_lists(tx, names)
        → roll the CDN apex key set
          → roll one key set per HTTP/DNS delivery service
            → KeyStore.put(cdn, bundle)

Rolling a key set mints a fresh KSK and ZSK per zone at index 0 and keeps
every earlier key behind them; keys that were "new" become "existing" with
the request TTL and an expiration equal to the effective date, so resolvers
can follow the DNSKEY handover.

Any failure aborts before the put, leaving the stored bundle untouched. The
transaction passed in is only read from; committing it is the caller's job.
"""

from __future__ import annotations

from collections.abc import Iterator

import structlog

from tc_dnssec.domain.example_urls import build_example_urls, zones_for_urls
from tc_dnssec.domain.models import (
    CDNDeliveryServices,
    CDNDNSSECBundle,
    Deadline,
    DeliveryServiceDescriptor,
    DNSSECKeyRecord,
    DNSSECKeySet,
    KeyKind,
    KeyStatus,
    MatchList,
    RotationRequest,
)
from tc_dnssec.domain.ports import KeyMaterialFactory, KeyStore, MetadataReader, Transaction
from tc_dnssec.railway import ErrorCode
from tc_dnssec.railway.result import Result

log = structlog.get_logger()

SECONDS_PER_DAY = 86400


def demote(
    keys: list[DNSSECKeyRecord], ttl_seconds: int, effective_date: int
) -> list[DNSSECKeyRecord]:
    """Mark the current generation "existing", expiring at the effective date; order is kept."""
    return [
        key.demoted(ttl_seconds, effective_date) if key.status is KeyStatus.NEW else key
        for key in keys
    ]


class Rotator:
    """Rotate the DNSSEC keys of one CDN."""

    def __init__(
        self,
        key_store: KeyStore,
        metadata: MetadataReader,
        key_factory: KeyMaterialFactory,
    ) -> None:
        self._key_store = key_store
        self._metadata = metadata
        self._key_factory = key_factory

    def rotate(
        self,
        tx: Transaction,
        request: RotationRequest,
        deadline: Deadline | None = None,
    ) -> Result[CDNDNSSECBundle]:
        """
        Rotate every key of `request.cdn_name` and write the new bundle.

        Returns the bundle that was written.
        """
        cdn_name = request.cdn_name
        return (
            self._key_store.get(cdn_name, deadline)
            .with_context("getting old dnssec keys")
            .flat_map(lambda old: self._require_bundle(cdn_name, old))
            .flat_map(lambda old: self._rotate_with_metadata(tx, request, old, deadline))
            .flat_map(lambda bundle: self._store(cdn_name, bundle, deadline))
        )

    # ─────────────────────── Stages ───────────────────────

    @staticmethod
    def _require_bundle(
        cdn_name: str, old: CDNDNSSECBundle | None
    ) -> Result[CDNDNSSECBundle]:
        if old is None:
            # Minting a CDN's first keys is a separate, explicit operation.
            return Result.failure(
                ErrorCode.BUNDLE_MISSING,
                f"getting DNSSec keys from Riak: no DNSSec keys for CDN '{cdn_name}'",
            )
        return Result.success(old)

    def _rotate_with_metadata(
        self,
        tx: Transaction,
        request: RotationRequest,
        old: CDNDNSSECBundle,
        deadline: Deadline | None,
    ) -> Result[CDNDNSSECBundle]:
        cdn_name = request.cdn_name
        return (
            self._metadata.list_cdn_delivery_services(tx, cdn_name)
            .with_context("getting cdn delivery services")
            .flat_map(
                lambda found: Result.from_optional(
                    found, f"no CDN named '{cdn_name}'", ErrorCode.BAD_REQUEST
                )
            )
            .flat_map(
                lambda cdn: self._metadata.get_match_lists(tx, cdn.names)
                .with_context("getting delivery service matchlists")
                .flat_map(
                    lambda match_lists: self._build_bundle(
                        request, old, cdn, match_lists, deadline
                    )
                )
            )
        )

    def _build_bundle(
        self,
        request: RotationRequest,
        old: CDNDNSSECBundle,
        cdn: CDNDeliveryServices,
        match_lists: dict[str, MatchList],
        deadline: Deadline | None,
    ) -> Result[CDNDNSSECBundle]:
        cdn_name = request.cdn_name
        cdn_zone = f"{cdn.cdn_domain.strip('.')}."

        def _with_ds_keys(cdn_keys: DNSSECKeySet) -> Result[CDNDNSSECBundle]:
            log.info(
                "rotation.cdn_keys_minted",
                cdn=cdn_name,
                zone=cdn_zone,
                ksk=len(cdn_keys.ksk),
                zsk=len(cdn_keys.zsk),
            )
            return (
                Result.all_of(
                    self._delivery_service_key_sets(request, old, cdn, match_lists, deadline)
                )
                .with_context("generating delivery service DNSSEC keys")
                .map(lambda ds_sets: {cdn_name: cdn_keys, **dict(ds_sets)})
            )

        # The CDN key set and the DS key sets share one namespace in the bundle.
        if any(
            ds.xml_id == cdn_name and ds.ds_type.uses_dnssec() for ds in cdn.delivery_services
        ):
            return Result.failure(
                ErrorCode.BAD_REQUEST,
                f"delivery service '{cdn_name}' has the same name as its CDN",
            )

        return (
            self._roll_key_set(old.get(cdn_name), [cdn_zone], request, deadline)
            .with_context(f"generating DNSSEC keys for CDN '{cdn_name}'")
            .flat_map(_with_ds_keys)
            .peek(lambda bundle: self._log_dropped(cdn_name, old, bundle))
        )

    def _delivery_service_key_sets(
        self,
        request: RotationRequest,
        old: CDNDNSSECBundle,
        cdn: CDNDeliveryServices,
        match_lists: dict[str, MatchList],
        deadline: Deadline | None,
    ) -> Iterator[Result[tuple[str, DNSSECKeySet]]]:
        """Lazily yield one key set per eligible delivery service."""
        for ds in cdn.delivery_services:
            if not ds.ds_type.uses_dnssec():
                log.debug("rotation.skip_delivery_service", ds=ds.xml_id, type=ds.ds_type.value)
                continue
            yield self._delivery_service_key_set(
                request,
                old.get(ds.xml_id),
                ds,
                match_lists.get(ds.xml_id),
                cdn.cdn_domain,
                deadline,
            )

    def _delivery_service_key_set(
        self,
        request: RotationRequest,
        previous: DNSSECKeySet | None,
        ds: DeliveryServiceDescriptor,
        match_list: MatchList | None,
        cdn_domain: str,
        deadline: Deadline | None,
    ) -> Result[tuple[str, DNSSECKeySet]]:
        if not match_list:
            return Result.failure(
                ErrorCode.MATCH_LIST_ERROR,
                f"no regex match list found for delivery service '{ds.xml_id}'",
            )
        log.info("rotation.delivery_service", ds=ds.xml_id)
        return (
            build_example_urls(ds.protocol, ds.ds_type, ds.routing_name, match_list, cdn_domain)
            .with_context(f"delivery service '{ds.xml_id}'")
            .map(zones_for_urls)
            .flat_map(lambda zones: self._roll_key_set(previous, zones, request, deadline))
            .map(lambda key_set: (ds.xml_id, key_set))
        )

    def _roll_key_set(
        self,
        previous: DNSSECKeySet | None,
        zones: list[str],
        request: RotationRequest,
        deadline: Deadline | None,
    ) -> Result[DNSSECKeySet]:
        """New KSK/ZSK per zone at the head, the previous generation demoted behind them."""
        previous = previous or DNSSECKeySet()
        ttl, effective_date = request.ttl_seconds, request.effective_date
        return self._mint_all(
            zones, KeyKind.KSK, request.ksk_expiration_days, request, deadline
        ).flat_map(
            lambda ksks: self._mint_all(
                zones, KeyKind.ZSK, request.zsk_expiration_days, request, deadline
            ).map(
                lambda zsks: DNSSECKeySet(
                    ksk=ksks + demote(previous.ksk, ttl, effective_date),
                    zsk=zsks + demote(previous.zsk, ttl, effective_date),
                )
            )
        )

    def _mint_all(
        self,
        zones: list[str],
        kind: KeyKind,
        expiration_days: int,
        request: RotationRequest,
        deadline: Deadline | None,
    ) -> Result[list[DNSSECKeyRecord]]:
        inception = request.effective_date
        expiration = inception + expiration_days * SECONDS_PER_DAY
        return Result.all_of(
            self._key_factory.mint(zone, kind, inception, expiration, request.ttl_seconds, deadline)
            for zone in zones
        )

    def _store(
        self, cdn_name: str, bundle: CDNDNSSECBundle, deadline: Deadline | None
    ) -> Result[CDNDNSSECBundle]:
        return (
            self._key_store.put(cdn_name, bundle, deadline)
            .with_context("putting Riak DNSSEC CDN keys")
            .map(lambda _: bundle)
        )

    @staticmethod
    def _log_dropped(cdn_name: str, old: CDNDNSSECBundle, new: CDNDNSSECBundle) -> None:
        dropped = sorted(set(old) - set(new))
        if dropped:
            log.info("rotation.dropped_key_sets", cdn=cdn_name, zones=dropped)
