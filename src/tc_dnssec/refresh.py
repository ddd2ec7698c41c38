"""
Scheduled refresh — rotate CDN keys before they expire.

For every configured CDN the refresher decides whether a rotation is due:

  - the head KSK or head ZSK of the CDN key set expires within the threshold
  - the CDN key set has no KSK or ZSK at all
  - an HTTP/DNS delivery service of the CDN has no key set yet

and, if so, runs the same rotation as POST /cdns/dnssecks/generate. CDNs
without a stored bundle are skipped: their first keys are minted explicitly.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from functools import partial

import structlog

from tc_dnssec.domain.models import (
    CDNDeliveryServices,
    CDNDNSSECBundle,
    Deadline,
    RotationRequest,
)
from tc_dnssec.domain.ports import KeyStore, MetadataReader
from tc_dnssec.handlers import DNSSECHandlers, TransactionRunner
from tc_dnssec.railway import ErrorCode, LoggingExecutionContext
from tc_dnssec.railway.result import Result
from tc_dnssec.rotation import SECONDS_PER_DAY

log = structlog.get_logger()


class KeyRefresher:
    """Rotate the configured CDNs whose keys are about to expire."""

    def __init__(
        self,
        handlers: DNSSECHandlers,
        key_store: KeyStore,
        metadata: MetadataReader,
        transactions: TransactionRunner,
        cdns: list[str],
        threshold_days: int = 7,
        ttl_seconds: int = 60,
        ksk_expiration_days: int = 365,
        zsk_expiration_days: int = 30,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._handlers = handlers
        self._key_store = key_store
        self._metadata = metadata
        self._transactions = transactions
        self._cdns = cdns
        self._threshold_seconds = threshold_days * SECONDS_PER_DAY
        self._ttl_seconds = ttl_seconds
        self._ksk_expiration_days = ksk_expiration_days
        self._zsk_expiration_days = zsk_expiration_days
        self._clock = clock

    def refresh_all(self) -> Result[int]:
        """
        Refresh every configured CDN; returns how many were rotated.

        One CDN failing doesn't stop the others; the first failure is
        reported once all CDNs have been tried.
        """
        rotated = 0
        failed: list[str] = []
        first_failure: Result[int] | None = None
        context = LoggingExecutionContext(operation="RefreshCDN")
        for cdn_name in self._cdns:
            result = context.execute(partial(self.refresh_cdn, cdn_name))
            if result.is_failure():
                log.error(
                    "refresh.cdn_failed",
                    cdn=cdn_name,
                    error_code=result.error().code.value,
                    error=result.error().full_stack_trace(),
                )
                failed.append(cdn_name)
                first_failure = first_failure or Result.failure_from(result.error())
            elif result.value():
                rotated += 1
        if first_failure is not None:
            return first_failure.with_context(f"refreshing DNSSEC keys of {', '.join(failed)}")
        log.info("refresh.completed", cdns=len(self._cdns), rotated=rotated)
        return Result.success(rotated)

    def refresh_cdn(self, cdn_name: str) -> Result[bool]:
        """Rotate one CDN if due; Success(True) when a rotation ran."""
        deadline = self._handlers.new_deadline()
        return self._rotation_reason(cdn_name, deadline).flat_map(
            lambda reason: self._rotate(cdn_name, reason)
        )

    def _rotate(self, cdn_name: str, reason: str | None) -> Result[bool]:
        if reason is None:
            log.debug("refresh.not_due", cdn=cdn_name)
            return Result.success(False)
        log.info("refresh.rotating", cdn=cdn_name, reason=reason)
        request = RotationRequest(
            cdn_name=cdn_name,
            ttl_seconds=self._ttl_seconds,
            ksk_expiration_days=self._ksk_expiration_days,
            zsk_expiration_days=self._zsk_expiration_days,
            effective_date=int(self._clock()),
        )
        return self._handlers.rotate(request, user=None).map(lambda _: True)

    def _rotation_reason(self, cdn_name: str, deadline: Deadline) -> Result[str | None]:
        """Why `cdn_name` needs rotating now, or None if it doesn't."""

        def _check(bundle: CDNDNSSECBundle | None) -> Result[str | None]:
            if bundle is None:
                log.warning("refresh.no_bundle", cdn=cdn_name)
                return Result.success(None)
            reason = self._expiry_reason(cdn_name, bundle)
            if reason is not None:
                return Result.success(reason)
            return self._missing_delivery_service_keys(cdn_name, bundle, deadline)

        return self._key_store.get(cdn_name, deadline).flat_map(_check)

    def _expiry_reason(self, cdn_name: str, bundle: CDNDNSSECBundle) -> str | None:
        key_set = bundle.get(cdn_name)
        if key_set is None or key_set.head_ksk is None or key_set.head_zsk is None:
            return "CDN key set incomplete"
        horizon = int(self._clock()) + self._threshold_seconds
        if key_set.head_ksk.expiration <= horizon:
            return "KSK expiring"
        if key_set.head_zsk.expiration <= horizon:
            return "ZSK expiring"
        return None

    def _missing_delivery_service_keys(
        self, cdn_name: str, bundle: CDNDNSSECBundle, deadline: Deadline
    ) -> Result[str | None]:
        def _missing(found: CDNDeliveryServices | None) -> Result[str | None]:
            if found is None:
                return Result.failure(ErrorCode.BAD_REQUEST, f"no CDN named '{cdn_name}'")
            missing = [
                ds.xml_id
                for ds in found.delivery_services
                if ds.ds_type.uses_dnssec() and ds.xml_id not in bundle
            ]
            if missing:
                return Result.success(f"delivery services without keys: {', '.join(missing)}")
            return Result.success(None)

        return self._transactions.run(
            lambda tx: self._metadata.list_cdn_delivery_services(tx, cdn_name), deadline
        ).flat_map(_missing)
