"""
PostgreSQL metadata adapter — read-only Traffic Ops queries via psycopg (v3).

Adapter layer — implements the MetadataReader port. Every method runs on the
connection handed in by the caller, inside the caller's transaction; this
module never begins, commits or rolls back.

Tables read (owned by Traffic Ops, not by this package):
  deliveryservice, cdn, type, deliveryservice_regex, regex

No ORM — raw parameterized SQL.
"""

from __future__ import annotations

from typing import Any

import psycopg
import structlog

from tc_dnssec.domain.models import (
    CDNDeliveryServices,
    DeliveryServiceDescriptor,
    DeliveryServiceRef,
    DSType,
    MatchEntry,
    MatchList,
    MatchType,
)
from tc_dnssec.railway import ErrorCode
from tc_dnssec.railway.result import Result

log = structlog.get_logger()

# LEFT JOINs so a CDN without delivery services still yields its domain.
_SELECT_CDN_DELIVERY_SERVICES = """
SELECT cdn.domain_name, ds.xml_id, ds.protocol, t.name, ds.routing_name
FROM cdn
LEFT JOIN deliveryservice AS ds ON ds.cdn_id = cdn.id
LEFT JOIN type AS t ON ds.type = t.id
WHERE cdn.name = %s
ORDER BY ds.xml_id
"""

_SELECT_MATCH_LISTS = """
SELECT ds.xml_id, t.name, r.pattern, COALESCE(dsr.set_number, 0)
FROM regex AS r
JOIN deliveryservice_regex AS dsr ON dsr.regex = r.id
JOIN deliveryservice AS ds ON ds.id = dsr.deliveryservice
JOIN type AS t ON r.type = t.id
WHERE ds.xml_id = ANY(%s)
ORDER BY ds.xml_id, dsr.set_number, r.id
"""

_SELECT_DS_NAME_AND_CDN = """
SELECT ds.xml_id, cdn.name
FROM deliveryservice AS ds
JOIN cdn ON cdn.id = ds.cdn_id
WHERE ds.id = %s
"""


class _InvalidRow(ValueError):
    """A row that doesn't fit the Traffic Ops enumerations."""


class PsycopgMetadataReader:
    """
    Query delivery services and match lists from the Traffic Ops database.

    Implements the MetadataReader port.
    """

    def list_cdn_delivery_services(
        self, tx: psycopg.Connection[Any], cdn_name: str
    ) -> Result[CDNDeliveryServices | None]:
        """
        Delivery services of a CDN plus the CDN's domain.

        Success(None) when no CDN has that name.
        """
        return Result.from_computation(
            lambda: self._query_cdn_delivery_services(tx, cdn_name),
            ErrorCode.DATABASE_ERROR,
            f"getting delivery services of CDN '{cdn_name}'",
        )

    def get_match_lists(
        self, tx: psycopg.Connection[Any], ds_names: list[str]
    ) -> Result[dict[str, MatchList]]:
        """Match lists keyed by delivery service xml_id; names without regexes are absent."""
        if not ds_names:
            return Result.success({})
        return Result.from_computation(
            lambda: self._query_match_lists(tx, ds_names),
            ErrorCode.DATABASE_ERROR,
            "getting delivery service match lists",
        )

    def get_delivery_service_name_and_cdn(
        self, tx: psycopg.Connection[Any], ds_id: int
    ) -> Result[DeliveryServiceRef | None]:
        return Result.from_computation(
            lambda: self._query_ds_name_and_cdn(tx, ds_id),
            ErrorCode.DATABASE_ERROR,
            f"getting name and CDN of delivery service {ds_id}",
        )

    # ─────────────────────── Queries ───────────────────────

    def _query_cdn_delivery_services(
        self, tx: psycopg.Connection[Any], cdn_name: str
    ) -> CDNDeliveryServices | None:
        with tx.cursor() as cur:
            cur.execute(_SELECT_CDN_DELIVERY_SERVICES, (cdn_name,))
            rows = cur.fetchall()
        if not rows:
            return None

        cdn_domain = rows[0][0]
        delivery_services = []
        for _, xml_id, protocol, type_name, routing_name in rows:
            if xml_id is None:
                continue
            ds_type = DSType.from_string(type_name or "")
            if ds_type is None:
                raise _InvalidRow(
                    f"got invalid delivery service type '{type_name}' for '{xml_id}'"
                )
            delivery_services.append(
                DeliveryServiceDescriptor(
                    xml_id=xml_id,
                    protocol=protocol,
                    ds_type=ds_type,
                    routing_name=routing_name or "",
                )
            )
        log.debug(
            "metadata.delivery_services",
            cdn=cdn_name,
            cdn_domain=cdn_domain,
            count=len(delivery_services),
        )
        return CDNDeliveryServices(cdn_domain=cdn_domain, delivery_services=delivery_services)

    def _query_match_lists(
        self, tx: psycopg.Connection[Any], ds_names: list[str]
    ) -> dict[str, MatchList]:
        match_lists: dict[str, MatchList] = {}
        with tx.cursor() as cur:
            cur.execute(_SELECT_MATCH_LISTS, (ds_names,))
            for xml_id, type_name, pattern, set_number in cur:
                match_type = MatchType.from_string(type_name)
                if match_type is None:
                    raise _InvalidRow(f"got invalid regex type '{type_name}' for '{xml_id}'")
                match_lists.setdefault(xml_id, []).append(
                    MatchEntry(match_type=match_type, pattern=pattern, set_number=set_number)
                )
        return match_lists

    def _query_ds_name_and_cdn(
        self, tx: psycopg.Connection[Any], ds_id: int
    ) -> DeliveryServiceRef | None:
        with tx.cursor() as cur:
            cur.execute(_SELECT_DS_NAME_AND_CDN, (ds_id,))
            row = cur.fetchone()
        if row is None:
            return None
        return DeliveryServiceRef(xml_id=row[0], cdn_name=row[1])
