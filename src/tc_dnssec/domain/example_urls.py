"""
Example URLs — the canonical URLs of a delivery service, derived from its match list.

Only HOST_REGEXP entries contribute. For the canonical host regex (set 0)
the leading `.*` wildcard stands for the routing name and the trailing one
for the CDN domain:

    .*\\.example\\..*   →   <routing name>.example.<cdn domain>

Entries of other sets are literal host names. Every host yields one URL per
scheme of the delivery service's protocol, host-major, in match-list order
and without deduplication: consumers rely on the positions.
"""

from __future__ import annotations

import re

from tc_dnssec.domain.models import DSType, MatchList, MatchType
from tc_dnssec.railway import ErrorCode
from tc_dnssec.railway.result import Result

_LEADING_WILDCARD = re.compile(r"^\^?\.\*(?:\\\.)?")
_TRAILING_WILDCARD = re.compile(r"(?:\\\.)?\.\*\$?$")
# Regex syntax left in a host after wildcard expansion.
_REGEX_SYNTAX = re.compile(r"[\[\]()|+?{}^$*\\]")

_SCHEMES: dict[int, tuple[str, ...]] = {
    0: ("http",),
    1: ("https",),
    2: ("http", "https"),
    3: ("http", "https"),
}


def schemes_for(protocol: int | None) -> tuple[str, ...]:
    """URL schemes served by a delivery service; unknown or unset protocols mean plain HTTP."""
    if protocol is None:
        return ("http",)
    return _SCHEMES.get(protocol, ("http",))


def host_from_pattern(pattern: str, routing_name: str, cdn_domain: str, set_number: int = 0) -> str:
    """Turn one HOST_REGEXP pattern into a concrete host name."""
    if set_number != 0:
        return pattern.replace("\\.", ".")

    prefix = suffix = ""
    remainder = pattern
    leading = _LEADING_WILDCARD.match(remainder)
    if leading:
        prefix = routing_name
        remainder = remainder[leading.end():]
    trailing = _TRAILING_WILDCARD.search(remainder)
    if trailing:
        suffix = cdn_domain
        remainder = remainder[: trailing.start()]
    core = remainder.replace("\\.", ".").strip(".")
    return ".".join(part for part in (prefix, core, suffix.strip(".")) if part)


def build_example_urls(
    protocol: int | None,
    ds_type: DSType,
    routing_name: str,
    match_list: MatchList,
    cdn_domain: str,
) -> Result[list[str]]:
    """
    Build the example URLs of one delivery service.

    Delivery services that are neither HTTP- nor DNS-routed have none.
    An eligible delivery service without any HOST_REGEXP entry fails with
    MATCH_LIST_ERROR.
    """
    if not ds_type.uses_dnssec():
        return Result.success([])

    hosts = [
        host_from_pattern(entry.pattern, routing_name, cdn_domain, entry.set_number)
        for entry in match_list
        if entry.match_type is MatchType.HOST_REGEXP
    ]
    if not hosts:
        return Result.failure(ErrorCode.MATCH_LIST_ERROR, "match list has no HOST_REGEXP entry")
    unresolved = [host for host in hosts if _REGEX_SYNTAX.search(host)]
    if unresolved:
        return Result.failure(
            ErrorCode.MATCH_LIST_ERROR,
            f"host regex cannot be turned into a host name: {', '.join(unresolved)}",
        )

    schemes = schemes_for(protocol)
    return Result.success([f"{scheme}://{host}" for host in hosts for scheme in schemes])


def zones_for_urls(urls: list[str]) -> list[str]:
    """
    Fully-qualified zones signed for a set of example URLs.

    The first label of each host (the routing name) is a record inside the
    delivery service's zone. Zones repeat across schemes, so they are
    deduplicated here, keeping first-seen order.
    """
    zones: list[str] = []
    for url in urls:
        host = url.partition("://")[2].split("/", 1)[0].lower()
        labels = host.split(".")
        zone = ".".join(labels[1:]) if len(labels) > 2 else host
        fqdn = f"{zone}."
        if fqdn not in zones:
            zones.append(fqdn)
    return zones
