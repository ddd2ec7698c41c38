"""
Riak adapter — whole-bundle DNSSEC key storage over the Riak HTTP API via httpx.

Adapter layer — implements the KeyStore port.

Layout: bucket "dnssec", key = CDN name, value = JSON bundle
(see tc_dnssec.adapters.bundle_codec), content type application/json.

  GET    /buckets/dnssec/keys/{cdn}?r=quorum    200 bundle | 404 absent | 300 siblings
  PUT    /buckets/dnssec/keys/{cdn}?w=quorum    200/204
  DELETE /buckets/dnssec/keys/{cdn}?rw=quorum   204 | 404 (both mean "gone")

Every call opens its own httpx.Client (the cluster session) in a `with`
block, so the session is released on every exit path. Nodes are tried in
configured order; transport errors move on to the next node and the whole
sweep is retried with tenacity backoff. Each HTTP timeout is capped by the
request deadline.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from urllib.parse import quote

import httpx
import structlog
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from tc_dnssec.adapters.bundle_codec import decode_bundle, encode_bundle
from tc_dnssec.domain.models import CDNDNSSECBundle, Deadline
from tc_dnssec.railway import ErrorCode
from tc_dnssec.railway.result import Result

log = structlog.get_logger()

DNSSEC_BUCKET = "dnssec"
QUORUM = "quorum"


class RiakKeyStore:
    """
    Persist CDN DNSSEC bundles in a Riak cluster.

    Implements the KeyStore port. Reads and writes use quorum semantics
    (r=w=quorum) so a read after a successful write observes it.
    """

    def __init__(
        self,
        nodes: list[str],
        tls: bool = True,
        user: str | None = None,
        password: str | None = None,
        insecure: bool = False,
        timeout: float = 30.0,
        retries: int = 3,
        bucket: str = DNSSEC_BUCKET,
    ) -> None:
        if not nodes:
            raise ValueError("At least one Riak node is required")
        self._nodes = nodes
        self._scheme = "https" if tls else "http"
        self._auth = (user, password or "") if user else None
        self._verify = not insecure
        self._timeout = timeout
        self._bucket = bucket
        self._retrying = Retrying(
            stop=stop_after_attempt(retries),
            wait=wait_exponential(multiplier=0.2, min=0.1, max=5),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )

    # ─────────────────────── KeyStore port ───────────────────────

    def get(
        self, cdn_name: str, deadline: Deadline | None = None
    ) -> Result[CDNDNSSECBundle | None]:
        """Fetch the bundle of a CDN; Success(None) when Riak has none."""
        return self._guarded(
            lambda: self._send("GET", cdn_name, {"r": QUORUM}, deadline),
            f"getting DNSSEC keys for '{cdn_name}' from Riak",
            deadline,
        ).flat_map(lambda response: self._bundle_from_response(cdn_name, response))

    def put(
        self, cdn_name: str, bundle: CDNDNSSECBundle, deadline: Deadline | None = None
    ) -> Result[str]:
        """Replace the whole bundle of a CDN."""
        payload = encode_bundle(bundle)
        return self._guarded(
            lambda: self._send("PUT", cdn_name, {"w": QUORUM}, deadline, payload),
            f"putting DNSSEC keys for '{cdn_name}' into Riak",
            deadline,
        ).flat_map(lambda response: self._check_write(cdn_name, response, len(bundle)))

    def delete(self, cdn_name: str, deadline: Deadline | None = None) -> Result[str]:
        """Delete the bundle of a CDN. Deleting an absent bundle succeeds."""
        return self._guarded(
            lambda: self._send("DELETE", cdn_name, {"rw": QUORUM}, deadline),
            f"deleting DNSSEC keys for '{cdn_name}' from Riak",
            deadline,
        ).flat_map(lambda response: self._check_delete(cdn_name, response))

    # ─────────────────────── Response handling ───────────────────────

    def _bundle_from_response(
        self, cdn_name: str, response: httpx.Response
    ) -> Result[CDNDNSSECBundle | None]:
        match response.status_code:
            case 200:
                log.debug("riak.get", cdn=cdn_name, size_bytes=len(response.content))
                return decode_bundle(response.content).with_context(
                    f"reading DNSSEC keys for '{cdn_name}'"
                )
            case 404:
                log.info("riak.get_absent", cdn=cdn_name)
                return Result.success(None)
            case 300:
                return Result.failure(
                    ErrorCode.STORE_CONFLICT,
                    f"Riak holds conflicting versions of the DNSSEC keys for '{cdn_name}'",
                )
            case status:
                return Result.failure(
                    ErrorCode.STORE_UNAVAILABLE,
                    f"getting DNSSEC keys for '{cdn_name}' from Riak: HTTP {status}",
                )

    def _check_write(self, cdn_name: str, response: httpx.Response, zones: int) -> Result[str]:
        match response.status_code:
            case 200 | 201 | 204:
                log.info("riak.put", cdn=cdn_name, zones=zones)
                return Result.success(cdn_name)
            case 412:
                return Result.failure(
                    ErrorCode.STORE_CONFLICT,
                    f"Riak rejected the conditional write of DNSSEC keys for '{cdn_name}'",
                )
            case status:
                return Result.failure(
                    ErrorCode.STORE_UNAVAILABLE,
                    f"putting DNSSEC keys for '{cdn_name}' into Riak: HTTP {status}",
                )

    def _check_delete(self, cdn_name: str, response: httpx.Response) -> Result[str]:
        if response.status_code in (200, 204, 404):
            log.info("riak.delete", cdn=cdn_name, existed=response.status_code != 404)
            return Result.success(cdn_name)
        return Result.failure(
            ErrorCode.STORE_UNAVAILABLE,
            f"deleting DNSSEC keys for '{cdn_name}' from Riak: HTTP {response.status_code}",
        )

    # ─────────────────────── Transport ───────────────────────

    def _guarded(
        self,
        computation: Callable[[], httpx.Response],
        action: str,
        deadline: Deadline | None,
    ) -> Result[httpx.Response]:
        """Run a Riak call, classifying exceptions as unavailability or cancellation."""
        if deadline is not None and deadline.expired:
            return Result.failure(ErrorCode.REQUEST_CANCELLED, f"{action}: deadline passed")
        result = Result.from_computation(computation, ErrorCode.STORE_UNAVAILABLE, action)
        if result.is_failure() and deadline is not None and deadline.expired:
            return Result.failure(
                ErrorCode.REQUEST_CANCELLED,
                f"{action}: deadline passed",
                result.error().exception,
            )
        return result

    @contextmanager
    def _session(self, node: str, deadline: Deadline | None) -> Iterator[httpx.Client]:
        timeout = self._timeout if deadline is None else min(self._timeout, deadline.remaining())
        with httpx.Client(
            base_url=f"{self._scheme}://{node}",
            auth=self._auth,
            verify=self._verify,
            timeout=timeout,
        ) as client:
            yield client

    def _path(self, cdn_name: str) -> str:
        return f"/buckets/{quote(self._bucket, safe='')}/keys/{quote(cdn_name, safe='')}"

    def _send(
        self,
        method: str,
        cdn_name: str,
        params: dict[str, str],
        deadline: Deadline | None,
        content: bytes | None = None,
    ) -> httpx.Response:
        """Send one request, sweeping the nodes with retry on transport errors."""
        return self._retrying(self._sweep_nodes, method, cdn_name, params, deadline, content)

    def _sweep_nodes(
        self,
        method: str,
        cdn_name: str,
        params: dict[str, str],
        deadline: Deadline | None,
        content: bytes | None,
    ) -> httpx.Response:
        headers = {"Content-Type": "application/json"} if content is not None else {}
        last_error: httpx.TransportError | None = None
        for node in self._nodes:
            if deadline is not None and deadline.expired:
                break
            try:
                with self._session(node, deadline) as client:
                    return client.request(
                        method,
                        self._path(cdn_name),
                        params=params,
                        content=content,
                        headers=headers,
                    )
            except httpx.TransportError as e:
                log.warning("riak.node_unreachable", node=node, method=method, error=str(e))
                last_error = e
        if last_error is None:
            raise httpx.TimeoutException("request deadline passed before contacting Riak")
        raise last_error
