"""
DNSSEC key factory adapter — key generation with cryptography + dnspython.

Adapter layer — implements the KeyMaterialFactory port:
  - cryptography (PyCA): RSA / ECDSA private key generation
  - dnspython: DNSKEY RDATA construction and DS digest (SHA-256)

Output of one mint():
  public   → "<zone> <ttl> IN DNSKEY <flags> 3 <alg> <base64 key>"
  private  → BIND "Private-key-format: v1.3" text
  ds       → (algorithm, 2, SHA-256 digest over owner name + DNSKEY RDATA), KSK only

Key generation is CPU-bound and runs on a bounded thread pool so a request
waits at most until its deadline instead of monopolising a worker.
"""

from __future__ import annotations

import base64
from concurrent.futures import Executor, ThreadPoolExecutor
from datetime import UTC, datetime

import dns.dnssec
import dns.name
import structlog
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from tc_dnssec.domain.models import (
    Deadline,
    DNSSECKeyRecord,
    DSRecord,
    KeyKind,
    KeyStatus,
)
from tc_dnssec.railway import ErrorCode
from tc_dnssec.railway.result import Result

log = structlog.get_logger()

type PrivateKey = rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey

# name → (DNSSEC algorithm, curve or None for RSA)
ALGORITHMS: dict[str, tuple[dns.dnssec.Algorithm, ec.EllipticCurve | None]] = {
    "RSASHA256": (dns.dnssec.Algorithm.RSASHA256, None),
    "RSASHA512": (dns.dnssec.Algorithm.RSASHA512, None),
    "ECDSAP256SHA256": (dns.dnssec.Algorithm.ECDSAP256SHA256, ec.SECP256R1()),
    "ECDSAP384SHA384": (dns.dnssec.Algorithm.ECDSAP384SHA384, ec.SECP384R1()),
}

DS_DIGEST_TYPE = "SHA256"
_RSA_PUBLIC_EXPONENT = 65537


def _b64_int(value: int, length: int | None = None) -> str:
    size = length if length is not None else max(1, (value.bit_length() + 7) // 8)
    return base64.b64encode(value.to_bytes(size, "big")).decode("ascii")


def _bind_timestamp(unix_seconds: int) -> str:
    return datetime.fromtimestamp(unix_seconds, UTC).strftime("%Y%m%d%H%M%S")


def private_key_text(
    private_key: PrivateKey,
    algorithm: dns.dnssec.Algorithm,
    inception: int,
) -> str:
    """Render a private key in BIND's Private-key-format v1.3."""
    lines = [
        "Private-key-format: v1.3",
        f"Algorithm: {int(algorithm)} ({algorithm.name})",
    ]
    if isinstance(private_key, rsa.RSAPrivateKey):
        numbers = private_key.private_numbers()
        lines += [
            f"Modulus: {_b64_int(numbers.public_numbers.n)}",
            f"PublicExponent: {_b64_int(numbers.public_numbers.e)}",
            f"PrivateExponent: {_b64_int(numbers.d)}",
            f"Prime1: {_b64_int(numbers.p)}",
            f"Prime2: {_b64_int(numbers.q)}",
            f"Exponent1: {_b64_int(numbers.dmp1)}",
            f"Exponent2: {_b64_int(numbers.dmq1)}",
            f"Coefficient: {_b64_int(numbers.iqmp)}",
        ]
    else:
        scalar_bytes = (private_key.curve.key_size + 7) // 8
        lines.append(
            f"PrivateKey: {_b64_int(private_key.private_numbers().private_value, scalar_bytes)}"
        )
    stamp = _bind_timestamp(inception)
    lines += [f"Created: {stamp}", f"Publish: {stamp}", f"Activate: {stamp}"]
    return "\n".join(lines) + "\n"


class DnssecKeyFactory:
    """
    Mint DNSSEC keys for a configured algorithm.

    Implements the KeyMaterialFactory port.
    All exceptions are caught at this adapter boundary and returned as
    CRYPTO_ERROR failures; a passed deadline yields REQUEST_CANCELLED.
    """

    def __init__(
        self,
        algorithm: str = "RSASHA256",
        key_size: int = 2048,
        executor: Executor | None = None,
        workers: int = 4,
    ) -> None:
        if algorithm not in ALGORITHMS:
            raise ValueError(f"Unsupported DNSSEC algorithm: {algorithm}")
        self._algorithm, self._curve = ALGORITHMS[algorithm]
        self._key_size = key_size
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="dnssec-keygen"
        )

    def close(self) -> None:
        """Stop the key-generation pool if this factory created it."""
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def mint(
        self,
        zone: str,
        kind: KeyKind,
        inception: int,
        expiration: int,
        ttl_seconds: int,
        deadline: Deadline | None = None,
    ) -> Result[DNSSECKeyRecord]:
        """
        Generate one key pair for `zone`.

        Returns Result[DNSSECKeyRecord] with status "new" and
        effective date = inception.
        """
        if deadline is not None and deadline.expired:
            return Result.failure(
                ErrorCode.REQUEST_CANCELLED,
                f"deadline passed before generating {kind.value} for {zone}",
            )
        try:
            future = self._executor.submit(
                self._generate, zone, kind, inception, expiration, ttl_seconds
            )
            record = future.result(timeout=None if deadline is None else deadline.remaining())
        except TimeoutError:
            future.cancel()
            return Result.failure(
                ErrorCode.REQUEST_CANCELLED,
                f"deadline passed while generating {kind.value} for {zone}",
            )
        except Exception as e:
            return Result.failure(
                ErrorCode.CRYPTO_ERROR, f"generating {kind.value} for {zone}: {e}", e
            )
        log.debug("key_factory.minted", zone=record.name, kind=kind.value)
        return Result.success(record)

    def _new_private_key(self) -> PrivateKey:
        if self._curve is None:
            return rsa.generate_private_key(
                public_exponent=_RSA_PUBLIC_EXPONENT, key_size=self._key_size
            )
        return ec.generate_private_key(self._curve)

    def _generate(
        self,
        zone: str,
        kind: KeyKind,
        inception: int,
        expiration: int,
        ttl_seconds: int,
    ) -> DNSSECKeyRecord:
        origin = dns.name.from_text(zone)
        private_key = self._new_private_key()
        dnskey = dns.dnssec.make_dnskey(
            private_key.public_key(), self._algorithm, flags=kind.dnskey_flags
        )
        public_text = f"{origin.to_text()} {ttl_seconds} IN DNSKEY {dnskey.to_text()}"

        ds_record = None
        if kind is KeyKind.KSK:
            ds = dns.dnssec.make_ds(origin, dnskey, DS_DIGEST_TYPE)
            ds_record = DSRecord(
                algorithm=int(ds.algorithm),
                digest_type=int(ds.digest_type),
                digest=ds.digest.hex().upper(),
            )

        return DNSSECKeyRecord(
            name=origin.to_text(),
            status=KeyStatus.NEW,
            inception=inception,
            expiration=expiration,
            effective_date=inception,
            ttl_seconds=ttl_seconds,
            public=public_text.encode("ascii"),
            private=private_key_text(private_key, self._algorithm, inception).encode("ascii"),
            ds_record=ds_record,
        )
