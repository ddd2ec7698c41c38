"""
Bundle codec — the JSON document stored in Riak under (dnssec, <cdn name>).

The layout is the one Traffic Ops has always written, so bundles created by
other Traffic Ops components decode unchanged:

    {
      "<zone>": {
        "ksk": [{"inceptionDate": 1700000000, "expirationDate": 1731536000,
                 "effectiveDate": 1700000000, "name": "cdn.example.com.",
                 "ttl": "3600", "status": "new",
                 "public": "<base64>", "private": "<base64>",
                 "dsRecord": {"algorithm": "8", "digestType": "2", "digest": "..."}}],
        "zsk": [...]
      }
    }

Decoding is validated with pydantic; any malformed payload becomes a
STORE_SERIALIZATION failure.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_serializer,
)

from tc_dnssec.domain.models import (
    CDNDNSSECBundle,
    DNSSECKeyRecord,
    DNSSECKeySet,
    DSRecord,
    KeyStatus,
)
from tc_dnssec.railway import ErrorCode
from tc_dnssec.railway.result import Result


class _WireDSRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    algorithm: int
    digest_type: int = Field(alias="digestType")
    digest: str

    @field_serializer("algorithm", "digest_type")
    def _as_string(self, value: int) -> str:
        return str(value)


class _WireKey(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    inception: int = Field(alias="inceptionDate")
    expiration: int = Field(alias="expirationDate")
    effective_date: int = Field(default=0, alias="effectiveDate")
    name: str
    ttl_seconds: int = Field(alias="ttl", ge=0)
    status: KeyStatus
    public: str
    private: str
    ds_record: _WireDSRecord | None = Field(default=None, alias="dsRecord")

    @field_serializer("ttl_seconds")
    def _ttl_as_string(self, value: int) -> str:
        return str(value)


class _WireKeySet(BaseModel):
    ksk: list[_WireKey] = Field(default_factory=list)
    zsk: list[_WireKey] = Field(default_factory=list)


_BUNDLE = TypeAdapter(dict[str, _WireKeySet])


def _encode_key(key: DNSSECKeyRecord) -> _WireKey:
    return _WireKey(
        inception=key.inception,
        expiration=key.expiration,
        effective_date=key.effective_date,
        name=key.name,
        ttl_seconds=key.ttl_seconds,
        status=key.status,
        public=base64.b64encode(key.public).decode("ascii"),
        private=base64.b64encode(key.private).decode("ascii"),
        ds_record=(
            _WireDSRecord(
                algorithm=key.ds_record.algorithm,
                digest_type=key.ds_record.digest_type,
                digest=key.ds_record.digest,
            )
            if key.ds_record is not None
            else None
        ),
    )


def _decode_key(wire: _WireKey) -> DNSSECKeyRecord:
    return DNSSECKeyRecord(
        name=wire.name,
        status=wire.status,
        inception=wire.inception,
        expiration=wire.expiration,
        effective_date=wire.effective_date,
        ttl_seconds=wire.ttl_seconds,
        public=base64.b64decode(wire.public, validate=True),
        private=base64.b64decode(wire.private, validate=True),
        ds_record=(
            DSRecord(
                algorithm=wire.ds_record.algorithm,
                digest_type=wire.ds_record.digest_type,
                digest=wire.ds_record.digest,
            )
            if wire.ds_record is not None
            else None
        ),
    )


def _to_wire(bundle: CDNDNSSECBundle) -> dict[str, _WireKeySet]:
    return {
        zone: _WireKeySet(
            ksk=[_encode_key(k) for k in key_set.ksk],
            zsk=[_encode_key(k) for k in key_set.zsk],
        )
        for zone, key_set in bundle.items()
    }


def bundle_to_document(bundle: CDNDNSSECBundle) -> dict[str, Any]:
    """Wire-form dict of a bundle, as returned by the read endpoints."""
    return _BUNDLE.dump_python(_to_wire(bundle), mode="json", by_alias=True, exclude_none=True)


def key_set_to_document(key_set: DNSSECKeySet) -> dict[str, Any]:
    return bundle_to_document({"": key_set})[""]


def encode_bundle(bundle: CDNDNSSECBundle) -> bytes:
    """Serialize a bundle to the JSON bytes stored in Riak."""
    return _BUNDLE.dump_json(_to_wire(bundle), by_alias=True, exclude_none=True)


def decode_bundle(payload: bytes) -> Result[CDNDNSSECBundle]:
    """Parse JSON bytes from Riak into a bundle."""
    try:
        wire = _BUNDLE.validate_json(payload)
        bundle = {
            zone: DNSSECKeySet(
                ksk=[_decode_key(k) for k in key_set.ksk],
                zsk=[_decode_key(k) for k in key_set.zsk],
            )
            for zone, key_set in wire.items()
        }
    except (ValidationError, binascii.Error, ValueError) as e:
        return Result.failure(ErrorCode.STORE_SERIALIZATION, f"decoding DNSSEC bundle: {e}", e)
    return Result.success(bundle)
