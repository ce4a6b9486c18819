"""
Shared test fixtures and helpers for the mkrpki test suite.

RSA-2048 key generation is slow, so keys are session-scoped and shared.
Signed objects get their one-time EE key from FixedKeyGenerator, which
hands out pre-generated keys instead of creating new ones.

Decoding helpers use pyasn1 (structure, tags, ordering) and cryptography
(signature verification), so tests inspect exactly the DER a builder
produced.
"""

from __future__ import annotations

from datetime import UTC, datetime
from itertools import cycle
from typing import Any

import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from pyasn1.codec.der import decoder as der_decoder
from pyasn1_modules import rfc5280, rfc5652
from railway import Result

from mkrpki.domain.models import (
    CertificateSpec,
    Explicit,
    KeyPair,
    ResourceSet,
    SignedObjectSpec,
    Validity,
)
from mkrpki.encoding.resources import parse_ip_block

# ─────────────────────── Keys ───────────────────────


def _new_key() -> KeyPair:
    return KeyPair(rsa.generate_private_key(public_exponent=65537, key_size=2048))


@pytest.fixture(scope="session")
def ta_key() -> KeyPair:
    return _new_key()


@pytest.fixture(scope="session")
def ca_key() -> KeyPair:
    return _new_key()


@pytest.fixture(scope="session")
def ee_key() -> KeyPair:
    return _new_key()


class FixedKeyGenerator:
    """KeyGenerator double that returns pre-generated keys in turn."""

    def __init__(self, *keys: KeyPair) -> None:
        self._keys = cycle(keys)
        self.calls = 0

    def generate(self) -> Result[KeyPair]:
        self.calls += 1
        return Result.success(next(self._keys))


@pytest.fixture()
def key_generator(ee_key: KeyPair) -> FixedKeyGenerator:
    return FixedKeyGenerator(ee_key)


# ─────────────────────── Specs ───────────────────────


def utc(year: int, month: int = 1, day: int = 1, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=UTC)


VALIDITY = Validity(utc(2024), utc(2025))


def ipv4(*blocks: str) -> Explicit:
    return Explicit(tuple(parse_ip_block(text).value() for text in blocks))


def ta_spec(**overrides: Any) -> CertificateSpec:
    values: dict[str, Any] = {
        "serial": 1,
        "validity": VALIDITY,
        "resources": ResourceSet(ipv4=ipv4("10.0.0.0/8")),
        "ca_repository": "rsync://example.net/repo/",
        "rpki_manifest": "rsync://example.net/repo/ta.mft",
    }
    values.update(overrides)
    return CertificateSpec(**values)


def ca_spec(**overrides: Any) -> CertificateSpec:
    values: dict[str, Any] = {
        "serial": 2,
        "validity": VALIDITY,
        "resources": ResourceSet(ipv4=ipv4("10.1.0.0/16")),
        "ca_repository": "rsync://example.net/repo/ca/",
        "rpki_manifest": "rsync://example.net/repo/ca/ca.mft",
        "crl_uri": "rsync://example.net/repo/ta.crl",
        "ca_issuer": "rsync://example.net/repo/ta.cer",
    }
    values.update(overrides)
    return CertificateSpec(**values)


def signed_object_spec(**overrides: Any) -> SignedObjectSpec:
    values: dict[str, Any] = {
        "serial": 3,
        "validity": VALIDITY,
        "crl_uri": "rsync://example.net/repo/ca/ca.crl",
        "ca_issuer": "rsync://example.net/repo/ca.cer",
        "signed_object": "rsync://example.net/repo/ca/object",
        "signing_time": utc(2024, 6, 1),
    }
    values.update(overrides)
    return SignedObjectSpec(**values)


# ─────────────────────── Decoding ───────────────────────


def decode_certificate(der: bytes) -> rfc5280.Certificate:
    certificate, rest = der_decoder.decode(der, asn1Spec=rfc5280.Certificate())
    assert rest == b""
    return certificate


def decode_crl(der: bytes) -> rfc5280.CertificateList:
    crl, rest = der_decoder.decode(der, asn1Spec=rfc5280.CertificateList())
    assert rest == b""
    return crl


def extension_map(extensions: Any) -> dict[str, rfc5280.Extension]:
    """Extensions keyed by dotted OID string."""
    return {str(extension["extnID"]): extension for extension in extensions}


def extension_oids(certificate: rfc5280.Certificate) -> list[str]:
    return [str(e["extnID"]) for e in certificate["tbsCertificate"]["extensions"]]


def decode_extension_value(extension: rfc5280.Extension, spec: Any) -> Any:
    value, rest = der_decoder.decode(bytes(extension["extnValue"]), asn1Spec=spec)
    assert rest == b""
    return value


def decode_signed_data(der: bytes) -> rfc5652.SignedData:
    content_info, rest = der_decoder.decode(der, asn1Spec=rfc5652.ContentInfo())
    assert rest == b""
    assert content_info["contentType"] == rfc5652.id_signedData
    signed_data, _ = der_decoder.decode(bytes(content_info["content"]), asn1Spec=rfc5652.SignedData())
    return signed_data


def encapsulated_content(signed_data: rfc5652.SignedData) -> bytes:
    return bytes(signed_data["encapContentInfo"]["eContent"])
