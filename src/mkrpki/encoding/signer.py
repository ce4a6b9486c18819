"""
Signer: the shared "encode the to-be-signed body, then sign it" stage.

Certificates and CRLs have the same outer shape,

    SEQUENCE { tbs, signatureAlgorithm AlgorithmIdentifier, signature BIT STRING }

so one function, sign_structure, produces both. The CMS signer info uses the
same rsa_sign primitive over its signed attributes.

This module also holds the small encoders every object needs: algorithm
identifiers, key identifiers, key-derived names and RFC 5280 times.
"""

from __future__ import annotations

from datetime import UTC, datetime

import structlog
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from pyasn1.codec.der import decoder as der_decoder
from pyasn1.codec.der import encoder as der_encoder
from pyasn1.type import base, char, univ, useful
from pyasn1_modules import rfc5280
from railway import ErrorCode, Result

from mkrpki.domain.profile import RSA_KEY_SIZE, SIGNATURE_ALGORITHM, UTC_TIME_CUTOFF_YEAR

log = structlog.get_logger()

_DER_NULL = der_encoder.encode(univ.Null(""))


# ─────────────────────── DER ───────────────────────


def encode_der(value: base.Asn1Item, what: str = "structure") -> Result[bytes]:
    """DER-encode a pyasn1 value; an encoder error is a defect in how we built it."""
    return Result.from_computation(
        lambda: der_encoder.encode(value),
        ErrorCode.ENCODING_INVARIANT_VIOLATION,
        f"cannot DER-encode {what}",
    )


# ─────────────────────── Keys ───────────────────────


def check_private_key(private_key: object) -> Result[rsa.RSAPrivateKey]:
    """Only RSA-2048 keys may sign RPKI objects."""
    if not isinstance(private_key, rsa.RSAPrivateKey) or private_key.key_size != RSA_KEY_SIZE:
        size = getattr(private_key, "key_size", "?")
        return Result.failure(
            ErrorCode.SIGNING_FAILURE,
            f"signing key must be RSA-{RSA_KEY_SIZE}, got {type(private_key).__name__} ({size} bits)",
        )
    return Result.success(private_key)


def check_public_key(public_key: object) -> Result[rsa.RSAPublicKey]:
    if not isinstance(public_key, rsa.RSAPublicKey) or public_key.key_size != RSA_KEY_SIZE:
        return Result.failure(
            ErrorCode.SIGNING_FAILURE,
            f"subject key must be an RSA-{RSA_KEY_SIZE} public key",
        )
    return Result.success(public_key)


def key_identifier(public_key: rsa.RSAPublicKey) -> bytes:
    """SHA-1 of the subjectPublicKey BIT STRING contents (RFC 5280 §4.2.1.2 method 1)."""
    return x509.SubjectKeyIdentifier.from_public_key(public_key).digest


def subject_public_key_info_der(public_key: rsa.RSAPublicKey) -> bytes:
    return public_key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def subject_public_key_info(public_key: rsa.RSAPublicKey) -> rfc5280.SubjectPublicKeyInfo:
    spki, _ = der_decoder.decode(
        subject_public_key_info_der(public_key),
        asn1Spec=rfc5280.SubjectPublicKeyInfo(),
    )
    return spki


def key_name(public_key: rsa.RSAPublicKey) -> rfc5280.Name:
    """
    The RPKI profile's key-derived name: a single commonName holding the
    upper-case hex key identifier as a PrintableString (RFC 6487 §4.5).
    """
    attribute = rfc5280.AttributeTypeAndValue()
    attribute["type"] = rfc5280.id_at_commonName
    attribute["value"] = der_encoder.encode(
        char.PrintableString(key_identifier(public_key).hex().upper())
    )
    rdn = rfc5280.RelativeDistinguishedName()
    rdn.append(attribute)
    name = rfc5280.Name()
    name["rdnSequence"].append(rdn)
    return name


# ─────────────────────── Algorithms and times ───────────────────────


def algorithm_identifier(
    algorithm: univ.ObjectIdentifier, null_parameters: bool = True
) -> rfc5280.AlgorithmIdentifier:
    """RSA algorithms carry an explicit NULL; digest algorithms omit parameters."""
    identifier = rfc5280.AlgorithmIdentifier()
    identifier["algorithm"] = algorithm
    if null_parameters:
        identifier["parameters"] = _DER_NULL
    return identifier


def utc(moment: datetime) -> datetime:
    """Whole-second UTC; naive datetimes are taken to already be UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).replace(microsecond=0)


def encode_time(moment: datetime) -> rfc5280.Time:
    """UTCTime for 1950 through 2049, GeneralizedTime otherwise."""
    moment = utc(moment)
    time = rfc5280.Time()
    if 1950 <= moment.year < UTC_TIME_CUTOFF_YEAR:
        time["utcTime"] = moment.strftime("%y%m%d%H%M%SZ")
    else:
        time["generalTime"] = moment.strftime("%Y%m%d%H%M%SZ")
    return time


def generalized_time(moment: datetime) -> useful.GeneralizedTime:
    """GeneralizedTime regardless of year, as manifests require."""
    return useful.GeneralizedTime(utc(moment).strftime("%Y%m%d%H%M%SZ"))


# ─────────────────────── Signing ───────────────────────


def rsa_sign(private_key: rsa.RSAPrivateKey, data: bytes) -> Result[bytes]:
    """RSASSA-PKCS1-v1_5 with SHA-256."""
    return check_private_key(private_key).flat_map(
        lambda key: Result.from_computation(
            lambda: key.sign(data, padding.PKCS1v15(), hashes.SHA256()),
            ErrorCode.SIGNING_FAILURE,
            "RSA signature failed",
        )
    )


def _assemble(
    envelope: univ.Sequence, tbs: univ.Sequence, signature: bytes
) -> univ.Sequence:
    # Certificate and CertificateList both start with the TBS body.
    envelope.setComponentByPosition(0, tbs)
    envelope["signatureAlgorithm"] = algorithm_identifier(SIGNATURE_ALGORITHM)
    envelope["signature"] = univ.BitString.fromOctetString(signature)
    return envelope


def sign_structure(
    envelope: univ.Sequence,
    tbs: univ.Sequence,
    private_key: rsa.RSAPrivateKey,
) -> Result[bytes]:
    """
    Sign tbs and wrap it in envelope (an empty Certificate or CertificateList).

    The signature covers exactly the DER of tbs; the returned bytes are the
    DER of the complete signed structure.
    """
    kind = type(envelope).__name__
    return (
        encode_der(tbs, f"{kind} body")
        .flat_map(lambda tbs_der: rsa_sign(private_key, tbs_der))
        .flat_map(lambda signature: encode_der(_assemble(envelope, tbs, signature), kind))
        .peek(lambda der: log.debug("signer.signed", kind=kind, size=len(der)))
    )
