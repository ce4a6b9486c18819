"""
TBS Certificate Builder and Certificate Factory.

A certificate build is one railway:

    check serial ─► check validity ─► role checks ─► overclaim policy
        ─► extensions ─► TBSCertificate ─► sign_structure ─► DER

Trust anchors are self-signed: the same key supplies the subject public key
and the signature, and the certificate carries no Authority Key Identifier,
AIA or CRL distribution point. CA certificates are signed by the issuer's
private key over the subject's public key. EE certificates are only built
for signed objects (see signed_object.py) but share the same path.
"""

from __future__ import annotations

from dataclasses import replace

import structlog
from cryptography.hazmat.primitives.asymmetric import rsa
from pyasn1_modules import rfc5280
from railway import ErrorCode, Result

from mkrpki.domain.models import (
    CertificateRole,
    CertificateSpec,
    KeyPair,
    OverclaimPolicy,
    Validity,
)
from mkrpki.domain.profile import CERTIFICATE_VERSION, SIGNATURE_ALGORITHM
from mkrpki.encoding.extensions import build_extensions
from mkrpki.encoding.resources import find_overclaims, intersect_resources, normalize_resources
from mkrpki.encoding.signer import (
    algorithm_identifier,
    check_public_key,
    encode_time,
    key_identifier,
    key_name,
    sign_structure,
    subject_public_key_info,
    utc,
)

log = structlog.get_logger()


# ─────────────────────── Checks ───────────────────────


def check_serial(serial: int, what: str = "serial") -> Result[int]:
    if serial <= 0:
        return Result.failure(ErrorCode.INVALID_SERIAL, f"{what} must be positive, got {serial}")
    return Result.success(serial)


def check_validity(validity: Validity) -> Result[Validity]:
    """Whole-second UTC window; notBefore must be strictly before notAfter."""
    normalized = Validity(utc(validity.not_before), utc(validity.not_after))
    if normalized.not_before >= normalized.not_after:
        return Result.failure(
            ErrorCode.INVALID_VALIDITY_WINDOW,
            f"validity window is inverted or empty: "
            f"{normalized.not_before.isoformat()} .. {normalized.not_after.isoformat()}",
        )
    return Result.success(normalized)


def _check_role(spec: CertificateSpec, role: CertificateRole) -> Result[CertificateSpec]:
    if role is CertificateRole.TA and spec.resources.has_inherit:
        return Result.failure(
            ErrorCode.INVALID_RESOURCE_SPEC,
            "a trust anchor has no issuer to inherit resources from",
        )
    return Result.success(spec)


def apply_overclaim_policy(spec: CertificateSpec) -> Result[CertificateSpec]:
    """
    Compare the subject's resources with the issuer's, when the caller supplied them.

    REFUSE fails with INVALID_RESOURCE_SPEC naming every uncovered block;
    TRIM narrows the subject to the intersection. Without issuer resources
    there is nothing to compare and the certificate spec passes unchanged.
    """
    if spec.issuer_resources is None:
        return Result.success(spec)

    def apply(subject, issuer) -> Result[CertificateSpec]:
        if spec.overclaim is OverclaimPolicy.TRIM:
            trimmed = intersect_resources(subject, issuer)
            if trimmed != subject:
                log.info("certificate.resources_trimmed", dropped=find_overclaims(subject, issuer))
            return Result.success(replace(spec, resources=trimmed))
        overclaims = find_overclaims(subject, issuer)
        if overclaims:
            return Result.failure(
                ErrorCode.INVALID_RESOURCE_SPEC,
                f"resources not held by the issuer: {', '.join(overclaims)}",
            )
        return Result.success(replace(spec, resources=subject))

    return Result.combine(
        normalize_resources(spec.resources),
        normalize_resources(spec.issuer_resources),
        lambda subject, issuer: (subject, issuer),
    ).flat_map(lambda pair: apply(*pair))


# ─────────────────────── TBS ───────────────────────


def _tbs_certificate(
    spec: CertificateSpec,
    validity: Validity,
    subject_public_key: rsa.RSAPublicKey,
    issuer_public_key: rsa.RSAPublicKey,
    extensions: list[rfc5280.Extension],
) -> rfc5280.TBSCertificate:
    tbs = rfc5280.TBSCertificate()
    tbs["version"] = CERTIFICATE_VERSION
    tbs["serialNumber"] = spec.serial
    tbs["signature"] = algorithm_identifier(SIGNATURE_ALGORITHM)
    tbs["issuer"] = key_name(issuer_public_key)
    tbs["validity"]["notBefore"] = encode_time(validity.not_before)
    tbs["validity"]["notAfter"] = encode_time(validity.not_after)
    tbs["subject"] = key_name(subject_public_key)
    tbs["subjectPublicKeyInfo"] = subject_public_key_info(subject_public_key)
    for extension in extensions:
        tbs["extensions"].append(extension)
    return tbs


def build_tbs_certificate(
    spec: CertificateSpec,
    role: CertificateRole,
    subject_public_key: rsa.RSAPublicKey,
    issuer_public_key: rsa.RSAPublicKey,
) -> Result[rfc5280.TBSCertificate]:
    """Validate the certificate spec for its role and assemble the unsigned certificate body."""

    def assemble(checked: CertificateSpec, validity: Validity) -> Result[rfc5280.TBSCertificate]:
        return build_extensions(
            checked,
            role,
            key_identifier(subject_public_key),
            key_identifier(issuer_public_key),
        ).flat_map(
            lambda extensions: Result.from_computation(
                lambda: _tbs_certificate(checked, validity, subject_public_key, issuer_public_key, extensions),
                ErrorCode.ENCODING_INVARIANT_VIOLATION,
                "cannot assemble TBSCertificate",
            )
        )

    return (
        check_serial(spec.serial)
        .flat_map(lambda _: check_validity(spec.validity))
        .flat_map(
            lambda validity: check_public_key(subject_public_key)
            .flat_map(lambda _: _check_role(spec, role))
            .flat_map(apply_overclaim_policy)
            .flat_map(lambda checked: assemble(checked, validity))
        )
    )


# ─────────────────────── Factories ───────────────────────


def build_certificate(
    spec: CertificateSpec,
    role: CertificateRole,
    subject_public_key: rsa.RSAPublicKey,
    issuer: KeyPair,
) -> Result[bytes]:
    return (
        build_tbs_certificate(spec, role, subject_public_key, issuer.public_key)
        .flat_map(lambda tbs: sign_structure(rfc5280.Certificate(), tbs, issuer.private_key))
        .peek(lambda der: log.info(
            "certificate.built", role=role.value, serial=spec.serial, size=len(der)
        ))
    )


def build_ta_certificate(key: KeyPair, spec: CertificateSpec) -> Result[bytes]:
    """Self-signed trust anchor certificate."""
    return build_certificate(spec, CertificateRole.TA, key.public_key, key)


def build_ca_certificate(
    issuer: KeyPair, subject_public_key: rsa.RSAPublicKey, spec: CertificateSpec
) -> Result[bytes]:
    """CA certificate for subject_public_key, signed by issuer."""
    return build_certificate(spec, CertificateRole.CA, subject_public_key, issuer)


def build_ee_certificate(
    issuer: KeyPair, subject_public_key: rsa.RSAPublicKey, spec: CertificateSpec
) -> Result[bytes]:
    return build_certificate(spec, CertificateRole.EE, subject_public_key, issuer)
