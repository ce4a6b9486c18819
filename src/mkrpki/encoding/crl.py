"""
CRL Factory: a v2 CertificateList signed by the issuing CA's key.

Revoked entries are emitted sorted by serial ascending and must be unique;
Authority Key Identifier and CRL Number are the only CRL extensions.
Whether the CRL number grows across a CA's CRLs is the caller's concern.
"""

from __future__ import annotations

from collections import Counter

import structlog
from pyasn1_modules import rfc5280
from railway import ErrorCode, Result

from mkrpki.domain.models import CrlSpec, KeyPair, RevokedEntry
from mkrpki.domain.profile import CRL_VERSION, SIGNATURE_ALGORITHM
from mkrpki.encoding.certificate import check_serial
from mkrpki.encoding.extensions import authority_key_identifier, crl_number
from mkrpki.encoding.signer import (
    algorithm_identifier,
    encode_time,
    key_identifier,
    key_name,
    sign_structure,
    utc,
)

log = structlog.get_logger()


def _check_update_window(spec: CrlSpec) -> Result[CrlSpec]:
    this_update, next_update = utc(spec.this_update), utc(spec.next_update)
    if next_update <= this_update:
        return Result.failure(
            ErrorCode.INVALID_VALIDITY_WINDOW,
            f"nextUpdate {next_update.isoformat()} is not after thisUpdate {this_update.isoformat()}",
        )
    return Result.success(spec)


def _check_number(spec: CrlSpec) -> Result[CrlSpec]:
    if spec.number < 0:
        return Result.failure(ErrorCode.INVALID_SERIAL, f"CRL number must not be negative, got {spec.number}")
    return Result.success(spec)


def sorted_revocations(revoked: tuple[RevokedEntry, ...]) -> Result[list[RevokedEntry]]:
    """Revoked entries by ascending serial; duplicates and non-positive serials fail."""
    counts = Counter(entry.serial for entry in revoked)
    duplicates = sorted(serial for serial, count in counts.items() if count > 1)
    if duplicates:
        return Result.failure(
            ErrorCode.INVALID_RESOURCE_SPEC,
            f"duplicate revoked serial numbers: {', '.join(map(str, duplicates))}",
        )
    return Result.all_of(
        [check_serial(entry.serial, "revoked serial") for entry in revoked]
    ).map(lambda _: sorted(revoked, key=lambda entry: entry.serial))


def _tbs_cert_list(spec: CrlSpec, issuer: KeyPair, revoked: list[RevokedEntry]) -> rfc5280.TBSCertList:
    tbs = rfc5280.TBSCertList()
    tbs["version"] = CRL_VERSION
    tbs["signature"] = algorithm_identifier(SIGNATURE_ALGORITHM)
    tbs["issuer"] = key_name(issuer.public_key)
    tbs["thisUpdate"] = encode_time(spec.this_update)
    tbs["nextUpdate"] = encode_time(spec.next_update)
    if revoked:
        entries = tbs["revokedCertificates"]
        for position, revocation in enumerate(revoked):
            entry = entries.getComponentByPosition(position)
            entry["userCertificate"] = revocation.serial
            entry["revocationDate"] = encode_time(revocation.revoked_at)
    extensions = tbs["crlExtensions"]
    extensions.append(authority_key_identifier(key_identifier(issuer.public_key)))
    extensions.append(crl_number(spec.number))
    return tbs


def build_crl(issuer: KeyPair, spec: CrlSpec) -> Result[bytes]:
    """
    Build and sign a CRL.

    Fails with INVALID_VALIDITY_WINDOW when nextUpdate is not strictly after
    thisUpdate, INVALID_SERIAL for a negative CRL number or a non-positive
    revoked serial, and INVALID_RESOURCE_SPEC for duplicate revoked serials.
    All checks run before anything is signed.
    """
    return (
        _check_update_window(spec)
        .flat_map(_check_number)
        .flat_map(lambda s: sorted_revocations(s.revoked))
        .flat_map(
            lambda revoked: Result.from_computation(
                lambda: _tbs_cert_list(spec, issuer, revoked),
                ErrorCode.ENCODING_INVARIANT_VIOLATION,
                "cannot assemble TBSCertList",
            )
        )
        .flat_map(lambda tbs: sign_structure(rfc5280.CertificateList(), tbs, issuer.private_key))
        .peek(lambda der: log.info(
            "crl.built", number=spec.number, revoked=len(spec.revoked), size=len(der)
        ))
    )
