"""
RPKI Manifest (RFC 6486 / RFC 9286).

A manifest lists every file a CA publishes together with its SHA-256
digest. The fileList is always sorted by file name, whatever order the
entries arrive in; names are bare file names (the directory is stripped
before the entry is made) and must be IA5 (ASCII) text.

Unlike certificates, manifests always encode thisUpdate and nextUpdate as
GeneralizedTime.
"""

from __future__ import annotations

from collections import Counter

import structlog
from pyasn1.codec.der import encoder as der_encoder
from pyasn1.type import univ
from pyasn1_modules import rfc6486
from railway import ErrorCode, Result

from mkrpki.domain.models import KeyPair, ManifestEntry, ManifestPayload, ResourceSet, SignedObjectSpec
from mkrpki.domain.ports import KeyGenerator
from mkrpki.domain.profile import CT_RPKI_MANIFEST, DIGEST_ALGORITHM
from mkrpki.encoding.signed_object import build_signed_object
from mkrpki.encoding.signer import generalized_time, utc

log = structlog.get_logger()


# ─────────────────────── Validation ───────────────────────


def _check_payload(payload: ManifestPayload) -> Result[ManifestPayload]:
    if payload.number <= 0:
        return Result.failure(
            ErrorCode.INVALID_SERIAL, f"manifest number must be positive, got {payload.number}"
        )
    this_update, next_update = utc(payload.this_update), utc(payload.next_update)
    if next_update <= this_update:
        return Result.failure(
            ErrorCode.INVALID_VALIDITY_WINDOW,
            f"nextUpdate {next_update.isoformat()} is not after thisUpdate {this_update.isoformat()}",
        )
    return Result.success(payload)


def sorted_entries(entries: tuple[ManifestEntry, ...]) -> Result[list[ManifestEntry]]:
    """Entries ordered by file name; empty lists, duplicates and non-ASCII names fail."""
    if not entries:
        return Result.failure(ErrorCode.MISSING_REQUIRED_FIELD, "a manifest needs at least one file")
    non_ascii = [entry.name for entry in entries if not entry.name.isascii()]
    if non_ascii:
        return Result.failure(
            ErrorCode.FILE_UNAVAILABLE, f"file names must be ASCII: {', '.join(non_ascii)}"
        )
    duplicates = sorted(name for name, count in Counter(e.name for e in entries).items() if count > 1)
    if duplicates:
        return Result.failure(
            ErrorCode.INVALID_RESOURCE_SPEC, f"duplicate manifest file names: {', '.join(duplicates)}"
        )
    return Result.success(sorted(entries, key=lambda entry: entry.name))


# ─────────────────────── Encoding ───────────────────────


def _manifest(payload: ManifestPayload, entries: list[ManifestEntry]) -> rfc6486.Manifest:
    manifest = rfc6486.Manifest()
    manifest["manifestNumber"] = payload.number
    manifest["thisUpdate"] = generalized_time(payload.this_update)
    manifest["nextUpdate"] = generalized_time(payload.next_update)
    manifest["fileHashAlg"] = DIGEST_ALGORITHM
    file_list = manifest["fileList"]
    for entry in entries:
        file_and_hash = rfc6486.FileAndHash()
        file_and_hash["file"] = entry.name
        file_and_hash["hash"] = univ.BitString.fromOctetString(entry.digest)
        file_list.append(file_and_hash)
    return manifest


def encode_manifest_payload(payload: ManifestPayload) -> Result[bytes]:
    """Validate and DER-encode the Manifest content, without signing it."""
    return (
        _check_payload(payload)
        .flat_map(lambda p: sorted_entries(p.entries))
        .flat_map(
            lambda entries: Result.from_computation(
                lambda: der_encoder.encode(_manifest(payload, entries)),
                ErrorCode.ENCODING_INVARIANT_VIOLATION,
                "cannot encode Manifest",
            )
        )
    )


def build_manifest(
    issuer: KeyPair,
    key_generator: KeyGenerator,
    spec: SignedObjectSpec,
    payload: ManifestPayload,
) -> Result[bytes]:
    """
    Build a signed manifest.

    The EE certificate carries spec.resources when given and otherwise
    inherits every resource family from the issuing CA.
    """
    ee_resources = spec.resources if spec.resources is not None else ResourceSet.inherit_all()
    return (
        encode_manifest_payload(payload)
        .peek(lambda _: log.debug("manifest.payload_encoded", number=payload.number, files=len(payload.entries)))
        .flat_map(
            lambda payload_der: build_signed_object(
                issuer, key_generator, spec, ee_resources, CT_RPKI_MANIFEST, payload_der
            )
        )
    )
