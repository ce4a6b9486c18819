"""
Pipeline: one railway per subcommand, from parsed request to written files.

Every run has the same shape:

  load inputs through ports (keys, manifest file digests)
    → build the object(s) with the encoding layer
      → hand all artifacts to the writer in one call

Each stage returns Result[T] and failures short-circuit through flat_map,
so the writer is only reached when every build step succeeded. Nothing
here touches the filesystem directly; all I/O goes through the ports in
Adapters, which the composition root (main.py) fills in.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from railway import Result

from mkrpki.adapters.keys import key_pair_artifacts
from mkrpki.domain.models import (
    Artifact,
    CertificateSpec,
    CrlSpec,
    KeyPair,
    ManifestPayload,
    RoaPayload,
    SignedObjectSpec,
    Tal,
)
from mkrpki.domain.ports import ArtifactWriter, FileDigester, KeyGenerator, KeyLoader
from mkrpki.encoding.certificate import build_ca_certificate, build_ta_certificate
from mkrpki.encoding.crl import build_crl
from mkrpki.encoding.manifest import build_manifest
from mkrpki.encoding.roa import build_roa
from mkrpki.encoding.tal import build_tal


@dataclass(frozen=True, slots=True)
class Adapters:
    """The concrete port implementations a run uses."""

    key_generator: KeyGenerator
    key_loader: KeyLoader
    digester: FileDigester
    writer: ArtifactWriter


# ─────────────────────── Requests ───────────────────────


@dataclass(frozen=True, slots=True)
class KeyRequest:
    private_path: Path
    public_path: Path


@dataclass(frozen=True, slots=True)
class TaRequest:
    """TA certificate parameters; the TAL is written only when output_tal is set."""

    key_path: Path
    spec: CertificateSpec
    tal_uris: tuple[str, ...]
    output: Path
    output_tal: Path | None = None


@dataclass(frozen=True, slots=True)
class CaRequest:
    issuer_key_path: Path
    subject_key_path: Path
    spec: CertificateSpec
    output: Path


@dataclass(frozen=True, slots=True)
class CrlRequest:
    issuer_key_path: Path
    spec: CrlSpec
    output: Path


@dataclass(frozen=True, slots=True)
class RoaRequest:
    issuer_key_path: Path
    spec: SignedObjectSpec
    payload: RoaPayload
    output: Path


@dataclass(frozen=True, slots=True)
class ManifestRequest:
    """Manifest parameters; the file digests are computed during the run."""

    issuer_key_path: Path
    spec: SignedObjectSpec
    number: int
    this_update: datetime
    next_update: datetime
    files: tuple[Path, ...]
    output: Path


# ─────────────────────── Runs ───────────────────────


def run_key(request: KeyRequest, adapters: Adapters) -> Result[list[Path]]:
    return (
        adapters.key_generator.generate()
        .map(lambda key: key_pair_artifacts(key, request.private_path, request.public_path))
        .flat_map(adapters.writer.write)
    )


def run_ta(request: TaRequest, adapters: Adapters) -> Result[list[Path]]:
    """Self-signed TA certificate plus, when asked for, its TAL; written together or not at all."""

    def tal_artifacts(key: KeyPair) -> Result[list[Artifact]]:
        if request.output_tal is None:
            return Result.success([])
        return build_tal(Tal(request.tal_uris, key.public_key)).map(
            lambda tal: [Artifact(request.output_tal, tal)]
        )

    def build(key: KeyPair) -> Result[list[Artifact]]:
        return Result.combine(
            build_ta_certificate(key, request.spec),
            tal_artifacts(key),
            lambda certificate, tal: [Artifact(request.output, certificate), *tal],
        )

    return (
        adapters.key_loader.load_private_key(request.key_path)
        .flat_map(build)
        .flat_map(adapters.writer.write)
    )


def run_ca(request: CaRequest, adapters: Adapters) -> Result[list[Path]]:
    return (
        Result.combine(
            adapters.key_loader.load_private_key(request.issuer_key_path),
            adapters.key_loader.load_public_key(request.subject_key_path),
            lambda issuer, subject: (issuer, subject),
        )
        .flat_map(lambda keys: build_ca_certificate(keys[0], keys[1], request.spec))
        .map(lambda der: [Artifact(request.output, der)])
        .flat_map(adapters.writer.write)
    )


def run_crl(request: CrlRequest, adapters: Adapters) -> Result[list[Path]]:
    return (
        adapters.key_loader.load_private_key(request.issuer_key_path)
        .flat_map(lambda issuer: build_crl(issuer, request.spec))
        .map(lambda der: [Artifact(request.output, der)])
        .flat_map(adapters.writer.write)
    )


def run_roa(request: RoaRequest, adapters: Adapters) -> Result[list[Path]]:
    return (
        adapters.key_loader.load_private_key(request.issuer_key_path)
        .flat_map(lambda issuer: build_roa(issuer, adapters.key_generator, request.spec, request.payload))
        .map(lambda der: [Artifact(request.output, der)])
        .flat_map(adapters.writer.write)
    )


def run_manifest(request: ManifestRequest, adapters: Adapters) -> Result[list[Path]]:
    """
    Hash the listed files, then build and write the manifest.

    Files are hashed before the issuer key is used, so a missing file fails
    the run before anything is signed.
    """
    payload = adapters.digester.digest_files(request.files).map(
        lambda entries: ManifestPayload(
            number=request.number,
            this_update=request.this_update,
            next_update=request.next_update,
            entries=tuple(entries),
        )
    )
    return (
        Result.combine(
            payload,
            adapters.key_loader.load_private_key(request.issuer_key_path),
            lambda manifest, issuer: (manifest, issuer),
        )
        .flat_map(lambda inputs: build_manifest(inputs[1], adapters.key_generator, request.spec, inputs[0]))
        .map(lambda der: [Artifact(request.output, der)])
        .flat_map(adapters.writer.write)
    )
