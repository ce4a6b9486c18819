"""
Ports: Protocol-based interfaces for the collaborators the builders consume.

The builders never touch the filesystem or a random-number generator
directly. They ask for keys and file digests through these contracts, and
hand finished artifacts to a writer:

  Builders ← Ports (protocols) ← Adapters (cryptography keys, filesystem)

Each port is a Protocol (structural typing), so adapters and test doubles
satisfy it simply by implementing the methods.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

from cryptography.hazmat.primitives.asymmetric import rsa
from railway.result import Result

from mkrpki.domain.models import Artifact, KeyPair, ManifestEntry


@runtime_checkable
class KeyGenerator(Protocol):
    """
    Port: produce a fresh RSA-2048 key pair.

    Used by `mkrpki key` and for the one-time EE key of every signed object.
    """

    def generate(self) -> Result[KeyPair]: ...


@runtime_checkable
class KeyLoader(Protocol):
    """Port: read DER-encoded keys from disk."""

    def load_private_key(self, path: Path) -> Result[KeyPair]: ...

    def load_public_key(self, path: Path) -> Result[rsa.RSAPublicKey]: ...


@runtime_checkable
class FileDigester(Protocol):
    """
    Port: name and hash the files a manifest will list.

    Must fail with FILE_UNAVAILABLE for a missing or unreadable file and
    return entries sorted by name.
    """

    def digest_files(self, paths: Sequence[Path]) -> Result[list[ManifestEntry]]: ...


@runtime_checkable
class ArtifactWriter(Protocol):
    """Port: persist finished artifacts; only called once every build step succeeded."""

    def write(self, artifacts: Sequence[Artifact]) -> Result[list[Path]]: ...
