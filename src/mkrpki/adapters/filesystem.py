"""
Filesystem adapter: hash manifest files and write finished artifacts.

Adapter layer: implements the FileDigester and ArtifactWriter ports.

Hashing may run on a thread pool (each file's digest is independent); the
entries are sorted by name afterwards, so the pool size never changes the
result. Writing is two-phase: every artifact goes to a temporary file next
to its destination first, and only when all of them are on disk are they
renamed into place. A failure in either phase leaves the destinations as
they were before the write.
"""

from __future__ import annotations

import hashlib
import os
import tempfile
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import structlog
from railway import Result, ResultFailures

from mkrpki.domain.models import Artifact, ManifestEntry

log = structlog.get_logger()

_CHUNK_SIZE = 64 * 1024


# ─────────────────────── Manifest hashing ───────────────────────


def _sha256_file(path: Path) -> bytes:
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.digest()


def _hash_entry(path: Path) -> Result[ManifestEntry]:
    if not path.name.isascii():
        return ResultFailures.file_unavailable(f"manifest file name must be ASCII: {path.name!r}")
    try:
        digest = _sha256_file(path)
    except OSError as e:
        return ResultFailures.file_unavailable(f"cannot read manifest file {path}: {e.strerror}", e)
    log.debug("manifest.file_hashed", file=path.name, digest=digest.hex())
    return Result.success(ManifestEntry(path.name, digest))


class ManifestFileDigester:
    """
    SHA-256 every file a manifest lists, keyed by bare file name.

    Implements the FileDigester port.
    """

    def __init__(self, workers: int = 1) -> None:
        self._workers = workers

    def digest_files(self, paths: Sequence[Path]) -> Result[list[ManifestEntry]]:
        paths = [Path(p) for p in paths]
        if self._workers > 1 and len(paths) > 1:
            with ThreadPoolExecutor(max_workers=self._workers) as pool:
                results = list(pool.map(_hash_entry, paths))
        else:
            results = [_hash_entry(path) for path in paths]
        return Result.all_of(results).map(lambda entries: sorted(entries, key=lambda e: e.name))


# ─────────────────────── Artifact writing ───────────────────────


def _stage(artifact: Artifact) -> Path:
    """Write artifact bytes to a temporary file in the destination directory."""
    directory = artifact.path.parent
    directory.mkdir(parents=True, exist_ok=True)
    fd, temporary = tempfile.mkstemp(prefix=f".{artifact.path.name}.", dir=directory)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(artifact.content)
    except OSError:
        Path(temporary).unlink(missing_ok=True)
        raise
    return Path(temporary)


def _set_aside(destination: Path) -> Path | None:
    """Move an existing destination to a backup name so a failed commit can restore it."""
    if not destination.exists():
        return None
    fd, backup = tempfile.mkstemp(prefix=f".{destination.name}.", suffix=".bak", dir=destination.parent)
    os.close(fd)
    os.replace(destination, backup)
    return Path(backup)


def _discard(paths: Iterable[Path]) -> None:
    for path in paths:
        path.unlink(missing_ok=True)


def _roll_back(committed: list[tuple[Path, Path | None]]) -> None:
    for destination, backup in reversed(committed):
        try:
            if backup is None:
                destination.unlink(missing_ok=True)
            else:
                os.replace(backup, destination)
        except OSError as e:
            log.warning("artifact.rollback_failed", path=str(destination), error=str(e))


class AtomicArtifactWriter:
    """
    Write artifacts via temporary files renamed into place.

    Destinations that are directories are refused before anything is
    staged. If a rename fails part way, files already moved into place are
    put back the way they were (previous contents restored, new files
    removed) and every temporary file is deleted.

    Implements the ArtifactWriter port.
    """

    def write(self, artifacts: Sequence[Artifact]) -> Result[list[Path]]:
        blocked = [str(artifact.path) for artifact in artifacts if artifact.path.is_dir()]
        if blocked:
            return ResultFailures.file_unavailable(f"output path is a directory: {', '.join(blocked)}")

        staged: list[tuple[Path, Path]] = []
        try:
            for artifact in artifacts:
                staged.append((_stage(artifact), artifact.path))
        except OSError as e:
            _discard(temporary for temporary, _ in staged)
            return ResultFailures.file_unavailable(f"cannot write {artifact.path}: {e.strerror or e}", e)

        return self._commit(staged)

    def _commit(self, staged: list[tuple[Path, Path]]) -> Result[list[Path]]:
        committed: list[tuple[Path, Path | None]] = []
        try:
            for temporary, destination in staged:
                committed.append((destination, _set_aside(destination)))
                os.replace(temporary, destination)
        except OSError as e:
            _roll_back(committed)
            _discard(temporary for temporary, _ in staged)
            return ResultFailures.file_unavailable(
                f"cannot move {destination} into place: {e.strerror or e}", e
            )

        _discard(backup for _, backup in committed if backup is not None)
        for destination, _ in committed:
            log.info("artifact.written", path=str(destination), size=destination.stat().st_size)
        return Result.success([destination for destination, _ in committed])
