"""
Unit tests for the filesystem adapter: manifest hashing and atomic writes.
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

import pytest
from railway import ErrorCode, ResultAssertions

from mkrpki.adapters import filesystem
from mkrpki.adapters.filesystem import AtomicArtifactWriter, ManifestFileDigester
from mkrpki.domain.models import Artifact
from mkrpki.domain.ports import ArtifactWriter, FileDigester


@pytest.fixture()
def published(tmp_path: Path) -> list[Path]:
    files = []
    for name, content in (("b.roa", b"roa"), ("a.crl", b"crl"), ("c.cer", b"cer")):
        path = tmp_path / name
        path.write_bytes(content)
        files.append(path)
    return files


class TestManifestFileDigester:
    @pytest.mark.parametrize("workers", [1, 4])
    def test_entries_sorted_by_name_with_digests(self, published: list[Path], workers: int) -> None:
        entries = ResultAssertions.assert_success(ManifestFileDigester(workers).digest_files(published))

        assert [e.name for e in entries] == ["a.crl", "b.roa", "c.cer"]
        assert entries[1].digest == hashlib.sha256(b"roa").digest()

    def test_directory_is_stripped(self, tmp_path: Path) -> None:
        nested = tmp_path / "repo" / "ca"
        nested.mkdir(parents=True)
        (nested / "ca.crl").write_bytes(b"x")

        entries = ManifestFileDigester().digest_files([nested / "ca.crl"]).value()

        assert entries[0].name == "ca.crl"

    def test_large_file_is_hashed_in_full(self, tmp_path: Path) -> None:
        content = bytes(range(256)) * 1024
        (tmp_path / "big.roa").write_bytes(content)

        entries = ManifestFileDigester().digest_files([tmp_path / "big.roa"]).value()

        assert entries[0].digest == hashlib.sha256(content).digest()

    def test_missing_file(self, published: list[Path], tmp_path: Path) -> None:
        """
        GIVEN a file list naming a file that does not exist
        WHEN the files are digested
        THEN the result is FILE_UNAVAILABLE naming that file.
        """
        result = ManifestFileDigester(workers=2).digest_files([*published, tmp_path / "gone.roa"])

        ResultAssertions.assert_failure(result, ErrorCode.FILE_UNAVAILABLE)
        ResultAssertions.assert_failure_message_contains(result, "gone.roa")

    def test_non_ascii_name(self, tmp_path: Path) -> None:
        path = tmp_path / "ü.roa"
        path.write_bytes(b"x")

        ResultAssertions.assert_failure(ManifestFileDigester().digest_files([path]), ErrorCode.FILE_UNAVAILABLE)

    def test_satisfies_the_port(self) -> None:
        assert isinstance(ManifestFileDigester(), FileDigester)


class TestAtomicArtifactWriter:
    def test_writes_every_artifact(self, tmp_path: Path) -> None:
        artifacts = [Artifact(tmp_path / "a.cer", b"one"), Artifact(tmp_path / "out" / "a.tal", b"two")]

        written = ResultAssertions.assert_success(AtomicArtifactWriter().write(artifacts))

        assert written == [tmp_path / "a.cer", tmp_path / "out" / "a.tal"]
        assert (tmp_path / "a.cer").read_bytes() == b"one"
        assert (tmp_path / "out" / "a.tal").read_bytes() == b"two"

    def test_replaces_existing_file(self, tmp_path: Path) -> None:
        target = tmp_path / "a.crl"
        target.write_bytes(b"old")

        AtomicArtifactWriter().write([Artifact(target, b"new")])

        assert target.read_bytes() == b"new"

    def test_no_temporary_files_left_behind(self, tmp_path: Path) -> None:
        AtomicArtifactWriter().write([Artifact(tmp_path / "a.roa", b"x")])
        assert sorted(p.name for p in tmp_path.iterdir()) == ["a.roa"]

    def test_failed_staging_writes_nothing(self, tmp_path: Path) -> None:
        """
        GIVEN two artifacts where the second cannot be staged
        WHEN they are written
        THEN neither file exists afterwards and no temporary file remains.
        """
        blocker = tmp_path / "blocker"
        blocker.write_bytes(b"")
        artifacts = [Artifact(tmp_path / "a.cer", b"one"), Artifact(blocker / "b.tal", b"two")]

        result = AtomicArtifactWriter().write(artifacts)

        ResultAssertions.assert_failure(result, ErrorCode.FILE_UNAVAILABLE)
        assert sorted(p.name for p in tmp_path.iterdir()) == ["blocker"]

    def test_directory_destination_writes_nothing(self, tmp_path: Path) -> None:
        """
        GIVEN two artifacts where the second destination is a directory
        WHEN they are written
        THEN the write fails, the first file is not created and no temporary file remains.
        """
        (tmp_path / "second.out").mkdir()
        artifacts = [Artifact(tmp_path / "first.out", b"one"), Artifact(tmp_path / "second.out", b"two")]

        result = AtomicArtifactWriter().write(artifacts)

        ResultAssertions.assert_failure(result, ErrorCode.FILE_UNAVAILABLE)
        ResultAssertions.assert_failure_message_contains(result, "second.out")
        assert sorted(p.name for p in tmp_path.iterdir()) == ["second.out"]

    def test_failed_rename_restores_earlier_destinations(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """
        GIVEN an existing first.out and a rename that fails for second.out
        WHEN both are written
        THEN first.out keeps its old bytes, second.out is absent and no temporary file remains.
        """
        (tmp_path / "first.out").write_bytes(b"old")
        real_replace = os.replace

        def replace(source, destination):
            if Path(destination).name == "second.out":
                raise PermissionError(13, "Permission denied")
            real_replace(source, destination)

        monkeypatch.setattr(filesystem.os, "replace", replace)
        artifacts = [Artifact(tmp_path / "first.out", b"new"), Artifact(tmp_path / "second.out", b"two")]

        result = AtomicArtifactWriter().write(artifacts)

        ResultAssertions.assert_failure(result, ErrorCode.FILE_UNAVAILABLE)
        assert (tmp_path / "first.out").read_bytes() == b"old"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["first.out"]

    def test_failed_rename_removes_new_files(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        real_replace = os.replace

        def replace(source, destination):
            if Path(destination).name == "b.tal":
                raise OSError(5, "Input/output error")
            real_replace(source, destination)

        monkeypatch.setattr(filesystem.os, "replace", replace)

        result = AtomicArtifactWriter().write([Artifact(tmp_path / "a.cer", b"one"), Artifact(tmp_path / "b.tal", b"two")])

        ResultAssertions.assert_failure(result, ErrorCode.FILE_UNAVAILABLE)
        assert list(tmp_path.iterdir()) == []

    def test_satisfies_the_port(self) -> None:
        assert isinstance(AtomicArtifactWriter(), ArtifactWriter)
