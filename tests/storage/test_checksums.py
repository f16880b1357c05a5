"""Tests for checksum manifests."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path

from plaudsync.storage.checksums import (
    MANIFEST_NAME,
    MISSING,
    read_manifest,
    verify_checksums,
    write_manifest,
)


def populate(directory: Path) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "meta.json").write_text('{"id": "rec1"}')
    (directory / "transcript.txt").write_text("Speaker 1: Hello")


class TestWriteManifest:
    """Tests for write_manifest."""

    def test_hashes_every_file(self, tmp_path: Path) -> None:
        populate(tmp_path)

        manifest = write_manifest(tmp_path, "rec1")

        assert sorted(manifest.files) == ["meta.json", "transcript.txt"]
        expected = hashlib.sha256(b"Speaker 1: Hello").hexdigest()
        assert manifest.files["transcript.txt"].sha256 == expected
        assert manifest.files["transcript.txt"].size_bytes == 16

    def test_excludes_manifest_temp_files_and_subdirectories(self, tmp_path: Path) -> None:
        populate(tmp_path)
        (tmp_path / "audio.m4a.tmp-0a1b2c3d").write_bytes(b"partial")
        (tmp_path / "nested").mkdir()
        write_manifest(tmp_path, "rec1")

        manifest = write_manifest(tmp_path, "rec1")

        assert sorted(manifest.files) == ["meta.json", "transcript.txt"]

    def test_file_format(self, tmp_path: Path) -> None:
        populate(tmp_path)
        write_manifest(tmp_path, "rec1")

        data = json.loads((tmp_path / MANIFEST_NAME).read_text())

        assert data["schemaVersion"] == 1
        assert data["recordingId"] == "rec1"
        assert set(data["files"]["meta.json"]) == {"sha256", "sizeBytes"}

    def test_rewrite_drops_deleted_files(self, tmp_path: Path) -> None:
        populate(tmp_path)
        write_manifest(tmp_path, "rec1")
        (tmp_path / "transcript.txt").unlink()

        manifest = write_manifest(tmp_path, "rec1")

        assert list(manifest.files) == ["meta.json"]


class TestVerifyChecksums:
    """Tests for verify_checksums."""

    def test_clean(self, tmp_path: Path) -> None:
        populate(tmp_path)
        write_manifest(tmp_path, "rec1")

        assert verify_checksums(tmp_path) == []

    def test_modified_file(self, tmp_path: Path) -> None:
        populate(tmp_path)
        manifest = write_manifest(tmp_path, "rec1")
        (tmp_path / "transcript.txt").write_text("changed")

        [mismatch] = verify_checksums(tmp_path)

        assert mismatch.file_path == tmp_path / "transcript.txt"
        assert mismatch.expected == manifest.files["transcript.txt"].sha256
        assert mismatch.actual == hashlib.sha256(b"changed").hexdigest()
        assert not mismatch.is_missing

    def test_missing_file(self, tmp_path: Path) -> None:
        populate(tmp_path)
        write_manifest(tmp_path, "rec1")
        (tmp_path / "meta.json").unlink()

        [mismatch] = verify_checksums(tmp_path)

        assert mismatch.actual == MISSING
        assert mismatch.is_missing

    def test_extra_files_are_ignored(self, tmp_path: Path) -> None:
        populate(tmp_path)
        write_manifest(tmp_path, "rec1")
        (tmp_path / "notes.txt").write_text("added later")

        assert verify_checksums(tmp_path) == []

    def test_no_manifest(self, tmp_path: Path) -> None:
        populate(tmp_path)

        assert verify_checksums(tmp_path) == []

    def test_unreadable_manifest(self, tmp_path: Path) -> None:
        populate(tmp_path)
        (tmp_path / MANIFEST_NAME).write_text("{broken")

        assert read_manifest(tmp_path) is None
        assert verify_checksums(tmp_path) == []
