"""Tests for packaging and archives."""

from __future__ import annotations

import os
import tarfile
import zipfile
from pathlib import Path

from nightly.core.result import Err, Ok
from nightly.services.archive import content_type_for, make_archive, stage_package


def _source(tmp_path: Path) -> tuple[Path, Path]:
    root = tmp_path / "src"
    root.mkdir()
    (root / "README.md").write_text("readme", encoding="utf-8")
    (root / "LICENSE.md").write_text("license", encoding="utf-8")
    binary = tmp_path / "ruffle_desktop"
    binary.write_bytes(b"\x7fELF")
    return root, binary


class TestStagePackage:
    def test_layout(self, tmp_path: Path) -> None:
        root, binary = _source(tmp_path)
        result = stage_package(
            tmp_path / "pkg",
            binary=binary,
            shipped_name="ruffle",
            source_root=root,
            extra_files=("README.md", "LICENSE.md"),
        )
        assert result == Ok(tmp_path / "pkg")
        assert sorted(p.name for p in (tmp_path / "pkg").iterdir()) == [
            "LICENSE.md",
            "README.md",
            "ruffle",
        ]
        assert os.access(tmp_path / "pkg" / "ruffle", os.X_OK)

    def test_removes_leftovers(self, tmp_path: Path) -> None:
        root, binary = _source(tmp_path)
        pkg = tmp_path / "pkg"
        pkg.mkdir()
        (pkg / "stale.txt").write_text("old", encoding="utf-8")
        stage_package(pkg, binary=binary, shipped_name="ruffle", source_root=root, extra_files=())
        assert not (pkg / "stale.txt").exists()

    def test_missing_extra_file(self, tmp_path: Path) -> None:
        root, binary = _source(tmp_path)
        result = stage_package(
            tmp_path / "pkg",
            binary=binary,
            shipped_name="ruffle",
            source_root=root,
            extra_files=("CHANGELOG.md",),
        )
        assert isinstance(result, Err)
        assert result.error.kind == "build_failure"


class TestMakeArchive:
    def _package(self, tmp_path: Path) -> Path:
        root, binary = _source(tmp_path)
        return stage_package(
            tmp_path / "pkg",
            binary=binary,
            shipped_name="ruffle",
            source_root=root,
            extra_files=("README.md",),
        ).unwrap()

    def test_tar_gz_members_are_flat(self, tmp_path: Path) -> None:
        out = tmp_path / "dist" / "a-linux-x86_64.tar.gz"
        assert make_archive(self._package(tmp_path), out, "tar.gz") == Ok(out)
        with tarfile.open(out) as tar:
            assert sorted(tar.getnames()) == ["README.md", "ruffle"]
        assert not out.with_name(out.name + ".tmp").exists()

    def test_zip_members_are_flat(self, tmp_path: Path) -> None:
        out = tmp_path / "dist" / "a-windows-x86_64.zip"
        assert make_archive(self._package(tmp_path), out, "zip") == Ok(out)
        with zipfile.ZipFile(out) as zf:
            assert sorted(zf.namelist()) == ["README.md", "ruffle"]

    def test_empty_package(self, tmp_path: Path) -> None:
        empty = tmp_path / "empty"
        empty.mkdir()
        result = make_archive(empty, tmp_path / "x.zip", "zip")
        assert isinstance(result, Err)

    def test_unwritable_destination_is_packaging_failure(self, tmp_path: Path) -> None:
        package = self._package(tmp_path)
        blocker = tmp_path / "dist"
        blocker.write_text("not a directory", encoding="utf-8")
        result = make_archive(package, blocker / "a-linux-x86_64.tar.gz", "tar.gz")
        assert isinstance(result, Err)
        assert result.error.kind == "packaging_failure"


def test_content_types() -> None:
    assert content_type_for("zip") == "application/zip"
    assert content_type_for("tar.gz") == "application/gzip"
