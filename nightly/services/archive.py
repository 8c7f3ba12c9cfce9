"""Package directories and release archives.

Windows rows ship ``.zip``, everything else ``.tar.gz``. Archive members are
stored relative to the package directory, so unpacking yields the binary
next to README and LICENSE with no wrapping folder.
"""

from __future__ import annotations

import os
import shutil
import stat
import tarfile
from collections.abc import Iterable
from pathlib import Path
from zipfile import ZIP_DEFLATED, ZipFile

from nightly.core.result import Err, Ok, Result
from nightly.services.errors import PipelineError
from nightly.services.model import ArchiveFormat

CONTENT_TYPES: dict[ArchiveFormat, str] = {
    "zip": "application/zip",
    "tar.gz": "application/gzip",
}


def content_type_for(fmt: ArchiveFormat) -> str:
    return CONTENT_TYPES[fmt]


def mark_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def stage_package(
    package_dir: Path,
    *,
    binary: Path,
    shipped_name: str,
    source_root: Path,
    extra_files: Iterable[str],
) -> Result[Path, PipelineError]:
    """Fill ``package_dir`` with the binary (renamed) and accompanying files.

    Any previous content is removed first so a re-run never ships leftovers.
    """
    try:
        if package_dir.exists():
            shutil.rmtree(package_dir)
        package_dir.mkdir(parents=True)
        for name in extra_files:
            src = source_root / name
            if not src.is_file():
                return Err(
                    PipelineError(
                        kind="build_failure",
                        message=f"accompanying file missing: {name}",
                        hint=str(src),
                    )
                )
            shutil.copy2(src, package_dir / Path(name).name)
        shipped = package_dir / shipped_name
        shutil.copy2(binary, shipped)
        mark_executable(shipped)
    except OSError as e:
        return Err(PipelineError(kind="packaging_failure", message=f"packaging failed: {e}"))
    return Ok(package_dir)


def _members(package_dir: Path) -> list[tuple[Path, str]]:
    out: list[tuple[Path, str]] = []
    for p in sorted(package_dir.rglob("*")):
        if p.is_dir():
            continue
        out.append((p, p.relative_to(package_dir).as_posix()))
    return out


def _write_zip(out_path: Path, files: list[tuple[Path, str]]) -> None:
    # Build outputs may carry mtime=0, which ZIP cannot represent.
    with ZipFile(out_path, "w", compression=ZIP_DEFLATED, strict_timestamps=False) as zf:
        for src, arc in files:
            zf.write(src, arcname=arc)


def _write_tar_gz(out_path: Path, files: list[tuple[Path, str]]) -> None:
    with tarfile.open(out_path, "w:gz") as tar:
        for src, arc in files:
            tar.add(src, arcname=arc)


def make_archive(
    package_dir: Path, out_path: Path, fmt: ArchiveFormat
) -> Result[Path, PipelineError]:
    """Compress the package directory into ``out_path``."""
    files = _members(package_dir)
    if not files:
        return Err(
            PipelineError(kind="build_failure", message=f"nothing to package in {package_dir}")
        )

    tmp = out_path.with_name(out_path.name + ".tmp")
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        if fmt == "zip":
            _write_zip(tmp, files)
        else:
            _write_tar_gz(tmp, files)
        os.replace(tmp, out_path)
    except (OSError, tarfile.TarError) as e:
        tmp.unlink(missing_ok=True)
        return Err(PipelineError(kind="packaging_failure", message=f"archive failed: {e}"))
    return Ok(out_path)
