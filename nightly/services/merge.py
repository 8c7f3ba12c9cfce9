"""Universal macOS bundle from the two per-architecture raw binaries.

The merge is a barrier: it needs both declared inputs. A missing input is a
``merge_barrier_failure``, never a partial single-architecture bundle.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Protocol

from nightly.core.config import BuildConfig
from nightly.core.result import Err, Ok, Result
from nightly.output.console import ConsoleProtocol, Style
from nightly.platform.process import CommandRunner
from nightly.platform.process import run as run_process
from nightly.services.archive import make_archive, mark_executable, stage_package
from nightly.services.errors import PipelineError
from nightly.services.model import (
    MERGE_INPUTS,
    MERGED_PLATFORM,
    Artifact,
    MergedArtifact,
    ReleaseIdentity,
    archive_format_for,
    artifact_filename,
)
from nightly.services.timeouts import TOOL_TIMEOUT_SECONDS


class BinaryFuser(Protocol):
    def fuse(self, inputs: Sequence[Path], output: Path) -> Result[Path, PipelineError]: ...


class LipoFuser:
    """``lipo -create`` from the Xcode command-line tools."""

    def __init__(self, *, console: ConsoleProtocol, runner: CommandRunner = run_process) -> None:
        self._console = console
        self._runner = runner

    def fuse(self, inputs: Sequence[Path], output: Path) -> Result[Path, PipelineError]:
        cmd = ["lipo", "-create", "-output", str(output), *(str(p) for p in inputs)]
        self._console.print(" ".join(cmd), Style.DIM)
        result = self._runner(cmd, output.parent, timeout=TOOL_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return Err(
                PipelineError(
                    kind="build_failure",
                    message="lipo failed to create universal binary",
                    hint=result.error.detail(),
                )
            )
        return Ok(output)


def collect_merge_inputs(
    available: Mapping[str, Artifact],
) -> Result[tuple[Artifact, Artifact], PipelineError]:
    """Pick both required raw binaries, checking they exist on disk."""
    picked: list[Artifact] = []
    for name in MERGE_INPUTS:
        artifact = available.get(name)
        if artifact is None or artifact.kind != "raw_binary":
            return Err(
                PipelineError(
                    kind="merge_barrier_failure",
                    message=f"missing raw binary: {name}",
                )
            )
        if not artifact.path.is_file():
            return Err(
                PipelineError(
                    kind="merge_barrier_failure",
                    message=f"raw binary vanished: {name}",
                    hint=str(artifact.path),
                )
            )
        picked.append(artifact)
    return Ok((picked[0], picked[1]))


def merge_universal(
    available: Mapping[str, Artifact],
    identity: ReleaseIdentity,
    *,
    build: BuildConfig,
    source_root: Path,
    fuser: BinaryFuser,
    work_dir: Path,
    console: ConsoleProtocol,
) -> Result[MergedArtifact, PipelineError]:
    inputs = collect_merge_inputs(available)
    if isinstance(inputs, Err):
        return inputs

    merge_dir = work_dir / MERGED_PLATFORM
    try:
        merge_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        return Err(PipelineError(kind="build_failure", message=f"cannot create {merge_dir}: {e}"))

    fused = fuser.fuse([a.path for a in inputs.value], merge_dir / build.binary_name)
    if isinstance(fused, Err):
        return fused
    try:
        mark_executable(fused.value)
    except OSError as e:
        return Err(PipelineError(kind="build_failure", message=f"chmod failed: {e}"))

    staged = stage_package(
        merge_dir / "package",
        binary=fused.value,
        shipped_name=build.shipped_name,
        source_root=source_root,
        extra_files=build.extra_files,
    )
    if isinstance(staged, Err):
        return staged

    fmt = archive_format_for(MERGED_PLATFORM)
    out_path = work_dir / "dist" / artifact_filename(identity.package_prefix, MERGED_PLATFORM)
    archived = make_archive(staged.value, out_path, fmt)
    if isinstance(archived, Err):
        return archived

    console.success(f"packaged {out_path.name}")
    return Ok(
        MergedArtifact(
            inputs=inputs.value,
            output_path=fused.value,
            artifact=Artifact(
                source_target=MERGED_PLATFORM,
                kind="packaged_bundle",
                path=archived.value,
                archive_format=fmt,
            ),
        )
    )
