"""Platform build jobs.

One job per ``BuildTarget``: run the row's pre-step, compile through an
opaque ``PlatformBuilder``, then either package and compress the result or
hand the raw binary over to the universal merge. The web job builds the
demo and reference docs consumed by the mirror channels.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from nightly.core.config import BuildConfig, WebConfig
from nightly.core.result import Err, Ok, Result
from nightly.output.console import ConsoleProtocol, Style
from nightly.platform.detection import Platform, detect_platform
from nightly.platform.process import CommandRunner
from nightly.platform.process import run as run_process
from nightly.services.archive import make_archive, stage_package
from nightly.services.errors import PipelineError
from nightly.services.model import Artifact, BuildTarget, ReleaseIdentity, artifact_filename
from nightly.services.timeouts import BUILD_TIMEOUT_SECONDS, WEB_BUILD_TIMEOUT_SECONDS


class PlatformBuilder(Protocol):
    def compile(self, target: BuildTarget) -> Result[Path, PipelineError]:
        """Build the product for target and return the produced binary."""
        ...


class CargoBuilder:
    """``cargo build --release`` of one package, optionally cross-targeted."""

    def __init__(
        self,
        *,
        source_root: Path,
        build: BuildConfig,
        console: ConsoleProtocol,
        runner: CommandRunner = run_process,
    ) -> None:
        self._root = source_root
        self._build = build
        self._console = console
        self._runner = runner

    def command(self, target: BuildTarget) -> list[str]:
        cmd = ["cargo", "build", "--package", self._build.cargo_package, "--release"]
        if target.triple:
            cmd += ["--target", target.triple]
        return cmd

    def output_path(self, target: BuildTarget) -> Path:
        out_dir = self._root / "target"
        if target.triple:
            out_dir = out_dir / target.triple
        return out_dir / "release" / f"{self._build.binary_name}{target.exe_suffix}"

    def compile(self, target: BuildTarget) -> Result[Path, PipelineError]:
        cmd = self.command(target)
        env = {"RUSTFLAGS": target.rustflags} if target.rustflags else None
        self._console.print(" ".join(cmd), Style.DIM)
        result = self._runner(cmd, self._root, env, timeout=BUILD_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return Err(
                PipelineError(
                    kind="build_failure",
                    message=f"cargo build failed for {target.name} (exit {result.error.returncode})",
                    hint=result.error.detail(),
                )
            )

        binary = self.output_path(target)
        if not binary.is_file():
            return Err(
                PipelineError(
                    kind="build_failure",
                    message=f"build output not found: {binary}",
                )
            )
        return Ok(binary)


def run_platform_build(
    target: BuildTarget,
    identity: ReleaseIdentity,
    *,
    build: BuildConfig,
    source_root: Path,
    builder: PlatformBuilder,
    runner: CommandRunner,
    work_dir: Path,
    console: ConsoleProtocol,
    host: Platform | None = None,
) -> Result[Artifact, PipelineError]:
    """Build one platform and return its artifact.

    Merge inputs yield a ``raw_binary`` artifact (a private copy of the
    binary under ``work_dir``); every other row yields a compressed
    ``packaged_bundle`` named ``<prefix>-<platform>.<ext>``.

    The row's pre-step prepares the machine it runs on, so it only runs
    when ``host`` (default: the detected platform) matches ``target.os``.
    """
    host = host if host is not None else detect_platform()
    if target.pre_step is not None and not host.matches(target.os):
        console.print(f"pre-step skipped: host is {host}, row targets {target.os}", Style.DIM)
    elif target.pre_step is not None:
        prepared = target.pre_step(runner, console, build)
        if isinstance(prepared, Err):
            return prepared

    compiled = builder.compile(target)
    if isinstance(compiled, Err):
        return compiled
    binary = compiled.value

    target_dir = work_dir / target.name

    if target.is_merge_input:
        raw = target_dir / "raw" / binary.name
        try:
            raw.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(binary, raw)
        except OSError as e:
            return Err(
                PipelineError(kind="packaging_failure", message=f"cannot keep raw binary: {e}")
            )
        console.success(f"raw binary ready for merge: {raw.name}")
        return Ok(
            Artifact(
                source_target=target.name,
                kind="raw_binary",
                path=raw,
                archive_format=target.archive_format,
            )
        )

    staged = stage_package(
        target_dir / "package",
        binary=binary,
        shipped_name=f"{build.shipped_name}{target.exe_suffix}",
        source_root=source_root,
        extra_files=build.extra_files,
    )
    if isinstance(staged, Err):
        return staged

    out_path = work_dir / "dist" / artifact_filename(identity.package_prefix, target.name)
    archived = make_archive(staged.value, out_path, target.archive_format)
    if isinstance(archived, Err):
        return archived

    console.success(f"packaged {out_path.name}")
    return Ok(
        Artifact(
            source_target=target.name,
            kind="packaged_bundle",
            path=archived.value,
            archive_format=target.archive_format,
        )
    )


@dataclass(frozen=True, slots=True)
class WebOutputs:
    demo_dir: Path
    docs_dir: Path


class WebBuilder(Protocol):
    def build(self, run_id: str) -> Result[WebOutputs, PipelineError]: ...


class NpmWebBuilder:
    """Builds the web packages with the repository's npm scripts."""

    SCRIPTS = ("bootstrap", "build", "docs")

    def __init__(
        self,
        *,
        source_root: Path,
        web: WebConfig,
        console: ConsoleProtocol,
        runner: CommandRunner = run_process,
    ) -> None:
        self._web_root = source_root / web.directory
        self._web = web
        self._console = console
        self._runner = runner

    def build(self, run_id: str) -> Result[WebOutputs, PipelineError]:
        env = {"BUILD_ID": run_id}
        for script in self.SCRIPTS:
            cmd = ["npm", "run", script]
            self._console.print(" ".join(cmd), Style.DIM)
            result = self._runner(cmd, self._web_root, env, timeout=WEB_BUILD_TIMEOUT_SECONDS)
            if isinstance(result, Err):
                return Err(
                    PipelineError(
                        kind="build_failure",
                        message=f"npm run {script} failed (exit {result.error.returncode})",
                        hint=result.error.detail(),
                    )
                )

        outputs = WebOutputs(
            demo_dir=self._web_root / self._web.demo_dist,
            docs_dir=self._web_root / self._web.docs_dir,
        )
        for label, path in (("demo", outputs.demo_dir), ("docs", outputs.docs_dir)):
            if not path.is_dir():
                return Err(
                    PipelineError(kind="build_failure", message=f"web {label} output missing: {path}")
                )
        return Ok(outputs)
