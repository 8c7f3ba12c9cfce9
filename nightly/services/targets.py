"""Static platform table for the build fan-out.

Each row is independent. Host preparation that only one platform needs is
attached to that row as a ``pre_step`` hook; the shared build job never
branches on platform names.
"""

from __future__ import annotations

from pathlib import Path

from nightly.core.config import BuildConfig
from nightly.core.result import Err, Ok, Result
from nightly.output.console import ConsoleProtocol, Style
from nightly.platform.process import CommandRunner
from nightly.services.errors import PipelineError
from nightly.services.model import MERGE_INPUTS, BuildTarget
from nightly.services.timeouts import PRE_STEP_TIMEOUT_SECONDS

STATIC_CRT_FLAGS = ("-Ctarget-feature=+crt-static",)

# Hosted macOS runners ship several SDKs but only Xcode 12.4's can target
# arm64; removing the others forces the toolchain onto it.
MACOS_ARM_XCODE = Path("/Applications/Xcode_12.4.app")
MACOS_SDKS_DIR = Path("/Library/Developer/CommandLineTools/SDKs")


def _run_steps(
    steps: list[list[str]], runner: CommandRunner, console: ConsoleProtocol, what: str
) -> Result[None, PipelineError]:
    cwd = Path.cwd()
    for cmd in steps:
        console.print(" ".join(cmd), Style.DIM)
        result = runner(cmd, cwd, timeout=PRE_STEP_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return Err(
                PipelineError(
                    kind="build_failure",
                    message=f"{what} failed: {result.error}",
                    hint=result.error.detail(),
                )
            )
    return Ok(None)


def install_linux_packages(
    runner: CommandRunner, console: ConsoleProtocol, build: BuildConfig
) -> Result[None, PipelineError]:
    """Install the system libraries the desktop player links against."""
    if not build.linux_packages:
        return Ok(None)
    steps = [
        ["sudo", "apt-get", "update"],
        ["sudo", "apt-get", "install", "-y", *build.linux_packages],
    ]
    return _run_steps(steps, runner, console, "linux package install")


def pin_macos_sdk(
    runner: CommandRunner, console: ConsoleProtocol, build: BuildConfig
) -> Result[None, PipelineError]:
    """Select Xcode 12.4 and delete every other command-line SDK."""
    del build
    steps = [["sudo", "xcode-select", "-s", str(MACOS_ARM_XCODE)]]
    try:
        sdks = sorted(MACOS_SDKS_DIR.iterdir()) if MACOS_SDKS_DIR.is_dir() else []
    except OSError as e:
        return Err(PipelineError(kind="build_failure", message=f"cannot list macOS SDKs: {e}"))
    steps += [["sudo", "rm", "-Rf", str(p)] for p in sdks]
    return _run_steps(steps, runner, console, "macOS SDK pinning")


BUILD_TARGETS: tuple[BuildTarget, ...] = (
    BuildTarget(
        name="linux-x86_64",
        os="linux",
        pre_step=install_linux_packages,
    ),
    BuildTarget(
        name="macos-x86_64",
        os="macos",
        triple="x86_64-apple-darwin",
    ),
    BuildTarget(
        name="macos-aarch64",
        os="macos",
        triple="aarch64-apple-darwin",
        pre_step=pin_macos_sdk,
    ),
    BuildTarget(
        name="windows-x86_32",
        os="windows",
        triple="i686-pc-windows-msvc",
        extra_flags=STATIC_CRT_FLAGS,
    ),
    BuildTarget(
        name="windows-x86_64",
        os="windows",
        triple="x86_64-pc-windows-msvc",
        extra_flags=STATIC_CRT_FLAGS,
    ),
)


def validate_targets(targets: tuple[BuildTarget, ...]) -> Result[None, PipelineError]:
    """Names must be unique and both merge inputs must be declared."""
    names = [t.name for t in targets]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        return Err(
            PipelineError(kind="invalid_config", message=f"duplicate targets: {', '.join(dupes)}")
        )
    missing = [m for m in MERGE_INPUTS if m not in names]
    if missing:
        return Err(
            PipelineError(
                kind="invalid_config",
                message=f"merge inputs not declared: {', '.join(missing)}",
            )
        )
    return Ok(None)
