from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Literal, TypeAlias

if TYPE_CHECKING:
    from nightly.core.config import BuildConfig
    from nightly.core.result import Result
    from nightly.output.console import ConsoleProtocol
    from nightly.platform.process import CommandRunner
    from nightly.services.errors import PipelineError


TriggerKind = Literal["scheduled", "manual"]
ArchiveFormat = Literal["zip", "tar.gz"]
ArtifactKind = Literal["packaged_bundle", "raw_binary"]
HostOs = Literal["linux", "macos", "windows"]

# CI events that count as an operator asking for a release.
MANUAL_EVENTS = frozenset({"workflow_dispatch", "repository_dispatch"})

# Two macOS rows are fused into one universal binary instead of shipping alone.
MERGE_INPUTS: tuple[str, str] = ("macos-x86_64", "macos-aarch64")
MERGED_PLATFORM = "macos-universal"


@dataclass(frozen=True, slots=True)
class TriggerContext:
    """How this run was started. Created once at pipeline start."""

    kind: TriggerKind
    run_id: str

    @property
    def is_manual(self) -> bool:
        return self.kind == "manual"


def trigger_from_event(event_name: str | None, run_id: str) -> TriggerContext:
    """Map a CI event name to a trigger; unknown or missing events are scheduled."""
    kind: TriggerKind = "manual" if event_name in MANUAL_EVENTS else "scheduled"
    return TriggerContext(kind=kind, run_id=run_id)


@dataclass(frozen=True, slots=True)
class UpstreamCommit:
    """Most recent upstream change, as reported by the hosting service."""

    timestamp: datetime
    author: str | None = None
    url: str | None = None


@dataclass(frozen=True, slots=True)
class ActivityDecision:
    is_alive: bool
    reason: str
    last_change: UpstreamCommit | None = None


@dataclass(frozen=True, slots=True)
class ReleaseDate:
    """One wall-clock instant and its three textual renderings."""

    instant: datetime
    dashed: str  # tag naming
    underscored: str  # artifact prefix
    dotted: str  # package index version


@dataclass(frozen=True, slots=True)
class ReleaseIdentity:
    """The single release record of a run. Read-only for every later stage."""

    date: ReleaseDate
    tag_name: str
    display_name: str
    package_prefix: str
    upload_target: str

    @property
    def date_dashed(self) -> str:
        return self.date.dashed

    @property
    def date_underscored(self) -> str:
        return self.date.underscored

    @property
    def date_dotted(self) -> str:
        return self.date.dotted


PreStep: TypeAlias = (
    "Callable[[CommandRunner, ConsoleProtocol, BuildConfig], Result[None, PipelineError]]"
)


@dataclass(frozen=True, slots=True)
class BuildTarget:
    """One row of the static platform table driving the fan-out."""

    name: str
    os: HostOs
    triple: str | None = None
    extra_flags: tuple[str, ...] = ()
    # Host preparation that only this platform needs.
    pre_step: PreStep | None = None

    @property
    def archive_format(self) -> ArchiveFormat:
        return archive_format_for(self.name)

    @property
    def is_merge_input(self) -> bool:
        return self.name in MERGE_INPUTS

    @property
    def rustflags(self) -> str | None:
        return " ".join(self.extra_flags) or None

    @property
    def exe_suffix(self) -> str:
        return ".exe" if self.os == "windows" else ""


def archive_format_for(platform_name: str) -> ArchiveFormat:
    return "zip" if platform_name.startswith("windows") else "tar.gz"


def artifact_filename(prefix: str, platform_name: str) -> str:
    """``<prefix>-<platform>.<ext>``, e.g. ruffle-nightly-2024_01_31-linux-x86_64.tar.gz."""
    return f"{prefix}-{platform_name}.{archive_format_for(platform_name)}"


@dataclass(frozen=True, slots=True)
class Artifact:
    source_target: str
    kind: ArtifactKind
    path: Path
    archive_format: ArchiveFormat

    @property
    def filename(self) -> str:
        return self.path.name


@dataclass(frozen=True, slots=True)
class MergedArtifact:
    inputs: tuple[Artifact, Artifact]
    output_path: Path  # fused binary
    artifact: Artifact  # compressed bundle to publish


@dataclass(frozen=True, slots=True)
class PublishRecord:
    """One completed publish operation on one channel."""

    channel: str
    name: str
    destination: str
