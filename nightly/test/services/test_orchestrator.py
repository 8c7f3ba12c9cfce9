"""End-to-end pipeline scenarios with every external system faked."""

from __future__ import annotations

import threading
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from nightly.core.config import Config, MirrorConfig
from nightly.core.errors import ErrorCode
from nightly.core.result import Err, Ok, Result
from nightly.output.console import MockConsole
from nightly.platform.detection import Platform
from nightly.platform.process import ProcessError
from nightly.services.build import WebOutputs
from nightly.services.clock import capture_release_date
from nightly.services.errors import PipelineError
from nightly.services.graph import TaskOutcome
from nightly.services.model import (
    Artifact,
    BuildTarget,
    PublishRecord,
    ReleaseIdentity,
    TriggerContext,
    UpstreamCommit,
)
from nightly.services.orchestrator import Collaborators, PipelineReport, run_pipeline
from nightly.services.registrar import ReleaseRecord

NOW = datetime(2024, 1, 31, 6, 0, tzinfo=UTC)
UPLOAD = "https://uploads.github.com/repos/ruffle-rs/ruffle/releases/1/assets{?name,label}"


# =============================================================================
# Fakes
# =============================================================================


class FakeCommits:
    def __init__(self, age: timedelta) -> None:
        self.age = age
        self.calls = 0

    def latest_commit(self) -> Result[UpstreamCommit, PipelineError]:
        self.calls += 1
        return Ok(UpstreamCommit(timestamp=NOW - self.age, author="dev"))


class FakeReleases:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.created: list[str] = []

    def find_release(self, tag: str) -> Result[ReleaseRecord | None, PipelineError]:
        if self.fail:
            return Err(PipelineError(kind="registrar_failure", message="gh api failed"))
        return Ok(None)

    def create_release(
        self, tag: str, title: str, *, prerelease: bool
    ) -> Result[ReleaseRecord, PipelineError]:
        self.created.append(tag)
        return Ok(ReleaseRecord(tag=tag, upload_url=UPLOAD))


class FakeBuilder:
    def __init__(self, out_dir: Path, failing: frozenset[str] = frozenset()) -> None:
        self.out_dir = out_dir
        self.failing = failing
        self.compiled: list[str] = []
        self._lock = threading.Lock()

    def compile(self, target: BuildTarget) -> Result[Path, PipelineError]:
        with self._lock:
            self.compiled.append(target.name)
        if target.name in self.failing:
            return Err(PipelineError(kind="build_failure", message=f"{target.name} broke"))
        binary = self.out_dir / target.name / "ruffle_desktop"
        binary.parent.mkdir(parents=True, exist_ok=True)
        binary.write_bytes(target.name.encode())
        return Ok(binary)


class FakeWeb:
    def __init__(self, root: Path) -> None:
        self.root = root
        self.run_ids: list[str] = []

    def build(self, run_id: str) -> Result[WebOutputs, PipelineError]:
        self.run_ids.append(run_id)
        demo = self.root / "demo"
        docs = self.root / "docs"
        demo.mkdir(parents=True, exist_ok=True)
        docs.mkdir(parents=True, exist_ok=True)
        return Ok(WebOutputs(demo_dir=demo, docs_dir=docs))


class FakeFuser:
    def fuse(self, inputs: Sequence[Path], output: Path) -> Result[Path, PipelineError]:
        assert len(inputs) == 2
        output.write_bytes(b"".join(p.read_bytes() for p in inputs))
        return Ok(output)


class FakeUploader:
    def __init__(self) -> None:
        self.uploads: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def upload(self, upload_target: str, artifact: Artifact) -> Result[PublishRecord, PipelineError]:
        with self._lock:
            self.uploads.append((upload_target, artifact.filename))
        return Ok(PublishRecord("release-assets", artifact.filename, upload_target))


class FakeMirrors:
    def __init__(self, failing: frozenset[str] = frozenset()) -> None:
        self.failing = failing
        self.published: list[tuple[str, str, Path]] = []
        self._lock = threading.Lock()

    def publish(
        self, channel: str, mirror: MirrorConfig, payload_dir: Path, identity: ReleaseIdentity
    ) -> Result[PublishRecord, PipelineError]:
        with self._lock:
            self.published.append((channel, mirror.repo, payload_dir))
        if channel in self.failing:
            return Err(PipelineError(kind="publish_failure", message=f"{channel}: mirror unreachable"))
        return Ok(PublishRecord(channel, f"Nightly build {identity.date_dashed}", mirror.repo))


class FakeIndex:
    def __init__(self) -> None:
        self.definitions: list[str] = []

    def submit(self, definition: str, identity: ReleaseIdentity) -> Result[PublishRecord, PipelineError]:
        self.definitions.append(definition)
        return Ok(PublishRecord("package-index", "Update", "aur"))


class FakeRunner:
    def __init__(self) -> None:
        self.commands: list[list[str]] = []

    def __call__(
        self, cmd: list[str], cwd: Path, env: object = None, *, timeout: float | None = None
    ) -> Result[str, ProcessError]:
        self.commands.append(cmd)
        return Ok("")


class World:
    """All fakes plus a prepared source checkout."""

    def __init__(
        self,
        tmp_path: Path,
        *,
        age: timedelta = timedelta(hours=3),
        failing_builds: frozenset[str] = frozenset(),
        failing_mirrors: frozenset[str] = frozenset(),
        registrar_fails: bool = False,
        host: Platform = Platform.LINUX,
    ) -> None:
        self.host = host
        self.source_root = tmp_path / "src"
        self.source_root.mkdir()
        (self.source_root / "README.md").write_text("readme", encoding="utf-8")
        (self.source_root / "LICENSE.md").write_text("license", encoding="utf-8")
        (self.source_root / "PKGBUILD").write_text("pkgver=@VERSION@\n", encoding="utf-8")
        self.work_dir = tmp_path / "work"

        self.commits = FakeCommits(age)
        self.releases = FakeReleases(fail=registrar_fails)
        self.builder = FakeBuilder(tmp_path / "cargo", failing_builds)
        self.web = FakeWeb(tmp_path / "webout")
        self.uploader = FakeUploader()
        self.mirrors = FakeMirrors(failing_mirrors)
        self.index = FakeIndex()
        self.runner = FakeRunner()
        self.console = MockConsole()

    def run(self, kind: str = "scheduled") -> PipelineReport:
        collab = Collaborators(
            commits=self.commits,
            releases=self.releases,
            builder=self.builder,
            web_builder=self.web,
            fuser=FakeFuser(),
            uploader=self.uploader,
            mirrors=self.mirrors,
            package_index=self.index,
            runner=self.runner,
            host=self.host,
        )
        return run_pipeline(
            TriggerContext(kind=kind, run_id="4242"),  # type: ignore[arg-type]
            Config(),
            collab,
            console=self.console,
            source_root=self.source_root,
            work_dir=self.work_dir,
            date=capture_release_date(NOW),
        )


# =============================================================================
# Gate scenarios
# =============================================================================


class TestGateScenarios:
    def test_stale_scheduled_run_does_nothing_and_succeeds(self, tmp_path: Path) -> None:
        world = World(tmp_path, age=timedelta(days=2))
        report = world.run("scheduled")

        assert report.skipped
        assert report.succeeded
        assert report.exit_code == ErrorCode.OK
        assert report.identity is None
        assert report.artifacts == []
        assert report.publishes == []
        assert world.releases.created == []
        assert world.builder.compiled == []
        assert world.uploader.uploads == []
        assert world.mirrors.published == []
        assert world.index.definitions == []

    def test_manual_run_on_stale_repository_proceeds(self, tmp_path: Path) -> None:
        world = World(tmp_path, age=timedelta(days=30))
        report = world.run("manual")

        assert not report.skipped
        assert report.succeeded
        assert world.commits.calls == 0
        assert len(report.artifacts) == 5
        assert report.merged is not None
        assert len(report.publishes) == 7


# =============================================================================
# Full run
# =============================================================================


class TestFullRun:
    def test_all_builds_succeed(self, tmp_path: Path) -> None:
        world = World(tmp_path)
        report = world.run()

        assert report.succeeded
        assert report.exit_code == ErrorCode.OK
        assert world.releases.created == ["nightly-2024-01-31"]

        artifacts = report.artifacts
        assert len(artifacts) == 5
        assert {a.source_target for a in artifacts} == {
            "linux-x86_64",
            "macos-x86_64",
            "macos-aarch64",
            "windows-x86_32",
            "windows-x86_64",
        }
        assert report.merged is not None
        assert report.merged.output_path.read_bytes() == b"macos-x86_64macos-aarch64"

        publishes = report.publishes
        assert len(publishes) == 7
        assert sorted(p.channel for p in publishes) == [
            "demo",
            "docs",
            "package-index",
            "release-assets",
            "release-assets",
            "release-assets",
            "release-assets",
        ]
        assert sorted(name for _, name in world.uploader.uploads) == [
            "ruffle-nightly-2024_01_31-linux-x86_64.tar.gz",
            "ruffle-nightly-2024_01_31-macos-universal.tar.gz",
            "ruffle-nightly-2024_01_31-windows-x86_32.zip",
            "ruffle-nightly-2024_01_31-windows-x86_64.zip",
        ]
        assert {target for target, _ in world.uploader.uploads} == {UPLOAD}

    def test_package_definition_uses_dotted_date(self, tmp_path: Path) -> None:
        world = World(tmp_path)
        world.run()
        assert world.index.definitions == ["pkgver=2024.01.31\n"]

    def test_mirrors_get_web_outputs(self, tmp_path: Path) -> None:
        world = World(tmp_path)
        world.run()
        published = sorted(world.mirrors.published)
        assert published == [
            ("demo", "ruffle-rs/demo", tmp_path / "webout" / "demo"),
            ("docs", "ruffle-rs/js-docs", tmp_path / "webout" / "docs"),
        ]
        assert world.web.run_ids == ["4242"]

    def test_linux_host_only_runs_linux_pre_step(self, tmp_path: Path) -> None:
        world = World(tmp_path, host=Platform.LINUX)
        report = world.run()
        assert report.succeeded
        assert ["sudo", "apt-get", "update"] in world.runner.commands
        assert not any("xcode-select" in cmd for cmd in world.runner.commands)
        assert not any(cmd[:3] == ["sudo", "rm", "-Rf"] for cmd in world.runner.commands)

    def test_macos_host_pins_sdk_after_intel_build(self, tmp_path: Path) -> None:
        world = World(tmp_path, host=Platform.MACOS)
        report = world.run()
        assert report.succeeded
        assert ["sudo", "xcode-select", "-s", "/Applications/Xcode_12.4.app"] in (
            world.runner.commands
        )
        assert not any("apt-get" in cmd for cmd in world.runner.commands)
        compiled = world.builder.compiled
        assert compiled.index("macos-x86_64") < compiled.index("macos-aarch64")


# =============================================================================
# Failure isolation
# =============================================================================


class TestFailures:
    def test_linux_failure_is_isolated(self, tmp_path: Path) -> None:
        world = World(tmp_path, failing_builds=frozenset({"linux-x86_64"}))
        report = world.run()

        outcomes = report.outcomes
        assert outcomes["build:linux-x86_64"].status == "failed"
        assert outcomes["assets:linux-x86_64"].status == "skipped"
        assert outcomes["package-index"].status == "skipped"
        assert outcomes["merge:macos-universal"].succeeded
        assert outcomes["assets:macos-universal"].succeeded
        assert outcomes["mirror:demo"].succeeded
        assert report.exit_code == ErrorCode.BUILD_ERROR
        assert world.index.definitions == []

    def test_missing_arm_binary_fails_merge(self, tmp_path: Path) -> None:
        world = World(tmp_path, failing_builds=frozenset({"macos-aarch64"}))
        report = world.run()

        merge = report.outcomes["merge:macos-universal"]
        assert merge.status == "failed"
        assert merge.error is not None
        assert merge.error.kind == "merge_barrier_failure"
        assert report.merged is None
        assert report.outcomes["assets:macos-universal"].status == "skipped"
        assert report.outcomes["assets:windows-x86_64"].succeeded
        assert report.exit_code == ErrorCode.BUILD_ERROR

    def test_mirror_failure_does_not_block_other_channels(self, tmp_path: Path) -> None:
        world = World(tmp_path, failing_mirrors=frozenset({"demo"}))
        report = world.run()

        assert report.outcomes["mirror:demo"].status == "failed"
        assert report.outcomes["mirror:docs"].succeeded
        assert len(report.publishes) == 6
        assert report.exit_code == ErrorCode.PUBLISH_ERROR

    def test_raising_publisher_still_yields_report(self, tmp_path: Path) -> None:
        class CrashingMirrors(FakeMirrors):
            def publish(
                self,
                channel: str,
                mirror: MirrorConfig,
                payload_dir: Path,
                identity: ReleaseIdentity,
            ) -> Result[PublishRecord, PipelineError]:
                if channel == "demo":
                    raise NotADirectoryError(f"stale clone for {channel}")
                return super().publish(channel, mirror, payload_dir, identity)

        world = World(tmp_path)
        world.mirrors = CrashingMirrors()
        report = world.run()

        demo = report.outcomes["mirror:demo"]
        assert demo.status == "failed"
        assert demo.error is not None
        assert demo.error.kind == "publish_failure"
        assert report.outcomes["mirror:docs"].succeeded
        assert report.outcomes["assets:macos-universal"].succeeded
        assert len(world.uploader.uploads) == 4
        assert report.exit_code == ErrorCode.PUBLISH_ERROR

    def test_packaging_failure_is_io_error(self) -> None:
        failure = TaskOutcome(
            task_id="build:linux-x86_64",
            status="failed",
            error=PipelineError(kind="packaging_failure", message="archive failed: disk full"),
        )
        report = PipelineReport(
            trigger=TriggerContext(kind="manual", run_id="1"),
            date=capture_release_date(NOW),
            outcomes={"build:linux-x86_64": failure},
        )
        assert report.exit_code == ErrorCode.IO_ERROR

    def test_registrar_failure_stops_before_builds(self, tmp_path: Path) -> None:
        world = World(tmp_path, registrar_fails=True)
        report = world.run()

        assert report.error is not None
        assert report.error.kind == "registrar_failure"
        assert report.exit_code == ErrorCode.NETWORK_ERROR
        assert world.builder.compiled == []

    def test_invalid_target_table(self, tmp_path: Path) -> None:
        world = World(tmp_path)
        collab = Collaborators(
            commits=world.commits,
            releases=world.releases,
            builder=world.builder,
            web_builder=world.web,
            fuser=FakeFuser(),
            uploader=world.uploader,
            mirrors=world.mirrors,
            package_index=world.index,
        )
        report = run_pipeline(
            TriggerContext(kind="manual", run_id="1"),
            Config(),
            collab,
            console=world.console,
            source_root=world.source_root,
            work_dir=world.work_dir,
            date=capture_release_date(NOW),
            targets=(BuildTarget(name="linux-x86_64", os="linux"),),
        )
        assert report.error is not None
        assert report.exit_code == ErrorCode.ENV_ERROR


@pytest.mark.parametrize("workers", [1, 2])
def test_limited_workers_still_complete(tmp_path: Path, workers: int) -> None:
    world = World(tmp_path)
    collab = Collaborators(
        commits=world.commits,
        releases=world.releases,
        builder=world.builder,
        web_builder=world.web,
        fuser=FakeFuser(),
        uploader=world.uploader,
        mirrors=world.mirrors,
        package_index=world.index,
        runner=world.runner,
    )
    report = run_pipeline(
        TriggerContext(kind="scheduled", run_id="1"),
        Config(),
        collab,
        console=world.console,
        source_root=world.source_root,
        work_dir=world.work_dir,
        date=capture_release_date(NOW),
        max_workers=workers,
    )
    assert report.succeeded
    assert len(report.publishes) == 7
