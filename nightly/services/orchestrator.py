"""Nightly pipeline wiring.

Order of a run:

1. sample the clock once (``ReleaseDate``);
2. activity gate; a stale scheduled run stops here and succeeds;
3. register the release (``ReleaseIdentity``);
4. run the task graph: platform builds and the web build fan out, the
   universal merge waits on the whole platform fan-out, publishers start as
   soon as their own inputs exist.

The graph has an explicit ``release`` root that every task depends on, so
the package-index publish is tied to the gate directly rather than through
the builds it waits for.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from nightly.core.config import Config
from nightly.core.errors import ErrorCode
from nightly.core.result import Err, Ok, Result
from nightly.output.console import ConsoleProtocol, PrefixedConsole, SynchronizedConsole
from nightly.platform.detection import Platform, detect_platform
from nightly.platform.process import CommandRunner
from nightly.platform.process import run as run_process
from nightly.services.build import PlatformBuilder, WebBuilder, WebOutputs, run_platform_build
from nightly.services.clock import capture_release_date
from nightly.services.errors import PipelineError
from nightly.services.gate import CommitSource, check_activity
from nightly.services.graph import Task, TaskOutcome, run_graph
from nightly.services.merge import BinaryFuser, merge_universal
from nightly.services.model import (
    MERGED_PLATFORM,
    ActivityDecision,
    Artifact,
    BuildTarget,
    MergedArtifact,
    PublishRecord,
    ReleaseDate,
    ReleaseIdentity,
    TriggerContext,
)
from nightly.services.publish import (
    AssetUploader,
    MirrorPublisher,
    PackageIndexSubmitter,
    load_package_template,
    render_package_definition,
)
from nightly.services.registrar import ReleaseBackend, register_release
from nightly.services.targets import BUILD_TARGETS, validate_targets

RELEASE_TASK = "release"
WEB_TASK = "build:web"
MERGE_TASK = f"merge:{MERGED_PLATFORM}"
PACKAGE_INDEX_TASK = "package-index"
DEMO_CHANNEL = "demo"
DOCS_CHANNEL = "docs"


def build_task_id(target: str) -> str:
    return f"build:{target}"


def assets_task_id(platform: str) -> str:
    return f"assets:{platform}"


def mirror_task_id(channel: str) -> str:
    return f"mirror:{channel}"


@dataclass(frozen=True, slots=True)
class Collaborators:
    """External systems the pipeline talks to, all swappable in tests."""

    commits: CommitSource
    releases: ReleaseBackend
    builder: PlatformBuilder
    web_builder: WebBuilder
    fuser: BinaryFuser
    uploader: AssetUploader
    mirrors: MirrorPublisher
    package_index: PackageIndexSubmitter
    runner: CommandRunner = run_process
    host: Platform = field(default_factory=detect_platform)


@dataclass(frozen=True, slots=True)
class PipelineReport:
    trigger: TriggerContext
    date: ReleaseDate
    decision: ActivityDecision | None = None
    identity: ReleaseIdentity | None = None
    outcomes: Mapping[str, TaskOutcome] = field(default_factory=dict)
    error: PipelineError | None = None

    @property
    def skipped(self) -> bool:
        """True when the gate closed and nothing was attempted."""
        return self.decision is not None and not self.decision.is_alive

    @property
    def artifacts(self) -> list[Artifact]:
        """Per-platform artifacts produced by the build fan-out (pre-merge)."""
        return [
            o.value
            for task_id, o in self.outcomes.items()
            if task_id.startswith("build:") and isinstance(o.value, Artifact)
        ]

    @property
    def merged(self) -> MergedArtifact | None:
        outcome = self.outcomes.get(MERGE_TASK)
        if outcome is not None and isinstance(outcome.value, MergedArtifact):
            return outcome.value
        return None

    @property
    def publishes(self) -> list[PublishRecord]:
        return [o.value for o in self.outcomes.values() if isinstance(o.value, PublishRecord)]

    @property
    def failures(self) -> list[TaskOutcome]:
        return [o for o in self.outcomes.values() if o.status == "failed"]

    @property
    def succeeded(self) -> bool:
        return self.error is None and not self.failures

    @property
    def exit_code(self) -> ErrorCode:
        if self.error is not None:
            match self.error.kind:
                case "invalid_config" | "invalid_graph" | "tool_missing":
                    return ErrorCode.ENV_ERROR
                case _:
                    return ErrorCode.NETWORK_ERROR
        kinds = {o.error.kind for o in self.failures if o.error is not None}
        if kinds & {"build_failure", "merge_barrier_failure"}:
            return ErrorCode.BUILD_ERROR
        if "packaging_failure" in kinds:
            return ErrorCode.IO_ERROR
        if kinds:
            return ErrorCode.PUBLISH_ERROR
        return ErrorCode.OK


def build_tasks(
    identity: ReleaseIdentity,
    trigger: TriggerContext,
    config: Config,
    collab: Collaborators,
    *,
    targets: tuple[BuildTarget, ...],
    source_root: Path,
    work_dir: Path,
    console: ConsoleProtocol,
) -> list[Task]:
    """Assemble the task graph of one run."""
    tasks: list[Task] = [Task(id=RELEASE_TASK, run=lambda _inputs: Ok(identity))]
    build_ids = tuple(build_task_id(t.name) for t in targets)

    def host_prep_after(target: BuildTarget) -> tuple[str, ...]:
        # A pre-step that rewrites the host toolchain waits for the other
        # builds of the same OS sharing this host.
        if target.pre_step is None or not collab.host.matches(target.os):
            return ()
        return tuple(
            build_task_id(t.name)
            for t in targets
            if t.os == target.os and t.pre_step is None
        )

    def platform_build(target: BuildTarget) -> Task:
        def run(_inputs: Mapping[str, object]) -> Result[object, PipelineError]:
            return run_platform_build(
                target,
                identity,
                build=config.build,
                source_root=source_root,
                builder=collab.builder,
                runner=collab.runner,
                work_dir=work_dir / "build",
                console=PrefixedConsole(console, build_task_id(target.name)),
                host=collab.host,
            )

        return Task(
            id=build_task_id(target.name),
            run=run,
            requires=(RELEASE_TASK,),
            after=host_prep_after(target),
        )

    def upload(task_id: str, source: str) -> Task:
        def run(inputs: Mapping[str, object]) -> Result[object, PipelineError]:
            produced = inputs[source]
            artifact = produced.artifact if isinstance(produced, MergedArtifact) else produced
            if not isinstance(artifact, Artifact) or artifact.kind != "packaged_bundle":
                return Err(
                    PipelineError(kind="publish_failure", message=f"{source} produced no bundle")
                )
            return collab.uploader.upload(identity.upload_target, artifact)

        return Task(
            id=task_id, run=run, requires=(RELEASE_TASK, source), failure_kind="publish_failure"
        )

    def merge(inputs: Mapping[str, object]) -> Result[object, PipelineError]:
        available = {
            value.source_target: value for value in inputs.values() if isinstance(value, Artifact)
        }
        return merge_universal(
            available,
            identity,
            build=config.build,
            source_root=source_root,
            fuser=collab.fuser,
            work_dir=work_dir / "build",
            console=PrefixedConsole(console, MERGE_TASK),
        )

    def web_build(_inputs: Mapping[str, object]) -> Result[object, PipelineError]:
        return collab.web_builder.build(trigger.run_id)

    def mirror(channel: str) -> Task:
        cfg = config.demo if channel == DEMO_CHANNEL else config.docs

        def run(inputs: Mapping[str, object]) -> Result[object, PipelineError]:
            outputs = inputs[WEB_TASK]
            if not isinstance(outputs, WebOutputs):
                return Err(PipelineError(kind="publish_failure", message="web outputs missing"))
            payload = outputs.demo_dir if channel == DEMO_CHANNEL else outputs.docs_dir
            return collab.mirrors.publish(channel, cfg, payload, identity)

        return Task(
            id=mirror_task_id(channel),
            run=run,
            requires=(RELEASE_TASK, WEB_TASK),
            failure_kind="publish_failure",
        )

    def package_index(_inputs: Mapping[str, object]) -> Result[object, PipelineError]:
        index = config.package_index
        template = load_package_template(source_root / index.template)
        if isinstance(template, Err):
            return template
        rendered = render_package_definition(
            template.value, placeholder=index.placeholder, version=identity.date_dotted
        )
        if isinstance(rendered, Err):
            return rendered
        return collab.package_index.submit(rendered.value, identity)

    tasks += [platform_build(t) for t in targets]
    tasks.append(Task(id=WEB_TASK, run=web_build, requires=(RELEASE_TASK,)))

    merge_inputs = tuple(build_task_id(t.name) for t in targets if t.is_merge_input)
    tasks.append(
        Task(
            id=MERGE_TASK,
            run=merge,
            requires=merge_inputs,
            after=build_ids,
            barrier=True,
            failure_kind="merge_barrier_failure",
        )
    )

    tasks += [
        upload(assets_task_id(t.name), build_task_id(t.name))
        for t in targets
        if not t.is_merge_input
    ]
    tasks.append(upload(assets_task_id(MERGED_PLATFORM), MERGE_TASK))
    tasks += [mirror(DEMO_CHANNEL), mirror(DOCS_CHANNEL)]
    tasks.append(
        Task(
            id=PACKAGE_INDEX_TASK,
            run=package_index,
            requires=(RELEASE_TASK, *build_ids),
            failure_kind="publish_failure",
        )
    )
    return tasks


def run_pipeline(
    trigger: TriggerContext,
    config: Config,
    collab: Collaborators,
    *,
    console: ConsoleProtocol,
    source_root: Path,
    work_dir: Path,
    date: ReleaseDate | None = None,
    targets: tuple[BuildTarget, ...] = BUILD_TARGETS,
    max_workers: int | None = None,
) -> PipelineReport:
    """Run one nightly end to end and report every stage outcome."""
    date = date or capture_release_date()
    if not isinstance(console, SynchronizedConsole):
        console = SynchronizedConsole(console)

    valid = validate_targets(targets)
    if isinstance(valid, Err):
        return PipelineReport(trigger=trigger, date=date, error=valid.error)

    console.header(f"Nightly {date.dashed} ({trigger.kind}, run {trigger.run_id})")
    decision = check_activity(trigger, collab.commits, now=date.instant, console=console)
    if not decision.is_alive:
        console.info("nothing to do")
        return PipelineReport(trigger=trigger, date=date, decision=decision)

    registered = register_release(
        date,
        decision,
        collab.releases,
        package_base=config.project.package_base,
        console=console,
    )
    if isinstance(registered, Err):
        return PipelineReport(
            trigger=trigger, date=date, decision=decision, error=registered.error.at(RELEASE_TASK)
        )
    identity = registered.value
    if identity is None:
        return PipelineReport(trigger=trigger, date=date, decision=decision)

    tasks = build_tasks(
        identity,
        trigger,
        config,
        collab,
        targets=targets,
        source_root=source_root,
        work_dir=work_dir,
        console=console,
    )
    outcomes = run_graph(tasks, console=console, max_workers=max_workers)
    return PipelineReport(
        trigger=trigger,
        date=date,
        decision=decision,
        identity=identity,
        outcomes=outcomes,
    )
