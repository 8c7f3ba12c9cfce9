from __future__ import annotations

from pathlib import Path

import typer

from nightly.cli.commands._helpers import exit_with_code, resolve_trigger
from nightly.cli.context import CLIContext, build_context
from nightly.output.console import ConsoleProtocol, Style, SynchronizedConsole
from nightly.platform.http import RealHttpClient
from nightly.services.build import CargoBuilder, NpmWebBuilder
from nightly.services.gate import GithubCommitSource
from nightly.services.merge import LipoFuser
from nightly.services.orchestrator import Collaborators, PipelineReport, run_pipeline
from nightly.services.publish import AurSubmitter, GitMirrorPublisher, HttpAssetUploader
from nightly.services.registrar import GhReleaseBackend


def build_collaborators(
    ctx: CLIContext, *, console: ConsoleProtocol, work_dir: Path, dry_run: bool
) -> Collaborators:
    cfg = ctx.config
    http = RealHttpClient()
    github_token = ctx.secret(cfg.secrets.github_token)
    key = ctx.secret(cfg.secrets.package_index_key)
    return Collaborators(
        commits=GithubCommitSource(http, cfg.project.repo, github_token),
        releases=GhReleaseBackend(
            workspace_root=ctx.source_root,
            repo=cfg.project.repo,
            console=console,
            dry_run=dry_run,
        ),
        builder=CargoBuilder(source_root=ctx.source_root, build=cfg.build, console=console),
        web_builder=NpmWebBuilder(source_root=ctx.source_root, web=cfg.web, console=console),
        fuser=LipoFuser(console=console),
        uploader=HttpAssetUploader(
            http=http, token=github_token, console=console, dry_run=dry_run
        ),
        mirrors=GitMirrorPublisher(
            author=cfg.identity,
            work_dir=work_dir,
            console=console,
            token=ctx.secret(cfg.secrets.mirror_token),
            dry_run=dry_run,
        ),
        package_index=AurSubmitter(
            index=cfg.package_index,
            author=cfg.identity,
            ssh_key=Path(key) if key else None,
            work_dir=work_dir,
            console=console,
            dry_run=dry_run,
        ),
    )


def print_summary(report: PipelineReport, ctx: CLIContext) -> None:
    console = ctx.console
    console.newline()
    console.header("Summary")
    if report.skipped:
        reason = report.decision.reason if report.decision else "gate closed"
        console.info(f"no release today ({reason})")
        return
    if report.identity is not None:
        console.print(f"release: {report.identity.tag_name}", Style.BOLD)
    for outcome in report.outcomes.values():
        match outcome.status:
            case "succeeded":
                console.success(outcome.task_id)
            case "skipped":
                console.warning(f"{outcome.task_id}: skipped")
            case "failed":
                console.error(f"{outcome.task_id}: failed")
    for record in report.publishes:
        console.print(f"{record.channel}: {record.name}", Style.DIM)


def _exit_on_pipeline_error(report: PipelineReport, ctx: CLIContext) -> None:
    error = report.error
    if error is None:
        return
    ctx.console.error(error.message)
    if error.hint:
        ctx.console.print(f"hint: {error.hint}", Style.DIM)
    exit_with_code(int(report.exit_code))


def run(
    trigger: str | None = typer.Option(
        None,
        "--trigger",
        help="manual|scheduled or a CI event name (default: $GITHUB_EVENT_NAME)",
    ),
    run_id: str | None = typer.Option(
        None, "--run-id", help="Build identifier (default: $GITHUB_RUN_NUMBER)"
    ),
    source: Path | None = typer.Option(None, "--source", help="Project checkout (default: cwd)"),
    config: Path | None = typer.Option(None, "--config", help="Path to nightly.toml"),
    work_dir: Path = typer.Option(
        Path(".nightly"), "--work-dir", help="Scratch directory for builds and clones"
    ),
    jobs: int | None = typer.Option(None, "--jobs", "-j", min=1, help="Max parallel tasks"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print writes without performing them"),
) -> None:
    """Run the nightly release: gate, register, build, merge and publish."""
    ctx = build_context(source, config)
    console = SynchronizedConsole(ctx.console)
    scratch = work_dir if work_dir.is_absolute() else ctx.source_root / work_dir
    report = run_pipeline(
        resolve_trigger(trigger, run_id),
        ctx.config,
        build_collaborators(ctx, console=console, work_dir=scratch, dry_run=dry_run),
        console=console,
        source_root=ctx.source_root,
        work_dir=scratch,
        max_workers=jobs,
    )
    _exit_on_pipeline_error(report, ctx)
    print_summary(report, ctx)
    exit_with_code(int(report.exit_code))
