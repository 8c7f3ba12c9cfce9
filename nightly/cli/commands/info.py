from __future__ import annotations

from datetime import datetime
from pathlib import Path

import typer

from nightly.cli.context import build_context
from nightly.core.errors import ErrorCode
from nightly.output.console import RichConsole, Style
from nightly.services.clock import capture_release_date, release_names
from nightly.services.model import MERGED_PLATFORM, artifact_filename
from nightly.services.targets import BUILD_TARGETS


def targets() -> None:
    """List the build platform table."""
    console = RichConsole()
    for target in BUILD_TARGETS:
        role = f"-> {MERGED_PLATFORM}" if target.is_merge_input else target.archive_format
        triple = target.triple or "host"
        console.print(f"{target.name:<16} {target.os:<8} {triple:<24} {role}")
        if target.pre_step is not None:
            console.print(f"  pre-step: {target.pre_step.__name__}", Style.DIM)


def identity(
    date: str | None = typer.Option(
        None, "--date", help="ISO date or datetime to render instead of now"
    ),
    source: Path | None = typer.Option(None, "--source", help="Project checkout (default: cwd)"),
    config: Path | None = typer.Option(None, "--config", help="Path to nightly.toml"),
) -> None:
    """Print the release names a run would use."""
    ctx = build_context(source, config)
    instant: datetime | None = None
    if date is not None:
        try:
            instant = datetime.fromisoformat(date)
        except ValueError:
            ctx.console.error(f"invalid --date: {date}")
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    rd = capture_release_date(instant)
    tag, title, prefix = release_names(rd, ctx.config.project.package_base)
    ctx.console.print(f"tag:      {tag}")
    ctx.console.print(f"title:    {title}")
    ctx.console.print(f"version:  {rd.dotted}")
    ctx.console.print("assets:")
    names = [t.name for t in BUILD_TARGETS if not t.is_merge_input] + [MERGED_PLATFORM]
    for name in names:
        ctx.console.print(f"  {artifact_filename(prefix, name)}", Style.DIM)
