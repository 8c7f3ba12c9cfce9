from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import typer

from nightly.cli.commands._helpers import exit_with_code, resolve_trigger
from nightly.cli.context import build_context
from nightly.core.errors import ErrorCode
from nightly.platform.http import RealHttpClient
from nightly.services.gate import GithubCommitSource, check_activity


def gate(
    trigger: str | None = typer.Option(None, "--trigger", help="manual|scheduled or CI event"),
    source: Path | None = typer.Option(None, "--source", help="Project checkout (default: cwd)"),
    config: Path | None = typer.Option(None, "--config", help="Path to nightly.toml"),
) -> None:
    """Evaluate the activity gate only.

    Exits 0 when a release would proceed and 1 when it would be skipped.
    """
    ctx = build_context(source, config)
    cfg = ctx.config
    commits = GithubCommitSource(
        RealHttpClient(), cfg.project.repo, ctx.secret(cfg.secrets.github_token)
    )
    decision = check_activity(
        resolve_trigger(trigger, None), commits, now=datetime.now(UTC), console=ctx.console
    )
    ctx.console.print(decision.reason)
    if not decision.is_alive:
        exit_with_code(int(ErrorCode.USER_ERROR))
