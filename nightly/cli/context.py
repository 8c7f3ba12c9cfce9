from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import typer

from nightly.core.config import CONFIG_FILENAME, Config, load_config_or_default
from nightly.core.errors import ErrorCode
from nightly.core.result import Err
from nightly.output.console import ConsoleProtocol, RichConsole


@dataclass(frozen=True, slots=True)
class CLIContext:
    source_root: Path
    config: Config
    console: ConsoleProtocol

    def secret(self, env_name: str) -> str | None:
        """Value of the environment variable named by a ``[secrets]`` entry."""
        value = os.environ.get(env_name, "").strip()
        return value or None


def build_context(source: Path | None = None, config_path: Path | None = None) -> CLIContext:
    try:
        root = (source or Path.cwd()).expanduser().resolve()
    except OSError as e:
        typer.echo(f"error: invalid --source: {e}", err=True)
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))
    if not root.is_dir():
        typer.echo(f"error: source root '{root}' is not a directory", err=True)
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    path = config_path if config_path is not None else root / CONFIG_FILENAME
    config_result = load_config_or_default(path)
    if isinstance(config_result, Err):
        typer.echo(f"error: {config_result.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

    return CLIContext(source_root=root, config=config_result.value, console=RichConsole())
