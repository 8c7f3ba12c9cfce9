from __future__ import annotations

import typer

from nightly import __version__
from nightly.cli.commands.gate_cmd import gate
from nightly.cli.commands.info import identity, targets
from nightly.cli.commands.run_cmd import run

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


app.command()(run)
app.command()(gate)
app.command()(targets)
app.command()(identity)


@app.callback(invoke_without_command=True)
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
) -> None:
    if version:
        typer.echo(__version__)
        raise typer.Exit(code=0)


def main() -> None:
    app()
