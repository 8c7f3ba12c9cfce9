"""Shared helpers for CLI commands."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, NoReturn, TypeVar

import typer

from nightly.core.errors import ErrorCode
from nightly.core.result import Err, Result
from nightly.output.console import Style
from nightly.services.model import TriggerContext, trigger_from_event

if TYPE_CHECKING:
    from nightly.cli.context import CLIContext

T = TypeVar("T")
E = TypeVar("E")


def exit_on_error(
    result: Result[T, E],
    ctx: CLIContext,
    error_code: ErrorCode = ErrorCode.BUILD_ERROR,
) -> None:
    """Exit with error if result is Err, otherwise return.

    Expects error objects to have 'message' and optional 'hint' attributes.
    """
    if isinstance(result, Err):
        error = result.error
        message: str = getattr(error, "message", str(error))
        hint: str | None = getattr(error, "hint", None)
        ctx.console.error(message)
        if hint:
            ctx.console.print(f"hint: {hint}", Style.DIM)
        raise typer.Exit(code=int(error_code))


def exit_with_code(code: int) -> NoReturn:
    raise typer.Exit(code=code)


def resolve_trigger(trigger: str | None, run_id: str | None) -> TriggerContext:
    """Build the trigger from flags, falling back to the CI environment.

    ``--trigger`` accepts ``manual``/``scheduled`` or a raw CI event name.
    """
    rid = run_id or os.environ.get("GITHUB_RUN_NUMBER") or "local"
    raw = trigger or os.environ.get("GITHUB_EVENT_NAME")
    match raw:
        case "manual":
            return TriggerContext(kind="manual", run_id=rid)
        case "scheduled" | "schedule" | None:
            return TriggerContext(kind="scheduled", run_id=rid)
        case _:
            return trigger_from_event(raw, rid)
