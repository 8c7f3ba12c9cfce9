"""Thin adapter over the GitHub CLI (``gh api``).

Reads are idempotent and retried on transient network errors; writes are
executed once. Retrying a whole stage is left to the operator re-running the
pipeline.
"""

from __future__ import annotations

import json
import shutil
from collections.abc import Sequence
from pathlib import Path
from time import sleep

from nightly.core.result import Err, Ok, Result
from nightly.platform.process import ProcessError
from nightly.platform.process import run as run_process
from nightly.services.errors import PipelineError, PipelineErrorKind
from nightly.services.timeouts import (
    GH_READ_RETRY_ATTEMPTS,
    GH_READ_RETRY_DELAY_SECONDS,
    GH_TIMEOUT_SECONDS,
)

_TRANSIENT_MARKERS = (
    "timed out",
    "timeout",
    "connection reset",
    "connection refused",
    "temporarily unavailable",
    "service unavailable",
    "bad gateway",
    "gateway timeout",
    "tls handshake timeout",
    "network is unreachable",
    "http 429",
    "http 500",
    "http 502",
    "http 503",
    "http 504",
)


def is_transient_gh_error(error: ProcessError) -> bool:
    text = f"{error.stderr}\n{error.stdout}".lower()
    return any(marker in text for marker in _TRANSIENT_MARKERS)


def is_not_found(error: ProcessError) -> bool:
    return "http 404" in f"{error.stderr}\n{error.stdout}".lower()


def ensure_gh_available() -> Result[None, PipelineError]:
    if shutil.which("gh") is None:
        return Err(
            PipelineError(
                kind="tool_missing",
                message="gh: missing",
                hint="Install GitHub CLI: https://cli.github.com/",
            )
        )
    return Ok(None)


def run_gh_read(
    *,
    workspace_root: Path,
    cmd: list[str],
    timeout: float = GH_TIMEOUT_SECONDS,
    retry_attempts: int = GH_READ_RETRY_ATTEMPTS,
) -> Result[str, ProcessError]:
    """Run a read-only gh command, retrying transient failures with backoff."""
    result = run_process(cmd, cwd=workspace_root, timeout=timeout)
    for attempt in range(1, max(1, retry_attempts)):
        if isinstance(result, Ok) or not is_transient_gh_error(result.error):
            return result
        sleep(GH_READ_RETRY_DELAY_SECONDS * attempt)
        result = run_process(cmd, cwd=workspace_root, timeout=timeout)
    return result


def _decode(
    payload: str, *, endpoint: str, kind: PipelineErrorKind
) -> Result[object, PipelineError]:
    try:
        obj: object = json.loads(payload)
    except json.JSONDecodeError as e:
        return Err(
            PipelineError(kind=kind, message=f"gh api returned invalid JSON: {e}", hint=endpoint)
        )
    return Ok(obj)


def gh_api_read(
    *,
    workspace_root: Path,
    endpoint: str,
    kind: PipelineErrorKind,
) -> Result[object | None, PipelineError]:
    """GET an endpoint. A 404 is ``Ok(None)``, not an error."""
    result = run_gh_read(workspace_root=workspace_root, cmd=["gh", "api", endpoint])
    if isinstance(result, Err):
        if is_not_found(result.error):
            return Ok(None)
        return Err(
            PipelineError(
                kind=kind,
                message=f"gh api failed: {endpoint}",
                hint=result.error.detail(),
            )
        )
    return _decode(result.value, endpoint=endpoint, kind=kind)


def gh_api_write(
    *,
    workspace_root: Path,
    endpoint: str,
    fields: Sequence[tuple[str, str]],
    typed_fields: Sequence[tuple[str, str]] = (),
    kind: PipelineErrorKind,
    method: str = "POST",
) -> Result[object, PipelineError]:
    """Send a write request. ``typed_fields`` use ``-F`` (booleans, numbers)."""
    cmd = ["gh", "api", "--method", method, endpoint]
    for k, v in fields:
        cmd.extend(["-f", f"{k}={v}"])
    for k, v in typed_fields:
        cmd.extend(["-F", f"{k}={v}"])

    result = run_process(cmd, cwd=workspace_root, timeout=GH_TIMEOUT_SECONDS)
    if isinstance(result, Err):
        return Err(
            PipelineError(
                kind=kind,
                message=f"gh api {method} failed: {endpoint}",
                hint=result.error.detail(),
            )
        )
    return _decode(result.value, endpoint=endpoint, kind=kind)
