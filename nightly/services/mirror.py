"""Idempotent mirror updater.

The demo and docs repositories receive a fresh build every day. Instead of
stacking one commit per night, the tip commit is replaced:

1. reset local history to the tip's parent (or to an unborn branch when
   the tip is the root commit), keeping the working tree;
2. commit the new payload on top and force-push.

Only plain reset/commit/push are used, so any git host behaves the same.
Running the updater twice in a row leaves exactly one commit above the
history that existed before the first run.
"""

from __future__ import annotations

import shutil
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from nightly.core.config import IdentityConfig
from nightly.core.result import Err, Ok, Result
from nightly.git.repository import GitError, Repository
from nightly.output.console import ConsoleProtocol, Style
from nightly.services.errors import PipelineError
from nightly.services.model import PublishRecord, ReleaseIdentity


@dataclass(frozen=True, slots=True)
class MirrorSpec:
    channel: str
    remote: str
    branch: str = "master"
    # Globs (relative to the clone root) of the previous generated output.
    clean_patterns: tuple[str, ...] = ()
    target_subdir: str | None = None


def mirror_commit_message(identity: ReleaseIdentity) -> str:
    return f"Nightly build {identity.date_dashed}"


def replace_tip_commit(repo: Repository, message: str) -> Result[None, GitError]:
    """Replace the branch tip with a commit of the current working tree."""
    parent = repo.head_parent()
    rewound = repo.reset_soft(parent) if parent is not None else repo.unborn_branch()
    if isinstance(rewound, Err):
        return rewound

    staged = repo.add_all()
    if isinstance(staged, Err):
        return staged

    # Empty when the payload did not change; the tip is still replaced.
    return repo.commit(message, allow_empty=True)


def clear_generated(root: Path, patterns: tuple[str, ...]) -> None:
    for pattern in patterns:
        for path in sorted(root.glob(pattern)):
            if path.name == ".git":
                continue
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()


def install_payload(payload_dir: Path, dest: Path) -> None:
    dest.mkdir(parents=True, exist_ok=True)
    shutil.copytree(payload_dir, dest, dirs_exist_ok=True)


def remove_stale_clone(clone_dir: Path) -> Result[None, PipelineError]:
    """Delete whatever a previous run left at ``clone_dir``."""
    try:
        if clone_dir.is_dir() and not clone_dir.is_symlink():
            shutil.rmtree(clone_dir)
        elif clone_dir.exists() or clone_dir.is_symlink():
            clone_dir.unlink()
    except OSError as e:
        return Err(
            PipelineError(
                kind="publish_failure",
                message=f"cannot remove stale clone {clone_dir}: {e}",
            )
        )
    return Ok(None)


def _redact(text: str, secret: str | None) -> str:
    if secret:
        return text.replace(secret, "***")
    return text


def _publish_error(message: str, error: GitError, secret: str | None) -> PipelineError:
    return PipelineError(
        kind="publish_failure",
        message=message,
        hint=_redact(error.message, secret) or None,
    )


def update_mirror(
    spec: MirrorSpec,
    payload_dir: Path,
    identity: ReleaseIdentity,
    *,
    author: IdentityConfig,
    work_dir: Path,
    console: ConsoleProtocol,
    dry_run: bool = False,
    secret: str | None = None,
    env: Mapping[str, str] | None = None,
) -> Result[PublishRecord, PipelineError]:
    """Refresh one mirror with ``payload_dir`` and force-push it.

    ``secret`` is redacted from every error message (it is usually embedded
    in ``spec.remote``).
    """
    if not payload_dir.is_dir():
        return Err(
            PipelineError(
                kind="publish_failure",
                message=f"{spec.channel}: payload missing: {payload_dir}",
            )
        )

    clone_dir = work_dir / "mirrors" / spec.channel
    removed = remove_stale_clone(clone_dir)
    if isinstance(removed, Err):
        return removed

    console.print(f"git clone --branch {spec.branch} {_redact(spec.remote, secret)}", Style.DIM)
    cloned = Repository.clone(spec.remote, clone_dir, branch=spec.branch, env=env)
    if isinstance(cloned, Err):
        return Err(_publish_error(f"{spec.channel}: mirror unreachable", cloned.error, secret))
    repo = cloned.value

    dest = clone_dir / spec.target_subdir if spec.target_subdir else clone_dir
    try:
        clear_generated(clone_dir, spec.clean_patterns)
        install_payload(payload_dir, dest)
    except OSError as e:
        return Err(
            PipelineError(kind="publish_failure", message=f"{spec.channel}: copy failed: {e}")
        )

    configured = repo.set_identity(author.name, author.email)
    if isinstance(configured, Err):
        return Err(_publish_error(f"{spec.channel}: git config failed", configured.error, secret))

    message = mirror_commit_message(identity)
    committed = replace_tip_commit(repo, message)
    if isinstance(committed, Err):
        return Err(_publish_error(f"{spec.channel}: commit failed", committed.error, secret))

    console.print(f"git push --force origin HEAD:{spec.branch}", Style.DIM)
    if not dry_run:
        pushed = repo.push(spec.branch, force=True)
        if isinstance(pushed, Err):
            return Err(_publish_error(f"{spec.channel}: push failed", pushed.error, secret))

    return Ok(
        PublishRecord(
            channel=spec.channel,
            name=message,
            destination=_redact(spec.remote, secret),
        )
    )
