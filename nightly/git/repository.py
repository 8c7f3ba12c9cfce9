"""Git repository abstraction.

This module provides the Repository class for the handful of git
operations the publish channels need: clone, stage, commit, rewrite the
branch tip and push. All operations return Result types.

Usage:
    match Repository.clone(remote, dest, branch="master"):
        case Ok(repo):
            repo.add_all()
            repo.commit("Nightly build 2024-01-01")
        case Err(e):
            print(f"clone failed: {e.message}")
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from nightly.core.result import Err, Ok, Result
from nightly.platform.process import ProcessError
from nightly.platform.process import run as run_process

_GIT_TIMEOUT_SECONDS = 30.0
_GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0
_NETWORK_COMMANDS = frozenset({"fetch", "pull", "push", "clone", "ls-remote"})

# Never block a headless worker on a credential prompt.
_BASE_ENV = {"GIT_TERMINAL_PROMPT": "0"}

__all__ = ["GitError", "Repository"]


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        command: The git command that failed
        message: Error message
        returncode: Process return code
    """

    command: str
    message: str
    returncode: int = 1


def _git_error(command: str, e: ProcessError, fallback: str) -> GitError:
    return GitError(
        command=command,
        message=e.stderr.strip() or e.stdout.strip() or fallback,
        returncode=e.returncode,
    )


def _run_git(
    args: list[str], *, cwd: Path, env: Mapping[str, str] | None
) -> Result[str, ProcessError]:
    command = args[0] if args else ""
    timeout = (
        _GIT_NETWORK_TIMEOUT_SECONDS if command in _NETWORK_COMMANDS else _GIT_TIMEOUT_SECONDS
    )
    full_env = dict(_BASE_ENV)
    if env:
        full_env.update(env)
    return run_process(["git", *args], cwd=cwd, env=full_env, timeout=timeout)


class Repository:
    """Git repository abstraction.

    Attributes:
        path: Path to the repository root
        env: Extra environment for every git call (e.g. GIT_SSH_COMMAND)
    """

    def __init__(self, path: Path, env: Mapping[str, str] | None = None) -> None:
        self.path = path
        self.env = dict(env) if env else {}

    @classmethod
    def clone(
        cls,
        remote: str,
        dest: Path,
        *,
        branch: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> Result[Repository, GitError]:
        """Clone remote into dest (full history, so the tip's parent is known)."""
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return Err(GitError(command="clone", message=f"cannot create {dest.parent}: {e}"))
        args = ["clone"]
        if branch:
            args += ["--branch", branch]
        args += [remote, str(dest)]
        result = _run_git(args, cwd=dest.parent, env=env)
        if isinstance(result, Err):
            return Err(_git_error("clone", result.error, "clone failed"))
        return Ok(cls(dest, env=env))

    def set_identity(self, name: str, email: str) -> Result[None, GitError]:
        """Configure the local commit author."""
        for key, value in (("user.name", name), ("user.email", email)):
            result = self._run(["config", key, value])
            if isinstance(result, Err):
                return Err(_git_error("config", result.error, f"cannot set {key}"))
        return Ok(None)

    def rev_parse(self, ref: str) -> str | None:
        """Resolve ref to a commit sha, or None if it does not exist."""
        result = self._run(["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"])
        match result:
            case Ok(stdout):
                return stdout.strip() or None
            case Err(_):
                return None

    def head_parent(self) -> str | None:
        """Sha of the first parent of HEAD, None for a root or unborn commit."""
        return self.rev_parse("HEAD~1")

    def reset_soft(self, ref: str) -> Result[None, GitError]:
        """Move the branch to ref, keeping index and working tree."""
        result = self._run(["reset", "--soft", ref])
        if isinstance(result, Err):
            return Err(_git_error("reset --soft", result.error, "reset failed"))
        return Ok(None)

    def unborn_branch(self) -> Result[None, GitError]:
        """Detach the current branch from all history (next commit is a root)."""
        result = self._run(["update-ref", "-d", "HEAD"])
        if isinstance(result, Err):
            return Err(_git_error("update-ref -d HEAD", result.error, "update-ref failed"))
        return Ok(None)

    def add_all(self) -> Result[None, GitError]:
        """Stage every change including deletions."""
        result = self._run(["add", "-A"])
        if isinstance(result, Err):
            return Err(_git_error("add -A", result.error, "git add failed"))
        return Ok(None)

    def has_staged_changes(self) -> bool:
        result = self._run(["diff", "--cached", "--quiet"])
        return isinstance(result, Err) and result.error.returncode == 1

    def commit(self, message: str, *, allow_empty: bool = False) -> Result[None, GitError]:
        args = ["commit", "-m", message]
        if allow_empty:
            args.append("--allow-empty")
        result = self._run(args)
        if isinstance(result, Err):
            return Err(_git_error("commit", result.error, "git commit failed"))
        return Ok(None)

    def push(
        self, branch: str, *, remote: str = "origin", force: bool = False
    ) -> Result[None, GitError]:
        """Push HEAD to branch on remote."""
        args = ["push"]
        if force:
            args.append("--force")
        args += [remote, f"HEAD:{branch}"]
        result = self._run(args)
        if isinstance(result, Err):
            command = "push --force" if force else "push"
            return Err(_git_error(command, result.error, "push failed"))
        return Ok(None)

    def commit_count(self, ref: str = "HEAD") -> Result[int, GitError]:
        result = self._run(["rev-list", "--count", ref])
        if isinstance(result, Err):
            return Err(_git_error("rev-list --count", result.error, "rev-list failed"))
        try:
            return Ok(int(result.value.strip()))
        except ValueError:
            return Err(GitError(command="rev-list --count", message=result.value.strip()))

    def _run(self, args: list[str]) -> Result[str, ProcessError]:
        """Run a git command in this repository."""
        return _run_git(args, cwd=self.path, env=self.env)
