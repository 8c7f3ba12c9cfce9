"""Release registrar: the one release record every asset attaches to.

Registration is idempotent. Re-running the pipeline on the same day finds
the existing ``nightly-<date>`` release and reuses its upload target
instead of failing or creating a duplicate.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from nightly.core.result import Err, Ok, Result
from nightly.core.structured import as_str_dict, get_str
from nightly.output.console import ConsoleProtocol, Style
from nightly.services.clock import release_names
from nightly.services.errors import PipelineError
from nightly.services.gh import ensure_gh_available, gh_api_read, gh_api_write
from nightly.services.model import ActivityDecision, ReleaseDate, ReleaseIdentity


@dataclass(frozen=True, slots=True)
class ReleaseRecord:
    tag: str
    upload_url: str
    html_url: str | None = None


class ReleaseBackend(Protocol):
    def find_release(self, tag: str) -> Result[ReleaseRecord | None, PipelineError]: ...

    def create_release(
        self, tag: str, title: str, *, prerelease: bool
    ) -> Result[ReleaseRecord, PipelineError]: ...


def _record_from_payload(payload: object, *, tag: str) -> Result[ReleaseRecord, PipelineError]:
    data = as_str_dict(payload)
    upload_url = get_str(data, "upload_url") if data is not None else None
    if data is None or upload_url is None:
        return Err(
            PipelineError(
                kind="registrar_failure",
                message=f"unexpected release payload for {tag}",
            )
        )
    return Ok(
        ReleaseRecord(
            tag=get_str(data, "tag_name") or tag,
            upload_url=upload_url,
            html_url=get_str(data, "html_url"),
        )
    )


class GhReleaseBackend:
    """Release records through ``gh api`` on the upstream repository."""

    def __init__(
        self,
        *,
        workspace_root: Path,
        repo: str,
        console: ConsoleProtocol,
        dry_run: bool = False,
    ) -> None:
        self._root = workspace_root
        self._repo = repo
        self._console = console
        self._dry_run = dry_run

    def find_release(self, tag: str) -> Result[ReleaseRecord | None, PipelineError]:
        available = ensure_gh_available()
        if isinstance(available, Err):
            return available
        endpoint = f"repos/{self._repo}/releases/tags/{tag}"
        result = gh_api_read(workspace_root=self._root, endpoint=endpoint, kind="registrar_failure")
        if isinstance(result, Err):
            return result
        if result.value is None:
            return Ok(None)
        return _record_from_payload(result.value, tag=tag)

    def create_release(
        self, tag: str, title: str, *, prerelease: bool
    ) -> Result[ReleaseRecord, PipelineError]:
        endpoint = f"repos/{self._repo}/releases"
        self._console.print(f"gh api --method POST {endpoint} tag_name={tag}", Style.DIM)
        if self._dry_run:
            return Ok(
                ReleaseRecord(
                    tag=tag,
                    upload_url=f"https://uploads.github.com/{endpoint}/0/assets{{?name,label}}",
                )
            )

        result = gh_api_write(
            workspace_root=self._root,
            endpoint=endpoint,
            fields=(("tag_name", tag), ("name", title)),
            typed_fields=(("prerelease", "true" if prerelease else "false"),),
            kind="registrar_failure",
        )
        if isinstance(result, Err):
            return result
        return _record_from_payload(result.value, tag=tag)


def register_release(
    date: ReleaseDate,
    decision: ActivityDecision,
    backend: ReleaseBackend,
    *,
    package_base: str,
    console: ConsoleProtocol,
) -> Result[ReleaseIdentity | None, PipelineError]:
    """Create (or reuse) the nightly release.

    Returns ``Ok(None)`` without touching the backend when the activity gate
    is closed; skipping a stale nightly is not an error.
    """
    if not decision.is_alive:
        console.info(f"release skipped: {decision.reason}")
        return Ok(None)

    tag, title, prefix = release_names(date, package_base)

    existing = backend.find_release(tag)
    if isinstance(existing, Err):
        return existing

    record = existing.value
    if record is not None:
        console.info(f"reusing existing release {tag}")
    else:
        created = backend.create_release(tag, title, prerelease=True)
        if isinstance(created, Err):
            return created
        record = created.value
        console.success(f"created release {tag}")

    return Ok(
        ReleaseIdentity(
            date=date,
            tag_name=tag,
            display_name=title,
            package_prefix=prefix,
            upload_target=record.upload_url,
        )
    )
