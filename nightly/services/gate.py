"""Activity gate: skip a scheduled nightly when upstream has been idle.

A scheduled run only proceeds when the newest upstream commit is less than
one whole day old. Manual runs always proceed. When recency cannot be
determined the gate fails closed: a stale or unknown repository never gets
a scheduled release, and the run still counts as a success.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Protocol

from nightly.core.result import Err, Ok, Result
from nightly.core.structured import as_obj_list, as_str_dict, get_str, get_table
from nightly.output.console import ConsoleProtocol
from nightly.platform.http import HttpClient
from nightly.services.errors import PipelineError
from nightly.services.model import ActivityDecision, TriggerContext, UpstreamCommit

SECONDS_PER_DAY = 86400
GITHUB_API = "https://api.github.com"


class CommitSource(Protocol):
    def latest_commit(self) -> Result[UpstreamCommit, PipelineError]: ...


def _parse_timestamp(raw: str) -> datetime | None:
    # GitHub returns "2024-01-31T12:34:56Z"; fromisoformat accepts the Z suffix.
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_latest_commit(payload: object) -> Result[UpstreamCommit, PipelineError]:
    """Extract the newest commit from a ``GET /repos/{repo}/commits`` payload."""
    items = as_obj_list(payload)
    if not items:
        return Err(PipelineError(kind="gate_failure", message="no commits in upstream payload"))

    first = as_str_dict(items[0])
    commit = get_table(first, "commit") if first is not None else None
    committer = get_table(commit, "committer") if commit is not None else None
    if first is None or committer is None:
        return Err(
            PipelineError(kind="gate_failure", message="unexpected upstream commit payload")
        )

    raw_date = get_str(committer, "date")
    timestamp = _parse_timestamp(raw_date) if raw_date else None
    if timestamp is None:
        return Err(
            PipelineError(
                kind="gate_failure",
                message="cannot parse upstream commit date",
                hint=raw_date,
            )
        )

    return Ok(
        UpstreamCommit(
            timestamp=timestamp,
            author=get_str(committer, "name"),
            url=get_str(first, "html_url"),
        )
    )


class GithubCommitSource:
    """Reads the newest commit of a repository from the public REST API."""

    def __init__(self, http: HttpClient, repo: str, token: str | None = None) -> None:
        self._http = http
        self._repo = repo
        self._token = token

    @property
    def url(self) -> str:
        return f"{GITHUB_API}/repos/{self._repo}/commits"

    def latest_commit(self) -> Result[UpstreamCommit, PipelineError]:
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else None
        result = self._http.get_json(self.url, headers)
        if isinstance(result, Err):
            return Err(
                PipelineError(
                    kind="gate_failure",
                    message=f"upstream recency lookup failed: {self._repo}",
                    hint=str(result.error),
                )
            )
        return parse_latest_commit(result.value)


def days_since(last_change: datetime, now: datetime) -> int:
    """Whole days elapsed, floored. Negative when the change is in the future."""
    return int((now - last_change).total_seconds() // SECONDS_PER_DAY)


def decide_activity(
    trigger: TriggerContext,
    last_change: UpstreamCommit,
    now: datetime,
) -> ActivityDecision:
    if trigger.is_manual:
        return ActivityDecision(
            is_alive=True,
            reason="manual trigger, activity check ignored",
            last_change=last_change,
        )

    days = days_since(last_change.timestamp, now)
    if days < 1:
        return ActivityDecision(is_alive=True, reason="repository active", last_change=last_change)
    return ActivityDecision(
        is_alive=False,
        reason=f"repository not updated for {days} day(s)",
        last_change=last_change,
    )


def check_activity(
    trigger: TriggerContext,
    source: CommitSource,
    *,
    now: datetime,
    console: ConsoleProtocol,
) -> ActivityDecision:
    """Evaluate the gate, reporting the decision on the console.

    Manual runs never consult ``source``. A failed lookup on a scheduled run
    yields ``is_alive=False``.
    """
    if trigger.is_manual:
        console.warning("Ignoring activity check: workflow triggered manually.")
        return ActivityDecision(is_alive=True, reason="manual trigger, activity check ignored")

    lookup = source.latest_commit()
    if isinstance(lookup, Err):
        console.warning(f"Activity check failed, skipping release: {lookup.error.pretty()}")
        return ActivityDecision(is_alive=False, reason=f"gate failure: {lookup.error.message}")

    commit = lookup.value
    console.print(
        "Repository activity: "
        f"{int(commit.timestamp.timestamp())} {commit.author or '-'} {commit.url or '-'}"
    )
    decision = decide_activity(trigger, commit, now)
    if decision.is_alive:
        console.info("Repository active")
    else:
        console.warning(
            f"Repository not updated: {trigger.kind} run not allowed to modify stale repository."
        )
    return decision
