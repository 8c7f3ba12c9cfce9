"""Single-sample release clock.

The pipeline reads the wall clock exactly once. Every stage that needs
"today" (tag, artifact prefix, index version, commit messages) receives the
``ReleaseDate`` built here, so a run that crosses midnight still produces
matching names.
"""

from __future__ import annotations

from datetime import UTC, datetime

from nightly.services.model import ReleaseDate

TAG_PREFIX = "nightly-"
TITLE_PREFIX = "Nightly "


def render_release_date(instant: datetime) -> ReleaseDate:
    """Render one instant in the three fixed date formats (UTC calendar day)."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    day = instant.astimezone(UTC)
    return ReleaseDate(
        instant=day,
        dashed=day.strftime("%Y-%m-%d"),
        underscored=day.strftime("%Y_%m_%d"),
        dotted=day.strftime("%Y.%m.%d"),
    )


def capture_release_date(now: datetime | None = None) -> ReleaseDate:
    """Sample the clock (or use ``now``) and render it."""
    return render_release_date(now if now is not None else datetime.now(UTC))


def release_names(date: ReleaseDate, package_base: str) -> tuple[str, str, str]:
    """Return (tag, title, package prefix) for a release date."""
    tag = f"{TAG_PREFIX}{date.dashed}"
    title = f"{TITLE_PREFIX}{date.dashed}"
    prefix = f"{package_base}-{date.underscored}"
    return tag, title, prefix
