from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from nightly.services.clock import capture_release_date, release_names, render_release_date


@pytest.mark.parametrize(
    "instant",
    [
        datetime(2024, 1, 31, 0, 0, tzinfo=UTC),
        datetime(2024, 1, 31, 23, 59, 59, tzinfo=UTC),
        datetime(2024, 2, 29, 12, 0, tzinfo=UTC),
        datetime(1999, 12, 31, 23, 59, tzinfo=UTC),
    ],
)
def test_renderings_share_one_day(instant: datetime) -> None:
    date = render_release_date(instant)
    assert date.dashed.split("-") == date.underscored.split("_") == date.dotted.split(".")


def test_formats() -> None:
    date = render_release_date(datetime(2024, 1, 5, 8, 0, tzinfo=UTC))
    assert (date.dashed, date.underscored, date.dotted) == ("2024-01-05", "2024_01_05", "2024.01.05")


def test_non_utc_instant_uses_utc_day() -> None:
    # 01:00 at UTC+2 is still the previous UTC day.
    instant = datetime(2024, 1, 31, 1, 0, tzinfo=timezone(timedelta(hours=2)))
    assert render_release_date(instant).dashed == "2024-01-30"


def test_naive_instant_is_utc() -> None:
    assert render_release_date(datetime(2024, 1, 31, 23, 0)).dashed == "2024-01-31"


def test_capture_uses_given_instant() -> None:
    instant = datetime(2024, 3, 1, tzinfo=UTC)
    assert capture_release_date(instant).instant == instant


def test_capture_samples_clock() -> None:
    before = datetime.now(UTC)
    date = capture_release_date()
    assert before <= date.instant <= datetime.now(UTC)


def test_release_names() -> None:
    date = render_release_date(datetime(2024, 1, 31, tzinfo=UTC))
    assert release_names(date, "ruffle-nightly") == (
        "nightly-2024-01-31",
        "Nightly 2024-01-31",
        "ruffle-nightly-2024_01_31",
    )
