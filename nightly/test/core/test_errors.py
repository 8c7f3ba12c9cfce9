from __future__ import annotations

from nightly.core.errors import ErrorCode


def test_exit_codes_are_stable() -> None:
    assert [int(c) for c in ErrorCode] == [0, 1, 2, 3, 4, 5, 6]


def test_str_and_success() -> None:
    assert str(ErrorCode.PUBLISH_ERROR) == "publish error"
    assert ErrorCode.OK.is_success
    assert not ErrorCode.BUILD_ERROR.is_success
