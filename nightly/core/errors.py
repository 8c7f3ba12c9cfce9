"""Exit codes for the nightly CLI.

The numeric values are process exit codes and must stay stable:
- 0: Success (including a scheduled run skipped on a stale repository)
- 1: User error (bad flags, unknown target)
- 2: Environment error (missing gh/git/cargo, invalid config)
- 3: Build error (a platform build or the universal merge failed)
- 4: Network error (release registration or recency lookup unreachable)
- 5: I/O error (a package or archive could not be written to disk)
- 6: Publish error (an asset upload, mirror push or index submission failed)
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands."""

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    BUILD_ERROR = 3
    NETWORK_ERROR = 4
    IO_ERROR = 5
    PUBLISH_ERROR = 6

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK
