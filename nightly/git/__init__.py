"""Git operations used by the mirror and package-index channels.

Usage:
    from nightly.git import Repository

    repo = Repository(Path("/path/to/clone"))
    count = repo.commit_count()
"""

from nightly.git.repository import GitError, Repository

__all__ = ["GitError", "Repository"]
