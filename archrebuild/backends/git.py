"""``SourceControl`` backed by GitPython."""

from __future__ import annotations

import logging
from pathlib import Path

import git

from archrebuild.errors import CommandError, RevisionResolutionError

logger = logging.getLogger(__name__)


class GitSourceControl:
    """Working tree operations on a git repository with submodules.

    Parameters
    ----------
    repo_root:
        Path to the repository working tree.
    timeout:
        Seconds after which long git commands (checkout, submodule update)
        are killed.
    """

    def __init__(self, repo_root: Path, timeout: float | None = 300) -> None:
        try:
            self._repo = git.Repo(repo_root)
        except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError) as exc:
            raise RevisionResolutionError(
                f"{repo_root} is not a git repository"
            ) from exc
        self._timeout = timeout

    def current_position(self) -> str:
        if self._repo.head.is_detached:
            return self._repo.head.commit.hexsha
        return self._repo.active_branch.name

    def resolve(self, revision: str) -> str:
        try:
            return self._repo.commit(revision).hexsha
        except (git.exc.BadName, git.exc.BadObject, ValueError) as exc:
            raise RevisionResolutionError(
                f"Cannot resolve revision {revision!r}: {exc}"
            ) from exc

    def checkout(self, revision: str) -> None:
        logger.info("git checkout %s", revision)
        try:
            self._repo.git.checkout(revision, kill_after_timeout=self._timeout)
        except git.exc.GitCommandError as exc:
            raise CommandError(
                ["git", "checkout", revision], str(exc.stderr).strip(), returncode=exc.status
            ) from exc

    def update_submodules(self) -> None:
        logger.info("git submodule update --init")
        try:
            self._repo.git.submodule("update", "--init", kill_after_timeout=self._timeout)
        except git.exc.GitCommandError as exc:
            raise CommandError(
                ["git", "submodule", "update", "--init"],
                str(exc.stderr).strip(),
                returncode=exc.status,
            ) from exc

    def submodule_revision(self, path: str, revision: str = "HEAD") -> str:
        """Commit recorded for submodule *path* in the tree of *revision*."""
        try:
            return self._repo.commit(revision).tree[path].hexsha
        except KeyError as exc:
            raise RevisionResolutionError(
                f"No submodule {path!r} at {revision}"
            ) from exc
        except (git.exc.BadName, git.exc.BadObject, ValueError) as exc:
            raise RevisionResolutionError(
                f"Cannot resolve revision {revision!r}: {exc}"
            ) from exc

    def search_commits(self, pattern: str) -> list[tuple[str, str, str]]:
        try:
            out = self._repo.git.log(
                "--all", "--fixed-strings", f"--grep={pattern}", "--format=%h|%ad|%s"
            )
        except git.exc.GitCommandError as exc:
            raise CommandError(["git", "log"], str(exc.stderr).strip()) from exc
        commits: list[tuple[str, str, str]] = []
        for line in out.splitlines():
            sha, _, rest = line.partition("|")
            date, _, subject = rest.partition("|")
            if sha:
                commits.append((sha, date, subject))
        return commits
