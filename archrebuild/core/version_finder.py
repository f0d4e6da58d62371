"""Find the commits that moved the upstream submodule to a release line."""

from __future__ import annotations

import logging
import re

from archrebuild.backends.protocols import SourceControl
from archrebuild.errors import CatalogError, CommandError, RevisionResolutionError
from archrebuild.models.reports import VersionCommit

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"^\d+\.\d+$")


def release_branch(version: str) -> str:
    """``1.22`` -> ``release/v1.22.x``."""
    if not _VERSION_RE.match(version):
        raise CatalogError(
            f"Invalid version format: {version} (expected major.minor, e.g. 1.22)"
        )
    return f"release/v{version}.x"


def find_version_commits(
    source: SourceControl, version: str, submodule: str = "temporal"
) -> list[VersionCommit]:
    """Commits whose message names *version*'s release branch, most recent first.

    The first commit is the recommended pin. The submodule revision of each
    commit is ``"unknown"`` where it cannot be read.
    """
    pattern = release_branch(version)
    logger.info("Searching commits for %s", pattern)
    commits: list[VersionCommit] = []
    for sha, date, message in source.search_commits(pattern):
        try:
            pinned = source.submodule_revision(submodule, sha)
        except (RevisionResolutionError, CommandError) as exc:
            logger.debug("%s: no %s submodule: %s", sha, submodule, exc)
            pinned = "unknown"
        commits.append(
            VersionCommit(sha=sha, date=date, message=message, submodule_revision=pinned)
        )
    logger.info("Found %d commits for %s", len(commits), pattern)
    return commits
