"""Scoped pinning of the source tree to a version's revision.

``pinned_revision`` records where the working tree is, checks out the pinned
revision, and on every exit path (success, exception, cancellation,
``KeyboardInterrupt``) checks the recorded position back out and
re-initialises submodules.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from archrebuild.backends.protocols import SourceControl
from archrebuild.errors import CommandError, RestoreError, RevisionResolutionError

logger = logging.getLogger(__name__)

# One lock per source tree, shared by every pipeline in the process
_REPO_LOCKS: dict[Path, threading.Lock] = {}
_REPO_LOCKS_GUARD = threading.Lock()


def repository_lock(repo_root: Path) -> threading.Lock:
    """The process-wide pinning lock for the tree at *repo_root*."""
    key = Path(repo_root).resolve()
    with _REPO_LOCKS_GUARD:
        return _REPO_LOCKS.setdefault(key, threading.Lock())


@dataclass
class PinnedTree:
    """Positions recorded while the tree is pinned."""

    original: str
    revision: str
    resolved: str = ""
    submodules_ready: bool = False
    restored: str = ""
    submodule_revisions: dict[str, str] = field(default_factory=dict)


@contextmanager
def pinned_revision(
    source: SourceControl,
    revision: str,
    *,
    lock: threading.Lock,
) -> Iterator[PinnedTree]:
    """Hold *lock* and keep *source* checked out at *revision* for the block.

    Raises ``RevisionResolutionError`` before touching the tree if *revision*
    does not resolve or cannot be checked out. Raises ``RestoreError`` if the
    original position cannot be restored; a restore failure takes precedence
    over an exception raised inside the block, which is chained as context.
    """
    with lock:
        original = source.current_position()
        tree = PinnedTree(original=original, revision=revision)
        logger.info("Current ref: %s (will restore after build)", original)

        resolved = source.resolve(revision)
        tree.resolved = resolved
        try:
            try:
                source.checkout(revision)
            except CommandError as exc:
                raise RevisionResolutionError(
                    f"Cannot check out {revision}: {exc}"
                ) from exc
            yield tree
        finally:
            _restore(source, tree)


def _restore(source: SourceControl, tree: PinnedTree) -> None:
    logger.info("Restoring original ref: %s", tree.original)
    try:
        source.checkout(tree.original)
    except CommandError as exc:
        logger.error("Failed to restore %s: %s", tree.original, exc)
        raise RestoreError(
            f"Source tree left at {tree.revision}; could not check out "
            f"{tree.original}: {exc}",
            tree=tree,
        ) from exc
    try:
        source.update_submodules()
    except CommandError as exc:
        # The superproject is back; stale submodules are only worth a warning
        logger.warning("Submodule update after restore failed: %s", exc)
    tree.restored = source.current_position()
    if tree.restored != tree.original:
        raise RestoreError(
            f"Source tree is at {tree.restored} after restore, expected {tree.original}",
            tree=tree,
        )
