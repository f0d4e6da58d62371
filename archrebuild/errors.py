"""Exception hierarchy for rebuild, verification and comparison runs.

Failing verdicts (``mismatch``, ``not_found``) are never raised; they are
reported as data. Only the conditions below are exceptions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from archrebuild.core.pinning import PinnedTree
    from archrebuild.models.reports import PipelineResult


class RebuildError(RuntimeError):
    """Base class for all archrebuild errors."""


class CommandError(RebuildError):
    """Raised by a backend when an external tool invocation fails or times out."""

    def __init__(
        self,
        command: list[str] | str,
        message: str,
        *,
        returncode: int | None = None,
    ) -> None:
        self.command = command
        self.returncode = returncode
        cmd = command if isinstance(command, str) else " ".join(command)
        super().__init__(f"`{cmd}` {message}")


class CatalogError(RebuildError):
    """Raised when the version catalog is invalid or a version is unknown."""


class RevisionResolutionError(RebuildError):
    """Raised when a pinned revision cannot be resolved. Fatal for the run."""


class BuildError(RebuildError):
    """Raised when a toolchain invocation fails. Aborts one target only.

    Parameters
    ----------
    stage:
        The build step that failed (e.g. ``"go build temporal-server"``).
    cause:
        The underlying exception, also chained as ``__cause__``.
    """

    def __init__(self, stage: str, cause: BaseException | str) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage}: {cause}")


class BuildCancelledError(BuildError):
    """Raised inside a target when the run has been cancelled."""

    def __init__(self, stage: str) -> None:
        super().__init__(stage, "cancelled")


class ClassificationError(RebuildError):
    """Raised when a binary cannot be read at all (not for a failing verdict)."""


class InventoryError(RebuildError):
    """Raised when an image is unreachable for listing or extraction."""


class RestoreError(RebuildError):
    """Raised when the source tree cannot be returned to its original position.

    The caller's working tree is left pinned; this must never be swallowed.
    ``tree`` holds the positions recorded while pinned and ``result``
    carries whatever the run produced before restoration failed.
    """

    def __init__(
        self,
        message: str,
        result: PipelineResult | None = None,
        *,
        tree: PinnedTree | None = None,
    ) -> None:
        super().__init__(message)
        self.result = result
        self.tree = tree
