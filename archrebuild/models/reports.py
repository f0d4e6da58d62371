"""Report models — outputs of verification, inventory diffing and rebuild runs."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePosixPath

from pydantic import BaseModel, ConfigDict, Field

from archrebuild.models.architecture import (
    Architecture,
    ArchitectureFamily,
    ArchitectureVerdict,
)
from archrebuild.models.states import PipelineState, StateTransition
from archrebuild.models.versions import BuildTarget


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


class BinaryVerdict(BaseModel):
    """Classification result for one binary against its expected family."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    expected: ArchitectureFamily
    actual: ArchitectureFamily | None = None  # None when not found
    verdict: ArchitectureVerdict
    description: str = ""  # file(1)-style description of what was found
    sha256: str = ""


class VerificationReport(BaseModel):
    """Output of the Verification Aggregator for one image or build directory."""

    model_config = ConfigDict(frozen=True)

    subject: str  # image reference or build directory
    expected: Architecture
    results: list[BinaryVerdict] = []
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def checked(self) -> int:
        return len(self.results)

    @property
    def failures(self) -> list[BinaryVerdict]:
        return [r for r in self.results if r.verdict.is_failing]

    @property
    def passed(self) -> bool:
        return not self.failures


# ---------------------------------------------------------------------------
# Inventory and diff
# ---------------------------------------------------------------------------


class InventoryEntry(BaseModel):
    """A regular file in a built image."""

    model_config = ConfigDict(frozen=True)

    path: str
    size: int

    @property
    def sort_key(self) -> tuple[str, str]:
        """(directory, file name) — the ordering used by every listing."""
        p = PurePosixPath(self.path)
        return str(p.parent), p.name


class DiffKind(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"


class DiffEntry(BaseModel):
    """One discrepancy between a reference and a candidate inventory.

    ``added`` carries only ``new_size``, ``removed`` only ``old_size``,
    ``changed`` both. For manifest binaries the architecture family seen on
    each side is attached; a ``changed`` entry may have equal sizes when only
    the architecture differs.
    """

    model_config = ConfigDict(frozen=True)

    kind: DiffKind
    path: str
    old_size: int | None = None
    new_size: int | None = None
    reference_arch: ArchitectureFamily | None = None
    candidate_arch: ArchitectureFamily | None = None

    @property
    def directory(self) -> str:
        return str(PurePosixPath(self.path).parent)

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).name

    @property
    def size_delta(self) -> int:
        return (self.new_size or 0) - (self.old_size or 0)

    @property
    def size_changed(self) -> bool:
        return self.kind is DiffKind.CHANGED and self.old_size != self.new_size

    @property
    def arch_changed(self) -> bool:
        return self.kind is DiffKind.CHANGED and self.reference_arch != self.candidate_arch


class ArchitectureRow(BaseModel):
    """One line of the binary architecture comparison table."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    reference: ArchitectureFamily | None = None
    candidate: ArchitectureFamily | None = None

    @property
    def differs(self) -> bool:
        return self.reference != self.candidate


class ScriptStatus(str, Enum):
    IDENTICAL = "identical"
    DIFFERENT = "different"
    MISSING_IN_CANDIDATE = "missing_in_candidate"
    ONLY_IN_CANDIDATE = "only_in_candidate"


class ScriptComparison(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    status: ScriptStatus
    diff_lines: list[str] = []


class ImageComparison(BaseModel):
    """Full comparison of a candidate image against its reference."""

    model_config = ConfigDict(frozen=True)

    reference: str
    candidate: str
    entries: list[DiffEntry] = []
    architectures: list[ArchitectureRow] = []
    scripts: list[ScriptComparison] = []

    @property
    def has_discrepancies(self) -> bool:
        return bool(self.entries) or any(
            s.status is not ScriptStatus.IDENTICAL for s in self.scripts
        )


# ---------------------------------------------------------------------------
# Build pipeline
# ---------------------------------------------------------------------------


class BuildOutcome(BaseModel):
    """Terminal state of one pipeline run for one target."""

    model_config = ConfigDict(frozen=True)

    target: BuildTarget
    state: PipelineState
    verdicts: list[BinaryVerdict] = []
    images: dict[str, str] = {}  # image kind -> image reference
    failed_stage: str | None = None
    error: str | None = None
    history: list[StateTransition] = []

    @property
    def succeeded(self) -> bool:
        return self.state is PipelineState.IMAGE_ASSEMBLED

    @property
    def failures(self) -> list[BinaryVerdict]:
        return [v for v in self.verdicts if v.verdict.is_failing]


class PipelineResult(BaseModel):
    """Result of one rebuild run across all targets of a version."""

    model_config = ConfigDict(frozen=True)

    version: str
    revision: str = ""
    resolved_revision: str = ""
    original_position: str = ""
    restored_position: str = ""
    state: PipelineState = PipelineState.IDLE
    outcomes: list[BuildOutcome] = []
    submodule_revisions: dict[str, str] = {}
    history: list[StateTransition] = []

    @property
    def succeeded(self) -> bool:
        return self.state is PipelineState.SUCCEEDED

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    def outcome(self, architecture: Architecture) -> BuildOutcome:
        for outcome in self.outcomes:
            if outcome.target.architecture is architecture:
                return outcome
        raise KeyError(f"No outcome for {architecture.value}")


# ---------------------------------------------------------------------------
# Version commit discovery
# ---------------------------------------------------------------------------


class VersionCommit(BaseModel):
    """A source-control commit that updated the upstream submodule."""

    model_config = ConfigDict(frozen=True)

    sha: str
    date: str = ""
    message: str = ""
    submodule_revision: str = "unknown"
