"""archrebuild data models — all Pydantic v2, all frozen (immutable)."""

from archrebuild.models.architecture import (
    Architecture,
    ArchitectureFamily,
    ArchitectureVerdict,
)
from archrebuild.models.catalog import DEFAULT_CATALOG, VersionCatalog, load_catalog
from archrebuild.models.reports import (
    ArchitectureRow,
    BinaryVerdict,
    BuildOutcome,
    DiffEntry,
    DiffKind,
    ImageComparison,
    InventoryEntry,
    PipelineResult,
    ScriptComparison,
    ScriptStatus,
    VerificationReport,
    VersionCommit,
)
from archrebuild.models.states import (
    RUN_TRANSITIONS,
    TARGET_TRANSITIONS,
    PipelineState,
    StateTransition,
)
from archrebuild.models.versions import (
    BinarySpec,
    BuildMethod,
    BuildStrategyKind,
    BuildTarget,
    ImageBuilder,
    ImageSpec,
    VersionSpec,
)

__all__ = [
    # architecture
    "Architecture",
    "ArchitectureFamily",
    "ArchitectureVerdict",
    # versions
    "BinarySpec",
    "BuildMethod",
    "BuildStrategyKind",
    "BuildTarget",
    "ImageBuilder",
    "ImageSpec",
    "VersionSpec",
    # catalog
    "DEFAULT_CATALOG",
    "VersionCatalog",
    "load_catalog",
    # states
    "PipelineState",
    "StateTransition",
    "RUN_TRANSITIONS",
    "TARGET_TRANSITIONS",
    # reports
    "ArchitectureRow",
    "BinaryVerdict",
    "BuildOutcome",
    "DiffEntry",
    "DiffKind",
    "ImageComparison",
    "InventoryEntry",
    "PipelineResult",
    "ScriptComparison",
    "ScriptStatus",
    "VerificationReport",
    "VersionCommit",
]
