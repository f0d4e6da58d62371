"""Architecture models — target architectures, binary families, verdicts."""

from __future__ import annotations

from enum import Enum


class ArchitectureFamily(str, Enum):
    """CPU instruction-set family a compiled binary was produced for."""

    X86_64 = "x86-64"
    AARCH64 = "aarch64"
    X86 = "x86"
    ARM = "arm"
    UNKNOWN = "unknown"


class Architecture(str, Enum):
    """A build target architecture (Docker / Go naming)."""

    AMD64 = "amd64"
    ARM64 = "arm64"

    @property
    def goarch(self) -> str:
        """Value passed to the Go toolchain as ``GOARCH``."""
        return self.value

    @property
    def platform(self) -> str:
        """Container platform string, e.g. ``linux/arm64``."""
        return f"linux/{self.value}"

    @property
    def family(self) -> ArchitectureFamily:
        """The family every binary built for this target must classify to."""
        return _EXPECTED_FAMILY[self]


_EXPECTED_FAMILY: dict[Architecture, ArchitectureFamily] = {
    Architecture.AMD64: ArchitectureFamily.X86_64,
    Architecture.ARM64: ArchitectureFamily.AARCH64,
}


class ArchitectureVerdict(str, Enum):
    """Reportable outcome of classifying one binary against its target."""

    MATCHES_EXPECTED = "matches_expected"
    MISMATCH = "mismatch"
    NOT_FOUND = "not_found"

    @property
    def is_failing(self) -> bool:
        return self is not ArchitectureVerdict.MATCHES_EXPECTED
