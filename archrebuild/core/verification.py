"""Verification aggregator — classify every manifest binary of a build.

Used as the pre-assembly gate inside the build pipeline (over a host
directory of freshly built binaries) and standalone to re-audit images that
were built earlier. A wrong or missing binary is reported in the
``VerificationReport``, never raised; only I/O failures raise.
"""

from __future__ import annotations

import logging
import tempfile
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol

from archrebuild.backends.protocols import ContainerRuntime
from archrebuild.core.classifier import classify, describe, verdict_for
from archrebuild.core.hasher import file_sha256
from archrebuild.core.inventory import temporary_container
from archrebuild.errors import ClassificationError
from archrebuild.models.architecture import Architecture
from archrebuild.models.reports import BinaryVerdict, VerificationReport
from archrebuild.models.versions import BinarySpec

logger = logging.getLogger(__name__)


class BinarySource(Protocol):
    """Where the binaries under verification are read from."""

    @property
    def name(self) -> str: ...

    def fetch(self, binary: BinarySpec) -> Path | None:
        """Local path holding *binary*, or ``None`` if it is absent."""
        ...


class DirectorySource:
    """Binaries laid out flat in a host directory (``build/<arch>/<name>``)."""

    def __init__(self, directory: Path) -> None:
        self._dir = Path(directory)

    @property
    def name(self) -> str:
        return str(self._dir)

    def fetch(self, binary: BinarySpec) -> Path | None:
        path = self._dir / binary.name
        return path if path.is_file() else None


class ContainerSource:
    """Binaries copied out of a stopped container, by their in-image path."""

    def __init__(
        self, runtime: ContainerRuntime, image: str, container: str, scratch: Path
    ) -> None:
        self._runtime = runtime
        self._image = image
        self._container = container
        self._scratch = scratch

    @property
    def name(self) -> str:
        return self._image

    def fetch(self, binary: BinarySpec) -> Path | None:
        dest = self._scratch / binary.name
        if self._runtime.copy_from_container(self._container, binary.image_path, dest):
            return dest
        return None

    @classmethod
    @contextmanager
    def open(cls, runtime: ContainerRuntime, image: str) -> Iterator[ContainerSource]:
        """Yield a source over a temporary container of *image*.

        Raises ``InventoryError`` if the image does not exist or no container
        can be created from it.
        """
        with temporary_container(runtime, image) as container, tempfile.TemporaryDirectory(
            prefix="archrebuild-verify-"
        ) as tmp:
            yield cls(runtime, image, container, Path(tmp))


class VerificationAggregator:
    """Runs the architecture classifier across a fixed binary manifest."""

    def verify(
        self,
        source: BinarySource,
        binaries: Sequence[BinarySpec],
        expected: Architecture,
    ) -> VerificationReport:
        """Classify every binary in *binaries* from *source*.

        ``checked`` always equals ``len(binaries)``: every manifest entry gets
        a verdict, ``not_found`` included.
        """
        results: list[BinaryVerdict] = []
        for binary in binaries:
            results.append(self._check(source, binary, expected))

        report = VerificationReport(
            subject=source.name, expected=expected, results=results
        )
        if report.passed:
            logger.info(
                "%s: all %d binaries are %s", source.name, report.checked, expected.family.value
            )
        else:
            logger.warning(
                "%s: %d/%d binaries have issues",
                source.name,
                len(report.failures),
                report.checked,
            )
        return report

    def verify_image(
        self,
        runtime: ContainerRuntime,
        image: str,
        binaries: Sequence[BinarySpec],
        expected: Architecture,
    ) -> VerificationReport:
        """Audit an already-built image without modifying it."""
        with ContainerSource.open(runtime, image) as source:
            return self.verify(source, binaries, expected)

    def verify_directory(
        self,
        directory: Path,
        binaries: Sequence[BinarySpec],
        expected: Architecture,
    ) -> VerificationReport:
        return self.verify(DirectorySource(directory), binaries, expected)

    # ------------------------------------------------------------------

    @staticmethod
    def _check(
        source: BinarySource, binary: BinarySpec, expected: Architecture
    ) -> BinaryVerdict:
        path = source.fetch(binary)
        if path is None:
            logger.debug("%s: %s not found", source.name, binary.image_path)
            return BinaryVerdict(
                name=binary.name,
                path=binary.image_path,
                expected=expected.family,
                verdict=verdict_for(None, expected.family),
                description=f"not found at {binary.image_path}",
            )

        family = classify(path)
        try:
            digest = file_sha256(path)
        except OSError as exc:
            raise ClassificationError(f"Cannot read binary {path}: {exc}") from exc
        return BinaryVerdict(
            name=binary.name,
            path=binary.image_path,
            expected=expected.family,
            actual=family,
            verdict=verdict_for(family, expected.family),
            description=describe(path),
            sha256=digest,
        )
