"""Artifact inventory — what regular files does a built image contain.

All operations are read-only against the image and safe to repeat.
"""

from __future__ import annotations

import logging
import tempfile
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path

from archrebuild.backends.protocols import ContainerRuntime
from archrebuild.core.classifier import classify
from archrebuild.errors import CommandError, InventoryError
from archrebuild.models.architecture import ArchitectureFamily
from archrebuild.models.reports import InventoryEntry

logger = logging.getLogger(__name__)


def list_inventory(
    runtime: ContainerRuntime,
    image: str,
    roots: Iterable[str],
    *,
    platform: str | None = None,
) -> list[InventoryEntry]:
    """List regular files under *roots* in *image*, sorted by (directory, name).

    Roots that do not exist in the image are skipped. *platform* selects the
    variant of a multi-platform image. Raises ``InventoryError`` if the image
    cannot be run.
    """
    root_list = sorted(set(roots))
    try:
        listing = runtime.list_files(image, root_list, platform=platform)
    except CommandError as exc:
        raise InventoryError(f"Cannot list files in {image}: {exc}") from exc

    entries = {path: InventoryEntry(path=path, size=size) for path, size in listing}
    ordered = sorted(entries.values(), key=lambda e: e.sort_key)
    logger.debug("%s: %d files under %s", image, len(ordered), root_list)
    return ordered


@contextmanager
def temporary_container(
    runtime: ContainerRuntime, image: str, *, platform: str | None = None
) -> Iterator[str]:
    """Create a stopped container from *image*; always removed on exit."""
    if not runtime.image_exists(image):
        raise InventoryError(f"Image not found: {image}")
    try:
        container = runtime.create_container(image, platform=platform)
    except CommandError as exc:
        raise InventoryError(f"Failed to create container from {image}: {exc}") from exc
    try:
        yield container
    finally:
        try:
            runtime.remove_container(container)
        except CommandError as exc:
            logger.warning("Could not remove container %s: %s", container, exc)


@contextmanager
def extracted_files(
    runtime: ContainerRuntime,
    image: str,
    paths: Sequence[str],
    *,
    platform: str | None = None,
) -> Iterator[dict[str, Path | None]]:
    """Copy *paths* out of one temporary container of *image*.

    Yields ``path -> local copy`` (``None`` where absent); the copies and the
    container are removed on exit.
    """
    with (
        temporary_container(runtime, image, platform=platform) as container,
        tempfile.TemporaryDirectory(prefix="archrebuild-extract-") as tmp,
    ):
        copies: dict[str, Path | None] = {}
        for index, path in enumerate(paths):
            dest = Path(tmp) / f"{index}-{Path(path).name}"
            copies[path] = (
                dest if runtime.copy_from_container(container, path, dest) else None
            )
        yield copies


def probe_architectures(
    runtime: ContainerRuntime,
    image: str,
    paths: Sequence[str],
    *,
    platform: str | None = None,
) -> dict[str, ArchitectureFamily | None]:
    """Classify each of *paths* inside *image*; ``None`` where absent."""
    with extracted_files(runtime, image, paths, platform=platform) as copies:
        return {
            path: classify(copy) if copy is not None else None
            for path, copy in copies.items()
        }
