"""Diff engine: compare a candidate image against its published reference.

``diff_inventories`` is pure: given two inventories (and, for manifest
binaries, the architecture family seen on each side) it classifies every path
in the union exactly once. A path present on both sides yields no entry only
when its size and its architecture are both unchanged.

``compare_images`` gathers the inputs from two images and adds the binary
architecture table and the shell-script comparison.
"""

from __future__ import annotations

import difflib
import logging
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path

from archrebuild.backends.protocols import ContainerRuntime
from archrebuild.core.inventory import extracted_files, list_inventory, probe_architectures
from archrebuild.models.architecture import ArchitectureFamily
from archrebuild.models.reports import (
    ArchitectureRow,
    DiffEntry,
    DiffKind,
    ImageComparison,
    InventoryEntry,
    ScriptComparison,
    ScriptStatus,
)
from archrebuild.models.versions import BinarySpec

logger = logging.getLogger(__name__)

MAX_SCRIPT_DIFF_LINES = 10
SCRIPT_SUFFIX = ".sh"

ArchitecturePair = tuple[ArchitectureFamily | None, ArchitectureFamily | None]


def _entry_key(entry: DiffEntry) -> tuple[str, str]:
    return entry.directory, entry.name


def diff_inventories(
    reference: Iterable[InventoryEntry],
    candidate: Iterable[InventoryEntry],
    architectures: Mapping[str, ArchitecturePair] | None = None,
) -> list[DiffEntry]:
    """Classify every path of *reference* ∪ *candidate*.

    Parameters
    ----------
    reference, candidate:
        Inventories of the two images.
    architectures:
        ``path -> (reference family, candidate family)`` for manifest
        binaries. A path with equal sizes but different families is
        ``changed``; a side that could not be probed (``None``) is not
        compared.

    Returns
    -------
    list[DiffEntry]:
        Sorted by directory, then file name.
    """
    ref = {e.path: e.size for e in reference}
    cand = {e.path: e.size for e in candidate}
    archs = architectures or {}
    entries: list[DiffEntry] = []

    for path in ref.keys() | cand.keys():
        ref_arch, cand_arch = archs.get(path, (None, None))
        if path not in cand:
            entries.append(
                DiffEntry(
                    kind=DiffKind.REMOVED,
                    path=path,
                    old_size=ref[path],
                    reference_arch=ref_arch,
                )
            )
        elif path not in ref:
            entries.append(
                DiffEntry(
                    kind=DiffKind.ADDED,
                    path=path,
                    new_size=cand[path],
                    candidate_arch=cand_arch,
                )
            )
        else:
            arch_differs = (
                ref_arch is not None and cand_arch is not None and ref_arch != cand_arch
            )
            if ref[path] != cand[path] or arch_differs:
                entries.append(
                    DiffEntry(
                        kind=DiffKind.CHANGED,
                        path=path,
                        old_size=ref[path],
                        new_size=cand[path],
                        reference_arch=ref_arch,
                        candidate_arch=cand_arch,
                    )
                )

    entries.sort(key=_entry_key)
    return entries


def compare_scripts(
    reference: Mapping[str, Path | None],
    candidate: Mapping[str, Path | None],
) -> list[ScriptComparison]:
    """Compare extracted shell scripts; ``None`` marks a side without the file."""
    results: list[ScriptComparison] = []
    for path in sorted(reference.keys() | candidate.keys()):
        ref_file = reference.get(path)
        cand_file = candidate.get(path)
        if ref_file is None and cand_file is None:
            continue
        if cand_file is None:
            results.append(
                ScriptComparison(path=path, status=ScriptStatus.MISSING_IN_CANDIDATE)
            )
            continue
        if ref_file is None:
            results.append(
                ScriptComparison(path=path, status=ScriptStatus.ONLY_IN_CANDIDATE)
            )
            continue

        ref_text = ref_file.read_text(errors="replace").splitlines()
        cand_text = cand_file.read_text(errors="replace").splitlines()
        if ref_text == cand_text:
            results.append(ScriptComparison(path=path, status=ScriptStatus.IDENTICAL))
            continue
        diff = list(
            difflib.unified_diff(
                ref_text, cand_text, fromfile="reference", tofile="candidate", lineterm=""
            )
        )
        results.append(
            ScriptComparison(
                path=path,
                status=ScriptStatus.DIFFERENT,
                diff_lines=diff[:MAX_SCRIPT_DIFF_LINES],
            )
        )
    return results


def compare_images(
    runtime: ContainerRuntime,
    reference: str,
    candidate: str,
    binaries: Sequence[BinarySpec],
    roots: Iterable[str],
    *,
    platform: str | None = None,
) -> ImageComparison:
    """Compare *candidate* against *reference*. Neither image is modified.

    *platform* pins both images to one variant, so a multi-platform
    reference is read for the architecture under comparison rather than the
    host's. Raises ``InventoryError`` if either image cannot be listed or run.
    """
    root_list = list(roots)
    logger.info("Comparing %s against %s", candidate, reference)
    ref_inventory = list_inventory(runtime, reference, root_list, platform=platform)
    cand_inventory = list_inventory(runtime, candidate, root_list, platform=platform)

    paths = [b.image_path for b in binaries]
    ref_archs = probe_architectures(runtime, reference, paths, platform=platform)
    cand_archs = probe_architectures(runtime, candidate, paths, platform=platform)
    pairs = {p: (ref_archs.get(p), cand_archs.get(p)) for p in paths}

    rows = [
        ArchitectureRow(
            name=b.name,
            path=b.image_path,
            reference=ref_archs.get(b.image_path),
            candidate=cand_archs.get(b.image_path),
        )
        for b in binaries
    ]

    script_paths = sorted(
        {e.path for e in (*ref_inventory, *cand_inventory) if e.path.endswith(SCRIPT_SUFFIX)}
    )
    with (
        extracted_files(runtime, reference, script_paths, platform=platform) as ref_scripts,
        extracted_files(runtime, candidate, script_paths, platform=platform) as cand_scripts,
    ):
        scripts = compare_scripts(ref_scripts, cand_scripts)

    comparison = ImageComparison(
        reference=reference,
        candidate=candidate,
        entries=diff_inventories(ref_inventory, cand_inventory, pairs),
        architectures=rows,
        scripts=scripts,
    )
    logger.info(
        "%s: %d discrepancies, %d scripts compared",
        candidate,
        len(comparison.entries),
        len(comparison.scripts),
    )
    return comparison
