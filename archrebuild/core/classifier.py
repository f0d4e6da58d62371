"""Architecture classifier — which CPU family was a binary compiled for.

Reads the ELF header with pyelftools. Anything that is not a parseable ELF
file classifies as ``ArchitectureFamily.UNKNOWN``; the classifier never
guesses a family. Only an unreadable path is an error.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import BinaryIO

from elftools.common.exceptions import ELFError
from elftools.elf.elffile import ELFFile

from archrebuild.errors import ClassificationError
from archrebuild.models.architecture import ArchitectureFamily, ArchitectureVerdict

logger = logging.getLogger(__name__)

# pyelftools reports e_machine by its EM_* name
_MACHINE_FAMILIES: dict[str, ArchitectureFamily] = {
    "EM_X86_64": ArchitectureFamily.X86_64,
    "EM_AARCH64": ArchitectureFamily.AARCH64,
    "EM_386": ArchitectureFamily.X86,
    "EM_ARM": ArchitectureFamily.ARM,
}

_TYPE_NAMES: dict[str, str] = {
    "ET_EXEC": "executable",
    "ET_DYN": "pie executable",
    "ET_REL": "relocatable",
    "ET_CORE": "core file",
}


def _read_header(stream: BinaryIO) -> dict | None:
    try:
        elf = ELFFile(stream)
    except (ELFError, ValueError) as exc:
        logger.debug("Not a parseable ELF file: %s", exc)
        return None
    return {
        "class": elf.elfclass,
        "little_endian": elf.little_endian,
        "type": elf["e_type"],
        "machine": elf["e_machine"],
    }


def _open(binary: bytes | Path) -> BinaryIO:
    if isinstance(binary, (bytes, bytearray)):
        return io.BytesIO(binary)
    try:
        return open(binary, "rb")
    except OSError as exc:
        raise ClassificationError(f"Cannot read binary {binary}: {exc}") from exc


def _header(binary: bytes | Path) -> dict | None:
    stream = _open(binary)
    try:
        return _read_header(stream)
    except OSError as exc:
        raise ClassificationError(f"Cannot read binary {binary}: {exc}") from exc
    finally:
        stream.close()


def classify(binary: bytes | Path) -> ArchitectureFamily:
    """Return the architecture family of *binary* (raw bytes or a file path)."""
    header = _header(binary)
    if header is None:
        return ArchitectureFamily.UNKNOWN
    return _MACHINE_FAMILIES.get(str(header["machine"]), ArchitectureFamily.UNKNOWN)


def describe(binary: bytes | Path) -> str:
    """A short ``file(1)``-style description, e.g.
    ``ELF 64-bit LSB executable, x86-64``."""
    header = _header(binary)
    if header is None:
        return "data (not an ELF executable)"
    family = _MACHINE_FAMILIES.get(str(header["machine"]), ArchitectureFamily.UNKNOWN)
    machine = family.value if family is not ArchitectureFamily.UNKNOWN else str(header["machine"])
    order = "LSB" if header["little_endian"] else "MSB"
    kind = _TYPE_NAMES.get(str(header["type"]), str(header["type"]))
    return f"ELF {header['class']}-bit {order} {kind}, {machine}"


def verdict_for(
    actual: ArchitectureFamily | None, expected: ArchitectureFamily
) -> ArchitectureVerdict:
    """Map a classification (``None`` when the binary is absent) to a verdict."""
    if actual is None:
        return ArchitectureVerdict.NOT_FOUND
    if actual is expected:
        return ArchitectureVerdict.MATCHES_EXPECTED
    return ArchitectureVerdict.MISMATCH
