"""Shared test fixtures for archrebuild.

The three capability Protocols are replaced by in-memory fakes: a container
runtime whose images are dicts of ``path -> bytes``, a source tree that only
tracks its checked-out position, and a toolchain that writes minimal ELF
files for the requested ``GOARCH``.
"""

from __future__ import annotations

import struct
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any

import pytest

from archrebuild.config import RebuildSettings
from archrebuild.core.pipeline import BuildPipeline
from archrebuild.errors import CommandError, RevisionResolutionError
from archrebuild.models.architecture import Architecture
from archrebuild.models.catalog import DEFAULT_CATALOG
from archrebuild.models.versions import ImageBuilder

EM_386 = 3
EM_ARM = 40
EM_X86_64 = 62
EM_AARCH64 = 183

_GOARCH_MACHINES = {"amd64": EM_X86_64, "arm64": EM_AARCH64}

ALL_BINARIES = [
    "temporal-server",
    "tctl",
    "tctl-authorization-plugin",
    "temporal",
    "dockerize",
    "temporal-cassandra-tool",
    "temporal-sql-tool",
    "tdbg",
]


# ---------------------------------------------------------------------------
# ELF builders
# ---------------------------------------------------------------------------


def elf_bytes(machine: int, *, bits: int = 64, size: int | None = None) -> bytes:
    """A minimal, parseable ELF executable header for *machine*.

    The section header table is a single null entry right after the header.
    *size* pads the result with zeros.
    """
    if bits == 64:
        ident = b"\x7fELF" + bytes([2, 1, 1]) + bytes(9)
        body = struct.pack("<HHIQQQIHHHHHH", 2, machine, 1, 0, 0, 64, 0, 64, 56, 0, 64, 1, 0)
        data = ident + body + bytes(64)
    else:
        ident = b"\x7fELF" + bytes([1, 1, 1]) + bytes(9)
        body = struct.pack("<HHIIIIIHHHHHH", 2, machine, 1, 0, 0, 52, 0, 52, 32, 0, 40, 1, 0)
        data = ident + body + bytes(40)
    if size is not None and size > len(data):
        data += bytes(size - len(data))
    return data


def elf_for(goarch: str, size: int | None = None) -> bytes:
    return elf_bytes(_GOARCH_MACHINES[goarch], size=size)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeRuntime:
    """In-memory ``ContainerRuntime``.

    ``build_image`` produces an image holding every name in ``binaries``
    under ``/usr/local/bin`` compiled for the requested platform, except the
    names in ``ignores_platform``, which always come out ``amd64``.
    ``variants`` holds other platform variants of a local image; reads that
    name a platform get that variant when one is registered.
    """

    def __init__(self) -> None:
        self.images: dict[str, dict[str, bytes]] = {}
        self.containers: dict[str, str] = {}
        self.variants: dict[tuple[str, str], dict[str, bytes]] = {}
        self.reads: list[tuple[str, str | None]] = []  # (image, platform)
        self.removed: list[str] = []
        self.builds: list[dict[str, Any]] = []
        self.tags: list[tuple[str, str]] = []
        self.pulls: list[tuple[str, str | None]] = []
        self.builders: list[str] = []
        self.registry: dict[str, dict[str, bytes]] = {}
        self.binaries: list[str] = list(ALL_BINARIES)
        self.ignores_platform: set[str] = set()
        self.fail_builds: set[str] = set()  # tags whose build fails
        self._next_id = 0
        self._container_files: dict[str, dict[str, bytes]] = {}

    def add_image(self, image: str, files: Mapping[str, bytes]) -> None:
        self.images[image] = dict(files)

    def image_exists(self, image: str) -> bool:
        return image in self.images

    def pull_image(self, image: str, *, platform: str | None = None) -> None:
        self.pulls.append((image, platform))
        if image not in self.registry:
            raise CommandError(["docker", "pull", image], "manifest unknown", returncode=1)
        self.images[image] = dict(self.registry[image])

    def ensure_builder(self, name: str) -> None:
        self.builders.append(name)

    def build_image(
        self,
        context: Path,
        dockerfile: str,
        tag: str,
        *,
        platform: str,
        build_args: Mapping[str, str] | None = None,
        stage: str | None = None,
        builder: ImageBuilder = ImageBuilder.BUILDX,
        timeout: float | None = None,
    ) -> None:
        self.builds.append(
            {
                "dockerfile": dockerfile,
                "tag": tag,
                "platform": platform,
                "build_args": dict(build_args or {}),
                "stage": stage,
                "builder": builder,
            }
        )
        if tag in self.fail_builds:
            raise CommandError(["docker", "build", "-t", tag], "exit status 1", returncode=1)
        goarch = platform.split("/")[-1]
        files = {
            f"/usr/local/bin/{name}": elf_for(
                "amd64" if name in self.ignores_platform else goarch
            )
            for name in self.binaries
        }
        files["/etc/temporal/entrypoint.sh"] = b"#!/bin/sh\nexec temporal-server\n"
        self.images[tag] = files

    def tag_image(self, source: str, target: str) -> None:
        self.tags.append((source, target))
        self.images[target] = dict(self.images[source])

    def _files(self, image: str, platform: str | None) -> dict[str, bytes]:
        self.reads.append((image, platform))
        if platform is not None and (image, platform) in self.variants:
            return self.variants[(image, platform)]
        return self.images[image]

    def create_container(self, image: str, *, platform: str | None = None) -> str:
        files = self._files(image, platform)
        self._next_id += 1
        container = f"c{self._next_id}"
        self.containers[container] = image
        self._container_files[container] = files
        return container

    def copy_from_container(self, container: str, path: str, dest: Path) -> bool:
        files = self._container_files[container]
        if path not in files:
            return False
        Path(dest).write_bytes(files[path])
        return True

    def remove_container(self, container: str) -> None:
        self.removed.append(container)
        del self.containers[container]
        del self._container_files[container]

    def list_files(
        self, image: str, roots: Sequence[str], *, platform: str | None = None
    ) -> list[tuple[str, int]]:
        if image not in self.images:
            raise CommandError(["docker", "run", image], "No such image", returncode=125)
        return [
            (path, len(data))
            for path, data in self._files(image, platform).items()
            if any(path.startswith(root.rstrip("/") + "/") for root in roots)
        ]


class FakeSourceControl:
    """In-memory ``SourceControl`` that tracks the checked-out position."""

    def __init__(self, position: str = "main") -> None:
        self.position = position
        self.revisions: dict[str, str] = {
            "main": "a" * 40,
            "e786597": "e786597" + "0" * 33,
            "e7a73a0": "e7a73a0" + "0" * 33,
        }
        self.submodules: dict[str, str] = {"temporal": "1" * 40, "tctl": "2" * 40}
        self.commits: list[tuple[str, str, str]] = []
        self.checkouts: list[str] = []
        self.submodule_updates = 0
        self.fail_checkout: set[str] = set()
        self.fail_submodules = False
        self.revision_submodules: dict[str, dict[str, str]] = {}

    def current_position(self) -> str:
        return self.position

    def resolve(self, revision: str) -> str:
        if revision not in self.revisions:
            raise RevisionResolutionError(f"Cannot resolve revision {revision!r}")
        return self.revisions[revision]

    def checkout(self, revision: str) -> None:
        self.checkouts.append(revision)
        if revision in self.fail_checkout:
            raise CommandError(["git", "checkout", revision], "error: pathspec", returncode=1)
        self.position = revision

    def update_submodules(self) -> None:
        self.submodule_updates += 1
        if self.fail_submodules:
            raise CommandError(["git", "submodule", "update", "--init"], "fatal", returncode=128)

    def submodule_revision(self, path: str, revision: str = "HEAD") -> str:
        table = self.revision_submodules.get(revision, self.submodules)
        if path not in table:
            raise RevisionResolutionError(f"No submodule {path!r} at {revision}")
        return table[path]

    def search_commits(self, pattern: str) -> list[tuple[str, str, str]]:
        return [c for c in self.commits if pattern in c[2]]


class FakeToolchain:
    """Writes a minimal ELF for the requested ``GOARCH`` instead of compiling."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, str]] = []  # (tool, what, goarch)
        self.make_outputs: dict[str, list[str]] = {
            "cli": ["temporal"],
            "tctl": ["tctl", "tctl-authorization-plugin"],
        }
        self.fail: set[tuple[str, str]] = set()  # (binary or make dir, goarch)
        self.ignores_goarch: set[str] = set()
        self.on_call: Callable[[str], None] | None = None

    def _machine_arch(self, name: str, goarch: str) -> str:
        return "amd64" if name in self.ignores_goarch else goarch

    def go_build(
        self,
        workdir: Path,
        package: str,
        output: Path,
        *,
        goos: str,
        goarch: str,
        tags: Sequence[str] = (),
        timeout: float | None = None,
    ) -> None:
        name = Path(output).name
        self.calls.append(("go", name, goarch))
        if self.on_call is not None:
            self.on_call(name)
        if (name, goarch) in self.fail:
            raise CommandError(["go", "build", "-o", str(output), package], "exit status 2")
        Path(output).write_bytes(elf_for(self._machine_arch(name, goarch)))

    def make(
        self,
        workdir: Path,
        target: str,
        *,
        goos: str,
        goarch: str,
        timeout: float | None = None,
    ) -> None:
        component = Path(workdir).name
        self.calls.append(("make", component, goarch))
        if self.on_call is not None:
            self.on_call(component)
        if (component, goarch) in self.fail:
            raise CommandError(["make", target], "Error 2", returncode=2)
        Path(workdir).mkdir(parents=True, exist_ok=True)
        for name in self.make_outputs.get(component, []):
            (Path(workdir) / name).write_bytes(elf_for(self._machine_arch(name, goarch)))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def make_elf() -> Callable[..., bytes]:
    """Factory fixture: ``make_elf(machine, bits=64, size=None)``."""
    return elf_bytes


@pytest.fixture
def elf_for_arch() -> Callable[..., bytes]:
    """Factory fixture: ``elf_for_arch("arm64", size=None)``."""
    return elf_for


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def source() -> FakeSourceControl:
    return FakeSourceControl()


@pytest.fixture
def toolchain() -> FakeToolchain:
    return FakeToolchain()


@pytest.fixture
def rebuild_settings(tmp_path: Path) -> RebuildSettings:
    """Settings rooted in a temporary source tree."""
    repo = tmp_path / "repo"
    repo.mkdir()
    return RebuildSettings(
        repo_root=repo,
        build_dir=Path("build"),
        work_dir=Path(".work"),
        target_architectures=[Architecture.AMD64, Architecture.ARM64],
        max_parallel_targets=2,
    )


@pytest.fixture
def pipeline(
    runtime: FakeRuntime,
    source: FakeSourceControl,
    toolchain: FakeToolchain,
    rebuild_settings: RebuildSettings,
) -> BuildPipeline:
    return BuildPipeline(
        runtime, source, toolchain, settings=rebuild_settings, catalog=DEFAULT_CATALOG
    )
