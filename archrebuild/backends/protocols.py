"""Capability Protocols for the external tools a rebuild drives.

The core never shells out itself; it talks to these three interfaces.
Default implementations live next to this module:

1. ``ContainerRuntime`` — :class:`archrebuild.backends.docker.DockerCli`
2. ``SourceControl``    — :class:`archrebuild.backends.git.GitSourceControl`
3. ``Toolchain``        — :class:`archrebuild.backends.toolchain.HostToolchain`

Any object with matching methods satisfies a Protocol; the test suite uses
in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

from archrebuild.models.versions import ImageBuilder


@runtime_checkable
class ContainerRuntime(Protocol):
    """Build, inspect and read container images.

    Every method raises :class:`archrebuild.errors.CommandError` when the
    underlying tool fails, except ``copy_from_container`` which reports a
    missing path by returning ``False``.
    """

    def image_exists(self, image: str) -> bool: ...

    def pull_image(self, image: str, *, platform: str | None = None) -> None: ...

    def ensure_builder(self, name: str) -> None: ...

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
    ) -> None: ...

    def tag_image(self, source: str, target: str) -> None: ...

    def create_container(self, image: str, *, platform: str | None = None) -> str:
        """Create (but do not start) a container and return its id.

        *platform* selects the variant of a multi-platform image.
        """
        ...

    def copy_from_container(self, container: str, path: str, dest: Path) -> bool:
        """Copy *path* out of *container* to *dest*; ``False`` if absent."""
        ...

    def remove_container(self, container: str) -> None: ...

    def list_files(
        self, image: str, roots: Sequence[str], *, platform: str | None = None
    ) -> list[tuple[str, int]]:
        """Return ``(path, size)`` for regular files under existing *roots*."""
        ...


@runtime_checkable
class SourceControl(Protocol):
    """The working source tree a rebuild checks out and restores."""

    def current_position(self) -> str:
        """Current branch name, or the commit id when HEAD is detached."""
        ...

    def resolve(self, revision: str) -> str:
        """Full commit id for *revision*; raises ``RevisionResolutionError``."""
        ...

    def checkout(self, revision: str) -> None: ...

    def update_submodules(self) -> None: ...

    def submodule_revision(self, path: str, revision: str = "HEAD") -> str: ...

    def search_commits(self, pattern: str) -> list[tuple[str, str, str]]:
        """``(sha, date, subject)`` of commits whose message contains *pattern*,
        most recent first, across all refs."""
        ...


@runtime_checkable
class Toolchain(Protocol):
    """Host compiler front-ends used by the direct host build strategy."""

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
    ) -> None: ...

    def make(
        self,
        workdir: Path,
        target: str,
        *,
        goos: str,
        goarch: str,
        timeout: float | None = None,
    ) -> None: ...
