"""Version, image and binary manifest models (static configuration)."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, model_validator

from archrebuild.models.architecture import Architecture


class BuildStrategyKind(str, Enum):
    """How the binaries of a release line are compiled."""

    IN_CONTAINER = "in_container"
    DIRECT_HOST = "direct_host"


class BuildMethod(str, Enum):
    """How a single binary is produced under the direct host strategy."""

    GO_BUILD = "go_build"
    MAKE = "make"


class ImageBuilder(str, Enum):
    """Which container build front-end assembles an image."""

    BUILDX = "buildx"
    DOCKER = "docker"


class BinarySpec(BaseModel):
    """One binary a version is expected to ship.

    Under the direct host strategy ``method`` selects how the binary is
    compiled. ``go_build`` invokes the Go toolchain directly with explicit
    ``GOOS``/``GOARCH``; it is the per-binary workaround for upstream
    Makefile targets that drop the architecture. ``make`` goes through the
    component's own make target, for components whose Makefile honours
    ``GOARCH``.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    component: str = ""  # submodule directory holding the source
    method: BuildMethod = BuildMethod.GO_BUILD
    package: str = "."  # go package path, for go_build
    tags: list[str] = []
    make_target: str = "build"
    produced_by: str | None = None  # emitted by another binary's make target
    install_dir: str = "/usr/local/bin"

    @property
    def image_path(self) -> str:
        """Absolute path of the binary inside a built image."""
        return f"{self.install_dir.rstrip('/')}/{self.name}"

    @property
    def build_owner(self) -> str:
        """Name of the binary whose build step emits this one."""
        return self.produced_by or self.name


class ImageSpec(BaseModel):
    """One image assembled per target for a version."""

    model_config = ConfigDict(frozen=True)

    kind: str  # "server", "admin-tools"
    dockerfile: str
    stage: str | None = None  # --target for multi-stage Dockerfiles
    builder: ImageBuilder = ImageBuilder.BUILDX
    binaries: list[str]
    build_args: dict[str, str] = {}
    base_image_arg: str | None = None  # receives this target's server image ref


class VersionSpec(BaseModel):
    """A supported release line: pinned revision plus build strategy."""

    model_config = ConfigDict(frozen=True)

    version: str
    revision: str
    strategy: BuildStrategyKind
    binaries: list[BinarySpec]
    images: list[ImageSpec]
    submodule: str = "temporal"  # upstream source submodule, for commit discovery
    # Submodules whose pinned revision is exposed to image build args as {name}
    revision_submodules: list[str] = ["temporal", "tctl"]

    def binary(self, name: str) -> BinarySpec:
        for spec in self.binaries:
            if spec.name == name:
                return spec
        raise KeyError(f"{self.version}: no binary named {name!r}")

    def image(self, kind: str) -> ImageSpec:
        for spec in self.images:
            if spec.kind == kind:
                return spec
        raise KeyError(f"{self.version}: no image of kind {kind!r}")

    def manifest_for(self, kind: str) -> list[BinarySpec]:
        """Binaries that the image of *kind* must contain."""
        return [self.binary(name) for name in self.image(kind).binaries]

    @model_validator(mode="after")
    def _check_references(self) -> VersionSpec:
        names = {b.name for b in self.binaries}
        for image in self.images:
            missing = [n for n in image.binaries if n not in names]
            if missing:
                raise ValueError(
                    f"{self.version}/{image.kind}: unknown binaries {missing}"
                )
        for spec in self.binaries:
            if spec.produced_by is not None and spec.produced_by not in names:
                raise ValueError(
                    f"{spec.name}: produced_by {spec.produced_by!r} is not a binary"
                )
        return self


class BuildTarget(BaseModel):
    """One (version, architecture) pair."""

    model_config = ConfigDict(frozen=True)

    version: str
    architecture: Architecture

    def __str__(self) -> str:
        return f"{self.version}/{self.architecture.value}"
