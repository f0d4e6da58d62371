"""Build strategies with an enforced lifecycle.

Every concrete strategy implements ``build()`` and ``assemble()``. The
``run()`` wrapper is **not overridable**: it prepares the target's output,
calls ``build()``, and on any failure discards everything the target produced
before re-raising as ``BuildError``. A target's output is all-or-nothing.

    InContainerStrategy  — compile inside multi-stage Dockerfiles with an
                           explicit ``--platform``; binaries are copied out of
                           the staging image for classification.
    DirectHostStrategy   — compile on the host with explicit GOOS/GOARCH into
                           ``build/<arch>``; images are assembled from there.

Neither strategy can vouch for its own output: the pipeline classifies every
binary before ``assemble()`` is called.
"""

from __future__ import annotations

import abc
import logging
import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar, final

from archrebuild.core.context import PipelineContext
from archrebuild.core.inventory import temporary_container
from archrebuild.errors import BuildError, CommandError, InventoryError
from archrebuild.models.versions import (
    BinarySpec,
    BuildMethod,
    BuildStrategyKind,
    BuildTarget,
    ImageSpec,
    VersionSpec,
)

logger = logging.getLogger(__name__)

_GOOS = "linux"


@dataclass
class BuildProducts:
    """What a successful ``build()`` left behind for one target.

    ``binary_sets`` pairs each host directory holding compiled binaries with
    the manifest that directory must satisfy.
    """

    target: BuildTarget
    output_dir: Path
    binary_sets: list[tuple[Path, list[BinarySpec]]] = field(default_factory=list)
    staging_images: dict[str, str] = field(default_factory=dict)

    @property
    def binary_count(self) -> int:
        return sum(len(binaries) for _, binaries in self.binary_sets)


class BuildStrategy(abc.ABC):
    """Abstract base for the two build strategies.

    Subclasses **must** implement ``output_dir()``, ``build()`` and
    ``assemble()``, and **must not** override ``run()``.
    """

    kind: ClassVar[BuildStrategyKind]

    # ------------------------------------------------------------------
    # Abstract interface
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def output_dir(self, ctx: PipelineContext, target: BuildTarget) -> Path:
        """Directory owned by *target*, removed if its build fails."""
        ...

    @abc.abstractmethod
    def build(
        self, ctx: PipelineContext, spec: VersionSpec, target: BuildTarget
    ) -> BuildProducts:
        """Compile every binary of *spec* for *target*.

        Raises ``BuildError`` naming the step that failed.
        """
        ...

    @abc.abstractmethod
    def assemble(
        self,
        ctx: PipelineContext,
        spec: VersionSpec,
        target: BuildTarget,
        products: BuildProducts,
    ) -> dict[str, str]:
        """Produce the final image of every kind; return ``kind -> reference``."""
        ...

    def parallel_targets(self, spec: VersionSpec) -> bool:
        """Whether targets of *spec* may be built concurrently."""
        return True

    # ------------------------------------------------------------------
    # Lifecycle: NOT overridable
    # ------------------------------------------------------------------

    @final
    def run(
        self, ctx: PipelineContext, spec: VersionSpec, target: BuildTarget
    ) -> BuildProducts:
        """Build *target* into a fresh output directory.  **Do not override.**"""
        out = self.output_dir(ctx, target)
        self._discard(out)
        out.mkdir(parents=True, exist_ok=True)
        logger.info(
            "Building %s (%s, %d binaries)", target, self.kind.value, len(spec.binaries)
        )
        try:
            products = self.build(ctx, spec, target)
        except BuildError as exc:
            logger.error("Build of %s failed at %s: %s", target, exc.stage, exc.cause)
            self._discard(out)
            raise
        except (CommandError, InventoryError, OSError) as exc:
            logger.error("Build of %s failed: %s", target, exc)
            self._discard(out)
            raise BuildError("build", exc) from exc
        except BaseException:
            self._discard(out)
            raise
        logger.info("Built %s: %d binaries to verify", target, products.binary_count)
        return products

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    @staticmethod
    @contextmanager
    def step(ctx: PipelineContext, stage: str) -> Iterator[None]:
        """Run one build step: check cancellation, name failures after *stage*."""
        ctx.raise_if_cancelled(stage)
        logger.debug("step: %s", stage)
        try:
            yield
        except (CommandError, InventoryError, OSError) as exc:
            raise BuildError(stage, exc) from exc

    @staticmethod
    def _discard(path: Path) -> None:
        if path.exists():
            shutil.rmtree(path)


# ---------------------------------------------------------------------------
# In-container compile
# ---------------------------------------------------------------------------


def _staging_tag(image: ImageSpec, target: BuildTarget) -> str:
    return f"archrebuild-staging/{image.kind}:{target.version}-{target.architecture.value}"


class InContainerStrategy(BuildStrategy):
    """Compile inside the Dockerfiles' builder stages under ``--platform``.

    Relies on the container toolchain honouring the platform (through QEMU
    emulation). When it does not, the binaries come out for the host
    architecture; only classification can tell.
    """

    kind = BuildStrategyKind.IN_CONTAINER

    def output_dir(self, ctx: PipelineContext, target: BuildTarget) -> Path:
        return ctx.workspace(target)

    def build(
        self, ctx: PipelineContext, spec: VersionSpec, target: BuildTarget
    ) -> BuildProducts:
        out = self.output_dir(ctx, target)
        products = BuildProducts(target=target, output_dir=out)
        server_staging: str | None = None

        for image in spec.images:
            tag = _staging_tag(image, target)
            with self.step(ctx, f"build image {image.kind}"):
                ctx.runtime.build_image(
                    ctx.repo_root,
                    image.dockerfile,
                    tag,
                    platform=target.architecture.platform,
                    build_args=ctx.build_args(image, base_image=server_staging),
                    stage=image.stage,
                    builder=image.builder,
                    timeout=ctx.settings.build_timeout_seconds,
                )
            products.staging_images[image.kind] = tag
            if image.kind == "server":
                server_staging = tag

            manifest = spec.manifest_for(image.kind)
            image_dir = out / image.kind
            image_dir.mkdir(parents=True, exist_ok=True)
            with self.step(ctx, f"extract {image.kind} binaries"):
                self._extract(ctx, tag, manifest, image_dir)
            products.binary_sets.append((image_dir, manifest))

        return products

    @staticmethod
    def _extract(
        ctx: PipelineContext, image: str, manifest: list[BinarySpec], dest: Path
    ) -> None:
        with temporary_container(ctx.runtime, image) as container:
            for binary in manifest:
                # Absent binaries are left for classification to report
                if not ctx.runtime.copy_from_container(
                    container, binary.image_path, dest / binary.name
                ):
                    logger.warning("%s: %s not in image", image, binary.image_path)

    def assemble(
        self,
        ctx: PipelineContext,
        spec: VersionSpec,
        target: BuildTarget,
        products: BuildProducts,
    ) -> dict[str, str]:
        images: dict[str, str] = {}
        for kind, staging in products.staging_images.items():
            final_tag = ctx.image_tag(kind, target)
            with self.step(ctx, f"tag image {kind}"):
                ctx.runtime.tag_image(staging, final_tag)
            logger.info("Assembled %s", final_tag)
            images[kind] = final_tag
        return images


# ---------------------------------------------------------------------------
# Direct host compile
# ---------------------------------------------------------------------------


class DirectHostStrategy(BuildStrategy):
    """Cross-compile on the host with explicit GOOS/GOARCH.

    Binaries whose manifest entry says ``go_build`` bypass their component's
    Makefile, which drops the target architecture. ``make`` entries go through
    the Makefile and the declared outputs are copied out of the component
    directory.
    """

    kind = BuildStrategyKind.DIRECT_HOST

    def output_dir(self, ctx: PipelineContext, target: BuildTarget) -> Path:
        return ctx.output_dir(target.architecture)

    def parallel_targets(self, spec: VersionSpec) -> bool:
        # make writes into the shared component directory
        return not any(b.method is BuildMethod.MAKE for b in spec.binaries)

    def build(
        self, ctx: PipelineContext, spec: VersionSpec, target: BuildTarget
    ) -> BuildProducts:
        out = self.output_dir(ctx, target)
        goarch = target.architecture.goarch
        timeout = ctx.settings.build_timeout_seconds

        for binary in spec.binaries:
            if binary.build_owner != binary.name:
                continue
            component = ctx.repo_root / binary.component
            if binary.method is BuildMethod.GO_BUILD:
                with self.step(ctx, f"go build {binary.name}"):
                    ctx.toolchain.go_build(
                        component,
                        binary.package,
                        (out / binary.name).resolve(),
                        goos=_GOOS,
                        goarch=goarch,
                        tags=binary.tags,
                        timeout=timeout,
                    )
            else:
                stage = f"make {binary.name}"
                with self.step(ctx, stage):
                    ctx.toolchain.make(
                        component,
                        binary.make_target,
                        goos=_GOOS,
                        goarch=goarch,
                        timeout=timeout,
                    )
                for produced in spec.binaries:
                    if produced.build_owner == binary.name:
                        self._collect(component, produced, out, stage)

        return BuildProducts(
            target=target, output_dir=out, binary_sets=[(out, list(spec.binaries))]
        )

    @staticmethod
    def _collect(component: Path, binary: BinarySpec, out: Path, stage: str) -> None:
        source = component / binary.name
        if not source.is_file():
            raise BuildError(stage, f"{binary.name} was not produced in {component}")
        shutil.copy2(source, out / binary.name)

    def assemble(
        self,
        ctx: PipelineContext,
        spec: VersionSpec,
        target: BuildTarget,
        products: BuildProducts,
    ) -> dict[str, str]:
        images: dict[str, str] = {}
        for image in spec.images:
            tag = ctx.image_tag(image.kind, target)
            with self.step(ctx, f"build image {image.kind}"):
                ctx.runtime.build_image(
                    ctx.repo_root,
                    image.dockerfile,
                    tag,
                    platform=target.architecture.platform,
                    build_args=ctx.build_args(image, base_image=images.get("server")),
                    stage=image.stage,
                    builder=image.builder,
                    timeout=ctx.settings.build_timeout_seconds,
                )
            logger.info("Assembled %s", tag)
            images[image.kind] = tag
        return images


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_STRATEGIES: dict[BuildStrategyKind, type[BuildStrategy]] = {
    BuildStrategyKind.IN_CONTAINER: InContainerStrategy,
    BuildStrategyKind.DIRECT_HOST: DirectHostStrategy,
}


def strategy_for(kind: BuildStrategyKind) -> BuildStrategy:
    """The strategy a version's configuration names; never inferred."""
    return _STRATEGIES[kind]()
