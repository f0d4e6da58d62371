"""Per-run pipeline context.

Everything a build step needs (settings, backends, workspace paths, pinned
submodule revisions, the cancellation flag) travels in one explicit
``PipelineContext`` rather than in module globals, so concurrent targets and
separate runs never share implicit state.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path

from archrebuild.backends.protocols import ContainerRuntime, Toolchain
from archrebuild.config import RebuildSettings
from archrebuild.errors import BuildCancelledError, BuildError
from archrebuild.models.architecture import Architecture
from archrebuild.models.versions import BuildTarget, ImageSpec


@dataclass
class PipelineContext:
    settings: RebuildSettings
    runtime: ContainerRuntime
    toolchain: Toolchain
    submodule_revisions: dict[str, str] = field(default_factory=dict)
    cancel_event: threading.Event = field(default_factory=threading.Event)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    @property
    def repo_root(self) -> Path:
        return Path(self.settings.repo_root)

    def output_dir(self, arch: Architecture) -> Path:
        """Host build output for *arch*; the Dockerfiles read ``build/<arch>``."""
        return self.repo_root / self.settings.build_dir / arch.value

    def workspace(self, target: BuildTarget) -> Path:
        """Scratch directory owned by a single target."""
        return (
            self.repo_root
            / self.settings.work_dir
            / target.version
            / target.architecture.value
        )

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def raise_if_cancelled(self, stage: str) -> None:
        if self.cancel_event.is_set():
            raise BuildCancelledError(stage)

    # ------------------------------------------------------------------
    # Image naming and build args
    # ------------------------------------------------------------------

    def image_tag(self, kind: str, target: BuildTarget) -> str:
        return self.settings.rebuild_image(kind, target.version, target.architecture)

    def build_args(
        self, image: ImageSpec, base_image: str | None = None
    ) -> dict[str, str]:
        """Render *image*'s build args with the pinned submodule revisions.

        Values may reference ``{<submodule>}`` placeholders. The image's
        ``base_image_arg``, if any, is set to *base_image*.
        """
        args: dict[str, str] = {}
        for key, template in image.build_args.items():
            try:
                args[key] = template.format_map(self.submodule_revisions)
            except KeyError as exc:
                raise BuildError(
                    f"build args {image.kind}",
                    f"no pinned revision for placeholder {exc} in {key}",
                ) from exc
        if image.base_image_arg:
            if base_image is None:
                raise BuildError(
                    f"build args {image.kind}",
                    f"{image.base_image_arg} requires a base image",
                )
            args[image.base_image_arg] = base_image
        return args
