"""``ContainerRuntime`` backed by the ``docker`` CLI."""

from __future__ import annotations

import logging
import shlex
from collections.abc import Mapping, Sequence
from pathlib import Path

from archrebuild.backends._process import run_command
from archrebuild.errors import CommandError
from archrebuild.models.versions import ImageBuilder

logger = logging.getLogger(__name__)

# Lists regular files (find -type f does not follow or report symlinks) under
# each root that exists, as "path|size" lines.
_LIST_SCRIPT = (
    'for dir in {roots}; do '
    'if [ -d "$dir" ]; then '
    "find \"$dir\" -type f -exec stat -c '%n|%s' {{}} + 2>/dev/null; "
    "fi; "
    "done"
)


def list_script(roots: Sequence[str]) -> str:
    """The shell script ``list_files`` runs inside the image for *roots*."""
    return _LIST_SCRIPT.format(roots=" ".join(shlex.quote(r) for r in roots))


def _platform_args(platform: str | None) -> list[str]:
    return ["--platform", platform] if platform else []


class DockerCli:
    """Drives ``docker`` / ``docker buildx`` via subprocess.

    Parameters
    ----------
    binary:
        The docker executable.
    timeout:
        Timeout in seconds for short commands (inspect, create, cp, rm).
        Image builds take their own timeout.
    """

    def __init__(self, binary: str = "docker", timeout: float | None = 300) -> None:
        self._docker = binary
        self._timeout = timeout

    def _run(self, *args: str, timeout: float | None = None):
        return run_command(
            [self._docker, *args],
            timeout=timeout if timeout is not None else self._timeout,
        )

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def image_exists(self, image: str) -> bool:
        try:
            self._run("image", "inspect", image)
        except CommandError:
            return False
        return True

    def pull_image(self, image: str, *, platform: str | None = None) -> None:
        args = ["pull"]
        if platform:
            args += ["--platform", platform]
        self._run(*args, image, timeout=None)

    def ensure_builder(self, name: str) -> None:
        """Create the buildx builder with the docker-container driver if absent.

        The docker-container driver runs BuildKit with QEMU, which is what
        cross-platform ``--platform`` builds need.
        """
        try:
            self._run("buildx", "inspect", name)
        except CommandError:
            logger.info("Creating buildx builder %s", name)
            self._run(
                "buildx", "create", "--name", name, "--driver", "docker-container", "--use"
            )
        self._run("buildx", "use", name)

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
        # Dockerfile paths and the build context are relative to *context*
        if builder is ImageBuilder.BUILDX:
            args = ["buildx", "build", "."]
        else:
            args = ["build", "."]
        args += ["-f", dockerfile]
        if stage:
            args += ["--target", stage]
        args += ["-t", tag, "--platform", platform]
        for key, value in (build_args or {}).items():
            args += ["--build-arg", f"{key}={value}"]
        if builder is ImageBuilder.BUILDX:
            # buildx keeps results in the builder cache unless loaded
            args.append("--load")
        logger.info("Building %s (%s)", tag, platform)
        run_command([self._docker, *args], cwd=context, timeout=timeout)

    def tag_image(self, source: str, target: str) -> None:
        self._run("tag", source, target)

    # ------------------------------------------------------------------
    # Containers
    # ------------------------------------------------------------------

    def create_container(self, image: str, *, platform: str | None = None) -> str:
        proc = self._run("create", *_platform_args(platform), image)
        return proc.stdout.strip()

    def copy_from_container(self, container: str, path: str, dest: Path) -> bool:
        try:
            self._run("cp", f"{container}:{path}", str(dest))
        except CommandError as exc:
            logger.debug("cp %s from %s failed: %s", path, container, exc)
            return False
        return True

    def remove_container(self, container: str) -> None:
        self._run("rm", "-f", container)

    def list_files(
        self, image: str, roots: Sequence[str], *, platform: str | None = None
    ) -> list[tuple[str, int]]:
        script = list_script(roots)
        proc = self._run(
            "run", "--rm", *_platform_args(platform), "--entrypoint=", image, "sh", "-c", script
        )
        entries: list[tuple[str, int]] = []
        for line in proc.stdout.splitlines():
            path, sep, size = line.rpartition("|")
            if not sep or not size.strip().isdigit():
                logger.debug("Skipping unparsable listing line %r", line)
                continue
            entries.append((path, int(size)))
        return entries
