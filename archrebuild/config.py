"""Runtime configuration — env-driven via pydantic-settings.

Reads from a .env file and ARCHREBUILD_* environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from archrebuild.models.architecture import Architecture


class RebuildSettings(BaseSettings):
    """Settings for rebuild, verify and compare runs.

    All settings can be overridden via ARCHREBUILD_* environment variables
    or a .env file in the working directory.

    Examples
    --------
    Override via environment::

        export ARCHREBUILD_REPO_ROOT=/src/docker-builds
        export ARCHREBUILD_LOG_LEVEL=DEBUG
        export ARCHREBUILD_MAX_PARALLEL_TARGETS=1

    Or via .env file::

        ARCHREBUILD_IMAGE_REPOSITORY=temporalio
        ARCHREBUILD_CATALOG_PATH=versions.toml
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ARCHREBUILD_",
        env_file_encoding="utf-8",
    )

    log_level: str = "INFO"
    debug: bool = False

    # Source tree and build outputs
    repo_root: Path = Path(".")
    build_dir: Path = Path("build")  # relative to repo_root; Dockerfiles read build/<arch>
    work_dir: Path = Path(".archrebuild/work")  # extracted binaries, per target
    catalog_path: Path | None = None  # TOML catalog; built-in catalog if unset

    # Image naming: <repository>/<kind>:<version>-<suffix>-<arch>
    image_repository: str = "temporalio"
    rebuild_tag_suffix: str = "rebuild"
    buildx_builder: str = "builder-x"

    # Targets and concurrency
    target_architectures: list[Architecture] = [Architecture.AMD64, Architecture.ARM64]
    max_parallel_targets: int = 2

    # Timeouts (seconds) for external tool invocations
    build_timeout_seconds: int = 3600
    command_timeout_seconds: int = 300

    # Directories listed by the inventory and scanned for shell scripts
    inventory_roots: list[str] = ["/usr/local/bin", "/etc/temporal"]

    # External tools
    docker_binary: str = "docker"
    go_binary: str = "go"
    make_binary: str = "make"

    def reference_image(self, kind: str, version: str) -> str:
        """The published image a rebuild is compared against."""
        return f"{self.image_repository}/{kind}:{version}"

    def rebuild_image(self, kind: str, version: str, arch: Architecture) -> str:
        """The final tag of a rebuilt per-architecture image."""
        return (
            f"{self.image_repository}/{kind}:"
            f"{version}-{self.rebuild_tag_suffix}-{arch.value}"
        )


# Module-level singleton: import as `from archrebuild.config import settings`
settings = RebuildSettings()
