"""Tests for runtime config — env-driven settings."""

from __future__ import annotations

import tomllib
from pathlib import Path

from archrebuild.config import RebuildSettings
from archrebuild.models.architecture import Architecture


class TestRebuildSettings:
    def test_defaults(self):
        config = RebuildSettings()
        assert config.log_level == "INFO"
        assert config.image_repository == "temporalio"
        assert config.buildx_builder == "builder-x"
        assert config.target_architectures == [Architecture.AMD64, Architecture.ARM64]
        assert config.inventory_roots == ["/usr/local/bin", "/etc/temporal"]

    def test_default_paths(self):
        config = RebuildSettings()
        assert config.build_dir == Path("build")
        assert config.catalog_path is None

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("ARCHREBUILD_IMAGE_REPOSITORY", "example")
        monkeypatch.setenv("ARCHREBUILD_MAX_PARALLEL_TARGETS", "1")
        config = RebuildSettings()
        assert config.image_repository == "example"
        assert config.max_parallel_targets == 1

    def test_image_names(self):
        config = RebuildSettings()
        assert config.reference_image("server", "1.22") == "temporalio/server:1.22"
        assert (
            config.rebuild_image("admin-tools", "1.23", Architecture.ARM64)
            == "temporalio/admin-tools:1.23-rebuild-arm64"
        )


class TestProjectMetadata:
    def test_declared_files_are_shipped(self):
        root = Path(__file__).resolve().parents[2]
        project = tomllib.loads((root / "pyproject.toml").read_text())["project"]
        readme = project.get("readme")
        if readme is not None:
            assert (root / readme).is_file()
            assert readme != "SPEC_FULL.md"
