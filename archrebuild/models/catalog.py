"""Version catalog — the static set of supported release lines.

The catalog can be loaded from a TOML file (``[[versions]]`` tables shaped
like ``VersionSpec``); ``DEFAULT_CATALOG`` covers the 1.22 and 1.23 lines.
"""

from __future__ import annotations

import tomllib
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from archrebuild.errors import CatalogError
from archrebuild.models.versions import (
    BinarySpec,
    BuildMethod,
    BuildStrategyKind,
    ImageBuilder,
    ImageSpec,
    VersionSpec,
)


class VersionCatalog(BaseModel):
    """All supported release lines, keyed by version label."""

    model_config = ConfigDict(frozen=True)

    versions: list[VersionSpec]

    @model_validator(mode="after")
    def _check_unique(self) -> VersionCatalog:
        labels = [v.version for v in self.versions]
        duplicates = sorted({v for v in labels if labels.count(v) > 1})
        if duplicates:
            raise ValueError(f"duplicate versions in catalog: {duplicates}")
        return self

    @property
    def labels(self) -> list[str]:
        return [v.version for v in self.versions]

    def get(self, version: str) -> VersionSpec:
        for spec in self.versions:
            if spec.version == version:
                return spec
        raise CatalogError(
            f"Unknown version: {version} (valid versions: {', '.join(self.labels)})"
        )


def load_catalog(path: Path) -> VersionCatalog:
    """Load and validate a catalog from a TOML file."""
    try:
        with open(path, "rb") as fh:
            data = tomllib.load(fh)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise CatalogError(f"Cannot read catalog {path}: {exc}") from exc
    try:
        return VersionCatalog.model_validate(data)
    except ValidationError as exc:
        raise CatalogError(f"Invalid catalog {path}: {exc}") from exc


# ---------------------------------------------------------------------------
# Built-in catalog
# ---------------------------------------------------------------------------

_SERVER_BUILD_ARGS = {"TEMPORAL_SHA": "{temporal}", "TCTL_SHA": "{tctl}"}

# 1.22 compiles everything inside multi-stage Dockerfiles; buildx + QEMU make
# the builder stage target the requested platform.
_V122 = VersionSpec(
    version="1.22",
    revision="e786597",
    strategy=BuildStrategyKind.IN_CONTAINER,
    binaries=[
        BinarySpec(name="temporal-server", component="temporal"),
        BinarySpec(name="tctl", component="tctl"),
        BinarySpec(name="tctl-authorization-plugin", component="tctl"),
        BinarySpec(name="temporal", component="cli"),
        BinarySpec(name="dockerize", component="dockerize"),
        BinarySpec(name="temporal-cassandra-tool", component="temporal"),
        BinarySpec(name="temporal-sql-tool", component="temporal"),
        BinarySpec(name="tdbg", component="temporal"),
    ],
    images=[
        ImageSpec(
            kind="server",
            dockerfile="server.Dockerfile",
            binaries=[
                "temporal-server",
                "tctl",
                "tctl-authorization-plugin",
                "temporal",
                "dockerize",
            ],
            build_args=_SERVER_BUILD_ARGS,
        ),
        # Plain docker build: the buildx container driver cannot see the
        # server image loaded into the local daemon.
        ImageSpec(
            kind="admin-tools",
            dockerfile="admin-tools.Dockerfile",
            builder=ImageBuilder.DOCKER,
            binaries=[
                "tctl",
                "tctl-authorization-plugin",
                "temporal",
                "temporal-cassandra-tool",
                "temporal-sql-tool",
                "tdbg",
            ],
            base_image_arg="SERVER_IMAGE",
        ),
    ],
)

_TEMPORAL_TAGS = ["protolegacy"]

# 1.23 pre-compiles binaries on the host into build/<arch>/. The temporal
# submodule's Makefile does not pass GOOS/GOARCH to `go build`, so its four
# binaries are compiled directly; the other components' Makefiles are fine.
_V123 = VersionSpec(
    version="1.23",
    revision="e7a73a0",
    strategy=BuildStrategyKind.DIRECT_HOST,
    binaries=[
        BinarySpec(
            name="temporal-server",
            component="temporal",
            package="./cmd/server",
            tags=_TEMPORAL_TAGS,
        ),
        BinarySpec(
            name="tdbg",
            component="temporal",
            package="./cmd/tools/tdbg",
            tags=_TEMPORAL_TAGS,
        ),
        BinarySpec(
            name="temporal-cassandra-tool",
            component="temporal",
            package="./cmd/tools/cassandra",
            tags=_TEMPORAL_TAGS,
        ),
        BinarySpec(
            name="temporal-sql-tool",
            component="temporal",
            package="./cmd/tools/sql",
            tags=_TEMPORAL_TAGS,
        ),
        BinarySpec(name="dockerize", component="dockerize", package="."),
        BinarySpec(name="temporal", component="cli", method=BuildMethod.MAKE),
        BinarySpec(name="tctl", component="tctl", method=BuildMethod.MAKE),
        BinarySpec(
            name="tctl-authorization-plugin",
            component="tctl",
            method=BuildMethod.MAKE,
            produced_by="tctl",
        ),
    ],
    images=[
        ImageSpec(
            kind="server",
            dockerfile="server.Dockerfile",
            stage="server",
            binaries=[
                "temporal-server",
                "tctl",
                "tctl-authorization-plugin",
                "temporal",
                "dockerize",
            ],
            build_args=_SERVER_BUILD_ARGS,
        ),
        ImageSpec(
            kind="admin-tools",
            dockerfile="admin-tools.Dockerfile",
            binaries=[
                "tctl",
                "tctl-authorization-plugin",
                "temporal",
                "temporal-cassandra-tool",
                "temporal-sql-tool",
                "tdbg",
            ],
        ),
    ],
)

DEFAULT_CATALOG = VersionCatalog(versions=[_V122, _V123])
