"""``Toolchain`` that runs ``go`` and ``make`` on the host."""

from __future__ import annotations

import os
from collections.abc import Sequence
from pathlib import Path

from archrebuild.backends._process import run_command


class HostToolchain:
    """Cross-compiles with explicit ``GOOS``/``GOARCH`` and ``CGO_ENABLED=0``."""

    def __init__(self, go_binary: str = "go", make_binary: str = "make") -> None:
        self._go = go_binary
        self._make = make_binary

    @staticmethod
    def _env(goos: str, goarch: str) -> dict[str, str]:
        env = dict(os.environ)
        env.update({"GOOS": goos, "GOARCH": goarch, "CGO_ENABLED": "0"})
        return env

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
        args = [self._go, "build"]
        if tags:
            args += ["-tags", ",".join(tags)]
        args += ["-o", str(output), package]
        run_command(args, cwd=workdir, env=self._env(goos, goarch), timeout=timeout)

    def make(
        self,
        workdir: Path,
        target: str,
        *,
        goos: str,
        goarch: str,
        timeout: float | None = None,
    ) -> None:
        run_command(
            [self._make, target], cwd=workdir, env=self._env(goos, goarch), timeout=timeout
        )
