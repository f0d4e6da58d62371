"""subprocess helper shared by the CLI-backed implementations."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path

from archrebuild.errors import CommandError

logger = logging.getLogger(__name__)


def run_command(
    args: Sequence[str],
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run *args* and return the completed process.

    Raises ``CommandError`` on a non-zero exit, a timeout, or a missing
    executable. Output is captured; stderr is carried in the error message.
    """
    argv = [str(a) for a in args]
    logger.debug("run: %s (cwd=%s)", " ".join(argv), cwd or ".")
    try:
        proc = subprocess.run(
            argv,
            cwd=cwd,
            env=dict(env) if env is not None else None,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise CommandError(argv, f"timed out after {exc.timeout}s") from exc
    except OSError as exc:
        raise CommandError(argv, f"could not be started: {exc}") from exc

    if proc.returncode != 0:
        detail = (proc.stderr or proc.stdout).strip().splitlines()
        tail = detail[-1] if detail else ""
        raise CommandError(
            argv,
            f"exited with status {proc.returncode}" + (f": {tail}" if tail else ""),
            returncode=proc.returncode,
        )
    return proc
