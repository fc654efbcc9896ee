"""External tool runner: subprocess without a shell, typed result, secret redaction."""

from __future__ import annotations

import logging
import os
import subprocess
import time
from collections.abc import Iterable, Mapping
from pathlib import Path

from pydantic import BaseModel

logger = logging.getLogger(__name__)

REDACTED = "***"


class CmdResult(BaseModel):
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """stdout and stderr joined, for error reports."""
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


def redact(text: str, secrets: Iterable[str]) -> str:
    """Replace every occurrence of each non-empty secret with ``***``."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, REDACTED)
    return text


def run_command(
    cmd: list[str],
    cwd: Path | str = ".",
    timeout_sec: float = 600,
    env: Mapping[str, str] | None = None,
    secrets: Iterable[str] = (),
) -> CmdResult:
    """Run ``cmd`` (no shell) and return a structured, redacted result.

    ``env`` is merged over the current process environment. Timeouts and a
    missing executable are reported as exit code -1 rather than raised, so
    callers only ever inspect ``exit_code``.
    """
    secrets = [s for s in secrets if s]
    printable = redact(" ".join(cmd), secrets)
    full_env = {**os.environ, **env} if env else None
    logger.debug("RUN in %s: %s", cwd, printable)

    t0 = time.perf_counter()
    try:
        result = subprocess.run(
            cmd,
            cwd=str(cwd),
            capture_output=True,
            text=True,
            timeout=timeout_sec,
            env=full_env,
            encoding="utf-8",
            errors="replace",
        )
        duration_ms = int((time.perf_counter() - t0) * 1000)
        cmd_result = CmdResult(
            exit_code=result.returncode,
            stdout=redact(result.stdout or "", secrets),
            stderr=redact(result.stderr or "", secrets),
            duration_ms=duration_ms,
        )
    except subprocess.TimeoutExpired:
        duration_ms = int((time.perf_counter() - t0) * 1000)
        cmd_result = CmdResult(
            exit_code=-1,
            stdout="",
            stderr=f"Command timed out after {timeout_sec}s",
            duration_ms=duration_ms,
        )
    except FileNotFoundError as e:
        duration_ms = int((time.perf_counter() - t0) * 1000)
        cmd_result = CmdResult(
            exit_code=-1,
            stdout="",
            stderr=redact(f"Command not found: {e}", secrets),
            duration_ms=duration_ms,
        )
    except OSError as e:
        duration_ms = int((time.perf_counter() - t0) * 1000)
        cmd_result = CmdResult(
            exit_code=-1,
            stdout="",
            stderr=redact(f"Error: {type(e).__name__}: {e}", secrets),
            duration_ms=duration_ms,
        )

    logger.debug(
        "EXIT %d after %dms: %s", cmd_result.exit_code, cmd_result.duration_ms, printable
    )
    return cmd_result
