"""Container orchestration collaborator: ``docker compose`` down / pull / up."""

from __future__ import annotations

import logging
import shlex
from collections.abc import Iterable, Mapping
from pathlib import Path

from redeploy.errors import DeploymentFailed
from redeploy.runner import CmdResult, run_command

logger = logging.getLogger(__name__)


class ComposeClient:
    """Drives the compose tool in ``workdir``."""

    def __init__(
        self,
        command: str = "docker compose",
        compose_file: str = "",
        workdir: Path | str = ".",
        timeout_sec: float = 600,
        secrets: Iterable[str] = (),
    ) -> None:
        self._base = shlex.split(command)
        if not self._base:
            raise ValueError("Compose command must not be empty")
        if compose_file:
            self._base += ["-f", compose_file]
        self.workdir = Path(workdir)
        self.timeout_sec = timeout_sec
        self._secrets = [s for s in secrets if s]

    def _run(self, *args: str, env: Mapping[str, str] | None = None) -> CmdResult:
        return run_command(
            [*self._base, *args],
            self.workdir,
            self.timeout_sec,
            env=env,
            secrets=self._secrets,
        )

    def down(self, remove_orphans: bool = True) -> CmdResult:
        """Stop the previous deployment. The result is informational only."""
        args = ["down"]
        if remove_orphans:
            args.append("--remove-orphans")
        result = self._run(*args)
        if not result.ok:
            logger.warning("compose down exited with %d (ignored): %s", result.exit_code, result.stderr.strip())
        return result

    def pull(self) -> None:
        result = self._run("pull")
        if not result.ok:
            raise DeploymentFailed(f"compose pull exited with {result.exit_code}", result.output)

    def up(self, detached: bool = True, env: Mapping[str, str] | None = None) -> None:
        args = ["up"]
        if detached:
            args.append("-d")
        result = self._run(*args, env=env)
        if not result.ok:
            raise DeploymentFailed(f"compose up exited with {result.exit_code}", result.output)
