"""Version control collaborator: thin wrapper over the ``git`` CLI."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from urllib.parse import quote, urlsplit, urlunsplit

from redeploy.errors import VersionControlFailed, WorkspaceCleanupFailed
from redeploy.runner import CmdResult, redact, run_command

logger = logging.getLogger(__name__)


def authenticated_remote(url: str, username: str, token: str) -> str:
    """Embed ``username:token`` into an HTTPS remote URL.

    SSH remotes, remote names and URLs without a token are returned as-is.
    """
    if not token:
        return url
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https"):
        return url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    userinfo = f"{quote(username, safe='')}:{quote(token, safe='')}" if username else quote(token, safe="")
    return urlunsplit((parts.scheme, f"{userinfo}@{host}", parts.path, parts.query, parts.fragment))


class GitClient:
    """Runs git commands inside ``workdir``; any non-zero exit is fatal."""

    def __init__(
        self,
        workdir: Path | str = ".",
        timeout_sec: float = 120,
        secrets: Iterable[str] = (),
    ) -> None:
        self.workdir = Path(workdir)
        self.timeout_sec = timeout_sec
        # Tokens also show up URL-quoted inside remote URLs.
        self._secrets = sorted(
            {v for s in secrets if s for v in (s, quote(s, safe=""))}, key=len, reverse=True
        )

    def _git(self, *args: str, check: bool = True) -> CmdResult:
        result = run_command(
            ["git", *args], self.workdir, self.timeout_sec, secrets=self._secrets
        )
        if check and not result.ok:
            action = redact(" ".join(args[:2]), self._secrets)
            raise VersionControlFailed(
                f"git {action} exited with {result.exit_code}", result.output
            )
        return result

    def configure_identity(self, name: str, email: str) -> None:
        self._git("config", "user.name", name)
        self._git("config", "user.email", email)

    def stage(self, path: Path | str) -> None:
        self._git("add", "--", str(path))

    def status(self) -> str:
        """Porcelain status; empty string means a clean tree."""
        return self._git("status", "--porcelain").stdout

    def has_staged_changes(self) -> bool:
        """``git diff --cached --quiet`` exits 1 when the index differs from HEAD."""
        result = self._git("diff", "--cached", "--quiet", check=False)
        if result.exit_code == 0:
            return False
        if result.exit_code == 1:
            return True
        raise VersionControlFailed(
            f"git diff --cached exited with {result.exit_code}", result.output
        )

    def commit(self, message: str) -> None:
        self._git("commit", "-m", message)

    def remote_url(self, name: str = "origin") -> str:
        return self._git("remote", "get-url", name).stdout.strip()

    def push(self, remote: str, ref: str) -> None:
        """Push ``HEAD`` to ``ref`` on ``remote`` (a name or a full URL)."""
        self._git("push", remote, f"HEAD:{ref}")

    def clean(self) -> None:
        """Remove untracked files and directories from the workspace."""
        result = self._git("clean", "-fd", check=False)
        if not result.ok:
            raise WorkspaceCleanupFailed(
                f"git clean exited with {result.exit_code}", result.output
            )
