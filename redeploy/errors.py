"""Stage failure taxonomy.

Every error names the pipeline stage it belongs to so the CLI can report
which step broke without inspecting the exception type.
"""

from __future__ import annotations

_MAX_OUTPUT_CHARS = 2000


class PipelineError(Exception):
    """Base class for fatal stage failures."""

    stage = "pipeline"

    def __init__(self, message: str, output: str = "") -> None:
        self.message = message
        self.output = output.strip()[-_MAX_OUTPUT_CHARS:]
        super().__init__(message)

    def __str__(self) -> str:
        text = f"[{self.stage}] {self.message}"
        if self.output:
            text += f"\n{self.output}"
        return text


class WorkspaceCleanupFailed(PipelineError):
    """Raised when the workspace could not be cleaned."""

    stage = "workspace"


class ManifestUpdateFailed(PipelineError):
    """Raised when the manifest could not be read, rewritten or parsed."""

    stage = "manifest"


class VersionControlFailed(PipelineError):
    """Raised when a git command (stage, commit, push) exits non-zero."""

    stage = "commit"


class DeploymentFailed(PipelineError):
    """Raised when the compose tool fails to pull or start the application."""

    stage = "deploy"


class HealthCheckExhausted(PipelineError):
    """Raised when the poller used its whole attempt budget without a 2xx."""

    stage = "health"

    def __init__(self, url: str, attempts: int, output: str = "") -> None:
        self.url = url
        self.attempts = attempts
        super().__init__(
            f"{url} did not report healthy after {attempts} attempt(s)", output
        )


class HealthCheckCancelled(PipelineError):
    """Raised when polling was aborted through the cancellation event."""

    stage = "health"

    def __init__(self, url: str, attempts: int) -> None:
        self.url = url
        self.attempts = attempts
        super().__init__(f"health check of {url} cancelled after {attempts} attempt(s)")
