"""Deployment pipeline: an explicit, ordered list of stage functions.

Stages run in order and the first failed or cancelled stage stops the run;
nothing is rolled back. The next run's ``compose down`` is what removes a
previous deployment.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

import httpx

from redeploy.config import PipelineSettings
from redeploy.errors import PipelineError
from redeploy.health.poller import HealthPoller, PollState
from redeploy.stages.compose import ComposeClient
from redeploy.stages.manifest import update_manifest
from redeploy.stages.vcs import GitClient, authenticated_remote

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130


# ── Models ───────────────────────────────────────────────────────────────────


class StageStatus(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class StageResult:
    stage: str
    status: StageStatus
    message: str = ""
    duration_ms: int = 0
    error: PipelineError | None = None

    @property
    def ok(self) -> bool:
        return self.status in (StageStatus.SUCCEEDED, StageStatus.SKIPPED)


@dataclass
class PipelineReport:
    """Results of every stage that ran, in order."""

    stages: list[StageResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(s.ok for s in self.stages)

    @property
    def failed(self) -> StageResult | None:
        return next((s for s in self.stages if not s.ok), None)

    @property
    def failed_stage(self) -> str | None:
        failed = self.failed
        return failed.stage if failed else None

    @property
    def error(self) -> PipelineError | None:
        failed = self.failed
        return failed.error if failed else None

    @property
    def exit_code(self) -> int:
        failed = self.failed
        if failed is None:
            return EXIT_OK
        if failed.status == StageStatus.CANCELLED:
            return EXIT_CANCELLED
        return EXIT_FAILED

    def raise_for_failure(self) -> None:
        if self.error is not None:
            raise self.error


@dataclass(frozen=True)
class PipelineContext:
    """Everything a stage needs; built once per run."""

    settings: PipelineSettings
    git: GitClient
    compose: ComposeClient
    cancel_event: threading.Event = field(default_factory=threading.Event)
    http_client: httpx.Client | None = None

    @classmethod
    def from_settings(
        cls,
        settings: PipelineSettings,
        cancel_event: threading.Event | None = None,
        http_client: httpx.Client | None = None,
    ) -> PipelineContext:
        return cls(
            settings=settings,
            git=GitClient(settings.workdir, settings.command_timeout, settings.secrets),
            compose=ComposeClient(
                settings.compose_command,
                settings.compose_file,
                settings.workdir,
                settings.command_timeout,
                settings.secrets,
            ),
            cancel_event=cancel_event or threading.Event(),
            http_client=http_client,
        )


StageFn = Callable[[PipelineContext], StageResult]


# ── Stages ───────────────────────────────────────────────────────────────────


def clean_workspace_stage(ctx: PipelineContext) -> StageResult:
    if not ctx.settings.clean_workspace:
        return StageResult("workspace", StageStatus.SKIPPED, "Workspace cleanup disabled")
    ctx.git.clean()
    return StageResult("workspace", StageStatus.SUCCEEDED, "Untracked files removed")


def update_manifest_stage(ctx: PipelineContext) -> StageResult:
    s = ctx.settings
    count = update_manifest(s.manifest_file, s.image_placeholder, s.image)
    if count == 0:
        return StageResult("manifest", StageStatus.SKIPPED, "Placeholder not found, manifest unchanged")
    return StageResult("manifest", StageStatus.SUCCEEDED, f"{count} reference(s) set to {s.image}")


def commit_and_push_stage(ctx: PipelineContext) -> StageResult:
    s = ctx.settings
    if not s.push_changes:
        return StageResult("commit", StageStatus.SKIPPED, "Push disabled")

    ctx.git.configure_identity(s.git_user_name, s.git_user_email)
    ctx.git.stage(s.manifest_path)
    if not ctx.git.has_staged_changes():
        return StageResult("commit", StageStatus.SKIPPED, "No changes to commit")

    ctx.git.commit(s.rendered_commit_message)

    remote = s.git_remote_url
    if not remote:
        remote = ctx.git.remote_url("origin") if s.git_token else "origin"
    ctx.git.push(authenticated_remote(remote, s.git_username, s.git_token), s.git_branch)
    return StageResult("commit", StageStatus.SUCCEEDED, f"Pushed to {s.git_branch}")


def deploy_env(settings: PipelineSettings) -> dict[str, str]:
    """Variables passed to ``compose up`` on top of the process environment."""
    env = {
        "IMAGE": settings.image,
        "CONTAINER_NAME": settings.container_name,
        "PORT": str(settings.app_port),
    }
    if settings.api_key:
        env["API_KEY"] = settings.api_key
    return env


def deploy_stage(ctx: PipelineContext) -> StageResult:
    ctx.compose.down(remove_orphans=True)
    ctx.compose.pull()
    ctx.compose.up(detached=True, env=deploy_env(ctx.settings))
    return StageResult("deploy", StageStatus.SUCCEEDED, f"{ctx.settings.container_name} started")


def health_check_stage(ctx: PipelineContext) -> StageResult:
    poller = HealthPoller.from_settings(
        ctx.settings, client=ctx.http_client, cancel_event=ctx.cancel_event
    )
    result = poller.poll()
    if result.state == PollState.HEALTHY:
        return StageResult(
            "health", StageStatus.SUCCEEDED, f"Healthy after {result.attempt_count} attempt(s)"
        )
    error = result.to_error()
    status = StageStatus.CANCELLED if result.state == PollState.CANCELLED else StageStatus.FAILED
    return StageResult("health", status, error.message if error else "", error=error)


STAGES: list[tuple[str, StageFn]] = [
    ("workspace", clean_workspace_stage),
    ("manifest", update_manifest_stage),
    ("commit", commit_and_push_stage),
    ("deploy", deploy_stage),
    ("health", health_check_stage),
]


# ── Runner ───────────────────────────────────────────────────────────────────


def _run_stage(name: str, fn: StageFn, ctx: PipelineContext) -> StageResult:
    logger.info("Stage %s started", name)
    t0 = time.perf_counter()
    try:
        result = fn(ctx)
    except PipelineError as e:
        result = StageResult(name, StageStatus.FAILED, e.message, error=e)
    result.duration_ms = int((time.perf_counter() - t0) * 1000)

    if result.ok:
        logger.info("Stage %s %s in %dms: %s", name, result.status.value, result.duration_ms, result.message)
    else:
        logger.error("Stage %s %s: %s", name, result.status.value, result.error or result.message)
    return result


def run_pipeline(
    ctx: PipelineContext,
    stages: list[tuple[str, StageFn]] | None = None,
) -> PipelineReport:
    """Run ``stages`` in order, stopping at the first failure or cancellation."""
    report = PipelineReport()
    for name, fn in stages if stages is not None else STAGES:
        if ctx.cancel_event.is_set():
            report.stages.append(StageResult(name, StageStatus.CANCELLED, "Cancelled before start"))
            break
        result = _run_stage(name, fn, ctx)
        report.stages.append(result)
        if not result.ok:
            break
    return report
