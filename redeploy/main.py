"""Entry point for the ``redeploy`` console script."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from redeploy import __version__
from redeploy.config import PipelineSettings
from redeploy.errors import PipelineError
from redeploy.health.poller import HealthPoller, PollState
from redeploy.notifications import NotificationManager
from redeploy.pipeline import (
    EXIT_CANCELLED,
    EXIT_FAILED,
    EXIT_OK,
    PipelineContext,
    PipelineReport,
    StageStatus,
    run_pipeline,
)
from redeploy.stages.manifest import update_manifest

EXIT_CONFIG = 2

console = Console(stderr=True, soft_wrap=True)
logger = logging.getLogger("redeploy")

_STATUS_STYLE = {
    StageStatus.SUCCEEDED: "green",
    StageStatus.SKIPPED: "dim",
    StageStatus.FAILED: "bold red",
    StageStatus.CANCELLED: "yellow",
}


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )


@contextmanager
def _cancel_on_signals(event: threading.Event) -> Iterator[None]:
    """Set ``event`` on SIGINT / SIGTERM for the duration of the block."""

    def _handler(signum: int, _frame: Any) -> None:
        logger.warning("Received %s, cancelling", signal.Signals(signum).name)
        event.set()

    previous = {
        sig: signal.signal(sig, _handler) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def _settings_from_args(args: argparse.Namespace) -> PipelineSettings:
    """Environment / .env first, explicit CLI flags win."""
    mapping = {
        "image": "image",
        "manifest": "manifest_path",
        "placeholder": "image_placeholder",
        "workdir": "workdir",
        "retries": "health_max_retries",
        "delay": "health_retry_delay",
        "timeout": "health_timeout",
        "log_level": "log_level",
    }
    overrides: dict[str, Any] = {
        field: getattr(args, arg)
        for arg, field in mapping.items()
        if getattr(args, arg, None) is not None
    }
    if getattr(args, "clean", False):
        overrides["clean_workspace"] = True
    if getattr(args, "skip_push", False):
        overrides["push_changes"] = False
    return PipelineSettings(**overrides)


def _print_report(report: PipelineReport) -> None:
    table = Table(title="Pipeline", show_lines=False)
    table.add_column("Stage")
    table.add_column("Status")
    table.add_column("Time", justify="right")
    table.add_column("Detail")
    for stage in report.stages:
        style = _STATUS_STYLE[stage.status]
        table.add_row(
            stage.stage,
            f"[{style}]{stage.status.value}[/{style}]",
            f"{stage.duration_ms}ms",
            escape(stage.message),
        )
    console.print(table)

    error = report.error
    if error is not None:
        console.print(Panel(escape(str(error)), title=f"Stage '{error.stage}' failed", border_style="red"))
    elif not report.ok:
        console.print(f"[yellow]Pipeline stopped at stage '{report.failed_stage}'[/yellow]")


# ── Commands ─────────────────────────────────────────────────────────────────


def cmd_run(settings: PipelineSettings) -> int:
    """Full pipeline: workspace, manifest, commit, deploy, health."""
    if not settings.image:
        console.print("[red]No image given (set IMAGE or pass --image)[/red]")
        return EXIT_CONFIG

    console.print(
        Panel.fit(
            f"[bold]redeploy[/bold] v{__version__}\n"
            f"Image:    {settings.image}\n"
            f"Manifest: {settings.manifest_path}\n"
            f"Health:   {settings.health_url} "
            f"({settings.health_max_retries} x {settings.health_retry_delay}s)",
            border_style="blue",
        )
    )

    cancel_event = threading.Event()
    ctx = PipelineContext.from_settings(settings, cancel_event=cancel_event)
    with _cancel_on_signals(cancel_event):
        report = run_pipeline(ctx)

    _print_report(report)
    NotificationManager.from_settings(settings).notify_pipeline(report, settings.image)
    return report.exit_code


def cmd_health(settings: PipelineSettings, url: str | None = None) -> int:
    """Health gate only."""
    cancel_event = threading.Event()
    try:
        poller = HealthPoller(
            url or settings.health_url,
            max_retries=settings.health_max_retries,
            retry_delay=settings.health_retry_delay,
            timeout=settings.health_timeout,
            cancel_event=cancel_event,
        )
    except ValueError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        return EXIT_CONFIG

    with _cancel_on_signals(cancel_event):
        result = poller.poll()

    if result.healthy:
        console.print(f"[green]{result.url} healthy after {result.attempt_count} attempt(s)[/green]")
        return EXIT_OK
    console.print(f"[red]{escape(str(result.to_error()))}[/red]")
    return EXIT_CANCELLED if result.state == PollState.CANCELLED else EXIT_FAILED


def cmd_manifest(settings: PipelineSettings) -> int:
    """Manifest substitution only."""
    path = settings.manifest_file
    try:
        count = update_manifest(path, settings.image_placeholder, settings.image)
    except PipelineError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        return EXIT_FAILED
    if count:
        console.print(f"[green]{path}: {count} reference(s) set to {settings.image}[/green]")
    else:
        console.print(f"[dim]{path}: placeholder not found, unchanged[/dim]")
    return EXIT_OK


# ── Argument parsing ─────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="redeploy",
        description="Update the manifest image, push it, redeploy with compose and wait for health.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", dest="log_level", help="Logging level (default from LOG_LEVEL)")
    parser.add_argument("--workdir", help="Repository checkout to operate in")
    sub = parser.add_subparsers(dest="command")

    run_p = sub.add_parser("run", help="Run the full deployment pipeline")
    run_p.add_argument("--image", help="Image reference to deploy")
    run_p.add_argument("--manifest", help="Manifest file, relative to the workdir")
    run_p.add_argument("--placeholder", help="Placeholder image reference to replace")
    run_p.add_argument("--clean", action="store_true", help="git clean the workspace first")
    run_p.add_argument("--skip-push", dest="skip_push", action="store_true", help="Do not commit or push")
    run_p.add_argument("--retries", type=int, help="Health check attempt budget")
    run_p.add_argument("--delay", type=float, help="Seconds between health check attempts")
    run_p.add_argument("--timeout", type=float, help="Per-probe timeout in seconds")

    health_p = sub.add_parser("health", help="Poll the health endpoint only")
    health_p.add_argument("--url", help="Full URL to probe (default from settings)")
    health_p.add_argument("--retries", type=int, help="Attempt budget")
    health_p.add_argument("--delay", type=float, help="Seconds between attempts")
    health_p.add_argument("--timeout", type=float, help="Per-probe timeout in seconds")

    manifest_p = sub.add_parser("manifest", help="Substitute the image into the manifest only")
    manifest_p.add_argument("--image", help="Image reference to write")
    manifest_p.add_argument("--manifest", help="Manifest file, relative to the workdir")
    manifest_p.add_argument("--placeholder", help="Placeholder image reference to replace")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return EXIT_CONFIG

    try:
        settings = _settings_from_args(args)
    except ValidationError as e:
        console.print(Panel(escape(str(e)), title="Invalid configuration", border_style="red"))
        return EXIT_CONFIG

    _configure_logging(settings.log_level)

    if args.command == "run":
        return cmd_run(settings)
    if args.command == "health":
        return cmd_health(settings, url=args.url)
    return cmd_manifest(settings)


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
