"""Tests for webhook notifications."""

from __future__ import annotations

import json

import httpx

from redeploy.errors import HealthCheckExhausted
from redeploy.notifications import NotificationManager
from redeploy.pipeline import PipelineReport, StageResult, StageStatus


def _capture(status: int = 200):
    posts: list[tuple[str, dict]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        posts.append((str(request.url), json.loads(request.content)))
        return httpx.Response(status, text="ok")

    return httpx.Client(transport=httpx.MockTransport(handler)), posts


def _failed_report() -> PipelineReport:
    error = HealthCheckExhausted("http://app/api/health", 15)
    return PipelineReport(stages=[
        StageResult("manifest", StageStatus.SUCCEEDED),
        StageResult("health", StageStatus.FAILED, error.message, error=error),
    ])


class TestNotificationManager:
    def test_disabled_by_default(self) -> None:
        client, posts = _capture()
        manager = NotificationManager(client=client)

        manager.notify_pipeline(PipelineReport(), "app:1")

        assert manager.is_enabled is False
        assert posts == []

    def test_success_to_slack(self) -> None:
        client, posts = _capture()
        NotificationManager("https://hooks.slack.test/x", client=client).notify_pipeline(
            PipelineReport(stages=[StageResult("deploy", StageStatus.SUCCEEDED)]), "app:1"
        )

        assert len(posts) == 1
        url, payload = posts[0]
        assert url == "https://hooks.slack.test/x"
        assert "Deploy succeeded" in payload["text"]
        assert "app:1" in payload["text"]

    def test_failure_to_both_channels(self) -> None:
        client, posts = _capture()
        NotificationManager(
            "https://hooks.slack.test/x", "https://discord.test/api/webhooks/1", client=client
        ).notify_pipeline(_failed_report(), "app:2")

        assert len(posts) == 2
        slack_text = posts[0][1]["text"]
        discord_text = posts[1][1]["content"]
        assert "stage `health`" in slack_text
        assert "15 attempt(s)" in discord_text

    def test_cancelled(self) -> None:
        client, posts = _capture()
        report = PipelineReport(stages=[StageResult("deploy", StageStatus.CANCELLED)])
        NotificationManager("https://hooks.slack.test/x", client=client).notify_pipeline(report, "app:3")

        assert "Deploy cancelled" in posts[0][1]["text"]

    def test_webhook_error_is_logged(self, caplog) -> None:
        client, _ = _capture(status=500)
        NotificationManager("https://hooks.slack.test/x", client=client).send("hello")
        assert "Slack webhook returned 500" in caplog.text

    def test_unreachable_webhook_does_not_raise(self, caplog) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down")

        client = httpx.Client(transport=httpx.MockTransport(handler))
        NotificationManager(discord_webhook="https://discord.test/x", client=client).send("hello")
        assert "Discord notification failed" in caplog.text
