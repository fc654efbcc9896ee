"""Completion notifications: Slack and Discord incoming webhooks.

Optional. A webhook failure is logged and never changes the pipeline
outcome.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

import httpx

from redeploy.config import PipelineSettings
from redeploy.pipeline import EXIT_CANCELLED, PipelineReport

logger = logging.getLogger(__name__)


class NotifyLevel(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"


_EMOJI = {
    NotifyLevel.SUCCESS: "✅",
    NotifyLevel.FAILURE: "🔴",
    NotifyLevel.CANCELLED: "⚠️",
}


class NotificationManager:
    """Posts a one-line pipeline summary to every configured webhook."""

    def __init__(
        self,
        slack_webhook: str = "",
        discord_webhook: str = "",
        client: httpx.Client | None = None,
    ) -> None:
        self.slack_webhook = slack_webhook
        self.discord_webhook = discord_webhook
        self._client = client

    @classmethod
    def from_settings(cls, settings: PipelineSettings) -> NotificationManager:
        return cls(settings.slack_webhook_url, settings.discord_webhook_url)

    @property
    def is_enabled(self) -> bool:
        return bool(self.slack_webhook or self.discord_webhook)

    def notify_pipeline(self, report: PipelineReport, image: str) -> None:
        """Send the outcome of a pipeline run."""
        if report.ok:
            level = NotifyLevel.SUCCESS
            text = f"{_EMOJI[level]} *Deploy succeeded*: `{image}`"
        elif report.exit_code == EXIT_CANCELLED:
            level = NotifyLevel.CANCELLED
            text = f"{_EMOJI[level]} *Deploy cancelled* at stage `{report.failed_stage}`: `{image}`"
        else:
            level = NotifyLevel.FAILURE
            failed = report.failed
            detail = failed.message if failed else ""
            text = f"{_EMOJI[level]} *Deploy failed* at stage `{report.failed_stage}`: `{image}`\n{detail}"
        self.send(text)

    def send(self, text: str) -> None:
        if not self.is_enabled:
            return
        if self.slack_webhook:
            self._post("Slack", self.slack_webhook, {"text": text, "mrkdwn": True})
        if self.discord_webhook:
            self._post("Discord", self.discord_webhook, {"content": text[:2000]})

    def _post(self, channel: str, url: str, payload: dict[str, Any]) -> None:
        try:
            if self._client is not None:
                resp = self._client.post(url, json=payload, timeout=10)
            else:
                with httpx.Client(timeout=10) as client:
                    resp = client.post(url, json=payload)
            if not resp.is_success:
                logger.warning("%s webhook returned %d: %s", channel, resp.status_code, resp.text[:200])
        except httpx.HTTPError as exc:
            logger.warning("%s notification failed: %s", channel, exc)
