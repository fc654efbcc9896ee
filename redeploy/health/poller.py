"""Bounded retry health poller.

Probes the application's health endpoint until it answers 2xx or the
attempt budget runs out:

- success on attempt k: k probes, k-1 delays, no delay after the success
- never healthy: ``max_retries`` probes, ``max_retries - 1`` delays
- ``max_retries == 0``: no probe at all, immediately exhausted

Connection errors, timeouts and non-2xx statuses all count as one failed
attempt. An optional ``threading.Event`` aborts the loop before the next
probe or during the inter-attempt wait.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum

import httpx

from redeploy.config import PipelineSettings
from redeploy.errors import HealthCheckCancelled, HealthCheckExhausted, PipelineError
from redeploy.health.probe import ProbeResult, probe

logger = logging.getLogger(__name__)


# ── Models ───────────────────────────────────────────────────────────────────


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class PollState(str, Enum):
    HEALTHY = "healthy"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


@dataclass
class HealthCheckAttempt:
    """One probe of a poll, numbered from 1."""

    sequence: int
    outcome: Outcome
    timestamp: str
    latency_ms: float
    status_code: int | None = None
    message: str = ""

    @classmethod
    def from_probe(cls, sequence: int, result: ProbeResult) -> HealthCheckAttempt:
        return cls(
            sequence=sequence,
            outcome=Outcome.SUCCESS if result.ok else Outcome.FAILURE,
            timestamp=result.timestamp,
            latency_ms=result.latency_ms,
            status_code=result.status_code,
            message=result.message,
        )


@dataclass
class PollResult:
    """Terminal state of a poll plus every attempt it made."""

    state: PollState
    url: str
    attempts: list[HealthCheckAttempt] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return self.state == PollState.HEALTHY

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    def to_error(self) -> PipelineError | None:
        """The terminal error for this state, or None when healthy."""
        if self.state == PollState.EXHAUSTED:
            last = self.attempts[-1].message if self.attempts else ""
            return HealthCheckExhausted(self.url, self.attempt_count, output=last)
        if self.state == PollState.CANCELLED:
            return HealthCheckCancelled(self.url, self.attempt_count)
        return None

    def raise_for_state(self) -> None:
        error = self.to_error()
        if error is not None:
            raise error


# ── Poller ───────────────────────────────────────────────────────────────────


class HealthPoller:
    """Polls ``url`` with a fixed delay until healthy or out of attempts."""

    def __init__(
        self,
        url: str,
        max_retries: int = 15,
        retry_delay: float = 5.0,
        timeout: float = 5.0,
        client: httpx.Client | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        if not url:
            raise ValueError("Health check URL must not be empty")
        if httpx.URL(url).scheme not in ("http", "https"):
            raise ValueError(f"Health check URL must be http(s): {url}")
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if retry_delay < 0:
            raise ValueError("retry_delay must be >= 0")

        self.url = url
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.cancel_event = cancel_event
        self._client = client

    @classmethod
    def from_settings(
        cls,
        settings: PipelineSettings,
        client: httpx.Client | None = None,
        cancel_event: threading.Event | None = None,
    ) -> HealthPoller:
        return cls(
            settings.health_url,
            max_retries=settings.health_max_retries,
            retry_delay=settings.health_retry_delay,
            timeout=settings.health_timeout,
            client=client,
            cancel_event=cancel_event,
        )

    @contextmanager
    def _client_scope(self) -> Iterator[httpx.Client]:
        if self._client is not None:
            yield self._client
            return
        with httpx.Client(follow_redirects=True) as client:
            yield client

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _wait(self) -> bool:
        """Block for ``retry_delay``; return True if cancelled meanwhile."""
        if self.cancel_event is None:
            time.sleep(self.retry_delay)
            return False
        return self.cancel_event.wait(self.retry_delay)

    def poll(self) -> PollResult:
        """Run the retry loop and return its terminal state."""
        attempts: list[HealthCheckAttempt] = []
        failures = 0
        healthy = False

        logger.info(
            "Polling %s (max %d attempts, %.1fs apart)",
            self.url, self.max_retries, self.retry_delay,
        )
        with self._client_scope() as client:
            while failures < self.max_retries and not healthy:
                if self._cancelled():
                    logger.warning("Health check cancelled after %d attempts", len(attempts))
                    return PollResult(PollState.CANCELLED, self.url, attempts)

                result = probe(client, self.url, self.timeout)
                attempts.append(HealthCheckAttempt.from_probe(len(attempts) + 1, result))

                if result.ok:
                    healthy = True
                    logger.info(
                        "Healthy on attempt %d/%d (%s, %.0fms)",
                        len(attempts), self.max_retries, result.message, result.latency_ms,
                    )
                    break

                failures += 1
                if result.status_code is not None:
                    logger.info(
                        "Attempt %d/%d: endpoint answered %s",
                        failures, self.max_retries, result.message,
                    )
                else:
                    logger.info(
                        "Attempt %d/%d: endpoint unreachable (%s)",
                        failures, self.max_retries, result.message,
                    )

                if failures < self.max_retries and self._wait():
                    logger.warning("Health check cancelled after %d attempts", len(attempts))
                    return PollResult(PollState.CANCELLED, self.url, attempts)

        if healthy:
            return PollResult(PollState.HEALTHY, self.url, attempts)

        logger.error("Health check failed after %d attempts: %s", failures, self.url)
        return PollResult(PollState.EXHAUSTED, self.url, attempts)

    def wait_until_healthy(self) -> PollResult:
        """Like :meth:`poll` but raises ``HealthCheckExhausted`` / ``HealthCheckCancelled``."""
        result = self.poll()
        result.raise_for_state()
        return result
