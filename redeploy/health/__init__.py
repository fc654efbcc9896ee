"""Health gate: single HTTP probe and the bounded retry poller."""

from redeploy.health.poller import HealthCheckAttempt, HealthPoller, Outcome, PollResult, PollState
from redeploy.health.probe import ProbeResult, probe

__all__ = [
    "HealthCheckAttempt",
    "HealthPoller",
    "Outcome",
    "PollResult",
    "PollState",
    "ProbeResult",
    "probe",
]
