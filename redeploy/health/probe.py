"""Single HTTP health probe.

A probe never raises for network trouble: connection errors, timeouts and
non-2xx answers all come back as a failed ``ProbeResult`` so the poller can
treat them the same way.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx

logger = logging.getLogger(__name__)


@dataclass
class ProbeResult:
    """Outcome of one GET against the health endpoint."""

    ok: bool
    latency_ms: float
    status_code: int | None = None
    message: str = ""
    timestamp: str = ""

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()


def probe(client: httpx.Client, url: str, timeout: float = 5.0) -> ProbeResult:
    """GET ``url`` once, bounding connect and read by ``timeout`` seconds."""
    t0 = time.perf_counter()
    try:
        resp = client.get(url, timeout=timeout)
        latency = (time.perf_counter() - t0) * 1000

        if resp.is_success:
            return ProbeResult(
                ok=True, latency_ms=round(latency, 1),
                status_code=resp.status_code, message=f"{resp.status_code} OK",
            )
        return ProbeResult(
            ok=False, latency_ms=round(latency, 1),
            status_code=resp.status_code, message=f"HTTP {resp.status_code}",
        )
    except httpx.TimeoutException:
        return ProbeResult(
            ok=False, latency_ms=round(timeout * 1000, 1),
            message=f"Timed out after {timeout}s",
        )
    except httpx.ConnectError as e:
        latency = (time.perf_counter() - t0) * 1000
        return ProbeResult(
            ok=False, latency_ms=round(latency, 1),
            message=f"Connection error: {e}",
        )
    except httpx.HTTPError as e:
        latency = (time.perf_counter() - t0) * 1000
        return ProbeResult(
            ok=False, latency_ms=round(latency, 1),
            message=f"Error: {type(e).__name__}: {e}",
        )
