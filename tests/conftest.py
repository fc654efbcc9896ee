"""Shared test fixtures."""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import httpx
import pytest

from redeploy.config import PipelineSettings


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep the developer's environment and .env out of every test."""
    for name in PipelineSettings.model_fields:
        monkeypatch.delenv(name.upper(), raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def make_settings(tmp_path: Path) -> Callable[..., PipelineSettings]:
    """Build settings rooted in ``tmp_path`` with fast health polling."""

    def _make(**overrides: Any) -> PipelineSettings:
        values: dict[str, Any] = {
            "workdir": str(tmp_path),
            "image": "registry.example.com/app:1.2.3",
            "health_base_url": "http://app.test",
            "health_retry_delay": 0,
        }
        values.update(overrides)
        return PipelineSettings(_env_file=None, **values)

    return _make


class ScriptedEndpoint:
    """httpx transport handler answering from a fixed script.

    Integers become status codes, exceptions are raised. When the script
    runs out, ``default`` is used.
    """

    def __init__(self, script: Iterable[int | Exception] = (), default: int = 503) -> None:
        self._script: deque[int | Exception] = deque(script)
        self.default = default
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        value = self._script.popleft() if self._script else self.default
        if isinstance(value, Exception):
            raise value
        return httpx.Response(value, json={"status": "ok" if value < 300 else "starting"})

    @property
    def calls(self) -> int:
        return len(self.requests)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self))


@pytest.fixture
def endpoint_factory() -> Callable[..., ScriptedEndpoint]:
    return ScriptedEndpoint


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record poller delays instead of sleeping."""
    from redeploy.health import poller

    recorded: list[float] = []
    monkeypatch.setattr(poller.time, "sleep", lambda delay: recorded.append(delay))
    return recorded
