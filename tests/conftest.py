"""Shared fixtures: a fake MAAS client, a controllable clock and a recording audit sink."""

import asyncio
import copy
from datetime import datetime, timedelta
from typing import Any

import pytest

from maasbridge.services.audit import AuditLogger
from maasbridge.services.cache import ResourceCache
from maasbridge.services.cancellation import CancellationToken


class FakeClock:
    """Clock whose time only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeMaasClient:
    """
    Stand-in for MaasApiClient.

    Responses are keyed by path; an exception value is raised instead of
    returned. Every call is recorded as (path, params).
    """

    def __init__(self):
        self.responses: dict[str, Any] = {}
        self.calls: list[tuple[str, dict[str, Any] | None]] = []
        self.delay: float = 0.0

    def respond(self, path: str, value: Any) -> None:
        self.responses[path] = value

    async def get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        token: CancellationToken | None = None,
    ) -> Any:
        self.calls.append((path, params))

        async def _do() -> Any:
            if self.delay:
                await asyncio.sleep(self.delay)
            value = self.responses.get(path)
            if isinstance(value, BaseException):
                raise value
            return copy.deepcopy(value)

        if token is not None:
            return await token.run(_do())
        return await _do()


class RecordingAuditLogger(AuditLogger):
    """Audit sink that keeps events in memory."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.events: list[tuple[str, dict[str, Any]]] = []

    def _emit(self, level: str, entry: dict[str, Any]) -> None:
        if self.enabled:
            self.events.append((level, entry))

    def actions(self, event_type: str | None = None) -> list[str]:
        return [
            entry["action"]
            for _, entry in self.events
            if event_type is None or entry["event_type"] == event_type
        ]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> ResourceCache:
    return ResourceCache(max_size=100, default_ttl=timedelta(minutes=5), clock=clock)


@pytest.fixture
def maas_client() -> FakeMaasClient:
    return FakeMaasClient()


@pytest.fixture
def audit() -> RecordingAuditLogger:
    return RecordingAuditLogger(include_resource_state=True)


@pytest.fixture
def machine_payload() -> dict[str, Any]:
    return {
        "system_id": "abc123",
        "hostname": "node1",
        "status_name": "Ready",
        "architecture": "amd64/generic",
        "cpu_count": 4,
        "memory": 8192,
        "tag_names": ["virtual"],
    }
