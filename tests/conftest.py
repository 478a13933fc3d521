"""Shared stubs for the mediastorm test suite."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pytest

from mediastorm.client import SendError, WriteResult
from mediastorm.config import LoadSpec


@dataclass
class StubBackend:
    """In-memory WriteBackend: records every call, optionally sleeps or fails."""

    latency: float = 0.0
    fail_with: Optional[Exception] = None
    status: int = 200
    calls: List[Dict] = field(default_factory=list)
    entered: bool = False
    max_in_flight: int = 0
    _in_flight: int = 0

    async def __aenter__(self):
        self.entered = True
        return self

    async def __aexit__(self, *exc_info):
        self.entered = False

    async def put(self, path: str, body: bytes, headers: Dict[str, str]) -> WriteResult:
        self.calls.append({"path": path, "body": body, "headers": dict(headers)})
        self._in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self._in_flight)
        try:
            if self.latency:
                await asyncio.sleep(self.latency)
            if self.fail_with is not None:
                raise self.fail_with
            return WriteResult(status=self.status, summary="ok")
        finally:
            self._in_flight -= 1


@pytest.fixture
def stub_backend():
    return StubBackend()


@pytest.fixture
def failing_backend():
    return StubBackend(fail_with=SendError(ConnectionRefusedError("connection refused")))


@pytest.fixture
def make_spec():
    def _make(**overrides) -> LoadSpec:
        params = {"endpoint": "http://127.0.0.1:9", "path": "bench/object", "rate": 100.0, "size": 16}
        params.update(overrides)
        return LoadSpec(**params)

    return _make


def metrics_lines(text: str) -> List[str]:
    return [line for line in text.splitlines() if line.startswith("METRICS ")]
