"""Shared fixtures for dnsstress tests."""

import asyncio
from typing import Callable, Optional

import dns.message
import pytest

from dnsstress.models import StressConfig
from dnsstress.transports import BaseTransport, TransportError


class FakeTransport(BaseTransport):
    """Transport that answers after a fixed delay without any network."""

    def __init__(
        self,
        delay: float = 0.0,
        fail: Optional[Callable[[int], bool]] = None,
        crash_after: Optional[int] = None,
        hang_after: Optional[int] = None,
    ):
        self.delay = delay
        self.fail = fail
        self.crash_after = crash_after
        self.hang_after = hang_after
        self.calls = 0
        self.ids: list[int] = []
        self.names: list[str] = []
        self.closed = False

    async def send(self, wire: bytes) -> None:
        self.calls += 1
        call = self.calls
        message = dns.message.from_wire(wire)
        self.ids.append(message.id)
        self.names.append(message.question[0].name.to_text())

        if self.crash_after is not None and call > self.crash_after:
            raise RuntimeError("transport bug")
        if self.hang_after is not None and call > self.hang_after:
            await asyncio.Event().wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail is not None and self.fail(call):
            raise TransportError(f"query {call} failed")

    async def close(self):
        self.closed = True


class HangingTransport(BaseTransport):
    """Transport whose replies never arrive."""

    def __init__(self):
        self.calls = 0
        self.closed = False

    async def send(self, wire: bytes) -> None:
        self.calls += 1
        await asyncio.Event().wait()

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def config():
    return StressConfig(concurrency=4, batch_size=5, display_interval_ms=60_000)
