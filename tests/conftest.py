"""
Pytest configuration and fixtures for EchoBench tests.
"""

import asyncio
import itertools
import os
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from echobench.channels import DuplexChannel
from echobench.config import BenchmarkConfig
from echobench.exceptions import ChannelClosedError, ConnectError


def echo(payload):
    """Responder that echoes every request once."""
    return [payload]


def silent(payload):
    """Responder that never answers."""
    return []


def duplicate(payload):
    """Responder that echoes every request twice."""
    return [payload, payload]


class FakeChannel(DuplexChannel):
    """
    In-memory channel.

    Every sent payload is passed to `responder`; each reply it returns is
    delivered on the next loop iteration, like a real inbound message.
    """

    def __init__(self, responder=echo, fail_open=False, fail_send=False):
        super().__init__()
        self.responder = responder
        self.fail_open = fail_open
        self.fail_send = fail_send
        self.sent = []
        self.close_calls = 0
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self, address: str) -> None:
        await asyncio.sleep(0)
        if self.fail_open:
            raise ConnectError(address, "refused")
        self._open = True
        self.address = address

    async def send(self, payload: bytes, text: bool = False) -> None:
        if self.fail_send or not self._open:
            raise ChannelClosedError("fake channel is not open")
        self.sent.append(payload)
        loop = asyncio.get_running_loop()
        for reply in self.responder(payload):
            loop.call_soon(self._deliver, reply)

    async def close(self) -> None:
        self.close_calls += 1
        self._open = False

    def inject(self, message) -> None:
        """Deliver an inbound message immediately."""
        self._deliver(message)


class ChannelRecorder:
    """Channel factory that hands out FakeChannels and remembers them."""

    def __init__(self, *responders, fail_open_at=None):
        self.responders = responders or (echo,)
        self.fail_open_at = fail_open_at
        self.channels = []

    def __call__(self) -> FakeChannel:
        index = len(self.channels)
        channel = FakeChannel(
            responder=self.responders[index % len(self.responders)],
            fail_open=index == self.fail_open_at,
        )
        self.channels.append(channel)
        return channel


def step_clock(step: float = 10.0):
    """Deterministic clock advancing by `step` ms per reading."""
    counter = itertools.count(0.0, step)
    return lambda: next(counter)


def make_config(**overrides) -> BenchmarkConfig:
    """Small, fast configuration for engine tests."""
    values = dict(
        target_address="ws://127.0.0.1:9",
        connections_per_round=2,
        requests_per_connection=3,
        total_rounds=1,
        max_stagnant_ticks=5,
        tick_interval=0.001,
    )
    values.update(overrides)
    return BenchmarkConfig(**values)


@pytest.fixture
def config():
    """Default small benchmark config."""
    return make_config()


@pytest.fixture
def recorder():
    """Echoing channel factory."""
    return ChannelRecorder(echo)
