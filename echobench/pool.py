"""
Connection pool for EchoBench.

Ramps up the cumulative connection count each round and fans the round's
request batch out across every connection created so far.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .channels import ChannelFactory, channel_factory_for
from .codec import TagCodec, codec_for
from .config import BenchmarkConfig
from .connection import Connection, RequestRecord, now_ms
from .detector import TerminationReason
from .logging_setup import log, log_debug, log_warning


ANOMALY_COUNTERS = (
    "malformed_responses",
    "unmatched_responses",
    "duplicate_responses",
    "late_responses",
    "send_failures",
)


@dataclass
class Progress:
    """Running counter for one phase of a round."""
    label: str
    counter: int = 0
    total: int = 0

    def reset(self, total: int, counter: int = 0) -> None:
        self.total = total
        self.counter = counter

    @property
    def ratio(self) -> float:
        return self.counter / self.total if self.total else 0.0

    def format(self) -> str:
        return f"{self.label} {self.counter}/{self.total} ({self.ratio * 100:.1f}%)"


@dataclass
class Round:
    """Population and raw results of one round."""
    index: int
    cumulative_connection_count: int
    connect_time_ms: float = 0.0
    batches: Dict[int, List[RequestRecord]] = field(default_factory=dict)
    terminations: Dict[int, TerminationReason] = field(default_factory=dict)
    anomalies: Dict[str, int] = field(default_factory=dict)


class ConnectionPool:
    """
    Owns every Connection of a run.

    Connections persist across rounds: round k dispatches to all
    connections_per_round * (k + 1) connections created so far.
    """

    def __init__(
        self,
        config: BenchmarkConfig,
        channel_factory: Optional[ChannelFactory] = None,
        codec: Optional[TagCodec] = None,
        clock: Callable[[], float] = now_ms,
    ):
        self.config = config
        self.channel_factory = channel_factory or channel_factory_for(config.transport)
        self.codec = codec or codec_for(config.transport)
        self.connections: List[Connection] = []
        self.connection_progress = Progress("Connecting...")
        self.request_progress = Progress("Benchmarking...")
        self._clock = clock
        self._closed = False

    def _on_connected(self, conn: Connection) -> None:
        self.connection_progress.counter += 1
        log_debug(f"[RAMP] {self.connection_progress.format()}")

    def _on_response(self, conn: Connection) -> None:
        self.request_progress.counter += 1

    def _new_connection(self, connection_id: int) -> Connection:
        return Connection(
            connection_id,
            self.config,
            self.channel_factory,
            self.codec,
            clock=self._clock,
            on_connected=self._on_connected,
            on_response=self._on_response,
        )

    async def ramp_up(self, round_index: int) -> Round:
        """
        Create and connect this round's new connections concurrently.

        Returns:
            A Round with its population and connect time filled in

        Raises:
            ConnectError: If any new connection fails to open (not retried)
        """
        existing = self.config.cumulative_connections(round_index - 1)
        total = self.config.cumulative_connections(round_index)
        added = total - existing
        if len(self.connections) != existing:
            raise RuntimeError(
                f"Round {round_index} expects {existing} existing connections, "
                f"pool holds {len(self.connections)}"
            )

        self.connection_progress.reset(total, counter=existing)
        new_connections = [self._new_connection(existing + i) for i in range(added)]
        self.connections.extend(new_connections)

        started = self._clock()
        tasks = [asyncio.ensure_future(conn.connect()) for conn in new_connections]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        connect_time = self._clock() - started

        log_debug(f"[RAMP] round {round_index + 1}: +{added} connections ({total} total)")
        return Round(
            index=round_index,
            cumulative_connection_count=total,
            connect_time_ms=connect_time,
        )

    def _anomaly_totals(self) -> Dict[str, int]:
        return {
            name: sum(getattr(conn, name) for conn in self.connections)
            for name in ANOMALY_COUNTERS
        }

    async def dispatch(self, round_: Round) -> Round:
        """
        Run one batch on every connection of the round and wait for all of them.

        Returns:
            The same Round with batches, termination reasons, and anomaly
            counts filled in
        """
        population = self.connections[: round_.cumulative_connection_count]
        self.request_progress.reset(len(population) * self.config.requests_per_connection)
        before = self._anomaly_totals()

        results = await asyncio.gather(*(conn.send_batch() for conn in population))

        for conn, records in zip(population, results):
            round_.batches[conn.id] = records
            round_.terminations[conn.id] = conn.termination

        after = self._anomaly_totals()
        round_.anomalies = {name: after[name] - before[name] for name in ANOMALY_COUNTERS}
        log_debug(f"[DISPATCH] round {round_.index + 1}: {self.request_progress.format()}")
        return round_

    async def close_all(self) -> None:
        """Close every opened connection once. Best effort."""
        if self._closed:
            return
        self._closed = True

        opened = [conn for conn in self.connections if conn.channel is not None]
        results = await asyncio.gather(
            *(conn.close() for conn in opened), return_exceptions=True
        )
        failures = 0
        for conn, result in zip(opened, results):
            if isinstance(result, Exception):
                failures += 1
                log_warning(f"[CLEANUP] Closing connection #{conn.id} failed: {result}")
        log(f"[CLEANUP] Closed {len(opened) - failures}/{len(opened)} connections")
