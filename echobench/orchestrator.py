"""
Round orchestrator for EchoBench.

Drives the configured number of rounds strictly in sequence:

    IDLE -> RAMPING_UP(k) -> DISPATCHING(k) -> AGGREGATING(k)
         -> RAMPING_UP(k+1) ... -> CLOSING -> DONE

A connect failure aborts the run without aggregating the failed round.
Connections are closed on the way to DONE whether or not the run succeeded.
"""

from __future__ import annotations

from enum import Enum, auto
from typing import Callable, List, Optional, Tuple

from .channels import ChannelFactory
from .codec import TagCodec
from .config import BenchmarkConfig
from .connection import now_ms
from .logging_setup import log, log_debug, log_error
from .exceptions import ConnectError
from .pool import ConnectionPool
from .stats import RoundReport, StatsAggregator, format_ms, format_summary


class Phase(Enum):
    """Orchestrator states."""
    IDLE = auto()
    RAMPING_UP = auto()
    DISPATCHING = auto()
    AGGREGATING = auto()
    CLOSING = auto()
    DONE = auto()


class RoundOrchestrator:
    """Runs a whole benchmark: every round, then teardown."""

    def __init__(
        self,
        config: BenchmarkConfig,
        channel_factory: Optional[ChannelFactory] = None,
        codec: Optional[TagCodec] = None,
        clock: Callable[[], float] = now_ms,
        pool: Optional[ConnectionPool] = None,
        aggregator: Optional[StatsAggregator] = None,
    ):
        self.config = config
        self.pool = pool or ConnectionPool(config, channel_factory, codec, clock=clock)
        self.aggregator = aggregator or StatsAggregator(config.requests_per_connection)
        self.phase = Phase.IDLE
        self.current_round: Optional[int] = None
        self.transitions: List[Tuple[Phase, Optional[int]]] = []
        self.reports: List[RoundReport] = []

    def _enter(self, phase: Phase, round_index: Optional[int] = None) -> None:
        self.phase = phase
        self.current_round = round_index
        self.transitions.append((phase, round_index))
        where = f" (round {round_index + 1})" if round_index is not None else ""
        log_debug(f"[ROUND] -> {phase.name}{where}")

    async def run(self) -> List[RoundReport]:
        """
        Run every round, then close all connections.

        Returns:
            One report per round

        Raises:
            ConnectError: If a connection fails to open during ramp-up
        """
        if self.phase is not Phase.IDLE:
            raise RuntimeError("A RoundOrchestrator runs only once")

        cfg = self.config
        log(
            f"[ROUND] Benchmarking {cfg.target_address} over {cfg.transport}: "
            f"{cfg.total_rounds} rounds, +{cfg.connections_per_round} connections/round, "
            f"{cfg.requests_per_connection} requests/connection"
        )
        try:
            for round_index in range(cfg.total_rounds):
                await self.run_round(round_index)
        except ConnectError as e:
            log_error(f"[ROUND] Aborting run: {e}")
            raise
        finally:
            self._enter(Phase.CLOSING)
            await self.pool.close_all()
            self._enter(Phase.DONE)

        log(format_summary(self.reports))
        return self.reports

    async def run_round(self, round_index: int) -> RoundReport:
        """Ramp up, dispatch, and aggregate one round."""
        log(f"[ROUND] Test: {round_index + 1}/{self.config.total_rounds}")

        self._enter(Phase.RAMPING_UP, round_index)
        round_ = await self.pool.ramp_up(round_index)
        log(f"[RAMP] Connection Time: {format_ms(round_.connect_time_ms)}")

        self._enter(Phase.DISPATCHING, round_index)
        await self.pool.dispatch(round_)

        self._enter(Phase.AGGREGATING, round_index)
        stats = self.aggregator.reduce(round_)
        report = self.aggregator.report(round_, stats)
        self.reports.append(report)
        return report
