"""
Round statistics for EchoBench.

Reduces one round's request records to summary statistics and formats the
per-round report and the end-of-run summary.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .detector import TerminationReason
from .logging_setup import format_block, log
from .pool import Round


@dataclass
class RoundStats:
    """
    Summary of one round (milliseconds).

    Timing fields are None when no request completed.
    """

    completed_count: int = 0
    attempted_count: int = 0
    earliest_start: Optional[float] = None
    latest_finish: Optional[float] = None
    min_round_trip: Optional[float] = None
    max_round_trip: Optional[float] = None
    avg_round_trip: Optional[float] = None

    @property
    def has_data(self) -> bool:
        return self.completed_count > 0

    @property
    def success_ratio(self) -> float:
        if not self.attempted_count:
            return 0.0
        return self.completed_count / self.attempted_count

    @property
    def elapsed(self) -> Optional[float]:
        """Time from the earliest completed start to the latest finish."""
        if self.earliest_start is None or self.latest_finish is None:
            return None
        return self.latest_finish - self.earliest_start


@dataclass
class RoundReport:
    """Everything reported for one round."""
    round_index: int
    connection_count: int
    connect_time_ms: float
    stats: RoundStats
    terminations: Dict[str, int] = field(default_factory=dict)
    anomalies: Dict[str, int] = field(default_factory=dict)

    def format_lines(self) -> List[str]:
        s = self.stats
        lines = [
            f"Connections: {self.connection_count} | Connection Time: {format_ms(self.connect_time_ms)}",
            f"Count: {s.completed_count}/{s.attempted_count} ({s.success_ratio * 100:.2f}%) "
            f"| Time Elapse: {format_ms(s.elapsed)}",
            f"Longest Trip: {format_ms(s.max_round_trip)} | Shortest Trip: {format_ms(s.min_round_trip)} "
            f"| Average Trip: {format_ms(s.avg_round_trip)}",
        ]
        if self.terminations:
            ended = ", ".join(f"{name}={count}" for name, count in sorted(self.terminations.items()))
            lines.append(f"Batches ended: {ended}")
        noisy = {name: count for name, count in self.anomalies.items() if count}
        if noisy:
            lines.append("Anomalies: " + ", ".join(f"{name}={count}" for name, count in sorted(noisy.items())))
        return lines


def format_ms(value: Optional[float]) -> str:
    """Format a millisecond value, or 'n/a' when there is no data."""
    if value is None:
        return "n/a"
    return f"{value:.2f} ms"


class StatsAggregator:
    """Reduces Round data; never mutates it."""

    def __init__(self, requests_per_connection: int):
        self.requests_per_connection = requests_per_connection

    def reduce(self, round_: Round) -> RoundStats:
        """Summarize every complete record of the round."""
        stats = RoundStats(
            attempted_count=self.requests_per_connection * round_.cumulative_connection_count
        )
        total = 0.0

        for records in round_.batches.values():
            for record in records:
                if not record.complete:
                    continue

                if stats.earliest_start is None or record.start < stats.earliest_start:
                    stats.earliest_start = record.start
                if stats.latest_finish is None or record.finish > stats.latest_finish:
                    stats.latest_finish = record.finish

                trip = record.finish - record.start
                if stats.max_round_trip is None or trip > stats.max_round_trip:
                    stats.max_round_trip = trip
                if stats.min_round_trip is None or trip < stats.min_round_trip:
                    stats.min_round_trip = trip

                total += trip
                stats.completed_count += 1

        if stats.completed_count:
            stats.avg_round_trip = total / stats.completed_count
        return stats

    def build_report(self, round_: Round, stats: Optional[RoundStats] = None) -> RoundReport:
        if stats is None:
            stats = self.reduce(round_)
        terminations = Counter(
            reason.value for reason in round_.terminations.values() if isinstance(reason, TerminationReason)
        )
        return RoundReport(
            round_index=round_.index,
            connection_count=round_.cumulative_connection_count,
            connect_time_ms=round_.connect_time_ms,
            stats=stats,
            terminations=dict(terminations),
            anomalies=dict(round_.anomalies),
        )

    def report(self, round_: Round, stats: Optional[RoundStats] = None) -> RoundReport:
        """Build the round report and emit it to the log."""
        report = self.build_report(round_, stats)
        log(format_block(f"REPORT round {round_.index + 1}", report.format_lines()))
        return report


def format_summary(reports: List[RoundReport]) -> str:
    """Format every round of a run as a compact table."""
    lines = [
        f"{'round':>5} {'conns':>6} {'completed':>17} {'success':>8} "
        f"{'min':>10} {'avg':>10} {'max':>10}"
    ]
    if not reports:
        lines.append("(no rounds)")
    for report in reports:
        s = report.stats
        lines.append(
            f"{report.round_index + 1:>5} {report.connection_count:>6} "
            f"{f'{s.completed_count}/{s.attempted_count}':>17} {s.success_ratio * 100:>7.2f}% "
            f"{_cell(s.min_round_trip):>10} {_cell(s.avg_round_trip):>10} {_cell(s.max_round_trip):>10}"
        )
    return format_block("SUMMARY", lines)


def _cell(value: Optional[float]) -> str:
    return "n/a" if value is None else f"{value:.2f}"
