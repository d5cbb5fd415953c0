"""
Stagnation detector for a connection's request batch.

Once a batch has been sent, the owning connection calls `tick()` at a fixed
interval. A tick ends the batch when:

1. the success count reached the batch size, or
2. every request record is complete, or
3. the success count equals the oldest sample in the recent-history window
   (nothing arrived across the window) and either the success ratio is above
   the threshold or the tick counter reached the stagnant tick ceiling.

The ratio branch needs a full window, so a batch above the threshold waits
at least `window` flat ticks before it is cut. The ceiling branch compares
against whatever the window holds, so a silent batch ends at exactly the
ceiling even when the ceiling is shorter than the window.

Every tick pushes the current success count into the window after the
predicate is evaluated.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from .config import STAGNATION_WINDOW, DEFAULT_SUCCESS_RATIO_THRESHOLD
from .ringbuffer import CircularBuffer


class TerminationReason(Enum):
    """Which condition ended a batch."""
    ALL_SUCCEEDED = "all_succeeded"          # success count == batch size
    ALL_COMPLETE = "all_complete"            # every record has all timestamps
    STAGNANT_RATIO = "stagnant_ratio"        # stalled above the success threshold
    STAGNANT_TIMEOUT = "stagnant_timeout"    # stalled at the tick ceiling

    @property
    def is_stagnation(self) -> bool:
        return self in (TerminationReason.STAGNANT_RATIO, TerminationReason.STAGNANT_TIMEOUT)


class StagnationDetector:
    """
    Per-batch termination predicate with a fixed-size success history.

    A fresh detector is created for every batch.
    """

    def __init__(
        self,
        batch_size: int,
        max_stagnant_ticks: int,
        success_ratio_threshold: float = DEFAULT_SUCCESS_RATIO_THRESHOLD,
        window: int = STAGNATION_WINDOW,
    ):
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.batch_size = batch_size
        self.max_stagnant_ticks = max_stagnant_ticks
        self.success_ratio_threshold = success_ratio_threshold
        self.history: CircularBuffer[int] = CircularBuffer(window)
        self.ticks = 0
        self.reason: Optional[TerminationReason] = None

    @property
    def finished(self) -> bool:
        return self.reason is not None

    def success_ratio(self, success_count: int) -> float:
        return success_count / self.batch_size

    def is_stagnant(self, success_count: int) -> bool:
        """True when the count matches the oldest sample still in the window."""
        oldest = self.history.oldest()
        return oldest is not None and success_count == oldest

    def evaluate(self, success_count: int, all_complete: bool) -> Optional[TerminationReason]:
        """Evaluate the predicate for the current tick without side effects."""
        if success_count == self.batch_size:
            return TerminationReason.ALL_SUCCEEDED
        if all_complete:
            return TerminationReason.ALL_COMPLETE
        if self.is_stagnant(success_count):
            if (
                self.history.is_full()
                and self.success_ratio(success_count) > self.success_ratio_threshold
            ):
                return TerminationReason.STAGNANT_RATIO
            if self.ticks >= self.max_stagnant_ticks:
                return TerminationReason.STAGNANT_TIMEOUT
        return None

    def tick(self, success_count: int, all_complete: bool) -> Optional[TerminationReason]:
        """
        Advance one tick.

        Args:
            success_count: Responses matched so far in this batch
            all_complete: Whether every record in the batch is complete

        Returns:
            The reason the batch should end, or None to keep waiting
        """
        self.ticks += 1
        reason = self.evaluate(success_count, all_complete)
        self.history.push(success_count)
        if reason is not None:
            self.reason = reason
        return reason

    def recent_counts(self) -> List[int]:
        return self.history.to_list()
