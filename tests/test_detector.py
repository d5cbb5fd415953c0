"""
Tests for echobench.detector module.
"""

import pytest

from echobench.detector import StagnationDetector, TerminationReason


def run_until_done(detector, counts, all_complete=False, limit=1000):
    """Tick with successive counts (last one repeats) until a reason appears."""
    for tick in range(limit):
        count = counts[min(tick, len(counts) - 1)]
        reason = detector.tick(count, all_complete)
        if reason is not None:
            return reason
    return None


class TestTerminationPredicate:
    """Tests for the three termination conditions."""

    def test_all_succeeded_first_tick(self):
        """Test a fully answered batch ends on the first tick."""
        detector = StagnationDetector(batch_size=3, max_stagnant_ticks=100)

        assert detector.tick(3, all_complete=True) is TerminationReason.ALL_SUCCEEDED
        assert detector.ticks == 1
        assert detector.finished

    def test_all_complete(self):
        """Test completeness alone ends the batch."""
        detector = StagnationDetector(batch_size=3, max_stagnant_ticks=100)

        assert detector.tick(2, all_complete=True) is TerminationReason.ALL_COMPLETE

    def test_no_responses_bounded_by_ceiling(self):
        """Test a silent batch ends exactly at the tick ceiling."""
        detector = StagnationDetector(batch_size=10, max_stagnant_ticks=20)

        reason = run_until_done(detector, [0])

        assert reason is TerminationReason.STAGNANT_TIMEOUT
        assert detector.ticks == 20

    def test_stalled_above_threshold_ends_early(self):
        """Test a stalled batch above the ratio ends once the window is full."""
        detector = StagnationDetector(batch_size=100, max_stagnant_ticks=100)

        for _ in range(20):
            assert detector.tick(95, False) is None
        assert detector.tick(95, False) is TerminationReason.STAGNANT_RATIO
        assert detector.ticks == 21

    def test_ratio_waits_for_full_window(self):
        """Test a short pause above the ratio does not end the batch."""
        detector = StagnationDetector(batch_size=100, max_stagnant_ticks=100)

        # Flat at 91 for two ticks, then the tail arrives
        assert run_until_done(detector, [91, 91, 91, 100]) is TerminationReason.ALL_SUCCEEDED
        assert detector.ticks == 4

    def test_ceiling_inside_partial_window(self):
        """Test the ceiling still ends a stall above the ratio before the window fills."""
        detector = StagnationDetector(
            batch_size=10, max_stagnant_ticks=5, success_ratio_threshold=0.5
        )

        reason = run_until_done(detector, [9])

        assert reason is TerminationReason.STAGNANT_TIMEOUT
        assert detector.ticks == 5

    def test_threshold_is_strict(self):
        """Test a ratio equal to the threshold keeps waiting for the ceiling."""
        detector = StagnationDetector(batch_size=10, max_stagnant_ticks=8, success_ratio_threshold=0.9)

        reason = run_until_done(detector, [9])

        assert reason is TerminationReason.STAGNANT_TIMEOUT
        assert detector.ticks == 8

    def test_progress_never_stagnates(self):
        """Test a steadily growing count never ends by stagnation."""
        detector = StagnationDetector(batch_size=1000, max_stagnant_ticks=3)

        for tick in range(1, 60):
            assert detector.tick(tick, False) is None

    def test_stagnation_needs_window_to_flush(self):
        """Test a count change is only judged stagnant once old samples age out."""
        detector = StagnationDetector(batch_size=100, max_stagnant_ticks=10)

        # 0 for two ticks, then 5 forever: the zeros leave the 20-sample
        # window after tick 22, so tick 23 is the first stagnant one.
        reason = run_until_done(detector, [0, 0, 5])

        assert reason is TerminationReason.STAGNANT_TIMEOUT
        assert detector.ticks == 23

    def test_evaluate_has_no_side_effects(self):
        """Test evaluate() neither ticks nor records history."""
        detector = StagnationDetector(batch_size=3, max_stagnant_ticks=5)
        detector.evaluate(0, False)

        assert detector.ticks == 0
        assert detector.recent_counts() == []


class TestHistoryWindow:
    """Tests for the recent success count window."""

    def test_window_bounded(self):
        """Test 25 constant ticks leave exactly 20 samples."""
        detector = StagnationDetector(batch_size=100, max_stagnant_ticks=1000)

        for _ in range(25):
            assert detector.tick(50, False) is None
            assert len(detector.history) <= 20

        assert detector.recent_counts() == [50] * 20

    def test_push_after_evaluation(self):
        """Test each tick records the count it evaluated."""
        detector = StagnationDetector(batch_size=10, max_stagnant_ticks=100)
        detector.tick(1, False)
        detector.tick(2, False)

        assert detector.recent_counts() == [1, 2]

    def test_terminating_tick_recorded(self):
        """Test the final tick still pushes its sample."""
        detector = StagnationDetector(batch_size=2, max_stagnant_ticks=100)
        detector.tick(2, True)

        assert detector.recent_counts() == [2]


class TestTerminationReason:
    """Tests for TerminationReason."""

    def test_is_stagnation(self):
        """Test stagnation reasons are flagged."""
        assert TerminationReason.STAGNANT_RATIO.is_stagnation
        assert TerminationReason.STAGNANT_TIMEOUT.is_stagnation
        assert not TerminationReason.ALL_SUCCEEDED.is_stagnation
        assert not TerminationReason.ALL_COMPLETE.is_stagnation

    def test_invalid_batch_size(self):
        """Test an empty batch is refused."""
        with pytest.raises(ValueError):
            StagnationDetector(batch_size=0, max_stagnant_ticks=10)
