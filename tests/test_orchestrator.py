"""
Tests for echobench.orchestrator module.
"""

import pytest

from conftest import ChannelRecorder, echo, make_config, silent, step_clock

from echobench.codec import JsonTagCodec
from echobench.exceptions import ConnectError
from echobench.orchestrator import Phase, RoundOrchestrator


def make_orchestrator(recorder, config=None):
    return RoundOrchestrator(
        config or make_config(),
        channel_factory=recorder,
        codec=JsonTagCodec(),
        clock=step_clock(),
    )


class TestSingleRound:
    """Tests for one-round runs."""

    @pytest.mark.asyncio
    async def test_all_echoed(self, recorder):
        """Test two echoing connections complete every request."""
        orchestrator = make_orchestrator(recorder)

        reports = await orchestrator.run()

        assert len(reports) == 1
        stats = reports[0].stats
        assert stats.completed_count == 6
        assert stats.attempted_count == 6
        assert stats.success_ratio == 1.0
        assert stats.min_round_trip >= 0
        assert reports[0].terminations == {"all_succeeded": 2}

    @pytest.mark.asyncio
    async def test_one_silent_connection(self):
        """Test a silent connection times out without holding up the report."""
        orchestrator = make_orchestrator(ChannelRecorder(echo, silent))

        reports = await orchestrator.run()

        stats = reports[0].stats
        assert stats.completed_count == 3
        assert stats.attempted_count == 6
        assert stats.success_ratio == 0.5
        assert reports[0].terminations == {"all_succeeded": 1, "stagnant_timeout": 1}

    @pytest.mark.asyncio
    async def test_no_responses_at_all(self):
        """Test a round with nothing echoed reports no latency data."""
        orchestrator = make_orchestrator(ChannelRecorder(silent))

        reports = await orchestrator.run()

        assert not reports[0].stats.has_data
        assert reports[0].stats.avg_round_trip is None
        assert reports[0].terminations == {"stagnant_timeout": 2}

    @pytest.mark.asyncio
    async def test_transitions(self, recorder):
        """Test phases follow ramp-up, dispatch, aggregate, close."""
        orchestrator = make_orchestrator(recorder)

        await orchestrator.run()

        assert orchestrator.transitions == [
            (Phase.RAMPING_UP, 0),
            (Phase.DISPATCHING, 0),
            (Phase.AGGREGATING, 0),
            (Phase.CLOSING, None),
            (Phase.DONE, None),
        ]
        assert orchestrator.phase is Phase.DONE

    @pytest.mark.asyncio
    async def test_channels_closed(self, recorder):
        """Test every channel is closed once the run is done."""
        orchestrator = make_orchestrator(recorder)

        await orchestrator.run()

        assert [channel.close_calls for channel in recorder.channels] == [1, 1]

    @pytest.mark.asyncio
    async def test_runs_once(self, recorder):
        """Test a finished orchestrator refuses to run again."""
        orchestrator = make_orchestrator(recorder)
        await orchestrator.run()

        with pytest.raises(RuntimeError):
            await orchestrator.run()


class TestMultipleRounds:
    """Tests for cumulative ramp-up across rounds."""

    @pytest.mark.asyncio
    async def test_cumulative_population(self, recorder):
        """Test each round dispatches to every connection made so far."""
        orchestrator = make_orchestrator(recorder, make_config(total_rounds=3))

        reports = await orchestrator.run()

        assert [r.connection_count for r in reports] == [2, 4, 6]
        assert [r.stats.attempted_count for r in reports] == [6, 12, 18]
        assert [r.stats.completed_count for r in reports] == [6, 12, 18]
        assert len(recorder.channels) == 6

    @pytest.mark.asyncio
    async def test_connections_reused(self, recorder):
        """Test early connections carry a batch in every later round."""
        orchestrator = make_orchestrator(recorder, make_config(total_rounds=3))

        await orchestrator.run()

        assert [len(channel.sent) for channel in recorder.channels] == [9, 9, 6, 6, 3, 3]

    @pytest.mark.asyncio
    async def test_rounds_in_sequence(self, recorder):
        """Test no round ramps up before the previous one aggregated."""
        orchestrator = make_orchestrator(recorder, make_config(total_rounds=2))

        await orchestrator.run()

        phases = [(phase, index) for phase, index in orchestrator.transitions if index is not None]
        assert phases == [
            (Phase.RAMPING_UP, 0),
            (Phase.DISPATCHING, 0),
            (Phase.AGGREGATING, 0),
            (Phase.RAMPING_UP, 1),
            (Phase.DISPATCHING, 1),
            (Phase.AGGREGATING, 1),
        ]


class TestConnectFailure:
    """Tests for aborted runs."""

    @pytest.mark.asyncio
    async def test_connect_failure_aborts(self):
        """Test a failed connect aborts the run without a report."""
        recorder = ChannelRecorder(echo, fail_open_at=1)
        orchestrator = make_orchestrator(recorder)

        with pytest.raises(ConnectError):
            await orchestrator.run()

        assert orchestrator.reports == []
        assert orchestrator.phase is Phase.DONE
        assert (Phase.AGGREGATING, 0) not in orchestrator.transitions

    @pytest.mark.asyncio
    async def test_opened_channels_closed_on_abort(self):
        """Test connections opened before the failure are still closed."""
        recorder = ChannelRecorder(echo, fail_open_at=1)
        orchestrator = make_orchestrator(recorder)

        with pytest.raises(ConnectError):
            await orchestrator.run()

        assert recorder.channels[0].close_calls == 1
        assert recorder.channels[1].close_calls == 0

    @pytest.mark.asyncio
    async def test_failure_in_later_round(self):
        """Test earlier rounds keep their reports when a later ramp-up fails."""
        recorder = ChannelRecorder(echo, fail_open_at=3)
        orchestrator = make_orchestrator(recorder, make_config(total_rounds=3))

        with pytest.raises(ConnectError):
            await orchestrator.run()

        assert len(orchestrator.reports) == 1
        assert sum(channel.close_calls for channel in recorder.channels) == 3
