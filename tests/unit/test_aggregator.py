"""Unit tests for the WindowAggregator push loop

Tests the aggregation pipeline including:
- Resolution / period gating at construction
- 60s coalescing across cycles (scenario A)
- 1s raw batching (scenario B)
- Flush timing and window hand-off
- Provider failure (scenario C)
"""
import asyncio
from datetime import timedelta
from unittest.mock import Mock

import pytest

from nvidia_cloudwatch.cloudwatch.aggregator import WindowAggregator
from nvidia_cloudwatch.cloudwatch.dispatcher import FlushDispatcher
from nvidia_cloudwatch.cloudwatch.records import MetricName
from nvidia_cloudwatch.cloudwatch.sink import CloudWatchSink
from nvidia_cloudwatch.cloudwatch.window import CoalescingWindow, truncate_to_second
from nvidia_cloudwatch.errors import ConfigError, ProviderError

from conftest import FakeProvider, make_device


def make_aggregator(provider, clock, resolution=60, period=60, sink=None):
    sink = sink or Mock()
    dispatcher = FlushDispatcher(sink, max_in_flight=2)
    return WindowAggregator(provider, dispatcher, "i-0abc", resolution=resolution, period=period,
                            clock=clock, sleep=clock.sleep)


async def run_and_drain(aggregator, cycles):
    await aggregator.run(cycles=cycles)
    await aggregator.dispatcher.drain()


class TestConstruction:
    """Configuration errors fail before any cycle runs"""

    @pytest.mark.parametrize("resolution", [0, 30, 59, 61])
    def test_illegal_resolution(self, provider, clock, resolution):
        with pytest.raises(ConfigError):
            make_aggregator(provider, clock, resolution=resolution, period=600)
        assert provider.calls == 0

    def test_period_shorter_than_resolution(self, provider, clock):
        with pytest.raises(ConfigError):
            make_aggregator(provider, clock, resolution=60, period=30)

    def test_period_equal_to_resolution_allowed(self, provider, clock):
        aggregator = make_aggregator(provider, clock, resolution=1, period=1)
        assert aggregator.period == 1


class TestCoalescingLoop:
    """60s resolution merges cycles into one histogram per metric"""

    def test_three_ticks_within_period(self, clock):
        provider = FakeProvider([[make_device(util=u)] for u in (42, 43, 42)])
        sink = Mock()
        with provider:
            aggregator = make_aggregator(provider, clock, period=180, sink=sink)
            asyncio.run(run_and_drain(aggregator, 3))

        sink.send.assert_not_called()
        util, used, free = aggregator.window.slots
        assert util.name == MetricName.GPU_UTILIZATION
        assert util.values == [42.0, 43.0]
        assert util.counts == [2.0, 1.0]
        assert used.values == [1000.0] and used.counts == [3.0]
        assert free.values == [3000.0] and free.counts == [3.0]

    def test_flush_when_period_elapses(self, clock):
        provider = FakeProvider([[make_device(util=u)] for u in (10, 20, 30, 40)])
        sink = Mock()
        with provider:
            aggregator = make_aggregator(provider, clock, period=120, sink=sink)
            asyncio.run(run_and_drain(aggregator, 4))

        # cycles at t=0, 60, 120; the third one reaches the period
        assert sink.send.call_count == 1
        batch = sink.send.call_args[0][0]
        assert len(batch.requests) == 1
        assert [r.name for r in batch.requests[0]] == [
            MetricName.GPU_UTILIZATION, MetricName.MEMORY_USED, MetricName.MEMORY_FREE]
        assert batch.requests[0][0].values == [10.0, 20.0, 30.0]
        assert batch.requests[0][0].counts == [1.0, 1.0, 1.0]
        # cycle 4 went into a fresh window
        assert aggregator.window.slots[0].values == [40.0]
        assert aggregator.window.slots[0].counts == [1.0]

    def test_period_longer_than_value_limit_flushes(self, clock):
        """161 minutes of distinct memory readings still reach CloudWatch"""
        provider = FakeProvider([[make_device(used=1000 + i)] for i in range(161)])
        client = Mock()
        with provider:
            aggregator = make_aggregator(provider, clock, period=9600, sink=CloudWatchSink(client))
            asyncio.run(run_and_drain(aggregator, 161))

        assert aggregator.dispatcher.completed == 1
        assert aggregator.dispatcher.failed == 0
        client.put_metric_data.assert_called_once()
        metric_data = client.put_metric_data.call_args.kwargs["MetricData"]
        assert all(len(d["Values"]) <= 150 for d in metric_data)
        assert [d["MetricName"] for d in metric_data].count("MemoryUsed") == 2

    def test_window_is_fresh_after_flush(self, clock, provider):
        start = truncate_to_second(clock())
        aggregator = make_aggregator(provider, clock, period=60)
        asyncio.run(run_and_drain(aggregator, 2))

        assert aggregator.window.slots == CoalescingWindow().slots
        assert aggregator.last_flush == start + timedelta(seconds=60)
        assert aggregator.dispatcher.completed == 1

    def test_sleeps_to_next_minute_boundary(self, clock, provider):
        start = truncate_to_second(clock())
        aggregator = make_aggregator(provider, clock, period=600)
        asyncio.run(run_and_drain(aggregator, 3))

        assert clock() == start + timedelta(seconds=180)
        # first sleep is shortened by the sub-second start offset
        assert clock.sleeps[0] == pytest.approx(59.75)
        assert clock.sleeps[1:] == [60.0, 60.0]


class TestRawBatchLoop:
    """1s resolution keeps every cycle's records"""

    def test_five_ticks_before_period(self, clock):
        provider = FakeProvider([[make_device(util=u)] for u in range(5)])
        sink = Mock()
        with provider:
            aggregator = make_aggregator(provider, clock, resolution=1, period=5, sink=sink)
            asyncio.run(run_and_drain(aggregator, 5))

        sink.send.assert_not_called()
        batch = aggregator.window.take()
        assert len(batch.requests) == 5
        for i, request in enumerate(batch.requests):
            assert [r.name for r in request] == [
                MetricName.GPU_UTILIZATION, MetricName.MEMORY_USED, MetricName.MEMORY_FREE]
            assert request[0].value == float(i)
            assert all(r.storage_resolution == 1 for r in request)

    def test_flush_hands_over_all_cycles(self, clock, provider):
        sink = Mock()
        aggregator = make_aggregator(provider, clock, resolution=1, period=5, sink=sink)
        asyncio.run(run_and_drain(aggregator, 6))

        # cycles at t=0..5; elapsed reaches 5 on the sixth
        assert sink.send.call_count == 1
        assert len(sink.send.call_args[0][0].requests) == 6
        assert aggregator.window.is_empty()


class TestProviderFailure:
    """Provider errors end the loop without emitting a batch"""

    def test_failure_propagates_and_nothing_is_sent(self, clock):
        sink = Mock()
        with FakeProvider(fail=True) as provider:
            aggregator = make_aggregator(provider, clock, resolution=1, period=1, sink=sink)
            with pytest.raises(ProviderError):
                asyncio.run(run_and_drain(aggregator, 3))

        sink.send.assert_not_called()
        assert aggregator.window.is_empty()

    def test_failure_mid_window_keeps_batch_unsent(self, clock):
        class FailingAfterOne(FakeProvider):
            def query_devices(self):
                if self.calls >= 1:
                    self.calls += 1
                    raise ProviderError("gpu lost")
                return super().query_devices()

        sink = Mock()
        with FailingAfterOne() as provider:
            aggregator = make_aggregator(provider, clock, period=600, sink=sink)
            with pytest.raises(ProviderError):
                asyncio.run(run_and_drain(aggregator, 3))

        sink.send.assert_not_called()
        assert aggregator.window.slots[0].counts == [1.0]
