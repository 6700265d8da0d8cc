"""End-to-end tests for the stress runner."""

import asyncio

import pytest

from dnsstress.models import StressConfig
from dnsstress.runner import StressRunner
from tests.conftest import FakeTransport, HangingTransport


@pytest.mark.asyncio
async def test_one_batch_per_worker_is_reported():
    config = StressConfig(
        concurrency=4, batch_size=5, max_batches=1, display_interval_ms=60_000,
    )
    transport = FakeTransport(delay=0.01)
    reports = []
    runner = StressRunner(config, ["example.com."], transport=transport, reporter=reports.append)

    summary = await asyncio.wait_for(runner.run(), timeout=5)

    assert len(reports) == 1
    stats = reports[0]
    assert stats.sent == 20
    assert stats.errors == 0
    assert 8.0 <= stats.avg_latency_ms <= 60.0
    assert stats.max_latency_ms <= 60.0
    assert runner.aggregator.batches_received == 4
    # One pre-flight query plus 4 workers x 5
    assert transport.calls == 21
    assert transport.closed
    assert summary.total_sent == 20
    assert summary.total_errors == 0


@pytest.mark.asyncio
async def test_workers_are_bound_round_robin():
    config = StressConfig(concurrency=5, batch_size=1, max_batches=1)
    domains = ["a.example.", "b.example.", "c.example."]
    runner = StressRunner(config, domains, transport=FakeTransport(), reporter=lambda stats: None)

    await asyncio.wait_for(runner.run(), timeout=5)

    assert [w.domain for w in runner.workers] == [
        "a.example.", "b.example.", "c.example.", "a.example.", "b.example.",
    ]


@pytest.mark.asyncio
async def test_preflight_failure_is_only_a_warning():
    config = StressConfig(concurrency=2, batch_size=5, max_batches=2)
    transport = FakeTransport(fail=lambda call: True)
    warnings = []
    reports = []
    runner = StressRunner(
        config,
        ["example.com."],
        transport=transport,
        reporter=reports.append,
        on_warning=warnings.append,
    )

    summary = await asyncio.wait_for(runner.run(), timeout=5)

    assert len(warnings) == 1
    assert summary.total_sent == 20
    assert summary.total_errors == 20
    assert sum(r.errors for r in reports) == 20


@pytest.mark.asyncio
async def test_display_loop_reports_every_interval():
    config = StressConfig(
        concurrency=2, batch_size=5, display_interval_ms=50, duration=0.3,
    )
    transport = FakeTransport(delay=0.001)
    reports = []
    runner = StressRunner(config, ["example.com."], transport=transport, reporter=reports.append)

    summary = await asyncio.wait_for(runner.run(), timeout=5)

    assert len(reports) >= 3
    assert sum(r.sent for r in reports) == runner.aggregator.total_sent
    assert summary.total_sent == runner.aggregator.total_sent
    assert summary.total_sent > 0
    assert all(r.errors == 0 for r in reports)


@pytest.mark.asyncio
async def test_stop_event_ends_run():
    config = StressConfig(concurrency=3, batch_size=5)
    stop = asyncio.Event()
    runner = StressRunner(config, ["example.com."], transport=FakeTransport(delay=0.001))

    asyncio.get_running_loop().call_later(0.1, stop.set)
    summary = await asyncio.wait_for(runner.run(stop), timeout=5)

    assert all(w.batches > 0 for w in runner.workers)
    assert summary.total_sent == runner.aggregator.total_sent
    assert runner.queue.empty()


@pytest.mark.asyncio
async def test_flood_mode_sends_nothing_to_the_queue():
    config = StressConfig(concurrency=4, batch_size=5, flood=True, display_interval_ms=10)
    transport = FakeTransport(delay=0.001)
    reports = []
    stop = asyncio.Event()
    runner = StressRunner(config, ["example.com."], transport=transport, reporter=reports.append)

    asyncio.get_running_loop().call_later(0.1, stop.set)
    summary = await asyncio.wait_for(runner.run(stop), timeout=5)

    assert runner.aggregator.batches_received == 0
    assert runner.queue.empty()
    assert reports == []
    assert summary.total_sent == 0
    assert transport.calls > 1
    assert all(w.outstanding == 0 for w in runner.workers)


@pytest.mark.asyncio
async def test_worker_crash_propagates():
    config = StressConfig(concurrency=2, batch_size=5, shutdown_grace=0.1)
    transport = FakeTransport(crash_after=3)
    runner = StressRunner(config, ["example.com."], transport=transport, reporter=lambda stats: None)

    with pytest.raises(RuntimeError, match="transport bug"):
        await asyncio.wait_for(runner.run(), timeout=5)
    assert transport.closed


@pytest.mark.asyncio
async def test_first_interval_reports_one_batch_per_worker():
    config = StressConfig(
        concurrency=4, batch_size=5, display_interval_ms=200, shutdown_grace=0.1,
    )
    # One pre-flight query plus 4 workers x 5 answer, the rest never do
    transport = FakeTransport(delay=0.01, hang_after=21)
    stop = asyncio.Event()
    reports = []
    stopped_before = []

    def reporter(stats):
        stopped_before.append(stop.is_set())
        reports.append(stats)
        stop.set()

    runner = StressRunner(config, ["example.com."], transport=transport, reporter=reporter)

    await asyncio.wait_for(runner.run(stop), timeout=5)

    assert stopped_before[0] is False
    assert len(reports) == 1
    first = reports[0]
    assert first.sent == 20
    assert first.errors == 0
    assert 8.0 <= first.avg_latency_ms <= 60.0


@pytest.mark.asyncio
async def test_stop_during_preflight_ends_run():
    config = StressConfig(concurrency=2, duration=0.2, shutdown_grace=0.1)
    transport = HangingTransport()
    stop = asyncio.Event()
    runner = StressRunner(config, ["example.com."], transport=transport, reporter=lambda stats: None)

    asyncio.get_running_loop().call_later(0.1, stop.set)
    summary = await asyncio.wait_for(runner.run(stop), timeout=2)

    assert runner.workers == []
    assert transport.calls == 1
    assert transport.closed
    assert summary.total_sent == 0


@pytest.mark.asyncio
async def test_duration_ends_a_hanging_preflight():
    config = StressConfig(concurrency=2, duration=0.1, shutdown_grace=0.1)
    transport = HangingTransport()
    runner = StressRunner(config, ["example.com."], transport=transport, reporter=lambda stats: None)

    summary = await asyncio.wait_for(runner.run(), timeout=2)

    assert runner.workers == []
    assert summary.intervals == 0


@pytest.mark.asyncio
async def test_flood_worker_crash_propagates():
    config = StressConfig(concurrency=2, batch_size=5, flood=True, duration=0.1, shutdown_grace=0.1)
    transport = FakeTransport(crash_after=1)
    runner = StressRunner(config, ["example.com."], transport=transport, reporter=lambda stats: None)

    with pytest.raises(RuntimeError, match="transport bug"):
        await asyncio.wait_for(runner.run(), timeout=5)
    assert transport.closed


@pytest.mark.asyncio
async def test_status_lines_reach_on_info():
    config = StressConfig(concurrency=2, batch_size=1, max_batches=1)
    messages = []
    runner = StressRunner(
        config,
        ["example.com."],
        transport=FakeTransport(),
        reporter=lambda stats: None,
        on_info=messages.append,
    )

    await asyncio.wait_for(runner.run(), timeout=5)

    assert messages == ["Started 2 workers."]


@pytest.mark.asyncio
async def test_flood_mode_announces_silence():
    config = StressConfig(concurrency=1, batch_size=1, max_batches=1, flood=True)
    messages = []
    runner = StressRunner(
        config, ["example.com."], transport=FakeTransport(), on_info=messages.append,
    )

    await asyncio.wait_for(runner.run(), timeout=5)

    assert messages == ["Started 1 workers.", "Flooding mode, nothing will be printed."]


def test_runner_needs_domains():
    with pytest.raises(ValueError):
        StressRunner(StressConfig(), [], transport=FakeTransport())
