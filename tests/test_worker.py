"""Tests for the load-generating worker."""

import asyncio

import pytest

from dnsstress.models import BatchSummary, StressConfig
from dnsstress.worker import Worker
from tests.conftest import FakeTransport, HangingTransport


@pytest.mark.asyncio
async def test_measured_batch_counts_errors(config):
    transport = FakeTransport(delay=0.001, fail=lambda call: call % 2 == 0)
    worker = Worker(0, "example.com.", transport, config)

    summary = await worker.measured_batch()

    assert isinstance(summary, BatchSummary)
    assert summary.sent == config.batch_size
    assert summary.errors == 2
    assert 0 < summary.max_elapsed_ns <= summary.total_elapsed_ns
    assert transport.calls == 5
    assert worker.dispatched == 5


@pytest.mark.asyncio
async def test_run_reports_every_batch():
    config = StressConfig(concurrency=1, batch_size=3, max_batches=4)
    transport = FakeTransport()
    queue = asyncio.Queue()
    worker = Worker(0, "example.com.", transport, config)

    await worker.run(queue)

    summaries = [queue.get_nowait() for _ in range(queue.qsize())]
    assert len(summaries) == 4
    assert all(s.sent == 3 and s.errors <= s.sent for s in summaries)
    assert worker.batches == 4
    assert transport.calls == 12
    assert set(transport.names) == {"example.com."}


@pytest.mark.asyncio
async def test_run_stops_between_batches(config):
    stop = asyncio.Event()
    transport = FakeTransport()
    queue = asyncio.Queue()
    worker = Worker(0, "example.com.", transport, config)

    def stop_after_first_query(call):
        stop.set()
        return False

    transport.fail = stop_after_first_query
    await asyncio.wait_for(worker.run(queue, stop), timeout=1)

    # The batch that saw the stop still finishes
    assert worker.batches == 1
    assert transport.calls == config.batch_size
    assert queue.qsize() == 1


@pytest.mark.asyncio
async def test_run_blocks_on_full_queue():
    config = StressConfig(concurrency=1, batch_size=1, max_batches=3)
    queue = asyncio.Queue(maxsize=1)
    worker = Worker(0, "example.com.", FakeTransport(), config)

    task = asyncio.create_task(worker.run(queue))
    await asyncio.sleep(0.05)
    assert not task.done()
    assert queue.full()

    received = []
    while not task.done():
        received.append(await asyncio.wait_for(queue.get(), timeout=1))
        await asyncio.sleep(0.01)
    received.extend(queue.get_nowait() for _ in range(queue.qsize()))
    assert len(received) == 3
    assert worker.batches == 3


@pytest.mark.asyncio
async def test_fixed_id_without_random_ids(config):
    transport = FakeTransport()
    worker = Worker(0, "example.com.", transport, config)
    await worker.measured_batch()
    assert len(set(transport.ids)) == 1


@pytest.mark.asyncio
async def test_random_ids_change_per_query():
    config = StressConfig(concurrency=1, batch_size=50, random_ids=True)
    transport = FakeTransport()
    worker = Worker(0, "example.com.", transport, config)

    await worker.measured_batch()
    await worker.measured_batch()

    assert len(transport.ids) == 100
    assert all(0 <= i < 65536 for i in transport.ids)
    assert len(set(transport.ids)) > 1


@pytest.mark.asyncio
async def test_flood_batch_does_not_wait_or_report():
    config = StressConfig(concurrency=1, batch_size=5, flood=True, max_batches=2)
    transport = FakeTransport(delay=0.01)
    queue = asyncio.Queue()
    worker = Worker(0, "example.com.", transport, config)

    await worker.run(queue)
    assert queue.empty()
    assert worker.dispatched == 10

    await asyncio.sleep(0.05)
    assert transport.calls == 10
    assert worker.outstanding == 0


@pytest.mark.asyncio
async def test_flood_errors_are_discarded():
    config = StressConfig(concurrency=1, batch_size=5, flood=True, verbose=True)
    transport = FakeTransport(fail=lambda call: True)
    worker = Worker(0, "example.com.", transport, config)

    await worker.flood_batch()
    await asyncio.sleep(0.01)
    assert transport.calls == 5
    assert worker.outstanding == 0


@pytest.mark.asyncio
async def test_flood_crash_is_raised_by_a_later_batch():
    config = StressConfig(concurrency=1, batch_size=5, flood=True)
    transport = FakeTransport(crash_after=0)
    worker = Worker(0, "example.com.", transport, config)

    with pytest.raises(RuntimeError, match="transport bug"):
        for _ in range(3):
            await worker.flood_batch()
            await asyncio.sleep(0.01)
    assert transport.calls == 5
    assert worker.outstanding == 0


@pytest.mark.asyncio
async def test_flood_limit_caps_outstanding_queries():
    config = StressConfig(concurrency=1, batch_size=3, flood=True, flood_limit=3)
    transport = HangingTransport()
    worker = Worker(0, "example.com.", transport, config)

    await worker.flood_batch()
    assert worker.outstanding == 3

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(worker.flood_batch(), timeout=0.1)
    assert worker.outstanding == 3

    await worker.close()
    assert worker.outstanding == 0


@pytest.mark.asyncio
async def test_close_cancels_unanswered_flood_queries():
    config = StressConfig(concurrency=1, batch_size=4, flood=True)
    transport = HangingTransport()
    worker = Worker(0, "example.com.", transport, config)

    await worker.flood_batch()
    await worker.flood_batch()
    assert worker.outstanding == 8

    await worker.close()
    assert worker.outstanding == 0
