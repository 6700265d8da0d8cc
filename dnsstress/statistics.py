"""
Statistics aggregation for dnsstress.

The aggregator is the single consumer of worker batch summaries:
- Folds every BatchSummary into running totals
- Turns the totals into rate/latency figures once per display tick
- Summarises the whole run from the per-interval history
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

import numpy as np

from .models import BatchSummary, IntervalStats, RunSummary, StressConfig

logger = logging.getLogger(__name__)


@dataclass
class GlobalStatsState:
    """Accumulators owned by the aggregator."""

    # Since the last tick
    sent: int = 0
    errors: int = 0
    elapsed_ns: int = 0
    max_elapsed_ns: int = 0

    # Since the aggregator started
    batches_received: int = 0
    total_sent: int = 0
    total_errors: int = 0

    def reset_interval(self) -> None:
        self.sent = 0
        self.errors = 0
        self.elapsed_ns = 0
        self.max_elapsed_ns = 0


class StatsAggregator:
    """
    Folds batch summaries into interval statistics.

    All methods run on the event loop thread, so the state needs
    no locking.
    """

    def __init__(
        self,
        config: StressConfig,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the aggregator.

        Args:
            config: Run configuration
            clock: Monotonic clock in seconds, used to time intervals
        """
        self.config = config
        self.clock = clock
        self.state = GlobalStatsState()
        self.history: list[IntervalStats] = []
        self._last_tick = clock()

    @property
    def batches_received(self) -> int:
        return self.state.batches_received

    @property
    def total_sent(self) -> int:
        return self.state.total_sent

    @property
    def total_errors(self) -> int:
        return self.state.total_errors

    @property
    def pending(self) -> bool:
        """Whether anything arrived since the last tick."""
        return self.state.sent > 0

    def start(self) -> None:
        """Start timing the first interval from now."""
        self._last_tick = self.clock()

    def ingest(self, summary: BatchSummary) -> None:
        """Add one batch to the running totals."""
        state = self.state
        state.sent += summary.sent
        state.errors += summary.errors
        state.elapsed_ns += summary.total_elapsed_ns
        state.max_elapsed_ns = max(state.max_elapsed_ns, summary.max_elapsed_ns)

        state.batches_received += 1
        state.total_sent += summary.sent
        state.total_errors += summary.errors

    async def drain(self, queue: asyncio.Queue) -> None:
        """Consume the queue forever so workers never stay blocked."""
        while True:
            summary = await queue.get()
            try:
                self.ingest(summary)
            finally:
                queue.task_done()

    def drain_pending(self, queue: asyncio.Queue) -> int:
        """Ingest whatever is queued right now without waiting."""
        count = 0
        while True:
            try:
                summary = queue.get_nowait()
            except asyncio.QueueEmpty:
                return count
            self.ingest(summary)
            queue.task_done()
            count += 1

    def tick(self) -> IntervalStats:
        """
        Close the current interval.

        Computes the request rate over the wall-clock time since the
        previous tick and the average/peak latency of the queries
        reported in it, then resets the interval accumulators.
        """
        now = self.clock()
        elapsed_s = now - self._last_tick
        self._last_tick = now

        state = self.state
        rate = state.sent / elapsed_s if elapsed_s > 0 else 0.0
        avg_latency_ms = None
        if state.sent > 0:
            avg_latency_ms = state.elapsed_ns / state.sent / 1_000_000

        stats = IntervalStats(
            sent=state.sent,
            errors=state.errors,
            elapsed_s=elapsed_s,
            rate=rate,
            avg_latency_ms=avg_latency_ms,
            max_latency_ms=state.max_elapsed_ns / 1_000_000,
        )
        state.reset_interval()
        self.history.append(stats)
        return stats


def summarize_run(
    history: list[IntervalStats],
    config: StressConfig,
    domains: list[str],
    started_at: datetime,
    completed_at: Optional[datetime] = None,
) -> RunSummary:
    """
    Summarise a run from its interval history.

    Args:
        history: IntervalStats in the order they were produced
        config: Run configuration
        domains: Target domains of the run
        started_at: When the run started
        completed_at: When the run ended (defaults to now)

    Returns:
        RunSummary with totals, rates and latency figures
    """
    summary = RunSummary(
        started_at=started_at,
        completed_at=completed_at or datetime.now(),
        destination=config.destination,
        transport=config.transport,
        domains=list(domains),
        concurrency=config.concurrency,
        intervals=len(history),
    )
    if not history:
        return summary

    sent = np.array([s.sent for s in history], dtype=np.int64)
    errors = np.array([s.errors for s in history], dtype=np.int64)
    rates = np.array([s.rate for s in history], dtype=float)

    summary.total_sent = int(sent.sum())
    summary.total_errors = int(errors.sum())
    summary.mean_rate = float(np.mean(rates))
    summary.peak_rate = float(np.max(rates))
    summary.max_latency_ms = float(max(s.max_latency_ms for s in history))

    measured = [s for s in history if s.avg_latency_ms is not None]
    if measured:
        averages = np.array([s.avg_latency_ms for s in measured], dtype=float)
        weights = np.array([s.sent for s in measured], dtype=float)
        # Weighted by queries per interval
        summary.avg_latency_ms = float(np.average(averages, weights=weights))
        summary.p95_latency_ms = float(np.percentile(averages, 95))

    return summary
