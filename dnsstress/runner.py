"""
Run orchestration for dnsstress.

Starts the workers, the aggregator drain loop and the display loop,
and shuts everything down when the run is stopped:
- Pre-flight check of every target domain (warnings only)
- One worker task per concurrency slot, sharing a bounded queue
- Periodic display of interval statistics (not in flood mode)
- Graceful shutdown on a stop event, a duration or a batch limit
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from .models import IntervalStats, RunSummary, StressConfig
from .output import ConsoleOutput
from .query_engine import check_domains
from .statistics import StatsAggregator, summarize_run
from .transports import BaseTransport, create_transport
from .worker import Worker

logger = logging.getLogger(__name__)


# Type for interval display callback
Reporter = Callable[[IntervalStats], None]

# Type for pre-flight warning and status callbacks
WarningCallback = Callable[[str], None]
InfoCallback = Callable[[str], None]


class StressRunner:
    """
    Drives one stress run against a resolver or DoH endpoint.

    Workers are bound round-robin to the target domains and push a
    BatchSummary per batch into a queue holding at most ``concurrency``
    items; the aggregator drains it and the display loop reports the
    interval statistics.
    """

    def __init__(
        self,
        config: StressConfig,
        domains: list[str],
        transport: Optional[BaseTransport] = None,
        reporter: Optional[Reporter] = None,
        on_warning: Optional[WarningCallback] = None,
        on_info: Optional[InfoCallback] = None,
    ):
        """
        Initialize the runner.

        Args:
            config: Run configuration
            domains: Fully qualified target domains (at least one)
            transport: Transport to use (default: built from config)
            reporter: Called with every IntervalStats
            on_warning: Called with the pre-flight warning, if any
            on_info: Called with status lines (workers started, flood mode)
        """
        if not domains:
            raise ValueError("at least one target domain is required")

        self.config = config
        self.domains = list(domains)
        self.transport = transport or create_transport(config)
        self.reporter = reporter or ConsoleOutput.print
        self.on_warning = on_warning
        self.on_info = on_info
        self.aggregator = StatsAggregator(config)
        self.workers: list[Worker] = []
        self.queue: Optional[asyncio.Queue] = None

    def _create_workers(self) -> list[Worker]:
        return [
            Worker(
                worker_id,
                self.domains[worker_id % len(self.domains)],
                self.transport,
                self.config,
            )
            for worker_id in range(self.config.concurrency)
        ]

    def _notify(self, message: str) -> None:
        logger.debug(message)
        if self.on_info:
            self.on_info(message)

    async def preflight(self) -> list[str]:
        """Check every domain once; failures are reported, not fatal."""
        failed = await check_domains(self.transport, self.domains, self.config)
        if failed:
            message = "Could not resolve some domains you provided, you may receive only errors."
            logger.warning(message)
            if self.on_warning:
                self.on_warning(message)
        return failed

    async def _display_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.display_interval)
            self.reporter(self.aggregator.tick())

    async def _preflight_or_stop(self, stop_waiter: asyncio.Task) -> bool:
        """Run the pre-flight check; False when the run is stopped first."""
        preflight_task = asyncio.create_task(self.preflight(), name="preflight")
        try:
            await asyncio.wait(
                [preflight_task, stop_waiter],
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            preflight_task.cancel()
            raise
        if not preflight_task.done():
            preflight_task.cancel()
            await asyncio.gather(preflight_task, return_exceptions=True)
            logger.debug("Stopped during the pre-flight check")
            return False
        preflight_task.result()
        return True

    async def run(self, stop: Optional[asyncio.Event] = None) -> RunSummary:
        """
        Run until stopped.

        The run ends when ``stop`` is set, when ``config.duration``
        elapses, or when every worker has run ``config.max_batches``
        batches. With none of these it runs until the process is
        interrupted. Stopping during the pre-flight check ends the
        run before any worker starts.

        Args:
            stop: Event that ends the run when set

        Returns:
            RunSummary of the whole run
        """
        stop = stop or asyncio.Event()
        started_at = datetime.now()
        loop = asyncio.get_running_loop()

        deadline = None
        if self.config.duration is not None:
            deadline = loop.call_later(self.config.duration, stop.set)
        stop_waiter = asyncio.create_task(stop.wait(), name="stop")

        try:
            if await self._preflight_or_stop(stop_waiter):
                await self._run_workers(stop, stop_waiter)
            else:
                await self.transport.close()
        finally:
            if deadline is not None:
                deadline.cancel()
            stop_waiter.cancel()

        return summarize_run(
            self.aggregator.history,
            self.config,
            self.domains,
            started_at,
        )

    async def _run_workers(self, stop: asyncio.Event, stop_waiter: asyncio.Task) -> None:
        self.queue = asyncio.Queue(maxsize=self.config.concurrency)
        self.workers = self._create_workers()
        worker_tasks = [
            asyncio.create_task(worker.run(self.queue, stop), name=f"worker-{worker.worker_id}")
            for worker in self.workers
        ]
        self.aggregator.start()
        self._notify(f"Started {len(worker_tasks)} workers.")

        # The drain loop runs even in flood mode so producers never block
        drain_task = asyncio.create_task(self.aggregator.drain(self.queue), name="drain")
        display_task = None
        if self.config.flood:
            self._notify("Flooding mode, nothing will be printed.")
        else:
            display_task = asyncio.create_task(self._display_loop(), name="display")

        try:
            remaining = set(worker_tasks)
            while remaining and not stop.is_set():
                done, _ = await asyncio.wait(
                    [stop_waiter, *remaining],
                    return_when=asyncio.FIRST_COMPLETED,
                )
                for task in done - {stop_waiter}:
                    remaining.discard(task)
                    # A crashed worker ends the run
                    if task.exception() is not None:
                        raise task.exception()
        finally:
            stop.set()
            await self._shutdown(worker_tasks, drain_task, display_task)

    async def _shutdown(
        self,
        worker_tasks: list[asyncio.Task],
        drain_task: asyncio.Task,
        display_task: Optional[asyncio.Task],
    ) -> None:
        """Stop workers, flush the queue and report the last interval."""
        pending = [t for t in worker_tasks if not t.done()]
        if pending:
            # Workers check the stop event between batches
            _, pending = await asyncio.wait(pending, timeout=self.config.shutdown_grace)
        for task in pending:
            task.cancel()
        if pending:
            logger.debug("Cancelled %d workers still in a batch", len(pending))
        await asyncio.gather(*worker_tasks, return_exceptions=True)

        if display_task is not None:
            display_task.cancel()
        drain_task.cancel()
        await asyncio.gather(
            *(t for t in (display_task, drain_task) if t is not None),
            return_exceptions=True,
        )
        self.aggregator.drain_pending(self.queue)

        if not self.config.flood and self.aggregator.pending:
            self.reporter(self.aggregator.tick())

        for worker in self.workers:
            await worker.close()
        await self.transport.close()
        logger.debug(
            "Run finished: %d batches, %d queries, %d errors",
            self.aggregator.batches_received,
            self.aggregator.total_sent,
            self.aggregator.total_errors,
        )
