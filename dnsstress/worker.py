"""
Load-generating workers.

Each worker is bound to one target domain and sends queries for it
as fast as the transport allows, reporting a BatchSummary to the
aggregator after every batch.
"""

import asyncio
import logging
import time
from typing import Optional

from .models import BatchSummary, StressConfig
from .query_engine import build_query_for, random_query_id
from .transports import BaseTransport, TransportError

logger = logging.getLogger(__name__)


class Worker:
    """
    Sends queries for a single domain in an endless loop.

    The loop only stops when ``stop`` is set (checked between batches)
    or after ``config.max_batches`` batches.
    """

    def __init__(
        self,
        worker_id: int,
        domain: str,
        transport: BaseTransport,
        config: StressConfig,
    ):
        self.worker_id = worker_id
        self.domain = domain
        self.transport = transport
        self.config = config
        self.message = build_query_for(domain, config)

        self.batches = 0
        self.dispatched = 0

        # Flood mode keeps references so detached tasks are not collected
        self._detached: set[asyncio.Task] = set()
        self._crash: Optional[BaseException] = None
        self._flood_slots: Optional[asyncio.Semaphore] = None
        if config.flood and config.flood_limit:
            self._flood_slots = asyncio.Semaphore(config.flood_limit)

    @property
    def outstanding(self) -> int:
        """Detached flood queries still in flight."""
        return len(self._detached)

    def _should_continue(self, stop: Optional[asyncio.Event]) -> bool:
        if stop is not None and stop.is_set():
            return False
        if self.config.max_batches is not None and self.batches >= self.config.max_batches:
            return False
        return True

    async def run(
        self,
        queue: asyncio.Queue,
        stop: Optional[asyncio.Event] = None,
    ) -> None:
        """
        Run batches until stopped.

        Args:
            queue: Shared bounded queue of BatchSummary values
            stop: Event checked between batches
        """
        logger.debug("Starting worker #%d for %s", self.worker_id, self.domain)
        while self._should_continue(stop):
            if self.config.flood:
                await self.flood_batch()
            else:
                summary = await self.measured_batch()
                # Blocks while the queue is full
                await queue.put(summary)
            self.batches += 1
        self._raise_crash()
        logger.debug("Worker #%d stopped after %d batches", self.worker_id, self.batches)

    def _next_message(self):
        if self.config.random_ids:
            # Some servers drop repeated queries that share an id
            self.message.id = random_query_id()
        self.dispatched += 1
        return self.message

    async def measured_batch(self) -> BatchSummary:
        """Send one batch, waiting for and timing each reply."""
        errors = 0
        elapsed = 0
        max_elapsed = 0

        for _ in range(self.config.batch_size):
            message = self._next_message()
            start = time.perf_counter_ns()
            try:
                await self.transport.exchange(message)
            except TransportError as e:
                errors += 1
                if self.config.verbose:
                    logger.debug(
                        "%s error: %s (%s)", self.domain, e, self.config.destination
                    )
            spent = time.perf_counter_ns() - start
            elapsed += spent
            max_elapsed = max(max_elapsed, spent)

        return BatchSummary(
            sent=self.config.batch_size,
            errors=errors,
            total_elapsed_ns=elapsed,
            max_elapsed_ns=max_elapsed,
        )

    async def flood_batch(self) -> None:
        """
        Fire one batch of queries without waiting for replies.

        Raises:
            Exception: The first unexpected error of a detached query
        """
        self._raise_crash()
        for _ in range(self.config.batch_size):
            wire = self._next_message().to_wire()
            if self._flood_slots is not None:
                await self._flood_slots.acquire()
            task = asyncio.create_task(self._fire(wire))
            self._detached.add(task)
            task.add_done_callback(self._detached_done)
        # Let the detached sends make progress
        await asyncio.sleep(0)
        self._raise_crash()

    def _detached_done(self, task: asyncio.Task) -> None:
        self._detached.discard(task)
        if task.cancelled() or self._crash is not None:
            return
        # TransportError is handled in _fire, anything else is a bug
        self._crash = task.exception()

    def _raise_crash(self) -> None:
        if self._crash is not None:
            raise self._crash

    async def _fire(self, wire: bytes) -> None:
        try:
            await self.transport.send(wire)
        except TransportError as e:
            # Flood results are discarded
            if self.config.verbose:
                logger.debug("%s flood error: %s", self.domain, e)
        finally:
            if self._flood_slots is not None:
                self._flood_slots.release()

    async def close(self) -> None:
        """Cancel detached flood queries still in flight."""
        pending = list(self._detached)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._detached.clear()
