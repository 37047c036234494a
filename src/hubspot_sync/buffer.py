"""
Batching buffer between the fetchers and the downstream sink.

push() only appends; when the pending batch grows past the threshold the
whole batch is detached (snapshot-and-clear) and flushed by a background
task, so enqueuing never waits for the sink. drain() waits for every
in-flight flush, then flushes the sub-threshold remainder.

One buffer is constructed per account sweep and never shared.
"""

import asyncio

import structlog

from .clients.sink_client import ActionSink
from .errors import FlushError
from .models.action import Action

logger = structlog.get_logger(__name__)

DEFAULT_BATCH_SIZE = 2000


class ActionBuffer:
    """
    Bounded in-memory buffer of actions with asynchronous auto-flush.

    Invariant: once drain() has returned, every pushed action has been
    handed to exactly one sink.send() call, in push order within each batch.
    """

    def __init__(self, sink: ActionSink, batch_size: int = DEFAULT_BATCH_SIZE):
        self.sink = sink
        self.batch_size = batch_size
        self._pending: list[Action] = []
        self._in_flight: set[asyncio.Task] = set()
        self._failures: list[BaseException] = []
        self.pushed_count = 0
        self.flushed_count = 0
        self.flush_count = 0

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def in_flight(self) -> int:
        """Number of auto-flushes that have not completed yet."""
        return len(self._in_flight)

    async def push(self, action: Action) -> None:
        """
        Append an action; start a background flush once the batch exceeds batch_size.

        The flush is started (the sink call is issued) before push returns,
        but push does not wait for it to complete.
        """
        self._pending.append(action)
        self.pushed_count += 1

        if len(self._pending) > self.batch_size:
            batch = self._detach()
            logger.info('buffer.flush_started', count=len(batch))
            task = asyncio.create_task(self._flush(batch))
            self._in_flight.add(task)
            task.add_done_callback(self._flush_done)
            # Yield once so the flush reaches the sink before enqueuing resumes
            await asyncio.sleep(0)

    def _flush_done(self, task: asyncio.Task) -> None:
        self._in_flight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error('buffer.flush_failed', error=str(exc), error_type=type(exc).__name__)
            self._failures.append(exc)

    def _detach(self) -> list[Action]:
        batch = self._pending
        self._pending = []
        return batch

    async def _flush(self, batch: list[Action]) -> int:
        delivered = await self.sink.send(batch)
        self.flushed_count += len(batch)
        self.flush_count += 1
        return delivered

    async def drain(self) -> int:
        """
        Wait for all in-flight flushes, then flush the remainder.

        The remainder is flushed even when an earlier auto-flush failed.

        Returns:
            Total number of actions flushed by this buffer so far

        Raises:
            FlushError: the first flush failure, after everything else was attempted
        """
        if self._in_flight:
            # Failures are collected by _flush_done as each task finishes
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

        errors = list(self._failures)
        self._failures.clear()

        remainder = self._detach()
        if remainder:
            try:
                await self._flush(remainder)
            except FlushError as exc:
                errors.append(exc)

        if errors:
            lost = self.pushed_count - self.flushed_count
            logger.error(
                'buffer.drain_failed',
                failures=len(errors),
                unflushed=lost,
                error=str(errors[0]),
            )
            first = errors[0]
            if isinstance(first, FlushError):
                raise first
            raise FlushError(
                'Flushing actions failed',
                context={'unflushed': lost, 'original_error': str(first)},
            ) from first

        logger.info(
            'buffer.drained',
            pushed=self.pushed_count,
            flushed=self.flushed_count,
            flushes=self.flush_count,
        )
        return self.flushed_count
