"""Bounded work queue for processing recordings concurrently.

This module provides:
- BoundedWorkQueue: Runs a processor over items on at most N worker threads
- QueueResult, FailedItem: Outcome of a drained queue
- process_queue: One-shot helper around BoundedWorkQueue

Items are handed out to whichever worker is free, so completion order is
unspecified. The queue never retries; a processor that wants retries wraps
itself with retry_with_backoff. One item failing never stops the others,
and run() returns only once every item has been processed.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from plaudsync.core.config import DEFAULT_CONCURRENCY

T = TypeVar("T")


@dataclass
class FailedItem(Generic[T]):
    """An item whose processor raised."""

    item: T
    error: Exception


@dataclass
class QueueResult(Generic[T]):
    """Items that completed and items that failed."""

    succeeded: list[T] = field(default_factory=list)
    failed: list[FailedItem[T]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)


class BoundedWorkQueue(Generic[T]):
    """Runs a processor over items with bounded concurrency.

    Usage:
        work = BoundedWorkQueue(concurrency=3)
        result = work.run(recordings, process_one)
        for failure in result.failed:
            print(failure.item, failure.error)
    """

    def __init__(
        self,
        concurrency: int = DEFAULT_CONCURRENCY,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the queue.

        Args:
            concurrency: Maximum number of processors running at once.
            logger: Logger to use (defaults to this module's logger).
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self._concurrency = concurrency
        self._log = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()

    @property
    def concurrency(self) -> int:
        return self._concurrency

    def run(self, items: Sequence[T], processor: Callable[[T], object]) -> QueueResult[T]:
        """Process every item and wait for all of them to finish.

        Args:
            items: Items to process.
            processor: Called once per item; raising marks the item failed.

        Returns:
            QueueResult whose succeeded + failed covers every input item.
        """
        result: QueueResult[T] = QueueResult()
        if not items:
            return result

        tasks: queue.Queue[tuple[T] | None] = queue.Queue()
        for item in items:
            tasks.put((item,))

        worker_count = min(self._concurrency, len(items))
        # Poison pills to stop workers
        for _ in range(worker_count):
            tasks.put(None)

        workers = [
            threading.Thread(
                target=self._worker_loop,
                args=(tasks, processor, result),
                name=f"BoundedWorkQueue-{i}",
                daemon=True,
            )
            for i in range(worker_count)
        ]
        for worker in workers:
            worker.start()

        self._log.debug(f"Processing {len(items)} items with {worker_count} workers")

        for worker in workers:
            worker.join()

        self._log.debug(
            f"Queue drained: {len(result.succeeded)} succeeded, {len(result.failed)} failed"
        )
        return result

    def _worker_loop(
        self,
        tasks: queue.Queue[tuple[T] | None],
        processor: Callable[[T], object],
        result: QueueResult[T],
    ) -> None:
        """Main loop for worker threads."""
        while True:
            task = tasks.get()
            if task is None:
                # Poison pill - stop worker
                break

            (item,) = task
            try:
                processor(item)
            except Exception as e:
                with self._lock:
                    result.failed.append(FailedItem(item, e))
            else:
                with self._lock:
                    result.succeeded.append(item)


def process_queue(
    items: Sequence[T],
    processor: Callable[[T], object],
    concurrency: int = DEFAULT_CONCURRENCY,
    logger: logging.Logger | None = None,
) -> QueueResult[T]:
    """Process items with bounded concurrency (see BoundedWorkQueue.run)."""
    return BoundedWorkQueue(concurrency, logger=logger).run(items, processor)
