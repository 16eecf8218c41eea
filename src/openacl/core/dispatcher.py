"""Fan-out executor for the parallel pipeline stages.

One worker runs every item in input order on the calling thread. More than
one worker submits the items to a bounded ThreadPoolExecutor and collects
them as they complete, so result order is not guaranteed and callers must
join results back by key.

A failing item is logged and left out of the results; its siblings keep
running. The timeout covers the whole batch: when it expires, finished
results are kept and the unfinished workers are abandoned.
"""

from __future__ import annotations

import contextvars
import logging
import time
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from openacl.exceptions import DispatchError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class DispatchResult(Generic[T, R]):
    """Outcome of one dispatched batch."""

    completed: list[tuple[T, R]] = field(default_factory=list)
    failed: dict[str, BaseException] = field(default_factory=dict)
    timed_out: list[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def results(self) -> list[R]:
        return [result for _, result in self.completed]

    @property
    def is_complete(self) -> bool:
        return not self.failed and not self.timed_out


class Dispatcher:
    """Run a unit of work over a batch of items with a fixed worker count."""

    def __init__(
        self,
        worker_count: int = 1,
        timeout: float | None = None,
        name: str = "dispatch",
    ):
        if worker_count < 1:
            raise DispatchError(
                "Worker count must be at least 1",
                details={"worker_count": worker_count},
            )
        self.worker_count = worker_count
        self.timeout = timeout
        self.name = name

    @property
    def is_sequential(self) -> bool:
        return self.worker_count == 1

    def map(
        self,
        items: Iterable[T],
        unit_of_work: Callable[[T], R],
        key: Callable[[T], str] = str,
    ) -> DispatchResult[T, R]:
        """Apply *unit_of_work* to every item.

        Args:
            items: Inputs to process
            unit_of_work: Callable applied to each item
            key: Produces the identifier used when logging and reporting
                failed or timed-out items

        Returns:
            DispatchResult with (item, result) pairs for the items that
            finished, plus the keys of failed and timed-out items
        """
        batch = list(items)
        start = time.monotonic()
        if self.is_sequential or len(batch) <= 1:
            result = self._map_sequential(batch, unit_of_work, key, start)
        else:
            result = self._map_parallel(batch, unit_of_work, key, start)
        result.elapsed_seconds = round(time.monotonic() - start, 3)

        logger.debug(
            "%s: %d items, %d completed, %d failed, %d timed out in %.3fs",
            self.name,
            len(batch),
            len(result.completed),
            len(result.failed),
            len(result.timed_out),
            result.elapsed_seconds,
        )
        return result

    def _map_sequential(
        self,
        batch: list[T],
        unit_of_work: Callable[[T], R],
        key: Callable[[T], str],
        start: float,
    ) -> DispatchResult[T, R]:
        result: DispatchResult[T, R] = DispatchResult()
        for index, item in enumerate(batch):
            if self.timeout is not None and time.monotonic() - start > self.timeout:
                result.timed_out.extend(key(pending) for pending in batch[index:])
                logger.warning(
                    "%s: batch timeout (%ss) reached, %d items not processed",
                    self.name,
                    self.timeout,
                    len(batch) - index,
                )
                break
            try:
                result.completed.append((item, unit_of_work(item)))
            except Exception as e:
                self._record_failure(result, key(item), e)
        return result

    def _map_parallel(
        self,
        batch: list[T],
        unit_of_work: Callable[[T], R],
        key: Callable[[T], str],
        start: float,
    ) -> DispatchResult[T, R]:
        result: DispatchResult[T, R] = DispatchResult()
        executor = ThreadPoolExecutor(
            max_workers=self.worker_count,
            thread_name_prefix=f"openacl-{self.name}",
        )
        future_to_item: dict[Future[R], T] = {
            # each worker runs in a copy of the caller's context (run ID for log records)
            executor.submit(contextvars.copy_context().run, unit_of_work, item): item for item in batch
        }

        collected: set[Future[R]] = set()

        def collect(future: Future[R]) -> None:
            collected.add(future)
            item = future_to_item[future]
            try:
                result.completed.append((item, future.result()))
            except Exception as e:
                self._record_failure(result, key(item), e)

        try:
            for future in as_completed(future_to_item, timeout=self.timeout):
                collect(future)
        except TimeoutError:
            for future, item in future_to_item.items():
                if future in collected:
                    continue
                if future.done():
                    collect(future)
                else:
                    result.timed_out.append(key(item))
            logger.warning(
                "%s: batch timeout (%ss) after %.1fs, abandoning %d items: %s",
                self.name,
                self.timeout,
                time.monotonic() - start,
                len(result.timed_out),
                result.timed_out[:10],
            )
        finally:
            executor.shutdown(wait=not result.timed_out, cancel_futures=True)

        return result

    def _record_failure(self, result: DispatchResult[T, R], item_key: str, error: Exception) -> None:
        logger.error("%s: item %s failed: %s", self.name, item_key, error)
        result.failed[item_key] = error


def dispatch(
    items: Iterable[T],
    worker_count: int,
    unit_of_work: Callable[[T], R],
) -> list[R]:
    """Run *unit_of_work* over *items* and return the successful results."""
    return Dispatcher(worker_count).map(items, unit_of_work).results
