"""Bounded concurrent batch execution."""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class BatchOutcome(Generic[T, R]):
    item: T
    result: R | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchRun(Generic[T, R]):
    outcomes: list[BatchOutcome[T, R]] = field(default_factory=list)
    batches_completed: int = 0
    cancelled: bool = False

    @property
    def succeeded(self) -> list[BatchOutcome[T, R]]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[BatchOutcome[T, R]]:
        return [o for o in self.outcomes if not o.ok]


def chunked(items: Sequence[T], size: int) -> list[Sequence[T]]:
    return [items[idx : idx + size] for idx in range(0, len(items), size)]


def process_in_batches(
    items: Sequence[T],
    worker: Callable[[T], R],
    *,
    batch_size: int,
    max_workers: int,
    batch_delay_ms: int = 0,
    cancel_event: threading.Event | None = None,
    on_batch_done: Callable[[int, list[BatchOutcome[T, R]]], Any] | None = None,
) -> BatchRun[T, R]:
    """Run ``worker`` over ``items`` in fixed-size batches.

    Every item of a batch finishes before the next batch starts. Exceptions
    raised by ``worker`` are captured per item. The cancel event is checked
    between batches only, so a batch in flight always completes.
    """
    run: BatchRun[T, R] = BatchRun()
    batches = chunked(items, batch_size)
    if not batches:
        return run

    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, batch_size))) as pool:
        for index, batch in enumerate(batches):
            if cancel_event is not None and cancel_event.is_set():
                run.cancelled = True
                break
            futures = [(item, pool.submit(worker, item)) for item in batch]
            batch_outcomes: list[BatchOutcome[T, R]] = []
            for item, future in futures:
                try:
                    batch_outcomes.append(BatchOutcome(item=item, result=future.result()))
                except Exception as exc:
                    batch_outcomes.append(BatchOutcome(item=item, error=exc))
            run.outcomes.extend(batch_outcomes)
            run.batches_completed += 1
            if on_batch_done is not None:
                on_batch_done(index, batch_outcomes)
            if batch_delay_ms > 0 and index < len(batches) - 1:
                time.sleep(batch_delay_ms / 1000.0)
    return run
