from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from itertools import islice
from typing import Any, Callable, Iterable, Iterator, List, Optional, Tuple, TypeVar

from ..domain.errors import ContractError
from ..domain.models import IngestReport
from ..infrastructure.logging import get_logger
from .deferred import Deferred

logger = get_logger("chroma_client.batching")

T = TypeVar("T")

Submit = Callable[[List[T]], "Deferred[Any]"]


def partition(records: Iterable[T], batch_size: int) -> Iterator[List[T]]:
    """Lazily split ``records`` into ordered batches of at most ``batch_size``."""
    if batch_size < 1:
        raise ContractError(f"batch_size must be >= 1, got {batch_size}")
    it = iter(records)
    while True:
        batch = list(islice(it, batch_size))
        if not batch:
            return
        yield batch


class BatchCursor:
    """Shared claim point over a batch stream.

    ``take`` hands each batch to exactly one caller, in partition order.
    After ``close`` (or exhaustion) every caller gets None.
    """

    def __init__(self, batches: Iterable[List[T]]) -> None:
        self._batches = iter(batches)
        self._lock = threading.Lock()
        self._next_index = 0
        self._closed = False

    def take(self) -> Optional[Tuple[int, List[T]]]:
        with self._lock:
            if self._closed:
                return None
            batch = next(self._batches, None)
            if batch is None:
                self._closed = True
                return None
            index = self._next_index
            self._next_index += 1
            return index, batch

    def close(self) -> None:
        with self._lock:
            self._closed = True

    @property
    def claimed(self) -> int:
        with self._lock:
            return self._next_index


class _Ingestion:
    """State shared by the workers of one ``ingest`` call."""

    def __init__(self, cursor: BatchCursor, submit: Submit, parallelism: int) -> None:
        self.cursor = cursor
        self.submit = submit
        self.done: Future = Future()
        self._lock = threading.Lock()
        self._running = parallelism
        self._batches = 0
        self._records = 0
        self._error: Optional[BaseException] = None

    def work(self, worker: int) -> None:
        try:
            while True:
                try:
                    claim = self.cursor.take()
                except Exception as ex:
                    logger.error("ingest source failed | worker=%d | %s", worker, ex)
                    self._fail(ex)
                    return
                if claim is None:
                    return
                index, batch = claim
                try:
                    self.submit(batch).result()
                except Exception as ex:
                    logger.error("ingest batch failed | worker=%d | batch=%d | size=%d | %s", worker, index, len(batch), ex)
                    self._fail(ex)
                    return
                with self._lock:
                    self._batches += 1
                    self._records += len(batch)
        finally:
            self._exit()

    def _fail(self, error: BaseException) -> None:
        with self._lock:
            if self._error is None:
                self._error = error
        self.cursor.close()

    def _exit(self) -> None:
        with self._lock:
            self._running -= 1
            if self._running:
                return
            error, report = self._error, IngestReport(batches=self._batches, records=self._records)
        if error is not None:
            self.done.set_exception(error)
        else:
            logger.info("ingest complete | batches=%d | records=%d", report.batches, report.records)
            self.done.set_result(report)


def ingest(records: Iterable[T], batch_size: int, parallelism: int, submit: Submit) -> Deferred[IngestReport]:
    """Submit ``records`` in batches through ``parallelism`` concurrent workers.

    Each worker claims the next unclaimed batch, waits for ``submit(batch)``
    and repeats until the stream is exhausted. The returned Deferred resolves
    once every worker has stopped. Completion order across workers is not
    defined when ``parallelism > 1``.

    On the first failed submit the stream is closed: other workers finish the
    batch they hold and stop, and that first error becomes the Deferred's
    error. Nothing is retried or rolled back, so earlier batches stay ingested.

    Raises:
        ContractError: ``batch_size`` or ``parallelism`` below 1.
    """
    if batch_size < 1:
        raise ContractError(f"batch_size must be >= 1, got {batch_size}")
    if parallelism < 1:
        raise ContractError(f"parallelism must be >= 1, got {parallelism}")
    state = _Ingestion(BatchCursor(partition(records, batch_size)), submit, parallelism)
    logger.info("ingest start | batch_size=%d | parallelism=%d", batch_size, parallelism)
    pool = ThreadPoolExecutor(max_workers=parallelism, thread_name_prefix="chroma-ingest")
    for worker in range(parallelism):
        pool.submit(state.work, worker)
    pool.shutdown(wait=False)
    return Deferred(state.done)
