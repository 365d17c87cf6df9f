"""
Buffered task engine.

Collects entries from a producer callback into bounded batches and runs
them on a fixed pool of worker threads. Batches whose callback asks for a
retry go back into a retry buffer that is flushed into the queue on the
flush interval.

Callback contract:
    init(initial, reducer, state) -> accumulator
        Streams entries through reducer(entry, accumulator). The initial
        accumulator is (0, []).
    run(batch, state) -> TaskOutcome
"""

import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

import structlog

from src.utils.exceptions import IndexerError


@dataclass
class TaskOutcome:
    """Result of one batch callback"""

    retry: bool = False
    items: List[Any] = field(default_factory=list)
    result: Any = None

    @classmethod
    def ok(cls, result: Any = None) -> "TaskOutcome":
        return cls(retry=False, result=result)

    @classmethod
    def retry_with(cls, items: Sequence[Any]) -> "TaskOutcome":
        return cls(retry=True, items=list(items))


@dataclass
class BufferedTaskStats:

    enumerated: int = 0
    batches_run: int = 0
    batches_succeeded: int = 0
    retries: int = 0


class _TaskStopped(Exception):
    pass


class BufferedTask:
    """Bounded, concurrent batch runner"""

    def __init__(
        self,
        callback,
        flush_interval: float = 3.0,
        max_batch_size: int = 50,
        max_concurrency: int = 2,
        task_supervisor: str = "BufferedTask",
        metadata: Optional[Dict[str, Any]] = None,
        state: Any = None,
    ):
        """
        Initialize the buffered task.

        Args:
            callback: Object implementing init() and run()
            flush_interval: Seconds between retry buffer flushes
            max_batch_size: Upper bound on entries per batch
            max_concurrency: Number of worker threads
            task_supervisor: Label used as the worker thread name prefix
            metadata: Key/value tag bound to every log line
            state: Opaque value passed back to the callback
        """
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be positive")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be positive")

        self.callback = callback
        self.flush_interval = flush_interval
        self.max_batch_size = max_batch_size
        self.max_concurrency = max_concurrency
        self.task_supervisor = task_supervisor
        self.metadata = dict(metadata or {})
        self.state = state
        self.stats = BufferedTaskStats()
        self.logger = structlog.get_logger()

        self._queue = queue.Queue(maxsize=max_concurrency * 2)
        self._retry_buffer: List[Any] = []
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._producer_done = threading.Event()
        self._in_flight = 0
        self._last_flush = time.monotonic()

    def run(self) -> BufferedTaskStats:
        """
        Enumerate entries and process them until every batch succeeded.

        Returns:
            Counters for the whole run

        Raises:
            Any exception raised by the callback's init, and IndexerError
            raised by a batch callback
        """
        with structlog.contextvars.bound_contextvars(**self.metadata):
            self.logger.info(
                "Starting buffered task",
                task_supervisor=self.task_supervisor,
                flush_interval=self.flush_interval,
                max_batch_size=self.max_batch_size,
                max_concurrency=self.max_concurrency,
            )

            with ThreadPoolExecutor(
                max_workers=self.max_concurrency,
                thread_name_prefix=self.task_supervisor,
            ) as executor:
                workers = [executor.submit(self._work) for _ in range(self.max_concurrency)]

                try:
                    self._produce()
                except _TaskStopped:
                    pass
                except BaseException:
                    self._stop.set()
                    raise
                finally:
                    self._producer_done.set()

                for worker in workers:
                    worker.result()

            self.logger.info("Buffered task finished", **asdict(self.stats))
        return self.stats

    def buffer(self, entries: Iterable[Any]) -> None:
        """Queue additional entries, blocking while the queue is full"""
        for batch in self._chunk(list(entries)):
            self._put(batch)

    def _produce(self) -> None:
        count, remainder = self.callback.init((0, []), self._reduce, self.state)
        if remainder:
            self._put(list(remainder))
        with self._lock:
            self.stats.enumerated += count

    def _reduce(self, entry: Any, accumulator):
        count, batch = accumulator
        batch.append(entry)
        if len(batch) >= self.max_batch_size:
            self._put(batch)
            batch = []
        return count + 1, batch

    def _put(self, batch: List[Any]) -> None:
        while not self._stop.is_set():
            try:
                self._queue.put(batch, timeout=self.flush_interval)
                return
            except queue.Full:
                continue
        raise _TaskStopped()

    def _chunk(self, entries: List[Any]) -> List[List[Any]]:
        return [
            entries[i:i + self.max_batch_size]
            for i in range(0, len(entries), self.max_batch_size)
        ]

    def _work(self) -> None:
        with structlog.contextvars.bound_contextvars(**self.metadata):
            while not self._stop.is_set():
                try:
                    batch = self._queue.get(timeout=self.flush_interval)
                except queue.Empty:
                    if self._flush_retries():
                        continue
                    if self._drained():
                        return
                    continue

                with self._lock:
                    self._in_flight += 1
                try:
                    self._run_batch(batch)
                finally:
                    with self._lock:
                        self._in_flight -= 1

                if time.monotonic() - self._last_flush >= self.flush_interval:
                    self._flush_retries()

    def _run_batch(self, batch: List[Any]) -> None:
        with self._lock:
            self.stats.batches_run += 1

        try:
            outcome = self.callback.run(batch, self.state)
        except IndexerError as e:
            self.logger.error("Fatal error in batch", error=str(e), batch_size=len(batch))
            self._stop.set()
            raise
        except Exception:
            self.logger.exception("Batch crashed, retrying", batch_size=len(batch))
            outcome = TaskOutcome.retry_with(batch)

        with self._lock:
            if outcome.retry:
                self.stats.retries += 1
                self._retry_buffer.extend(outcome.items)
            else:
                self.stats.batches_succeeded += 1

    def _flush_retries(self) -> bool:
        with self._lock:
            self._last_flush = time.monotonic()
            entries, self._retry_buffer = self._retry_buffer, []
        if not entries:
            return False

        batches = self._chunk(entries)
        for i, batch in enumerate(batches):
            try:
                self._queue.put_nowait(batch)
            except queue.Full:
                with self._lock:
                    for rest in batches[i:]:
                        self._retry_buffer.extend(rest)
                break
        return True

    def _drained(self) -> bool:
        with self._lock:
            return (
                self._producer_done.is_set()
                and self._in_flight == 0
                and not self._retry_buffer
                and self._queue.empty()
            )
