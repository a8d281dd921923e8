"""
Bounded concurrent processing queue.

An unbounded intake buffer is drained by a single dispatch thread that hands
items, in FIFO order, to a fixed-size worker pool. Each item reaches exactly
one terminal outcome:
- converted: PDF written, source deleted, ``on_success`` fired
- failed: conversion error or file locked for too long, source kept,
  ``on_failure`` fired

Locked files are retried after ``retry_delay_ms`` by a per-item timer, so a
file held open by its writer never occupies a worker while it waits.
"""

import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, Optional

from loguru import logger

from labelwatch.domains.file_watch.gate import LockAwareFileGate
from labelwatch.models.schemas import QueueStats, WorkItem


FILE_IN_USE_MESSAGE = "File in use for too long"

Converter = Callable[[WorkItem], Path]
SuccessCallback = Callable[[WorkItem, Path], None]
FailureCallback = Callable[[WorkItem, str], None]
SettledCallback = Callable[[WorkItem], None]


class ProcessingQueue:
    """Queue of work items converted by a bounded worker pool."""

    def __init__(
        self,
        converter: Converter,
        max_concurrent_files: int = 1,
        max_retries: int = 3,
        retry_delay_ms: int = 2000,
        idle_poll_ms: int = 1000,
        file_gate: Optional[LockAwareFileGate] = None,
        on_success: Optional[SuccessCallback] = None,
        on_failure: Optional[FailureCallback] = None,
        on_settled: Optional[SettledCallback] = None,
        autostart: bool = True,
    ):
        """
        Initialize processing queue.

        Args:
            converter: Callable writing the PDF for an item and returning its path
            max_concurrent_files: Size of the worker pool
            max_retries: Lock retries before an item fails
            retry_delay_ms: Delay before a locked item is queued again
            idle_poll_ms: How long the dispatcher waits on an empty queue
            file_gate: Lock checker (default: LockAwareFileGate)
            on_success: Called with (item, pdf_path) after conversion
            on_failure: Called with (item, message) on terminal failure
            on_settled: Called once per item when the queue is done with it
            autostart: Start the dispatcher immediately
        """
        if max_concurrent_files < 1:
            raise ValueError("max_concurrent_files must be at least 1")
        if max_retries < 0:
            raise ValueError("max_retries cannot be negative")

        self.converter = converter
        self.max_concurrent_files = max_concurrent_files
        self.max_retries = max_retries
        self.retry_delay_seconds = max(retry_delay_ms, 0) / 1000.0
        self.idle_poll_seconds = max(idle_poll_ms, 1) / 1000.0
        self.file_gate = file_gate or LockAwareFileGate()

        self.on_success = on_success
        self.on_failure = on_failure
        self.on_settled = on_settled

        self._intake: "queue.Queue[WorkItem]" = queue.Queue()
        self._permits = threading.BoundedSemaphore(max_concurrent_files)
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._retry_timers: Dict[threading.Timer, WorkItem] = {}
        self._in_flight = 0
        self._outstanding = 0

        self._executor: Optional[ThreadPoolExecutor] = None
        self._dispatcher: Optional[threading.Thread] = None

        if autostart:
            self.start()

    @classmethod
    def from_settings(cls, converter: Converter, settings, **kwargs) -> "ProcessingQueue":
        """Build a queue using the concurrency and retry settings."""
        return cls(
            converter,
            max_concurrent_files=settings.max_concurrent_files,
            max_retries=settings.max_retries,
            retry_delay_ms=settings.retry_delay_ms,
            idle_poll_ms=settings.idle_poll_ms,
            **kwargs,
        )

    # Lifecycle -----------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._dispatcher is not None and self._dispatcher.is_alive()

    def start(self):
        """Start the dispatch thread and worker pool."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_concurrent_files,
            thread_name_prefix="labelwatch-worker",
        )
        self._dispatcher = threading.Thread(
            target=self._dispatch_loop,
            name="labelwatch-dispatch",
            daemon=True,
        )
        self._dispatcher.start()

    def stop(self):
        """
        Stop processing.

        Returns once the dispatcher has exited and every in-flight item has
        reached its terminal outcome. Queued and waiting-to-retry items are
        abandoned; their source files stay in place.
        """
        if self._dispatcher is None:
            return

        logger.info("Stopping processing queue...")
        self._stop_event.set()
        self._dispatcher.join()
        self._dispatcher = None

        with self._lock:
            waiting = list(self._retry_timers.items())
            self._retry_timers.clear()
        for timer, item in waiting:
            timer.cancel()
            self._abandon(item)

        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

        while True:
            try:
                self._abandon(self._intake.get_nowait())
            except queue.Empty:
                break

        logger.info("Processing queue stopped")

    # Intake --------------------------------------------------------------------

    def enqueue(self, item: WorkItem) -> bool:
        """
        Append ``item`` to the queue without blocking.

        Returns:
            False if the queue is stopping and the item was not accepted
        """
        if self._stop_event.is_set():
            logger.warning(f"Queue is stopping, not accepting: {item.file_name}")
            return False

        with self._lock:
            self._outstanding += 1
        self._intake.put(item)
        logger.info(f"File added to queue: {item.file_name} (Position: {self._intake.qsize()})")
        return True

    def get_stats(self) -> QueueStats:
        """Snapshot of the queue state."""
        with self._lock:
            in_flight = self._in_flight
            pending_retries = len(self._retry_timers)

        return QueueStats(
            queue_length=self._intake.qsize(),
            is_processing=self.is_running,
            max_concurrency=self.max_concurrent_files,
            in_flight=in_flight,
            pending_retries=pending_retries,
        )

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until nothing is queued, running or waiting to retry.

        Returns:
            True if the queue went idle before ``timeout``
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._lock:
                if self._outstanding == 0:
                    return True
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(0.02)

    # Dispatch ------------------------------------------------------------------

    def _dispatch_loop(self):
        logger.info("Starting queue processing...")

        while not self._stop_event.is_set():
            try:
                item = self._intake.get(timeout=self.idle_poll_seconds)
            except queue.Empty:
                continue

            if not self._acquire_permit():
                self._abandon(item)
                break

            with self._lock:
                self._in_flight += 1
            self._executor.submit(self._run_worker, item)

        logger.info("Queue processing stopped")

    def _acquire_permit(self) -> bool:
        while not self._stop_event.is_set():
            if self._permits.acquire(timeout=0.1):
                return True
        return False

    def _run_worker(self, item: WorkItem):
        try:
            self._process_item(item)
        except Exception as e:
            logger.error(f"Error processing {item.file_name}: {e}")
            item.last_error = str(e)
            self._fail(item, str(e))
        finally:
            with self._lock:
                self._in_flight -= 1
            self._permits.release()

    def _process_item(self, item: WorkItem):
        logger.info(f"Processing: {item.file_name}")
        path = item.source_path

        if path is not None:
            # Another process or an earlier attempt already handled it
            if not path.exists():
                logger.info(f"File not found, skipping: {item.file_name}")
                self._settle(item)
                return

            if self.file_gate.is_locked(path):
                self._retry_locked(item)
                return

        try:
            output_path = self.converter(item)
        except Exception as e:
            item.last_error = str(e)
            logger.error(f"Failed to process file {item.file_name}: {e}")
            self._fail(item, item.last_error)
            return

        self._delete_source(item)
        logger.success(f"File processed successfully: {item.file_name} -> {output_path}")
        self._notify(self.on_success, item, output_path)
        self._settle(item)

    # Retries -------------------------------------------------------------------

    def _retry_locked(self, item: WorkItem):
        item.retry_count += 1

        if item.retry_count > self.max_retries:
            logger.error(f"Max retries reached for: {item.file_name}")
            item.last_error = FILE_IN_USE_MESSAGE
            self._fail(item, FILE_IN_USE_MESSAGE)
            return

        logger.warning(
            f"File in use, retry attempt {item.retry_count}/{self.max_retries} "
            f"for: {item.file_name}"
        )

        with self._lock:
            if self._stop_event.is_set():
                stopping = True
            else:
                stopping = False
                timer = threading.Timer(
                    self.retry_delay_seconds,
                    lambda: self._requeue(timer, item),
                )
                timer.daemon = True
                self._retry_timers[timer] = item
                timer.start()

        if stopping:
            self._abandon(item)

    def _requeue(self, timer: threading.Timer, item: WorkItem):
        with self._lock:
            if self._retry_timers.pop(timer, None) is None:
                return
            if not self._stop_event.is_set():
                self._intake.put(item)
                return

        self._abandon(item)

    # Outcomes ------------------------------------------------------------------

    def _delete_source(self, item: WorkItem):
        if item.source_path is None:
            return

        try:
            item.source_path.unlink(missing_ok=True)
            logger.info(f"Source file deleted: {item.file_name}")
        except OSError as e:
            logger.error(f"Error deleting source file {item.file_name}: {e}")

    def _fail(self, item: WorkItem, message: str):
        self._notify(self.on_failure, item, message)
        self._settle(item)

    def _abandon(self, item: WorkItem):
        logger.info(f"Queue stopped before processing: {item.file_name}")
        self._settle(item)

    def _settle(self, item: WorkItem):
        self._notify(self.on_settled, item)
        with self._lock:
            self._outstanding -= 1

    def _notify(self, callback: Optional[Callable], *args):
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Queue callback {getattr(callback, '__name__', callback)} failed: {e}")
