"""
Folder monitor for label files.

Watches exactly one directory (non-recursive) with watchdog and turns
settled, readable label files into work items for the processing queue.

The watchdog handler only filters by extension and pushes a FileEvent onto a
bounded channel. A single monitor thread does the rest: settle delay, lock
check, reading, dimension resolution and enqueueing. Every failure on that
thread is reported through ``on_error`` and never stops the loop.
"""

import queue
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional, Set

from loguru import logger
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from labelwatch.domains.dimensions.resolver import DimensionResolver
from labelwatch.domains.file_watch.gate import LockAwareFileGate
from labelwatch.domains.processing.converter import make_work_item
from labelwatch.domains.processing.queue import ProcessingQueue
from labelwatch.models.schemas import FileEvent, WorkItem
from labelwatch.utils.helpers import normalise_path


DEFAULT_EXTENSIONS = {".txt", ".prn"}
MAX_PENDING_EVENTS = 1000
HEALTH_CHECK_SECONDS = 1.0

FileDetectedCallback = Callable[[Path, str], None]
ErrorCallback = Callable[[Exception], None]


class LabelFileEventHandler(FileSystemEventHandler):
    """Watchdog handler forwarding label file notifications to the monitor."""

    def __init__(self, monitor: "FolderMonitor"):
        super().__init__()
        self.monitor = monitor

    def on_created(self, event: FileSystemEvent):
        if not event.is_directory:
            self.monitor.notify(event.src_path, "created")

    def on_modified(self, event: FileSystemEvent):
        if not event.is_directory:
            self.monitor.notify(event.src_path, "modified")

    def on_moved(self, event: FileSystemEvent):
        # A rename into the folder is how many producers publish a finished file
        if not event.is_directory:
            self.monitor.notify(event.dest_path, "moved")


class FolderMonitor:
    """Turns filesystem activity in one folder into queued work items."""

    def __init__(
        self,
        listen_folder: Path,
        processing_queue: ProcessingQueue,
        resolver: DimensionResolver,
        fixed_width: Optional[float] = None,
        fixed_height: Optional[float] = None,
        unit: str = "mm",
        dpi: Optional[int] = None,
        extensions: Optional[Iterable[str]] = None,
        settle_delay_ms: int = 500,
        use_polling: bool = False,
        file_gate: Optional[LockAwareFileGate] = None,
        on_file_detected: Optional[FileDetectedCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        """
        Initialize folder monitor.

        Args:
            listen_folder: Directory to watch (created on start if missing)
            processing_queue: Queue receiving the work items
            resolver: Dimension resolver
            fixed_width: Width applied to every label (fixed dimensions mode)
            fixed_height: Height applied to every label (fixed dimensions mode)
            unit: Unit of the fixed width and height
            dpi: Print density
            extensions: Accepted file extensions (default: .txt, .prn)
            settle_delay_ms: Pause after a notification before reading
            use_polling: Use the polling observer (network shares)
            file_gate: Lock checker (default: LockAwareFileGate)
            on_file_detected: Called with (path, event_kind) for accepted files
            on_error: Called with the exception for any monitor failure
        """
        self.listen_folder = normalise_path(Path(listen_folder))
        self.queue = processing_queue
        self.resolver = resolver
        self.unit = unit
        self.dpi = dpi
        self.extensions = {ext.lower() for ext in (extensions or DEFAULT_EXTENSIONS)}
        self.settle_delay_seconds = max(settle_delay_ms, 0) / 1000.0
        self.use_polling = use_polling
        self.file_gate = file_gate or LockAwareFileGate()
        self.on_file_detected = on_file_detected
        self.on_error = on_error

        self.fixed_width = fixed_width
        self.fixed_height = fixed_height
        self.fixed_dimensions = resolver.explicit_dimensions(fixed_width, fixed_height, unit, dpi) is not None

        self._handler = LabelFileEventHandler(self)
        self._channel: "queue.Queue[FileEvent]" = queue.Queue(maxsize=MAX_PENDING_EVENTS)
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._in_flight: Set[str] = set()
        self._observer = None
        self._worker: Optional[threading.Thread] = None

        self._chain_settled_callback()

    @classmethod
    def from_settings(
        cls,
        processing_queue: ProcessingQueue,
        resolver: DimensionResolver,
        settings,
        **kwargs,
    ) -> "FolderMonitor":
        """Build a monitor from application settings; keyword arguments win."""
        kwargs.setdefault("listen_folder", settings.listen_folder)
        kwargs.setdefault("unit", settings.default_unit)
        kwargs.setdefault("dpi", settings.default_dpi)
        kwargs.setdefault("extensions", settings.get_file_extensions())
        kwargs.setdefault("settle_delay_ms", settings.settle_delay_ms)
        kwargs.setdefault("use_polling", settings.use_polling_observer)
        return cls(processing_queue=processing_queue, resolver=resolver, **kwargs)

    def _chain_settled_callback(self):
        previous = self.queue.on_settled

        def on_settled(item: WorkItem):
            self.release(item)
            if previous is not None:
                previous(item)

        self.queue.on_settled = on_settled

    # Lifecycle -----------------------------------------------------------------

    @property
    def is_watching(self) -> bool:
        return self._observer is not None

    def start_watching(self):
        """
        Create the folder if needed, subscribe to it and queue existing files.

        Raises:
            OSError: If the folder cannot be created or watched
        """
        if self.is_watching:
            return

        try:
            self.listen_folder.mkdir(parents=True, exist_ok=True)
            observer = PollingObserver() if self.use_polling else Observer()
            observer.schedule(self._handler, str(self.listen_folder), recursive=False)
            observer.daemon = True
            observer.start()
        except Exception as e:
            self._emit_error(e)
            raise

        self._observer = observer
        self._stop_event.clear()
        self._worker = threading.Thread(
            target=self._worker_loop,
            name="labelwatch-monitor",
            daemon=True,
        )
        self._worker.start()

        logger.success(f"Monitoring started: {self.listen_folder}")
        if self.fixed_dimensions:
            logger.info(f"Fixed dimensions: {self.fixed_width} x {self.fixed_height} {self.unit}")
        else:
            logger.info("Dimensions: extracted per label, defaults otherwise")

        self._scan_existing()

    def stop_watching(self):
        """Unsubscribe and stop the monitor thread. Safe to call when not watching."""
        if not self.is_watching:
            return

        self._stop_event.set()

        observer, self._observer = self._observer, None
        observer.stop()
        observer.join()

        if self._worker is not None:
            self._worker.join()
            self._worker = None

        while True:
            try:
                self._channel.get_nowait()
            except queue.Empty:
                break

        logger.info(f"Monitoring stopped: {self.listen_folder}")

    # Notifications -------------------------------------------------------------

    def accepts(self, path: Path) -> bool:
        """Whether ``path`` has one of the watched extensions."""
        return Path(path).suffix.lower() in self.extensions

    def notify(self, raw_path: str, kind: str):
        """
        Record a filesystem notification. Called on the observer thread.

        Files with other extensions are ignored silently.
        """
        path = normalise_path(Path(raw_path))
        if not self.accepts(path):
            return

        try:
            self._channel.put_nowait(FileEvent(path=path, kind=kind))
        except queue.Full:
            logger.warning(f"Too many pending notifications, dropping: {path.name}")

    def release(self, item: WorkItem):
        """Forget a path handed to the queue so later changes are picked up again."""
        key = item.path_key
        if key is None:
            return
        with self._lock:
            self._in_flight.discard(key)

    def _scan_existing(self):
        try:
            existing = sorted(
                path for path in self.listen_folder.iterdir()
                if path.is_file() and self.accepts(path)
            )
        except OSError as e:
            self._emit_error(e)
            return

        if existing:
            logger.info(f"Found {len(existing)} existing file(s) to process")
        for path in existing:
            self.notify(str(path), "existing")

    # Monitor thread ------------------------------------------------------------

    def _worker_loop(self):
        while not self._stop_event.is_set():
            self._check_folder()

            try:
                event = self._channel.get(timeout=HEALTH_CHECK_SECONDS)
            except queue.Empty:
                continue

            try:
                self._handle_event(event)
            except Exception as e:
                self._emit_error(e)

    def _handle_event(self, event: FileEvent):
        elapsed = (datetime.now() - event.detected_at).total_seconds()
        remaining = self.settle_delay_seconds - elapsed
        if remaining > 0 and self._stop_event.wait(remaining):
            return

        path = event.path
        key = str(path)

        with self._lock:
            if key in self._in_flight:
                logger.debug(f"Already queued, ignoring {event.kind}: {path.name}")
                return

        if not path.is_file():
            return

        if self.file_gate.is_locked(path):
            # Picked up again on the next modify notification
            logger.info(f"File still locked, skipping for now: {path.name}")
            return

        content = path.read_text(encoding="utf-8", errors="replace")
        if not content.strip():
            logger.info(f"Ignoring empty file: {path.name}")
            return

        logger.info(f"File detected ({event.kind}): {path.name}")
        self._notify(self.on_file_detected, path, event.kind)

        if self.fixed_dimensions:
            item = make_work_item(
                content,
                path.name,
                self.resolver,
                source_path=path,
                explicit_width=self.fixed_width,
                explicit_height=self.fixed_height,
                unit=self.unit,
                dpi=self.dpi,
            )
        else:
            item = make_work_item(content, path.name, self.resolver, source_path=path, dpi=self.dpi)

        for index, dimensions in enumerate(item.dimensions, start=1):
            logger.info(f"{path.name} label {index}: {dimensions}")

        with self._lock:
            self._in_flight.add(key)
        if not self.queue.enqueue(item):
            self.release(item)

    def _check_folder(self):
        if self.listen_folder.is_dir():
            return

        self._emit_error(FileNotFoundError(f"Watched folder disappeared: {self.listen_folder}"))

        try:
            self.listen_folder.mkdir(parents=True, exist_ok=True)
            observer = self._observer
            if observer is not None:
                observer.unschedule_all()
                observer.schedule(self._handler, str(self.listen_folder), recursive=False)
            logger.warning(f"Watched folder recreated: {self.listen_folder}")
        except Exception as e:
            self._emit_error(e)

    # Events --------------------------------------------------------------------

    def _emit_error(self, error: Exception):
        logger.error(f"Monitor error: {error}")
        self._notify(self.on_error, error)

    def _notify(self, callback: Optional[Callable], *args):
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Monitor callback {getattr(callback, '__name__', callback)} failed: {e}")
