"""
Watch loop executed by the background daemon (``labelwatch run``).

Wires monitor, queue and converter together, publishes the daemon record and
blocks until SIGINT/SIGTERM or the stop event is set.
"""

import os
import signal
import threading
from pathlib import Path
from typing import Optional

from loguru import logger

from labelwatch.domains.daemon.record import DaemonRecordStore
from labelwatch.domains.daemon.process import ProcessController
from labelwatch.domains.dimensions.resolver import DimensionResolver
from labelwatch.domains.file_watch.monitor import FolderMonitor
from labelwatch.domains.processing.converter import LabelConverter, LabelRenderer
from labelwatch.domains.processing.queue import ProcessingQueue
from labelwatch.domains.rendering.labelary import LabelaryRenderer
from labelwatch.models.schemas import DaemonRecord
from labelwatch.utils.config import Settings
from labelwatch.utils.helpers import now_local_str, to_millimeters


def run_daemon(
    settings: Settings,
    listen_folder: Optional[Path] = None,
    width: Optional[float] = None,
    height: Optional[float] = None,
    unit: Optional[str] = None,
    dpi: Optional[int] = None,
    renderer: Optional[LabelRenderer] = None,
    stop_event: Optional[threading.Event] = None,
    install_signal_handlers: bool = True,
) -> bool:
    """
    Watch the listen folder until asked to stop.

    Args:
        settings: Application settings
        listen_folder: Folder to watch (default: settings.listen_folder)
        width: Fixed label width (None for per-label resolution)
        height: Fixed label height (None for per-label resolution)
        unit: Unit of width and height (default: settings.default_unit)
        dpi: Print density (default: settings.default_dpi)
        renderer: Label renderer (default: Labelary)
        stop_event: Event ending the loop when set
        install_signal_handlers: Map SIGINT/SIGTERM onto ``stop_event``

    Returns:
        True on a clean shutdown, False if the loop could not start
    """
    listen_folder = Path(listen_folder or settings.listen_folder)
    unit = unit or settings.default_unit
    dpi = dpi or settings.default_dpi
    stop_event = stop_event or threading.Event()
    pid = os.getpid()

    store = DaemonRecordStore(settings.get_pid_dir())
    existing = store.read()
    if existing is not None and existing.process_id != pid and ProcessController().is_alive(existing.process_id):
        logger.error(f"Another daemon is already running (PID {existing.process_id})")
        return False

    owns_renderer = renderer is None
    if renderer is None:
        renderer = LabelaryRenderer(settings.labelary_url, settings.labelary_timeout)

    resolver = DimensionResolver.from_settings(settings)
    converter = LabelConverter(renderer, output_folder=settings.output_folder)
    processing_queue = ProcessingQueue.from_settings(converter, settings)
    monitor = FolderMonitor.from_settings(
        processing_queue,
        resolver,
        settings,
        listen_folder=listen_folder,
        fixed_width=width,
        fixed_height=height,
        unit=unit,
        dpi=dpi,
    )

    if install_signal_handlers:
        def _signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, shutting down.")
            stop_event.set()

        signal.signal(signal.SIGINT, _signal_handler)
        signal.signal(signal.SIGTERM, _signal_handler)

    try:
        monitor.start_watching()

        fixed = monitor.fixed_dimensions
        store.write(
            DaemonRecord(
                process_id=pid,
                listen_folder=str(monitor.listen_folder),
                width_mm=to_millimeters(width, unit) if fixed else 0.0,
                height_mm=to_millimeters(height, unit) if fixed else 0.0,
                unit=unit,
                density_dpi=dpi,
                started_at=now_local_str(),
            )
        )
        logger.success(f"Daemon running (PID {pid}), watching {monitor.listen_folder}")

        while not stop_event.is_set():
            stop_event.wait(1.0)

    except OSError as e:
        logger.error(f"Daemon failed: {e}")
        return False

    finally:
        monitor.stop_watching()
        processing_queue.stop()
        store.remove_if_owned(pid)
        if owns_renderer:
            renderer.close()

    logger.info("Daemon stopped")
    return True
