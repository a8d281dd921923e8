"""
Single-instance lifecycle of the background watch process.

States: stopped -> starting -> running -> stopping -> stopped.

Every public operation reports failure as ``False`` plus a log message and
never raises. Stale or unreadable records are removed whenever they are
read, so the record on disk always reflects a live process or nothing.
"""

import subprocess
import time
from pathlib import Path
from typing import List, Optional

import psutil
from loguru import logger

from labelwatch.domains.daemon.process import ProcessController
from labelwatch.domains.daemon.record import DaemonRecordStore
from labelwatch.models.schemas import DaemonRecord, DaemonState
from labelwatch.utils.helpers import normalise_path


ALLOWED_TRANSITIONS = {
    DaemonState.STOPPED: {DaemonState.STARTING},
    DaemonState.STARTING: {DaemonState.RUNNING, DaemonState.STOPPED},
    DaemonState.RUNNING: {DaemonState.STOPPING},
    DaemonState.STOPPING: {DaemonState.STOPPED},
}

LIFECYCLE_ERRORS = (OSError, psutil.Error, subprocess.SubprocessError, ValueError)


class DaemonLifecycleManager:
    """Start, stop and query the background daemon."""

    def __init__(
        self,
        listen_folder: Path,
        width: Optional[float] = None,
        height: Optional[float] = None,
        unit: str = "mm",
        dpi: int = 203,
        store: Optional[DaemonRecordStore] = None,
        controller: Optional[ProcessController] = None,
        start_timeout: float = 30.0,
        stop_timeout: float = 5.0,
        poll_interval: float = 0.25,
        log_level: Optional[str] = None,
    ):
        """
        Initialize lifecycle manager.

        Args:
            listen_folder: Folder the daemon watches
            width: Fixed label width (None for per-label resolution)
            height: Fixed label height (None for per-label resolution)
            unit: Unit of width and height
            dpi: Print density
            store: Record store (its directory is passed on to the daemon)
            controller: Process controller
            start_timeout: Seconds to wait for the daemon to write its record
            stop_timeout: Seconds to wait for a graceful exit before killing
            poll_interval: Record polling interval while starting
            log_level: Log level passed on to the daemon
        """
        if store is None:
            raise ValueError("A daemon record store is required")

        self.listen_folder = normalise_path(Path(listen_folder))
        self.width = width
        self.height = height
        self.unit = unit
        self.dpi = dpi
        self.store = store
        self.controller = controller or ProcessController()
        self.start_timeout = start_timeout
        self.stop_timeout = stop_timeout
        self.poll_interval = poll_interval
        self.log_level = log_level

        self.state = DaemonState.STOPPED

    @classmethod
    def from_settings(cls, settings, **overrides) -> "DaemonLifecycleManager":
        """Build a manager from settings; keyword arguments win."""
        overrides.setdefault("listen_folder", settings.listen_folder)
        overrides.setdefault("unit", settings.default_unit)
        overrides.setdefault("dpi", settings.default_dpi)
        overrides.setdefault("store", DaemonRecordStore(settings.get_pid_dir()))
        overrides.setdefault("start_timeout", settings.start_timeout_seconds)
        overrides.setdefault("stop_timeout", settings.stop_timeout_seconds)
        overrides.setdefault("log_level", settings.log_level)
        return cls(**overrides)

    # State ---------------------------------------------------------------------

    def _transition(self, target: DaemonState):
        if target not in ALLOWED_TRANSITIONS[self.state]:
            raise ValueError(f"Invalid daemon state change: {self.state.value} -> {target.value}")
        logger.debug(f"Daemon state: {self.state.value} -> {target.value}")
        self.state = target

    def run_args(self) -> List[str]:
        """Arguments for the ``run`` command reproducing this configuration."""
        args = [
            "-l", str(self.listen_folder),
            "-u", self.unit,
            "-d", str(self.dpi),
            "--pid-dir", str(self.store.directory),
        ]
        if self.width is not None and self.height is not None:
            args += ["-w", str(self.width), "-h", str(self.height)]
        if self.log_level:
            args += ["--log-level", self.log_level]
        return args

    def _live_record(self) -> Optional[DaemonRecord]:
        record = self.store.read()

        if record is None:
            if self.store.exists():
                logger.warning(f"Removing unreadable daemon record: {self.store.path}")
                self.store.remove()
            return None

        if not self.controller.is_alive(record.process_id):
            logger.info(f"Removing stale daemon record for PID {record.process_id}")
            self.store.remove()
            return None

        return record

    def _log_record(self, record: DaemonRecord):
        logger.info(f"  PID: {record.process_id}")
        if record.listen_folder:
            logger.info(f"  Folder: {record.listen_folder}")
        if record.width_mm > 0 and record.height_mm > 0:
            logger.info(f"  Dimensions: {record.width_mm:g}mm x {record.height_mm:g}mm (unit: {record.unit})")
        else:
            logger.info("  Dimensions: extracted per label")
        logger.info(f"  Density: {record.density_dpi} dpi")
        if record.started_at:
            logger.info(f"  Started: {record.started_at}")

    # Operations ----------------------------------------------------------------

    def start(self) -> bool:
        """
        Spawn the daemon and wait until it has written its record.

        Returns:
            True once the new daemon is confirmed running; False if one was
            already running or startup failed
        """
        process = None
        try:
            record = self._live_record()
            if record is not None:
                self.state = DaemonState.RUNNING
                logger.warning(f"Daemon is already running (PID {record.process_id})")
                self._log_record(record)
                return False

            self.state = DaemonState.STOPPED
            self._transition(DaemonState.STARTING)

            self.listen_folder.mkdir(parents=True, exist_ok=True)
            process = self.controller.spawn(self.run_args())

            record = self._wait_for_record(process)
            if record is None:
                self._abort_start(process)
                return False

            self._transition(DaemonState.RUNNING)
            logger.success(f"Daemon started (PID {record.process_id})")
            self._log_record(record)
            return True

        except LIFECYCLE_ERRORS as e:
            logger.error(f"Failed to start daemon: {e}")
            if process is not None:
                self._abort_start(process)
            self.state = DaemonState.STOPPED
            return False

    def _wait_for_record(self, process) -> Optional[DaemonRecord]:
        deadline = time.monotonic() + self.start_timeout

        while time.monotonic() < deadline:
            if process.poll() is not None:
                logger.error(f"Daemon exited during startup (exit code {process.returncode})")
                return None

            record = self.store.read()
            if record is not None and self.controller.is_alive(record.process_id):
                return record

            time.sleep(self.poll_interval)

        logger.error(f"Daemon did not report ready within {self.start_timeout:.0f}s")
        return None

    def _abort_start(self, process):
        try:
            if process.poll() is None:
                self.controller.terminate(process.pid, self.stop_timeout)
            self.store.remove_if_owned(process.pid)
        except LIFECYCLE_ERRORS as e:
            logger.error(f"Failed to clean up daemon process {process.pid}: {e}")

        if self.state == DaemonState.STARTING:
            self._transition(DaemonState.STOPPED)

    def stop(self) -> bool:
        """
        Terminate the recorded daemon and remove its record.

        Returns:
            True if a running daemon was stopped; False if none was running or
            it could not be stopped
        """
        try:
            record = self._live_record()
            if record is None:
                self.state = DaemonState.STOPPED
                logger.warning("Daemon is not running")
                return False

            self.state = DaemonState.RUNNING
            self._transition(DaemonState.STOPPING)
            logger.info(f"Stopping daemon (PID {record.process_id})...")

            self.controller.terminate(record.process_id, self.stop_timeout)
            self.store.remove()

            self._transition(DaemonState.STOPPED)
            logger.success("Daemon stopped")
            return True

        except LIFECYCLE_ERRORS as e:
            logger.error(f"Failed to stop daemon: {e}")
            self.state = DaemonState.RUNNING if self.is_running() else DaemonState.STOPPED
            return False

    def is_running(self) -> bool:
        """True if the record names a live process; stale records are removed."""
        try:
            return self._live_record() is not None
        except LIFECYCLE_ERRORS as e:
            logger.error(f"Failed to check daemon status: {e}")
            return False

    def status(self) -> bool:
        """Log the daemon's status and configuration. Returns ``is_running()``."""
        try:
            record = self._live_record()
        except LIFECYCLE_ERRORS as e:
            logger.error(f"Failed to check daemon status: {e}")
            return False

        if record is None:
            self.state = DaemonState.STOPPED
            logger.info("Daemon is not running")
            return False

        self.state = DaemonState.RUNNING
        logger.info("Daemon is running")
        self._log_record(record)
        return True

    def get_record(self) -> Optional[DaemonRecord]:
        """Record of the live daemon, if any."""
        try:
            return self._live_record()
        except LIFECYCLE_ERRORS as e:
            logger.error(f"Failed to read daemon record: {e}")
            return None
