"""
Daemon record persistence.

The record file is the only state shared between the background process and
later ``start``/``stop``/``status`` invocations. It is always replaced as a
whole so a reader never sees a half-written record; an unreadable record is
treated as absent.
"""

from pathlib import Path
from typing import Optional

from loguru import logger

from labelwatch.models.schemas import DaemonRecord
from labelwatch.utils.config import PID_FILE_NAME
from labelwatch.utils.helpers import write_text_atomic


class DaemonRecordStore:
    """Reads and writes the daemon record in a fixed directory."""

    def __init__(self, directory: Path, file_name: str = PID_FILE_NAME):
        self.directory = Path(directory)
        self.path = self.directory / file_name

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> Optional[DaemonRecord]:
        """
        Load the record.

        Returns:
            The record, or None if the file is missing or does not hold a
            positive process id
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Could not read daemon record {self.path}: {e}")
            return None

        try:
            return DaemonRecord.from_text(text)
        except ValueError as e:
            logger.warning(f"Invalid daemon record {self.path}: {e}")
            return None

    def write(self, record: DaemonRecord):
        """
        Replace the record atomically.

        Raises:
            OSError: If the directory or file cannot be written
        """
        write_text_atomic(record.to_text(), self.path)
        logger.debug(f"Daemon record written: {self.path} (PID {record.process_id})")

    def remove(self) -> bool:
        """Delete the record file. Returns True if a file was removed."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        logger.debug(f"Daemon record removed: {self.path}")
        return True

    def remove_if_owned(self, process_id: int) -> bool:
        """Delete the record only if it still names ``process_id``."""
        record = self.read()
        if record is None or record.process_id != process_id:
            return False
        return self.remove()
