"""
Lock-aware file gate.

Tells whether a file is still exclusively held by its writer. The file is
opened for reading and an exclusive, non-blocking lock is requested; failing
to get exclusivity means "locked". Any other I/O failure (missing file,
permissions) reports "not locked" so the caller's own checks surface it.
"""

import errno
import os
from pathlib import Path

if os.name == "nt":
    import msvcrt
else:
    import fcntl

# ERROR_SHARING_VIOLATION, ERROR_LOCK_VIOLATION
WINDOWS_SHARING_ERRORS = {32, 33}
CONTENTION_ERRNOS = {errno.EAGAIN, errno.EACCES, errno.EWOULDBLOCK}


class LockAwareFileGate:
    """Checks whether files are safe to read."""

    def is_locked(self, path: Path) -> bool:
        """
        Check if ``path`` is held exclusively by another reader/writer.

        Args:
            path: File to check

        Returns:
            True if exclusivity could not be acquired, False otherwise
        """
        try:
            with open(path, "rb") as handle:
                return not self._try_exclusive(handle)

        except PermissionError as e:
            # Windows refuses the open itself while another handle denies sharing
            return getattr(e, "winerror", None) in WINDOWS_SHARING_ERRORS

        except OSError:
            return False

    def _try_exclusive(self, handle) -> bool:
        fd = handle.fileno()

        if os.name == "nt":
            try:
                msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)
            except OSError:
                return False
            handle.seek(0)
            msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
            return True

        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as e:
            if e.errno in CONTENTION_ERRNOS:
                return False
            return True
        fcntl.flock(fd, fcntl.LOCK_UN)
        return True
