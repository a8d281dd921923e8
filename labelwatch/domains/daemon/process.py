"""
OS process control for the background daemon.

Spawns the detached ``run`` process, checks liveness and terminates it.
Kept separate from the lifecycle state machine so tests can swap in a fake.
"""

import os
import subprocess
import sys
from typing import List, Sequence

import psutil
from loguru import logger


class ProcessController:
    """Spawn, probe and stop daemon processes."""

    def build_command(self, args: Sequence[str]) -> List[str]:
        """Command line running the watch loop with ``args``."""
        return [sys.executable, "-m", "labelwatch.cli", "run", *args]

    def spawn(self, args: Sequence[str]) -> subprocess.Popen:
        """
        Start the watch loop detached from this terminal.

        Raises:
            OSError: If the process cannot be created
        """
        command = self.build_command(args)
        kwargs = {
            "stdin": subprocess.DEVNULL,
            "stdout": subprocess.DEVNULL,
            "stderr": subprocess.DEVNULL,
            "close_fds": True,
        }

        if os.name == "nt":
            kwargs["creationflags"] = (
                getattr(subprocess, "DETACHED_PROCESS", 0)
                | getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)
            )
        else:
            kwargs["start_new_session"] = True

        logger.debug(f"Spawning: {' '.join(command)}")
        return subprocess.Popen(command, **kwargs)

    def is_alive(self, pid: int) -> bool:
        """True if ``pid`` names a running process (zombies count as dead)."""
        if pid <= 0:
            return False

        try:
            return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            # Exists but belongs to someone else
            return True

    def terminate(self, pid: int, timeout: float = 5.0) -> bool:
        """
        Ask ``pid`` to exit, then kill it if it is still running after ``timeout``.

        Returns:
            True once the process is gone

        Raises:
            psutil.Error: If the process cannot be signalled
        """
        try:
            process = psutil.Process(pid)
            process.terminate()
            try:
                process.wait(timeout=timeout)
            except psutil.TimeoutExpired:
                logger.warning(f"Process {pid} did not exit within {timeout:.0f}s, killing it")
                process.kill()
                process.wait(timeout=timeout)
        except psutil.NoSuchProcess:
            pass

        return True
