"""
Daemon Domain

Single-instance background watch process:
- record.py - Atomic Key=Value daemon record
- process.py - Detached spawn, liveness and termination (psutil)
- lifecycle.py - start/stop/status state machine
- runner.py - Watch loop run inside the background process
"""

__all__ = ["lifecycle", "process", "record", "runner"]
