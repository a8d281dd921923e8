"""
File Watch Domain

Watches the listen folder for label files:
- gate.py - Exclusive-lock check for files still being written
- monitor.py - watchdog-based folder monitor feeding the processing queue
"""

__all__ = ["gate", "monitor"]
