"""
LabelWatch - ZPL label to PDF converter.

Converts label description files to PDF on demand or unattended, through a
folder-watching daemon that manages its own start/stop/status lifecycle.
"""

__version__ = "1.0.0"
