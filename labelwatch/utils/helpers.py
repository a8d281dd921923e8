"""
Helper utilities for LabelWatch.

Common functions used across domains.
"""

import os
import re
import tempfile
from datetime import datetime
from pathlib import Path


MM_PER_INCH = 25.4
MM_PER_CM = 10.0

# Labelary only accepts these print densities (dots per millimetre)
DPMM_BY_DPI = {
    152: 6,
    203: 8,
    300: 12,
    600: 24,
}
DEFAULT_DPMM = 8


def now_local_str() -> str:
    """Get current local time in the daemon record format."""
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def normalise_path(path: Path) -> Path:
    """Return a resolved version of ``path`` without forcing existence."""

    try:
        return Path(path).expanduser().resolve()
    except FileNotFoundError:
        return Path(path).expanduser().absolute()


def sanitize_filename(filename: str) -> str:
    """Sanitize filename by removing invalid characters."""
    # Remove invalid filename characters
    sanitized = re.sub(r'[<>:"/\\|?*]', '_', filename)
    # Remove leading/trailing spaces and dots
    sanitized = sanitized.strip('. ')
    # Limit length
    if len(sanitized) > 255:
        sanitized = sanitized[:255]
    return sanitized


def pdf_name_for(filename: str) -> str:
    """Return ``filename`` with its extension replaced by ``.pdf``."""
    stem = Path(sanitize_filename(filename)).stem or "output"
    return f"{stem}.pdf"


def to_millimeters(value: float, unit: str) -> float:
    """
    Convert a length to millimetres.

    Args:
        value: Length in ``unit``
        unit: ``mm``, ``cm`` or ``in``; anything else is treated as ``mm``

    Returns:
        Length in millimetres
    """
    unit = (unit or "mm").strip().lower()
    if unit == "cm":
        return value * MM_PER_CM
    if unit == "in":
        return value * MM_PER_INCH
    return value


def dots_to_mm(dots: int, dpi: int) -> float:
    """Convert printer dots to millimetres at ``dpi``."""
    return (dots / float(dpi)) * MM_PER_INCH


def mm_to_dots(mm: float, dpi: int) -> int:
    """Convert millimetres to printer dots at ``dpi``."""
    return int(round((mm / MM_PER_INCH) * dpi))


def dpi_to_dpmm(dpi: int) -> int:
    """Map a dpi value onto the dots-per-millimetre values Labelary supports."""
    return DPMM_BY_DPI.get(dpi, DEFAULT_DPMM)


def write_text_atomic(content: str, path: Path) -> None:
    """
    Write text file atomically.

    Uses write-to-temp-then-replace in the destination directory so readers
    never observe a partially written file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    temp_fd, temp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.name}.tmp.",
    )

    try:
        with os.fdopen(temp_fd, 'w', encoding='utf-8') as f:
            f.write(content)
        os.replace(temp_path, path)

    except BaseException:
        Path(temp_path).unlink(missing_ok=True)
        raise


def write_bytes_atomic(content: bytes, path: Path) -> None:
    """Write binary file atomically (see ``write_text_atomic``)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    temp_fd, temp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.name}.tmp.",
    )

    try:
        with os.fdopen(temp_fd, 'wb') as f:
            f.write(content)
        os.replace(temp_path, path)

    except BaseException:
        Path(temp_path).unlink(missing_ok=True)
        raise
