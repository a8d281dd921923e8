"""
Pydantic models for LabelWatch.

Shared data models across the application.
"""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field

from labelwatch.utils.helpers import mm_to_dots


# =====================================================
# Dimension Models
# =====================================================

class DimensionSource(str, Enum):
    """Priority tier that produced a Dimensions value."""
    EXPLICIT = "explicit"
    EXTRACTED = "extracted"
    DEFAULT = "default"


class Dimensions(BaseModel):
    """Resolved physical size and density for one label."""
    model_config = ConfigDict(frozen=True)

    width_mm: float = Field(gt=0)
    height_mm: float = Field(gt=0)
    density_dpi: int = Field(gt=0)
    source: DimensionSource

    def __str__(self) -> str:
        return (
            f"{self.width_mm:.1f}mm x {self.height_mm:.1f}mm "
            f"@ {self.density_dpi} dpi [{self.source.value}]"
        )

    @property
    def size_dots(self) -> Tuple[int, int]:
        """Width and height in printer dots at this density."""
        return (
            mm_to_dots(self.width_mm, self.density_dpi),
            mm_to_dots(self.height_mm, self.density_dpi),
        )


class LabelGeometry(BaseModel):
    """Width/length markers found in one label, before validation."""
    model_config = ConfigDict(frozen=True)

    width_dots: int = 0
    height_dots: int = 0
    width_mm: float = 0.0
    height_mm: float = 0.0
    density_dpi: int
    has_dimensions: bool = False

    @property
    def is_valid(self) -> bool:
        return self.width_mm > 0 and self.height_mm > 0 and self.density_dpi > 0


# =====================================================
# Processing Models
# =====================================================

class WorkItem(BaseModel):
    """
    One unit of conversion work.

    ``labels`` and ``dimensions`` are aligned: ``dimensions[i]`` is the
    resolved size of ``labels[i]``. Both are fixed when the item is built;
    only ``retry_count`` and ``last_error`` change while it is queued.
    """
    model_config = ConfigDict(validate_assignment=True)

    source_path: Optional[Path] = None
    file_name: str
    content: str
    labels: Tuple[str, ...]
    dimensions: Tuple[Dimensions, ...]
    created_at: datetime = Field(default_factory=datetime.now)
    retry_count: int = 0
    last_error: Optional[str] = None

    @property
    def path_key(self) -> Optional[str]:
        """Stable string key of the source file, if any."""
        return str(self.source_path) if self.source_path else None


class FileEvent(BaseModel):
    """Filesystem notification handed from the observer to the monitor worker."""
    model_config = ConfigDict(frozen=True)

    path: Path
    kind: str
    detected_at: datetime = Field(default_factory=datetime.now)


class QueueStats(BaseModel):
    """Read-only snapshot of a processing queue."""
    queue_length: int
    is_processing: bool
    max_concurrency: int
    in_flight: int = 0
    pending_retries: int = 0


# =====================================================
# Daemon Models
# =====================================================

class DaemonState(str, Enum):
    """Lifecycle states of the background daemon."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


# Key names used in the on-disk Key=Value block
RECORD_KEYS = {
    "process_id": "ProcessId",
    "listen_folder": "ListenFolder",
    "width_mm": "LabelWidth",
    "height_mm": "LabelHeight",
    "unit": "Unit",
    "density_dpi": "PrintDensity",
    "started_at": "StartTime",
}


class DaemonRecord(BaseModel):
    """Persisted identity and configuration of a running daemon."""
    process_id: int = Field(gt=0)
    listen_folder: str = ""
    width_mm: float = 0.0
    height_mm: float = 0.0
    unit: str = "mm"
    density_dpi: int = 203
    started_at: str = ""

    def to_text(self) -> str:
        """Serialise as ``Key=Value`` lines."""
        values = self.model_dump()
        lines = [f"{key}={values[field]}" for field, key in RECORD_KEYS.items()]
        return "\n".join(lines) + "\n"

    @classmethod
    def from_text(cls, text: str) -> "DaemonRecord":
        """
        Parse a record file.

        Accepts the ``Key=Value`` block or a single line holding only the PID.

        Raises:
            ValueError: If no positive process id can be read
        """
        stripped = text.strip()
        if stripped.isdigit():
            return cls(process_id=int(stripped))

        by_key: Dict[str, str] = {}
        for line in stripped.splitlines():
            if "=" not in line:
                continue
            key, value = line.split("=", 1)
            by_key[key.strip()] = value.strip()

        data = {}
        for field, key in RECORD_KEYS.items():
            if by_key.get(key):
                data[field] = by_key[key]

        if "process_id" not in data:
            raise ValueError("Record has no ProcessId")

        return cls.model_validate(data)
