"""
Dimension resolution with a fixed priority order.

1. Explicit width/height supplied by the caller
2. Width/length markers extracted from the label itself
3. Built-in default size

Resolution never raises: an unusable tier simply falls through to the next.
"""

import math
from typing import Iterable, Optional

from loguru import logger

from labelwatch.domains.dimensions.extraction import extract_geometry
from labelwatch.models.schemas import DimensionSource, Dimensions, LabelGeometry
from labelwatch.utils.helpers import to_millimeters


def _positive(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value) and value > 0


class DimensionResolver:
    """Decide final output size and density for labels."""

    def __init__(
        self,
        default_width_mm: float = 100.0,
        default_height_mm: float = 150.0,
        default_dpi: int = 203,
    ):
        """
        Initialize resolver.

        Args:
            default_width_mm: Width of the default tier
            default_height_mm: Height of the default tier
            default_dpi: Density used when the caller gives none
        """
        if not (_positive(default_width_mm) and _positive(default_height_mm) and default_dpi > 0):
            raise ValueError("Default dimensions must be positive")

        self.default_width_mm = default_width_mm
        self.default_height_mm = default_height_mm
        self.default_dpi = default_dpi

    @classmethod
    def from_settings(cls, settings) -> "DimensionResolver":
        """Build a resolver from application settings."""
        return cls(
            default_width_mm=settings.default_width_mm,
            default_height_mm=settings.default_height_mm,
            default_dpi=settings.default_dpi,
        )

    def _dpi(self, dpi: Optional[int]) -> int:
        return dpi if dpi is not None and dpi > 0 else self.default_dpi

    def default_dimensions(self, dpi: Optional[int] = None) -> Dimensions:
        """Return the built-in size."""
        return Dimensions(
            width_mm=self.default_width_mm,
            height_mm=self.default_height_mm,
            density_dpi=self._dpi(dpi),
            source=DimensionSource.DEFAULT,
        )

    def explicit_dimensions(
        self,
        width: Optional[float],
        height: Optional[float],
        unit: str = "mm",
        dpi: Optional[int] = None,
    ) -> Optional[Dimensions]:
        """Return explicit dimensions in millimetres, or None if the pair is unusable."""
        if not (_positive(width) and _positive(height)):
            return None

        return Dimensions(
            width_mm=to_millimeters(width, unit),
            height_mm=to_millimeters(height, unit),
            density_dpi=self._dpi(dpi),
            source=DimensionSource.EXPLICIT,
        )

    def resolve(
        self,
        explicit_width: Optional[float] = None,
        explicit_height: Optional[float] = None,
        unit: str = "mm",
        extracted: Optional[LabelGeometry] = None,
        dpi: Optional[int] = None,
    ) -> Dimensions:
        """
        Resolve dimensions for one label.

        Args:
            explicit_width: Caller-supplied width in ``unit``
            explicit_height: Caller-supplied height in ``unit``
            unit: ``mm``, ``cm`` or ``in`` (unknown units are read as ``mm``)
            extracted: Geometry parsed from the label content
            dpi: Density for the explicit and default tiers

        Returns:
            Dimensions tagged with the tier that produced them
        """
        explicit = self.explicit_dimensions(explicit_width, explicit_height, unit, dpi)
        if explicit is not None:
            return explicit

        if extracted is not None and extracted.is_valid:
            return Dimensions(
                width_mm=extracted.width_mm,
                height_mm=extracted.height_mm,
                density_dpi=extracted.density_dpi,
                source=DimensionSource.EXTRACTED,
            )

        return self.default_dimensions(dpi)

    def resolve_labels(
        self,
        labels: Iterable[str],
        explicit_width: Optional[float] = None,
        explicit_height: Optional[float] = None,
        unit: str = "mm",
        dpi: Optional[int] = None,
    ) -> tuple[Dimensions, ...]:
        """
        Resolve every label of a file independently.

        When a valid explicit pair is given it applies uniformly to every label.
        """
        density = self._dpi(dpi)
        resolved = []

        for index, label in enumerate(labels, start=1):
            dimensions = self.resolve(
                explicit_width,
                explicit_height,
                unit,
                extract_geometry(label, density),
                density,
            )
            logger.debug(f"Label {index}: {dimensions}")
            resolved.append(dimensions)

        return tuple(resolved)
