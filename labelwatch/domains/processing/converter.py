"""
Conversion pipeline: work item -> rendered pages -> PDF on disk.

Rendering and PDF assembly are delegated to collaborators so the queue and
the one-shot command share one code path.
"""

from pathlib import Path
from typing import List, Optional, Protocol

from loguru import logger

from labelwatch.domains.dimensions.extraction import split_labels
from labelwatch.domains.dimensions.resolver import DimensionResolver
from labelwatch.domains.rendering.pdf import PdfAssembler
from labelwatch.models.schemas import WorkItem
from labelwatch.utils.helpers import pdf_name_for


class ConversionError(Exception):
    """Raised when a work item cannot be turned into a PDF."""


class LabelRenderer(Protocol):
    """Anything that turns label content into page images."""

    def render(self, content: str, width_mm: float, height_mm: float, dpi: int) -> List[bytes]:
        ...


def make_work_item(
    content: str,
    file_name: str,
    resolver: DimensionResolver,
    source_path: Optional[Path] = None,
    explicit_width: Optional[float] = None,
    explicit_height: Optional[float] = None,
    unit: str = "mm",
    dpi: Optional[int] = None,
) -> WorkItem:
    """
    Split content into labels and resolve each label's dimensions.

    Args:
        content: Full label description text
        file_name: Display name used in logs and for the output name
        resolver: Dimension resolver
        source_path: File the content was read from, if any
        explicit_width: Fixed width applied to every label
        explicit_height: Fixed height applied to every label
        unit: Unit of the explicit values
        dpi: Print density

    Returns:
        WorkItem ready to be queued or converted

    Raises:
        ConversionError: If the content holds no labels
    """
    labels = split_labels(content)
    if not labels:
        raise ConversionError(f"No ZPL labels found in: {file_name}")

    dimensions = resolver.resolve_labels(labels, explicit_width, explicit_height, unit, dpi)

    return WorkItem(
        source_path=source_path,
        file_name=file_name,
        content=content,
        labels=tuple(labels),
        dimensions=dimensions,
    )


class LabelConverter:
    """Render a work item's labels and save them as one PDF."""

    def __init__(
        self,
        renderer: LabelRenderer,
        assembler: Optional[PdfAssembler] = None,
        output_folder: Optional[Path] = None,
    ):
        self.renderer = renderer
        self.assembler = assembler or PdfAssembler()
        self.output_folder = Path(output_folder) if output_folder else None

    def output_path_for(self, item: WorkItem) -> Path:
        """PDF path for ``item``: output folder, else beside the source file."""
        if self.output_folder is not None:
            folder = self.output_folder
        elif item.source_path is not None:
            folder = item.source_path.parent
        else:
            folder = Path.cwd()
        return folder / pdf_name_for(item.file_name)

    def render_pages(self, item: WorkItem) -> List[bytes]:
        """Render every label with its own resolved dimensions."""
        if not item.labels:
            raise ConversionError(f"No ZPL labels found in: {item.file_name}")

        pages: List[bytes] = []
        for index, (label, dimensions) in enumerate(zip(item.labels, item.dimensions), start=1):
            pages.extend(
                self.renderer.render(
                    label,
                    dimensions.width_mm,
                    dimensions.height_mm,
                    dimensions.density_dpi,
                )
            )
            width_dots, height_dots = dimensions.size_dots
            logger.info(f"Label {index}: {dimensions} ({width_dots}x{height_dots} dots)")

        if not pages:
            raise ConversionError(f"No images generated for: {item.file_name}")

        return pages

    def convert(self, item: WorkItem, output_path: Optional[Path] = None) -> Path:
        """
        Convert ``item`` to a PDF.

        Returns:
            Path of the written PDF

        Raises:
            ConversionError: If nothing could be rendered
            Exception: Whatever the renderer raises on malformed content
        """
        pages = self.render_pages(item)
        path = Path(output_path) if output_path else self.output_path_for(item)

        self.assembler.save(pages, path, item.dimensions[0].density_dpi)

        logger.success(f"PDF generated: {path} ({len(pages)} page(s))")
        return path

    __call__ = convert
