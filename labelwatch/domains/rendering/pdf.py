"""PDF assembly from rendered label pages."""

import io
from pathlib import Path
from typing import Sequence

from PIL import Image

from labelwatch.utils.helpers import write_bytes_atomic


class PdfAssembler:
    """Combine page images into a single PDF, one page per image."""

    def assemble(self, pages: Sequence[bytes], dpi: int = 203) -> bytes:
        """
        Build PDF bytes from page images.

        The page size is the image size at ``dpi``, so a label rendered at
        its print density keeps its physical size.
        """
        if not pages:
            raise ValueError("No pages to assemble")

        images = [Image.open(io.BytesIO(page)).convert("RGB") for page in pages]

        buffer = io.BytesIO()
        images[0].save(
            buffer,
            format="PDF",
            save_all=True,
            append_images=images[1:],
            resolution=float(dpi),
        )
        return buffer.getvalue()

    def save(self, pages: Sequence[bytes], path: Path, dpi: int = 203) -> Path:
        """Assemble and write the PDF to ``path``."""
        path = Path(path)
        write_bytes_atomic(self.assemble(pages, dpi), path)
        return path
