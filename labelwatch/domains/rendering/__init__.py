"""
Rendering Domain

Thin adapters over the external capabilities the converter relies on:
- Labelary HTTP API turns ZPL into PNG pages
- Pillow assembles the pages into a PDF
"""

from labelwatch.domains.rendering.labelary import LabelaryError, LabelaryRenderer
from labelwatch.domains.rendering.pdf import PdfAssembler

__all__ = ["LabelaryError", "LabelaryRenderer", "PdfAssembler"]
