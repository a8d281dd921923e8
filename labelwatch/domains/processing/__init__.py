"""
Processing Domain

Turns work items into PDFs:
- make_work_item splits content into labels with resolved dimensions
- LabelConverter renders the labels and writes the PDF
- ProcessingQueue runs conversions on a bounded worker pool with lock retries
"""

from labelwatch.domains.processing.converter import (
    ConversionError,
    LabelConverter,
    make_work_item,
)
from labelwatch.domains.processing.queue import FILE_IN_USE_MESSAGE, ProcessingQueue

__all__ = [
    "ConversionError",
    "FILE_IN_USE_MESSAGE",
    "LabelConverter",
    "ProcessingQueue",
    "make_work_item",
]
