"""
Dimensions Domain

Splits label files into labels and decides each label's output size:
explicit values > markers extracted from the label > built-in default.
"""

from labelwatch.domains.dimensions.extraction import extract_geometry, is_cleanup_only, split_labels
from labelwatch.domains.dimensions.resolver import DimensionResolver

__all__ = ["DimensionResolver", "extract_geometry", "is_cleanup_only", "split_labels"]
