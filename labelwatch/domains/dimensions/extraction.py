"""
ZPL label splitting and dimension marker extraction.

A label description file holds one or more ``^XA ... ^XZ`` blocks. Graphic
download commands (``~DG``) placed between blocks define images used by the
labels after them. They are carried into every following label until a
^IDR deletion removes them.
"""

import re

from labelwatch.models.schemas import LabelGeometry
from labelwatch.utils.helpers import dots_to_mm


LABEL_PATTERN = re.compile(r"\^XA.*?\^XZ", re.IGNORECASE | re.DOTALL)
GRAPHIC_PATTERN = re.compile(r"~DG.*?(?=[~^]|\Z)", re.IGNORECASE | re.DOTALL)
GRAPHIC_NAME_PATTERN = re.compile(r"~DG(?:[A-Z]:)?([^,]+),", re.IGNORECASE)
DELETE_GRAPHIC_PATTERN = re.compile(r"\^ID(?:[A-Z]:)?([^\^]+?)\s*\^FS", re.IGNORECASE)
FRAME_PATTERN = re.compile(r"\^X[AZ]", re.IGNORECASE)
FIELD_SEPARATOR_PATTERN = re.compile(r"\^FS|\s", re.IGNORECASE)
PRINT_WIDTH_PATTERN = re.compile(r"\^PW(\d+)", re.IGNORECASE)
LABEL_LENGTH_PATTERN = re.compile(r"\^LL(\d+)", re.IGNORECASE)


def _graphic_key(name: str) -> str:
    return name.strip().upper()


def is_cleanup_only(label: str) -> bool:
    """
    True when a ``^XA ... ^XZ`` block prints nothing.

    Empty blocks and blocks holding only ``^IDR:name^FS`` deletions or bare
    ``^FS`` separators are printer housekeeping, not pages.
    """
    body = FRAME_PATTERN.sub("", label)
    body = DELETE_GRAPHIC_PATTERN.sub("", body)
    return not FIELD_SEPARATOR_PATTERN.sub("", body)


def split_labels(content: str) -> list[str]:
    """
    Split file content into standalone labels.

    Graphics stay in memory by name, as on the printer: a later ``~DG`` with
    the same name replaces the earlier one and ``^IDR:name^FS`` deletes it.
    Blocks that only clean up are applied but not returned.

    Args:
        content: Full label description text

    Returns:
        One string per printable ``^XA ... ^XZ`` block, each prefixed with
        the graphics held in memory at that point
    """
    if not content or not content.strip():
        return []

    labels = []
    graphics: dict[str, str] = {}
    position = 0

    for match in LABEL_PATTERN.finditer(content):
        for graphic in GRAPHIC_PATTERN.findall(content[position:match.start()]):
            graphic = graphic.strip()
            name = GRAPHIC_NAME_PATTERN.match(graphic)
            graphics[_graphic_key(name.group(1)) if name else graphic] = graphic
        position = match.end()

        label = match.group(0)
        if not is_cleanup_only(label):
            prelude = "\n".join(graphics.values())
            labels.append(f"{prelude}\n{label}" if prelude else label)

        # Deletions take effect after the block that issues them
        for name in DELETE_GRAPHIC_PATTERN.findall(label):
            graphics.pop(_graphic_key(name), None)

    return labels


def extract_geometry(label: str, dpi: int) -> LabelGeometry:
    """
    Read ``^PW`` (print width) and ``^LL`` (label length) from one label.

    Args:
        label: A single ``^XA ... ^XZ`` block
        dpi: Density used to turn dots into millimetres

    Returns:
        Raw geometry; ``is_valid`` is only true when both markers are positive
    """
    width_dots = 0
    height_dots = 0

    width_match = PRINT_WIDTH_PATTERN.search(label or "")
    if width_match:
        width_dots = int(width_match.group(1))

    length_match = LABEL_LENGTH_PATTERN.search(label or "")
    if length_match:
        height_dots = int(length_match.group(1))

    return LabelGeometry(
        width_dots=width_dots,
        height_dots=height_dots,
        width_mm=dots_to_mm(width_dots, dpi) if width_dots else 0.0,
        height_mm=dots_to_mm(height_dots, dpi) if height_dots else 0.0,
        density_dpi=dpi,
        has_dimensions=bool(width_match or length_match),
    )
