"""
Shared pytest fixtures.
"""

import io
import os
from pathlib import Path
from typing import Optional

import pytest
from PIL import Image

from labelwatch.models.schemas import DimensionSource, Dimensions, WorkItem
from labelwatch.utils.config import get_settings


SIMPLE_LABEL = "^XA^FO50,50^A0N,40,40^FDHello^FS^XZ"
SIZED_LABEL = "^XA^PW812^LL1218^FO50,50^FDSized^FS^XZ"


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Keep ambient LABELWATCH_* variables and .env files out of tests."""
    for key in list(os.environ):
        if key.startswith("LABELWATCH_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def make_png(width: int = 40, height: int = 60) -> bytes:
    """Small white PNG page."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), "white").save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_page() -> bytes:
    return make_png()


class FakeRenderer:
    """Renderer returning one blank page per call and remembering its arguments."""

    def __init__(self, fail_with: Optional[Exception] = None):
        self.calls = []
        self.fail_with = fail_with

    def render(self, content, width_mm, height_mm, dpi):
        self.calls.append((content, width_mm, height_mm, dpi))
        if self.fail_with is not None:
            raise self.fail_with
        return [make_png()]

    def close(self):
        pass


@pytest.fixture
def fake_renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def make_item():
    """Factory for work items with default-sized labels."""

    def _make(file_name: str = "label.txt", source_path: Optional[Path] = None, labels: int = 1) -> WorkItem:
        dimensions = Dimensions(
            width_mm=100.0,
            height_mm=150.0,
            density_dpi=203,
            source=DimensionSource.DEFAULT,
        )
        return WorkItem(
            source_path=source_path,
            file_name=file_name,
            content=SIMPLE_LABEL * labels,
            labels=tuple([SIMPLE_LABEL] * labels),
            dimensions=tuple([dimensions] * labels),
        )

    return _make
