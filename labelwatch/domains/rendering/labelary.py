"""
Label rendering through the Labelary HTTP API.

Provides:
- One PNG page per label
- Request pacing (Labelary allows about 3 requests per second)
- Size and density mapping to the API's URL format
"""

import threading
import time
from typing import List, Optional

import httpx
from loguru import logger

from labelwatch.domains.dimensions.extraction import split_labels
from labelwatch.utils.config import get_settings
from labelwatch.utils.helpers import MM_PER_INCH, dpi_to_dpmm


MIN_REQUEST_INTERVAL = 0.334
MAX_LABEL_INCHES = 15.0


class LabelaryError(Exception):
    """Raised when Labelary cannot render a label."""


class LabelaryRenderer:
    """Client rendering ZPL labels to PNG images."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        """
        Initialize renderer.

        Args:
            base_url: Printers endpoint, e.g. http://api.labelary.com/v1/printers
            timeout: Request timeout in seconds
            client: Pre-built httpx client (tests pass one with a mock transport)
        """
        settings = get_settings()
        self.base_url = (base_url or settings.labelary_url).rstrip("/")
        self.client = client or httpx.Client(timeout=timeout or settings.labelary_timeout)

        self._pace_lock = threading.Lock()
        self._last_request = 0.0

    def close(self):
        """Close the underlying HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def label_url(self, width_mm: float, height_mm: float, dpi: int) -> str:
        """
        Build the render URL for one label.

        Raises:
            LabelaryError: If either side exceeds the API limit
        """
        width_in = width_mm / MM_PER_INCH
        height_in = height_mm / MM_PER_INCH

        if width_in > MAX_LABEL_INCHES or height_in > MAX_LABEL_INCHES:
            raise LabelaryError(
                f"Dimensions exceed Labelary limit of {MAX_LABEL_INCHES:.0f} inches. "
                f"Width: {width_in:.2f}in, Height: {height_in:.2f}in"
            )

        return f"{self.base_url}/{dpi_to_dpmm(dpi)}dpmm/labels/{width_in:.2f}x{height_in:.2f}/0/"

    def render(self, content: str, width_mm: float, height_mm: float, dpi: int) -> List[bytes]:
        """
        Render every label in ``content``.

        Args:
            content: One or more ``^XA ... ^XZ`` blocks
            width_mm: Label width
            height_mm: Label height
            dpi: Print density

        Returns:
            PNG bytes, one entry per label

        Raises:
            LabelaryError: On malformed content or API failure
        """
        labels = split_labels(content)
        if not labels:
            raise LabelaryError("No ZPL labels found in content")

        url = self.label_url(width_mm, height_mm, dpi)
        return [self._post(url, label) for label in labels]

    def _post(self, url: str, label: str) -> bytes:
        with self._pace_lock:
            wait = MIN_REQUEST_INTERVAL - (time.monotonic() - self._last_request)
            if wait > 0:
                time.sleep(wait)

            try:
                response = self.client.post(
                    url,
                    content=label.encode("utf-8"),
                    headers={
                        "Accept": "image/png",
                        "Content-Type": "application/x-www-form-urlencoded",
                    },
                )
            except httpx.HTTPError as e:
                raise LabelaryError(f"Labelary request failed: {e}") from e
            finally:
                self._last_request = time.monotonic()

        if response.is_error:
            raise LabelaryError(
                f"Labelary API error ({response.status_code}): {response.text.strip()}"
            )

        logger.debug(f"Rendered label via {url} ({len(response.content)} bytes)")
        return response.content
